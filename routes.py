"""Auth route handlers and the aggregate API router for DeepRemember."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Header

from log import get_logger

logger = get_logger("deepremember.routes")

from models import AuthRequest, ChangePasswordRequest, VerifyTokenRequest
import db
from db import get_db, insert_returning_id, now_iso
from auth import (
    hash_password, verify_password, validate_credentials,
    create_session, revoke_session, get_user_from_token, extract_bearer_token,
    public_user, require_user, MIN_PASSWORD_LEN,
)

from card_routes import router as card_router
from label_routes import router as label_router
from stats_routes import router as stats_router
from template_routes import router as template_router
from config_routes import router as config_router
from variable_routes import router as variable_router
from timer_routes import router as timer_router
from analysis_routes import router as analysis_router
from word_base_routes import router as word_base_router

router = APIRouter()


def _user_out(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "token"}


@router.post("/api/auth/register", status_code=201, tags=["Auth"], summary="Register a new user")
async def auth_register(req: AuthRequest):
    email = req.email.strip().lower()
    validate_credentials(email, req.password)

    conn = get_db()
    try:
        existing = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
        if existing:
            raise HTTPException(409, "Email already registered")
        now = now_iso()
        try:
            user_id = insert_returning_id(
                conn,
                "INSERT INTO users (email, password_hash, role, created_at, updated_at) VALUES (?, ?, 'user', ?, ?)",
                (email, hash_password(req.password), now, now),
            )
            conn.commit()
        except db.INTEGRITY_ERRORS:
            conn.rollback()
            raise HTTPException(409, "Email already registered")
        row = conn.execute("SELECT id, email, role, created_at FROM users WHERE id = ?", (user_id,)).fetchone()
    finally:
        conn.close()

    logger.info("User registered", extra={"component": "auth", "user_id": user_id})
    return {"user": public_user(row), "session": create_session(user_id)}


@router.post("/api/auth/login", tags=["Auth"], summary="Log in and get a session token")
async def auth_login(req: AuthRequest):
    email = req.email.strip().lower()
    conn = get_db()
    try:
        row = conn.execute("SELECT id, email, role, created_at, password_hash FROM users WHERE email = ?",
                           (email,)).fetchone()
    finally:
        conn.close()
    if not row or not verify_password(req.password, row["password_hash"]):
        raise HTTPException(401, "Invalid email or password")

    logger.info("User logged in", extra={"component": "auth", "user_id": row["id"]})
    return {"user": public_user(row), "session": create_session(row["id"])}


@router.post("/api/auth/logout", tags=["Auth"], summary="Log out and invalidate token")
async def auth_logout(user=Depends(require_user)):
    revoke_session(user["token"])
    return {"ok": True}


@router.get("/api/auth/me", tags=["Auth"], summary="Get current user info")
async def auth_me(user=Depends(require_user)):
    return {"user": _user_out(user)}


@router.put("/api/auth/change-password", tags=["Auth"], summary="Change the current user's password")
async def auth_change_password(req: ChangePasswordRequest, user=Depends(require_user)):
    if not req.new_password or len(req.new_password) < MIN_PASSWORD_LEN:
        raise HTTPException(400, f"Password must be at least {MIN_PASSWORD_LEN} characters")
    conn = get_db()
    try:
        row = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user["id"],)).fetchone()
        if not row or not verify_password(req.current_password, row["password_hash"]):
            raise HTTPException(401, "Current password is incorrect")
        conn.execute("UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                     (hash_password(req.new_password), now_iso(), user["id"]))
        # Other devices have to log in again
        conn.execute("DELETE FROM sessions WHERE user_id = ? AND token != ?", (user["id"], user["token"]))
        conn.commit()
    finally:
        conn.close()
    logger.info("Password changed", extra={"component": "auth", "user_id": user["id"]})
    return {"ok": True}


@router.delete("/api/auth/account", tags=["Auth"], summary="Delete the current user and all their data")
async def auth_delete_account(user=Depends(require_user)):
    conn = get_db()
    try:
        conn.execute("DELETE FROM users WHERE id = ?", (user["id"],))
        # Templates no other user links to go with the account
        conn.execute("DELETE FROM chattemplates WHERE id NOT IN (SELECT template_id FROM user_chattemplates)")
        conn.commit()
    finally:
        conn.close()
    logger.info("Account deleted", extra={"component": "auth", "user_id": user["id"]})
    return {"ok": True}


@router.post("/api/auth/verify-token", tags=["Auth"], summary="Check whether a token is valid")
async def auth_verify_token(req: VerifyTokenRequest):
    user = get_user_from_token(req.token)
    return {"valid": user is not None, "user": user}


@router.post("/api/auth/refresh-token", tags=["Auth"], summary="Exchange the current token for a new one")
async def auth_refresh_token(authorization: Optional[str] = Header(default=None)):
    token = extract_bearer_token(authorization)
    user = get_user_from_token(token)
    if not user:
        raise HTTPException(401, "Not logged in")
    session = create_session(user["id"])
    revoke_session(token)
    return {"user": user, "session": session}


router.include_router(card_router)
router.include_router(label_router)
router.include_router(stats_router)
router.include_router(template_router)
router.include_router(config_router)
router.include_router(variable_router)
router.include_router(timer_router)
router.include_router(analysis_router)
router.include_router(word_base_router)
