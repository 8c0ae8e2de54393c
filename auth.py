"""User authentication, session management, and rate limiting."""
import re as _re
import time
import bcrypt
import secrets
from typing import Optional
from collections import defaultdict

from fastapi import Depends, Header, HTTPException, Request

import config
from db import get_db
from log import get_logger

logger = get_logger("deepremember.auth")

# --- Config ---
SESSION_TTL = config.SESSION_TTL
MIN_PASSWORD_LEN = config.MIN_PASSWORD_LEN
EMAIL_RE = _re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# --- Rate Limiting ---
RATE_LIMIT_REQUESTS = config.RATE_LIMIT_REQUESTS
RATE_LIMIT_WINDOW = config.RATE_LIMIT_WINDOW
_rate_buckets: dict = defaultdict(list)
_rate_check_counter = 0


def rate_limit_check(key: str) -> bool:
    now = time.time()
    cutoff = now - RATE_LIMIT_WINDOW
    _rate_buckets[key] = [t for t in _rate_buckets[key] if t > cutoff]
    if len(_rate_buckets[key]) >= RATE_LIMIT_REQUESTS:
        return False
    _rate_buckets[key].append(now)
    return True


def rate_limit_cleanup():
    global _rate_check_counter
    _rate_check_counter += 1
    if _rate_check_counter % 100 == 0:
        now = time.time()
        cutoff = now - RATE_LIMIT_WINDOW
        stale = [key for key, ts in _rate_buckets.items() if not ts or ts[-1] < cutoff]
        for key in stale:
            del _rate_buckets[key]


def rate_limit_reset():
    _rate_buckets.clear()


def get_rate_limit_key(request: Request, user: Optional[dict] = None) -> str:
    if user:
        return f"user:{user['id']}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def enforce_rate_limit(request: Request, user: Optional[dict] = None):
    rate_limit_cleanup()
    if not rate_limit_check(get_rate_limit_key(request, user)):
        raise HTTPException(429, "Too many requests. Please wait a minute.")


# --- Passwords ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), stored.encode())
    except ValueError:
        return False


def validate_credentials(email: str, password: str):
    if not email or not EMAIL_RE.match(email):
        raise HTTPException(400, "Invalid email address")
    if not password or len(password) < MIN_PASSWORD_LEN:
        raise HTTPException(400, f"Password must be at least {MIN_PASSWORD_LEN} characters")


# --- Sessions ---

def create_session(user_id: int) -> dict:
    token = secrets.token_hex(32)
    now = time.time()
    expires_at = now + SESSION_TTL
    conn = get_db()
    try:
        conn.execute("INSERT INTO sessions (user_id, token, created_at, expires_at) VALUES (?, ?, ?, ?)",
                     (user_id, token, now, expires_at))
        conn.commit()
    finally:
        conn.close()
    return {"token": token, "expires_at": expires_at}


def revoke_session(token: str) -> int:
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin" or user.get("email", "").lower() in config.ADMIN_EMAILS


def public_user(row) -> dict:
    user = {
        "id": row["id"],
        "email": row["email"],
        "role": row["role"],
        "created_at": row["created_at"],
    }
    user["is_admin"] = is_admin(user)
    return user


def get_user_from_token(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    conn = get_db()
    try:
        row = conn.execute(
            "SELECT u.id, u.email, u.role, u.created_at FROM sessions s JOIN users u ON s.user_id = u.id "
            "WHERE s.token = ? AND s.expires_at > ?",
            (token, time.time())
        ).fetchone()
    finally:
        conn.close()
    if row:
        return public_user(row)
    return None


def cleanup_expired_sessions() -> int:
    """Delete expired sessions from the database. Returns count of deleted rows."""
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (time.time(),))
        deleted = cursor.rowcount
        conn.commit()
    finally:
        conn.close()
    if deleted:
        logger.info("Expired sessions removed", extra={"component": "auth", "count": deleted})
    return deleted


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


# --- FastAPI dependencies ---

async def require_user(authorization: Optional[str] = Header(default=None)) -> dict:
    """Resolve the bearer token to a user or fail with 401."""
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(401, "Not logged in")
    user = get_user_from_token(token)
    if not user:
        raise HTTPException(401, "Invalid or expired token")
    user["token"] = token
    return user


async def require_admin(user: dict = Depends(require_user)) -> dict:
    if not user["is_admin"]:
        raise HTTPException(403, "Admin access required")
    return user
