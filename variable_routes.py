"""Global application variables. Anyone logged in can read; only admins write."""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

import db
from auth import require_admin, require_user
from db import get_db, insert_returning_id, now_iso
from log import get_logger
from models import VARIABLE_TYPES, AppVariableRequest, parse_value, serialize_value

logger = get_logger("deepremember.variables")

router = APIRouter(prefix="/api/app-variables", tags=["App variables"])

VARIABLE_COLUMNS = "id, keyname, value, type, description, created_at, updated_at"


def variable_out(row) -> Dict[str, Any]:
    item = dict(row)
    item["parsed_value"] = parse_value(item["type"], item["value"])
    return item


def _get_by_keyname(conn, keyname: str):
    row = conn.execute(f"SELECT {VARIABLE_COLUMNS} FROM app_variables WHERE keyname = ?", (keyname,)).fetchone()
    if not row:
        raise HTTPException(404, "Variable not found")
    return row


def _serialize(var_type: str, value: Any) -> str:
    if var_type not in VARIABLE_TYPES:
        raise HTTPException(400, f"Invalid type. Must be one of: {', '.join(VARIABLE_TYPES)}")
    try:
        return serialize_value(var_type, value)
    except ValueError as e:
        raise HTTPException(400, f'{e} when type is "{var_type}"')


def get_variable_value(keyname: str, default: Any = None) -> Any:
    """Parsed value of a variable, or `default` when it is not set."""
    conn = get_db()
    try:
        row = conn.execute("SELECT value, type FROM app_variables WHERE keyname = ?", (keyname,)).fetchone()
    finally:
        conn.close()
    if not row:
        return default
    return parse_value(row["type"], row["value"])


@router.get("", summary="List app variables")
async def list_variables(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(f"SELECT {VARIABLE_COLUMNS} FROM app_variables ORDER BY keyname").fetchall()
        return {"variables": [variable_out(r) for r in rows]}
    finally:
        conn.close()


@router.get("/keyname/{keyname}", summary="Get an app variable by key")
async def get_variable_by_keyname(keyname: str, user=Depends(require_user)):
    conn = get_db()
    try:
        return {"variable": variable_out(_get_by_keyname(conn, keyname))}
    finally:
        conn.close()


@router.get("/{variable_id}", summary="Get an app variable by id")
async def get_variable(variable_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        row = conn.execute(
            f"SELECT {VARIABLE_COLUMNS} FROM app_variables WHERE id = ?", (variable_id,)
        ).fetchone()
    finally:
        conn.close()
    if not row:
        raise HTTPException(404, "Variable not found")
    return {"variable": variable_out(row)}


@router.post("", status_code=201, summary="Create an app variable")
async def create_variable(req: AppVariableRequest, admin=Depends(require_admin)):
    keyname = (req.keyname or "").strip()
    if not keyname:
        raise HTTPException(400, "keyname is required")
    if not req.type:
        raise HTTPException(400, "type is required")
    value = _serialize(req.type, req.value)

    now = now_iso()
    conn = get_db()
    try:
        if conn.execute("SELECT id FROM app_variables WHERE keyname = ?", (keyname,)).fetchone():
            raise HTTPException(409, "Variable with this keyname already exists")
        try:
            insert_returning_id(
                conn,
                "INSERT INTO app_variables (keyname, value, type, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (keyname, value, req.type, req.description, now, now),
            )
            conn.commit()
        except db.INTEGRITY_ERRORS:
            conn.rollback()
            raise HTTPException(409, "Variable with this keyname already exists")
        row = _get_by_keyname(conn, keyname)
    finally:
        conn.close()
    logger.info("App variable created", extra={"component": "variables", "user_id": admin["id"], "detail": keyname})
    return {"variable": variable_out(row)}


@router.put("/keyname/{keyname}", summary="Update an app variable")
async def update_variable(keyname: str, req: AppVariableRequest, admin=Depends(require_admin)):
    fields = req.model_dump(exclude_unset=True)
    conn = get_db()
    try:
        existing = _get_by_keyname(conn, keyname)
        var_type = fields.get("type") or existing["type"]
        value = _serialize(var_type, fields["value"] if "value" in fields else existing["value"])
        description = fields["description"] if "description" in fields else existing["description"]
        conn.execute(
            "UPDATE app_variables SET value = ?, type = ?, description = ?, updated_at = ? WHERE keyname = ?",
            (value, var_type, description, now_iso(), keyname),
        )
        conn.commit()
        return {"variable": variable_out(_get_by_keyname(conn, keyname))}
    finally:
        conn.close()


@router.delete("/keyname/{keyname}", summary="Delete an app variable")
async def delete_variable(keyname: str, admin=Depends(require_admin)):
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM app_variables WHERE keyname = ?", (keyname,))
        conn.commit()
        deleted = cursor.rowcount
    finally:
        conn.close()
    if deleted == 0:
        raise HTTPException(404, "Variable not found")
    logger.info("App variable deleted", extra={"component": "variables", "user_id": admin["id"], "detail": keyname})
    return {"ok": True}
