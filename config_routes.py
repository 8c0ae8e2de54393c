"""Per-user named settings."""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from auth import require_user
from db import get_db, insert_returning_id, now_iso
from models import CONFIG_VALUE_TYPES, UserConfigRequest, parse_value, serialize_value

router = APIRouter(prefix="/api/user-configs", tags=["User configs"])

CONFIG_COLUMNS = "id, name, label, value_type, value, created_at, updated_at"


def config_out(row) -> Dict[str, Any]:
    item = dict(row)
    item["parsed_value"] = parse_value(item["value_type"], item["value"])
    return item


def _get_config(conn, config_id: int, user_id: int):
    row = conn.execute(
        f"SELECT {CONFIG_COLUMNS} FROM user_configs WHERE id = ? AND user_id = ?", (config_id, user_id)
    ).fetchone()
    if not row:
        raise HTTPException(404, "Configuration not found")
    return row


def _check_value_type(value_type: str):
    if value_type not in CONFIG_VALUE_TYPES:
        raise HTTPException(400, f"Invalid value_type. Must be one of: {', '.join(CONFIG_VALUE_TYPES)}")


def _serialize(value_type: str, value: Any) -> str:
    try:
        return serialize_value(value_type, value)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", summary="List the user's configurations")
async def list_configs(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {CONFIG_COLUMNS} FROM user_configs WHERE user_id = ? ORDER BY name, id", (user["id"],)
        ).fetchall()
        return {"configs": [config_out(r) for r in rows]}
    finally:
        conn.close()


@router.get("/name/{name}", summary="Get configurations by name")
async def get_configs_by_name(name: str, user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {CONFIG_COLUMNS} FROM user_configs WHERE user_id = ? AND name = ? ORDER BY id",
            (user["id"], name),
        ).fetchall()
    finally:
        conn.close()
    if not rows:
        raise HTTPException(404, "Configuration not found")
    return {"configs": [config_out(r) for r in rows]}


@router.get("/{config_id}", summary="Get one configuration")
async def get_config(config_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        return {"config": config_out(_get_config(conn, config_id, user["id"]))}
    finally:
        conn.close()


@router.post("", status_code=201, summary="Create a configuration")
async def create_config(req: UserConfigRequest, user=Depends(require_user)):
    name = (req.name or "").strip()
    label = (req.label or "").strip()
    if not name or not label:
        raise HTTPException(400, "name and label are required")
    value_type = req.value_type or "string"
    _check_value_type(value_type)
    value = _serialize(value_type, req.value)

    now = now_iso()
    conn = get_db()
    try:
        config_id = insert_returning_id(
            conn,
            "INSERT INTO user_configs (user_id, name, label, value_type, value, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (user["id"], name, label, value_type, value, now, now),
        )
        conn.commit()
        return {"config": config_out(_get_config(conn, config_id, user["id"]))}
    finally:
        conn.close()


@router.put("/{config_id}", summary="Update a configuration")
async def update_config(config_id: int, req: UserConfigRequest, user=Depends(require_user)):
    fields = req.model_dump(exclude_unset=True)
    conn = get_db()
    try:
        existing = _get_config(conn, config_id, user["id"])
        name = (fields.get("name") or existing["name"]).strip()
        label = (fields.get("label") or existing["label"]).strip()
        value_type = fields.get("value_type") or existing["value_type"]
        _check_value_type(value_type)
        if "value" in fields:
            value = _serialize(value_type, fields["value"])
        else:
            # Existing value must still fit when only the type changes
            value = _serialize(value_type, existing["value"])
        conn.execute(
            "UPDATE user_configs SET name = ?, label = ?, value_type = ?, value = ?, updated_at = ? "
            "WHERE id = ? AND user_id = ?",
            (name, label, value_type, value, now_iso(), config_id, user["id"]),
        )
        conn.commit()
        return {"config": config_out(_get_config(conn, config_id, user["id"]))}
    finally:
        conn.close()


@router.delete("/name/{name}", summary="Delete configurations by name")
async def delete_configs_by_name(name: str, user=Depends(require_user)):
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM user_configs WHERE user_id = ? AND name = ?", (user["id"], name))
        conn.commit()
        deleted = cursor.rowcount
    finally:
        conn.close()
    if deleted == 0:
        raise HTTPException(404, "Configuration not found")
    return {"ok": True, "deleted": deleted}


@router.delete("/{config_id}", summary="Delete a configuration")
async def delete_config(config_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM user_configs WHERE id = ? AND user_id = ?", (config_id, user["id"]))
        conn.commit()
        deleted = cursor.rowcount
    finally:
        conn.close()
    if deleted == 0:
        raise HTTPException(404, "Configuration not found")
    return {"ok": True}
