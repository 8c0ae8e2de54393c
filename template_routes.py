"""Chat template routes: conversation setups linked to users."""
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from auth import require_user
from db import get_db, insert_returning_id, now_iso
from log import get_logger
from models import TEMPLATE_LEVELS, ChatTemplateRequest

logger = get_logger("deepremember.templates")

router = APIRouter(prefix="/api/chat-templates", tags=["Chat templates"])

TEMPLATE_FIELDS = (
    "thema", "persons", "scenario", "questions_and_thema", "words_to_use", "words_not_to_use",
    "grammar_to_use", "level", "communication_style", "learning_goal", "ai_role", "conversation_rules",
)
TEMPLATE_COLUMNS = "t.id, " + ", ".join(f"t.{f}" for f in TEMPLATE_FIELDS) + ", t.created_at, t.updated_at"


def template_out(row) -> Dict[str, Any]:
    template = dict(row)
    raw = template.get("conversation_rules")
    try:
        rules = json.loads(raw) if raw else []
    except ValueError:
        rules = []
    template["conversation_rules"] = rules if isinstance(rules, list) else []
    return template


def get_user_template(conn, template_id: int, user_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        f"SELECT {TEMPLATE_COLUMNS} FROM chattemplates t "
        f"JOIN user_chattemplates ut ON ut.template_id = t.id "
        f"WHERE t.id = ? AND ut.user_id = ?",
        (template_id, user_id),
    ).fetchone()
    return template_out(row) if row else None


def _column_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate request fields and convert them to column values."""
    level = data.get("level")
    if level and level not in TEMPLATE_LEVELS:
        raise HTTPException(400, "Invalid level. Must be A1, A2, B1, or B2")
    values = {}
    for field, value in data.items():
        if field == "conversation_rules":
            values[field] = json.dumps(value or [], ensure_ascii=False)
        elif isinstance(value, str):
            values[field] = value.strip() or None
        else:
            values[field] = value
    return values


@router.get("", summary="List the user's chat templates")
async def list_templates(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {TEMPLATE_COLUMNS} FROM chattemplates t "
            f"JOIN user_chattemplates ut ON ut.template_id = t.id "
            f"WHERE ut.user_id = ? ORDER BY t.created_at DESC, t.id DESC",
            (user["id"],),
        ).fetchall()
        return {"templates": [template_out(r) for r in rows]}
    finally:
        conn.close()


@router.get("/{template_id}", summary="Get one chat template")
async def get_template(template_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        template = get_user_template(conn, template_id, user["id"])
    finally:
        conn.close()
    if not template:
        raise HTTPException(404, "Template not found")
    return {"template": template}


@router.post("", status_code=201, summary="Create a chat template")
async def create_template(req: ChatTemplateRequest, user=Depends(require_user)):
    values = _column_values(req.model_dump())
    now = now_iso()
    conn = get_db()
    try:
        columns = list(values) + ["created_at", "updated_at"]
        template_id = insert_returning_id(
            conn,
            f"INSERT INTO chattemplates ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(values.values()) + (now, now),
        )
        conn.execute(
            "INSERT INTO user_chattemplates (user_id, template_id, created_at) VALUES (?, ?, ?)",
            (user["id"], template_id, now),
        )
        conn.commit()
        template = get_user_template(conn, template_id, user["id"])
    finally:
        conn.close()
    logger.info("Chat template created", extra={"component": "templates", "user_id": user["id"]})
    return {"template": template}


@router.put("/{template_id}", summary="Update a chat template")
async def update_template(template_id: int, req: ChatTemplateRequest, user=Depends(require_user)):
    values = _column_values(req.model_dump(exclude_unset=True))
    conn = get_db()
    try:
        if not get_user_template(conn, template_id, user["id"]):
            raise HTTPException(404, "Template not found")
        if values:
            assignments = ", ".join(f"{field} = ?" for field in values)
            conn.execute(
                f"UPDATE chattemplates SET {assignments}, updated_at = ? WHERE id = ?",
                tuple(values.values()) + (now_iso(), template_id),
            )
            conn.commit()
        return {"template": get_user_template(conn, template_id, user["id"])}
    finally:
        conn.close()


@router.delete("/{template_id}", summary="Delete a chat template")
async def delete_template(template_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        if not get_user_template(conn, template_id, user["id"]):
            raise HTTPException(404, "Template not found")
        conn.execute(
            "DELETE FROM user_chattemplates WHERE user_id = ? AND template_id = ?", (user["id"], template_id)
        )
        remaining = conn.execute(
            "SELECT COUNT(*) AS count FROM user_chattemplates WHERE template_id = ?", (template_id,)
        ).fetchone()["count"]
        if remaining == 0:
            conn.execute("DELETE FROM chattemplates WHERE id = ?", (template_id,))
        conn.commit()
    finally:
        conn.close()
    return {"ok": True, "deleted": remaining == 0}
