"""Label routes: system and user labels, and card-label links."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

import db
from auth import require_user
from db import get_db, insert_returning_id, now_iso
from log import get_logger
from models import (
    SYSTEM_LABELS, DEFAULT_LABEL_COLOR,
    LabelCreateRequest, LabelUpdateRequest, CardLabelRequest,
)

logger = get_logger("deepremember.labels")

router = APIRouter()

LABEL_COLUMNS = "l.id, l.name, l.type, l.user_id, l.color, l.description, l.created_at, l.updated_at"


# --- Data helpers ---

def ensure_system_labels() -> int:
    """Create the built-in system labels if missing. Returns how many were added."""
    conn = get_db()
    created = 0
    try:
        for name, meta in SYSTEM_LABELS.items():
            row = conn.execute(
                "SELECT id FROM labels WHERE name = ? AND type = 'system' AND user_id IS NULL", (name,)
            ).fetchone()
            if row:
                continue
            now = now_iso()
            conn.execute(
                "INSERT INTO labels (name, type, user_id, color, description, created_at, updated_at) "
                "VALUES (?, 'system', NULL, ?, ?, ?, ?)",
                (name, meta["color"], meta["description"], now, now),
            )
            created += 1
        conn.commit()
    finally:
        conn.close()
    if created:
        logger.info("System labels created", extra={"component": "labels", "count": created})
    return created


def get_system_label(conn, name: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.name = ? AND l.type = 'system' AND l.user_id IS NULL",
        (name,),
    ).fetchone()
    return dict(row) if row else None


def get_accessible_label(conn, label_id: int, user_id: int) -> Optional[Dict[str, Any]]:
    """A system label or one of the user's own labels."""
    row = conn.execute(
        f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.id = ? AND (l.type = 'system' OR l.user_id = ?)",
        (label_id, user_id),
    ).fetchone()
    return dict(row) if row else None


def attach_label(conn, card_id: int, label_id: int) -> bool:
    """Link a label to a card. Returns False when the link already existed."""
    cursor = conn.execute(
        "INSERT INTO card_labels (card_id, label_id, created_at) VALUES (?, ?, ?) "
        "ON CONFLICT (card_id, label_id) DO NOTHING",
        (card_id, label_id, now_iso()),
    )
    return cursor.rowcount > 0


def labels_for_cards(conn, card_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
    result: Dict[int, List[Dict[str, Any]]] = {card_id: [] for card_id in card_ids}
    if not card_ids:
        return result
    placeholders = ", ".join("?" for _ in card_ids)
    rows = conn.execute(
        f"SELECT cl.card_id, l.id, l.name, l.type, l.color, l.description "
        f"FROM card_labels cl JOIN labels l ON l.id = cl.label_id "
        f"WHERE cl.card_id IN ({placeholders}) ORDER BY l.type, l.name",
        tuple(card_ids),
    ).fetchall()
    for row in rows:
        item = dict(row)
        result[item.pop("card_id")].append(item)
    return result


def _owned_card_exists(conn, card_id: int, user_id: int) -> bool:
    row = conn.execute("SELECT id FROM cards WHERE id = ? AND user_id = ?", (card_id, user_id)).fetchone()
    return row is not None


def _user_labels(conn, user_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"SELECT {LABEL_COLUMNS}, COUNT(c.id) AS card_count FROM labels l "
        f"LEFT JOIN card_labels cl ON cl.label_id = l.id "
        f"LEFT JOIN cards c ON c.id = cl.card_id AND c.user_id = ? "
        f"WHERE l.type = 'system' OR l.user_id = ? "
        f"GROUP BY {LABEL_COLUMNS} "
        f"ORDER BY l.type, l.name",
        (user_id, user_id),
    ).fetchall()
    return [dict(r) for r in rows]


def _get_editable_label(conn, label_id: int, user_id: int) -> Dict[str, Any]:
    row = conn.execute(f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.id = ?", (label_id,)).fetchone()
    if not row:
        raise HTTPException(404, "Label not found")
    if row["type"] == "system":
        raise HTTPException(403, "System labels cannot be modified")
    if row["user_id"] != user_id:
        raise HTTPException(404, "Label not found")
    return dict(row)


def _name_taken(conn, name: str, user_id: int, exclude_id: Optional[int] = None) -> bool:
    row = conn.execute(
        "SELECT id FROM labels WHERE LOWER(name) = LOWER(?) AND (type = 'system' OR user_id = ?) AND id != ?",
        (name, user_id, exclude_id or 0),
    ).fetchone()
    return row is not None


# --- Routes ---

@router.get("/api/srs/labels", tags=["Labels"], summary="List system labels and the user's labels")
async def list_labels(user=Depends(require_user)):
    conn = get_db()
    try:
        return {"labels": _user_labels(conn, user["id"])}
    finally:
        conn.close()


@router.get("/api/srs/labels/system", tags=["Labels"], summary="List system labels")
async def list_system_labels(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.type = 'system' ORDER BY l.name"
        ).fetchall()
        return {"labels": [dict(r) for r in rows]}
    finally:
        conn.close()


@router.get("/api/srs/labels/system/status", tags=["Labels"], summary="Check that system labels exist")
async def system_labels_status(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute("SELECT name FROM labels WHERE type = 'system'").fetchall()
    finally:
        conn.close()
    present = sorted(r["name"] for r in rows)
    missing = sorted(set(SYSTEM_LABELS) - set(present))
    return {"initialized": not missing, "expected": sorted(SYSTEM_LABELS), "present": present, "missing": missing}


@router.post("/api/srs/labels", status_code=201, tags=["Labels"], summary="Create a user label")
async def create_label(req: LabelCreateRequest, user=Depends(require_user)):
    name = req.name.strip()
    if not name:
        raise HTTPException(400, "name is required")
    conn = get_db()
    try:
        if _name_taken(conn, name, user["id"]):
            raise HTTPException(409, "A label with this name already exists")
        now = now_iso()
        try:
            label_id = insert_returning_id(
                conn,
                "INSERT INTO labels (name, type, user_id, color, description, created_at, updated_at) "
                "VALUES (?, 'user', ?, ?, ?, ?, ?)",
                (name, user["id"], req.color or DEFAULT_LABEL_COLOR, req.description or "", now, now),
            )
            conn.commit()
        except db.INTEGRITY_ERRORS:
            conn.rollback()
            raise HTTPException(409, "A label with this name already exists")
        row = conn.execute(f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.id = ?", (label_id,)).fetchone()
    finally:
        conn.close()
    logger.info("Label created", extra={"component": "labels", "user_id": user["id"], "label_id": label_id})
    return {"label": dict(row)}


@router.put("/api/srs/labels/{label_id}", tags=["Labels"], summary="Update a user label")
async def update_label(label_id: int, req: LabelUpdateRequest, user=Depends(require_user)):
    conn = get_db()
    try:
        label = _get_editable_label(conn, label_id, user["id"])
        name = label["name"] if req.name is None else req.name.strip()
        if not name:
            raise HTTPException(400, "name is required")
        if name.lower() != label["name"].lower() and _name_taken(conn, name, user["id"], exclude_id=label_id):
            raise HTTPException(409, "A label with this name already exists")
        conn.execute(
            "UPDATE labels SET name = ?, color = ?, description = ?, updated_at = ? WHERE id = ?",
            (
                name,
                label["color"] if req.color is None else req.color,
                label["description"] if req.description is None else req.description,
                now_iso(),
                label_id,
            ),
        )
        conn.commit()
        row = conn.execute(f"SELECT {LABEL_COLUMNS} FROM labels l WHERE l.id = ?", (label_id,)).fetchone()
        return {"label": dict(row)}
    finally:
        conn.close()


@router.delete("/api/srs/labels/{label_id}", tags=["Labels"], summary="Delete a user label")
async def delete_label(label_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        _get_editable_label(conn, label_id, user["id"])
        conn.execute("DELETE FROM labels WHERE id = ?", (label_id,))
        conn.commit()
    finally:
        conn.close()
    logger.info("Label deleted", extra={"component": "labels", "user_id": user["id"], "label_id": label_id})
    return {"ok": True}


@router.get("/api/srs/cards/{card_id}/labels", tags=["Labels"], summary="List labels on a card")
async def get_card_labels(card_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        if not _owned_card_exists(conn, card_id, user["id"]):
            raise HTTPException(404, "Card not found")
        return {"labels": labels_for_cards(conn, [card_id])[card_id]}
    finally:
        conn.close()


@router.post("/api/srs/cards/{card_id}/labels", tags=["Labels"], summary="Attach a label to a card")
async def add_card_label(card_id: int, req: CardLabelRequest, user=Depends(require_user)):
    conn = get_db()
    try:
        if not _owned_card_exists(conn, card_id, user["id"]):
            raise HTTPException(404, "Card not found")
        if not get_accessible_label(conn, req.label_id, user["id"]):
            raise HTTPException(404, "Label not found")
        added = attach_label(conn, card_id, req.label_id)
        conn.commit()
        return {"ok": True, "added": added, "labels": labels_for_cards(conn, [card_id])[card_id]}
    finally:
        conn.close()


@router.delete("/api/srs/cards/{card_id}/labels/{label_id}", tags=["Labels"], summary="Detach a label from a card")
async def remove_card_label(card_id: int, label_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        if not _owned_card_exists(conn, card_id, user["id"]):
            raise HTTPException(404, "Card not found")
        cursor = conn.execute("DELETE FROM card_labels WHERE card_id = ? AND label_id = ?", (card_id, label_id))
        conn.commit()
        return {"ok": True, "removed": cursor.rowcount > 0}
    finally:
        conn.close()
