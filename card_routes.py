"""SRS card routes: create, list, edit, review and search flashcards."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import scheduler
from auth import require_user
from db import LIKE_ESCAPE, get_db, insert_returning_id, like_escape, now_iso, now_utc, to_iso
from label_routes import attach_label, get_accessible_label, get_system_label, labels_for_cards
from log import get_logger
from models import CARD_ORDER_FIELDS, SYSTEM_LABELS, AnswerRequest, CardCreateRequest, CardUpdateRequest

logger = get_logger("deepremember.cards")

router = APIRouter()

CARD_COLUMNS = (
    "c.id, c.word, c.translation, c.context, c.state, c.due, c.stability, c.difficulty, "
    "c.elapsed_days, c.scheduled_days, c.reps, c.lapses, c.last_review, c.created_at, c.updated_at"
)


def card_out(row, labels: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    card = dict(row)
    card["labels"] = labels or []
    return card


def cards_out(conn, rows) -> List[Dict[str, Any]]:
    rows = [dict(r) for r in rows]
    labels = labels_for_cards(conn, [r["id"] for r in rows])
    return [card_out(r, labels[r["id"]]) for r in rows]


def _get_owned_card(conn, card_id: int, user_id: int) -> Dict[str, Any]:
    row = conn.execute(
        f"SELECT {CARD_COLUMNS} FROM cards c WHERE c.id = ? AND c.user_id = ?", (card_id, user_id)
    ).fetchone()
    if not row:
        raise HTTPException(404, "Card not found")
    return card_out(row, labels_for_cards(conn, [card_id])[card_id])


def _is_duplicate(conn, user_id: int, word: str, translation: str, exclude_id: Optional[int] = None) -> bool:
    row = conn.execute(
        "SELECT id FROM cards WHERE user_id = ? AND LOWER(TRIM(word)) = LOWER(TRIM(?)) "
        "AND LOWER(TRIM(translation)) = LOWER(TRIM(?)) AND id != ?",
        (user_id, word, translation, exclude_id or 0),
    ).fetchone()
    return row is not None


@router.post("/api/srs/cards", status_code=201, tags=["Cards"], summary="Create a flashcard")
async def create_card(req: CardCreateRequest, user=Depends(require_user)):
    word = (req.word or "").strip()
    if not word:
        raise HTTPException(400, "word is required")
    translation = (req.translation or "").strip()
    context = (req.context or "").strip()
    if req.type is not None and req.type not in SYSTEM_LABELS:
        raise HTTPException(400, f"type must be one of: {', '.join(sorted(SYSTEM_LABELS))}")

    conn = get_db()
    try:
        if _is_duplicate(conn, user["id"], word, translation):
            raise HTTPException(409, "A card with this word and translation already exists")
        now = now_iso()
        card_id = insert_returning_id(
            conn,
            "INSERT INTO cards (user_id, word, translation, context, state, due, stability, difficulty, "
            "elapsed_days, scheduled_days, reps, lapses, last_review, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, 0, 0, 0, 0, 0, 0, NULL, ?, ?)",
            (user["id"], word, translation, context, int(scheduler.State.NEW), now, now, now),
        )

        labels_added: List[int] = []
        labels_failed: List[Dict[str, Any]] = []
        if req.type:
            system_label = get_system_label(conn, req.type)
            if system_label:
                attach_label(conn, card_id, system_label["id"])
                labels_added.append(system_label["id"])
            else:
                labels_failed.append({"label": req.type, "error": "System label not initialized"})
        for label_id in dict.fromkeys(req.labels):
            if label_id in labels_added:
                continue
            if get_accessible_label(conn, label_id, user["id"]):
                attach_label(conn, card_id, label_id)
                labels_added.append(label_id)
            else:
                labels_failed.append({"label_id": label_id, "error": "Label not found"})
        conn.commit()
        card = _get_owned_card(conn, card_id, user["id"])
    finally:
        conn.close()

    logger.info("Card created", extra={
        "component": "cards", "user_id": user["id"], "card_id": card_id, "count": len(labels_added),
    })
    return {"card": card, "labelsAdded": labels_added, "labelsFailed": labels_failed}


@router.get("/api/srs/cards", tags=["Cards"], summary="List the user's cards")
async def list_cards(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    order_by: str = "created_at",
    order_dir: str = "desc",
    search: Optional[str] = None,
    user=Depends(require_user),
):
    if order_by not in CARD_ORDER_FIELDS:
        raise HTTPException(400, f"order_by must be one of: {', '.join(sorted(CARD_ORDER_FIELDS))}")
    if order_dir.lower() not in ("asc", "desc"):
        raise HTTPException(400, "order_dir must be asc or desc")

    where = "c.user_id = ?"
    params: list = [user["id"]]
    if search and search.strip():
        pattern = f"%{like_escape(search.strip().lower())}%"
        where += (
            f" AND (LOWER(c.word) LIKE ? {LIKE_ESCAPE} OR LOWER(c.translation) LIKE ? {LIKE_ESCAPE} "
            f"OR LOWER(c.context) LIKE ? {LIKE_ESCAPE})"
        )
        params += [pattern, pattern, pattern]

    conn = get_db()
    try:
        total = conn.execute(f"SELECT COUNT(*) AS count FROM cards c WHERE {where}", tuple(params)).fetchone()["count"]
        rows = conn.execute(
            f"SELECT {CARD_COLUMNS} FROM cards c WHERE {where} "
            f"ORDER BY c.{order_by} {order_dir.upper()}, c.id {order_dir.upper()} LIMIT ? OFFSET ?",
            tuple(params + [limit, offset]),
        ).fetchall()
        return {"cards": cards_out(conn, rows), "total": total, "limit": limit, "offset": offset}
    finally:
        conn.close()


@router.get("/api/srs/cards/{card_id}", tags=["Cards"], summary="Get one card")
async def get_card(card_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        return {"card": _get_owned_card(conn, card_id, user["id"])}
    finally:
        conn.close()


@router.put("/api/srs/cards/{card_id}", tags=["Cards"], summary="Edit a card's text")
async def update_card(card_id: int, req: CardUpdateRequest, user=Depends(require_user)):
    word = (req.word or "").strip()
    if not word:
        raise HTTPException(400, "word is required")
    conn = get_db()
    try:
        card = _get_owned_card(conn, card_id, user["id"])
        translation = card["translation"] if req.translation is None else req.translation.strip()
        context = card["context"] if req.context is None else req.context.strip()
        if _is_duplicate(conn, user["id"], word, translation, exclude_id=card_id):
            raise HTTPException(409, "A card with this word and translation already exists")
        conn.execute(
            "UPDATE cards SET word = ?, translation = ?, context = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (word, translation, context, now_iso(), card_id, user["id"]),
        )
        conn.commit()
        return {"card": _get_owned_card(conn, card_id, user["id"])}
    finally:
        conn.close()


@router.delete("/api/srs/cards/{card_id}", tags=["Cards"], summary="Delete a card")
async def delete_card(card_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM cards WHERE id = ? AND user_id = ?", (card_id, user["id"]))
        conn.commit()
        if cursor.rowcount == 0:
            raise HTTPException(404, "Card not found")
    finally:
        conn.close()
    logger.info("Card deleted", extra={"component": "cards", "user_id": user["id"], "card_id": card_id})
    return {"ok": True}


@router.get("/api/srs/review-cards", tags=["Cards"], summary="Cards due for review")
async def review_cards(
    label_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    user=Depends(require_user),
):
    join = ""
    params: list = []
    if label_id is not None:
        join = "JOIN card_labels cl ON cl.card_id = c.id AND cl.label_id = ? "
        params.append(label_id)
    params.append(user["id"])

    conn = get_db()
    try:
        if label_id is not None and not get_accessible_label(conn, label_id, user["id"]):
            raise HTTPException(404, "Label not found")
        total = conn.execute(
            f"SELECT COUNT(*) AS count FROM cards c {join}WHERE c.user_id = ?", tuple(params)
        ).fetchone()["count"]
        now = now_iso()
        due = conn.execute(
            f"SELECT COUNT(*) AS count FROM cards c {join}WHERE c.user_id = ? AND c.due <= ?", tuple(params + [now])
        ).fetchone()["count"]
        rows = conn.execute(
            f"SELECT {CARD_COLUMNS} FROM cards c {join}WHERE c.user_id = ? AND c.due <= ? "
            f"ORDER BY c.due ASC, c.id ASC LIMIT ?",
            tuple(params + [now, limit]),
        ).fetchall()
        return {"cards": cards_out(conn, rows), "total": total, "due": due}
    finally:
        conn.close()


@router.post("/api/srs/cards/{card_id}/answer", tags=["Cards"], summary="Record a review rating")
async def answer_card(card_id: int, req: AnswerRequest, user=Depends(require_user)):
    try:
        rating = scheduler.parse_rating(req.rating)
    except ValueError:
        raise HTTPException(400, "rating must be 1 (Again), 2 (Hard), 3 (Good) or 4 (Easy)")

    conn = get_db()
    try:
        card = _get_owned_card(conn, card_id, user["id"])
        updated = scheduler.schedule(card, rating, now_utc())
        conn.execute(
            "UPDATE cards SET state = ?, due = ?, stability = ?, difficulty = ?, elapsed_days = ?, "
            "scheduled_days = ?, reps = ?, lapses = ?, last_review = ?, updated_at = ? "
            "WHERE id = ? AND user_id = ?",
            (
                updated["state"], to_iso(updated["due"]), updated["stability"], updated["difficulty"],
                updated["elapsed_days"], updated["scheduled_days"], updated["reps"], updated["lapses"],
                to_iso(updated["last_review"]), now_iso(), card_id, user["id"],
            ),
        )
        conn.commit()
        card = _get_owned_card(conn, card_id, user["id"])
    finally:
        conn.close()

    logger.info("Card answered", extra={"component": "cards", "user_id": user["id"], "card_id": card_id})
    return {
        "card": card,
        "result": {
            "state": card["state"],
            "due": card["due"],
            "rating": int(rating),
            "scheduled_days": card["scheduled_days"],
        },
    }


@router.get("/api/srs/search", tags=["Cards"], summary="Find cards similar to a query")
async def search_cards(q: str = "", user=Depends(require_user)):
    query = q.strip().lower()
    if not query:
        return {"cards": [], "query": q}
    term = like_escape(query)
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {CARD_COLUMNS} FROM cards c "
            f"WHERE c.user_id = ? AND (LOWER(c.word) LIKE ? {LIKE_ESCAPE} OR LOWER(c.translation) LIKE ? {LIKE_ESCAPE}) "
            f"ORDER BY CASE "
            f"WHEN LOWER(c.word) = ? THEN 0 "
            f"WHEN LOWER(c.word) LIKE ? {LIKE_ESCAPE} THEN 1 "
            f"WHEN LOWER(c.translation) LIKE ? {LIKE_ESCAPE} THEN 2 "
            f"ELSE 3 END, c.word ASC LIMIT 10",
            (user["id"], f"%{term}%", f"%{term}%", query, f"{term}%", f"{term}%"),
        ).fetchall()
        return {"cards": cards_out(conn, rows), "query": q}
    finally:
        conn.close()


@router.get("/api/srs/labels/{label_id}/cards", tags=["Labels"], summary="Cards carrying a label")
async def cards_for_label(label_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        label = get_accessible_label(conn, label_id, user["id"])
        if not label:
            raise HTTPException(404, "Label not found")
        rows = conn.execute(
            f"SELECT {CARD_COLUMNS} FROM cards c JOIN card_labels cl ON cl.card_id = c.id "
            f"WHERE cl.label_id = ? AND c.user_id = ? ORDER BY c.created_at DESC, c.id DESC",
            (label_id, user["id"]),
        ).fetchall()
        return {"label": label, "cards": cards_out(conn, rows)}
    finally:
        conn.close()
