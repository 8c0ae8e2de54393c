"""Aggregate SRS stats endpoint."""
from fastapi import APIRouter, Depends

from auth import require_user
from db import get_db, now_iso
from scheduler import State

router = APIRouter(prefix="/api/srs", tags=["Stats"])


@router.get("/stats")
async def get_stats(user=Depends(require_user)):
    """Card totals by state, due count, and card counts per label."""
    conn = get_db()
    try:
        rows = conn.execute(
            "SELECT state, COUNT(*) AS count FROM cards WHERE user_id = ? GROUP BY state", (user["id"],)
        ).fetchall()
        by_state = {row["state"]: row["count"] for row in rows}
        due = conn.execute(
            "SELECT COUNT(*) AS count FROM cards WHERE user_id = ? AND due <= ?", (user["id"], now_iso())
        ).fetchone()["count"]
        label_rows = conn.execute(
            "SELECT l.id, l.name, l.type, l.color, COUNT(c.id) AS count FROM labels l "
            "LEFT JOIN card_labels cl ON cl.label_id = l.id "
            "LEFT JOIN cards c ON c.id = cl.card_id AND c.user_id = ? "
            "WHERE l.type = 'system' OR l.user_id = ? "
            "GROUP BY l.id, l.name, l.type, l.color ORDER BY l.type, l.name",
            (user["id"], user["id"]),
        ).fetchall()
    finally:
        conn.close()

    return {
        "totalCards": sum(by_state.values()),
        "dueCards": due,
        "newCards": by_state.get(int(State.NEW), 0),
        "learningCards": by_state.get(int(State.LEARNING), 0),
        "reviewCards": by_state.get(int(State.REVIEW), 0),
        "relearningCards": by_state.get(int(State.RELEARNING), 0),
        "labelCounts": [dict(r) for r in label_rows],
    }
