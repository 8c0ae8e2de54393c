"""Study timers: how long a user spends on each activity."""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from auth import require_user
from db import get_db, insert_returning_id, now_utc, parse_iso, to_iso
from log import get_logger
from models import TimerStartRequest, TimerStopRequest

logger = get_logger("deepremember.timer")

router = APIRouter(prefix="/api/timer", tags=["Timer"])

SESSION_COLUMNS = "id, user_id, activity, start_datetime, end_datetime, length_seconds"


def get_active_session(conn, user_id: int, activity: Optional[str] = None):
    sql = f"SELECT {SESSION_COLUMNS} FROM spend_time WHERE user_id = ? AND end_datetime IS NULL"
    params: list = [user_id]
    if activity:
        sql += " AND activity = ?"
        params.append(activity)
    row = conn.execute(sql + " ORDER BY start_datetime DESC, id DESC LIMIT 1", tuple(params)).fetchone()
    return dict(row) if row else None


def _start_session(conn, user_id: int, activity: str) -> dict:
    session_id = insert_returning_id(
        conn,
        "INSERT INTO spend_time (user_id, activity, start_datetime, end_datetime, length_seconds) "
        "VALUES (?, ?, ?, NULL, 0)",
        (user_id, activity, to_iso(now_utc())),
    )
    conn.commit()
    row = conn.execute(f"SELECT {SESSION_COLUMNS} FROM spend_time WHERE id = ?", (session_id,)).fetchone()
    logger.info("Timer started", extra={"component": "timer", "user_id": user_id, "activity": activity})
    return dict(row)


def _close_session(user_id: int, req: TimerStopRequest) -> dict:
    if req.length_seconds < 0:
        raise HTTPException(400, "length_seconds must not be negative")
    conn = get_db()
    try:
        session = get_active_session(conn, user_id, req.activity)
        if not session:
            raise HTTPException(404, "No active session found")
        conn.execute(
            "UPDATE spend_time SET end_datetime = ?, length_seconds = ? WHERE id = ? AND user_id = ?",
            (to_iso(now_utc()), req.length_seconds, session["id"], user_id),
        )
        conn.commit()
        row = conn.execute(f"SELECT {SESSION_COLUMNS} FROM spend_time WHERE id = ?", (session["id"],)).fetchone()
    finally:
        conn.close()
    logger.info("Timer stopped", extra={
        "component": "timer", "user_id": user_id, "activity": session["activity"],
        "duration_ms": req.length_seconds * 1000,
    })
    return dict(row)


@router.post("/start", summary="Start a timer, or return the running one")
async def start_timer(req: Optional[TimerStartRequest] = None, user=Depends(require_user)):
    activity = (req.activity if req else "") or TimerStartRequest().activity
    conn = get_db()
    try:
        active = get_active_session(conn, user["id"], activity)
        if active:
            return {"session": active, "created": False}
        return {"session": _start_session(conn, user["id"], activity), "created": True}
    finally:
        conn.close()


@router.post("/pause", summary="Save the running timer")
async def pause_timer(req: TimerStopRequest, user=Depends(require_user)):
    return {"session": _close_session(user["id"], req)}


@router.post("/resume", summary="Start a fresh timer after a pause")
async def resume_timer(req: Optional[TimerStartRequest] = None, user=Depends(require_user)):
    activity = (req.activity if req else "") or TimerStartRequest().activity
    conn = get_db()
    try:
        return {"session": _start_session(conn, user["id"], activity), "created": True}
    finally:
        conn.close()


@router.post("/end", summary="Save and close the running timer")
async def end_timer(req: TimerStopRequest, user=Depends(require_user)):
    return {"session": _close_session(user["id"], req)}


@router.get("/today-total", summary="Seconds spent today")
async def today_total(activity: Optional[str] = None, user=Depends(require_user)):
    now = now_utc()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    sql = (
        "SELECT COALESCE(SUM(length_seconds), 0) AS total FROM spend_time "
        "WHERE user_id = ? AND start_datetime >= ? AND start_datetime < ? AND end_datetime IS NOT NULL"
    )
    params: list = [user["id"], to_iso(day_start), to_iso(day_end)]
    if activity:
        sql += " AND activity = ?"
        params.append(activity)

    conn = get_db()
    try:
        closed = int(conn.execute(sql, tuple(params)).fetchone()["total"])
        active = get_active_session(conn, user["id"], activity)
    finally:
        conn.close()

    running = 0
    if active:
        started = parse_iso(active["start_datetime"])
        if day_start <= started < day_end:
            running = max(0, int((now - started).total_seconds()))
    return {"totalSeconds": closed + running, "closedSeconds": closed, "activeSeconds": running}


@router.get("/active", summary="The running timer, if any")
async def active_timer(activity: Optional[str] = None, user=Depends(require_user)):
    conn = get_db()
    try:
        return {"session": get_active_session(conn, user["id"], activity)}
    finally:
        conn.close()


@router.get("/statistics", summary="Total time per activity")
async def timer_statistics(user=Depends(require_user)):
    conn = get_db()
    try:
        rows = conn.execute(
            "SELECT activity, COALESCE(SUM(length_seconds), 0) AS total_seconds, COUNT(*) AS session_count "
            "FROM spend_time WHERE user_id = ? AND end_datetime IS NOT NULL "
            "GROUP BY activity ORDER BY total_seconds DESC",
            (user["id"],),
        ).fetchall()
    finally:
        conn.close()
    activities = [
        {"activity": r["activity"], "total_seconds": int(r["total_seconds"]), "session_count": r["session_count"]}
        for r in rows
    ]
    return {"activities": activities, "totalSeconds": sum(a["total_seconds"] for a in activities)}
