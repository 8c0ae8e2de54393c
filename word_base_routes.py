"""Word base: a shared dictionary of words grouped by alphabet letter and word type.

Any logged-in user can browse it; only admins add, change, or remove entries.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import db
from auth import require_admin, require_user
from db import LIKE_ESCAPE, get_db, insert_returning_id, like_escape, now_iso
from log import get_logger
from models import WordBaseBulkRequest, WordBaseRequest

logger = get_logger("deepremember.wordbase")

router = APIRouter(prefix="/api/word-base", tags=["Word base"])

WORD_COLUMNS = (
    "id, word, translate, sample_sentence, group_alphabet_name, type_of_word, "
    "plural_sign, article, female_form, meaning, more_info, created_at, updated_at"
)
OPTIONAL_FIELDS = ("translate", "sample_sentence", "plural_sign", "article", "female_form", "meaning", "more_info")


def word_out(row) -> Dict[str, Any]:
    item = dict(row)
    item["groupAlphabetName"] = item.pop("group_alphabet_name")
    return item


def _required(req: WordBaseRequest) -> Optional[str]:
    """Name of the first missing required field, if any."""
    for name in ("word", "groupAlphabetName", "type_of_word"):
        value = getattr(req, name)
        if value is None or not value.strip():
            return name
    return None


def _row_values(req: WordBaseRequest) -> tuple:
    return (
        req.word.strip(), req.groupAlphabetName.strip(), req.type_of_word.strip(),
        *(getattr(req, name) for name in OPTIONAL_FIELDS),
    )


def _insert(conn, req: WordBaseRequest) -> int:
    now = now_iso()
    return insert_returning_id(
        conn,
        "INSERT INTO word_base (word, group_alphabet_name, type_of_word, translate, sample_sentence, "
        "plural_sign, article, female_form, meaning, more_info, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        _row_values(req) + (now, now),
    )


def _get_word(conn, word_id: int):
    row = conn.execute(f"SELECT {WORD_COLUMNS} FROM word_base WHERE id = ?", (word_id,)).fetchone()
    if not row:
        raise HTTPException(404, "Word not found")
    return row


def _select(where: str = "", params: tuple = (), suffix: str = "", suffix_params: tuple = ()):
    conn = get_db()
    try:
        rows = conn.execute(
            f"SELECT {WORD_COLUMNS} FROM word_base {where} ORDER BY word ASC, id ASC {suffix}",
            params + suffix_params,
        ).fetchall()
    finally:
        conn.close()
    words = [word_out(r) for r in rows]
    return {"words": words, "count": len(words)}


def _search_pattern(term: str) -> str:
    return f"%{like_escape(term.strip().lower())}%"


@router.get("", summary="List dictionary words")
async def list_words(
    groupAlphabetName: Optional[str] = None,
    group_alphabet_name: Optional[str] = None,
    type_of_word: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(1000, ge=1, le=10000),
    offset: int = Query(0, ge=0),
    user=Depends(require_user),
):
    conditions = []
    params: list = []
    group = groupAlphabetName or group_alphabet_name
    if group:
        conditions.append("group_alphabet_name = ?")
        params.append(group)
    if type_of_word:
        conditions.append("type_of_word = ?")
        params.append(type_of_word)
    if search and search.strip():
        conditions.append(f"LOWER(word) LIKE ? {LIKE_ESCAPE}")
        params.append(_search_pattern(search))
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return _select(where, tuple(params), "LIMIT ? OFFSET ?", (limit, offset))


@router.get("/count/total", summary="Number of dictionary words")
async def count_words(user=Depends(require_user)):
    conn = get_db()
    try:
        count = conn.execute("SELECT COUNT(*) AS count FROM word_base").fetchone()["count"]
    finally:
        conn.close()
    return {"count": count}


@router.get("/group/{group_name}", summary="Words in one alphabet group")
async def words_by_group(group_name: str, user=Depends(require_user)):
    return _select("WHERE group_alphabet_name = ?", (group_name,))


@router.get("/type/{type_name}", summary="Words of one type")
async def words_by_type(type_name: str, user=Depends(require_user)):
    return _select("WHERE type_of_word = ?", (type_name,))


@router.get("/search/{term}", summary="Words containing a term")
async def search_words(term: str, user=Depends(require_user)):
    if not term.strip():
        return {"words": [], "count": 0}
    return _select(f"WHERE LOWER(word) LIKE ? {LIKE_ESCAPE}", (_search_pattern(term),))


@router.get("/{word_id}", summary="Get one dictionary word")
async def get_word(word_id: int, user=Depends(require_user)):
    conn = get_db()
    try:
        return {"word": word_out(_get_word(conn, word_id))}
    finally:
        conn.close()


@router.post("", status_code=201, summary="Add a dictionary word")
async def create_word(req: WordBaseRequest, admin=Depends(require_admin)):
    if _required(req):
        raise HTTPException(400, "word, groupAlphabetName and type_of_word are required")
    conn = get_db()
    try:
        word_id = _insert(conn, req)
        conn.commit()
        row = _get_word(conn, word_id)
    finally:
        conn.close()
    logger.info("Word base entry created", extra={"component": "wordbase", "user_id": admin["id"], "detail": req.word})
    return {"word": word_out(row)}


@router.post("/bulk", status_code=201, summary="Add many dictionary words")
async def bulk_create_words(req: WordBaseBulkRequest, admin=Depends(require_admin)):
    if not req.words:
        raise HTTPException(400, "words must be a non-empty array")
    for index, item in enumerate(req.words):
        missing = _required(item)
        if missing:
            raise HTTPException(400, f"Word at index {index} is missing {missing}")

    inserted = 0
    conn = get_db()
    try:
        for item in req.words:
            try:
                _insert(conn, item)
                conn.commit()
                inserted += 1
            except db.INTEGRITY_ERRORS as e:
                conn.rollback()
                logger.warning("Word base row skipped", extra={
                    "component": "wordbase", "detail": f"{item.word}: {e}",
                })
    finally:
        conn.close()
    logger.info("Word base bulk insert", extra={
        "component": "wordbase", "user_id": admin["id"], "count": inserted, "detail": f"{len(req.words)} submitted",
    })
    return {"insertedCount": inserted, "total": len(req.words)}


@router.put("/{word_id}", summary="Replace a dictionary word")
async def update_word(word_id: int, req: WordBaseRequest, admin=Depends(require_admin)):
    conn = get_db()
    try:
        _get_word(conn, word_id)
        if _required(req):
            raise HTTPException(400, "word, groupAlphabetName and type_of_word are required")
        conn.execute(
            "UPDATE word_base SET word = ?, group_alphabet_name = ?, type_of_word = ?, translate = ?, "
            "sample_sentence = ?, plural_sign = ?, article = ?, female_form = ?, meaning = ?, more_info = ?, "
            "updated_at = ? WHERE id = ?",
            _row_values(req) + (now_iso(), word_id),
        )
        conn.commit()
        return {"word": word_out(_get_word(conn, word_id))}
    finally:
        conn.close()


@router.delete("/{word_id}", summary="Delete a dictionary word")
async def delete_word(word_id: int, admin=Depends(require_admin)):
    conn = get_db()
    try:
        cursor = conn.execute("DELETE FROM word_base WHERE id = ?", (word_id,))
        conn.commit()
        deleted = cursor.rowcount
    finally:
        conn.close()
    if deleted == 0:
        raise HTTPException(404, "Word not found")
    logger.info("Word base entry deleted", extra={"component": "wordbase", "user_id": admin["id"], "detail": str(word_id)})
    return {"ok": True}
