"""LLM-backed routes: translation, sentence analysis, and DeepChat."""
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from auth import enforce_rate_limit, require_user
from cache import cache_get, cache_key, cache_put
from db import get_db, now_iso
from llm import (
    OLLAMA_MODEL, LLMUnavailable,
    ollama_chat, list_models, parse_json_object, parse_bool, sentence_hash,
    translate_word_prompt, translate_prompt, analyze_sentence_prompt, build_sentence_analysis,
    chat_system_prompt,
)
from log import get_logger
from models import (
    CHAT_ROLES, MAX_INPUT_LEN,
    TranslateWordRequest, TranslateRequest, AnalyzeSentenceRequest, SaveAnalysisRequest, ChatRequest,
)
from template_routes import get_user_template
from variable_routes import get_variable_value

logger = get_logger("deepremember.analysis")

router = APIRouter(prefix="/api", tags=["LLM"])

NO_TRANSLATION = "No translation found."


def _check_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise HTTPException(400, f"{field} is required")
    if len(text) > MAX_INPUT_LEN:
        raise HTTPException(400, f"Input too long (max {MAX_INPUT_LEN} characters)")
    return text


async def _ask_llm(messages: list, **kwargs) -> str:
    """Run a chat completion, mapping failures to HTTP errors."""
    model = get_variable_value("llm_model") or OLLAMA_MODEL
    try:
        text = await ollama_chat(messages, model=model, **kwargs)
    except LLMUnavailable:
        raise HTTPException(503, "LLM service unavailable")
    if text is None:
        raise HTTPException(502, "LLM API error")
    return text


@router.post("/translate-word", summary="Translate a word with sample sentences")
async def translate_word(request: Request, req: TranslateWordRequest, user=Depends(require_user)):
    word = _check_text(req.word, "word")
    key = cache_key("translate-word", word)
    cached = cache_get(key)
    if cached is not None:
        return {**cached, "cached": True}

    enforce_rate_limit(request, user)
    text = await _ask_llm(translate_word_prompt(word), num_predict=512)
    parsed = parse_json_object(text) or {}
    samples = parsed.get("sampleSentences") or parsed.get("sampleSentencesOfThisWord") or []
    if isinstance(samples, str):
        samples = [samples]
    result = {
        "translation": parsed.get("translation") or NO_TRANSLATION,
        "phrase": word,
        "sampleSentences": [str(s) for s in samples],
        "sampleSentence": "\n".join(str(s) for s in samples),
        "isWord": parse_bool(parsed["isWord"]) if "isWord" in parsed else True,
    }
    if parsed.get("translation"):
        cache_put(key, result)
    return {**result, "cached": False}


@router.post("/translate", summary="Translate a word or a sentence")
async def translate(request: Request, req: TranslateRequest, user=Depends(require_user)):
    text = _check_text(req.text, "text")
    if req.type not in ("word", "sentence"):
        raise HTTPException(400, "type must be word or sentence")
    key = cache_key(f"translate-{req.type}", text)
    cached = cache_get(key)
    if cached is not None:
        return {**cached, "cached": True}

    enforce_rate_limit(request, user)
    reply = await _ask_llm(translate_prompt(text, req.type), num_predict=256)
    parsed = parse_json_object(reply) or {}
    result = {"translation": parsed.get("translation") or NO_TRANSLATION, "type": req.type}
    if parsed.get("translation"):
        cache_put(key, result)
    return {**result, "cached": False}


@router.post("/analyze-sentence", summary="Grammar analysis of a sentence")
async def analyze_sentence(request: Request, req: AnalyzeSentenceRequest, user=Depends(require_user)):
    sentence = _check_text(req.sentence, "sentence")
    digest = sentence_hash(sentence, req.word)

    if not req.refresh:
        conn = get_db()
        try:
            row = conn.execute(
                "SELECT analysis_data FROM sentence_analysis_cache WHERE hash = ?", (digest,)
            ).fetchone()
        finally:
            conn.close()
        if row:
            try:
                return {"analysis": json.loads(row["analysis_data"]), "cached": True, "hash": digest}
            except ValueError:
                logger.warning("Discarding unreadable cached analysis", extra={"component": "analysis"})

    enforce_rate_limit(request, user)
    text = await _ask_llm(analyze_sentence_prompt(sentence, req.word), num_predict=1024)
    # Analyses are stored only when the user saves them
    return {"analysis": build_sentence_analysis(text), "cached": False, "hash": digest}


@router.post("/save-sentence-analysis", summary="Store a sentence analysis for reuse")
async def save_sentence_analysis(req: SaveAnalysisRequest, user=Depends(require_user)):
    sentence = _check_text(req.sentence, "sentence")
    if not req.analysis:
        raise HTTPException(400, "sentence and analysis are required")
    digest = sentence_hash(sentence, req.word)
    conn = get_db()
    try:
        conn.execute(
            "INSERT INTO sentence_analysis_cache (hash, analysis_data, created_at) VALUES (?, ?, ?) "
            "ON CONFLICT (hash) DO UPDATE SET analysis_data = excluded.analysis_data, created_at = excluded.created_at",
            (digest, json.dumps(req.analysis, ensure_ascii=False), now_iso()),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Sentence analysis saved", extra={"component": "analysis", "user_id": user["id"]})
    return {"ok": True, "hash": digest}


@router.post("/chat", summary="Talk to the DeepChat assistant")
async def chat(request: Request, req: ChatRequest, user=Depends(require_user)):
    if not req.messages:
        raise HTTPException(400, "Messages array is required")
    for message in req.messages:
        if message.role not in CHAT_ROLES:
            raise HTTPException(400, "Message role must be user or assistant")
        if not message.content.strip():
            raise HTTPException(400, "Message content must not be empty")

    template = None
    if req.template_id is not None:
        conn = get_db()
        try:
            template = get_user_template(conn, req.template_id, user["id"])
        finally:
            conn.close()
        if not template:
            raise HTTPException(404, "Template not found")

    enforce_rate_limit(request, user)
    messages = [{"role": "system", "content": chat_system_prompt(template)}]
    messages += [{"role": m.role, "content": m.content} for m in req.messages]
    text = await _ask_llm(messages, temperature=0.7, num_predict=1024)
    logger.info("Chat reply sent", extra={"component": "chat", "user_id": user["id"], "count": len(req.messages)})
    return {"response": text.strip()}


@router.get("/llm/models", summary="Models available on the LLM server")
async def llm_models(user=Depends(require_user)):
    try:
        models = await list_models()
    except LLMUnavailable:
        raise HTTPException(503, "LLM service unavailable")
    return {"models": models, "default": get_variable_value("llm_model") or OLLAMA_MODEL}
