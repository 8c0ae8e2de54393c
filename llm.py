"""LLM interaction (Ollama), prompt building, and response post-processing."""
import json
import hashlib
import re as _re
import time
from typing import Optional, List

import httpx

import config
from log import get_logger
from models import DEFAULT_SENTENCE_ANALYSIS

logger = get_logger("deepremember.llm")

# --- Config ---
OLLAMA_URL = config.OLLAMA_URL
OLLAMA_MODEL = config.OLLAMA_MODEL
OLLAMA_TIMEOUT = config.OLLAMA_TIMEOUT
LEARNING_LANGUAGE = config.LEARNING_LANGUAGE
NATIVE_LANGUAGE = config.NATIVE_LANGUAGE


class LLMUnavailable(Exception):
    """The Ollama server could not be reached."""


# --- Ollama client ---

async def ollama_chat(messages: list, model: str = None, temperature: float = 0.3,
                      num_predict: int = 2048, timeout: int = None) -> Optional[str]:
    """Call Ollama chat API and return the content string.

    Returns None on a non-200 response; raises LLMUnavailable when the server
    cannot be reached.
    """
    if model is None:
        model = OLLAMA_MODEL
    start = time.time()
    try:
        async with httpx.AsyncClient(timeout=timeout or OLLAMA_TIMEOUT) as client:
            resp = await client.post(
                f"{OLLAMA_URL}/api/chat",
                json={
                    "model": model,
                    "messages": messages,
                    "stream": False,
                    "options": {"temperature": temperature, "num_predict": num_predict},
                },
            )
    except httpx.HTTPError as e:
        logger.warning("Ollama request failed", extra={"component": "ollama", "model": model, "detail": str(e)})
        raise LLMUnavailable(str(e)) from e
    duration_ms = round((time.time() - start) * 1000)
    if resp.status_code != 200:
        logger.warning("Ollama returned an error", extra={
            "component": "ollama", "model": model, "status_code": resp.status_code, "duration_ms": duration_ms,
        })
        return None
    try:
        message = resp.json().get("message")
    except (ValueError, AttributeError):
        message = None
    if not isinstance(message, dict):
        logger.warning("Ollama reply has no message", extra={
            "component": "ollama", "model": model, "duration_ms": duration_ms, "detail": resp.text[:200],
        })
        return None
    logger.info("Ollama chat completed", extra={"component": "ollama", "model": model, "duration_ms": duration_ms})
    return message.get("content") or ""


async def list_models() -> List[dict]:
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(f"{OLLAMA_URL}/api/tags")
    except httpx.HTTPError as e:
        raise LLMUnavailable(str(e)) from e
    if resp.status_code != 200:
        return []
    try:
        models = resp.json().get("models") or []
    except (ValueError, AttributeError):
        return []
    return [
        {"name": m.get("name"), "size": m.get("size"), "modified_at": m.get("modified_at")}
        for m in models if isinstance(m, dict)
    ]


async def check_ollama_connectivity() -> bool:
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(f"{OLLAMA_URL}/api/tags")
            return resp.status_code == 200
    except httpx.HTTPError:
        logger.warning("Ollama not reachable", extra={"component": "ollama"})
        return False


# --- Parsing ---

def parse_json_object(text: Optional[str]) -> Optional[dict]:
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _re.search(r'\{.*\}', text, _re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def sentence_hash(sentence: str, word: Optional[str] = None) -> str:
    """Cache key for a sentence analysis: sha256 of the normalized pair."""
    raw = f"{sentence.lower().strip()}|{(word or '').lower().strip()}"
    return hashlib.sha256(raw.encode()).hexdigest()


# --- Prompts ---

def translate_word_prompt(word: str) -> list:
    prompt = (
        'Answer in this format {"translation":"string", "phrase":"phrase", "isWord":"boolean", '
        '"sampleSentences":["sentence01","sentence02","sentence03"]}. '
        f'What is the {NATIVE_LANGUAGE} translation of "{word}"? Make three simple sentences in '
        f'{LEARNING_LANGUAGE} with it. isWord is false when the input is a phrase or a sentence.'
    )
    return [
        {"role": "system", "content": f"{LEARNING_LANGUAGE} vocabulary teacher. JSON only."},
        {"role": "user", "content": prompt},
    ]


def translate_prompt(text: str, kind: str) -> list:
    if kind == "word":
        prompt = (f'Answer in this format {{"translation":"string", "word":"realWord"}}. '
                  f'What is the {NATIVE_LANGUAGE} translation of the word "{text}"?')
    else:
        prompt = (f'Answer in this format {{"translation":"string", "sentence":"realSentence"}}. '
                  f'What is the {NATIVE_LANGUAGE} translation of "{text}"?')
    return [
        {"role": "system", "content": "Translator. JSON only."},
        {"role": "user", "content": prompt},
    ]


def analyze_sentence_prompt(sentence: str, word: Optional[str] = None) -> list:
    focus = f' Pay special attention to the word "{word}".' if word else ""
    prompt = f"""Analyze and translate this {LEARNING_LANGUAGE} sentence: "{sentence}".{focus}

Provide the analysis in this exact JSON format:
{{
    "translation": "{NATIVE_LANGUAGE} translation of the sentence",
    "grammaticalStructure": {{
        "subject": "subject of the sentence",
        "verb": "main verb",
        "object": "object if present",
        "tense": "verb tense",
        "mood": "indicative/imperative/subjunctive",
        "sentenceType": "declarative/interrogative/imperative"
    }},
    "keyWords": ["important", "words", "in", "sentence"],
    "difficulty": "beginner/intermediate/advanced"
}}"""
    return [
        {"role": "system", "content": f"{LEARNING_LANGUAGE} grammar teacher. JSON only."},
        {"role": "user", "content": prompt},
    ]


def build_sentence_analysis(text: Optional[str]) -> dict:
    """Merge an LLM reply into the default analysis skeleton."""
    analysis = json.loads(json.dumps(DEFAULT_SENTENCE_ANALYSIS))
    parsed = parse_json_object(text)
    if parsed:
        for key in analysis:
            if parsed.get(key):
                analysis[key] = parsed[key]
    elif text and text.strip():
        analysis["translation"] = text.strip().split("\n")[0]
    return analysis


CHAT_SYSTEM_PROMPT = """You are DeepChat, an AI language learning assistant. Your role is to help users learn languages through conversation, vocabulary practice, grammar explanations, and contextual learning.

Guidelines:
- Be friendly, encouraging, and patient
- Provide clear explanations in simple language
- Use examples when explaining grammar or vocabulary
- If asked about vocabulary, provide translations, example sentences, and usage tips
- If asked about grammar, explain rules clearly with examples
- Keep responses concise but informative
- Use markdown formatting for better readability"""

_TEMPLATE_PROMPT_FIELDS = (
    ("thema", "Topic"),
    ("persons", "People in the conversation"),
    ("scenario", "Scenario"),
    ("questions_and_thema", "Questions to cover"),
    ("words_to_use", "Words to use"),
    ("words_not_to_use", "Words to avoid"),
    ("grammar_to_use", "Grammar to practice"),
    ("level", "Learner level (CEFR)"),
    ("communication_style", "Communication style"),
    ("learning_goal", "Learning goal"),
    ("ai_role", "Your role"),
)


def chat_system_prompt(template: Optional[dict] = None) -> str:
    if not template:
        return CHAT_SYSTEM_PROMPT
    lines = [CHAT_SYSTEM_PROMPT, "", f"Hold this conversation in {LEARNING_LANGUAGE}:"]
    for key, title in _TEMPLATE_PROMPT_FIELDS:
        if template.get(key):
            lines.append(f"- {title}: {template[key]}")
    rules = template.get("conversation_rules") or []
    if rules:
        lines.append("Conversation rules:")
        lines.extend(f"- {rule}" for rule in rules)
    return "\n".join(lines)
