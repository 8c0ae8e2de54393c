"""Pydantic schemas, constants, and typed-value helpers for DeepRemember."""
import json
import math
from typing import Any, List, Optional

from pydantic import BaseModel, Field

# --- Constants ---
SYSTEM_LABELS = {
    "word": {"color": "#3B82F6", "description": "Cards created from individual words"},
    "sentence": {"color": "#10B981", "description": "Cards created from sentences"},
}
DEFAULT_LABEL_COLOR = "#3B82F6"

CARD_ORDER_FIELDS = {"word", "created_at", "due", "state", "reps"}
TEMPLATE_LEVELS = {"A1", "A2", "B1", "B2"}
CONFIG_VALUE_TYPES = ("string", "number", "boolean", "json")
VARIABLE_TYPES = ("text", "json", "number")
CHAT_ROLES = {"user", "assistant"}
DEFAULT_ACTIVITY = "review_card"

MAX_INPUT_LEN = 2000


# --- Typed values (user configs and app variables) ---

def _parse_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("Value must be a valid number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("Value must be a valid number") from None
    if not math.isfinite(number):
        raise ValueError("Value must be a valid number")
    return int(number) if number.is_integer() else number


def _parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if str(value).strip().lower() in ("true", "1"):
        return True
    if str(value).strip().lower() in ("false", "0"):
        return False
    raise ValueError("Value must be true or false")


def _parse_json(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        raise ValueError("Value must be valid JSON") from None


def serialize_value(value_type: str, value: Any) -> str:
    """Validate `value` against `value_type` and return its stored text form.

    Raises ValueError with a user-facing message when the value does not fit.
    """
    if value is None:
        value = ""
    if value_type in ("string", "text"):
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    if value_type == "number":
        return str(_parse_number(value))
    if value_type == "boolean":
        return "true" if _parse_boolean(value) else "false"
    if value_type == "json":
        if isinstance(value, str):
            _parse_json(value)
            return value
        return json.dumps(value, ensure_ascii=False)
    raise ValueError(f"Unknown value type: {value_type}")


def parse_value(value_type: str, stored: Optional[str]) -> Any:
    """Stored text back to a Python value; falls back to the raw text."""
    try:
        if value_type == "number":
            return _parse_number(stored)
        if value_type == "boolean":
            return _parse_boolean(stored)
        if value_type == "json":
            return _parse_json(stored)
    except ValueError:
        return stored
    return stored


# --- Pydantic Models ---

class AuthRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class VerifyTokenRequest(BaseModel):
    token: str


class CardCreateRequest(BaseModel):
    word: Optional[str] = None
    translation: Optional[str] = None
    context: Optional[str] = None
    type: Optional[str] = None        # system label name: word | sentence
    labels: List[int] = Field(default_factory=list)


class CardUpdateRequest(BaseModel):
    word: Optional[str] = None
    translation: Optional[str] = None
    context: Optional[str] = None


class AnswerRequest(BaseModel):
    rating: Any = None


class LabelCreateRequest(BaseModel):
    name: str
    color: Optional[str] = None
    description: Optional[str] = None


class LabelUpdateRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None


class CardLabelRequest(BaseModel):
    label_id: int


class ChatTemplateRequest(BaseModel):
    thema: Optional[str] = None
    persons: Optional[str] = None
    scenario: Optional[str] = None
    questions_and_thema: Optional[str] = None
    words_to_use: Optional[str] = None
    words_not_to_use: Optional[str] = None
    grammar_to_use: Optional[str] = None
    level: Optional[str] = None
    communication_style: Optional[str] = None
    learning_goal: Optional[str] = None
    ai_role: Optional[str] = None
    conversation_rules: Optional[List[str]] = None


class UserConfigRequest(BaseModel):
    name: Optional[str] = None
    label: Optional[str] = None
    value_type: Optional[str] = None
    value: Any = None


class AppVariableRequest(BaseModel):
    keyname: Optional[str] = None
    value: Any = None
    type: Optional[str] = None
    description: Optional[str] = None


class TimerStartRequest(BaseModel):
    activity: str = DEFAULT_ACTIVITY


class TimerStopRequest(BaseModel):
    length_seconds: int
    activity: Optional[str] = None


class TranslateWordRequest(BaseModel):
    word: str


class TranslateRequest(BaseModel):
    text: str
    type: str = "word"


class AnalyzeSentenceRequest(BaseModel):
    sentence: str
    word: Optional[str] = None
    refresh: bool = False


class SaveAnalysisRequest(BaseModel):
    sentence: str
    word: Optional[str] = None
    analysis: Any


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    template_id: Optional[int] = None


class WordBaseRequest(BaseModel):
    word: Optional[str] = None
    translate: Optional[str] = None
    sample_sentence: Optional[str] = None
    groupAlphabetName: Optional[str] = None
    type_of_word: Optional[str] = None
    plural_sign: Optional[str] = None
    article: Optional[str] = None
    female_form: Optional[str] = None
    meaning: Optional[str] = None
    more_info: Optional[str] = None


class WordBaseBulkRequest(BaseModel):
    words: Optional[List[WordBaseRequest]] = None


# --- Static data ---
DEFAULT_SENTENCE_ANALYSIS = {
    "translation": "Translation not available",
    "grammaticalStructure": {
        "subject": "Not identified",
        "verb": "Not identified",
        "object": "Not identified",
        "tense": "Not identified",
        "mood": "Not identified",
        "sentenceType": "Not identified",
    },
    "keyWords": [],
    "difficulty": "unknown",
}
