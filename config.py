"""Environment-driven settings for DeepRemember.

Values are read once at import time. A `.env` file in the working directory
is loaded first, so local development does not need exported variables.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str = "") -> list:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# --- Database ---
DB_BACKEND = os.environ.get("DEEPREMEMBER_DB", "sqlite").lower()  # sqlite | postgres | memory
SQLITE_PATH = Path(os.environ.get("DEEPREMEMBER_SQLITE_PATH", Path(__file__).parent / "deepremember.db"))
DATABASE_URL = os.environ.get("DATABASE_URL", "")
PG_POOL_MIN = int(os.environ.get("DEEPREMEMBER_PG_POOL_MIN", "1"))
PG_POOL_MAX = int(os.environ.get("DEEPREMEMBER_PG_POOL_MAX", "5"))

# --- Auth ---
SESSION_TTL = int(os.environ.get("DEEPREMEMBER_SESSION_TTL", str(30 * 24 * 3600)))  # 30 days
ADMIN_EMAILS = {email.lower() for email in _env_list("DEEPREMEMBER_ADMIN_EMAILS")}
MIN_PASSWORD_LEN = 6

# --- Rate limiting (LLM routes) ---
RATE_LIMIT_REQUESTS = int(os.environ.get("DEEPREMEMBER_RATE_LIMIT_REQUESTS", "30"))
RATE_LIMIT_WINDOW = int(os.environ.get("DEEPREMEMBER_RATE_LIMIT_WINDOW", "60"))

# --- LLM ---
OLLAMA_URL = os.environ.get("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.environ.get("OLLAMA_MODEL", "llama3.2")
OLLAMA_TIMEOUT = int(os.environ.get("OLLAMA_TIMEOUT", "120"))
LEARNING_LANGUAGE = os.environ.get("DEEPREMEMBER_LEARNING_LANGUAGE", "German")
NATIVE_LANGUAGE = os.environ.get("DEEPREMEMBER_NATIVE_LANGUAGE", "English")

# --- Translation cache ---
TRANSLATION_CACHE_MAX = int(os.environ.get("DEEPREMEMBER_TRANSLATION_CACHE_MAX", "500"))
TRANSLATION_CACHE_TTL = int(os.environ.get("DEEPREMEMBER_TRANSLATION_CACHE_TTL", str(3600 * 24)))

# --- HTTP ---
CORS_ORIGINS = _env_list(
    "DEEPREMEMBER_CORS_ORIGINS",
    "http://localhost:9000,http://localhost:3000,http://localhost:4004",
)
PORT = int(os.environ.get("PORT", "4004"))
