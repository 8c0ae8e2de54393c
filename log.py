"""Logger setup shared by the DeepRemember routers, scheduler and Ollama client.

Each record is one JSON object on stderr: timestamp, level, logger name and
message, plus whichever request fields the caller passed in `extra=`
(user_id, card_id, label_id, timer activity, Ollama model, storage backend).
DEEPREMEMBER_LOG_LEVEL picks the level; DEEPREMEMBER_LOG_FORMAT=text switches
to plain lines for local runs.
"""
import logging
import json
import os
import sys
from typing import Any

# Fields passed via `extra=` that end up in the JSON line
EXTRA_FIELDS = (
    "component", "detail", "duration_ms", "count", "endpoint", "status_code",
    "ip", "user_id", "card_id", "label_id", "backend", "activity", "model",
)


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
            entry["error_type"] = type(record.exc_info[1]).__name__
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_logger(name: str = "deepremember") -> logging.Logger:
    """Logger for one area of the service, configured on first use.

    A review logged from the cards router:
        logger = get_logger("deepremember.cards")
        logger.info("Card answered", extra={"component": "cards", "user_id": 7, "card_id": 42})
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = os.environ.get("DEEPREMEMBER_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))

        handler = logging.StreamHandler(sys.stderr)
        fmt = os.environ.get("DEEPREMEMBER_LOG_FORMAT", "json")
        if fmt == "text":
            handler.setFormatter(logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            ))
        else:
            handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger
