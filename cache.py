"""In-memory LRU cache for LLM translation results.

Entries live for CACHE_TTL seconds and the oldest entry is evicted once the
cache holds CACHE_MAX results. The cache is process-local.
"""
import copy
import time
import hashlib
from collections import OrderedDict

import config
from log import get_logger

logger = get_logger("deepremember.cache")

CACHE_MAX = config.TRANSLATION_CACHE_MAX
CACHE_TTL = config.TRANSLATION_CACHE_TTL

_translation_cache: OrderedDict = OrderedDict()
_hits = 0
_misses = 0


def cache_key(kind: str, text: str) -> str:
    raw = f"{kind}|{text.strip().lower()}|{config.LEARNING_LANGUAGE}|{config.NATIVE_LANGUAGE}"
    return hashlib.sha256(raw.encode()).hexdigest()


def cache_get(key: str):
    global _hits, _misses
    entry = _translation_cache.get(key)
    if entry is None:
        _misses += 1
        return None
    ts, result = entry
    if time.time() - ts > CACHE_TTL:
        _translation_cache.pop(key, None)
        _misses += 1
        return None
    _translation_cache.move_to_end(key)
    _hits += 1
    return copy.deepcopy(result)


def cache_put(key: str, result: dict):
    _translation_cache[key] = (time.time(), copy.deepcopy(result))
    _translation_cache.move_to_end(key)
    if len(_translation_cache) > CACHE_MAX:
        _translation_cache.popitem(last=False)
        logger.debug("Evicted oldest translation", extra={"component": "cache", "count": len(_translation_cache)})


def cache_clear():
    global _hits, _misses
    _translation_cache.clear()
    _hits = 0
    _misses = 0


def cache_stats() -> dict:
    return {
        "entries": len(_translation_cache),
        "max": CACHE_MAX,
        "ttl_hours": CACHE_TTL / 3600,
        "hits": _hits,
        "misses": _misses,
    }
