"""Database access: SQLite or PostgreSQL, with an in-memory fallback.

SQL is written once with `?` placeholders. SQLite connections are plain
`sqlite3` connections; PostgreSQL connections are wrapped so they accept the
same calls (`execute`, `commit`, `close`) and return rows addressable by
column name.
"""
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Optional

import config
from log import get_logger

logger = get_logger("deepremember.db")

DB_BACKEND = config.DB_BACKEND
DB_PATH = config.SQLITE_PATH
DATABASE_URL = config.DATABASE_URL

_active_backend: Optional[str] = None
_fallback = False
_memory_uri: Optional[str] = None
_memory_keeper: Optional[sqlite3.Connection] = None
_pg_pool = None

# Integrity errors from either driver; extended when psycopg2 is loaded
INTEGRITY_ERRORS: tuple = (sqlite3.IntegrityError,)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id {pk},
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS sessions (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    token TEXT UNIQUE NOT NULL,
    created_at REAL NOT NULL,
    expires_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS cards (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    word TEXT NOT NULL,
    translation TEXT NOT NULL DEFAULT '',
    context TEXT NOT NULL DEFAULT '',
    state INTEGER NOT NULL DEFAULT 0,
    due TEXT NOT NULL,
    stability REAL NOT NULL DEFAULT 0,
    difficulty REAL NOT NULL DEFAULT 0,
    elapsed_days INTEGER NOT NULL DEFAULT 0,
    scheduled_days INTEGER NOT NULL DEFAULT 0,
    reps INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    last_review TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cards_user_id ON cards(user_id);
CREATE INDEX IF NOT EXISTS idx_cards_due ON cards(user_id, due);
CREATE TABLE IF NOT EXISTS labels (
    id {pk},
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('system', 'user')),
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    color TEXT NOT NULL DEFAULT '#3B82F6',
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (name, user_id, type)
);
CREATE INDEX IF NOT EXISTS idx_labels_user_id ON labels(user_id);
CREATE TABLE IF NOT EXISTS card_labels (
    id {pk},
    card_id INTEGER NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
    label_id INTEGER NOT NULL REFERENCES labels(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    UNIQUE (card_id, label_id)
);
CREATE INDEX IF NOT EXISTS idx_card_labels_label_id ON card_labels(label_id);
CREATE TABLE IF NOT EXISTS chattemplates (
    id {pk},
    thema TEXT,
    persons TEXT,
    scenario TEXT,
    questions_and_thema TEXT,
    words_to_use TEXT,
    words_not_to_use TEXT,
    grammar_to_use TEXT,
    level TEXT CHECK (level IN ('A1', 'A2', 'B1', 'B2')),
    communication_style TEXT,
    learning_goal TEXT,
    ai_role TEXT,
    conversation_rules TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS user_chattemplates (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    template_id INTEGER NOT NULL REFERENCES chattemplates(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, template_id)
);
CREATE TABLE IF NOT EXISTS user_configs (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    label TEXT NOT NULL,
    value_type TEXT NOT NULL DEFAULT 'string'
        CHECK (value_type IN ('string', 'number', 'boolean', 'json')),
    value TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_user_configs_name ON user_configs(user_id, name);
CREATE TABLE IF NOT EXISTS app_variables (
    id {pk},
    keyname TEXT UNIQUE NOT NULL,
    value TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL CHECK (type IN ('text', 'json', 'number')),
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS sentence_analysis_cache (
    id {pk},
    hash TEXT UNIQUE NOT NULL,
    analysis_data TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS spend_time (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    activity TEXT NOT NULL DEFAULT 'review_card',
    start_datetime TEXT NOT NULL,
    end_datetime TEXT,
    length_seconds INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_spend_time_user ON spend_time(user_id, start_datetime);
CREATE TABLE IF NOT EXISTS word_base (
    id {pk},
    word TEXT NOT NULL,
    translate TEXT,
    sample_sentence TEXT,
    group_alphabet_name TEXT NOT NULL,
    type_of_word TEXT NOT NULL,
    plural_sign TEXT,
    article TEXT,
    female_form TEXT,
    meaning TEXT,
    more_info TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_word_base_word ON word_base(word);
CREATE INDEX IF NOT EXISTS idx_word_base_group ON word_base(group_alphabet_name);
CREATE INDEX IF NOT EXISTS idx_word_base_type ON word_base(type_of_word);
"""

_PRIMARY_KEYS = {
    "sqlite": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "postgres": "SERIAL PRIMARY KEY",
}


# --- Time helpers ---

def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO string so stored timestamps sort as text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(now_utc())


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# --- PostgreSQL adapter ---

class PostgresConnection:
    """Makes a pooled psycopg2 connection look like a sqlite3 connection."""

    def __init__(self, raw, pool):
        self._raw = raw
        self._pool = pool

    @staticmethod
    def _translate(sql: str) -> str:
        return sql.replace("%", "%%").replace("?", "%s")

    def execute(self, sql: str, params=()):
        from psycopg2 import extras

        cursor = self._raw.cursor(cursor_factory=extras.RealDictCursor)
        cursor.execute(self._translate(sql), tuple(params))
        return cursor

    def executescript(self, script: str):
        cursor = self._raw.cursor()
        cursor.execute(script)
        return cursor

    def commit(self):
        self._raw.commit()

    def rollback(self):
        self._raw.rollback()

    def close(self):
        if self._raw is None:
            return
        self._raw.rollback()
        self._pool.putconn(self._raw)
        self._raw = None


# --- Connection management ---

def _connect_sqlite(path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def _connect_memory() -> sqlite3.Connection:
    conn = sqlite3.connect(_memory_uri, uri=True)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _open_postgres():
    global _pg_pool, INTEGRITY_ERRORS
    import psycopg2
    from psycopg2 import pool

    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not set")
    _pg_pool = pool.ThreadedConnectionPool(config.PG_POOL_MIN, config.PG_POOL_MAX, DATABASE_URL)
    INTEGRITY_ERRORS = (sqlite3.IntegrityError, psycopg2.IntegrityError)


def _open_memory():
    global _memory_uri, _memory_keeper
    if _memory_keeper is not None:
        _memory_keeper.close()
    # The keeper connection holds the shared in-memory database open
    _memory_uri = f"file:deepremember-{uuid.uuid4().hex}?mode=memory&cache=shared"
    _memory_keeper = _connect_memory()


def get_db():
    """Open a connection to the active backend. Callers must close it."""
    backend = _active_backend or DB_BACKEND
    if backend == "postgres":
        return PostgresConnection(_pg_pool.getconn(), _pg_pool)
    if backend == "memory":
        return _connect_memory()
    return _connect_sqlite(DB_PATH)


def _create_schema(backend: str):
    conn = get_db()
    try:
        conn.executescript(SCHEMA.format(pk=_PRIMARY_KEYS["postgres" if backend == "postgres" else "sqlite"]))
        conn.commit()
    finally:
        conn.close()


def init_db(backend: Optional[str] = None) -> str:
    """Open the configured backend and create tables.

    Falls back to an in-memory database when the configured backend cannot
    be initialized. Returns the name of the backend in use.
    """
    global _active_backend, _fallback
    backend = (backend or DB_BACKEND).lower()
    _fallback = False
    try:
        if backend == "postgres":
            _open_postgres()
        elif backend == "memory":
            _open_memory()
        elif backend != "sqlite":
            raise ValueError(f"Unknown database backend: {backend}")
        _active_backend = backend
        _create_schema(backend)
    except Exception:
        logger.exception(
            "Database initialization failed, falling back to memory storage",
            extra={"component": "db", "backend": backend},
        )
        _open_memory()
        _active_backend = "memory"
        _fallback = True
        _create_schema("memory")
    logger.info("Database ready", extra={"component": "db", "backend": _active_backend})
    return _active_backend


def close_db():
    global _pg_pool, _memory_keeper, _active_backend
    if _pg_pool is not None:
        _pg_pool.closeall()
        _pg_pool = None
    if _memory_keeper is not None:
        _memory_keeper.close()
        _memory_keeper = None
    _active_backend = None


def active_backend() -> str:
    return _active_backend or DB_BACKEND


def is_fallback() -> bool:
    return _fallback


def insert_returning_id(conn, sql: str, params=()) -> int:
    """Run an INSERT and return the new row id on either dialect."""
    rows = conn.execute(sql + " RETURNING id", params).fetchall()
    return rows[0]["id"]


LIKE_ESCAPE = "ESCAPE '\\'"


def like_escape(term: str) -> str:
    """Escape LIKE wildcards in user input; the query must use LIKE_ESCAPE."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
