from __future__ import annotations

import logging
import sqlite3

import psycopg2
from psycopg2.extras import RealDictCursor

import config

logger = logging.getLogger(__name__)

IntegrityError = (sqlite3.IntegrityError, psycopg2.IntegrityError)

_db_ready = False

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id {pk},
    email TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS onboarding_surveys (
    id {pk},
    user_id INTEGER NOT NULL UNIQUE,
    sex TEXT NOT NULL DEFAULT '',
    age_category TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS assessments (
    id {pk},
    user_id INTEGER NOT NULL,
    assessment_type TEXT NOT NULL,
    limiting_beliefs TEXT,
    bad_habits TEXT,
    time_wasters TEXT,
    energy_drainers TEXT,
    growth_blockers TEXT,
    new_beliefs TEXT,
    empowering_habits TEXT,
    time_investment TEXT,
    energy_gains TEXT,
    growth_areas TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS goals (
    id {pk},
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    importance TEXT NOT NULL,
    image_url TEXT NOT NULL DEFAULT '',
    expiry_date TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS habits (
    id {pk},
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS habit_logs (
    id {pk},
    habit_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    completed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS habit_logs_owner_idx
    ON habit_logs (user_id, habit_id, completed_at);

CREATE TABLE IF NOT EXISTS flexbook_posts (
    id {pk},
    user_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    image_url TEXT NOT NULL DEFAULT '',
    caption TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS coach_messages (
    user_id INTEGER NOT NULL,
    message_date TEXT NOT NULL,
    body TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, message_date)
);
"""

PRIMARY_KEYS = {
    "postgres": "SERIAL PRIMARY KEY",
    "sqlite": "INTEGER PRIMARY KEY AUTOINCREMENT",
}


class DBConn:
    def __init__(self, conn, backend: str):
        self.conn = conn
        self.backend = backend

    def execute(self, query: str, params: tuple | list = ()):
        if self.backend == "postgres":
            sql = query.replace("?", "%s")
            cur = self.conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(sql, params)
            return cur
        return self.conn.execute(query, params)

    def insert(self, query: str, params: tuple | list = ()) -> int:
        """Run an INSERT into a table with an ``id`` column and return the new id."""
        if self.backend == "postgres":
            row = self.execute(f"{query.rstrip()} RETURNING id", params).fetchone()
            return row["id"]
        return self.execute(query, params).lastrowid

    def executescript(self, script: str) -> None:
        if self.backend == "postgres":
            statements = [s.strip() for s in script.split(";") if s.strip()]
            for statement in statements:
                self.execute(statement)
        else:
            self.conn.executescript(script)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.close()


def get_conn() -> DBConn:
    if config.DB_BACKEND == "postgres":
        conn = psycopg2.connect(config.DATABASE_URL)
        return DBConn(conn, "postgres")
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    return DBConn(conn, "sqlite")


def init_db() -> None:
    with get_conn() as conn:
        conn.executescript(SCHEMA.format(pk=PRIMARY_KEYS[conn.backend]))
        logger.info("Schema ready on %s", conn.backend)


def ensure_db() -> None:
    global _db_ready
    if not _db_ready:
        init_db()
        _db_ready = True
