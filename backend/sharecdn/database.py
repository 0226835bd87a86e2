import sqlite3
from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path) -> Engine:
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db(request: Request):
    db = request.app.state.context.session_factory()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- USERS
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    username         TEXT PRIMARY KEY,
    email            TEXT NOT NULL,
    password_hash    TEXT NOT NULL,
    role             TEXT NOT NULL DEFAULT 'user' CHECK(role IN ('admin','user')),
    created_at       INTEGER NOT NULL,
    background_type  TEXT NOT NULL DEFAULT 'color',
    background_value TEXT NOT NULL DEFAULT '#05080f'
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email COLLATE NOCASE);

-- ============================================================
-- IMAGES
-- ============================================================
CREATE TABLE IF NOT EXISTS images (
    id            TEXT PRIMARY KEY,
    filename      TEXT NOT NULL UNIQUE,
    original_name TEXT,
    size_bytes    INTEGER NOT NULL,
    url           TEXT NOT NULL,
    owner         TEXT REFERENCES users(username) ON DELETE CASCADE,
    uploaded_at   INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_images_owner ON images(owner);
CREATE INDEX IF NOT EXISTS idx_images_uploaded ON images(uploaded_at);

-- ============================================================
-- APP SETTINGS
-- ============================================================
CREATE TABLE IF NOT EXISTS app_settings (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def init_db(db_path: Path):
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()
