from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
from pgvector.psycopg2 import register_vector
from psycopg2.extensions import connection as PgConnection

from axo_sim.config.settings import DBSettings

EMBEDDING_DIM = 768

SCHEMA = f"""
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    seed BIGINT NOT NULL,
    agents INTEGER NOT NULL,
    ticks INTEGER NOT NULL,
    model TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS events (
    id BIGSERIAL PRIMARY KEY,
    run_id TEXT NOT NULL,
    tick INTEGER NOT NULL,
    agent TEXT NOT NULL,
    kind TEXT NOT NULL,
    detail TEXT NOT NULL,
    payload JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    earnings DOUBLE PRECISION NOT NULL DEFAULT 0,
    costs DOUBLE PRECISION NOT NULL DEFAULT 0,
    losses DOUBLE PRECISION NOT NULL DEFAULT 0,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS memories (
    id BIGSERIAL PRIMARY KEY,
    run_id TEXT NOT NULL,
    agent TEXT NOT NULL,
    tick INTEGER NOT NULL,
    text TEXT NOT NULL,
    balance DOUBLE PRECISION NOT NULL,
    genome_hash TEXT NOT NULL,
    importance DOUBLE PRECISION NOT NULL,
    embedding vector({EMBEDDING_DIM})
);

CREATE TABLE IF NOT EXISTS births (
    run_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    payload JSONB NOT NULL,
    tick INTEGER NOT NULL,
    PRIMARY KEY (run_id, agent_id)
);

CREATE TABLE IF NOT EXISTS tombstones (
    run_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    cause TEXT NOT NULL,
    death_tick INTEGER NOT NULL,
    payload JSONB NOT NULL,
    PRIMARY KEY (run_id, agent_id)
);

CREATE TABLE IF NOT EXISTS terminations (
    id BIGSERIAL PRIMARY KEY,
    run_id TEXT NOT NULL,
    tick INTEGER NOT NULL,
    condition TEXT NOT NULL,
    agent_id TEXT,
    detail TEXT NOT NULL
);
"""


class DBClient:
    def __init__(self, settings: DBSettings) -> None:
        self._settings = settings
        self._conn: PgConnection | None = None

    def connect(self) -> None:
        if self._conn is None:
            self._conn = psycopg2.connect(self._settings.dsn)
            self._conn.autocommit = False
            register_vector(self._conn)

    @property
    def conn(self) -> PgConnection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def cursor(self) -> Iterator:
        cur = self.conn.cursor()
        try:
            yield cur
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    def ensure_schema(self) -> None:
        """Create the ledger tables when missing.

        ``register_vector`` needs the extension, so it runs on a bare
        connection before the usual one is opened.
        """
        bootstrap = psycopg2.connect(self._settings.dsn)
        try:
            with bootstrap, bootstrap.cursor() as cur:
                cur.execute(SCHEMA)
        finally:
            bootstrap.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
