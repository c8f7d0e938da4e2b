from __future__ import annotations

import logging
import os
import select
from collections.abc import Callable
from typing import Any

from ..config.loader import DatabaseConfig
from .document_store import PersistenceFailure, StoreDocument

"""PostgreSQL-backed shared document store (psycopg2).

One row per document id:

    CREATE TABLE IF NOT EXISTS <table> (
        id text PRIMARY KEY,
        document jsonb NOT NULL,
        updated_at timestamptz NOT NULL
    )

``save`` is a full overwrite (UPSERT) and announces the change with
``pg_notify(<table>, id)``; ``wait_for_change`` LISTENs on that channel.
"""

__all__ = [
    "DEFAULT_TABLE",
    "DEFAULT_DOCUMENT_ID",
    "resolve_dsn",
    "PostgresDocumentStore",
]

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "reservation_documents"
DEFAULT_DOCUMENT_ID = "default"


def resolve_dsn(db_cfg: DatabaseConfig | None) -> str:
    """Resolve the connection string.

    Precedence:
        1. DATABASE_URL / PGDSN environment variables (whole DSN)
        2. database.dsn in the config file
        3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE over the
           per-field config values
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or (db_cfg.dsn if db_cfg else None)
    if dsn:
        return dsn
    host = os.getenv("PGHOST", (db_cfg.host if db_cfg else None) or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg and db_cfg.port else "5432")
    user = os.getenv("PGUSER", (db_cfg.user if db_cfg else None) or "postgres")
    password = os.getenv("PGPASSWORD", (db_cfg.password if db_cfg else None) or "")
    database = os.getenv("PGDATABASE", (db_cfg.database if db_cfg else None) or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _default_connect(dsn: str) -> Any:  # pragma: no cover (needs a server)
    import psycopg2

    return psycopg2.connect(dsn)


class PostgresDocumentStore:
    """Shared document held in a PostgreSQL JSONB column.

    ``connect`` is a factory ``dsn -> DB-API connection``; it defaults to
    ``psycopg2.connect``. Every driver error surfaces as PersistenceFailure.
    """

    def __init__(
        self,
        dsn: str,
        *,
        table: str = DEFAULT_TABLE,
        document_id: str = DEFAULT_DOCUMENT_ID,
        connect: Callable[[str], Any] | None = None,
    ) -> None:
        # 識別子はプレースホルダ不可なので英数字と _ のみ許可
        if not table.replace("_", "").isalnum():
            raise ValueError(f"invalid table name: {table!r}")
        self.dsn = dsn
        self.table = table
        self.document_id = document_id
        self._connect = connect or _default_connect
        self._listen_conn: Any = None

    @classmethod
    def from_config(cls, db_cfg: DatabaseConfig, **kwargs: Any) -> PostgresDocumentStore:
        return cls(
            resolve_dsn(db_cfg),
            table=db_cfg.table or DEFAULT_TABLE,
            document_id=db_cfg.document_id or DEFAULT_DOCUMENT_ID,
            **kwargs,
        )

    def _open(self) -> Any:
        try:
            return self._connect(self.dsn)
        except Exception as e:
            raise PersistenceFailure(f"connect failed: {e}") from e

    def ensure_schema(self) -> None:
        conn = self._open()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS {self.table} ("
                    "id text PRIMARY KEY, document jsonb NOT NULL, updated_at timestamptz NOT NULL)"
                )
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise PersistenceFailure(f"schema setup failed: {e}") from e
        finally:
            conn.close()

    def load(self) -> StoreDocument | None:
        conn = self._open()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT document FROM {self.table} WHERE id = %s", (self.document_id,))
                row = cur.fetchone()
        except Exception as e:
            raise PersistenceFailure(f"load failed: {e}") from e
        finally:
            conn.close()
        if row is None:
            return None
        document = row[0]
        # psycopg2 は jsonb を dict に変換済み。text 列等の場合は文字列
        if isinstance(document, str):
            return StoreDocument.from_json(document)
        return StoreDocument.from_dict(document)

    def save(self, document: StoreDocument) -> None:
        conn = self._open()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {self.table} (id, document, updated_at) VALUES (%s, %s::jsonb, %s) "
                    "ON CONFLICT (id) DO UPDATE SET document = EXCLUDED.document, updated_at = EXCLUDED.updated_at",
                    (self.document_id, document.to_json(), document.updated_at),
                )
                cur.execute("SELECT pg_notify(%s, %s)", (self.table, self.document_id))
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise PersistenceFailure(f"save failed: {e}") from e
        finally:
            conn.close()
        logger.info(f"store saved id={self.document_id} reservations={len(document.reservations)}")

    def wait_for_change(self, timeout: float) -> StoreDocument | None:
        """Block up to ``timeout`` seconds for a change notification.

        Returns the reloaded document, or None when nothing changed in time.
        """
        try:
            if self._listen_conn is None:
                conn = self._connect(self.dsn)
                conn.autocommit = True
                with conn.cursor() as cur:
                    cur.execute(f"LISTEN {self.table}")
                self._listen_conn = conn
            conn = self._listen_conn
            if select.select([conn], [], [], timeout) == ([], [], []):
                return None
            conn.poll()
            changed = False
            while conn.notifies:
                note = conn.notifies.pop(0)
                changed = changed or note.payload == self.document_id
        except Exception as e:
            raise PersistenceFailure(f"listen failed: {e}") from e
        return self.load() if changed else None

    def close(self) -> None:
        if self._listen_conn is not None:
            try:
                self._listen_conn.close()
            finally:
                self._listen_conn = None
