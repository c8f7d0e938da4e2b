from __future__ import annotations

import json
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from booking_grid.config.loader import DatabaseConfig
from booking_grid.store.document_store import PersistenceFailure, StoreDocument
from booking_grid.store.postgres import DEFAULT_TABLE, PostgresDocumentStore, resolve_dsn
from tests.helpers import JST, make_row

"""PostgresDocumentStore with an injected connection factory (no server needed)."""


def _conn(fetchone=None):
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = fetchone
    return conn, cursor


def _doc():
    return StoreDocument(reservations=(make_row(),), updated_at=datetime(2024, 5, 1, tzinfo=JST))


@pytest.fixture()
def clean_pg_env(monkeypatch):
    for key in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(key, raising=False)


class TestResolveDsn:
    def test_database_url_wins(self, clean_pg_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
        assert resolve_dsn(DatabaseConfig(dsn="postgresql://other")) == "postgresql://u@h/db"

    def test_config_dsn(self, clean_pg_env):
        assert resolve_dsn(DatabaseConfig(dsn="postgresql://cfg")) == "postgresql://cfg"

    def test_fields_with_env_override(self, clean_pg_env, monkeypatch):
        monkeypatch.setenv("PGHOST", "envhost")
        cfg = DatabaseConfig(host="cfghost", port=6543, user="app", password="secret", database="hotel")
        assert resolve_dsn(cfg) == "host=envhost port=6543 user=app dbname=hotel password=secret"

    def test_defaults(self, clean_pg_env):
        assert resolve_dsn(None) == "host=localhost port=5432 user=postgres dbname=postgres"


def test_invalid_table_name_rejected():
    with pytest.raises(ValueError):
        PostgresDocumentStore("dsn", table="docs; DROP TABLE x")


def test_from_config_defaults(clean_pg_env):
    store = PostgresDocumentStore.from_config(DatabaseConfig(dsn="postgresql://cfg"))
    assert store.dsn == "postgresql://cfg"
    assert store.table == DEFAULT_TABLE
    assert store.document_id == "default"


def test_save_upserts_and_notifies():
    conn, cursor = _conn()
    store = PostgresDocumentStore("dsn", table="docs", document_id="hotel1", connect=lambda dsn: conn)
    doc = _doc()
    store.save(doc)

    upsert, notify = cursor.execute.call_args_list
    sql, params = upsert.args
    assert sql.startswith("INSERT INTO docs")
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert params[0] == "hotel1"
    assert json.loads(params[1]) == doc.to_dict()
    assert params[2] == doc.updated_at
    assert notify.args == ("SELECT pg_notify(%s, %s)", ("docs", "hotel1"))
    conn.commit.assert_called_once()
    conn.close.assert_called_once()


def test_save_failure_rolls_back():
    conn, cursor = _conn()
    cursor.execute.side_effect = RuntimeError("disk full")
    store = PostgresDocumentStore("dsn", connect=lambda dsn: conn)
    with pytest.raises(PersistenceFailure, match="save failed"):
        store.save(_doc())
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    conn.close.assert_called_once()


def test_connect_failure():
    def refuse(dsn):
        raise OSError("connection refused")

    store = PostgresDocumentStore("dsn", connect=refuse)
    with pytest.raises(PersistenceFailure, match="connect failed"):
        store.load()


def test_load_missing_document():
    conn, _ = _conn(fetchone=None)
    store = PostgresDocumentStore("dsn", connect=lambda dsn: conn)
    assert store.load() is None


def test_load_jsonb_dict():
    doc = _doc()
    conn, cursor = _conn(fetchone=(doc.to_dict(),))
    store = PostgresDocumentStore("dsn", table="docs", document_id="x", connect=lambda dsn: conn)
    assert store.load() == doc
    assert cursor.execute.call_args.args == ("SELECT document FROM docs WHERE id = %s", ("x",))


def test_load_text_column():
    doc = _doc()
    conn, _ = _conn(fetchone=(doc.to_json(),))
    store = PostgresDocumentStore("dsn", connect=lambda dsn: conn)
    assert store.load() == doc


def test_ensure_schema():
    conn, cursor = _conn()
    store = PostgresDocumentStore("dsn", table="docs", connect=lambda dsn: conn)
    store.ensure_schema()
    assert "CREATE TABLE IF NOT EXISTS docs" in cursor.execute.call_args.args[0]
    conn.commit.assert_called_once()


class TestWaitForChange:
    def test_timeout_returns_none(self):
        conn, cursor = _conn()
        store = PostgresDocumentStore("dsn", table="docs", connect=lambda dsn: conn)
        with patch("booking_grid.store.postgres.select.select", return_value=([], [], [])):
            assert store.wait_for_change(0.1) is None
        cursor.execute.assert_called_once_with("LISTEN docs")
        assert conn.autocommit is True

    def test_notification_reloads_document(self):
        listen_conn, _ = _conn()
        load_conn, _ = _conn(fetchone=(_doc().to_dict(),))
        note = MagicMock(payload="default")
        listen_conn.notifies = [note]
        conns = iter([listen_conn, load_conn])
        store = PostgresDocumentStore("dsn", connect=lambda dsn: next(conns))
        with patch("booking_grid.store.postgres.select.select", return_value=([listen_conn], [], [])):
            assert store.wait_for_change(1.0) == _doc()
        listen_conn.poll.assert_called_once()
        assert listen_conn.notifies == []

    def test_other_document_ignored(self):
        conn, _ = _conn()
        conn.notifies = [MagicMock(payload="someone-else")]
        store = PostgresDocumentStore("dsn", connect=lambda dsn: conn)
        with patch("booking_grid.store.postgres.select.select", return_value=([conn], [], [])):
            assert store.wait_for_change(1.0) is None

    def test_close(self):
        conn, _ = _conn()
        store = PostgresDocumentStore("dsn", connect=lambda dsn: conn)
        with patch("booking_grid.store.postgres.select.select", return_value=([], [], [])):
            store.wait_for_change(0)
        store.close()
        conn.close.assert_called_once()
        store.close()
