"""Tests for ``mailspine schedule`` CLI commands."""

from __future__ import annotations

import json
import sqlite3

import pytest
from typer.testing import CliRunner

from mailspine.cli import utils as cli_utils
from mailspine.cli.app import app
from mailspine.core.settings import get_settings
from mailspine.core.sqlite_conn import SqliteConnection

runner = CliRunner()

NOW = "2026-03-04T12:00:00+00:00"


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db(tmp_path) -> str:
    """Initialised database path."""
    path = str(tmp_path / "mailspine.db")
    result = runner.invoke(app, ["db", "init", "--database", path])
    assert result.exit_code == 0, result.output
    return path


def invoke(*args: str):
    return runner.invoke(app, ["schedule", *args])


def invoke_json(*args: str):
    result = invoke(*args, "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestScheduleNext:
    def test_monthly_clamps_to_month_end(self):
        data = invoke_json(
            "next", "-m", "1", "-u", "month",
            "--anchor", "2026-01-31T09:00:00", "--now", "2026-02-10T00:00:00",
        )
        assert data["next_send"] == "2026-02-28T09:00:00+00:00"

    def test_without_anchor(self):
        data = invoke_json("next", "-m", "2", "-u", "hour", "--now", NOW)
        assert data["anchor"] is None
        assert data["next_send"] == "2026-03-04T14:00:00+00:00"

    def test_table_output(self):
        result = invoke("next", "-m", "1", "-u", "day", "--now", NOW)
        assert result.exit_code == 0
        assert "next_send" in result.output

    def test_bad_unit(self):
        result = invoke("next", "-m", "1", "-u", "fortnight", "--now", NOW)
        assert result.exit_code == 1
        assert "Error (VALIDATION)" in result.output

    def test_bad_measure(self):
        result = invoke("next", "-m", "0", "-u", "day", "--now", NOW)
        assert result.exit_code == 1

    def test_bad_timestamp(self):
        result = invoke("next", "-m", "1", "-u", "day", "--now", "yesterday")
        assert result.exit_code == 1
        assert "--now" in result.output


class TestTemplateCommands:
    def test_create_and_show(self, db):
        created = invoke_json("create", "weekly", "--name", "Weekly digest", "-d", db)
        assert created["sending_method"] == "manual"

        shown = invoke_json("show", "weekly", "-d", db)
        assert shown["template_id"] == "weekly"
        assert shown["version"] == 1

    def test_create_duplicate(self, db):
        invoke("create", "weekly", "-d", db)
        result = invoke("create", "weekly", "-d", db)
        assert result.exit_code == 1
        assert "Error (STORAGE)" in result.output

    def test_show_missing(self, db):
        result = invoke("show", "ghost", "-d", db)
        assert result.exit_code == 1
        assert "Template not found: ghost" in result.output

    def test_set_fixed_date(self, db):
        invoke("create", "launch", "-d", db)

        record = invoke_json(
            "set", "launch", "--type", "fixed_date", "--date", "2026-03-01T09:00:00", "-d", db
        )

        assert record["sending_method"] == "scheduled"
        assert record["schedule_type"] == "fixed_date"
        assert record["schedule_date"] == "2026-03-01T09:00:00+00:00"

    def test_set_invalid_edit(self, db):
        invoke("create", "launch", "-d", db)
        result = invoke("set", "launch", "-d", db)
        assert result.exit_code == 1
        assert "schedule type" in result.output

    def test_list(self, db):
        invoke("create", "b", "-d", db)
        invoke("create", "a", "-d", db)

        records = invoke_json("list", "-d", db)

        assert [r["template_id"] for r in records] == ["a", "b"]

    def test_list_empty(self, db):
        result = invoke("list", "-d", db)
        assert result.exit_code == 0
        assert "No items" in result.output


class TestDueAndReconcile:
    @pytest.fixture
    def scheduled(self, db) -> str:
        invoke("create", "launch", "-d", db)
        invoke("set", "launch", "--type", "fixed_date", "--date", "2026-03-01T09:00:00", "-d", db)
        invoke("create", "digest", "-d", db)
        invoke(
            "set", "digest", "--type", "repeating", "-m", "1", "-u", "day",
            "--start", "2026-03-01T09:00:00", "-d", db,
        )
        return db

    def test_due_lists_fixed_date(self, scheduled):
        items = invoke_json("due", "--now", NOW, "-d", scheduled)
        assert items == [{"template_id": "launch", "schedule_type": "fixed_date"}]

    def test_reconcile_preview_does_not_write(self, scheduled):
        data = invoke_json("reconcile", "digest", "--now", NOW, "-d", scheduled)

        assert data["changes"] == {"schedule_next_send_date": "2026-03-05T09:00:00+00:00"}
        assert data["applied"] is False
        assert invoke_json("show", "digest", "-d", scheduled)["schedule_next_send_date"] is None

    def test_reconcile_apply(self, scheduled):
        data = invoke_json("reconcile", "digest", "--now", NOW, "--apply", "-d", scheduled)

        assert data["applied"] is True
        shown = invoke_json("show", "digest", "-d", scheduled)
        assert shown["schedule_next_send_date"] == "2026-03-05T09:00:00+00:00"

    def test_reconcile_mark_sent(self, scheduled):
        data = invoke_json(
            "reconcile", "launch", "--now", NOW, "--mark-sent", "--apply", "-d", scheduled
        )
        assert data["changes"] == {"schedule_sent": True}

        assert invoke_json("due", "--now", NOW, "-d", scheduled) == []

    def test_housekeep_then_due(self, scheduled):
        assert invoke_json("housekeep", "--now", NOW, "-d", scheduled) == {"records_written": 1}

        items = invoke_json("due", "--now", "2026-03-05T09:00:00+00:00", "-d", scheduled)

        assert {"template_id": "digest", "schedule_type": "repeating"} in items

    def test_reconcile_missing(self, scheduled):
        result = invoke("reconcile", "ghost", "--now", NOW, "-d", scheduled)
        assert result.exit_code == 1


class TestConnections:
    @pytest.fixture
    def opened(self, monkeypatch) -> list[SqliteConnection]:
        """Every connection the CLI opens."""
        connections: list[SqliteConnection] = []

        class TrackingConnection(SqliteConnection):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                connections.append(self)

        monkeypatch.setattr(cli_utils, "SqliteConnection", TrackingConnection)
        return connections

    @staticmethod
    def _is_closed(conn: SqliteConnection) -> bool:
        try:
            conn.execute("SELECT 1")
        except sqlite3.ProgrammingError:
            return True
        return False

    def test_commands_close_their_connection(self, db, opened):
        invoke("create", "weekly", "-d", db)
        invoke("show", "weekly", "-d", db)
        invoke("list", "-d", db)
        invoke("due", "--now", NOW, "-d", db)
        invoke("housekeep", "--now", NOW, "-d", db)

        assert len(opened) == 5
        assert all(self._is_closed(conn) for conn in opened)

    def test_closed_after_error(self, db, opened):
        result = invoke("show", "ghost", "-d", db)

        assert result.exit_code == 1
        assert self._is_closed(opened[0])
