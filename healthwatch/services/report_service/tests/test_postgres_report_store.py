"""Tests for the PostgreSQL-backed Report Store (mocked connection)."""
import json
import pytest
from datetime import datetime
from unittest.mock import MagicMock

from healthwatch.shared.database import DuplicateError
from healthwatch.shared.models import ReportStatus
from healthwatch.shared.utils import configure_pii_salt
from healthwatch.services.report_service import PostgresReportStore
from healthwatch.services.report_service.report_repository import SCHEMA_SQL


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


T0 = datetime(2026, 10, 19, 9, 0, 0)


def make_row(report_id="rpt_1", status="pending", version=1, location_id="Room-12A"):
    history = [{"status": "pending", "actor_id": "s1", "timestamp": T0.isoformat()}]
    if status != "pending":
        history.append({"status": status, "actor_id": "admin", "timestamp": T0.isoformat()})
    return (
        report_id,
        "s1",
        json.dumps(["fever", "cough"]),
        location_id,
        None,
        status,
        T0,
        json.dumps(history),
        version,
    )


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def store(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = conn
    manager.transaction.return_value.__enter__.return_value = conn
    return PostgresReportStore(manager)


class TestPostgresReportStore:

    def test_create_schema(self, store, cursor):
        store.create_schema()
        cursor.execute.assert_called_once_with(SCHEMA_SQL)

    def test_get_decodes_row(self, store, cursor):
        cursor.fetchone.return_value = make_row(status="investigating", version=2)

        report = store.get("rpt_1")

        assert report.symptoms == ("fever", "cough")
        assert report.status == ReportStatus.INVESTIGATING
        assert report.version == 2
        assert [c.status for c in report.status_history] == [
            ReportStatus.PENDING, ReportStatus.INVESTIGATING
        ]

    def test_add_encodes_history_as_json(self, store, cursor):
        cursor.fetchone.return_value = make_row()
        report = store.get("rpt_1")
        cursor.rowcount = 1

        store.add(report)

        _, values = cursor.execute.call_args.args
        assert json.loads(values[2]) == ["fever", "cough"]
        assert json.loads(values[7])[0]["status"] == "pending"
        assert values[8] == 1

    def test_add_duplicate(self, store, cursor):
        cursor.fetchone.return_value = make_row()
        report = store.get("rpt_1")
        cursor.rowcount = 0

        with pytest.raises(DuplicateError):
            store.add(report)

    def test_replace_uses_version_guard(self, store, cursor):
        cursor.fetchone.return_value = make_row()
        report = store.get("rpt_1")
        updated = report.with_status(ReportStatus.INVESTIGATING, "admin", T0)
        cursor.rowcount = 0

        assert store.replace(updated, expected_version=1) is False
        query, values = cursor.execute.call_args.args
        assert query.endswith("WHERE id = %s AND version = %s")
        assert values[-2:] == ["rpt_1", 1]

    def test_list_by_reporter(self, store, cursor):
        cursor.fetchall.return_value = [make_row("rpt_1"), make_row("rpt_2")]

        reports = store.list_by_reporter("s1")

        query, params = cursor.execute.call_args.args
        assert "WHERE reporter_id = %s" in query
        assert params == ("s1",)
        assert [r.id for r in reports] == ["rpt_1", "rpt_2"]

    def test_snapshot_revision_grows_with_writes(self, store, cursor):
        cursor.fetchall.return_value = [make_row("rpt_1")]
        before = store.snapshot().revision

        cursor.fetchall.return_value = [make_row("rpt_1", status="investigating", version=2)]
        after_transition = store.snapshot().revision

        cursor.fetchall.return_value = [
            make_row("rpt_1", status="investigating", version=2),
            make_row("rpt_2"),
        ]
        after_insert = store.snapshot().revision

        assert before < after_transition < after_insert

    def test_location_revision(self, store, cursor):
        cursor.fetchone.return_value = (3, 5)

        assert store.location_revision("Gym") == 8
        _, params = cursor.execute.call_args.args
        assert params == ("Gym",)

    def test_list_in_window_filters_in_sql(self, store, cursor):
        cursor.fetchall.return_value = [make_row("rpt_1")]
        end = datetime(2026, 10, 20)

        reports = store.list_in_window("Room-12A", datetime(2026, 10, 19), end)

        query, params = cursor.execute.call_args.args
        assert "WHERE location_id = %s AND created_at >= %s AND created_at < %s" in query
        assert params == ("Room-12A", datetime(2026, 10, 19), end)
        assert [r.id for r in reports] == ["rpt_1"]
