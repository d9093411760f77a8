"""PostgreSQL-backed Report Store.

Status history is stored as a JSON document next to the current status.
Cross-process writers are serialized by the ``version`` column: a
transition only lands if the row still carries the version it was read at.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from healthwatch.shared.database import BaseRepository, ConnectionManager
from healthwatch.shared.models import HealthReport, ReportStatus, StatusChange
from .report_store import ReportStore, StoreSnapshot

logger = logging.getLogger(__name__)

TABLE_NAME = "health_reports"

# Column order matters: _row_to_entity reads rows positionally.
SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id              TEXT PRIMARY KEY,
    reporter_id     TEXT NOT NULL,
    symptoms        TEXT NOT NULL,
    location_id     TEXT NOT NULL,
    note            TEXT,
    status          TEXT NOT NULL,
    created_at      TIMESTAMP NOT NULL,
    status_history  TEXT NOT NULL,
    version         INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_location_created
    ON {TABLE_NAME} (location_id, created_at);
CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_reporter
    ON {TABLE_NAME} (reporter_id);
"""


def _history_to_json(history) -> str:
    return json.dumps([
        {
            "status": change.status.value,
            "actor_id": change.actor_id,
            "timestamp": change.timestamp.isoformat(),
        }
        for change in history
    ])


def _history_from_json(raw: str) -> tuple:
    return tuple(
        StatusChange(
            status=ReportStatus(item["status"]),
            actor_id=item["actor_id"],
            timestamp=datetime.fromisoformat(item["timestamp"]),
        )
        for item in json.loads(raw)
    )


class PostgresReportStore(BaseRepository[HealthReport], ReportStore):
    """Report Store persisted in the ``health_reports`` table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, TABLE_NAME)

    def create_schema(self) -> None:
        with self.connection_manager.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
        logger.info("REPORT_SCHEMA_ENSURED", extra={"table_name": TABLE_NAME})

    def _row_to_entity(self, row: tuple) -> HealthReport:
        (report_id, reporter_id, symptoms, location_id, note,
         status, created_at, status_history, version) = row
        return HealthReport(
            id=report_id,
            reporter_id=reporter_id,
            symptoms=tuple(json.loads(symptoms)),
            location_id=location_id,
            note=note,
            status=ReportStatus(status),
            created_at=created_at,
            status_history=_history_from_json(status_history),
            version=version,
        )

    def _entity_to_params(self, entity: HealthReport) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "reporter_id": entity.reporter_id,
            "symptoms": json.dumps(list(entity.symptoms)),
            "location_id": entity.location_id,
            "note": entity.note,
            "status": entity.status.value,
            "created_at": entity.created_at,
            "status_history": _history_to_json(entity.status_history),
            "version": entity.version,
        }

    def add(self, report: HealthReport) -> HealthReport:
        return self.insert(report)

    def get(self, report_id: str) -> Optional[HealthReport]:
        return self.find_by_id(report_id)

    def replace(self, report: HealthReport, expected_version: int) -> bool:
        return self.update_versioned(report, expected_version)

    def list_all(self) -> List[HealthReport]:
        return self.find_where()

    def list_by_reporter(self, reporter_id: str) -> List[HealthReport]:
        return self.find_where("reporter_id = %s", (reporter_id,))

    def list_in_window(self, location_id: str, start: datetime, end: datetime) -> List[HealthReport]:
        return self.find_where(
            "location_id = %s AND created_at >= %s AND created_at < %s",
            (location_id, start, end),
        )

    def snapshot(self) -> StoreSnapshot:
        # One SELECT is one consistent MVCC snapshot.
        reports = tuple(self.find_where())
        return StoreSnapshot(
            reports=reports,
            revision=len(reports) + sum(r.version for r in reports),
        )

    def location_revision(self, location_id: str) -> int:
        # Inserts bump the count and transitions bump a version, so the
        # sum only ever grows.
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT COUNT(*), COALESCE(SUM(version), 0) "
                    f"FROM {self.table_name} WHERE location_id = %s",
                    (location_id,)
                )
                row = cur.fetchone()

        if row is None:
            return 0
        return int(row[0]) + int(row[1])
