"""Base repository for PostgreSQL-backed stores.

Subclasses map one entity type to one table and inherit connection handling,
optimistic version checks and consistent logging.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class DuplicateError(RepositoryError):
    """Entity with the same id already exists."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract repository with the operations every table needs.

    Entities are never deleted; updates are guarded by a ``version`` column.
    """

    def __init__(self, connection_manager: ConnectionManager, table_name: str):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info("REPOSITORY_INITIALIZED", extra={"table_name": table_name})

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert a database row to an entity."""

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to column -> value parameters."""

    def find_by_id(self, entity_id: str) -> Optional[T]:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT * FROM {self.table_name} WHERE id = %s",
                    (entity_id,)
                )
                row = cur.fetchone()

        if row is None:
            return None
        return self._row_to_entity(row)

    def find_where(self, clause: str = "", params: Sequence[Any] = ()) -> List[T]:
        """Return entities matching an optional WHERE clause, oldest first."""
        query = f"SELECT * FROM {self.table_name}"
        if clause:
            query += f" WHERE {clause}"
        query += " ORDER BY created_at ASC, id ASC"

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                rows = cur.fetchall()

        return [self._row_to_entity(row) for row in rows]

    def insert(self, entity: T) -> T:
        """Insert a new entity.

        Raises:
            DuplicateError: If the id is already taken
        """
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))

        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) ON CONFLICT (id) DO NOTHING"
        )

        with self.connection_manager.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(query, list(params.values()))
                inserted = cur.rowcount

        if inserted == 0:
            logger.warning(
                "REPOSITORY_DUPLICATE_INSERT",
                extra={"table_name": self.table_name, "entity_id": params.get("id")}
            )
            raise DuplicateError(f"{self.table_name} entry {params.get('id')} already exists")

        return entity

    def update_versioned(self, entity: T, expected_version: int) -> bool:
        """Overwrite an entity only if its stored version is ``expected_version``.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        params = self._entity_to_params(entity)
        columns = [col for col in params if col != "id"]
        assignments = ", ".join(f"{col} = %s" for col in columns)

        query = (
            f"UPDATE {self.table_name} SET {assignments} "
            f"WHERE id = %s AND version = %s"
        )
        values = [params[col] for col in columns] + [params["id"], expected_version]

        with self.connection_manager.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(query, values)
                updated = cur.rowcount

        if updated == 0:
            logger.warning(
                "REPOSITORY_VERSION_CONFLICT",
                extra={
                    "table_name": self.table_name,
                    "entity_id": params["id"],
                    "expected_version": expected_version,
                }
            )
        return updated > 0
