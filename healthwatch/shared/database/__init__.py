"""PostgreSQL connection pooling and repository base classes."""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
    get_connection_manager,
    load_database_config,
)
from .repository import (
    BaseRepository,
    RepositoryError,
    DuplicateError,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "get_connection_manager",
    "load_database_config",
    "BaseRepository",
    "RepositoryError",
    "DuplicateError",
]
