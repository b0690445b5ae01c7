"""mini_dao: dataclass entities, dialect-aware SQL and pooled DB-API handles."""

from .config import DatabaseSettings, get_settings, reset_settings
from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .logging import configure_logging
from .ports.db_api import (
    AsyncDatabase,
    Database,
    Dialect,
    MySQLDialect,
    ParamCounter,
    PoolConnector,
    PostgresDialect,
    PostgresNumberedDialect,
    SQLiteDialect,
    SQLiteNumberedDialect,
)

__all__ = [
    *_core_all,
    "AsyncDatabase",
    "Database",
    "DatabaseSettings",
    "Dialect",
    "MySQLDialect",
    "ParamCounter",
    "PoolConnector",
    "PostgresDialect",
    "PostgresNumberedDialect",
    "SQLiteDialect",
    "SQLiteNumberedDialect",
    "configure_logging",
    "get_settings",
    "reset_settings",
]
