"""Public port exports for concrete adapter implementations."""

from .db_api import (
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
    "Database",
    "AsyncDatabase",
    "Dialect",
    "ParamCounter",
    "PoolConnector",
    "SQLiteDialect",
    "SQLiteNumberedDialect",
    "PostgresDialect",
    "PostgresNumberedDialect",
    "MySQLDialect",
]
