"""DB-API database handles, dialects and connection pool exports."""

from .async_database import AsyncDatabase
from .database import Database
from .dialects import (
    Dialect,
    MySQLDialect,
    ParamCounter,
    PostgresDialect,
    PostgresNumberedDialect,
    SQLiteDialect,
    SQLiteNumberedDialect,
    dialect_for,
)
from .pool_connector import PoolConnector

__all__ = [
    "AsyncDatabase",
    "Database",
    "Dialect",
    "MySQLDialect",
    "ParamCounter",
    "PoolConnector",
    "PostgresDialect",
    "PostgresNumberedDialect",
    "SQLiteDialect",
    "SQLiteNumberedDialect",
    "dialect_for",
]
