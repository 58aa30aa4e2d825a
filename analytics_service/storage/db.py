"""
Database connection management.

Provides the SQLite connection and the MongoDB client used by the backends.
"""

import sqlite3
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

from pymongo import MongoClient

DEFAULT_SQLITE_PATH = "analytics_service.db"


def get_connection(db_path: str = DEFAULT_SQLITE_PATH, timeout: Optional[float] = None) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait on a locked database (sqlite3 default if None)

    Returns:
        SQLite connection in WAL journal mode
    """
    path = Path(db_path)
    if timeout is None:
        conn = sqlite3.connect(str(path))
    else:
        conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def build_mongo_uri(
    host: str,
    port: int,
    user: Optional[str] = None,
    password: Optional[str] = None,
) -> str:
    """Build a MongoDB connection string.

    Credentials are URL-quoted and left out entirely when no user is set.
    """
    credentials = ""
    if user:
        credentials = quote_plus(user)
        if password:
            credentials += ":" + quote_plus(password)
        credentials += "@"
    return f"mongodb://{credentials}{host}:{port}/?retryWrites=true&w=majority"


def get_mongo_client(uri: str, timeout: Optional[float] = None) -> MongoClient:
    """Create a MongoDB client returning timezone-aware datetimes.

    The client owns a thread-safe connection pool and is meant to be created
    once per process.
    """
    options = {"tz_aware": True}
    if timeout is not None:
        timeout_ms = int(timeout * 1000)
        options["serverSelectionTimeoutMS"] = timeout_ms
        options["socketTimeoutMS"] = timeout_ms
    return MongoClient(uri, **options)
