"""
Repository pattern for data access.

Defines the storage backend contract and its relational (SQLite) and
document (MongoDB) realizations.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson.errors import BSONError
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from ..config.loader import BackendKind, StorageConfig
from ..core.codec import CodecError, decode_metadata, encode_metadata
from ..core.windows import TimeBounds, utc_now
from .db import DEFAULT_SQLITE_PATH, build_mongo_uri, get_connection, get_mongo_client
from .models import LogRecord, StoredLogEntry

logger = logging.getLogger(__name__)

# Text layout of created_at in SQLite; sorts lexicographically in time order
SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class StorageError(Exception):
    """Raised when a backend is unreachable, rejects a write, or holds malformed data."""


class LogBackend(ABC):
    """Storage contract shared by every backend.

    Entries are append-only: there is an insert and a query, never an update
    or a delete. created_at is always assigned here, never by the caller.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Create tables or indexes if they do not exist yet."""

    @abstractmethod
    def ping(self) -> None:
        """Check the backend is reachable.

        Raises:
            StorageError: If the backend cannot be reached
        """

    @abstractmethod
    def insert(self, record: LogRecord) -> None:
        """Append one log record with a storage-assigned created_at.

        Raises:
            StorageError: On connectivity loss, constraint violation or
                serialization failure
        """

    @abstractmethod
    def query(self, bounds: Optional[TimeBounds] = None) -> List[StoredLogEntry]:
        """Fetch entries whose created_at lies within bounds.

        Returns:
            Entries ordered by created_at, newest first; ties broken by
            insertion order, newest first

        Raises:
            StorageError: On connectivity loss or malformed stored data
        """

    def close(self) -> None:
        """Release the underlying connection."""


def format_sqlite_timestamp(moment: datetime) -> str:
    """Render a datetime as the UTC text layout SQLite stores."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(SQLITE_TIMESTAMP_FORMAT)[:-3]


def format_sqlite_bound(moment: datetime) -> str:
    """Render a window bound, rounded up to the millisecond SQLite stores.

    Stored values carry whole milliseconds, so rounding up keeps both
    ``>=`` on the lower bound and ``<`` on the upper bound exact.
    """
    remainder = moment.microsecond % 1000
    if remainder:
        moment += timedelta(microseconds=1000 - remainder)
    return format_sqlite_timestamp(moment)


def parse_sqlite_timestamp(value: str) -> datetime:
    """Parse a stored created_at value into an aware UTC datetime."""
    try:
        moment = datetime.strptime(value, SQLITE_TIMESTAMP_FORMAT)
    except ValueError:
        moment = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    return moment.replace(tzinfo=timezone.utc)


class SQLiteLogRepository(LogBackend):
    """Row-oriented backend.

    Metadata lives in a serialized JSON TEXT column. created_at is filled by
    the database default from its UTC clock at millisecond precision.
    """

    def __init__(self, db_path: str = DEFAULT_SQLITE_PATH, timeout: Optional[float] = None):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path, self.timeout)
        except sqlite3.Error as e:
            raise StorageError(f"cannot open database {self.db_path}: {e}") from e

    def initialize(self) -> None:
        """Create the logs table if it doesn't exist.

        This is an append-only table. No UPDATE or DELETE operations should
        ever be performed on it.
        """
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    service TEXT NOT NULL CHECK (service <> ''),
                    level TEXT NOT NULL,
                    message TEXT,
                    metadata TEXT NOT NULL,
                    created_at TEXT NOT NULL
                        DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_logs_created_at ON logs (created_at)"
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"cannot initialize schema: {e}") from e
        finally:
            conn.close()

    def ping(self) -> None:
        conn = self._connect()
        try:
            conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"database unreachable: {e}") from e
        finally:
            conn.close()

    def insert(self, record: LogRecord) -> None:
        try:
            metadata = encode_metadata(record.metadata)
        except CodecError as e:
            raise StorageError(str(e)) from e

        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO logs (service, level, message, metadata) VALUES (?, ?, ?, ?)",
                (record.service_name, record.level, record.message, metadata),
            )
            conn.commit()
        except (sqlite3.Error, UnicodeEncodeError) as e:
            conn.rollback()
            raise StorageError(f"insert failed: {e}") from e
        finally:
            conn.close()

    def query(self, bounds: Optional[TimeBounds] = None) -> List[StoredLogEntry]:
        query, params = self._build_select(bounds)

        conn = self._connect()
        try:
            cursor = conn.execute(query, params)
            return [self._row_to_entry(row) for row in cursor]
        except sqlite3.Error as e:
            raise StorageError(f"query failed: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _build_select(bounds: Optional[TimeBounds]) -> Tuple[str, List[str]]:
        """Compile bounds into a SELECT with created_at predicates."""
        query = "SELECT id, service, level, message, metadata, created_at FROM logs"
        params = []
        conditions = []

        if bounds is not None:
            if bounds.lower is not None:
                conditions.append("created_at >= ?")
                params.append(format_sqlite_bound(bounds.lower))
            if bounds.upper is not None:
                conditions.append("created_at < ?")
                params.append(format_sqlite_bound(bounds.upper))

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY created_at DESC, id DESC"
        return query, params

    @staticmethod
    def _row_to_entry(row: Tuple[Any, ...]) -> StoredLogEntry:
        row_id, service, level, message, metadata, created_at = row
        try:
            document = decode_metadata(metadata)
        except CodecError as e:
            raise StorageError(f"malformed metadata in log row {row_id}: {e}") from e
        try:
            timestamp = parse_sqlite_timestamp(created_at)
        except (TypeError, ValueError) as e:
            raise StorageError(f"malformed created_at in log row {row_id}: {e}") from e

        return StoredLogEntry(
            service_name=service,
            level=level,
            message=message or "",
            metadata=document,
            created_at=timestamp,
        )


class MongoLogRepository(LogBackend):
    """Document-oriented backend.

    Metadata is kept as a native nested document. created_at is a BSON date
    taken from this repository's clock at insert time.
    """

    def __init__(
        self,
        collection,
        clock: Callable[[], datetime] = utc_now,
        client=None,
    ):
        """Initialize the repository.

        Args:
            collection: pymongo Collection holding log documents
            clock: Source of created_at timestamps (UTC)
            client: Owning MongoClient, closed by close() when given
        """
        self.collection = collection
        self.clock = clock
        self.client = client

    @classmethod
    def from_settings(
        cls,
        host: str,
        port: int,
        database: str,
        collection: str = "logs",
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> "MongoLogRepository":
        """Build a repository with its own long-lived client."""
        client = get_mongo_client(build_mongo_uri(host, port, user, password), timeout)
        return cls(client[database][collection], client=client)

    def initialize(self) -> None:
        try:
            self.collection.create_index([("created_at", DESCENDING), ("_id", DESCENDING)])
        except PyMongoError as e:
            raise StorageError(f"cannot create indexes: {e}") from e

    def ping(self) -> None:
        try:
            self.collection.database.command("ping")
        except PyMongoError as e:
            raise StorageError(f"database unreachable: {e}") from e

    def insert(self, record: LogRecord) -> None:
        document = {
            "service": record.service_name,
            "level": record.level,
            "message": record.message,
            "metadata": dict(record.metadata),
            "created_at": self.clock(),
        }
        try:
            self.collection.insert_one(document)
        except PyMongoError as e:
            raise StorageError(f"insert failed: {e}") from e
        except (BSONError, OverflowError) as e:
            raise StorageError(f"cannot serialize log document: {e}") from e

    def query(self, bounds: Optional[TimeBounds] = None) -> List[StoredLogEntry]:
        try:
            cursor = self.collection.find(self._build_filter(bounds)).sort(
                [("created_at", DESCENDING), ("_id", DESCENDING)]
            )
            return [self._document_to_entry(document) for document in cursor]
        except PyMongoError as e:
            raise StorageError(f"query failed: {e}") from e

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    @staticmethod
    def _build_filter(bounds: Optional[TimeBounds]) -> Dict[str, Any]:
        """Compile bounds into a range predicate on created_at."""
        if bounds is None or bounds.is_unbounded:
            return {}

        predicate = {}
        if bounds.lower is not None:
            predicate["$gte"] = bounds.lower
        if bounds.upper is not None:
            predicate["$lt"] = bounds.upper
        return {"created_at": predicate}

    @staticmethod
    def _document_to_entry(document: Dict[str, Any]) -> StoredLogEntry:
        document_id = document.get("_id")
        metadata = document.get("metadata")
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise StorageError(
                f"malformed metadata in log document {document_id}: "
                f"expected an object, got {type(metadata).__name__}"
            )

        created_at = document.get("created_at")
        if not isinstance(created_at, datetime):
            raise StorageError(f"malformed created_at in log document {document_id}")
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        try:
            return StoredLogEntry(
                service_name=document["service"],
                level=document["level"],
                message=document.get("message") or "",
                metadata=metadata,
                created_at=created_at,
            )
        except KeyError as e:
            raise StorageError(f"log document {document_id} is missing field {e}") from e


def create_backend(config: StorageConfig) -> LogBackend:
    """Build the backend selected by configuration.

    The returned backend is meant to live for the whole process and be
    passed explicitly to whoever needs it.

    Args:
        config: Storage section of the service configuration

    Returns:
        A backend for the configured storage paradigm
    """
    timeout = config.request_timeout_seconds
    logger.info("Using %s storage backend", config.backend.value)

    if config.backend is BackendKind.SQLITE:
        return SQLiteLogRepository(config.sqlite.path, timeout=timeout)

    if config.backend is BackendKind.MONGODB:
        mongo = config.mongodb
        return MongoLogRepository.from_settings(
            host=mongo.host,
            port=mongo.port,
            database=mongo.database,
            collection=mongo.collection,
            user=mongo.user,
            password=mongo.password,
            timeout=timeout,
        )

    raise ValueError(f"Unsupported backend: {config.backend!r}")
