"""
Analytics Service request handling.

Orchestrates the metadata codec, the time-window resolver and a storage
backend behind the Log and ListLogs operations.
"""

import logging
from datetime import datetime
from typing import Callable

from ..core.codec import CodecError, decode_metadata, encode_metadata
from ..core.windows import resolve_window, utc_now
from ..storage.models import LogRecord
from ..storage.repository import LogBackend, StorageError
from .messages import ListLogsRequest, ListLogsResponse, LogEntry, LogRequest, LogResponse

logger = logging.getLogger(__name__)

LOG_ADDED_MESSAGE = "Log entry added successfully"


class ValidationError(ValueError):
    """Raised when caller input is malformed. Detected before any write."""


def _require_utf8(field_name: str, value) -> None:
    if not value:
        return
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValidationError(f"{field_name} is not valid UTF-8 text: {e}") from e


class AnalyticsService:
    """Stateless handler for log ingestion and time-windowed retrieval.

    The backend is injected once and shared by every call; the service
    itself keeps no per-call state.
    """

    def __init__(self, backend: LogBackend, clock: Callable[[], datetime] = utc_now):
        """Initialize the service.

        Args:
            backend: Storage backend shared by all calls
            clock: Reference time for window resolution (UTC)
        """
        self.backend = backend
        self.clock = clock

    def log(self, request: LogRequest) -> LogResponse:
        """Validate and persist one log entry.

        Args:
            request: Entry to store, metadata still encoded

        Returns:
            Fixed confirmation message

        Raises:
            ValidationError: If service_name or level is empty, or metadata
                is not a JSON object; nothing is written
            StorageError: If the backend insert fails
        """
        if not request.service_name or not request.service_name.strip():
            raise ValidationError("service_name is required and cannot be empty")
        if not request.level or not request.level.strip():
            raise ValidationError("level is required and cannot be empty")
        for field_name in ("service_name", "level", "message"):
            _require_utf8(field_name, getattr(request, field_name))

        try:
            metadata = decode_metadata(request.metadata)
        except CodecError as e:
            raise ValidationError(f"invalid metadata: {e}") from e

        record = LogRecord(
            service_name=request.service_name,
            level=request.level,
            message=request.message or "",
            metadata=metadata,
        )
        self.backend.insert(record)

        logger.debug("Stored log entry from %s at level %s", record.service_name, record.level)
        return LogResponse(message=LOG_ADDED_MESSAGE)

    def list_logs(self, request: ListLogsRequest) -> ListLogsResponse:
        """Return every entry created within the requested window.

        A single bad row fails the whole call; rows are never dropped.

        Raises:
            StorageError: If the query fails or a stored entry cannot be
                re-encoded
        """
        bounds = resolve_window(request.window, self.clock())
        entries = self.backend.query(bounds)

        logs = []
        for entry in entries:
            try:
                metadata = encode_metadata(entry.metadata)
            except CodecError as e:
                raise StorageError(
                    f"cannot encode metadata of entry from {entry.service_name} "
                    f"created at {entry.created_at.isoformat()}: {e}"
                ) from e
            logs.append(LogEntry(
                service_name=entry.service_name,
                level=entry.level,
                message=entry.message or "",
                metadata=metadata,
                created_at=entry.created_at,
            ))

        logger.debug("Listed %d log entries for window %s", len(logs), request.window.name)
        return ListLogsResponse(logs=logs)
