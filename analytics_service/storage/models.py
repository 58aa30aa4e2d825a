"""
Data models for storage layer.

Defines the log records written to and read from a backend.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class LogRecord:
    """A log entry as handed to a backend for insertion.

    created_at is absent on purpose: the storage layer assigns it.
    """
    service_name: str
    level: str
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StoredLogEntry:
    """Immutable log entry as read back from a backend.

    Entries are append-only; once written they are never modified.
    """
    service_name: str
    level: str
    message: str
    metadata: Dict[str, Any]
    created_at: datetime
