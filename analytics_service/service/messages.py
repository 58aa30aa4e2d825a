"""
Request and response messages for the Analytics Service.

Each message converts to and from the plain dictionaries carried on the wire.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.windows import TimeWindow


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


@dataclass(frozen=True)
class LogRequest:
    """A caller's log entry, metadata still encoded."""
    service_name: str
    level: str
    message: Optional[str] = None
    metadata: str = "{}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogRequest":
        """Build a request from its wire dictionary.

        Raises:
            ValueError: If a field has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("LogRequest must be a JSON object")
        metadata = data.get("metadata")
        if metadata is None:
            metadata = "{}"
        elif not isinstance(metadata, str):
            raise ValueError("'metadata' must be a string")
        return cls(
            service_name=_optional_str(data, "service_name") or "",
            level=_optional_str(data, "level") or "",
            message=_optional_str(data, "message"),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class LogResponse:
    """Confirmation returned after a successful insert."""
    message: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogResponse":
        return cls(message=data.get("message", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


@dataclass(frozen=True)
class ListLogsRequest:
    """Query for log entries created within a window."""
    window: TimeWindow = TimeWindow.UNSPECIFIED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListLogsRequest":
        """Build a request from its wire dictionary.

        Raises:
            ValueError: If the window is unknown
        """
        if not isinstance(data, dict):
            raise ValueError("ListLogsRequest must be a JSON object")
        return cls(window=TimeWindow.parse(data.get("window")))

    def to_dict(self) -> Dict[str, Any]:
        return {"window": self.window.name}


@dataclass(frozen=True)
class LogEntry:
    """A stored log entry as sent back to callers."""
    service_name: str
    level: str
    message: str
    metadata: str
    created_at: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        created_at = datetime.fromisoformat(data["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            service_name=data["service_name"],
            level=data["level"],
            message=data.get("message") or "",
            metadata=data["metadata"],
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ListLogsResponse:
    """Entries matching a window, newest first."""
    logs: List[LogEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListLogsResponse":
        return cls(logs=[LogEntry.from_dict(item) for item in data.get("logs") or []])

    def to_dict(self) -> Dict[str, Any]:
        return {"logs": [entry.to_dict() for entry in self.logs]}
