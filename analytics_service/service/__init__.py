"""
Analytics Service operations.

Provides the Log and ListLogs handlers and their messages.
"""

from .analytics import LOG_ADDED_MESSAGE, AnalyticsService, ValidationError
from .messages import ListLogsRequest, ListLogsResponse, LogEntry, LogRequest, LogResponse

__all__ = [
    "AnalyticsService",
    "ValidationError",
    "LOG_ADDED_MESSAGE",
    "LogRequest",
    "LogResponse",
    "ListLogsRequest",
    "ListLogsResponse",
    "LogEntry",
]
