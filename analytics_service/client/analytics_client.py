"""
Analytics Service gRPC client.

Sends log entries to a running service and reads them back by time window.
"""

import json
from typing import Any, Dict, Optional, Union

import grpc

from ..core.windows import TimeWindow
from ..server.grpc_server import LIST_LOGS_METHOD, LOG_METHOD, decode_payload, encode_payload
from ..service.messages import ListLogsRequest, ListLogsResponse, LogRequest, LogResponse


class AnalyticsClient:
    """Blocking client for the Analytics Service.

    Failures are loud: gRPC errors reach the caller unchanged, so an
    INVALID_ARGUMENT or INTERNAL status can be inspected with ``.code()``.
    """

    def __init__(self, target: str = "localhost:8089", timeout: Optional[float] = None):
        """Initialize the client.

        Args:
            target: host:port of the service (required)
            timeout: Per-call deadline in seconds (no deadline if None)

        Raises:
            ValueError: If target is missing/empty
        """
        if not target or not target.strip():
            raise ValueError("target is required and cannot be empty")

        self.target = target
        self.timeout = timeout
        self.channel = grpc.insecure_channel(target)
        self._log = self.channel.unary_unary(
            LOG_METHOD,
            request_serializer=encode_payload,
            response_deserializer=decode_payload,
        )
        self._list_logs = self.channel.unary_unary(
            LIST_LOGS_METHOD,
            request_serializer=encode_payload,
            response_deserializer=decode_payload,
        )

    def log(
        self,
        service_name: str,
        level: str,
        message: Optional[str] = None,
        metadata: Union[str, Dict[str, Any], None] = None,
    ) -> LogResponse:
        """Send one log entry.

        Args:
            service_name: Originating service (required)
            level: Severity label (required)
            message: Free-text description
            metadata: Encoded JSON object, or a dict to be encoded here

        Returns:
            The service's confirmation
        """
        if isinstance(metadata, dict):
            metadata = json.dumps(metadata)

        request = LogRequest(
            service_name=service_name,
            level=level,
            message=message,
            metadata="{}" if metadata is None else metadata,
        )
        return LogResponse.from_dict(self._log(request.to_dict(), timeout=self.timeout))

    def list_logs(self, window: Union[TimeWindow, str, int] = TimeWindow.UNSPECIFIED) -> ListLogsResponse:
        """Fetch entries created within a window, newest first."""
        request = ListLogsRequest(window=TimeWindow.parse(window))
        return ListLogsResponse.from_dict(self._list_logs(request.to_dict(), timeout=self.timeout))

    def close(self) -> None:
        self.channel.close()

    def __enter__(self) -> "AnalyticsClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
