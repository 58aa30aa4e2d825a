"""
gRPC transport for the Analytics Service.

Messages travel as UTF-8 JSON objects through grpcio generic handlers, so no
generated stubs are needed on either side.
"""

import json
import logging
import signal
from concurrent import futures
from typing import Any, Callable, Dict, Optional, Tuple

import grpc

from ..config.loader import ServerConfig, ServiceConfig
from ..service.analytics import AnalyticsService, ValidationError
from ..service.messages import ListLogsRequest, LogRequest
from ..storage.repository import LogBackend, StorageError, create_backend

logger = logging.getLogger(__name__)

SERVICE_NAME = "analytics_service.AnalyticsService"
LOG_METHOD = f"/{SERVICE_NAME}/Log"
LIST_LOGS_METHOD = f"/{SERVICE_NAME}/ListLogs"


def encode_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize a message dictionary for the wire."""
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def decode_payload(data: bytes) -> Dict[str, Any]:
    """Parse wire bytes into a message dictionary.

    Empty bytes decode to an empty message.

    Raises:
        ValueError: If the bytes are not a UTF-8 JSON object
    """
    if not data:
        return {}
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"request is not a JSON message: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError("request must be a JSON object")
    return payload


class AnalyticsServicer:
    """Maps Analytics Service errors onto gRPC status codes.

    ValidationError and malformed requests become INVALID_ARGUMENT; every
    storage or unexpected failure becomes INTERNAL with its message attached.
    """

    def __init__(self, service: AnalyticsService):
        self.service = service

    def Log(self, request: bytes, context: grpc.ServicerContext) -> Dict[str, Any]:
        try:
            log_request = LogRequest.from_dict(decode_payload(request))
        except ValueError as e:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))

        return self._call("Log", lambda: self.service.log(log_request), context)

    def ListLogs(self, request: bytes, context: grpc.ServicerContext) -> Dict[str, Any]:
        try:
            list_request = ListLogsRequest.from_dict(decode_payload(request))
        except ValueError as e:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))

        return self._call("ListLogs", lambda: self.service.list_logs(list_request), context)

    def _call(self, method: str, operation: Callable, context: grpc.ServicerContext) -> Dict[str, Any]:
        # abort() raises, so it must stay outside the try block
        try:
            response = operation()
        except ValidationError as e:
            logger.warning("%s rejected: %s", method, e)
            status, details = grpc.StatusCode.INVALID_ARGUMENT, str(e)
        except StorageError as e:
            logger.error("%s failed: %s", method, e)
            status, details = grpc.StatusCode.INTERNAL, str(e)
        except Exception as e:
            logger.exception("%s raised an unexpected error", method)
            status, details = grpc.StatusCode.INTERNAL, f"internal error: {e}"
        else:
            logger.info("%s succeeded", method)
            return response.to_dict()

        context.abort(status, details)


def add_analytics_servicer_to_server(servicer: AnalyticsServicer, server: grpc.Server) -> None:
    """Register the servicer's methods on a gRPC server."""
    rpc_method_handlers = {
        "Log": grpc.unary_unary_rpc_method_handler(
            servicer.Log,
            response_serializer=encode_payload,
        ),
        "ListLogs": grpc.unary_unary_rpc_method_handler(
            servicer.ListLogs,
            response_serializer=encode_payload,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler(SERVICE_NAME, rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))


def build_server(service: AnalyticsService, config: ServerConfig) -> Tuple[grpc.Server, int]:
    """Create a server bound to the configured address.

    Returns:
        The (not yet started) server and the port actually bound, which
        differs from the configured one when that is 0

    Raises:
        RuntimeError: If the address cannot be bound
    """
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=config.max_workers))
    add_analytics_servicer_to_server(AnalyticsServicer(service), server)

    try:
        port = server.add_insecure_port(config.address)
    except RuntimeError as e:
        raise RuntimeError(f"failed to listen on {config.address}: {e}") from e
    if port == 0:
        raise RuntimeError(f"failed to listen on {config.address}")

    return server, port


def serve(config: ServiceConfig, backend: Optional[LogBackend] = None) -> None:
    """Run the Analytics Service until the process is told to stop.

    The backend is created once, initialized and pinged before the listener
    is bound; an unreachable backend aborts startup.

    Args:
        config: Complete service configuration
        backend: Pre-built backend, created from config when omitted

    Raises:
        StorageError: If the backend cannot be initialized or reached
        RuntimeError: If the listener cannot be bound
    """
    if backend is None:
        backend = create_backend(config.storage)

    try:
        backend.initialize()
        backend.ping()
        logger.info("Storage backend %s is reachable", config.storage.backend.value)

        server, port = build_server(AnalyticsService(backend), config.server)
        server.start()
        logger.info("Server listening at %s:%d", config.server.host, port)

        def _shutdown(signum, frame):
            logger.info("Received signal %d, shutting down", signum)
            server.stop(config.server.grace_period_seconds)

        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)

        server.wait_for_termination()
        logger.info("Server stopped")
    finally:
        backend.close()
