"""
Tests for the gRPC transport.

Tests status-code mapping on the servicer and full round trips through an
in-process server and the client.
"""

import json
import os
import shutil
import tempfile
from unittest.mock import Mock, patch

import grpc
import pytest

from analytics_service.client.analytics_client import AnalyticsClient
from analytics_service.config.loader import ServerConfig, ServiceConfig
from analytics_service.core.windows import TimeWindow
from analytics_service.server.grpc_server import (
    AnalyticsServicer,
    build_server,
    decode_payload,
    encode_payload,
    serve,
)
from analytics_service.service.analytics import LOG_ADDED_MESSAGE, AnalyticsService
from analytics_service.storage.repository import LogBackend, SQLiteLogRepository, StorageError


class AbortCalled(Exception):
    """Stands in for the exception grpc raises from context.abort()."""


def _context():
    context = Mock(spec=grpc.ServicerContext)
    context.abort.side_effect = AbortCalled
    return context


class TestPayloadCodec:
    """Test the JSON message framing."""

    def test_encode_decode(self):
        """Test message dictionaries survive the wire."""
        payload = {"service_name": "billing", "metadata": '{"a": 1}'}
        assert decode_payload(encode_payload(payload)) == payload

    def test_empty_bytes_decode_to_empty_message(self):
        """Test an empty request is an empty message."""
        assert decode_payload(b"") == {}

    @pytest.mark.parametrize("data", [b"not json", b"[1, 2]", b"\xff\xfe"])
    def test_decode_rejects_non_object(self, data):
        """Test malformed request bytes raise ValueError."""
        with pytest.raises(ValueError):
            decode_payload(data)


class TestServicer:
    """Test error kinds map onto gRPC status codes."""

    def setup_method(self):
        self.backend = Mock(spec=LogBackend)
        self.backend.query.return_value = []
        self.servicer = AnalyticsServicer(AnalyticsService(self.backend))

    def test_log_success(self):
        """Test a valid Log call returns the confirmation message."""
        request = encode_payload({
            "service_name": "billing", "level": "ERROR",
            "message": "charge failed", "metadata": '{"order_id": 42}',
        })

        response = self.servicer.Log(request, _context())

        assert response == {"message": LOG_ADDED_MESSAGE}
        self.backend.insert.assert_called_once()

    def test_log_invalid_metadata_is_invalid_argument(self):
        """Test malformed metadata maps to INVALID_ARGUMENT with no insert."""
        context = _context()
        request = encode_payload({
            "service_name": "billing", "level": "ERROR", "metadata": "not valid json{",
        })

        with pytest.raises(AbortCalled):
            self.servicer.Log(request, context)

        status, details = context.abort.call_args[0]
        assert status == grpc.StatusCode.INVALID_ARGUMENT
        assert "invalid metadata" in details
        self.backend.insert.assert_not_called()

    def test_log_malformed_request_is_invalid_argument(self):
        """Test undecodable request bytes map to INVALID_ARGUMENT."""
        context = _context()

        with pytest.raises(AbortCalled):
            self.servicer.Log(b"{broken", context)

        assert context.abort.call_args[0][0] == grpc.StatusCode.INVALID_ARGUMENT

    def test_log_wrong_field_type_is_invalid_argument(self):
        """Test a non-string metadata field maps to INVALID_ARGUMENT."""
        context = _context()
        request = encode_payload({"service_name": "billing", "level": "INFO", "metadata": {"a": 1}})

        with pytest.raises(AbortCalled):
            self.servicer.Log(request, context)

        assert context.abort.call_args[0][0] == grpc.StatusCode.INVALID_ARGUMENT

    def test_log_storage_failure_is_internal(self):
        """Test backend failures map to INTERNAL carrying the backend message."""
        self.backend.insert.side_effect = StorageError("insert failed: disk I/O error")
        context = _context()
        request = encode_payload({"service_name": "billing", "level": "INFO", "metadata": "{}"})

        with pytest.raises(AbortCalled):
            self.servicer.Log(request, context)

        context.abort.assert_called_once_with(
            grpc.StatusCode.INTERNAL, "insert failed: disk I/O error"
        )

    def test_unexpected_error_is_internal(self):
        """Test unexpected exceptions are reported as INTERNAL."""
        self.backend.query.side_effect = RuntimeError("boom")
        context = _context()

        with pytest.raises(AbortCalled):
            self.servicer.ListLogs(encode_payload({"window": "TODAY"}), context)

        status, details = context.abort.call_args[0]
        assert status == grpc.StatusCode.INTERNAL
        assert "boom" in details

    def test_list_logs_empty(self):
        """Test an empty result is a normal response."""
        response = self.servicer.ListLogs(encode_payload({"window": "LAST_WEEK"}), _context())
        assert response == {"logs": []}

    def test_list_logs_accepts_numeric_window(self):
        """Test the window may be sent as its enum number."""
        self.servicer.ListLogs(encode_payload({"window": 1}), _context())
        bounds = self.backend.query.call_args[0][0]
        assert bounds.lower is not None

    def test_list_logs_unknown_window_is_invalid_argument(self):
        """Test an unknown window maps to INVALID_ARGUMENT."""
        context = _context()

        with pytest.raises(AbortCalled):
            self.servicer.ListLogs(encode_payload({"window": "LAST_YEAR"}), context)

        assert context.abort.call_args[0][0] == grpc.StatusCode.INVALID_ARGUMENT
        self.backend.query.assert_not_called()

    def test_list_logs_storage_failure_is_internal(self):
        """Test query failures map to INTERNAL."""
        self.backend.query.side_effect = StorageError("malformed metadata in log row 3")
        context = _context()

        with pytest.raises(AbortCalled):
            self.servicer.ListLogs(b"", context)

        context.abort.assert_called_once_with(
            grpc.StatusCode.INTERNAL, "malformed metadata in log row 3"
        )


class TestServerRoundTrip:
    """Test the client against a live in-process server."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.backend = SQLiteLogRepository(os.path.join(self.temp_dir, "test.db"))
        self.backend.initialize()
        self.server, port = build_server(
            AnalyticsService(self.backend),
            ServerConfig(host="127.0.0.1", port=0, max_workers=4),
        )
        self.server.start()
        self.client = AnalyticsClient(f"127.0.0.1:{port}", timeout=10)

    def teardown_method(self):
        self.client.close()
        self.server.stop(None)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_log_then_list(self):
        """Test an entry logged over gRPC is listed back."""
        response = self.client.log(
            "billing", "ERROR", message="charge failed", metadata='{"order_id":42}'
        )
        assert response.message == LOG_ADDED_MESSAGE

        logs = self.client.list_logs(TimeWindow.TODAY).logs
        assert len(logs) == 1
        assert logs[0].service_name == "billing"
        assert logs[0].message == "charge failed"
        assert json.loads(logs[0].metadata) == {"order_id": 42}
        assert logs[0].created_at.tzinfo is not None

    def test_dict_metadata_is_encoded_by_client(self):
        """Test the client accepts metadata as a dict."""
        self.client.log("auth", "INFO", metadata={"user": {"id": 7}})
        logs = self.client.list_logs("unspecified").logs
        assert json.loads(logs[0].metadata) == {"user": {"id": 7}}

    def test_invalid_metadata_rejected_over_wire(self):
        """Test INVALID_ARGUMENT reaches the client and nothing is stored."""
        with pytest.raises(grpc.RpcError) as exc_info:
            self.client.log("billing", "ERROR", metadata="not valid json{")

        assert exc_info.value.code() == grpc.StatusCode.INVALID_ARGUMENT
        assert self.client.list_logs().logs == []

    def test_list_newest_first(self):
        """Test entries come back in reverse insertion order."""
        for name in ("first", "second", "third"):
            self.client.log(name, "INFO")

        services = [entry.service_name for entry in self.client.list_logs().logs]
        assert services == ["third", "second", "first"]

    def test_empty_store(self):
        """Test LAST_WEEK on an empty store is an empty list."""
        assert self.client.list_logs(TimeWindow.LAST_WEEK).logs == []


class TestServe:
    """Test startup bootstrapping."""

    def test_unreachable_backend_aborts_startup(self):
        """Test a failed ping stops startup before the listener is bound."""
        backend = Mock(spec=LogBackend)
        backend.ping.side_effect = StorageError("database unreachable")

        with patch('analytics_service.server.grpc_server.build_server') as mock_build:
            with pytest.raises(StorageError, match="unreachable"):
                serve(ServiceConfig(), backend=backend)
            mock_build.assert_not_called()

        backend.close.assert_called_once()

    def test_serve_runs_until_terminated(self):
        """Test serve initializes, pings, starts and waits on the server."""
        backend = Mock(spec=LogBackend)
        server = Mock()

        with patch('analytics_service.server.grpc_server.build_server',
                   return_value=(server, 8089)) as mock_build, \
                patch('analytics_service.server.grpc_server.signal.signal'):
            serve(ServiceConfig(), backend=backend)

        backend.initialize.assert_called_once()
        backend.ping.assert_called_once()
        mock_build.assert_called_once()
        server.start.assert_called_once()
        server.wait_for_termination.assert_called_once()
        backend.close.assert_called_once()

    def test_build_server_reports_bound_port(self):
        """Test an ephemeral port is resolved to the real one."""
        server, port = build_server(
            AnalyticsService(Mock(spec=LogBackend)),
            ServerConfig(host="127.0.0.1", port=0),
        )
        try:
            assert port > 0
        finally:
            server.stop(None)
