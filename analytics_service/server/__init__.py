"""
RPC server for the Analytics Service.
"""

from .grpc_server import AnalyticsServicer, build_server, serve

__all__ = ["AnalyticsServicer", "build_server", "serve"]
