"""
Client for the Analytics Service.

Provides programmatic access to Log and ListLogs over gRPC.
"""

from .analytics_client import AnalyticsClient

__all__ = ["AnalyticsClient"]
