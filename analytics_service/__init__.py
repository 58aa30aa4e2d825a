"""
Analytics Service.

Centralized log ingestion and time-windowed retrieval over gRPC.
"""

__version__ = "0.1.0"
