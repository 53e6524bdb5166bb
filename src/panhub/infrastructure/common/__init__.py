"""Shared infrastructure utilities."""

from .retry_transport import RetryTransport

__all__ = ["RetryTransport"]
