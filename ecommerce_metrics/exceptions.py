"""
Error taxonomy for the analytics service.

Storage and argument errors cross the query boundary and are mapped to HTTP
responses by the API layer. Stream errors stay inside the ingestor.
"""


class AnalyticsError(Exception):
    """Base class for all service errors"""


class StorageUnavailable(AnalyticsError):
    """Metric store connection or query failure (including timeouts)."""

    def __init__(self, operation: str, reason: str = "failed"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage operation '{operation}' {reason}")


class InvalidArgument(AnalyticsError):
    """A query parameter was outside its allowed values."""

    def __init__(self, parameter: str, value, allowed=None):
        self.parameter = parameter
        self.value = value
        self.allowed = list(allowed) if allowed is not None else None
        message = f"Invalid value for '{parameter}': {value!r}"
        if self.allowed:
            message += f" (allowed: {', '.join(map(str, self.allowed))})"
        super().__init__(message)


class MalformedStreamMessage(AnalyticsError):
    """A stream payload could not be decoded into real-time samples."""


class TransportDisconnected(AnalyticsError):
    """The stream transport dropped; the ingestor reconnects with backoff."""
