"""
Error Types

Every failure the exporter reports derives from GridServerError, so the
metrics layer can treat a failed collection cycle uniformly while the
concrete type still tells configuration problems, transport problems,
protocol problems and remote faults apart.
"""

from typing import Optional


class GridServerError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(GridServerError, ValueError):
    """Invalid connection URI or settings, detected before any I/O."""


class DatabaseError(GridServerError):
    """Reporting database connection, query or row processing failed."""


class SOAPError(GridServerError):
    """
    Base class for Web Services failures.

    Attributes:
        operation: Name of the remote operation that failed, e.g.
            "BrokerAdmin.getAllBrokerInfo". Set by the operation layer.
        elapsed: Seconds spent before the failure was detected.
    """

    def __init__(self, message: str, operation: Optional[str] = None,
                 elapsed: Optional[float] = None):
        super().__init__(message)
        self.operation = operation
        self.elapsed = elapsed


class RequestCreationError(SOAPError):
    """The HTTP request could not be built."""


class TransportFailureError(SOAPError):
    """The HTTP exchange failed (connection refused, timeout, DNS, TLS)."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason


class ResponseReadError(SOAPError):
    """The HTTP response body could not be read."""


class EmptyResponseError(SOAPError):
    """The server answered with a zero-length body."""


class MalformedResponseError(SOAPError):
    """The response body is not a usable SOAP envelope."""


class SOAPFaultError(SOAPError):
    """The server answered with a SOAP fault; the message is the fault string."""

    def __init__(self, fault, **kwargs):
        super().__init__(fault.string, **kwargs)
        self.fault = fault
