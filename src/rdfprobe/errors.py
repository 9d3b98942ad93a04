"""Exception taxonomy for SPARQL transport and result decoding.

Only :class:`TransportError` and :class:`DecodeError` are ever raised.
Probe and section failures are recorded as
:class:`~rdfprobe.models.FailureRecord` entries instead.
"""

from __future__ import annotations

__all__ = [
    "DecodeError",
    "SparqlHelperError",
    "TransportError",
    "classify_status",
]


class SparqlHelperError(Exception):
    """Base exception for SPARQL helper errors."""

    pass


class TransportError(SparqlHelperError):
    """Raised on network failure, timeout, cancellation or a non-2xx status.

    Attributes:
        code: Coarse failure category (``TIMEOUT``, ``SERVER_ERROR``, ...)
        status: HTTP status code, when a response was received
    """

    def __init__(self, message: str, code: str = "UNKNOWN", status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class DecodeError(SparqlHelperError):
    """Raised when a response body is neither SPARQL-JSON nor SPARQL-XML."""

    pass


def classify_status(status: int) -> str:
    """Map an HTTP status code to a failure category."""
    if status == 400:
        return "QUERY_ERROR"
    if status == 401:
        return "AUTH_REQUIRED"
    if status == 403:
        return "AUTH_FAILED"
    if status == 404:
        return "NOT_FOUND"
    if status == 408:
        return "TIMEOUT"
    if 500 <= status <= 599:
        return "SERVER_ERROR"
    return "UNKNOWN"
