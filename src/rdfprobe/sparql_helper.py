"""
SPARQL Helper - single-query transport with POST-first / GET-fallback.

This module is the only place that talks HTTP. It handles:
- POST with a form-encoded body first, then one GET retry when the POST
  answer is not ok or is an HTML page (a common symptom of endpoints that
  return an error page with status 200)
- A per-attempt timeout; a timeout is a failure, never a retry trigger.
  It is the ``requests`` timeout, so it bounds the connect and each socket
  read rather than the whole transfer: an endpoint that keeps trickling
  bytes can take longer than ``timeout_ms`` in total
- Cooperative cancellation through a :class:`threading.Event`
- Auth headers and a pooled ``requests`` session

Usage:
    from rdfprobe.sparql_helper import SparqlHelper

    with SparqlHelper("https://sparql.example.org/", timeout_ms=10000) as helper:
        data = helper.execute("SELECT ?s WHERE { ?s ?p ?o } LIMIT 10")
        exists = helper.ask("ASK { ?s a <http://example.org/Class> }")
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import requests

from rdfprobe.config import Config
from rdfprobe.errors import TransportError, classify_status
from rdfprobe.models import EndpointAuth
from rdfprobe.results import DecodedResult, decode

logger = logging.getLogger(__name__)

__all__ = [
    "MimeTypes",
    "SparqlHelper",
    "execute_sparql",
]


# MIME types for SPARQL responses
class MimeTypes:
    """Standard MIME types for SPARQL protocol."""

    JSON = "application/sparql-results+json"
    XML = "application/sparql-results+xml"
    FORM = "application/x-www-form-urlencoded"

    # Accept header for SELECT/ASK queries
    SELECT_ACCEPT = f"{JSON}, {XML};q=0.9"


class SparqlHelper:
    """
    SPARQL query executor bound to one endpoint.

    Attributes:
        endpoint_url: The SPARQL endpoint URL
        timeout_ms: Default per-attempt timeout in milliseconds
        auth: Optional credentials added to every request
        cancel: Optional event; once set, every further request fails

    Example:
        >>> helper = SparqlHelper("https://dbpedia.org/sparql")
        >>> data = helper.execute("SELECT ?g { GRAPH ?g { ?s ?p ?o } } LIMIT 5")
        >>> for binding in data["results"]["bindings"]:
        ...     print(binding["g"]["value"])
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout_ms: int | None = None,
        auth: EndpointAuth | None = None,
        cancel: threading.Event | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the SPARQL helper.

        Args:
            endpoint_url: SPARQL endpoint URL (kept verbatim; some endpoints
                only answer with a trailing slash)
            timeout_ms: Per-attempt timeout (default: ``Config.DEFAULT_TIMEOUT_MS``)
            auth: Credentials for protected endpoints
            cancel: Event that aborts all further requests once set
            session: Session to reuse; a new one is created (and closed by
                :meth:`close`) when omitted
        """
        self.endpoint_url = endpoint_url
        self.timeout_ms = timeout_ms or Config.DEFAULT_TIMEOUT_MS
        self.auth = auth
        self.cancel = cancel
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()

        logger.debug(f"SparqlHelper initialized for {self.endpoint_url}")

    # ---- public API -----------------------------------------------

    def execute(
        self,
        query: str,
        accept: str = MimeTypes.SELECT_ACCEPT,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """
        Execute a query and return the decoded result data.

        Args:
            query: SPARQL SELECT or ASK query
            accept: Accept header for content negotiation
            timeout_ms: Override the helper's timeout for this query

        Returns:
            SPARQL JSON results shape (XML answers are normalised to it)

        Raises:
            TransportError: On network failure, timeout, cancellation or a
                non-2xx status after both attempts
            DecodeError: If the body is neither SPARQL-JSON nor SPARQL-XML
        """
        return self.execute_decoded(query, accept, timeout_ms).data

    def execute_decoded(
        self,
        query: str,
        accept: str = MimeTypes.SELECT_ACCEPT,
        timeout_ms: int | None = None,
    ) -> DecodedResult:
        """Like :meth:`execute` but also report which format was decoded."""
        text, content_type = self.fetch(query, accept, timeout_ms)
        return decode(text, content_type)

    def ask(self, query: str, timeout_ms: int | None = None) -> bool | None:
        """
        Execute an ASK query.

        Returns:
            The boolean answer, or ``None`` when the response carries no
            boolean (e.g. the endpoint answered with bindings)
        """
        data = self.execute(query, timeout_ms=timeout_ms)
        answer = data.get("boolean")
        return answer if isinstance(answer, bool) else None

    def fetch(
        self,
        query: str,
        accept: str = MimeTypes.SELECT_ACCEPT,
        timeout_ms: int | None = None,
    ) -> tuple[str, str]:
        """
        Send a query with POST, falling back to GET once.

        Args:
            query: SPARQL query string
            accept: Accept header for content negotiation
            timeout_ms: Per-attempt timeout override

        Returns:
            Tuple of (response body, Content-Type header)

        Raises:
            TransportError: If no attempt produced a 2xx response
        """
        query = query.strip()
        response = self._send("POST", query, accept, timeout_ms)
        content_type = response.headers.get("Content-Type") or ""

        if not response.ok or "text/html" in content_type:
            logger.debug(
                f"POST returned {response.status_code} ({content_type or 'no content type'}), "
                "retrying with GET"
            )
            response = self._send("GET", query, accept, timeout_ms)
            content_type = response.headers.get("Content-Type") or ""

        if not response.ok:
            status = response.status_code
            raise TransportError(
                f"HTTP {status}: {response.reason or ''}".rstrip(),
                code=classify_status(status),
                status=status,
            )

        return response.text, content_type

    def post(
        self,
        query: str,
        accept: str,
        extra_headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> requests.Response:
        """Send a single POST without fallback and return the raw response."""
        return self._send("POST", query.strip(), accept, timeout_ms, extra_headers)

    # ---- internals -------------------------------------------------

    def _headers(self, accept: str) -> dict[str, str]:
        headers = {
            "Accept": accept,
            "User-Agent": Config.USER_AGENT,
        }
        if self.auth is not None:
            headers.update(self.auth.headers())
        return headers

    def _send(
        self,
        method: str,
        query: str,
        accept: str,
        timeout_ms: int | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Issue one HTTP request for a query.

        ``timeout_ms`` is passed to ``requests`` for both the connect and
        the read timeout; it is not a deadline for the whole response.

        Raises:
            TransportError: On cancellation, timeout or connection failure
        """
        if self.cancel is not None and self.cancel.is_set():
            raise TransportError("Request cancelled", code="CANCELLED")

        timeout_ms = timeout_ms or self.timeout_ms
        headers = self._headers(accept)
        if extra_headers:
            headers.update(extra_headers)
        payload = {"query": query, "format": "json"}

        logger.debug(f"Executing query with {method}")
        try:
            if method == "POST":
                headers["Content-Type"] = MimeTypes.FORM
                return self._session.post(
                    self.endpoint_url,
                    data=payload,
                    headers=headers,
                    timeout=timeout_ms / 1000,
                )
            return self._session.get(
                self.endpoint_url,
                params=payload,
                headers=headers,
                timeout=timeout_ms / 1000,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(
                f"Request timed out after {timeout_ms}ms", code="TIMEOUT",
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error: {e}", code="NETWORK_ERROR") from e

    def close(self) -> None:
        """Close the underlying requests session if this helper created it."""
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> SparqlHelper:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - close session."""
        self.close()

    def __repr__(self) -> str:
        return f"SparqlHelper({self.endpoint_url!r}, timeout_ms={self.timeout_ms})"


# Convenience function for one-off queries
def execute_sparql(
    endpoint_url: str,
    query: str,
    timeout_ms: int | None = None,
) -> dict[str, Any]:
    """
    Execute a one-off query.

    Convenience function when you don't need to reuse the helper.

    Args:
        endpoint_url: SPARQL endpoint URL
        query: SPARQL SELECT or ASK query
        timeout_ms: Per-attempt timeout

    Returns:
        SPARQL JSON results shape
    """
    with SparqlHelper(endpoint_url, timeout_ms=timeout_ms) as helper:
        return helper.execute(query)
