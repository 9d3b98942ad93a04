"""CORS Checker - infer whether a browser could query the endpoint cross-origin.

The analysis itself runs outside a browser, so instead of a real preflight
it sends one POST carrying an ``Origin`` header and reads the
``Access-Control-Allow-*`` response headers the way a browser would.
"""

from __future__ import annotations

import logging

from rdfprobe.config import CORS_TEST_ORIGIN, Config
from rdfprobe.queries import FORMAT_PROBE_QUERY
from rdfprobe.sparql_helper import MimeTypes, SparqlHelper

logger = logging.getLogger(__name__)

__all__ = [
    "allows_cross_origin",
    "detect_cors",
]


def _allows_post(allow_methods: str | None) -> bool:
    return "POST" in allow_methods.upper() if allow_methods else True


def allows_cross_origin(
    allow_origin: str | None,
    allow_methods: str | None,
    origin: str = CORS_TEST_ORIGIN,
) -> bool:
    """Decide from CORS response headers whether *origin* may POST.

    Args:
        allow_origin: ``Access-Control-Allow-Origin`` value, if any
        allow_methods: ``Access-Control-Allow-Methods`` value, if any
        origin: The requesting origin

    Returns:
        ``True`` for ``*`` or an origin list containing *origin*, as long as
        a present ``Allow-Methods`` header mentions ``POST``
    """
    if not allow_origin:
        return False
    allow_origin = allow_origin.strip()
    if allow_origin != "*":
        origins = [o.strip() for o in allow_origin.split(",")]
        if origin not in origins:
            return False
    return _allows_post(allow_methods)


def detect_cors(
    endpoint_url: str,
    timeout_ms: int | None = None,
    *,
    helper: SparqlHelper | None = None,
) -> bool:
    """
    Check whether the endpoint would accept a cross-origin POST.

    Never raises: any error, including a cancelled analysis, means ``False``.

    Args:
        endpoint_url: SPARQL endpoint URL
        timeout_ms: Request timeout (default: ``Config.DEFAULT_TIMEOUT_MS``)
        helper: Transport to reuse (its session, auth and cancel event);
            a temporary one is created when omitted
    """
    timeout_ms = timeout_ms or Config.DEFAULT_TIMEOUT_MS
    own_helper = helper is None
    if helper is None:
        helper = SparqlHelper(endpoint_url, timeout_ms=timeout_ms)
    try:
        response = helper.post(
            FORMAT_PROBE_QUERY,
            accept=MimeTypes.JSON,
            extra_headers={"Origin": CORS_TEST_ORIGIN},
            timeout_ms=timeout_ms,
        )
        allowed = allows_cross_origin(
            response.headers.get("Access-Control-Allow-Origin"),
            response.headers.get("Access-Control-Allow-Methods"),
        )
    except Exception as e:
        logger.debug(f"CORS check failed: {e}")
        return False
    finally:
        if own_helper:
            helper.close()

    logger.debug(f"CORS allowed for {CORS_TEST_ORIGIN}: {allowed}")
    return allowed
