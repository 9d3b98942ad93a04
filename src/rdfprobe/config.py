"""Analysis defaults loaded from environment variables."""

from __future__ import annotations

import os

from rdfprobe.version import VERSION


class Config:
    """Default tunables for endpoint analysis."""

    # Per-query timeout when the endpoint config does not set one
    DEFAULT_TIMEOUT_MS = int(os.getenv("RDFPROBE_TIMEOUT_MS", "20000"))

    # Rows per listing page in the safe strategy
    DEFAULT_PAGE_SIZE = int(os.getenv("RDFPROBE_PAGE_SIZE", "200"))

    USER_AGENT = os.getenv(
        "RDFPROBE_USER_AGENT", f"rdfprobe/{VERSION} (SPARQL client)",
    )


# Capability probes never wait longer than this, whatever the caller asks for
PROBE_TIMEOUT_CAP_MS = 20000

# Inventory caps
GRAPH_LIMIT = 200
TYPE_LIMIT = 500
PREDICATE_LIMIT = 500
MATRIX_PAIR_LIMIT = 2000
MATRIX_TYPE_LIMIT = 100
MATRIX_PROPERTY_LIMIT = 200

# Synthetic rows used by probes; never expected to collide with real data
PROBE_IRI = "urn:ae-rdf-probe"
PROBE_IRI_ALT = "urn:ae-rdf-probe-alt"

CORS_TEST_ORIGIN = "https://example.com"
