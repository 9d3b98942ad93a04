"""rdfprobe: SPARQL endpoint capability analysis.

Main modules:
- analyzer: analyze() runs the full probe + inventory pipeline
- capabilities: feature probes (aggregates, LIMIT/OFFSET, named graphs, ...)
- inventory: tiered graph, type, predicate and type x predicate inventories
- sparql_helper: POST-first / GET-fallback SPARQL transport
- results: SPARQL JSON / XML result decoding
"""

from .analyzer import EndpointAnalyzer, analyze
from .errors import DecodeError, SparqlHelperError, TransportError
from .models import (
    AnalysisResult,
    CapabilityInfo,
    EndpointAuth,
    EndpointConfig,
    FailureRecord,
    SectionStatus,
)
from .version import VERSION

__all__ = [
    "VERSION",
    "AnalysisResult",
    "CapabilityInfo",
    "DecodeError",
    "EndpointAnalyzer",
    "EndpointAuth",
    "EndpointConfig",
    "FailureRecord",
    "SectionStatus",
    "SparqlHelperError",
    "TransportError",
    "analyze",
]
