"""
Analysis Orchestrator - probe an endpoint and inventory its content.

The run order is fixed:

1. result formats (JSON / XML) and CORS
2. feature probes (named graphs, aggregates, ..., service description)
3. graphs, types, predicates
4. the type x predicate matrix, which reuses the types inventory

Nothing here raises because of endpoint behaviour. Every failed query ends
up in :attr:`AnalysisResult.failures` and degrades its section's status, so
callers always get a complete report back.

Usage:
    from rdfprobe import EndpointConfig, analyze

    result = analyze(
        EndpointConfig(name="DBpedia", url="https://dbpedia.org/sparql"),
        progress=print,
    )
    print(result.to_json())
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from rdfprobe.capabilities import CapabilityProber
from rdfprobe.config import Config
from rdfprobe.cors import detect_cors
from rdfprobe.inventory import (
    GraphsBuilder,
    MatrixBuilder,
    PredicatesBuilder,
    SectionOutcome,
    TypesBuilder,
)
from rdfprobe.models import (
    AnalysisMeta,
    AnalysisResult,
    CapabilityInfo,
    EndpointConfig,
    EndpointIdentity,
    FailureRecord,
    SectionStatus,
)
from rdfprobe.sparql_helper import SparqlHelper
from rdfprobe.utils import elapsed_ms
from rdfprobe.version import VERSION

logger = logging.getLogger(__name__)

__all__ = [
    "EndpointAnalyzer",
    "analyze",
]

ProgressCallback = Callable[[str], None]


def _yes_no(flag: Optional[bool]) -> str:
    return "yes" if flag else "no"


class EndpointAnalyzer:
    """Run one analysis of one endpoint.

    Parameters
    ----------
    config:
        Target endpoint and tunables.
    progress:
        Optional callback receiving one human-readable line after each
        phase. Errors raised by the callback are logged and ignored.
    cancel:
        Optional event; once set, every remaining query fails immediately
        and is recorded as cancelled.
    session:
        Optional ``requests`` session to send queries through.
    """

    def __init__(
        self,
        config: EndpointConfig,
        progress: Optional[ProgressCallback] = None,
        *,
        cancel: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.progress = progress
        self.cancel = cancel
        self.session = session
        self.timeout_ms = config.timeout_ms or Config.DEFAULT_TIMEOUT_MS
        self.page_size = config.page_size or Config.DEFAULT_PAGE_SIZE

    # ---- public API -----------------------------------------------

    def run(self) -> AnalysisResult:
        """Analyse the endpoint and return the consolidated report."""
        started_at = time.monotonic()
        analyzed_at = datetime.now(timezone.utc).isoformat()
        failures: list[FailureRecord] = []

        self._emit(f"Analyzing {self.config.name}...")

        with SparqlHelper(
            self.config.url,
            timeout_ms=self.timeout_ms,
            auth=self.config.auth,
            cancel=self.cancel,
            session=self.session,
        ) as helper:
            capabilities = self._detect_capabilities(helper, failures, started_at)
            builder_args = dict(
                timeout_ms=self.timeout_ms,
                page_size=self.page_size,
                count_workers=self.config.count_workers,
            )

            graphs = self._section(
                "graphs", "Graphs", failures,
                GraphsBuilder(helper, capabilities, failures, **builder_args).build,
            )
            types = self._section(
                "types", "Types", failures,
                TypesBuilder(helper, capabilities, failures, **builder_args).build,
            )
            properties = self._section(
                "properties", "Properties", failures,
                PredicatesBuilder(helper, capabilities, failures, **builder_args).build,
            )
            matrix_builder = MatrixBuilder(helper, capabilities, failures, **builder_args)
            matrix = self._section(
                "typePropertyMatrix", "Type/Property pairs", failures,
                lambda: matrix_builder.build(types.inventory),
            )

        duration_ms = elapsed_ms(started_at)
        logger.info(
            f"Analysis of {self.config.name} complete in {duration_ms}ms "
            f"with {len(failures)} failed queries"
        )

        return AnalysisResult(
            meta=AnalysisMeta(
                analyzed_at=analyzed_at,
                duration_ms=duration_ms,
                endpoint=EndpointIdentity(
                    name=self.config.name,
                    url=self.config.url,
                    description=self.config.description,
                ),
                version=VERSION,
            ),
            capabilities=capabilities,
            graphs=graphs.inventory,
            types=types.inventory,
            properties=properties.inventory,
            type_property_matrix=matrix.inventory,
            sections={
                "graphs": graphs.status,
                "types": types.status,
                "properties": properties.status,
                "typePropertyMatrix": matrix.status,
            },
            failures=failures,
        )

    # ---- phases ----------------------------------------------------

    def _detect_capabilities(
        self,
        helper: SparqlHelper,
        failures: list[FailureRecord],
        started_at: float,
    ) -> CapabilityInfo:
        """Result formats, CORS and the probe battery, in that order."""
        prober = CapabilityProber(helper, failures, self.timeout_ms)

        json_results = xml_results = False
        try:
            json_results, xml_results = prober.detect_result_support()
        except Exception as e:
            logger.warning(f"Result format detection crashed: {e}", exc_info=True)
            failures.append(
                FailureRecord.from_exception("capabilities", "result-format-probe", e, started_at),
            )
        if not json_results and not xml_results:
            failures.append(
                FailureRecord(
                    section="capabilities",
                    query_id="result-format-unsupported",
                    reason="Endpoint does not return JSON or XML SPARQL results",
                    duration_ms=elapsed_ms(started_at),
                ),
            )

        cors = detect_cors(self.config.url, self.timeout_ms, helper=helper)
        self._emit(
            f"Capabilities: JSON={_yes_no(json_results)} "
            f"XML={_yes_no(xml_results)} CORS={_yes_no(cors)}"
        )

        probes_started = time.monotonic()
        try:
            flags = prober.run()
        except Exception as e:
            logger.warning(f"Capability probing crashed: {e}", exc_info=True)
            failures.append(
                FailureRecord.from_exception(
                    "capabilities", "capabilities-internal", e, probes_started,
                ),
            )
            flags = {}

        capabilities = CapabilityInfo(
            json_results=json_results,
            xml_results=xml_results,
            cors=cors,
            **flags,
        )
        supported = [
            name for name, value in capabilities.model_dump(by_alias=True).items()
            if value is True and name not in ("jsonResults", "xmlResults", "cors")
        ]
        self._emit(f"Features: {', '.join(supported) if supported else 'none detected'}")
        return capabilities

    def _section(
        self,
        section: str,
        label: str,
        failures: list[FailureRecord],
        build: Callable[[], SectionOutcome],
    ) -> SectionOutcome:
        """Run one builder; an unexpected crash marks the section ``failed``."""
        started_at = time.monotonic()
        try:
            outcome = build()
        except Exception as e:
            logger.warning(f"Building section {section} crashed: {e}", exc_info=True)
            failures.append(
                FailureRecord.from_exception(section, f"{section}-internal", e, started_at),
            )
            outcome = SectionOutcome(
                None,
                SectionStatus(
                    status="failed",
                    strategy="safe",
                    duration_ms=elapsed_ms(started_at),
                    notes=f"Internal error: {e}",
                ),
            )

        if outcome.inventory is not None:
            suffix = "+" if outcome.inventory.limited else ""
            self._emit(f"{label}: {len(outcome.inventory.items)}{suffix}")
        else:
            self._emit(f"{label}: {outcome.status.status}")
        return outcome

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self.progress is None:
            return
        try:
            self.progress(message)
        except Exception as e:
            logger.warning(f"Progress callback raised: {e}")


def analyze(
    config: EndpointConfig,
    progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[threading.Event] = None,
    session: Optional[requests.Session] = None,
) -> AnalysisResult:
    """
    Analyse a SPARQL endpoint's capabilities and content.

    Args:
        config: Target endpoint and tunables
        progress: Callback receiving human-readable progress lines
        cancel: Event that aborts the remaining queries once set
        session: ``requests`` session to reuse

    Returns:
        Best-effort :class:`AnalysisResult`; failures are reported in
        ``result.failures`` and ``result.sections`` rather than raised
    """
    return EndpointAnalyzer(config, progress, cancel=cancel, session=session).run()
