"""
Capability Prober - empirically detect which SPARQL features an endpoint supports.

Each probe runs one minimal query. Execution success means ``True``; any
failure means ``None`` plus exactly one :class:`FailureRecord` in the
``capabilities`` section. The service-description probe is the exception:
its ASK answer is reported as-is, so ``False`` there is a real negative.
"""

from __future__ import annotations

import logging
import time

from rdfprobe.config import PROBE_TIMEOUT_CAP_MS
from rdfprobe.errors import SparqlHelperError
from rdfprobe.models import FailureRecord
from rdfprobe.queries import FORMAT_PROBE_QUERY, PROBES, SERVICE_DESCRIPTION_PROBE, Probe
from rdfprobe.sparql_helper import MimeTypes, SparqlHelper

logger = logging.getLogger(__name__)

__all__ = [
    "CapabilityProber",
    "probe_timeout",
]

SECTION = "capabilities"


def probe_timeout(timeout_ms: int) -> int:
    """Cap the caller's timeout so probing latency stays bounded."""
    return min(timeout_ms, PROBE_TIMEOUT_CAP_MS)


class CapabilityProber:
    """Run the fixed probe battery against one endpoint.

    Parameters
    ----------
    helper:
        Transport bound to the endpoint.
    failures:
        Shared, append-only failure log of the current analysis.
    timeout_ms:
        Caller timeout; probes use ``min(timeout_ms, 20000)``, the format
        detection uses it unchanged.
    """

    def __init__(
        self,
        helper: SparqlHelper,
        failures: list[FailureRecord],
        timeout_ms: int,
    ) -> None:
        self.helper = helper
        self.failures = failures
        self.timeout_ms = timeout_ms
        self.probe_timeout_ms = probe_timeout(timeout_ms)

    # ---- result formats -------------------------------------------

    def detect_result_support(self) -> tuple[bool, bool]:
        """Return ``(json_results, xml_results)``.

        Asks once with a JSON ``Accept`` header and, unless XML has already
        shown up, once more with an XML ``Accept`` header. Whatever format
        the endpoint actually answers in counts as supported. Failures here
        are not recorded individually; the caller reports the case where
        neither format works.
        """
        json_results = False
        xml_results = False

        for accept in (MimeTypes.JSON, MimeTypes.XML):
            if accept == MimeTypes.XML and xml_results:
                break
            try:
                decoded = self.helper.execute_decoded(
                    FORMAT_PROBE_QUERY, accept=accept, timeout_ms=self.timeout_ms,
                )
            except SparqlHelperError as e:
                logger.debug(f"Result format probe ({accept}) failed: {e}")
                continue
            if decoded.format == "json":
                json_results = True
            else:
                xml_results = True

        return json_results, xml_results

    # ---- feature probes -------------------------------------------

    def probe_support(self, probe: Probe) -> bool | None:
        """Run a probe; ``True`` if it executes, else ``None`` and a failure."""
        started_at = time.monotonic()
        try:
            self.helper.execute(probe.query, timeout_ms=self.probe_timeout_ms)
        except SparqlHelperError as e:
            self._record(probe, e, started_at)
            return None
        logger.debug(f"{probe.query_id}: supported")
        return True

    def probe_ask_value(self, probe: Probe) -> bool | None:
        """Run an ASK probe and report its boolean answer.

        A response without a boolean yields ``None`` without a failure
        record; only execution failures are recorded.
        """
        started_at = time.monotonic()
        try:
            return self.helper.ask(probe.query, timeout_ms=self.probe_timeout_ms)
        except SparqlHelperError as e:
            self._record(probe, e, started_at)
            return None

    def run(self) -> dict[str, bool | None]:
        """Run every feature probe in order and return the flags by field name."""
        flags: dict[str, bool | None] = {}
        for probe in PROBES:
            flags[probe.capability] = self.probe_support(probe)
        flags[SERVICE_DESCRIPTION_PROBE.capability] = self.probe_ask_value(
            SERVICE_DESCRIPTION_PROBE,
        )
        return flags

    def _record(self, probe: Probe, error: Exception, started_at: float) -> None:
        logger.debug(f"{probe.query_id} failed: {error}")
        self.failures.append(
            FailureRecord.from_exception(SECTION, probe.query_id, error, started_at),
        )
