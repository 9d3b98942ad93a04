"""
Inventory Builders - bounded listings of graphs, types, predicates and
type x predicate pairs.

Every builder follows the same tiered strategy:

1. **Optimistic** (only when ``aggregates`` is confirmed): one
   ``GROUP BY ... ORDER BY DESC(count) LIMIT cap`` query.
2. **Safe** (optimistic skipped, failed or empty): a ``DISTINCT`` listing,
   paginated with ``LIMIT/OFFSET`` when supported, followed by one ``COUNT``
   per item when aggregates are available.

The strategy label is ``optimistic`` or ``safe``, or ``mixed`` when the safe
path had to stand in although aggregates were confirmed. A section that
produced no items is ``unknown``: an empty endpoint and a silently failing
query technique cannot be told apart.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, ClassVar, NamedTuple, Optional

from pydantic import BaseModel

from rdfprobe import queries
from rdfprobe.config import (
    GRAPH_LIMIT,
    MATRIX_PAIR_LIMIT,
    MATRIX_PROPERTY_LIMIT,
    MATRIX_TYPE_LIMIT,
    PREDICATE_LIMIT,
    TYPE_LIMIT,
)
from rdfprobe.errors import SparqlHelperError
from rdfprobe.models import (
    CapabilityInfo,
    FailureRecord,
    GraphItem,
    Inventory,
    MatrixPair,
    PropertyItem,
    SectionStatus,
    TypeItem,
)
from rdfprobe.results import extract_number, extract_value, get_bindings
from rdfprobe.sparql_helper import SparqlHelper
from rdfprobe.utils import elapsed_ms

logger = logging.getLogger(__name__)

__all__ = [
    "GraphsBuilder",
    "MatrixBuilder",
    "PredicatesBuilder",
    "SectionOutcome",
    "TypesBuilder",
]

NOTE_NO_OFFSET = "LIMIT/OFFSET unsupported; results may be partial"
NOTE_NO_AGGREGATES = "Aggregate support missing; counts unavailable"

# Errors that turn a single query into a recorded failure. ValueError comes
# from IRIs returned by the endpoint that cannot be put back into a query.
QUERY_ERRORS = (SparqlHelperError, ValueError)


class SectionOutcome(NamedTuple):
    """Result of building one section."""

    inventory: Optional[Inventory[Any]]
    status: SectionStatus


class _SectionRun:
    """Bookkeeping for one section while it is being built."""

    def __init__(self, section: str, failures: list[FailureRecord]) -> None:
        self.section = section
        self.failures = failures
        self.started_at = time.monotonic()
        self.strategy = "safe"
        self.limited = False
        self.partial = False
        self.notes: list[str] = []

    def fail(self, query_id: str, error: Exception) -> None:
        logger.debug(f"{self.section}: {query_id} failed: {error}")
        self.failures.append(
            FailureRecord.from_exception(self.section, query_id, error, self.started_at),
        )
        self.partial = True

    def note(self, text: str) -> None:
        if text not in self.notes:
            self.notes.append(text)

    def unknown(self, note: str) -> SectionOutcome:
        return SectionOutcome(
            None,
            SectionStatus(
                status="unknown",
                strategy="safe",
                duration_ms=elapsed_ms(self.started_at),
                notes=note,
            ),
        )

    def finish(
        self, item_model: type[BaseModel], items: list[Any], empty_note: str,
    ) -> SectionOutcome:
        if not items:
            return self.unknown(empty_note)
        inventory = Inventory[item_model](items=items, limited=self.limited)
        status = SectionStatus(
            status="partial" if self.limited or self.partial else "ok",
            strategy=self.strategy,
            duration_ms=elapsed_ms(self.started_at),
            notes=" | ".join(self.notes) if self.notes else None,
        )
        return SectionOutcome(inventory, status)


class _Builder:
    """Shared wiring: transport, capabilities, failure log and tunables."""

    def __init__(
        self,
        helper: SparqlHelper,
        capabilities: CapabilityInfo,
        failures: list[FailureRecord],
        *,
        timeout_ms: int,
        page_size: int,
        count_workers: int = 1,
    ) -> None:
        self.helper = helper
        self.capabilities = capabilities
        self.failures = failures
        self.timeout_ms = timeout_ms
        self.page_size = page_size
        self.count_workers = max(1, count_workers)

    @property
    def aggregates(self) -> bool:
        return self.capabilities.aggregates is True

    def _select(self, query: str) -> list[dict[str, Any]]:
        return get_bindings(self.helper.execute(query, timeout_ms=self.timeout_ms))


class InventoryBuilder(_Builder):
    """Tiered inventory of one kind of resource.

    Subclasses name the section, the cap, the binding variables and the
    item model, and supply the three queries.
    """

    section: ClassVar[str]
    query_prefix: ClassVar[str]
    noun: ClassVar[str]
    limit: ClassVar[int]
    item_model: ClassVar[type[BaseModel]]
    item_field: ClassVar[str]
    item_var: ClassVar[str]
    count_field: ClassVar[str] = "count"
    count_var: ClassVar[str] = "count"
    empty_note: ClassVar[str]

    def optimistic_query(self) -> str:
        raise NotImplementedError

    def list_query(self, limit: int, offset: int | None) -> str:
        raise NotImplementedError

    def count_query(self, value: str) -> str:
        raise NotImplementedError

    def skip_reason(self) -> str | None:
        """Return a note when the section cannot be attempted at all."""
        return None

    def _item(self, value: str, count: int | None = None) -> BaseModel:
        return self.item_model(**{self.item_field: value, self.count_field: count})

    # ---- public API -----------------------------------------------

    def build(self) -> SectionOutcome:
        """Build the section, recording failures instead of raising."""
        run = _SectionRun(self.section, self.failures)
        reason = self.skip_reason()
        if reason:
            return run.unknown(reason)

        items: list[BaseModel] = []
        if self.aggregates:
            items = self._optimistic(run)
        if not items:
            items = self._safe(run)
        if len(items) >= self.limit:
            run.note(f"Limited to {self.limit} {self.noun}")
        return run.finish(self.item_model, items, self.empty_note)

    # ---- strategies -----------------------------------------------

    def _optimistic(self, run: _SectionRun) -> list[BaseModel]:
        try:
            rows = self._select(self.optimistic_query())
        except QUERY_ERRORS as e:
            run.fail(f"{self.query_prefix}-optimistic", e)
            return []

        items = []
        for row in rows:
            value = extract_value(row, self.item_var)
            if value is not None:
                items.append(self._item(value, extract_number(row, self.count_var)))
        del items[self.limit:]
        if items:
            run.strategy = "optimistic"
            run.limited = len(items) >= self.limit
        return items

    def _safe(self, run: _SectionRun) -> list[BaseModel]:
        supports_offset = self.capabilities.limit_offset is True
        page_size = min(self.page_size, self.limit)
        seen: set[str] = set()
        items: list[BaseModel] = []
        offset = 0

        while len(items) < self.limit:
            limit = min(page_size, self.limit - len(items))
            query = self.list_query(limit, offset if supports_offset else None)
            try:
                rows = self._select(query)
            except QUERY_ERRORS as e:
                run.fail(f"{self.query_prefix}-list", e)
                break

            fresh = 0
            for row in rows:
                value = extract_value(row, self.item_var)
                if value is None or value in seen:
                    continue
                seen.add(value)
                items.append(self._item(value))
                fresh += 1
            if not supports_offset or len(rows) < limit or fresh == 0:
                break
            offset += limit

        if not supports_offset and len(items) >= page_size:
            run.note(NOTE_NO_OFFSET)
            run.limited = True
        if not items:
            return items

        if self.aggregates:
            self._backfill_counts(run, items)
        else:
            run.note(NOTE_NO_AGGREGATES)
            run.partial = True
        run.strategy = "mixed" if self.aggregates else "safe"
        if len(items) >= self.limit:
            run.limited = True
        return items

    def _count_one(self, value: str) -> tuple[int | None, FailureRecord | None]:
        started_at = time.monotonic()
        try:
            rows = self._select(self.count_query(value))
        except QUERY_ERRORS as e:
            return None, FailureRecord.from_exception(
                self.section, f"{self.query_prefix}-count", e, started_at,
            )
        return extract_number(rows[0] if rows else None, self.count_var), None

    def _backfill_counts(self, run: _SectionRun, items: list[BaseModel]) -> None:
        """Fill in counts item by item, keeping items whose count failed.

        With ``count_workers > 1`` the COUNT queries run on a bounded thread
        pool; results are matched back by position, so item order and the
        order of recorded failures do not depend on completion order.
        """
        values = [getattr(item, self.item_field) for item in items]
        if self.count_workers > 1 and len(values) > 1:
            with ThreadPoolExecutor(max_workers=self.count_workers) as pool:
                outcomes = list(pool.map(self._count_one, values))
        else:
            outcomes = [self._count_one(v) for v in values]

        for item, (count, failure) in zip(items, outcomes):
            if failure is not None:
                self.failures.append(failure)
                run.partial = True
            else:
                setattr(item, self.count_field, count)


class GraphsBuilder(InventoryBuilder):
    """Named graphs with triple counts."""

    section = "graphs"
    query_prefix = "graphs"
    noun = "graphs"
    limit = GRAPH_LIMIT
    item_model = GraphItem
    item_field = "graph"
    item_var = "g"
    count_field = "triples"
    count_var = "triples"
    empty_note = "No graphs detected or graph queries failed"

    def skip_reason(self) -> str | None:
        if self.capabilities.named_graphs is not True:
            return "Named graphs not supported"
        return None

    def optimistic_query(self) -> str:
        return queries.graphs_optimistic(self.limit)

    def list_query(self, limit: int, offset: int | None) -> str:
        return queries.graphs_list(limit, offset)

    def count_query(self, value: str) -> str:
        return queries.graph_count(value)


class TypesBuilder(InventoryBuilder):
    """``rdf:type`` classes with instance counts."""

    section = "types"
    query_prefix = "types"
    noun = "types"
    limit = TYPE_LIMIT
    item_model = TypeItem
    item_field = "type"
    item_var = "type"
    empty_note = "Type inventory failed or unsupported"

    def optimistic_query(self) -> str:
        return queries.types_optimistic(self.limit)

    def list_query(self, limit: int, offset: int | None) -> str:
        return queries.types_list(limit, offset)

    def count_query(self, value: str) -> str:
        return queries.type_count(value)


class PredicatesBuilder(InventoryBuilder):
    """Predicates with triple counts."""

    section = "properties"
    query_prefix = "properties"
    noun = "properties"
    limit = PREDICATE_LIMIT
    item_model = PropertyItem
    item_field = "property"
    item_var = "p"
    empty_note = "Predicate inventory failed or unsupported"

    def optimistic_query(self) -> str:
        return queries.properties_optimistic(self.limit)

    def list_query(self, limit: int, offset: int | None) -> str:
        return queries.properties_list(limit, offset)

    def count_query(self, value: str) -> str:
        return queries.property_count(value)


class MatrixBuilder(_Builder):
    """Type x predicate co-occurrence.

    Falls back to one query per type (top 100 types of the Types section,
    up to 200 properties each) when the single aggregate query is not
    available. Without a Types result there is nothing to decompose and the
    section is skipped.
    """

    section = "typePropertyMatrix"

    def build(self, types: Inventory[TypeItem] | None) -> SectionOutcome:
        run = _SectionRun(self.section, self.failures)
        items: list[MatrixPair] = []
        if self.aggregates:
            items = self._optimistic(run)
        if not items:
            if types is None or not types.items:
                return run.unknown("Type inventory unavailable; matrix skipped")
            items = self._per_type(run, types.items)
        return run.finish(MatrixPair, items, "No matrix data returned")

    def _optimistic(self, run: _SectionRun) -> list[MatrixPair]:
        try:
            rows = self._select(queries.matrix_optimistic(MATRIX_PAIR_LIMIT))
        except QUERY_ERRORS as e:
            run.fail("matrix-optimistic", e)
            return []

        items = []
        for row in rows:
            type_iri = extract_value(row, "type")
            prop = extract_value(row, "p")
            if type_iri is not None and prop is not None:
                items.append(
                    MatrixPair(type=type_iri, property=prop, count=extract_number(row, "count")),
                )
        del items[MATRIX_PAIR_LIMIT:]
        if items:
            run.strategy = "optimistic"
            if len(items) >= MATRIX_PAIR_LIMIT:
                run.limited = True
                run.note(f"Limited to {MATRIX_PAIR_LIMIT} type/property pairs")
        return items

    def _per_type(self, run: _SectionRun, type_items: list[TypeItem]) -> list[MatrixPair]:
        if len(type_items) > MATRIX_TYPE_LIMIT:
            run.note(f"Limited to top {MATRIX_TYPE_LIMIT} types")
            run.limited = True

        items: list[MatrixPair] = []
        for entry in type_items[:MATRIX_TYPE_LIMIT]:
            try:
                rows = self._select(
                    queries.matrix_for_type(entry.type, MATRIX_PROPERTY_LIMIT, self.aggregates),
                )
            except QUERY_ERRORS as e:
                run.fail("matrix-per-type", e)
                continue

            for row in rows:
                prop = extract_value(row, "p")
                if prop is not None:
                    items.append(
                        MatrixPair(type=entry.type, property=prop, count=extract_number(row, "count")),
                    )
            if len(rows) >= MATRIX_PROPERTY_LIMIT:
                run.limited = True

        if not self.aggregates:
            run.note(NOTE_NO_AGGREGATES)
            run.partial = True
        run.strategy = "mixed" if self.aggregates else "safe"
        return items
