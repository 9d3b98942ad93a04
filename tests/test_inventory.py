"""Tests for the tiered inventory builders."""

from __future__ import annotations

import pytest

from fake_endpoint import FakeEndpoint, FakeResponse
from rdfprobe.inventory import (
    NOTE_NO_AGGREGATES,
    NOTE_NO_OFFSET,
    GraphsBuilder,
    MatrixBuilder,
    PredicatesBuilder,
    TypesBuilder,
)
from rdfprobe.models import Inventory, TypeItem

EX = "http://example.org/"


def _server_error(query):
    return FakeResponse(500, "Internal Server Error", "text/plain", reason="Internal Server Error")


@pytest.fixture()
def build(make_helper, make_capabilities, failures):
    """Run one builder against a fake endpoint."""

    def _build(builder_cls, endpoint, page_size=10, count_workers=1, **capability_overrides):
        builder = builder_cls(
            make_helper(endpoint),
            make_capabilities(**capability_overrides),
            failures,
            timeout_ms=5000,
            page_size=page_size,
            count_workers=count_workers,
        )
        return builder.build()

    return _build


class TestTypes:
    def test_optimistic_sorted_by_count(self, build, failures):
        endpoint = FakeEndpoint(types={f"{EX}B": 7, f"{EX}A": 10, f"{EX}C": 2})
        outcome = build(TypesBuilder, endpoint)

        assert [(t.type, t.count) for t in outcome.inventory.items] == [
            (f"{EX}A", 10),
            (f"{EX}B", 7),
            (f"{EX}C", 2),
        ]
        assert outcome.inventory.limited is False
        assert outcome.status.status == "ok"
        assert outcome.status.strategy == "optimistic"
        assert outcome.status.notes is None
        assert failures == []

    def test_cap_reached(self, build):
        endpoint = FakeEndpoint(types={f"{EX}T{i}": 1000 - i for i in range(600)})
        outcome = build(TypesBuilder, endpoint)

        assert len(outcome.inventory.items) == 500
        assert outcome.inventory.limited is True
        assert outcome.status.status == "partial"
        assert "Limited to 500 types" in outcome.status.notes

    def test_empty_endpoint_is_unknown(self, build, failures):
        outcome = build(TypesBuilder, FakeEndpoint())

        assert outcome.inventory is None
        assert outcome.status.status == "unknown"
        assert outcome.status.notes == "Type inventory failed or unsupported"
        assert failures == []

    def test_optimistic_failure_falls_back_to_mixed(self, build, failures):
        endpoint = FakeEndpoint(
            types={f"{EX}A": 3, f"{EX}B": 5},
            overrides=[("GROUP BY ?type", _server_error)],
        )
        outcome = build(TypesBuilder, endpoint)

        assert outcome.status.strategy == "mixed"
        assert outcome.status.status == "partial"
        assert {t.type: t.count for t in outcome.inventory.items} == {f"{EX}A": 3, f"{EX}B": 5}
        assert [f.query_id for f in failures] == ["types-optimistic"]
        assert failures[0].section == "types"

    def test_failed_count_keeps_item(self, build, failures):
        endpoint = FakeEndpoint(
            types={f"{EX}A": 3, f"{EX}B": 5},
            overrides=[
                ("GROUP BY ?type", lambda q: FakeResponse(200, '{"head": {"vars": []}, "results": {"bindings": []}}')),
                (f"?s a <{EX}B>", _server_error),
            ],
        )
        outcome = build(TypesBuilder, endpoint)

        assert [(t.type, t.count) for t in outcome.inventory.items] == [
            (f"{EX}A", 3),
            (f"{EX}B", None),
        ]
        assert outcome.status.status == "partial"
        assert outcome.status.strategy == "mixed"
        assert [f.query_id for f in failures] == ["types-count"]

    def test_unusable_iri_is_recorded(self, build, failures):
        endpoint = FakeEndpoint(
            types={f"{EX}has space": 1, f"{EX}Ok": 2},
            overrides=[("GROUP BY ?type", _server_error)],
        )
        outcome = build(TypesBuilder, endpoint)

        assert len(outcome.inventory.items) == 2
        assert [f.query_id for f in failures] == ["types-optimistic", "types-count"]

    def test_parallel_counts_keep_order(self, build, failures):
        types = {f"{EX}T{i:02d}": i + 1 for i in range(30)}
        endpoint = FakeEndpoint(types=types, overrides=[("GROUP BY ?type", _server_error)])
        outcome = build(TypesBuilder, endpoint, count_workers=4)

        assert [t.type for t in outcome.inventory.items] == list(types)
        assert [t.count for t in outcome.inventory.items] == list(types.values())
        assert [f.query_id for f in failures] == ["types-optimistic"]

    def test_cap_reached_through_pagination(self, build):
        endpoint = FakeEndpoint(types={f"{EX}T{i}": 1 for i in range(600)})
        outcome = build(TypesBuilder, endpoint, page_size=200, aggregates=None)

        assert len(outcome.inventory.items) == 500
        assert outcome.inventory.limited is True
        assert outcome.status.status == "partial"
        assert "Limited to 500 types" in outcome.status.notes
        listings = [q for q in endpoint.queries() if "SELECT DISTINCT ?type" in q]
        assert [q.rsplit("LIMIT", 1)[1].strip() for q in listings] == [
            "200 OFFSET 0",
            "200 OFFSET 200",
            "100 OFFSET 400",
        ]


class TestPredicates:
    def test_paginated_without_aggregates(self, build, failures):
        endpoint = FakeEndpoint(
            properties={f"{EX}p{i}": i for i in range(12)},
            unsupported={"aggregates"},
        )
        outcome = build(PredicatesBuilder, endpoint, aggregates=None)

        assert len(outcome.inventory.items) == 12
        assert all(p.count is None for p in outcome.inventory.items)
        assert outcome.inventory.limited is False
        assert outcome.status.strategy == "safe"
        assert outcome.status.status == "partial"
        assert outcome.status.notes == NOTE_NO_AGGREGATES
        assert not any("COUNT(" in q for q in endpoint.queries())
        assert failures == []

    def test_pages_advance_by_offset(self, build):
        endpoint = FakeEndpoint(properties={f"{EX}p{i}": i for i in range(25)})
        build(PredicatesBuilder, endpoint, aggregates=None)

        listings = [q for q in endpoint.queries() if "SELECT DISTINCT ?p" in q]
        assert [q.rsplit("LIMIT", 1)[1].strip() for q in listings] == [
            "10 OFFSET 0",
            "10 OFFSET 10",
            "10 OFFSET 20",
        ]

    def test_single_page_without_offset(self, build):
        endpoint = FakeEndpoint(properties={f"{EX}p{i}": i for i in range(25)})
        outcome = build(PredicatesBuilder, endpoint, aggregates=None, limit_offset=None)

        assert len(outcome.inventory.items) == 10
        assert outcome.inventory.limited is True
        assert outcome.status.status == "partial"
        assert NOTE_NO_OFFSET in outcome.status.notes
        assert NOTE_NO_AGGREGATES in outcome.status.notes
        assert not any("OFFSET" in q for q in endpoint.queries())

    def test_short_page_without_offset_is_complete(self, build):
        endpoint = FakeEndpoint(properties={f"{EX}p{i}": i for i in range(4)})
        outcome = build(PredicatesBuilder, endpoint, aggregates=None, limit_offset=None)

        assert len(outcome.inventory.items) == 4
        assert outcome.inventory.limited is False
        assert outcome.status.notes == NOTE_NO_AGGREGATES

    def test_listing_failure_is_unknown(self, build, failures):
        endpoint = FakeEndpoint(
            properties={f"{EX}p": 1},
            overrides=[("?p", _server_error)],
        )
        outcome = build(PredicatesBuilder, endpoint)

        assert outcome.status.status == "unknown"
        assert outcome.status.notes == "Predicate inventory failed or unsupported"
        assert [f.query_id for f in failures] == ["properties-optimistic", "properties-list"]

    def test_failed_page_keeps_earlier_pages(self, build, failures):
        endpoint = FakeEndpoint(
            properties={f"{EX}p{i}": i for i in range(25)},
            overrides=[("OFFSET 10", _server_error)],
        )
        outcome = build(PredicatesBuilder, endpoint, aggregates=None)

        assert [p.property for p in outcome.inventory.items] == [f"{EX}p{i}" for i in range(10)]
        assert outcome.inventory.limited is False
        assert outcome.status.status == "partial"
        assert outcome.status.strategy == "safe"
        assert [f.query_id for f in failures] == ["properties-list"]


class TestGraphs:
    def test_skipped_without_named_graphs(self, build):
        endpoint = FakeEndpoint(graphs={f"{EX}g1": 10})
        outcome = build(GraphsBuilder, endpoint, named_graphs=None)

        assert outcome.status.status == "unknown"
        assert outcome.status.notes == "Named graphs not supported"
        assert endpoint.calls == []

    def test_triple_counts(self, build):
        endpoint = FakeEndpoint(graphs={f"{EX}g1": 10, f"{EX}g2": 40})
        outcome = build(GraphsBuilder, endpoint)

        assert [(g.graph, g.triples) for g in outcome.inventory.items] == [
            (f"{EX}g2", 40),
            (f"{EX}g1", 10),
        ]
        assert outcome.status.status == "ok"

    def test_no_graphs(self, build):
        outcome = build(GraphsBuilder, FakeEndpoint())
        assert outcome.status.status == "unknown"
        assert outcome.status.notes == "No graphs detected or graph queries failed"

    def test_cap(self, build):
        endpoint = FakeEndpoint(graphs={f"{EX}g{i}": 1000 - i for i in range(250)})
        outcome = build(GraphsBuilder, endpoint)

        assert len(outcome.inventory.items) == 200
        assert outcome.inventory.items[0].graph == f"{EX}g0"
        assert outcome.inventory.limited is True
        assert outcome.status.status == "partial"
        assert outcome.status.notes == "Limited to 200 graphs"


class TestMatrix:
    @pytest.fixture()
    def build_matrix(self, make_helper, make_capabilities, failures):
        def _build(endpoint, types, **capability_overrides):
            builder = MatrixBuilder(
                make_helper(endpoint),
                make_capabilities(**capability_overrides),
                failures,
                timeout_ms=5000,
                page_size=10,
            )
            return builder.build(types)

        return _build

    @staticmethod
    def _types(*names):
        return Inventory[TypeItem](items=[TypeItem(type=f"{EX}{n}") for n in names])

    def test_without_types_is_unknown(self, build_matrix):
        outcome = build_matrix(FakeEndpoint(), None, aggregates=None)

        assert outcome.status.status == "unknown"
        assert outcome.status.notes == "Type inventory unavailable; matrix skipped"

    def test_optimistic(self, build_matrix):
        endpoint = FakeEndpoint(matrix={(f"{EX}A", f"{EX}p"): 5, (f"{EX}A", f"{EX}q"): 9})
        outcome = build_matrix(endpoint, None)

        assert [(m.type, m.property, m.count) for m in outcome.inventory.items] == [
            (f"{EX}A", f"{EX}q", 9),
            (f"{EX}A", f"{EX}p", 5),
        ]
        assert outcome.status.strategy == "optimistic"
        assert outcome.status.status == "ok"

    def test_per_type_without_aggregates(self, build_matrix, failures):
        endpoint = FakeEndpoint(
            matrix={
                (f"{EX}A", f"{EX}p"): 5,
                (f"{EX}B", f"{EX}q"): 1,
                (f"{EX}B", f"{EX}r"): 2,
            },
        )
        outcome = build_matrix(endpoint, self._types("A", "B"), aggregates=None)

        assert sorted((m.type, m.property) for m in outcome.inventory.items) == [
            (f"{EX}A", f"{EX}p"),
            (f"{EX}B", f"{EX}q"),
            (f"{EX}B", f"{EX}r"),
        ]
        assert all(m.count is None for m in outcome.inventory.items)
        assert outcome.status.strategy == "safe"
        assert outcome.status.status == "partial"
        assert outcome.status.notes == NOTE_NO_AGGREGATES
        assert failures == []

    def test_per_type_failure(self, build_matrix, failures):
        endpoint = FakeEndpoint(
            matrix={(f"{EX}A", f"{EX}p"): 5, (f"{EX}B", f"{EX}q"): 1},
            overrides=[
                ("GROUP BY ?type ?p", _server_error),
                (f"?s a <{EX}B>", _server_error),
            ],
        )
        outcome = build_matrix(endpoint, self._types("A", "B"))

        assert [(m.type, m.count) for m in outcome.inventory.items] == [(f"{EX}A", 5)]
        assert outcome.status.strategy == "mixed"
        assert [f.query_id for f in failures] == ["matrix-optimistic", "matrix-per-type"]

    def test_top_types_only(self, build_matrix):
        endpoint = FakeEndpoint(matrix={(f"{EX}T{i}", f"{EX}p"): 1 for i in range(120)})
        outcome = build_matrix(
            endpoint, self._types(*(f"T{i}" for i in range(120))), aggregates=None,
        )

        assert len(outcome.inventory.items) == 100
        assert outcome.inventory.limited is True
        assert "Limited to top 100 types" in outcome.status.notes

    def test_optimistic_pair_cap(self, build_matrix):
        endpoint = FakeEndpoint(
            matrix={(f"{EX}T{i % 50}", f"{EX}p{i}"): 5000 - i for i in range(2100)},
        )
        outcome = build_matrix(endpoint, None)

        assert len(outcome.inventory.items) == 2000
        assert outcome.inventory.limited is True
        assert outcome.status.strategy == "optimistic"
        assert outcome.status.status == "partial"
        assert outcome.status.notes == "Limited to 2000 type/property pairs"

    def test_per_type_property_limit(self, build_matrix):
        endpoint = FakeEndpoint(matrix={(f"{EX}A", f"{EX}p{i}"): 1 for i in range(250)})
        outcome = build_matrix(endpoint, self._types("A"), aggregates=None)

        assert len(outcome.inventory.items) == 200
        assert outcome.inventory.limited is True
        assert outcome.status.status == "partial"
        assert outcome.status.notes == NOTE_NO_AGGREGATES
