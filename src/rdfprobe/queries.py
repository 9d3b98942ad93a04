"""
SPARQL query builders for capability probes and inventories.

Probe queries are deliberately minimal and side-effect free: each exercises
exactly one feature against synthetic ``urn:`` rows so the answer does not
depend on the endpoint's data.

Inventory queries come in pairs, an *optimistic* aggregate::

    SELECT ?type (COUNT(?s) AS ?count) WHERE { ?s a ?type }
    GROUP BY ?type ORDER BY DESC(?count) LIMIT 500

and a *safe* ``DISTINCT`` listing plus a per-item ``COUNT``.
"""

from __future__ import annotations

from typing import NamedTuple

from rdflib import Namespace, URIRef
from rdflib.namespace import RDF

from rdfprobe.config import PROBE_IRI, PROBE_IRI_ALT

__all__ = [
    "FORMAT_PROBE_QUERY",
    "PROBES",
    "SERVICE_DESCRIPTION_PROBE",
    "Probe",
    "iri",
]

SD = Namespace("http://www.w3.org/ns/sparql-service-description#")


def iri(value: str) -> str:
    """Render *value* as ``<iri>`` for a query.

    Raises:
        ValueError: If the IRI contains characters that cannot appear
            inside ``<...>`` (spaces, ``>``, quotes ...)
    """
    try:
        return URIRef(value).n3()
    except Exception as exc:  # rdflib raises a bare Exception here
        raise ValueError(f"Cannot use {value!r} as an IRI in a query") from exc


_PROBE = iri(PROBE_IRI)
_PROBE_ALT = iri(PROBE_IRI_ALT)


def _page(query: str, limit: int, offset: int | None = None) -> str:
    """Append ``LIMIT``/``OFFSET`` to a listing query."""
    q = f"{query} LIMIT {limit}"
    if offset is not None:
        q += f" OFFSET {offset}"
    return q


# -------------------------------------------------------------------
# Capability probes
# -------------------------------------------------------------------


class Probe(NamedTuple):
    """One capability probe: the flag it sets, its id and its query."""

    capability: str
    query_id: str
    query: str


FORMAT_PROBE_QUERY = "ASK { ?s ?p ?o }"

PROBES: tuple[Probe, ...] = (
    Probe(
        "named_graphs",
        "probe-named-graphs",
        "ASK { GRAPH ?g { ?s ?p ?o } }",
    ),
    Probe(
        "aggregates",
        "probe-aggregates",
        f"SELECT (COUNT(*) AS ?count) WHERE {{ VALUES ?s {{ {_PROBE} }} ?s ?p ?o }}",
    ),
    Probe(
        "subqueries",
        "probe-subqueries",
        f"SELECT ?s WHERE {{ {{ SELECT ?s WHERE {{ VALUES ?s {{ {_PROBE} }} ?s ?p ?o }} "
        "LIMIT 1 } } LIMIT 1",
    ),
    Probe(
        "values",
        "probe-values",
        f"SELECT ?s WHERE {{ VALUES ?s {{ {_PROBE} }} }}",
    ),
    Probe(
        "bind",
        "probe-bind",
        "SELECT ?o WHERE { BIND(1 AS ?o) }",
    ),
    Probe(
        "property_paths",
        "probe-property-paths",
        f"PREFIX rdf: <{RDF}>\n"
        f"ASK {{ VALUES ?s {{ {_PROBE} }} ?s (rdf:type|rdf:value) ?o }}",
    ),
    Probe(
        "order_by",
        "probe-order-by",
        f"SELECT ?s WHERE {{ VALUES ?s {{ {_PROBE} {_PROBE_ALT} }} }} ORDER BY ?s LIMIT 1",
    ),
    Probe(
        "limit_offset",
        "probe-limit-offset",
        f"SELECT ?s WHERE {{ VALUES ?s {{ {_PROBE} {_PROBE_ALT} }} }} LIMIT 1 OFFSET 1",
    ),
)

SERVICE_DESCRIPTION_PROBE = Probe(
    "service_description",
    "probe-service-description",
    f"PREFIX sd: <{SD}> ASK {{ ?s a sd:Service }}",
)


# -------------------------------------------------------------------
# Named graphs
# -------------------------------------------------------------------


def graphs_optimistic(limit: int) -> str:
    return (
        "SELECT ?g (COUNT(*) AS ?triples) WHERE { GRAPH ?g { ?s ?p ?o } } "
        f"GROUP BY ?g ORDER BY DESC(?triples) LIMIT {limit}"
    )


def graphs_list(limit: int, offset: int | None = None) -> str:
    return _page("SELECT DISTINCT ?g WHERE { GRAPH ?g { ?s ?p ?o } }", limit, offset)


def graph_count(graph: str) -> str:
    return f"SELECT (COUNT(*) AS ?triples) WHERE {{ GRAPH {iri(graph)} {{ ?s ?p ?o }} }}"


# -------------------------------------------------------------------
# Types
# -------------------------------------------------------------------


def types_optimistic(limit: int) -> str:
    return (
        "SELECT ?type (COUNT(?s) AS ?count) WHERE { ?s a ?type } "
        f"GROUP BY ?type ORDER BY DESC(?count) LIMIT {limit}"
    )


def types_list(limit: int, offset: int | None = None) -> str:
    return _page("SELECT DISTINCT ?type WHERE { ?s a ?type }", limit, offset)


def type_count(type_iri: str) -> str:
    return f"SELECT (COUNT(?s) AS ?count) WHERE {{ ?s a {iri(type_iri)} }}"


# -------------------------------------------------------------------
# Predicates
# -------------------------------------------------------------------


def properties_optimistic(limit: int) -> str:
    return (
        "SELECT ?p (COUNT(*) AS ?count) WHERE { ?s ?p ?o } "
        f"GROUP BY ?p ORDER BY DESC(?count) LIMIT {limit}"
    )


def properties_list(limit: int, offset: int | None = None) -> str:
    return _page("SELECT DISTINCT ?p WHERE { ?s ?p ?o }", limit, offset)


def property_count(property_iri: str) -> str:
    return f"SELECT (COUNT(*) AS ?count) WHERE {{ ?s {iri(property_iri)} ?o }}"


# -------------------------------------------------------------------
# Type x predicate matrix
# -------------------------------------------------------------------


def matrix_optimistic(limit: int) -> str:
    return (
        "SELECT ?type ?p (COUNT(*) AS ?count) WHERE { ?s a ?type ; ?p ?o } "
        f"GROUP BY ?type ?p ORDER BY DESC(?count) LIMIT {limit}"
    )


def matrix_for_type(type_iri: str, limit: int, aggregates: bool) -> str:
    """Properties used by instances of one type, counted when possible."""
    t = iri(type_iri)
    if aggregates:
        return (
            f"SELECT ?p (COUNT(*) AS ?count) WHERE {{ ?s a {t} ; ?p ?o }} "
            f"GROUP BY ?p ORDER BY DESC(?count) LIMIT {limit}"
        )
    return f"SELECT DISTINCT ?p WHERE {{ ?s a {t} ; ?p ?o }} LIMIT {limit}"
