"""Shared fixtures for rdfprobe tests."""

from __future__ import annotations

import pytest

from fake_endpoint import FakeEndpoint
from rdfprobe.models import CapabilityInfo, EndpointConfig
from rdfprobe.sparql_helper import SparqlHelper

ENDPOINT_URL = "http://example.org/sparql"

ALL_FEATURES = dict(
    json_results=True,
    xml_results=True,
    cors=False,
    named_graphs=True,
    aggregates=True,
    subqueries=True,
    values=True,
    bind=True,
    property_paths=True,
    order_by=True,
    limit_offset=True,
    service_description=True,
)


@pytest.fixture()
def make_capabilities():
    """Capabilities with every feature on, minus the given overrides."""

    def _make(**overrides) -> CapabilityInfo:
        return CapabilityInfo(**{**ALL_FEATURES, **overrides})

    return _make


@pytest.fixture()
def endpoint_config():
    return EndpointConfig(name="Example", url=ENDPOINT_URL, timeout_ms=5000, page_size=10)


@pytest.fixture()
def make_helper():
    """Build a SparqlHelper wired to a FakeEndpoint."""
    helpers = []

    def _make(endpoint: FakeEndpoint, **kwargs) -> SparqlHelper:
        helper = SparqlHelper(ENDPOINT_URL, session=endpoint, **kwargs)
        helpers.append(helper)
        return helper

    yield _make
    for helper in helpers:
        helper.close()


@pytest.fixture()
def failures():
    """Shared failure log for one analysis."""
    return []
