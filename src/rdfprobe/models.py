"""
Pydantic models for endpoint analysis.

Provides type-safe data structures for the analysis input (endpoint
configuration) and output (capabilities, inventories, section statuses and
failures). Every model serialises to the camelCase JSON shape consumed by
downstream tooling via :meth:`AnalysisResult.to_dict`.
"""

import base64
import json
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rdfprobe.utils import elapsed_ms

__all__ = [
    "AnalysisMeta",
    "AnalysisResult",
    "CapabilityInfo",
    "EndpointAuth",
    "EndpointConfig",
    "EndpointIdentity",
    "FailureRecord",
    "GraphItem",
    "Inventory",
    "MatrixPair",
    "PropertyItem",
    "SectionStatus",
    "TypeItem",
]

Status = Literal["ok", "partial", "failed", "unknown"]
Strategy = Literal["optimistic", "safe", "mixed"]


class _CamelModel(BaseModel):
    """Base model emitting camelCase keys and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------------------------------------------------------------------
# Input
# -------------------------------------------------------------------


class EndpointAuth(_CamelModel):
    """Credentials sent with every request to a protected endpoint."""

    type: Literal["none", "basic", "bearer", "apikey"] = "none"
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    api_key: Optional[str] = None
    header_name: str = "X-API-Key"

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    def headers(self) -> Dict[str, str]:
        """Return the HTTP headers for this auth scheme.

        Incomplete credentials yield no headers rather than a broken one.
        """
        if self.type == "basic" and self.username and self.password:
            raw = f"{self.username}:{self.password}".encode("utf-8")
            return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}
        if self.type == "bearer" and self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if self.type == "apikey" and self.api_key:
            return {self.header_name: self.api_key}
        return {}


class EndpointConfig(_CamelModel):
    """Target endpoint and tunables for one analysis run."""

    name: str = Field(..., min_length=1, description="Human-readable endpoint name")
    url: str = Field(..., description="SPARQL endpoint URL")
    description: Optional[str] = Field(None, description="Free-text description")
    timeout_ms: Optional[int] = Field(None, gt=0, description="Per-query timeout")
    page_size: Optional[int] = Field(None, gt=0, description="Rows per listing page")
    auth: Optional[EndpointAuth] = Field(None, description="Request credentials")
    count_workers: int = Field(
        1, ge=1, le=16, description="Parallel COUNT queries during count backfill",
    )

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only HTTP(S) endpoints can be analysed."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Endpoint URL must be http(s): {v}")
        return v


# -------------------------------------------------------------------
# Output
# -------------------------------------------------------------------


class CapabilityInfo(_CamelModel):
    """Feature support detected for an endpoint.

    ``True`` means the probe succeeded, ``None`` means it failed or was
    inconclusive (treat as unsupported). ``False`` is only produced by
    ``service_description``, where the ASK answer itself is informative.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    json_results: bool = False
    xml_results: bool = False
    cors: Optional[bool] = None
    named_graphs: Optional[bool] = None
    aggregates: Optional[bool] = None
    subqueries: Optional[bool] = None
    values: Optional[bool] = None
    bind: Optional[bool] = None
    property_paths: Optional[bool] = None
    order_by: Optional[bool] = None
    limit_offset: Optional[bool] = None
    service_description: Optional[bool] = None


class SectionStatus(_CamelModel):
    """Outcome of one inventory section."""

    status: Status = "unknown"
    strategy: Strategy = "safe"
    duration_ms: int = Field(0, ge=0)
    notes: Optional[str] = None


class FailureRecord(_CamelModel):
    """A single failed query, recorded instead of raised."""

    section: str
    query_id: str
    reason: str
    duration_ms: int = Field(0, ge=0)

    @classmethod
    def from_exception(
        cls, section: str, query_id: str, error: BaseException, started_at: float,
    ) -> "FailureRecord":
        """Build a record for *error*, timed from a monotonic *started_at*."""
        return cls(
            section=section,
            query_id=query_id,
            reason=str(error) or type(error).__name__,
            duration_ms=elapsed_ms(started_at),
        )


class GraphItem(_CamelModel):
    graph: str
    triples: Optional[int] = None


class TypeItem(_CamelModel):
    type: str
    count: Optional[int] = None


class PropertyItem(_CamelModel):
    property: str
    count: Optional[int] = None


class MatrixPair(_CamelModel):
    type: str
    property: str
    count: Optional[int] = None


ItemT = TypeVar("ItemT", bound=BaseModel)


class Inventory(_CamelModel, Generic[ItemT]):
    """Items of one section plus whether a cap cut the listing short."""

    items: List[ItemT] = Field(default_factory=list)
    limited: bool = False


class EndpointIdentity(_CamelModel):
    name: str
    url: str
    description: Optional[str] = None


class AnalysisMeta(_CamelModel):
    """Timing and identity of an analysis run."""

    analyzed_at: str = Field(..., description="ISO-8601 UTC timestamp")
    duration_ms: int = Field(..., ge=0)
    endpoint: EndpointIdentity
    version: str


class AnalysisResult(_CamelModel):
    """Consolidated, best-effort report for one endpoint."""

    meta: AnalysisMeta
    capabilities: CapabilityInfo
    graphs: Optional[Inventory[GraphItem]] = None
    types: Optional[Inventory[TypeItem]] = None
    properties: Optional[Inventory[PropertyItem]] = None
    type_property_matrix: Optional[Inventory[MatrixPair]] = None
    sections: Dict[str, SectionStatus] = Field(default_factory=dict)
    failures: List[FailureRecord] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase JSON-compatible dictionary."""
        return self.model_dump(by_alias=True, mode="json")

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialise to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)
