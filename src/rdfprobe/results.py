"""
SPARQL result decoding.

Endpoints do not always honour the ``Accept`` header and some mislabel the
``Content-Type`` of their responses, so the decoder sniffs the body as well:

1. A content type mentioning ``xml``, or a body starting with an XML prolog
   or a ``<sparql`` root, is parsed as SPARQL Results XML.
2. Anything else is parsed as SPARQL Results JSON.
3. If JSON parsing fails, the body is checked once more for an XML signature
   (after stripping a byte-order mark) before giving up.

XML results are normalised to the JSON results shape::

    {"head": {"vars": [...]}, "results": {"bindings": [...]}}   # SELECT
    {"boolean": True}                                           # ASK
"""

from __future__ import annotations

import json
import logging
import math
import xml.etree.ElementTree as ET
from typing import Any, Iterator, Literal, NamedTuple

from rdfprobe.errors import DecodeError

logger = logging.getLogger(__name__)

__all__ = [
    "DecodedResult",
    "decode",
    "extract_number",
    "extract_value",
    "get_bindings",
    "parse_sparql_xml",
]

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
XML_SIGNATURES = ("<?xml", "<sparql")

# Characters fed to the XML parser at a time; each <result> is converted and
# cleared as soon as it is complete
XML_CHUNK_SIZE = 64 * 1024


class DecodedResult(NamedTuple):
    """Parsed result body and the format it was read as."""

    data: dict[str, Any]
    format: Literal["json", "xml"]


def _local_name(tag: str) -> str:
    """Strip the ``{namespace}`` part from an ElementTree tag."""
    return tag.rsplit("}", 1)[-1]


def _term_from_element(value: ET.Element) -> dict[str, str] | None:
    """Convert a ``<uri>``, ``<literal>`` or ``<bnode>`` element to a JSON term."""
    kind = _local_name(value.tag)
    text = value.text or ""
    if kind == "uri":
        return {"type": "uri", "value": text.strip()}
    if kind == "bnode":
        return {"type": "bnode", "value": text.strip()}
    if kind == "literal":
        term = {"type": "literal", "value": text}
        lang = value.get(XML_LANG)
        if lang:
            term["xml:lang"] = lang
        datatype = value.get("datatype")
        if datatype:
            term["datatype"] = datatype
        return term
    return None


def _iter_events(parser: ET.XMLPullParser, text: str) -> Iterator[tuple[str, ET.Element]]:
    """Feed *text* in chunks, yielding parse events as soon as they are complete."""
    for start in range(0, len(text), XML_CHUNK_SIZE):
        parser.feed(text[start:start + XML_CHUNK_SIZE])
        yield from parser.read_events()
    parser.close()
    yield from parser.read_events()


def parse_sparql_xml(text: str) -> dict[str, Any]:
    """Parse a SPARQL Results XML document into the JSON results shape.

    Args:
        text: Raw response body

    Returns:
        ``{"boolean": bool}`` for ASK results, otherwise
        ``{"head": {"vars": [...]}, "results": {"bindings": [...]}}``

    Raises:
        DecodeError: If the body is not well-formed XML
    """
    parser = ET.XMLPullParser(events=("end",))
    variables: list[str] = []
    bindings: list[dict[str, dict[str, str]]] = []
    try:
        for _event, elem in _iter_events(parser, text):
            name = _local_name(elem.tag)
            if name == "variable":
                var = elem.get("name")
                if var:
                    variables.append(var)
            elif name == "boolean":
                return {"boolean": (elem.text or "").strip() == "true"}
            elif name == "result":
                row: dict[str, dict[str, str]] = {}
                for binding in elem:
                    if _local_name(binding.tag) != "binding":
                        continue
                    var = binding.get("name")
                    if not var:
                        continue
                    for value in binding:
                        term = _term_from_element(value)
                        if term is not None:
                            row[var] = term
                            break
                bindings.append(row)
                elem.clear()
    except ET.ParseError as exc:
        raise DecodeError(f"Malformed SPARQL XML results: {exc}") from exc

    return {"head": {"vars": variables}, "results": {"bindings": bindings}}


def decode(body: str, content_type: str = "") -> DecodedResult:
    """Decode a SPARQL response body as JSON or XML results.

    Args:
        body: Raw response text
        content_type: ``Content-Type`` header value (may be empty or wrong)

    Returns:
        :class:`DecodedResult` with the normalised data and detected format

    Raises:
        DecodeError: If the body cannot be read as either format
    """
    trimmed = body.lstrip()
    if "xml" in content_type.lower() or trimmed.startswith(XML_SIGNATURES):
        return DecodedResult(parse_sparql_xml(trimmed.lstrip("\ufeff")), "xml")

    try:
        data = json.loads(body)
    except ValueError:
        unmarked = trimmed.lstrip("\ufeff").lstrip()
        if unmarked.startswith(XML_SIGNATURES):
            logger.debug("JSON parse failed but body looks like XML, retrying as XML")
            return DecodedResult(parse_sparql_xml(unmarked), "xml")
        raise DecodeError("Unsupported SPARQL results format") from None

    if not isinstance(data, dict):
        raise DecodeError("Unsupported SPARQL results format")
    return DecodedResult(data, "json")


def get_bindings(data: Any) -> list[dict[str, Any]]:
    """Return the ``results.bindings`` list, or an empty list."""
    if not isinstance(data, dict):
        return []
    results = data.get("results")
    if not isinstance(results, dict):
        return []
    bindings = results.get("bindings")
    return bindings if isinstance(bindings, list) else []


def extract_value(row: Any, key: str) -> str | None:
    """Return the string value bound to *key* in a bindings row."""
    if not isinstance(row, dict):
        return None
    term = row.get(key)
    value = term.get("value") if isinstance(term, dict) else None
    return value if isinstance(value, str) else None


def extract_number(row: Any, key: str) -> int | None:
    """Return the bound value of *key* as an integer count, if numeric."""
    value = extract_value(row, key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        parsed = float(value)
    except ValueError:
        return None
    return int(parsed) if math.isfinite(parsed) else None
