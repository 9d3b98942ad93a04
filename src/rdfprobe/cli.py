"""Command line interface for :mod:`rdfprobe`."""

import json
import time
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from .analyzer import analyze
from .capabilities import CapabilityProber
from .config import Config
from .cors import detect_cors
from .models import CapabilityInfo, EndpointConfig, FailureRecord
from .sparql_helper import SparqlHelper
from .utils import elapsed_ms, format_duration
from .version import get_version

__all__ = [
    "main",
]


def _load_config(
    endpoint: Optional[str],
    config_file: Optional[str],
    overrides: dict,
) -> EndpointConfig:
    """Build an endpoint config from a JSON file and/or command line options."""
    data: dict = {}
    if config_file:
        try:
            data = json.loads(Path(config_file).read_text(encoding="utf-8"))
        except ValueError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--config-file") from e
        if not isinstance(data, dict):
            raise click.BadParameter("must contain a JSON object", param_hint="--config-file")
    if endpoint:
        data["url"] = endpoint
    data.update({k: v for k, v in overrides.items() if v is not None})
    data.setdefault("name", data.get("url", ""))
    try:
        return EndpointConfig.model_validate(data)
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.version_option(version=get_version(), prog_name="rdfprobe")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    r"""rdfprobe - SPARQL endpoint capability analysis.

    Detect which SPARQL features an endpoint supports and inventory its
    graphs, types and predicates.
    """
    import logging

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )
        logging.getLogger("rdfprobe").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s", force=True)


@main.command(name="analyze")
@click.option("--endpoint", help="SPARQL endpoint URL")
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON endpoint config ({name, url, description, timeoutMs, pageSize, ...})",
)
@click.option("--name", help="Endpoint name (default: the URL)")
@click.option("--description", help="Endpoint description")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Per-query timeout in ms")
@click.option("--page-size", type=click.IntRange(min=1), help="Rows per listing page")
@click.option(
    "--count-workers",
    type=click.IntRange(min=1, max=16),
    help="Parallel COUNT queries during count backfill (default: 1)",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False),
    help="Write the JSON report here instead of stdout",
)
def analyze_command(
    endpoint: Optional[str],
    config_file: Optional[str],
    name: Optional[str],
    description: Optional[str],
    timeout_ms: Optional[int],
    page_size: Optional[int],
    count_workers: Optional[int],
    output: Optional[str],
) -> None:
    r"""Analyse an endpoint and emit the JSON report.

    Progress goes to stderr, the report to stdout (or --output).


    Example:
      rdfprobe analyze --endpoint https://dbpedia.org/sparql --output dbpedia.json
    """
    if not endpoint and not config_file:
        raise click.UsageError("Provide --endpoint or --config-file")

    config = _load_config(
        endpoint,
        config_file,
        {
            "name": name,
            "description": description,
            "timeoutMs": timeout_ms,
            "pageSize": page_size,
            "countWorkers": count_workers,
        },
    )

    start = time.monotonic()
    click.echo(config.name, err=True)
    click.echo(config.url, err=True)
    result = analyze(config, progress=lambda message: click.echo(f"  {message}", err=True))

    report = result.to_json()
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report + "\n", encoding="utf-8")
    else:
        click.echo(report)

    click.echo(
        f"OK Complete  {format_duration(elapsed_ms(start))}  "
        f"({len(result.failures)} failed queries)",
        err=True,
    )
    if output:
        click.echo(f"   Wrote {output}", err=True)


@main.command()
@click.option("--endpoint", required=True, help="SPARQL endpoint URL")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Per-query timeout in ms")
def capabilities(endpoint: str, timeout_ms: Optional[int]) -> None:
    """Probe feature support only and print the capability flags as JSON.

    Example:
      rdfprobe capabilities --endpoint https://query.wikidata.org/sparql
    """
    config = _load_config(endpoint, None, {"timeoutMs": timeout_ms})
    timeout = config.timeout_ms or Config.DEFAULT_TIMEOUT_MS
    failures: list[FailureRecord] = []

    with SparqlHelper(config.url, timeout_ms=timeout) as helper:
        prober = CapabilityProber(helper, failures, timeout)
        json_results, xml_results = prober.detect_result_support()
        cors = detect_cors(config.url, timeout, helper=helper)
        flags = prober.run()

    info = CapabilityInfo(
        json_results=json_results, xml_results=xml_results, cors=cors, **flags,
    )
    click.echo(json.dumps(info.model_dump(by_alias=True), indent=2))
    for failure in failures:
        click.echo(f"  {failure.query_id}: {failure.reason}", err=True)


if __name__ == "__main__":
    main()
