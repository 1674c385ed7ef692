"""CLI entry point for api-sequencer."""

import json
from pathlib import Path

import click

from api_sequencer.catalog import filter_endpoints, load_catalog
from api_sequencer.config import Settings, load_settings
from api_sequencer.errors import SequencerError
from api_sequencer.executor import SequenceExecutor
from api_sequencer.http import HttpClient
from api_sequencer.logging import configure_logging
from api_sequencer.models import HTTP_METHODS, EndpointDescriptor, ExecutionState, ParameterSet, SequenceStep
from api_sequencer.params import PRESETS, ParameterBuilder, preset_parameters, sample_body
from api_sequencer.report import format_results, format_step, to_csv
from api_sequencer.resolver import available_variables
from api_sequencer.sequence_file import load_sequence, sample_document, save_sequence
from api_sequencer.session import Session
from api_sequencer.storage import TokenStore
from api_sequencer.transform import TransformationEngine, final_result, flatten, grid_rows, step_records


def _parse_pairs(values: tuple[str, ...], option: str) -> dict[str, str]:
    """Parse repeated ``key=value`` options."""
    pairs = {}
    for value in values:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got '{value}'", param_hint=option)
        pairs[key.strip()] = val
    return pairs


def _token(settings: Settings) -> str:
    return settings.token or TokenStore(settings.token_store_path).get() or ""


def _executor(settings: Settings, session: Session) -> SequenceExecutor:
    client = HttpClient(settings.base_url, session.token, timeout=settings.timeout)
    builder = ParameterBuilder(settings.base_url, settings.default_limit)
    return SequenceExecutor(session, client, builder)


def _find_endpoint(catalog: list[EndpointDescriptor], method: str, path: str) -> EndpointDescriptor:
    for ep in catalog:
        if ep.method == method.upper() and ep.path == path:
            return ep
    return EndpointDescriptor(method=method, path=path)


def _describe(step: SequenceStep, position: int) -> str:
    result = step.result
    if result is None:
        return f"[SKIPPED] Step {position + 1}: {step.endpoint.label}"
    if not result.ok:
        return f"[FAILED] Step {position + 1}: {step.endpoint.label} - {result.message}"

    line = f"[OK] Step {position + 1}: {step.endpoint.label} ({len(step_records(step))} records)"
    if result.is_iteration:
        summary = result.data
        line += f" - {summary.succeeded}/{summary.total_iterations} iterations succeeded"
    return line


@click.group()
@click.option("--config", "config_path", default=None, type=click.Path(path_type=Path), help="Settings file (YAML).")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: int, quiet: bool):
    """API Sequencer: chain REST API calls and pass results between them."""
    configure_logging(verbose, quiet)
    try:
        ctx.obj = load_settings(config_path)
    except SequencerError as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.option("--spec", "source", default=None, help="OpenAPI document path or URL.")
@click.option("--method", default=None, help="Only endpoints with this HTTP method.")
@click.option("--search", default=None, help="Search path, summary, description and tags.")
@click.option("--tag", default=None, help="Only endpoints with this tag.")
@click.option("--endpoint", "patterns", multiple=True, help="Glob such as 'GET /projects/*'. Repeatable.")
@click.pass_obj
def endpoints(settings: Settings, source: str | None, method: str | None, search: str | None, tag: str | None, patterns: tuple[str, ...]):
    """List the endpoints available to a sequence."""
    catalog = load_catalog(source or settings.catalog_source, settings.timeout)
    matched = filter_endpoints(catalog, patterns, method=method, search=search, tag=tag)

    for ep in matched:
        click.echo(f"{ep.method:<7} {ep.path}  {ep.summary}")
    click.echo(f"{len(matched)} of {len(catalog)} endpoints.")


@main.command()
@click.argument("method", type=click.Choice(HTTP_METHODS, case_sensitive=False))
@click.argument("path")
@click.option("--path", "path_params", multiple=True, help="Path parameter as key=value. Repeatable.")
@click.option("--query", "query_params", multiple=True, help="Query parameter as key=value. Repeatable.")
@click.option("--body", default=None, help="JSON request body.")
@click.option("--preset", type=click.Choice(PRESETS), default=None, help="Start from a limit/opt_fields preset; --query values win.")
@click.option("--report", is_flag=True, help="Print a text report instead of the raw data.")
@click.pass_obj
def call(settings: Settings, method: str, path: str, path_params: tuple[str, ...], query_params: tuple[str, ...], body: str | None, preset: str | None, report: bool):
    """Call a single endpoint and print the response data."""
    endpoint = _find_endpoint(load_catalog(settings.catalog_source, settings.timeout), method, path)
    parameters = ParameterSet(
        path=_parse_pairs(path_params, "--path"),
        query={**(preset_parameters(path, preset) if preset else {}), **_parse_pairs(query_params, "--query")},
        body=body,
    )

    session = Session(settings.base_url, _token(settings))
    result = _executor(settings, session).run_endpoint(endpoint, parameters)
    if report:
        step = SequenceStep(endpoint=endpoint, parameters=parameters, execution_state=ExecutionState.RAN, result=result)
        click.echo(format_step(step, 0))
    elif result.ok:
        click.echo(json.dumps(result.data, indent=2))
    if not result.ok:
        raise click.ClickException(result.message)


@main.command()
@click.argument("sequence_file", type=click.Path(exists=True, path_type=Path))
@click.option("--spec", "source", default=None, help="OpenAPI document path or URL.")
@click.option("--save", "save_path", default=None, type=click.Path(path_type=Path), help="Re-export the sequence to this file.")
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Write the transformed final result here.")
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "csv"]), help="Output format for --output.")
@click.option("--auto-map", is_flag=True, help="Map every field of the final result when no mappings are set.")
@click.option("--all-steps", is_flag=True, help="Write one row per record of every executed step instead of the transformed final result.")
@click.option("--fields", "show_fields", is_flag=True, help="List the fields and variables the results offer.")
@click.option("--preset", type=click.Choice(PRESETS), default=None, help="Apply a limit/opt_fields preset to every step before running.")
@click.option("--report", is_flag=True, help="Print a text report of all executed steps.")
@click.pass_obj
def run(settings: Settings, sequence_file: Path, source: str | None, save_path: Path | None, output: Path | None, fmt: str, auto_map: bool, all_steps: bool, show_fields: bool, preset: str | None, report: bool):
    """Import a sequence file and run every step in order."""
    session = Session(settings.base_url, _token(settings))
    catalog = load_catalog(source or settings.catalog_source, settings.timeout)

    try:
        imported = load_sequence(session, sequence_file, catalog)
    except SequencerError as e:
        raise click.ClickException(str(e)) from e
    click.echo(imported.summary())
    if not session.steps:
        raise click.ClickException("The sequence has no steps to run.")
    if preset:
        for step_id in session.step_ids:
            session.apply_preset(step_id, preset)

    results = _executor(settings, session).run_all()
    for position, step in enumerate(session.steps):
        click.echo(_describe(step, position))

    records = final_result(session.steps)
    engine = TransformationEngine()

    if show_fields:
        click.echo("Fields of the final result:")
        for field in engine.available_fields(records):
            click.echo(f"  {field}")
        click.echo("Variables:")
        for variable in available_variables(session.steps, len(session.steps)):
            click.echo(f"  {variable['path']}  ({variable['description']}: {variable['example']})")

    if output:
        transformations = session.transformations
        if auto_map and not transformations.field_mappings:
            transformations.field_mappings = engine.auto_populate(records)
        if all_steps:
            rows = grid_rows(session.steps)
        elif transformations.count:
            rows = engine.apply(records, transformations.field_mappings, transformations.unified_columns)
        else:
            rows = [flatten(record) for record in records]

        output.parent.mkdir(parents=True, exist_ok=True)
        content = to_csv(rows) if fmt == "csv" else json.dumps(rows, indent=2)
        output.write_text(content, encoding="utf-8")
        click.echo(f"Wrote {len(rows)} records to {output}")

    if report:
        click.echo(format_results(session.steps))

    if save_path:
        save_sequence(session, save_path, sequence_file.stem)
        click.echo(f"Sequence saved to {save_path}")

    if any(not result.ok for result in results):
        click.get_current_context().exit(1)


@main.command()
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the sample sequence.")
def sample(output: Path):
    """Write a sample workspace -> projects sequence file."""
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(sample_document(), indent=2), encoding="utf-8")
    click.echo(f"Sample sequence saved to {output}")


@main.command("body-template")
@click.argument("method", type=click.Choice(HTTP_METHODS, case_sensitive=False))
@click.argument("path")
def body_template(method: str, path: str):
    """Print a starting JSON body for an endpoint."""
    click.echo(sample_body(EndpointDescriptor(method=method, path=path)))


@main.group()
def token():
    """Manage the stored API token."""
    pass


@token.command("set")
@click.argument("value")
@click.pass_obj
def token_set(settings: Settings, value: str):
    """Store a personal access token."""
    if not TokenStore(settings.token_store_path).set(value.strip()):
        raise click.ClickException(f"Could not write {settings.token_store_path}")
    click.echo("Token saved.")


@token.command("show")
@click.pass_obj
def token_show(settings: Settings):
    """Show the active token, masked."""
    value = _token(settings)
    if not value:
        click.echo("No token configured.")
        return
    click.echo(f"{'*' * max(len(value) - 4, 0)}{value[-4:]}")


@token.command("clear")
@click.pass_obj
def token_clear(settings: Settings):
    """Remove the stored token."""
    TokenStore(settings.token_store_path).remove()
    click.echo("Token cleared.")


@main.command("test-connection")
@click.pass_obj
def test_connection(settings: Settings):
    """Check the token against the current-user endpoint."""
    session = Session(settings.base_url, _token(settings))
    if not session.token:
        raise click.ClickException("No token configured. Use 'api-sequencer token set' or API_TOKEN.")

    result = _executor(settings, session).test_connection()
    if not result.ok:
        raise click.ClickException(f"Connection failed: {result.message}")
    name = result.data.get("name", "unknown user") if isinstance(result.data, dict) else "unknown user"
    click.echo(f"Connected as {name}.")
