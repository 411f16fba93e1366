"""CLI entry point for connector-kit."""

import json
from pathlib import Path

import click

from connector_kit.config import connection_values_from_env, get_settings
from connector_kit.deploy.pusher import push as push_connector
from connector_kit.descriptor.loader import check_source, load_connector, load_connector_value
from connector_kit.descriptor.model import ConnectorDescriptor
from connector_kit.descriptor.validator import Severity, ValidationResult, validate
from connector_kit.errors import ConnectorKitError, MalformedDescriptor
from connector_kit.logs import configure_logging
from connector_kit.recording.cassette import Cassette, RecordMode, connection_filters
from connector_kit.runtime.harness import ExecutionHarness
from connector_kit.runtime.http import RequestsTransport, Transport

RECORD_MODES = [m.value for m in RecordMode]


def _check(connector_path: Path) -> ValidationResult:
    """Syntax check, then build and validate the descriptor."""
    result = ValidationResult(findings=check_source(connector_path))
    if result.errors:
        return result
    try:
        raw = load_connector_value(connector_path)
    except MalformedDescriptor as e:
        result.add(e, e.location)
        return result
    result.findings.extend(validate(raw).findings)
    return result


def _echo_findings(result: ValidationResult) -> None:
    for f in result.findings:
        where = f" [{f.location}]" if f.location else ""
        err = f.severity is Severity.ERROR
        click.echo(f"  {f.severity.value.upper()} {f.code}{where}: {f.message}", err=err)


def _parse_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    values = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--connection")
        key, value = pair.split("=", 1)
        values[key.strip()] = value
    return values


def _load_input(input_json: str | None, input_file: Path | None) -> dict:
    if input_json and input_file:
        raise click.UsageError("use either --input or --input-file, not both")
    text = input_file.read_text(encoding="utf-8") if input_file else input_json
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--input") from e
    if not isinstance(data, dict):
        raise click.BadParameter("input must be a JSON object", param_hint="--input")
    return data


def _connection_values(descriptor: ConnectorDescriptor, pairs: tuple[str, ...]) -> dict[str, str]:
    return {**connection_values_from_env(descriptor), **_parse_pairs(pairs)}


def _build_transport(
    connector_path: Path,
    name: str,
    connection_values: dict[str, str],
    record_mode: str | None,
    cassette: Path | None,
    live: bool,
) -> Transport:
    live_transport = RequestsTransport()
    if live:
        return live_transport
    settings = get_settings()
    mode = RecordMode(record_mode) if record_mode else settings.record_mode
    path = cassette or settings.cassette_dir / f"{connector_path.stem}_{name}.yaml"
    click.echo(f"Using cassette {path} (mode: {mode.value})", err=True)
    return Cassette(path, mode=mode, filters=connection_filters(connection_values), transport=live_transport)


def _echo_json(value) -> None:
    click.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


_connector_argument = click.argument("connector_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
_connection_option = click.option(
    "-c", "--connection", "connection_pairs", multiple=True,
    help="Connection value as KEY=VALUE (overrides TEST_<KEY>).",
)
_record_mode_option = click.option("--record-mode", default=None, type=click.Choice(RECORD_MODES), help="Cassette mode.")
_cassette_option = click.option("--cassette", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Cassette file.")
_live_option = click.option("--live", is_flag=True, help="Call the service directly, without a cassette.")


@click.group()
def main():
    """connector-kit: validate, exercise and push integration connectors."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)


@main.command()
@_connector_argument
def check(connector_path: Path):
    """Check a connector file's syntax and descriptor."""
    click.echo(f"Checking {connector_path}...")
    result = _check(connector_path)
    _echo_findings(result)
    if not result.ok:
        raise click.ClickException(f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)")
    click.echo(f"OK ({len(result.warnings)} warning(s))")


@main.command("exec")
@_connector_argument
@click.argument("action")
@click.option("--input", "input_json", default=None, help="Action input as a JSON object.")
@click.option("--input-file", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Action input JSON file.")
@_connection_option
@_record_mode_option
@_cassette_option
@_live_option
def exec_action(connector_path, action, input_json, input_file, connection_pairs, record_mode, cassette, live):
    """Run one action and print its output."""
    try:
        descriptor = load_connector(connector_path)
        values = _connection_values(descriptor, connection_pairs)
        transport = _build_transport(connector_path, action, values, record_mode, cassette, live)
        result = ExecutionHarness(transport).run(descriptor, action, values, _load_input(input_json, input_file))
    except ConnectorKitError as e:
        raise click.ClickException(str(e)) from e
    _echo_json(result.output)


@main.command()
@_connector_argument
@click.argument("trigger")
@click.option("--input", "input_json", default=None, help="Trigger input as a JSON object.")
@click.option("--input-file", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Trigger input JSON file.")
@click.option("--closure", default=None, help="Cursor from a previous poll, as JSON.")
@_connection_option
@_record_mode_option
@_cassette_option
@_live_option
def poll(connector_path, trigger, input_json, input_file, closure, connection_pairs, record_mode, cassette, live):
    """Poll a trigger once and print its events and next closure."""
    try:
        closure_value = json.loads(closure) if closure else None
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--closure") from e
    try:
        descriptor = load_connector(connector_path)
        values = _connection_values(descriptor, connection_pairs)
        transport = _build_transport(connector_path, trigger, values, record_mode, cassette, live)
        result = ExecutionHarness(transport).run_trigger(
            descriptor, trigger, values, _load_input(input_json, input_file), closure=closure_value,
        )
    except ConnectorKitError as e:
        raise click.ClickException(str(e)) from e
    _echo_json({"events": result.events, "closure": result.closure})


@main.command()
@_connector_argument
@_connection_option
@_record_mode_option
@_cassette_option
@_live_option
def test(connector_path, connection_pairs, record_mode, cassette, live):
    """Run the connector's connection test."""
    try:
        descriptor = load_connector(connector_path)
        values = _connection_values(descriptor, connection_pairs)
        transport = _build_transport(connector_path, "connection_test", values, record_mode, cassette, live)
        ExecutionHarness(transport).test_connection(descriptor, values)
    except ConnectorKitError as e:
        raise click.ClickException(str(e)) from e
    click.echo("Connection OK")


@main.command()
@click.option("-f", "--file", "connector_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Connector file to push.")
@click.option("-t", "--token", default=None, help="Bearer token (defaults to CONNECTOR_KIT_API_TOKEN).")
@click.option("--endpoint", default=None, help="Registry endpoint (defaults to CONNECTOR_KIT_PUSH_ENDPOINT).")
@click.option("--notes", default=None, help="Release notes sent with the connector.")
def push(connector_path: Path, token: str | None, endpoint: str | None, notes: str | None):
    """Check a connector, then push it to the registry."""
    settings = get_settings()
    result = _check(connector_path)
    _echo_findings(result)
    if not result.ok:
        raise click.ClickException("connector failed checks; not pushing")

    endpoint = endpoint or settings.push_endpoint
    click.echo(f"Pushing {connector_path} to {endpoint}...")
    try:
        pushed = push_connector(
            connector_path.read_bytes(),
            endpoint,
            token or settings.api_token,
            notes=notes,
        )
    except ConnectorKitError as e:
        raise click.ClickException(str(e)) from e
    suffix = f" (id: {pushed.connector_id})" if pushed.connector_id else ""
    click.echo(f"Pushed{suffix}")
