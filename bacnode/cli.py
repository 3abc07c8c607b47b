"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer
import yaml

from bacnode.core.backup import dump_document
from bacnode.core.errors import BacnodeError, ConfigError
from bacnode.core.model import ObjectIdentifier, ObjectRecord, Outcome, Success
from bacnode.core.service import NodeService, load_transport_factory

app = typer.Typer(help="BACnet node: discovery and blocking remote object access")

TRANSPORT_OPTION = typer.Option(
    None,
    "--transport",
    envvar="BACNODE_TRANSPORT",
    help="Transport provider as module:callable",
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr")) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def _build_service(transport: str | None) -> NodeService:
    factory = load_transport_factory(transport) if transport else None
    return NodeService(transport_factory=factory)


def _start(service: NodeService) -> set[int]:
    return service.boot().result()


def _parse_identifier(text: str) -> ObjectIdentifier:
    object_type, sep, instance = text.rpartition(":")
    if not sep or not object_type or not instance.isdigit():
        raise ConfigError(f"Object identifier must look like 'analog-value:1', got '{text}'")
    return object_type, int(instance)


def _parse_assignments(assignments: list[str]) -> dict[str, object]:
    properties: dict[str, object] = {}
    for assignment in assignments:
        name, sep, raw = assignment.partition("=")
        if not sep or not name:
            raise ConfigError(f"Property assignment must look like 'present-value=72.5', got '{assignment}'")
        properties[name.strip()] = yaml.safe_load(raw)
    return properties


def _describe(outcome: Outcome) -> str:
    if isinstance(outcome, Success):
        return f"ok {outcome.value}"
    label = type(outcome).__name__.lower()
    details = ", ".join(f"{k}={v}" for k, v in vars(outcome).items() if v is not None)
    return f"{label} {details}".rstrip()


def _exit_unless_success(outcome: Outcome) -> None:
    if not isinstance(outcome, Success):
        typer.echo(f"Error: {_describe(outcome)}", err=True)
        raise typer.Exit(code=1)


@app.command("discover")
def discover(
    min_range: int | None = typer.Option(None, "--min", help="Lowest device instance"),
    max_range: int | None = typer.Option(None, "--max", help="Highest device instance"),
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Send a WhoIs and list the devices that answered."""
    try:
        with _build_service(transport) as service:
            _start(service)
            found = service.discovery.find_devices_and_extended_info(min_range, max_range)
            if not found:
                typer.echo("No remote devices found")
                return
            names = dict(service.discovery.remote_devices_and_names())
            for device_id in sorted(found):
                typer.echo(f"{device_id} {names.get(device_id) or '<unknown>'}")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("objects")
def list_objects(
    device_id: int,
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """List the objects hosted by a remote device."""
    try:
        with _build_service(transport) as service:
            _start(service)
            outcome = service.remote.list_objects(device_id)
            _exit_unless_success(outcome)
            for object_type, instance in outcome.value:
                typer.echo(f"{object_type}:{instance}")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("read")
def read(
    device_id: int,
    object_identifier: str,
    properties: list[str] | None = typer.Argument(None),
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Read properties of a remote object (all of them when none are named)."""
    try:
        oid = _parse_identifier(object_identifier)
        with _build_service(transport) as service:
            _start(service)
            outcome = service.remote.read_properties(device_id, oid, *(properties or ["all"]))
            _exit_unless_success(outcome)
            for name, value in outcome.value.items():
                typer.echo(f"{name}: {value}")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("write")
def write(
    device_id: int,
    object_identifier: str,
    assignments: list[str],
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Write PROPERTY=VALUE assignments to a remote object."""
    try:
        record = ObjectRecord(_parse_identifier(object_identifier), _parse_assignments(assignments))
        with _build_service(transport) as service:
            _start(service)
            outcomes = service.remote.write_properties(device_id, record)
            failed = False
            for name, outcome in outcomes.items():
                typer.echo(f"{name}: {_describe(outcome)}")
                failed = failed or not isinstance(outcome, Success)
            if failed:
                raise typer.Exit(code=1)
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("create")
def create(
    device_id: int,
    object_identifier: str,
    assignments: list[str] | None = typer.Argument(None),
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Create an object on a remote device."""
    try:
        record = ObjectRecord(_parse_identifier(object_identifier), _parse_assignments(assignments or []))
        with _build_service(transport) as service:
            _start(service)
            outcome = service.remote.create_remote_object(device_id, record)
            _exit_unless_success(outcome)
            typer.echo(f"Created {object_identifier} on {device_id}")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("delete")
def delete(
    device_id: int,
    object_identifier: str,
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Delete an object from a remote device."""
    try:
        oid = _parse_identifier(object_identifier)
        with _build_service(transport) as service:
            _start(service)
            _exit_unless_success(service.remote.delete_remote_object(device_id, oid))
            typer.echo(f"Deleted {object_identifier} from {device_id}")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("subscribe")
def subscribe(
    device_id: int,
    object_identifier: str,
    lifetime: int = typer.Option(60, "--lifetime", help="Subscription lifetime in seconds"),
    confirmed: bool = typer.Option(False, "--confirmed", help="Ask for confirmed notifications"),
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Subscribe to change-of-value notifications for a remote object."""
    try:
        oid = _parse_identifier(object_identifier)
        with _build_service(transport) as service:
            _start(service)
            outcome = service.remote.subscribe_cov(
                device_id, oid, confirmed=confirmed, lifetime_seconds=lifetime
            )
            _exit_unless_success(outcome)
            typer.echo(f"Subscribed to {object_identifier} on {device_id} for {lifetime}s")
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("configure")
def configure(
    device_id: int | None = typer.Option(None, "--device-id", help="Local device instance"),
    port: int | None = typer.Option(None, "--port", help="Local UDP port"),
    broadcast_address: str | None = typer.Option(None, "--broadcast-address"),
    timeout: int | None = typer.Option(None, "--timeout", help="Request timeout in ms"),
    transport: str | None = TRANSPORT_OPTION,
) -> None:
    """Reset the local device with new settings and save the backup."""
    overrides = {
        key: value
        for key, value in {
            "device_id": device_id,
            "port": port,
            "broadcast_address": broadcast_address,
            "timeout": timeout,
        }.items()
        if value is not None
    }
    try:
        with _build_service(transport) as service:
            _start(service)
            service.local.reset(overrides)
            snapshot = service.save()
            typer.echo(
                f"Saved device {snapshot.config.device_id} on port {snapshot.config.port} "
                f"to {service.backups.store.path}"
            )
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("show-backup")
def show_backup(transport: str | None = TRANSPORT_OPTION) -> None:
    """Print the saved local device backup."""
    try:
        with _build_service(transport) as service:
            snapshot = service.backups.store.read()
            typer.echo(dump_document(snapshot).rstrip())
    except BacnodeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
