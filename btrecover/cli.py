"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from btrecover.core.device_match import find_device
from btrecover.core.errors import (
    BtRecoverError,
    DeviceNotFoundError,
    PreconditionError,
    RecoveryExhaustedError,
)
from btrecover.core.model import Transition
from btrecover.core.service import MODES, Overrides, RecoveryService

EXIT_ERROR = 1
EXIT_NOT_FOUND = 3
EXIT_EXHAUSTED = 4
EXIT_NOT_ELEVATED = 5

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help="Recover a misbehaving Windows Bluetooth adapter by toggling PnP and service state")


def _build_service() -> RecoveryService:
    service = RecoveryService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _configure_logging(log_file: Path | None, verbose: bool) -> None:
    root = logging.getLogger("btrecover")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(file_handler)


def _echo_transition(transition: Transition) -> None:
    status = transition.status or "-"
    typer.echo(
        f"[attempt {transition.attempt}] {transition.state.value}: {transition.action} (status: {status})"
    )


@app.command("profiles")
def list_profiles() -> None:
    """List available recovery profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=EXIT_ERROR)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            match = profile.match
            if match.exact_name:
                typer.echo(f"  name: {match.exact_name}")
            if match.fuzzy_pattern:
                typer.echo(f"  pattern: {match.fuzzy_pattern}")
            if match.device_class:
                typer.echo(f"  class: {match.device_class}")
            if profile.service_name:
                typer.echo(f"  service: {profile.service_name}")
    except BtRecoverError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_ERROR) from None


@app.command("devices")
def list_devices(
    device_class: str | None = typer.Option(None, "--class", help="Restrict to a PnP device class"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID used to mark the target"),
) -> None:
    """List PnP devices with their status and mark the one recovery would pick."""
    try:
        service = _build_service()
        resolved = service.resolve_profile(profile)
        devices = service.list_devices(device_class)
        if not devices:
            typer.echo("No devices found")
            return

        target = find_device(devices, resolved.match)
        for device in devices:
            marker = "*" if target is not None and device.instance_id == target.instance_id else " "
            typer.echo(f"{marker} {device.friendly_name} [{device.status}] {device.instance_id}")
    except BtRecoverError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_ERROR) from None


@app.command("recover")
def recover(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    device: str | None = typer.Option(None, "--device", help="Exact friendly name of the adapter"),
    pattern: str | None = typer.Option(None, "--pattern", help="Case-insensitive name fragment"),
    device_class: str | None = typer.Option(None, "--class", help="PnP device class filter"),
    service_name: str | None = typer.Option(None, "--service", help="OS service to restart"),
    mode: str = typer.Option("pnp", "--mode", help="pnp, service, or combined"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", "--max-retries", help="Attempt budget"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds allowed per state"),
    delay: float | None = typer.Option(None, "--delay", help="Seconds between attempts"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write a log to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every step to stderr"),
) -> None:
    """Recover the Bluetooth adapter, retrying until it reports OK."""
    _configure_logging(log_file, verbose)
    if mode not in MODES:
        typer.echo(f"Error: unknown mode '{mode}'. Choose one of: {', '.join(MODES)}", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    overrides = Overrides(
        exact_name=device,
        fuzzy_pattern=pattern,
        device_class=device_class,
        service_name=service_name,
        max_attempts=max_attempts,
        state_timeout_s=timeout,
        retry_delay_s=delay,
    )
    try:
        service = _build_service()
        report = service.recover(profile, mode=mode, overrides=overrides, observer=_echo_transition)
    except PreconditionError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_NOT_ELEVATED) from None
    except DeviceNotFoundError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_NOT_FOUND) from None
    except RecoveryExhaustedError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_EXHAUSTED) from None
    except BtRecoverError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_ERROR) from None

    last = report.attempts[-1]
    target = f" {report.device.friendly_name}" if report.device is not None else ""
    typer.echo(f"Recovered{target} ({report.mode}) on attempt {last.attempt}: {last.diagnostic}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
