"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import typer

from gattcheck.core.decoder import batch_hex_dump, parse_hex
from gattcheck.core.errors import GattcheckError
from gattcheck.core.model import ComparisonResult, Profile
from gattcheck.core.profile import load_profile
from gattcheck.core.reference import ReferenceStore
from gattcheck.core.session import Session
from gattcheck.core.storage import DirectoryStorage
from gattcheck.transports.ble_gatt import BleakAdapter

app = typer.Typer(help="Capture BLE notifications and compare them with a reference transcript")

_POLL_INTERVAL_S = 0.1


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(profile_path: Path | None) -> Profile:
    loaded = load_profile(profile_path)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded.profile


class _WatchObserver:
    def __init__(self, notify: list[str]) -> None:
        self.notify = notify
        self.session: Session | None = None

    def on_gatt_connected(self) -> None:
        typer.echo("connected")

    def on_gatt_disconnected(self) -> None:
        typer.echo("disconnected")

    def on_services_discovered(self) -> None:
        typer.echo("services discovered")
        if self.session is None:
            return
        for uuid in self.notify:
            self.session.set_notification(uuid, True)
            typer.echo(f"subscribed {uuid}")

    def on_data_available(self, data: str, same: bool) -> None:
        if data:
            typer.echo(data)
        else:
            typer.echo(f"batch recorded same={same}")


@app.command("watch")
def watch(
    address: str,
    notify: list[str] = typer.Option([], "--notify", help="Characteristic UUID to subscribe to"),
    duration: float | None = typer.Option(None, "--duration", help="Seconds to watch before exiting"),
    profile_path: Path | None = typer.Option(None, "--profile", help="Profile YAML file"),
) -> None:
    """Connect to ADDRESS and print notifications until interrupted."""
    adapter: BleakAdapter | None = None
    session: Session | None = None
    try:
        profile = _load(profile_path)
        adapter = BleakAdapter()
        observer = _WatchObserver(notify)
        session = Session(adapter, observer, profile=profile)
        observer.session = session
        if not session.initialize() or not session.connect(address):
            raise session.last_error or GattcheckError(f"Connect request to {address} was rejected")

        deadline = None if duration is None else time.monotonic() + duration
        while deadline is None or time.monotonic() < deadline:
            time.sleep(_POLL_INTERVAL_S)
    except KeyboardInterrupt:
        typer.echo("interrupted", err=True)
    except GattcheckError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    finally:
        if session is not None:
            session.buffer.flush()
            session.disconnect()
            session.close()
        if adapter is not None:
            adapter.shutdown()


@app.command("check")
def check(
    capture: Path = typer.Argument(..., help="File holding a hex dump, one payload per line"),
    profile_path: Path | None = typer.Option(None, "--profile", help="Profile YAML file"),
) -> None:
    """Compare a captured hex dump with the reference transcript."""
    try:
        profile = _load(profile_path)
        try:
            lines = capture.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise GattcheckError(f"Could not read {capture}: {exc}") from exc
        try:
            payloads = [parse_hex(line) for line in lines if line.strip()]
        except ValueError as exc:
            raise GattcheckError(f"{capture} is not a hex dump: {exc}") from exc

        reference = ReferenceStore(
            DirectoryStorage(profile.storage.root),
            profile.reference.keyword,
            profile.reference.search_dirs,
        )
        result = reference.compare(batch_hex_dump(payloads))
        typer.echo(reference.marker(result))
    except GattcheckError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if result is not ComparisonResult.SAME:
        raise typer.Exit(code=1)


@app.command("profile")
def show_profile(
    profile_path: Path | None = typer.Option(None, "--profile", help="Profile YAML file"),
) -> None:
    """Print the effective session profile."""
    try:
        profile = _load(profile_path)
    except GattcheckError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    timeout = "none" if profile.connect_timeout_s is None else f"{profile.connect_timeout_s}s"
    typer.echo(f"debounce: {int(round(profile.debounce_s * 1000))}ms")
    typer.echo(f"connect timeout: {timeout}")
    typer.echo(f"measurement: {profile.measurement_uuid}")
    typer.echo(f"storage: {profile.storage.root / profile.storage.log_name}")
    dirs = ", ".join(d or "." for d in profile.reference.search_dirs)
    typer.echo(f"reference: *{profile.reference.keyword}* in {dirs}")
    for rule in profile.descriptor_rules:
        descriptors = ", ".join(rule.descriptor_uuids) or "all"
        typer.echo(f"  notify {rule.characteristic_uuid}: {descriptors}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
