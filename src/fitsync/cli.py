"""CLI interface for the fitsync daemon."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from datetime import UTC, date, datetime
from pathlib import Path

import httpx
import typer
from pydantic import SecretStr, ValidationError
from rich.console import Console

from fitsync.config import (
    config_exists,
    ensure_dirs,
    get_base_dir,
    load_config,
    save_config,
    validate_api_key,
)

app = typer.Typer(
    name="fitsync",
    help="Offline-first fitness tracker sync: local log, cloud backup to JSONBin.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# RPC helper
# ---------------------------------------------------------------------------


def _socket_path() -> Path:
    return get_base_dir() / "daemon.sock"


def send_command(cmd: str, params: dict | None = None) -> dict:
    """Send a JSON-RPC-style command to the running daemon over UDS.

    Raises a user-friendly error (via ``typer.Exit``) when the daemon
    socket does not exist or the connection is refused.
    """
    sock = _socket_path()
    if not sock.exists():
        console.print(
            f"[red]Daemon is not running.[/red]  (socket not found at [bold]{sock}[/bold])",
        )
        raise typer.Exit(1)

    payload: dict = {"cmd": cmd}
    if params is not None:
        payload["params"] = params

    transport = httpx.HTTPTransport(uds=str(sock))
    try:
        with httpx.Client(transport=transport, base_url="http://localhost") as client:
            response = client.post("/rpc", json=payload, timeout=10.0)
            response.raise_for_status()
            return response.json()
    except httpx.ConnectError:
        console.print(
            "[red]Could not connect to daemon.[/red]  Is it running?  Try [bold]fitsync start[/bold].",
        )
        raise typer.Exit(1) from None
    except httpx.HTTPStatusError as exc:
        console.print(f"[red]Daemon returned an error:[/red] {exc.response.status_code}")
        raise typer.Exit(1) from exc


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_duration(seconds: float) -> str:
    """Format seconds into a human-readable duration string."""
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h"


def _human_time(iso_str: str | None) -> str:
    """Convert an ISO timestamp to a relative time string."""
    if not iso_str:
        return "—"
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return iso_str
    diff = (datetime.now(UTC) - dt).total_seconds()
    if diff < 0:
        return f"in {_format_duration(-diff)}"
    return f"{_format_duration(diff)} ago"


_STATUS_COLORS = {"idle": "green", "syncing": "blue", "offline": "yellow", "error": "red"}


def _print_sync_state(sync_info: dict) -> None:
    status = sync_info.get("status", "unknown")
    color = _STATUS_COLORS.get(status, "white")
    console.print(f"  [bold]Sync:[/bold]     [{color}]{status}[/{color}]")
    console.print(f"  [bold]Pending:[/bold]  {sync_info.get('pending_change_count', 0)}")
    console.print(f"  [bold]Last:[/bold]     {_human_time(sync_info.get('last_synced_at'))}")
    retry = sync_info.get("retry")
    if retry:
        console.print(
            f"  [bold]Retry:[/bold]    #{retry['attempt_number']} {_human_time(retry['scheduled_at'])}"
            f" [dim](backoff {retry['backoff_ms']} ms)[/dim]"
        )
    if sync_info.get("last_error"):
        console.print(f"  [bold]Error:[/bold]    [red]{sync_info['last_error']}[/red]")


# ---------------------------------------------------------------------------
# Daemon commands
# ---------------------------------------------------------------------------


@app.command()
def start(
    foreground: bool = typer.Option(False, "--foreground", "-F", help="Run in this terminal instead of detaching"),
) -> None:
    """Start the fitsync background daemon."""
    from fitsync.daemon import Daemon

    ensure_dirs()

    if not config_exists() or not load_config().is_cloud_configured():
        console.print(
            "[yellow]Cloud sync is not configured;[/yellow] changes will only be saved locally.  "
            "Run [bold]fitsync cloud init --api-key <key>[/bold] to enable it.\n"
        )

    daemon = Daemon()
    if daemon.is_running():
        console.print(f"[yellow]Daemon is already running[/yellow] (PID {daemon.get_pid()}).")
        raise typer.Exit(0)

    if foreground:
        console.print("[green]Running in foreground.[/green]  Press Ctrl+C to stop.")
        daemon.run_foreground()
        return

    daemon.start()
    console.print(f"[green]Daemon started[/green] (PID {daemon.get_pid()}).")


@app.command()
def stop() -> None:
    """Stop the running daemon gracefully (falls back to SIGTERM if RPC unavailable)."""
    from fitsync.daemon import Daemon

    sock = _socket_path()
    if sock.exists():
        try:
            send_command("shutdown")
            console.print("[green]Daemon stopped.[/green]")
            return
        except typer.Exit:
            # Socket is stale; fall through to the PID-based stop.
            pass

    daemon = Daemon()
    if not daemon.is_running():
        console.print("[yellow]Daemon is not running.[/yellow]")
        raise typer.Exit(0)

    daemon.stop()
    console.print("[green]Daemon stopped.[/green]")


@app.command()
def restart() -> None:
    """Restart the daemon — performs stop followed by start."""
    import contextlib

    from fitsync.daemon import Daemon

    sock = _socket_path()
    if sock.exists():
        with contextlib.suppress(typer.Exit):
            send_command("shutdown")

    daemon = Daemon()
    if daemon.is_running():
        daemon.stop()

    ensure_dirs()
    daemon = Daemon()
    daemon.start()
    console.print(f"[green]Daemon restarted[/green] (PID {daemon.get_pid()}).")


@app.command()
def status() -> None:
    """Show daemon uptime, sync state, pending changes and scheduler info."""
    result = send_command("status")
    data = result.get("data", result) if isinstance(result, dict) else result

    console.print()

    uptime_secs = data.get("uptime_seconds")
    if uptime_secs is not None:
        console.print(f"  [bold]Uptime:[/bold]   {_format_duration(uptime_secs)}")

    sync_info = data.get("sync")
    if sync_info:
        _print_sync_state(sync_info)

    sched = data.get("scheduler")
    if sched:
        console.print("\n  [bold cyan]Scheduler[/bold cyan]")
        console.print(f"    paused:   {sched.get('paused')}")
        console.print(f"    interval: {sched.get('interval_minutes')}m")
        console.print(f"    queued:   {', '.join(sched.get('queued_tasks', [])) or 'none'}")
        if sched.get("next_sweep_at"):
            console.print(f"    sweep:    {_human_time(sched['next_sweep_at'])}")

    console.print()


@app.command()
def sync() -> None:
    """Trigger a manual sync on the running daemon (clears exhausted retries)."""
    result = send_command("sync_now")
    if result.get("ok", True):
        console.print("[green]Sync triggered.[/green]")
    else:
        console.print(f"[red]Error:[/red] {result.get('error', 'unknown')}")
        raise typer.Exit(1)


@app.command()
def pause() -> None:
    """Pause automatic syncing; local changes are still recorded."""
    send_command("pause")
    console.print("[yellow]Sync paused.[/yellow]")


@app.command()
def resume() -> None:
    """Resume automatic syncing."""
    send_command("resume")
    console.print("[green]Sync resumed.[/green]")


# ---------------------------------------------------------------------------
# Recording changes
# ---------------------------------------------------------------------------


def _record(payload: dict) -> None:
    """Record a change through the daemon, or straight into the local store if it is down."""
    from fitsync.storage import LocalStore, LocalStoreError
    from fitsync.storage.models import Mutation

    try:
        mutation = Mutation.model_validate(payload)
    except ValidationError as exc:
        console.print(f"[red]Invalid change:[/red] {exc.errors()[0]['msg']}")
        raise typer.Exit(1) from exc

    if _socket_path().exists():
        result = send_command("record", mutation.model_dump(mode="json"))
        if not result.get("ok", True):
            console.print(f"[red]Error:[/red] {result.get('error', 'unknown')}")
            raise typer.Exit(1)
        pending = result.get("data", {}).get("sync", {}).get("pending_change_count", "?")
        console.print(f"[green]Saved.[/green] [dim]{pending} change(s) pending sync.[/dim]")
        return

    ensure_dirs()
    try:
        with LocalStore(load_config().store_path) as store:
            store.apply(mutation)
            pending = store.pending_count()
    except LocalStoreError as exc:
        console.print(f"[red]Local store failure:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(
        f"[green]Saved locally.[/green] [dim]{pending} change(s) will sync when the daemon runs.[/dim]"
    )


@app.command(name="log")
def log_entry(
    weight: float | None = typer.Option(None, "--weight", "-w", help="Body weight"),
    steps: int | None = typer.Option(None, "--steps", "-s", help="Step count"),
    exercise: int | None = typer.Option(None, "--exercise", "-e", help="Exercise minutes"),
    water: int | None = typer.Option(None, "--water", help="Glasses of water"),
    day: str = typer.Option("", "--date", "-d", help="Day to log (YYYY-MM-DD, default today)"),
) -> None:
    """Record a daily log entry."""
    try:
        log_date = date.fromisoformat(day) if day else date.today()
    except ValueError as exc:
        console.print(f"[red]Invalid date:[/red] {day}")
        raise typer.Exit(1) from exc

    entry = {
        "date": log_date.isoformat(),
        "weight": weight,
        "steps": steps,
        "exercise_minutes": exercise,
        "water": water,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    entry = {k: v for k, v in entry.items() if v is not None}
    if len(entry) == 2:
        console.print("[red]Nothing to log.[/red]  Pass at least one of --weight, --steps, --exercise, --water.")
        raise typer.Exit(1)

    _record({"op": "set", "section": "daily_logs", "key": log_date.isoformat(), "value": entry})


@app.command()
def record(
    section: str = typer.Argument(help="Dataset section, e.g. settings or custom_rewards"),
    key: str = typer.Argument("", help="Entry key (omit to replace or append to the whole section)"),
    value: str = typer.Option("null", "--value", "-v", help="JSON value"),
    op: str = typer.Option("set", "--op", help="set, delete or append"),
) -> None:
    """Record an arbitrary change to one dataset section."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        console.print(f"[red]--value is not valid JSON:[/red] {exc}")
        raise typer.Exit(1) from exc
    _record({"op": op, "section": section, "key": key or None, "value": parsed})


@app.command()
def pull(
    force: bool = typer.Option(False, "--force", help="Overwrite even with unsynced local changes"),
) -> None:
    """Restore local data from the cloud bin."""
    from fitsync.storage import LocalStore
    from fitsync.sync.engine import SyncEngine
    from fitsync.sync.errors import SyncError
    from fitsync.sync.timers import TimerQueue

    cfg = load_config()
    if not cfg.is_cloud_configured():
        console.print("[red]Cloud sync is not configured.[/red]  Run [bold]fitsync cloud init[/bold].")
        raise typer.Exit(1)

    ensure_dirs()
    with LocalStore(cfg.store_path) as store:
        engine = SyncEngine(cfg, store, TimerQueue())
        try:
            restored = asyncio.run(engine.restore_from_remote(force=force))
        except SyncError as exc:
            console.print(f"[red]Pull failed ({exc.kind}):[/red] {exc}")
            raise typer.Exit(1) from exc
        finally:
            engine.close()

    if restored:
        console.print("[green]Local data restored from the cloud.[/green]")
    else:
        console.print("[yellow]Unsynced local changes exist.[/yellow]  Sync first, or pass --force.")


@app.command(name="export")
def export_data(
    path: Path | None = typer.Argument(None, help="Output file (default: fitsync_<source>_backup_<date>.json)"),
    cloud: bool = typer.Option(False, "--cloud", help="Export the cloud copy instead of local data"),
) -> None:
    """Write a JSON backup of the local dataset or of the cloud bin."""
    from fitsync.storage import LocalStore, LocalStoreError

    source = "cloud" if cloud else "local"
    cfg = load_config()

    if cloud:
        if not cfg.is_cloud_configured():
            console.print("[red]Cloud sync is not configured.[/red]  Run [bold]fitsync cloud init[/bold].")
            raise typer.Exit(1)
        data = _run_client(lambda client: client.read_bin())
        if not data:
            console.print("[yellow]No cloud data found.[/yellow]")
            raise typer.Exit(1)
    else:
        ensure_dirs()
        try:
            with LocalStore(cfg.store_path) as store:
                data = store.load_dataset().model_dump(mode="json")
        except LocalStoreError as exc:
            console.print(f"[red]Local store failure:[/red] {exc}")
            raise typer.Exit(1) from exc

    now = datetime.now(UTC)
    document = {**data, "export_date": now.isoformat(), "export_type": source}
    target = path or Path(f"fitsync_{source}_backup_{now.date().isoformat()}.json")
    try:
        target.write_text(json.dumps(document, indent=2))
    except OSError as exc:
        console.print(f"[red]Cannot write {target}:[/red] {exc.strerror}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Exported {source} data to[/green] {target}")


@app.command(name="reset-local")
def reset_local(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete local data and unsynced changes (the cloud copy is kept)."""
    from fitsync.storage import LocalStore, LocalStoreError

    if _socket_path().exists():
        console.print("[red]The daemon is running.[/red]  Stop it first with [bold]fitsync stop[/bold].")
        raise typer.Exit(1)

    cfg = load_config()
    if not cfg.store_path.exists():
        console.print("[dim]No local data to reset.[/dim]")
        return
    if not yes and not typer.confirm("Delete all local data? Unsynced changes are lost; the cloud copy is kept."):
        raise typer.Exit(0)

    try:
        with LocalStore(cfg.store_path) as store:
            dropped = store.reset()
    except LocalStoreError as exc:
        console.print(f"[red]Local store failure:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Local data cleared.[/green] [dim]{dropped} unsynced change(s) dropped.[/dim]")
    console.print("[dim]Run [bold]fitsync pull[/bold] to reload from the cloud.[/dim]")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of attempts to show"),
) -> None:
    """Show recent sync attempts."""
    from fitsync.storage import SyncHistory

    path = load_config().history_path
    if not path.exists():
        console.print("[yellow]No sync history yet.[/yellow]")
        raise typer.Exit(1)

    async def _fetch():  # noqa: ANN202
        hist = SyncHistory(path)
        await hist.connect()
        try:
            return await hist.list_attempts(limit=limit)
        finally:
            await hist.close()

    attempts = asyncio.run(_fetch())
    if not attempts:
        console.print("[dim]No sync attempts recorded.[/dim]")
        return

    for rec in attempts:
        style = "green" if rec.outcome == "succeeded" else "red"
        line = f"  {rec.started_at.isoformat(timespec='seconds')}  [{style}]{rec.outcome:9s}[/{style}]  {rec.trigger:9s}"
        if rec.error_kind:
            line += f"  [dim]{rec.error_kind}: {rec.error_message}[/dim]"
        console.print(line)


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@app.command()
def logs(
    tail_lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show"),
    sync: bool = typer.Option(False, "--sync", help="Show sync.log (JSON) instead of daemon.log"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow log output (like tail -f)"),
) -> None:
    """Show recent daemon log output (supports --sync for JSON sync log, --follow for live tail)."""
    from fitsync.logging import DAEMON_LOG, SYNC_LOG

    filename = SYNC_LOG if sync else DAEMON_LOG
    log_file = get_base_dir() / "logs" / filename
    if not log_file.exists():
        console.print(f"[yellow]Log file not found:[/yellow] {log_file}")
        raise typer.Exit(1)

    if follow:
        _follow_log(log_file, tail_lines)
        return

    with open(log_file, encoding="utf-8") as fh:
        last_lines = deque(fh, maxlen=tail_lines)

    if not last_lines:
        console.print("[dim]Log file is empty.[/dim]")
        return

    for line in last_lines:
        _print_log_line(line)


def _log_line_style(line: str) -> str | None:
    """Return a Rich style string based on the structlog level found in *line*."""
    lower = line.lower()
    if "[error" in lower or "[critical" in lower or '"level": "error"' in lower or '"level": "critical"' in lower:
        return "red"
    if "[warning" in lower or '"level": "warning"' in lower:
        return "yellow"
    if "[debug" in lower or '"level": "debug"' in lower:
        return "dim"
    return None


def _print_log_line(line: str) -> None:
    line = line.rstrip("\n")
    if not line:
        return
    console.print(line, style=_log_line_style(line), highlight=False, markup=False)


def _follow_log(log_file: Path, initial_lines: int = 10) -> None:
    """Follow a log file, printing new lines as they appear (like ``tail -f``)."""
    import time

    with open(log_file, encoding="utf-8") as fh:
        last = deque(fh, maxlen=initial_lines)
    for line in last:
        _print_log_line(line)

    with open(log_file, encoding="utf-8") as fh:
        fh.seek(0, 2)
        try:
            while True:
                line = fh.readline()
                if line:
                    _print_log_line(line)
                else:
                    time.sleep(0.5)
        except KeyboardInterrupt:
            pass


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _mask(secret: SecretStr) -> str:
    """Return '***' if the secret is non-empty, else '(not set)'."""
    return "[bold]***[/bold]" if secret.get_secret_value() else "[dim](not set)[/dim]"


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration (secrets are masked)."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")

    console.print("[bold cyan]\\[daemon][/bold cyan]")
    for key, value in cfg.daemon.model_dump().items():
        console.print(f"  {key:18s} = {value}")

    console.print("\n[bold cyan]\\[sync][/bold cyan]")
    for key, value in cfg.sync.model_dump().items():
        console.print(f"  {key:18s} = {value}")

    console.print("\n[bold cyan]\\[jsonbin][/bold cyan]")
    console.print(f"  {'api_key':18s} = {_mask(cfg.jsonbin.api_key)}")
    console.print(f"  {'bin_id':18s} = {cfg.jsonbin.bin_id or '[dim](not set)[/dim]'}")
    console.print(f"  {'base_url':18s} = {cfg.jsonbin.base_url}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. sync.max_attempts"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value (e.g. fitsync config set sync.base_delay_ms 2000)."""
    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. sync.max_attempts).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = {
        "daemon": cfg.daemon,
        "sync": cfg.sync,
        "jsonbin": cfg.jsonbin,
    }

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    try:
        if key == "jsonbin.api_key":
            value = validate_api_key(value)
        coerced = _coerce_value(value, fields[field_name].annotation)
        section_data = section_model.model_dump(mode="python")
        section_data[field_name] = coerced
        new_section = type(section_model)(**section_data)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    setattr(cfg, section_name, new_section)
    save_config(cfg)

    display_val = "***" if isinstance(coerced, SecretStr) else coerced
    console.print(f"[green]Set[/green] {key} = {display_val}")


def _coerce_value(raw: str, field_type: type) -> object:
    """Coerce a string value to the expected field type."""
    if field_type is SecretStr:
        return SecretStr(raw)

    if field_type is bool:
        if raw.lower() in ("true", "1", "yes"):
            return True
        if raw.lower() in ("false", "0", "no"):
            return False
        msg = f"Cannot convert '{raw}' to bool (use true/false)"
        raise ValueError(msg)

    if field_type is int:
        return int(raw)

    if field_type is float:
        return float(raw)

    return raw


# ---------------------------------------------------------------------------
# Cloud bin management
# ---------------------------------------------------------------------------


cloud_app = typer.Typer(name="cloud", help="Create, reset or delete the JSONBin bin.", add_completion=False)
app.add_typer(cloud_app)


def _run_client(action):  # noqa: ANN001, ANN202
    """Run ``action(client)`` against JSONBin and translate failures into CLI errors."""
    from fitsync.sync.errors import SyncError
    from fitsync.sync.jsonbin import JsonBinClient

    cfg = load_config()

    async def _go():  # noqa: ANN202
        async with JsonBinClient(cfg.jsonbin) as client:
            return await action(client)

    try:
        return asyncio.run(_go())
    except SyncError as exc:
        console.print(f"[red]JSONBin request failed ({exc.kind}):[/red] {exc}")
        raise typer.Exit(1) from exc


@cloud_app.command(name="init")
def cloud_init(
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True, help="JSONBin master key"),
    bin_id: str = typer.Option("", "--bin-id", help="Use an existing bin instead of creating one"),
) -> None:
    """Store the API key and create (or attach) the bin holding your data."""
    from fitsync.storage import LocalStore

    try:
        api_key = validate_api_key(api_key)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    ensure_dirs()
    cfg = load_config()
    cfg.jsonbin = cfg.jsonbin.model_copy(update={"api_key": SecretStr(api_key)})
    save_config(cfg)

    if not bin_id:
        with LocalStore(cfg.store_path) as store:
            document = store.load_dataset().model_dump(mode="json")
        bin_id = _run_client(lambda client: client.create_bin(document))
        console.print(f"[green]Created bin[/green] {bin_id}")

    cfg.jsonbin = cfg.jsonbin.model_copy(update={"bin_id": bin_id})
    save_config(cfg)
    console.print("[green]Cloud sync configured.[/green]")


@cloud_app.command(name="reset")
def cloud_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Replace the cloud copy with an empty dataset (local data is kept)."""
    if not load_config().is_cloud_configured():
        console.print("[red]Cloud sync is not configured.[/red]")
        raise typer.Exit(1)
    if not yes and not typer.confirm("Clear all data stored in the cloud bin?"):
        raise typer.Exit(0)
    _run_client(lambda client: client.reset_bin())
    console.print("[green]Cloud data cleared.[/green]")


@cloud_app.command(name="delete")
def cloud_delete(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete the bin and forget its id (local data is kept)."""
    cfg = load_config()
    if not cfg.is_cloud_configured():
        console.print("[red]Cloud sync is not configured.[/red]")
        raise typer.Exit(1)
    if not yes and not typer.confirm(f"Delete bin {cfg.jsonbin.bin_id}?"):
        raise typer.Exit(0)
    _run_client(lambda client: client.delete_bin())
    cfg.jsonbin = cfg.jsonbin.model_copy(update={"bin_id": ""})
    save_config(cfg)
    console.print("[green]Bin deleted.[/green]")
