#!/usr/bin/env python3
"""KNX Bridge CLI - KNX bus monitor to MQTT gateway.

Watches the telegrams seen by a bus multiplexer, publishes the values of
registered devices as MQTT events and writes MQTT commands back to the bus.

Examples:
    # Run against the configured broker with an in-memory bus (no hardware)
    python bridge.py start -f bluehome.conf

    # Play back a recorded monitor capture and stop after 20 frames
    python bridge.py start --bus replay://captures/evening.txt -c 20

    # Record knxhost:4390 as the multiplexer and authenticate the bus session
    # (the session itself comes from --bus; TARGET is shown, not dialled)
    python bridge.py start knxhost -u admin --bus replay://captures/evening.txt

    # Inspect a raw cEMI frame
    python bridge.py decode "29 00 bc e0 11 05 00 05 03 00 80 14 1a"
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

# Ensure the knxbridge package is importable
if __name__ == "__main__":
    import os
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from knxbridge.bridge import BridgeSession, Gateway
from knxbridge.bridge.frame import FrameError, decode_frame
from knxbridge import __version__
from knxbridge.core.config import DEFAULT_CONFIG_FILE, BridgeConfig, ConfigError, load_config
from knxbridge.core.data_types import ACTION_KEYWORDS, EIS_PROPERTIES, parse_action
from knxbridge.core.exit_codes import BridgeFault, ExitCode, describe_exit_code
from knxbridge.transports import create_bus_session_from_uri, parse_bus_target
from knxbridge.utils.decoding import decode_candidates
from knxbridge.utils.encoding import encode_value
from knxbridge.utils.errors import CodecError

app = typer.Typer(
    name="bridge",
    help="KNX Bridge - bus monitor to MQTT gateway",
    add_completion=False,
)
console = Console()
logger = logging.getLogger("knxbridge.cli")


def setup_logging(verbose: bool = False, quiet: bool = False, logfile: Optional[str] = None) -> None:
    """Configure logging with rich output and an optional append-mode log file."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    handlers: list[logging.Handler] = [RichHandler(rich_tracebacks=True, console=console)]
    file_error = None
    if logfile:
        try:
            file_handler = logging.FileHandler(logfile, mode="a", encoding="utf-8")
        except OSError as exc:
            file_error = exc
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            handlers.append(file_handler)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )
    if file_error is not None:
        logger.warning("Can not write to logfile %s: %s", logfile, file_error)


def fail(code: ExitCode, message: str) -> typer.Exit:
    console.print(f"[red]Error: {message}[/red]")
    return typer.Exit(int(code))


def read_config(path: str) -> BridgeConfig:
    try:
        config = load_config(path)
        config.validate()
    except OSError as exc:
        raise fail(ExitCode.CONFIG_OPEN, f"Can not open config file {path}: {exc}")
    except ConfigError as exc:
        raise fail(ExitCode.CONFIG_OPEN, f"Invalid config file {path}: {exc}")
    return config


def parse_hex(text: str) -> bytes:
    cleaned = text.replace(" ", "").replace(":", "")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    return bytes.fromhex(cleaned)


@app.command()
def start(
    target: Optional[str] = typer.Argument(
        None,
        help="Bus multiplexer as hostname[:port] (default port 4390); recorded and displayed, the session is chosen by --bus",
    ),
    user: Optional[str] = typer.Option(
        None,
        "--user",
        "-u",
        help="Authenticate the bus session as this user (password is prompted)",
    ),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-c",
        min=1,
        help="Stop after this many frames",
    ),
    config_file: str = typer.Option(
        DEFAULT_CONFIG_FILE,
        "--config",
        "-f",
        help="Configuration file (KEY=value or YAML)",
    ),
    logfile: Optional[str] = typer.Option(
        None,
        "--logfile",
        "-l",
        help="Append log output to this file",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log warnings and errors",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    bus: str = typer.Option(
        "mock://",
        "--bus",
        help="Bus session URI: mock:// or replay://<capture-file>[?interval=s]",
    ),
    backoff: float = typer.Option(
        1.0,
        "--backoff",
        help="Seconds to wait before retrying a failed publish",
    ),
) -> None:
    """Start the KNX to MQTT bridge.

    Frames from the bus monitor are matched against the configured devices by
    group address and published as MQTT events. Commands received on the
    command topic are encoded and written back to the bus.
    """
    setup_logging(verbose, quiet, logfile)

    try:
        bus_target = parse_bus_target(target)
    except ValueError as exc:
        raise fail(ExitCode.USAGE, str(exc))

    config = read_config(config_file)
    if bus_target:
        config.bus_host = f"{bus_target[0]}:{bus_target[1]}"

    try:
        monitor = create_bus_session_from_uri(bus)
    except ValueError as exc:
        raise fail(ExitCode.USAGE, str(exc))

    try:
        from knxbridge.transports.mqtt import PahoMqttTransport

        messaging = PahoMqttTransport(
            config.address,
            client_id=config.client_id,
            username=config.username,
            password=config.password,
            keepalive=config.keepalive,
            timeout=config.timeout / 1000 if config.timeout else 10.0,
        )
    except ValueError as exc:
        raise fail(ExitCode.CONFIG_OPEN, f"Invalid ADDRESS in {config_file}: {exc}")

    password = None
    if user:
        try:
            password = typer.prompt("Password", hide_input=True)
        except (typer.Abort, EOFError):
            raise fail(ExitCode.PASSWORD_READ, "Error reading password - cannot continue")

    registry = config.build_registry()

    # Display configuration
    table = Table(title=f"KNX Bridge {__version__}", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("MQTT broker", config.address)
    table.add_row("Client id", config.client_id or "-")
    table.add_row("QoS", str(config.qos))
    table.add_row("Username", config.username or "-")
    table.add_row("Bus session", bus)
    table.add_row("Multiplexer", config.bus_host or "-")
    table.add_row("Devices", str(len(registry)))
    if count:
        table.add_row("Frame limit", str(count))
    if not quiet:
        console.print(table)
        console.print()

    session = BridgeSession(
        config=config,
        registry=registry,
        monitor=monitor,
        messaging=messaging,
        bus_factory=lambda: create_bus_session_from_uri(bus),
        user=user,
        password=password,
    )

    if not quiet:
        console.print(Panel.fit("[bold green]Starting bridge...[/bold green]"))

    async def run():
        loop = asyncio.get_running_loop()
        # locks/events must belong to the running loop
        session.publish_lock = asyncio.Lock()
        session.stop_event = asyncio.Event()
        gateway = Gateway(session, publish_backoff=backoff)

        def signal_handler():
            console.print("\n[yellow]Shutting down...[/yellow]")
            gateway.request_stop()

        try:
            loop.add_signal_handler(signal.SIGINT, signal_handler)
            loop.add_signal_handler(signal.SIGTERM, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

        try:
            await gateway.start()
            if not quiet:
                console.print("[bold green]Bridge running. Press Ctrl+C to stop.[/bold green]")
            await gateway.run(max_frames=count)
        finally:
            await gateway.stop()
            stats = gateway.get_stats()
            console.print(
                f"[dim]Stats: {stats['frames']} frames, {stats['published']} published, "
                f"{stats['delivery_failures']} delivery failures, "
                f"{stats['commands_written']} commands written[/dim]"
            )

    exit_code = ExitCode.OK
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except BridgeFault as exc:
        logger.error("%s", exc)
        exit_code = exc.exit_code
    except MemoryError:
        logger.error("Out of memory")
        exit_code = ExitCode.ALLOCATION
    finally:
        logging.shutdown()

    if exit_code != ExitCode.OK:
        console.print(f"[red]Bridge stopped: {describe_exit_code(exit_code)} (exit {int(exit_code)})[/red]")
        raise typer.Exit(int(exit_code))
    console.print("[green]Bridge stopped.[/green]")


@app.command()
def decode(
    frame: str = typer.Argument(..., help="Raw cEMI frame as hex, e.g. '29 00 bc e0 11 05 00 05 03 00 80 14 1a'"),
) -> None:
    """Decode one raw bus frame and show every EIS interpretation of its value."""
    try:
        raw = parse_hex(frame)
        cemi = decode_frame(raw)
    except (FrameError, ValueError) as exc:
        raise fail(ExitCode.USAGE, f"Cannot decode frame: {exc}")

    header = Table(title="Frame", show_header=True)
    header.add_column("Field", style="cyan")
    header.add_column("Value", style="green")
    header.add_row("Code", cemi.code_tag)
    header.add_row("Priority", cemi.priority.tag)
    header.add_row("Repeated", "yes" if cemi.repeated else "no")
    header.add_row("Ack requested", "yes" if cemi.ack_requested else "no")
    header.add_row("Source", cemi.source_text)
    header.add_row("Destination", cemi.destination_text)
    header.add_row("Action", cemi.action.name.lower())
    header.add_row("Length", str(cemi.length))
    header.add_row("Value octets", cemi.payload.hex(" ") or "-")
    console.print(header)

    if not cemi.has_value:
        console.print("[dim]Read request - no value[/dim]")
        return

    try:
        result = decode_candidates(cemi.length, cemi.payload)
    except CodecError as exc:
        raise fail(ExitCode.CODEC_CONVERSION, str(exc))

    table = Table(title=f"EIS candidates ({result.length_class.name.lower()})", show_header=True)
    table.add_column("EIS", style="cyan", justify="right")
    table.add_column("Type", style="magenta")
    table.add_column("Value", style="green")
    table.add_column("Primary", style="yellow")
    for candidate in result.candidates:
        table.add_row(
            str(int(candidate.eis)),
            EIS_PROPERTIES[candidate.eis].label,
            candidate.text,
            "*" if candidate is result.primary else "",
        )
    for eis in result.omitted:
        table.add_row(str(int(eis)), EIS_PROPERTIES[eis].label, "[dim]unprintable[/dim]", "")
    console.print(table)
    if result.message_value is not None:
        console.print(f"Published value: [bold]{result.message_value}[/bold]")


@app.command()
def encode(
    action: str = typer.Argument(..., help=f"Action keyword: {', '.join(ACTION_KEYWORDS)}"),
    value: str = typer.Argument(..., help="Value text as sent in a command"),
) -> None:
    """Encode a command value the way an inbound MQTT command would be written."""
    try:
        eis = parse_action(action)
    except ValueError as exc:
        raise fail(ExitCode.USAGE, str(exc))
    try:
        data = encode_value(eis, value)
    except CodecError as exc:
        raise fail(ExitCode.CODEC_CONVERSION, f"Error in value conversion: {exc}")
    console.print(
        f"EIS {int(eis)} ({EIS_PROPERTIES[eis].label}), {len(data)} bytes: [bold]{data.hex(' ')}[/bold]"
    )


@app.command()
def devices(
    config_file: str = typer.Option(
        DEFAULT_CONFIG_FILE,
        "--config",
        "-f",
        help="Configuration file (KEY=value or YAML)",
    ),
) -> None:
    """List the configured devices in file order."""
    config = read_config(config_file)
    registry = config.build_registry()

    table = Table(title=f"Devices ({config_file})", show_header=True)
    table.add_column("KNX", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Event", style="yellow")
    table.add_column("Measurement", style="magenta")
    table.add_column("Status")
    for record in registry:
        status = "[dim]shadowed[/dim]" if registry.is_shadowed(record) else "active"
        table.add_row(record.group_address, record.name, record.event, record.measurement, status)
    console.print(table)


if __name__ == "__main__":
    app()
