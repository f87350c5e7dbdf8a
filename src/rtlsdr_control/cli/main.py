"""CLI entry point for RTLSDR Control."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rtlsdr_control.cli.host import DeviceHost
from rtlsdr_control.core.config import (
    DEFAULT_SAMPLE_RATE,
    DEFAULT_SERVER_PROGRAM,
    DEFAULT_SOCKET_DIR,
    ControllerSettings,
)
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.gateway.journal import EventJournal
from rtlsdr_control.protocol.codec import is_known_command
from rtlsdr_control.server.supervisor import check_server_available

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_setting(text: str) -> tuple[str, float]:
    """Parse a ``name=value`` parameter assignment.

    Raises:
        argparse.ArgumentTypeError: If the text is malformed or the
            parameter is unknown.
    """
    name, sep, raw = text.partition("=")
    name = name.strip()
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value, got {text!r}")
    if not is_known_command(name):
        raise argparse.ArgumentTypeError(f"unknown parameter {name!r}")
    try:
        value = float(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid value for {name}: {raw!r}") from e
    return name, value


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rtlsdr-control",
        description="RTLSDR Control - supervise rtl_tcp for an RTL-SDR device",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the controller for one device")
    run.add_argument(
        "--usb-path",
        required=True,
        help="USB bus:device path of the tuner (e.g. 1:4)",
    )
    run.add_argument(
        "--port",
        required=True,
        help="Hub port identifier used in the registry and events",
    )
    run.add_argument(
        "--rate",
        type=float,
        default=DEFAULT_SAMPLE_RATE,
        help=f"Requested sample rate in Hz (default: {DEFAULT_SAMPLE_RATE})",
    )
    run.add_argument(
        "--server",
        default=DEFAULT_SERVER_PROGRAM,
        help=f"Path to rtl_tcp (default: {DEFAULT_SERVER_PROGRAM})",
    )
    run.add_argument(
        "--socket-dir",
        type=Path,
        default=DEFAULT_SOCKET_DIR,
        help=f"Directory for control sockets (default: {DEFAULT_SOCKET_DIR})",
    )
    run.add_argument(
        "--set",
        dest="settings",
        type=parse_setting,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Parameter to apply once connected, in natural units (repeatable)",
    )
    run.add_argument(
        "--journal",
        type=Path,
        help="Write device events to this JSON Lines file",
    )
    run.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


async def run_device(args: argparse.Namespace) -> None:
    """Run one device until SIGINT or SIGTERM.

    Args:
        args: Parsed ``run`` arguments.
    """
    plan = Plan(rate=args.rate, settings=dict(args.settings))
    settings = ControllerSettings(server_program=args.server, socket_dir=args.socket_dir)
    host = DeviceHost(plan, settings)

    if args.journal:
        EventJournal(args.journal).attach(host.bus)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def handle_signal() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    host.add(DeviceDescriptor(port=args.port, usb_path=args.usb_path))
    print("Press Ctrl+C to stop\n")

    await stop_event.wait()
    entries = host.registry.get_all()
    await host.close()

    print("\nController Summary:")
    print(f"  Device adds: {host.adds}")
    for entry in entries:
        last = entry.updated_at.strftime("%H:%M:%S") if entry.updated_at else "never"
        print(f"  Port {entry.descriptor.port}: {entry.update_count} settings reports (last {last})")


def main(argv: list[str] | None = None) -> None:
    """RTLSDR Control CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not check_server_available(args.server):
        print(f"Error: {args.server} not found or not executable", file=sys.stderr)
        sys.exit(1)

    print(f"RTLSDR Control - port {args.port}, usb {args.usb_path}")

    try:
        asyncio.run(run_device(args))
    except KeyboardInterrupt:
        print("\nStopped")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
