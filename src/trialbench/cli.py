from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import replace
from typing import Callable, Sequence

from rich.console import Console

from trialbench._logging import format_event, setup_logging
from trialbench.console import OperatorConsole, default_console
from trialbench.decoders import build_decoder
from trialbench.models import ConfigError, TransportError
from trialbench.registry import Registry, load_registry
from trialbench.session import SessionController
from trialbench.transport import DeviceSession, build_transport

_cli_log = logging.getLogger("trialbench.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trialbench",
        description="Interactive harness for trying device commands and browsing their results.",
    )
    parser.add_argument("registry", help="YAML document describing menus, commands and collaborators")
    parser.add_argument("--device", default=None, help="Override device.path from the registry")
    parser.add_argument(
        "--timeout-sec",
        type=float,
        default=None,
        help="Override device.timeout_sec from the registry",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for stderr (DEBUG, INFO, WARNING, ERROR); defaults to TRIALBENCH_LOG_LEVEL",
    )
    return parser


def _apply_overrides(registry: Registry, args: argparse.Namespace) -> Registry:
    device = registry.device
    if args.device:
        device = replace(device, path=str(args.device))
    if args.timeout_sec is not None:
        if args.timeout_sec <= 0:
            raise ConfigError("--timeout-sec must be positive")
        device = replace(device, timeout_sec=float(args.timeout_sec))
    return replace(registry, device=device)


def build_controller(registry: Registry, io: OperatorConsole) -> SessionController:
    session = DeviceSession(settings=registry.device, transport=build_transport(registry.transport))
    controller = SessionController(
        session,
        build_decoder(registry.decoder),
        io,
        bytes_per_line=registry.bytes_per_line,
    )
    controller.prepare(registry.menu.commands())
    return controller


def main(
    argv: Sequence[str] | None = None,
    *,
    console: Console | None = None,
    reader: Callable[[], str] | None = None,
) -> int:
    args = _build_parser().parse_args(list(argv) if argv is not None else sys.argv[1:])
    setup_logging(level=args.log_level)
    started = time.perf_counter()
    _cli_log.info(format_event("session_start", registry=args.registry))

    exit_code = 1
    try:
        registry = _apply_overrides(load_registry(args.registry), args)
        io = OperatorConsole(console or default_console(), reader)
        controller = build_controller(registry, io)
        _cli_log.info(
            format_event(
                "session_ready",
                device=registry.device.path,
                timeout_sec=registry.device.timeout_sec,
                commands=len(registry.menu.commands()),
            )
        )
        controller.run([registry.menu])
        exit_code = 0
    except ConfigError as exc:
        _cli_log.error(format_event("session_error", kind="config", error=exc))
        print(f"[config error] {exc}", file=sys.stderr)
        exit_code = 2
    except TransportError as exc:
        _cli_log.error(format_event("session_error", kind="transport", error=exc))
        print(f"[transport error] {exc}", file=sys.stderr)
        exit_code = 1
    except EOFError:
        _cli_log.info(format_event("session_input_closed"))
        exit_code = 0
    except KeyboardInterrupt:
        _cli_log.error(format_event("session_error", kind="interrupted"))
        print("\n[interrupted]", file=sys.stderr)
        exit_code = 130
    finally:
        _cli_log.info(
            format_event(
                "session_end",
                exit_code=exit_code,
                duration_sec=f"{time.perf_counter() - started:.3f}",
            )
        )

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
