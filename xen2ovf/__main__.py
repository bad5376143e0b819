# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/__main__.py
from __future__ import annotations

import signal
import sys
import traceback
from pathlib import Path
from typing import Any, Optional, Sequence

from .cli.argument_parser import options_from_args, parse_args_with_config, resolve_password
from .core.exceptions import ExportCancelled, Fatal, Xen2OvfError, format_exception_for_cli
from .core.utils import U
from .export.events import EventReporter, LoggingEventSink
from .export.orchestrator import Exporter
from .xen.session import open_client


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _install_sigint(exporter: Exporter, logger: Any) -> Any:
    """First Ctrl+C cancels cooperatively; a second one interrupts."""

    def _handler(signum: int, frame: Any) -> None:
        if exporter.token.is_cancelled:
            raise KeyboardInterrupt
        logger.warning("Interrupted; cancelling export (press Ctrl+C again to abort)")
        exporter.cancel()

    return signal.signal(signal.SIGINT, _handler)


def run(args: Any, logger: Any) -> int:
    password = resolve_password(args)
    if password is None:
        raise Fatal(2, f"Password not found; set the {args.password_env} environment variable")
    try:
        options = options_from_args(args)
    except ValueError as e:
        raise Fatal(2, f"Invalid transfer network: {e}", e) from e

    package_name = args.package_name or U.safe_name(args.vms[0])
    reporter = EventReporter()
    reporter.subscribe(LoggingEventSink(logger))

    with open_client(logger, args.host, args.user, password, insecure=options.insecure) as client:
        exporter = Exporter(logger, client, options, reporter=reporter)
        previous = _install_sigint(exporter, logger)
        try:
            exporter.process(Path(args.output_dir), package_name, list(args.vms))
        finally:
            signal.signal(signal.SIGINT, previous)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    logger: Optional[Any] = None
    verbose = 0

    # Phase 1: parse
    try:
        args, _conf, logger = parse_args_with_config(argv)
        verbose = args.verbose
    except Fatal as e:
        _print_stderr(f"💥 ERROR    {e}")
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        _print_stderr("Interrupted by user (Ctrl+C).")
        raise SystemExit(130)

    # Phase 2: export
    try:
        rc = run(args, logger)
    except ExportCancelled as e:
        logger.warning("%s", e)
        rc = e.code
    except Xen2OvfError as e:
        logger.error("%s", format_exception_for_cli(e, verbose=verbose))
        rc = e.code
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C).")
        rc = 130
    except Exception as e:
        logger.error("💥 UNHANDLED %s: %s", type(e).__name__, e)
        logger.debug(traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
