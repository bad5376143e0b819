# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/cli/argument_parser.py
from __future__ import annotations

import argparse
import os
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config.config_loader import Config
from ..core.logger import Log, c
from ..core.utils import MB, U
from ..export.models import DEFAULT_BOOT_POLICY, DEFAULT_IMAGE_EXT, ExportOptions, TransferNetwork

DEFAULT_PASSWORD_ENV = "XEN2OVF_PASSWORD"

YAML_EXAMPLE = """\
  host: xcp-master.example.com
  user: root
  password_env: XEN2OVF_PASSWORD
  output_dir: /srv/exports/web
  package_name: web-tier
  verify_disks: true
  vms:
    - 6f1d3c8e-7a0b-4a51-9b7e-2f0c1d9e8a11
    - web-02
"""


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    """Raw description plus default values in help."""


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    from .. import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged config and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv, -vvv")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q, -qq")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit logs as NDJSON.")


def _add_connection(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", default=None, help="Pool master host name or URL.")
    p.add_argument("--user", default=None, help="XenAPI user name.")
    p.add_argument(
        "--password-env",
        dest="password_env",
        default=DEFAULT_PASSWORD_ENV,
        help="Environment variable holding the XenAPI password.",
    )
    p.add_argument("--insecure", action="store_true", help="Do not verify TLS certificates.")


def _add_export(p: argparse.ArgumentParser) -> None:
    p.add_argument("--output-dir", dest="output_dir", default="./out", help="Destination directory.")
    p.add_argument("--name", dest="package_name", default=None, help="Package name (default: first VM).")
    p.add_argument("--no-auto-save", dest="auto_save", action="store_false", help="Do not write <name>.ovf.")
    p.add_argument("--verify", dest="verify_disks", action="store_true", help="Verify each disk after copying.")
    p.add_argument(
        "--metadata-only",
        dest="metadata_only",
        action="store_true",
        help="Write the envelope only; skip disk transfer.",
    )
    p.add_argument("--image-ext", dest="image_ext", default=DEFAULT_IMAGE_EXT, help="Disk image file extension.")
    p.add_argument(
        "--boot-policy",
        dest="boot_policy",
        default=DEFAULT_BOOT_POLICY,
        help="HVM boot policy that marks a VM as fully virtualized.",
    )
    p.add_argument("--chunk-mb", dest="chunk_mb", type=int, default=4, help="Copy chunk size in MiB.")
    p.add_argument("--no-progress", dest="show_progress", action="store_false", help="Disable progress output.")
    p.add_argument("vms", nargs="*", default=[], help="VM uuids or name labels.")


def _add_transfer_network(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("transfer network")
    g.add_argument("--transfer-network", dest="transfer_network", default=None, help="Network uuid to pull disks over.")
    g.add_argument("--transfer-static", dest="transfer_static", action="store_true", help="Use a static transfer address.")
    g.add_argument("--transfer-ip", dest="transfer_ip", default=None, help="Static transfer address.")
    g.add_argument("--transfer-netmask", dest="transfer_netmask", default=None, help="Static transfer netmask.")
    g.add_argument("--transfer-gateway", dest="transfer_gateway", default=None, help="Static transfer gateway.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="xen2ovf",
        description=c("xen2ovf: export XenServer / XCP-ng VMs as OVF packages", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=c("YAML example:\n", "cyan", ["bold"]) + c(YAML_EXAMPLE, "cyan"),
    )
    _add_global_config_logging(p)
    _add_connection(p)
    _add_export(p)
    _add_transfer_network(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def validate_args(args: argparse.Namespace) -> None:
    missing = [flag for flag, v in (("--host", args.host), ("--user", args.user)) if not v]
    if missing:
        raise SystemExit(f"Missing required option(s): {', '.join(missing)}")
    if not args.vms:
        raise SystemExit("At least one VM (uuid or name label) is required")
    if args.chunk_mb <= 0:
        raise SystemExit(f"--chunk-mb must be positive, got {args.chunk_mb}")
    if args.transfer_static and not args.transfer_ip:
        raise SystemExit("--transfer-static requires --transfer-ip")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Phase 0: global flags needed to find config and set up logging
    Phase 1: load + merge config files
    Phase 2: apply config as parser defaults
    Phase 3: full parse (CLI overrides config) and validation
    """
    import sys

    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()
    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    own_logger = logger is None
    if own_logger:
        logger = Log.setup(args0.verbose, args0.log_file, quiet=args0.quiet, json_logs=args0.json_logs)

    conf = _load_merged_config(logger, args0.config or [])
    if args0.dump_config:
        print(U.json_dump(conf))
        raise SystemExit(0)

    # json_logs may come from YAML only; re-run setup once it is known.
    if own_logger and conf.get("json_logs") and not args0.json_logs:
        logger = Log.setup(args0.verbose, args0.log_file, quiet=args0.quiet, json_logs=True)

    Config.apply_as_defaults(logger, parser, conf)
    args = parser.parse_args(argv)
    validate_args(args)
    return args, conf, logger


def resolve_password(args: argparse.Namespace) -> Optional[str]:
    return os.environ.get(args.password_env) if args.password_env else None


def options_from_args(args: argparse.Namespace) -> ExportOptions:
    network = TransferNetwork(
        network_uuid=args.transfer_network,
        static=bool(args.transfer_static),
        ip=args.transfer_ip,
        netmask=args.transfer_netmask,
        gateway=args.transfer_gateway,
    )
    return ExportOptions(
        auto_save=bool(args.auto_save),
        verify_disks=bool(args.verify_disks),
        metadata_only=bool(args.metadata_only),
        image_ext=str(args.image_ext).lstrip("."),
        boot_policy=args.boot_policy,
        chunk_bytes=int(args.chunk_mb) * MB,
        insecure=bool(args.insecure),
        show_progress=bool(args.show_progress),
        network=network,
    )
