# pyretain/cli.py
from __future__ import annotations

import argparse
import logging
import sys as _sys
from pathlib import Path
from typing import List, Optional

from .asserts import assert_instance_of_not_reachable, assert_instance_of_reachable
from .config import ScanSettings, effective_section, load_layered_config
from .errors import PyretainError, TargetResolutionError
from .logconf import configure_logger
from .rt import ensure_import_roots, resolve_attr, resolve_type
from .scanner import ReachabilityScanner

EXIT_OK = 0
EXIT_EXPECTATION_FAILED = 1
EXIT_ERROR = 2


def make_logger(cmd: str, level: str = "INFO") -> logging.Logger:
    return configure_logger(level=level, name=f"pyretain.cli.{cmd}")


def _build_root(args: argparse.Namespace):
    root = resolve_attr(args.root)
    if args.call:
        if not callable(root):
            raise TargetResolutionError(f"{args.root!r} is not callable (got {type(root).__name__})")
        root = root()
    return root


def _handle_scan(args: argparse.Namespace) -> int:
    ctx = load_layered_config(Path.cwd())
    eff = effective_section(ctx, "scan")

    # CLI flags win over config
    if getattr(args, "expand_namespaces", None) is not None:
        eff["expand_namespaces"] = args.expand_namespaces
    if getattr(args, "scalar_types", None):
        eff["scalar_types"] = list(eff.get("scalar_types") or []) + list(args.scalar_types)
    if args.verbose:
        eff["log_level"] = "DEBUG"

    settings = ScanSettings.from_section(eff)
    log = make_logger("scan", settings.log_level)

    added = ensure_import_roots(args.additional_sys_path or [], base=ctx.project_root)
    if added:
        log.info("import roots added: %s", added)

    target = resolve_type(args.target)
    root = _build_root(args)
    scanner = ReachabilityScanner.from_settings(settings)
    log.debug("scan %s from %s (expand_namespaces=%s)", args.target, args.root, settings.expand_namespaces)

    check = assert_instance_of_reachable if args.expect == "reachable" else assert_instance_of_not_reachable
    try:
        check(root, target, scanner=scanner)
    except AssertionError as exc:
        log.error("%s", exc)
        return EXIT_EXPECTATION_FAILED
    log.info("ok: %s is %s from %s", args.target, args.expect, args.root)
    return EXIT_OK


def add_scan_subparser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "scan", help="check whether instances of a class are strongly reachable from an object"
    )
    p.add_argument("target", help="dotted path of the class to look for, e.g. 'pkg.mod.Session'")
    p.add_argument("root", help="dotted path of the object to start from, e.g. 'pkg.mod.REGISTRY'")
    p.add_argument("--call", action="store_true",
                   help="call ROOT with no arguments and scan the returned object")
    p.add_argument("--expect", choices=("unreachable", "reachable"), default="unreachable",
                   help="expected outcome (default: unreachable)")
    p.add_argument("--expand-namespaces", dest="expand_namespaces", action="store_true", default=None,
                   help="follow module dicts, class dicts and function globals")
    p.add_argument("--scalar-type", dest="scalar_types", action="append", default=[], metavar="NAME",
                   help="extra type treated as plain data (repeatable)")
    p.add_argument("--additional-sys-path", dest="additional_sys_path", action="append", default=[],
                   metavar="DIR", help="extra import root; relative paths resolve under the project root")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.set_defaults(handler=_handle_scan)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="pyretain")
    subparsers = parser.add_subparsers(dest="command", required=True)

    add_scan_subparser(subparsers)

    args = parser.parse_args(argv)
    try:
        code = args.handler(args)
    except PyretainError as exc:
        logger = configure_logger(name="pyretain")
        logger.error("%s", exc)
        _sys.exit(EXIT_ERROR)
    _sys.exit(code)


if __name__ == "__main__":
    main()
