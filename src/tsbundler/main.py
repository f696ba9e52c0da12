"""
Command-line entry point for the TypeScript declaration bundler.

Two subcommands are provided:

``bundle``
    Bundle the exports of one entry module (or only the types named with
    ``-t``) into a single declaration file, or to stdout.

``batch-bundle``
    Bundle several ``file:type[:alias]`` entries, each into its own
    ``<alias or type>.d.ts`` inside ``--output-dir``.

Exit codes: 0 for clean bundles, 1 when bundles were produced with
diagnostics, 2 for fatal errors and bad usage.

Example:
    $ tsbundler bundle src/index.ts -t MyType -o dist/types.d.ts
    $ tsbundler batch-bundle "src/user.ts:User:UserDTO" "src/product.ts:Product" --output-dir dist/types
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from tsbundler.core.config import BundleConfig, load_config
from tsbundler.core.orchestrator import BundleEntry, BundleOrchestrator, BundleResult
from tsbundler.core.output_writer import BundleWriter
from tsbundler.core.path_resolver import PathAliasTable
from tsbundler.core.tsconfig import TSCONFIG_NAME, find_project_root, load_alias_mapping
from tsbundler.utils.logger import VALID_LOG_LEVELS, set_log_level, setup_logger
from tsbundler.utils.path_utils import normalize_path

APP_NAME = "tsbundler"
APP_VERSION = "0.1.0"

EXIT_OK = 0
EXIT_DIAGNOSTICS = 1
EXIT_FATAL = 2


def _alias_argument(text: str) -> tuple[str, str]:
    prefix, sep, directory = text.partition("=")
    if not sep or not directory:
        raise argparse.ArgumentTypeError(f"invalid alias '{text}': expected PREFIX=DIR")
    return prefix, directory


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer '{text}'") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with its subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-r", "--root", type=Path, help="project root (default: detected from the entry)")
    common.add_argument("--config", type=Path, help="JSON file with saved bundle options")
    common.add_argument("--alias", action="append", type=_alias_argument, default=[],
                        metavar="PREFIX=DIR", help="path alias, overrides tsconfig paths")
    common.add_argument("--workers", type=_positive_int, help="module loading workers")
    common.add_argument("--parse-timeout", type=float, help="seconds allowed per file parse")
    common.add_argument("--no-node-modules", action="store_true",
                        help="do not resolve bare specifiers in node_modules")
    common.add_argument("--log-level", default="WARNING", choices=VALID_LOG_LEVELS,
                        type=str.upper, help="console log level (default: WARNING)")
    common.add_argument("--log-file", type=Path, help="also write a detailed log to this file")

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Bundle the TypeScript declarations reachable from an entry point into one file.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    bundle_parser = subparsers.add_parser("bundle", parents=[common], help="bundle one entry module")
    bundle_parser.add_argument("entry", type=Path, help="entry module")
    bundle_parser.add_argument("-t", "--type", dest="types", action="append", default=[],
                               help="bundle only this type (repeatable)")
    bundle_parser.add_argument("-o", "--output", type=Path, help="output file (default: stdout)")
    bundle_parser.add_argument("--preserve-default", action="store_true",
                               help="re-emit the entry's default export")
    bundle_parser.add_argument("--default-name", help="name for an anonymous default export")

    batch_parser = subparsers.add_parser("batch-bundle", parents=[common],
                                         help="bundle several file:type[:alias] entries")
    batch_parser.add_argument("entries", nargs="+", metavar="ENTRY",
                              help="file:type[:alias], comma-separated lists allowed")
    batch_parser.add_argument("--output-dir", type=Path, required=True,
                              help="directory receiving one .d.ts per entry")

    return parser


def _build_config(args: argparse.Namespace) -> BundleConfig:
    config = load_config(args.config) if args.config else BundleConfig()
    if args.workers is not None:
        config.max_workers = args.workers
    if args.parse_timeout is not None:
        config.parse_timeout = args.parse_timeout if args.parse_timeout > 0 else None
    if args.no_node_modules:
        config.resolve_node_modules = False
    if getattr(args, "preserve_default", False):
        config.preserve_default_export = True
    if getattr(args, "default_name", None):
        config.default_export_name = args.default_name
    if getattr(args, "types", None):
        config.root_names = list(args.types)
    for prefix, directory in args.alias:
        config.aliases[prefix] = directory
    config.validate()
    return config


def _project_root(args: argparse.Namespace, entry: Path) -> Path:
    if args.root is not None:
        return normalize_path(args.root)
    return find_project_root(entry) or normalize_path(entry).parent


def _alias_table(config: BundleConfig, root: Path) -> PathAliasTable:
    """tsconfig ``paths`` of the project, overridden by configured aliases."""
    mapping = {prefix: str(path) for prefix, path in load_alias_mapping(root / TSCONFIG_NAME).items()}
    mapping.update(config.aliases)
    return PathAliasTable.from_mapping(mapping, base=root)


def _report(result: BundleResult) -> None:
    for error in result.errors:
        print(f"error: {error.message}", file=sys.stderr)
    for notice in result.notices:
        print(f"note: {notice}", file=sys.stderr)


def _exit_code(results: Sequence[BundleResult]) -> int:
    if any(r.fatal_error for r in results):
        return EXIT_FATAL
    if any(r.errors for r in results):
        return EXIT_DIAGNOSTICS
    return EXIT_OK


def cmd_bundle(args: argparse.Namespace, config: BundleConfig) -> int:
    entry = normalize_path(args.entry)
    root = _project_root(args, entry)
    with BundleOrchestrator(config, _alias_table(config, root)) as orchestrator:
        result = orchestrator.bundle(entry)

    if result.fatal_error:
        print(f"error: {result.fatal_error}", file=sys.stderr)
        return EXIT_FATAL
    _report(result)

    if args.output is None:
        sys.stdout.write(result.text)
    else:
        written = BundleWriter().write_bundle(args.output, result.text)
        if not written.success:
            print(f"error: {written.error}", file=sys.stderr)
            return EXIT_FATAL
        print(f"Bundle written to {written.output_path}", file=sys.stderr)
    return _exit_code([result])


def cmd_batch_bundle(args: argparse.Namespace, config: BundleConfig) -> int:
    entries = []
    for text in args.entries:
        for part in text.split(","):
            if part.strip():
                entries.append(BundleEntry.parse(part))

    root = _project_root(args, entries[0].path)
    with BundleOrchestrator(config, _alias_table(config, root)) as orchestrator:
        results = orchestrator.bundle_many(entries)

    writer = BundleWriter(output_dir=args.output_dir)
    bundles = []
    for entry, result in zip(entries, results):
        if result.fatal_error:
            print(f"error: {entry}: {result.fatal_error}", file=sys.stderr)
            continue
        _report(result)
        bundles.append((entry.output_name, result.text))

    write_failed = False
    for written in writer.write_bundles(bundles):
        if written.success:
            print(f"  - {written.output_path.name} ({written.size} chars)", file=sys.stderr)
        else:
            print(f"error: {written.error}", file=sys.stderr)
            write_failed = True
    if write_failed:
        return EXIT_FATAL
    return _exit_code(results)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run the bundler command line.

    Returns:
        Exit code (0 clean, 1 diagnostics, 2 fatal or usage error).
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_FATAL

    logger = setup_logger(APP_NAME, level=args.log_level, log_file=args.log_file)
    set_log_level(logger, args.log_level)
    logger.info(f"{APP_NAME} {APP_VERSION} running '{args.command}'")

    try:
        config = _build_config(args)
        if args.command == "bundle":
            return cmd_bundle(args, config)
        return cmd_batch_bundle(args, config)
    except (ValueError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
