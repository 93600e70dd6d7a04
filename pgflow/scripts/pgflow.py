#!/usr/bin/env python3
"""
pgflow: run groups of worker processes from a YAML config

Commands:
  pgflow run CFG        # run every group (or --group NAME) in sequence
  pgflow validate CFG   # load and validate the config, print the plan
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pgflow.core.configuration import ConfigurationLoader, build_group_specs, build_spawner
from pgflow.core.errors import ConfigurationError, ScanError
from pgflow.core.report import print_group_outputs, render_summary
from pgflow.core.sequence import run_sequence
from pgflow.utils.logging_config import setup_logging

logger = logging.getLogger("pgflow")


def _load(args: argparse.Namespace):
    loader = ConfigurationLoader(Path(args.config).resolve())
    config = loader.load_configuration()
    specs = build_group_specs(config, only=getattr(args, "group", None))
    return loader, config, specs


def cmd_validate(args: argparse.Namespace) -> int:
    setup_logging(level=args.log_level, log_file=args.log_file)
    try:
        loader, config, specs = _load(args)
    except ConfigurationError as e:
        print(f"invalid: {e}", file=sys.stderr)
        return 1
    print(f"parent_dir: {loader.resolve_parent_dir(config)}")
    print(f"spawner: {config.spawner.type}")
    for spec in specs:
        print(f"group {spec.name} ({spec.group_end.value}): {len(spec.tasks)} task(s)")
        for t in spec.tasks:
            print(f"  - {t.description}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    setup_logging(level=args.log_level, log_file=args.log_file)
    try:
        loader, config, specs = _load(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"pgflow: {e}", file=sys.stderr)
        return 1
    total = sum(len(s.tasks) for s in specs)
    if args.dry_run:
        print(f"Prepared {total} task(s) in {len(specs)} group(s) (dry-run)")
        return 0
    parent_dir = loader.resolve_parent_dir(config)
    spawner = build_spawner(config.spawner)
    try:
        seq = run_sequence(
            specs,
            parent_dir,
            spawner,
            poll_interval=config.poll_interval,
            max_scan_errors=config.max_scan_errors,
        )
    except KeyboardInterrupt:
        logger.warning("Interrupted; remaining processes were terminated")
        return 130
    except ScanError as e:
        logger.error(f"Run aborted: {e}")
        print(f"pgflow: {e}", file=sys.stderr)
        return 1
    if not args.quiet:
        for _, res in seq.groups:
            print_group_outputs(res)
    render_summary(seq)
    logger.info(f"Run finished succeeded={seq.succeeded}")
    return 0 if seq.succeeded else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="pgflow", description="Parallel process-group runner")
    sub = parser.add_subparsers(dest="cmd")

    def common(p: argparse.ArgumentParser) -> None:
        p.add_argument("config", help="Path to run YAML config")
        p.add_argument("--group", action="append", help="Only this group; can repeat")
        p.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO")
        p.add_argument("--log-file", default=None, help="Log file (default: pgflow_data/pgflow.log)")

    p_run = sub.add_parser("run", help="Run the configured groups in sequence")
    common(p_run)
    p_run.add_argument("--dry-run", default=False, action="store_true", help="Only load tasks and exit")
    p_run.add_argument("--quiet", default=False, action="store_true", help="Do not print task outputs, only the summary")
    p_run.set_defaults(func=cmd_run)

    p_val = sub.add_parser("validate", help="Validate a config and show the plan")
    common(p_val)
    p_val.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
