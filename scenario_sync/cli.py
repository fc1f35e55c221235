#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Incremental scenario translation.

Usage:
  # translate a local export, skipping anything listed in index.json
  python -m scenario_sync --type folder --dir tmp/untranslated --dest tmp/translated

  # translate scenarios added in the latest remote diff
  python -m scenario_sync --type remote-diff --tag -1

Environment:
  LLM_BASE_URL, LLM_API_KEY (or LLM_API_KEY_FILE), LLM_MODEL
  REMOTE_DIFF_ENDPOINT, REMOTE_ASSET_ENDPOINT   (remote-diff only)
  SYNC_LOG_LEVEL                                (default INFO)
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_settings
from .errors import SyncError
from .llm_client import LLMError
from .orchestrator import RunPolicy, SourceMode, run
from .translator import ScenarioTranslator

logger = logging.getLogger("scenario_sync")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_UNIT_FAILURES = 2


def setup_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate new scenario CSVs incrementally")
    parser.add_argument("--type", dest="source_type", default="folder",
                        choices=[m.value for m in SourceMode],
                        help="Type of the source: folder or remote-diff")
    parser.add_argument("--dir", default="./tmp/untranslated",
                        help="Source directory, only used when type is folder")
    parser.add_argument("--dest", default="./tmp/translated", help="Output directory")
    parser.add_argument("--tag", default="-1",
                        help="Version of the remote diff, only used when type is remote-diff")
    parser.add_argument("--overwrite", action="store_true",
                        help="Translate again even if the output file already exists")
    parser.add_argument("--indexfile", default="./index.json",
                        help="Index file listing already translated scenarios")
    parser.add_argument("--ignoreindex", action="store_true", help="Do not read the index file")
    parser.add_argument("--config", default=None, help="YAML config file (default config/sync.yaml if present)")
    parser.add_argument("--max_inflight", type=int, default=1, help="Max units translated concurrently")
    parser.add_argument("--report", default=None, help="Write a JSON run report to this path")
    parser.add_argument("--strict", action="store_true",
                        help="Exit with status 2 when any unit failed")
    parser.add_argument("--log-level", default=os.getenv("SYNC_LOG_LEVEL", "INFO"))
    return parser


def policy_from_args(args: argparse.Namespace) -> RunPolicy:
    return RunPolicy(
        source_mode=SourceMode(args.source_type),
        dest_folder=Path(args.dest),
        skip_existing=not args.overwrite,
        index_path=None if args.ignoreindex else Path(args.indexfile),
        source_dir=Path(args.dir),
        remote_tag=args.tag,
        max_inflight=max(1, args.max_inflight),
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        policy = policy_from_args(args)
        settings = load_settings(args.config)
        if policy.source_mode == SourceMode.REMOTE_DIFF:
            settings.endpoints.require()
            logger.info("Remote Diff Endpoint: %s", settings.endpoints.diff_url(policy.remote_tag))
        else:
            logger.info("Source File Directory: %s", policy.source_dir)
        logger.info("overwrite files: %s", not policy.skip_existing)
        logger.info("using index file: %s", policy.index_path)

        translate = ScenarioTranslator.from_config(settings.translation)
        summary = run(policy, settings.translation, translate, endpoints=settings.endpoints)
    except (SyncError, LLMError) as e:
        logger.error("Run aborted [%s]: %s", e.kind, e)
        return EXIT_FATAL

    if args.report:
        try:
            summary.write(args.report)
        except OSError as e:
            logger.error("Cannot write run report %s: %s", args.report, e)
    if args.strict and summary.failed_count:
        return EXIT_UNIT_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
