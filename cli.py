"""
cli.py - Command line entry point for the Hermes log analyst service
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from constants import APP_NAME, DEFAULT_CRASH_IMPORT_LIMIT, DEFAULT_HOST, DEFAULT_PORT
from infra.config import load_config
from infra.diagnostics_logging import setup_logging
from infra.errors import HermesError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hermes", description=APP_NAME)
    parser.add_argument("--config", help="YAML config file (overrides HERMES_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)

    sub.add_parser("refresh", help="Collect the rolling ingest window into the cache")

    sync = sub.add_parser("sync-range", help="Backfill an explicit date range")
    sync.add_argument("date_from", metavar="FROM")
    sync.add_argument("date_to", metavar="TO")
    sync.add_argument("--replace-outside-range", action="store_true",
                      help="Drop cached events outside the range")

    crashes = sub.add_parser("import-crashes", help="Import host crash artifacts")
    crashes.add_argument("--limit", type=int, default=DEFAULT_CRASH_IMPORT_LIMIT)

    coverage = sub.add_parser("coverage", help="Show what the cache currently covers")
    coverage.add_argument("--from", dest="date_from")
    coverage.add_argument("--to", dest="date_to")
    return parser


def _print(payload) -> None:
    print(json.dumps(payload, indent=2))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config.log_level, config.log_dir, config.log_retention_days)

    if args.command == "serve":
        import uvicorn
        from api.app import create_app

        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return 0

    from analysis.coverage import coverage_status, coverage_summary, coverage_warning
    from api.context import AppContext

    ctx = AppContext.build(config)
    try:
        if args.command == "refresh":
            result = ctx.coordinator.refresh()
            _print({"collected": result.collected, "warnings": result.warnings})
        elif args.command == "sync-range":
            result = ctx.coordinator.sync_range(args.date_from, args.date_to, args.replace_outside_range)
            _print({"collected": result.collected, "warnings": result.warnings})
        elif args.command == "import-crashes":
            _print({"added": ctx.importer.import_host_crashes(args.limit)})
        elif args.command == "coverage":
            coverage = ctx.store.coverage()
            _print({
                "status": coverage_status(coverage, args.date_from, args.date_to, ctx.zone).value,
                "summary": coverage_summary(coverage, ctx.zone),
                "warning": coverage_warning(coverage, args.date_from, args.date_to, ctx.zone),
            })
    except HermesError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error [{e.error_code}]: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
