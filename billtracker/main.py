import argparse
import asyncio
import logging
import sys

from billtracker.core.app import BillTrackerApp
from billtracker.core.bill import BillCategory, utc_now
from billtracker.core.orchestrator import filter_by_category, filter_due_soon, filter_overdue
from billtracker.core.report import render_csv, render_json, render_text

RENDERERS = {
    "text": render_text,
    "json": render_json,
    "csv": render_csv,
}


def setup_basic_logging():
    """Setup basic stderr logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:  # Only add handler if none exists
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)
        logging.debug("Basic logging initialized")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bill Tracker: one view of what you owe, across providers")
    parser.add_argument("--config", default="config.yaml",
                        help="Path to config file (default: config.yaml)")
    parser.add_argument("--provider", action="append", dest="providers", metavar="ID",
                        help="Only fetch this provider id (repeatable)")
    parser.add_argument("--force", action="store_true", default=None,
                        help="Skip fresh cache entries and fetch from every provider")
    parser.add_argument("--format", choices=sorted(RENDERERS), default="text")
    parser.add_argument("--category", choices=BillCategory.ALL)
    parser.add_argument("--overdue", action="store_true", help="Only overdue bills")
    parser.add_argument("--due-soon", type=int, metavar="DAYS", help="Only bills due within DAYS")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API instead of printing bills")
    return parser


def main(argv=None) -> int:
    setup_basic_logging()
    args = build_parser().parse_args(argv)

    app = BillTrackerApp(config_path=args.config, use_database=True if args.serve else None)
    app.setup_logging()

    if args.serve:
        from billtracker.api.server import run_api_server
        run_api_server(app)
        return 0

    report = asyncio.run(app.refresh(only=args.providers, force=args.force))

    bills = report.bills
    now = utc_now()
    if args.category:
        bills = filter_by_category(bills, args.category)
    if args.overdue:
        bills = filter_overdue(bills, now=now)
    if args.due_soon is not None:
        bills = filter_due_soon(bills, days=args.due_soon, now=now)

    print(RENDERERS[args.format](bills, now=now))

    if report.all_failed:
        logging.error(f"Every provider failed: {', '.join(report.failed_sources)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
