"""Entry point: ``python -m trackpilot``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime

from trackpilot.automation.clock import parse_date
from trackpilot.automation.engine import preview
from trackpilot.exceptions import ConfigurationError, DateParseError
from trackpilot.reporting.console import (
    print_banner,
    print_preview,
    print_run_report,
    print_transition,
    print_transitions,
)
from trackpilot.reporting.transitions import write_transitions
from trackpilot.scheduler import AutomationScheduler
from trackpilot.settings import AppSettings, load_rule_config
from trackpilot.storage.store import ApplicationStore


def _configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _since(value: str) -> datetime:
    try:
        return parse_date(value)
    except DateParseError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackpilot", description="Apply pipeline automation rules to tracked applications."
    )
    parser.add_argument("--settings", help="Path to settings.yaml")
    parser.add_argument("--rules", help="Rule config (YAML/JSON) overriding settings.automation")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run automations now and then on the configured interval")
    sub.add_parser("once", help="Run automations a single time")
    sub.add_parser("preview", help="Count applications matching each rule")
    imp = sub.add_parser("import", help="Load applications from a JSON export")
    imp.add_argument("path")
    log = sub.add_parser("transitions", help="Show or save the transitions automation applied")
    log.add_argument("--since", type=_since, help="Only transitions at or after this date")
    log.add_argument("--output", help="Write to a .json or .csv file instead of printing")
    return parser


def _scheduler(settings: AppSettings, store: ApplicationStore) -> AutomationScheduler:
    return AutomationScheduler(
        store,
        settings.automation,
        interval_seconds=settings.interval_seconds,
        initial_delay_seconds=settings.initial_delay_seconds,
        on_transition=print_transition,
    )


async def _run_forever(settings: AppSettings, store: ApplicationStore) -> None:
    scheduler = _scheduler(settings, store)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        settings = AppSettings.from_yaml(args.settings)
        if args.rules:
            settings.automation = load_rule_config(args.rules)
    except ConfigurationError as exc:
        _configure_logging()
        logging.error("%s", exc)
        sys.exit(2)

    _configure_logging(settings.log_level)
    command = args.command or "run"
    store = ApplicationStore(settings.db_path)
    try:
        if command == "import":
            store.import_json(args.path)
        elif command == "transitions":
            rows = store.get_transitions(args.since)
            if args.output:
                write_transitions(rows, args.output)
            else:
                print_transitions(rows)
        elif command == "preview":
            print_preview(preview(store.load_applications(), settings.automation))
        elif command == "once":
            print_banner()
            metrics = asyncio.run(_scheduler(settings, store).run_once())
            print_run_report(metrics)
        else:
            print_banner()
            asyncio.run(_run_forever(settings, store))
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)
    finally:
        store.close()


if __name__ == "__main__":
    main()
