from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
from typing import Any

from hostwatch.collector import TelemetryCollector
from hostwatch.config import AppConfig, load_config
from hostwatch.logging_utils import configure_logging, resolve_log_level
from hostwatch.provider import PsutilProvider
from hostwatch.scheduler import CollectionScheduler
from hostwatch.schema import validate_payload

logger = logging.getLogger("hostwatch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="hostwatch local system telemetry")
    parser.add_argument(
        "--config",
        help="Path to CFG configuration file (defaults are used when omitted)",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR); overrides the config file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect and print a single snapshot, then exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the JSON snapshot to a file (overwrites on each delivery)",
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        help="Collection interval in milliseconds; overrides the config file",
    )
    return parser


def summarize(snapshot: dict[str, Any]) -> str:
    if snapshot.get("status") != "success":
        return f"status=error error={snapshot.get('error')}"
    network = snapshot["network"]
    return (
        f"cpu={snapshot['cpu']['usage']}% "
        f"memory={snapshot['memory']['usage']}% ({snapshot['memory']['used']} of "
        f"{snapshot['memory']['total']}) "
        f"interfaces={len(network['interfaces'])} "
        f"gateway={network['defaultGateway']}"
    )


class SnapshotReporter:
    """Subscriber that validates, logs and optionally dumps each snapshot."""

    def __init__(self, dump_path: str | None = None, pretty_print: bool = False) -> None:
        self.dump_path = dump_path
        self.pretty_print = pretty_print

    def render(self, snapshot: dict[str, Any]) -> str:
        if self.pretty_print:
            return json.dumps(snapshot, indent=2)
        return json.dumps(snapshot)

    def __call__(self, snapshot: dict[str, Any]) -> None:
        schema_errors = validate_payload(snapshot)
        if schema_errors:
            logger.warning("Schema validation failed with %s errors.", len(schema_errors))
            logger.debug("Schema errors: %s", schema_errors)
        else:
            logger.debug("Schema validation passed.")
        logger.info("Snapshot %s %s", snapshot["timestamp"], summarize(snapshot))
        payload_json = self.render(snapshot)
        if self.dump_path:
            with open(self.dump_path, "w", encoding="utf-8") as handle:
                handle.write(payload_json)
        logger.debug("Payload: %s", payload_json)


async def run(config: AppConfig, reporter: SnapshotReporter, once: bool = False) -> None:
    provider = PsutilProvider(config.collector)
    collector = TelemetryCollector(provider, config.collector)

    if once:
        snapshot = await collector.collect()
        reporter(snapshot)
        print(reporter.render(snapshot))
        return

    scheduler = CollectionScheduler(collector, interval_ms=config.schedule.interval_ms)
    scheduler.subscribe(reporter)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await scheduler.wait_idle()


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    config = load_config(args.config)
    level = resolve_log_level(args.verbose, args.log_level or config.logging.level)
    configure_logging(level, config.logging.log_dir)

    if args.interval_ms is not None:
        if args.interval_ms <= 0:
            parser.error("--interval-ms must be positive")
        config = replace(
            config, schedule=replace(config.schedule, interval_ms=args.interval_ms)
        )

    reporter = SnapshotReporter(args.dump_json, pretty_print=level <= logging.DEBUG)
    if not args.once:
        logger.info(
            "hostwatch started. Collecting every %s ms.", config.schedule.interval_ms
        )
    try:
        asyncio.run(run(config, reporter, once=args.once))
    except KeyboardInterrupt:
        logger.info("hostwatch stopped.")


if __name__ == "__main__":
    main()
