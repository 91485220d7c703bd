#!/usr/bin/env python3
"""
DFS Alert CLI.

Watches the Demand Flexibility Service notification feeds and routes
alerts when a new notice is published.
"""

import argparse
from datetime import datetime
import logging
import sys
import time

from .alerts import MessageRouter, deliver, notification_message
from .checkpoint import CheckpointStore
from .config import Config
from .errors import ConfigError
from .models import Notification, NotificationKind
from .service_cycle import FeedMonitor, run_forever
from .service_support import install_global_signal_handler


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all CLI commands."""
    parser = argparse.ArgumentParser(
        prog="dfs-alert",
        description="DFS Alert: Demand Flexibility Service notification watcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dfs-alert service                # Poll all feeds until stopped
  dfs-alert service --once         # Run a single cycle then exit
  dfs-alert check                  # Run one cycle and print the result
  dfs-alert --dry-run check        # Check without saving state or alerting
  dfs-alert status                 # Show configuration and saved state
  dfs-alert test-alert             # Send a test alert to all destinations
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {_get_version()}"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/config.yaml",
        help="path to configuration file",
    )
    parser.add_argument("--debug", action="store_true", help="enable debug output")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="test mode - no state will be saved and alerts only go to the log",
    )

    subparsers = parser.add_subparsers(
        dest="command", help="available commands", required=False
    )

    service_parser = subparsers.add_parser(
        "service", help="run continuous service (periodic feed checks)"
    )
    service_parser.add_argument(
        "--once", action="store_true", help="run a single cycle then exit"
    )
    service_parser.add_argument(
        "--interval", type=int, help="override poll interval seconds"
    )

    subparsers.add_parser("check", help="run one check of every feed")

    subparsers.add_parser("status", help="show configuration and saved state")

    test_parser = subparsers.add_parser(
        "test-alert", help="route a test notification to every destination"
    )
    test_parser.add_argument(
        "--feed", default="test", help="feed id to label the test alert with"
    )

    return parser


def _get_version() -> str:
    """Get the package version."""
    try:
        from dfs_alert import __version__

        return __version__
    except ImportError:
        return "0.0.0-dev"


def _setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load_config(path: str) -> Config:
    try:
        return Config.from_file(path)
    except FileNotFoundError:
        logging.warning("Config file %s not found, using defaults", path)
        return Config.from_defaults()


def cmd_service(config: Config, args) -> int:
    """Run the poll loop until SIGINT/SIGTERM (or once with --once)."""
    interval = args.interval or config.service_interval_seconds
    router = MessageRouter.from_config(config, dry_run=args.dry_run)
    monitor = FeedMonitor(config, router, persist=not args.dry_run)

    stop_flag = {"stop": False}

    def shutdown_sequence() -> None:
        logging.info("Shutdown requested")
        stop_flag["stop"] = True

    print(
        f"🔌 Watching {len(monitor.feeds)} feeds every {interval}s "
        f"({', '.join(f.id for f in monitor.feeds)})"
    )
    with install_global_signal_handler(shutdown_sequence):
        cycles = run_forever(
            monitor,
            interval=interval,
            should_stop=lambda: stop_flag["stop"],
            sleep=time.sleep,
            once=args.once,
        )
    logging.info("service stopped after %d cycles", cycles)
    return 0


def cmd_check(config: Config, args) -> int:
    """Run one cycle and print a summary; non-zero exit if any feed failed."""
    router = MessageRouter.from_config(config, dry_run=args.dry_run)
    monitor = FeedMonitor(config, router, persist=not args.dry_run)
    report = monitor.run_cycle("manual")

    print("\n\033[96m📡 DFS FEED CHECK\033[0m")
    print("\033[96m" + "=" * 30 + "\033[0m")
    for feed in monitor.feeds:
        if feed.id in report.changed:
            n = report.changed[feed.id]
            print(f"  🆕 {feed.id}: {n.kind.value} at {n.occurred_at:%Y-%m-%d %H:%M}")
            print(f"     {n.description}")
        elif feed.id in report.errors:
            print(f"  ❌ {feed.id}: {report.errors[feed.id]}")
        else:
            print(f"  ✅ {feed.id}: no change")
    if report.persist_error:
        print(f"  ⚠️  state not saved: {report.persist_error}")
    return 1 if report.errors else 0


def cmd_status(config: Config, args) -> int:
    """Show configuration and saved checkpoint."""
    print("\n\033[96m📊 DFS ALERT STATUS\033[0m")
    print("\033[96m" + "=" * 30 + "\033[0m")
    print(f"Version: {_get_version()}")

    print("\nConfiguration:")
    print(f"  Config file: {config.config_path}")
    print(f"  Poll interval: {config.service_interval_seconds}s")
    print(f"  State file: {config.state_file}")
    print(f"  MQTT enabled: {config.mqtt_enabled}")
    print(f"  Webhooks: {len(config.webhook_urls)}")
    if config.mqtt_enabled:
        print(f"  MQTT broker: {config.mqtt_broker}:{config.mqtt_port}")
        print(f"  Alerts topic: {config.get_mqtt_topics().get('alerts')}")
    print(f"  Destinations: {len(MessageRouter.from_config(config).destinations)}")

    checkpoint = CheckpointStore(config.state_file).load()
    print("\nFeeds:")
    for feed in config.feeds:
        print(f"  {feed.id}: {feed.url}")
        state = checkpoint.get(feed.id)
        if state is None or state.last_notification is None:
            print("    last notification: none")
        else:
            n = state.last_notification
            print(
                f"    last notification: {n.kind.value} at "
                f"{n.occurred_at:%Y-%m-%d %H:%M}"
            )
        if state is not None and state.last_checked != datetime.min:
            print(f"    last checked: {state.last_checked.isoformat()}")
    return 0


def cmd_test_alert(config: Config, args) -> int:
    """Route a TEST notification to verify destinations."""
    router = MessageRouter.from_config(config, dry_run=args.dry_run)
    notification = Notification(
        kind=NotificationKind.TEST,
        occurred_at=datetime.now().replace(second=0, microsecond=0),
        description="Test alert from dfs-alert; no action required.",
    )
    count = deliver(router, notification_message(args.feed, notification))
    print(f"📨 Informed {count}/{len(router.destinations)} destinations")
    return 0 if count == len(router.destinations) else 1


def main() -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    _setup_logging(args.debug)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = _load_config(args.config)
        # Validate feeds up front so bad config fails before the loop starts
        config.feeds

        if args.command == "service":
            return cmd_service(config, args)
        elif args.command == "check":
            return cmd_check(config, args)
        elif args.command == "status":
            return cmd_status(config, args)
        elif args.command == "test-alert":
            return cmd_test_alert(config, args)
        else:
            print(f"❌ Unknown command: {args.command}")
            return 1

    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
