"""One poll cycle across all configured feeds.

For each feed: fetch the catalogue, locate the notification resource, run
the change detector and route an alert for a change or a failure. Feed
failures are contained; the checkpoint is written once at the end of the
cycle and only when some feed changed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Any, Callable, Optional

from . import record_parser
from .alerts import MessageRouter, deliver, error_message, notification_message
from .catalogue import decode_catalogue, find_resource
from .checkpoint import CheckpointStore
from .config import Config
from .detector import Changed, Outcome, detect
from .errors import DfsAlertError, PersistError
from .http_client import fetch_bytes, fetch_json
from .models import Checkpoint, FeedConfig, FeedState, Notification

logger = logging.getLogger(__name__)

MAX_ERRORS_DEFAULT = 25


class HttpFetcher:
    """Network access used by FeedMonitor; swapped out in tests."""

    def __init__(self, http_kwargs: Optional[dict[str, Any]] = None):
        self.http_kwargs = http_kwargs or {}

    def catalogue(self, url: str) -> Any:
        return fetch_json(url, **self.http_kwargs)

    def detail(self, url: str) -> bytes:
        return fetch_bytes(url, **self.http_kwargs)


@dataclass
class CycleReport:
    trigger: str
    changed: dict[str, Notification] = field(default_factory=dict)
    unchanged: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    persisted: bool = False
    persist_error: Optional[str] = None


class FeedMonitor:
    """Holds per-feed state across cycles and drives detection."""

    def __init__(
        self,
        config: Config,
        router: MessageRouter,
        store: Optional[CheckpointStore] = None,
        fetcher: Optional[HttpFetcher] = None,
        persist: bool = True,
    ):
        self.config = config
        self.router = router
        self.store = store or CheckpointStore(config.state_file)
        self.fetcher = fetcher or HttpFetcher(config.http_kwargs())
        self.persist = persist
        self.feeds = config.feeds
        self.states: Checkpoint = self.initial_states()

    def initial_states(self) -> Checkpoint:
        """Checkpoint contents, with an empty state for any feed not in it."""
        loaded = self.store.load()
        states: Checkpoint = dict(loaded)
        for feed in self.feeds:
            states.setdefault(feed.id, FeedState())
            if feed.id in loaded:
                logger.info(
                    "Loaded previous state for %s: %s", feed.id, loaded[feed.id]
                )
        return states

    def load_notification(self, path: str) -> Notification:
        return record_parser.parse(self.fetcher.detail(path))

    def check_feed(self, feed: FeedConfig, state: FeedState) -> tuple[FeedState, Outcome]:
        """Fetch, locate and detect for one feed; raises DfsAlertError on failure."""
        resources = decode_catalogue(self.fetcher.catalogue(feed.url))
        descriptor = find_resource(resources, feed.accepted_name_prefixes)
        logger.debug(
            "Feed %s resource %s last_modified=%s last_checked=%s",
            feed.id,
            descriptor.name,
            descriptor.last_modified,
            state.last_checked,
        )
        return detect(
            state,
            descriptor,
            self.load_notification,
            advance_on_duplicate=self.config.advance_on_duplicate,
        )

    def run_cycle(self, trigger: str = "interval") -> CycleReport:
        report = CycleReport(trigger=trigger)
        for feed in self.feeds:
            logger.info("Running '%s'", feed.id)
            state = self.states.get(feed.id, FeedState())
            try:
                new_state, outcome = self.check_feed(feed, state)
            except DfsAlertError as e:
                logger.error("Error checking for changes on %s resources: %s", feed.id, e)
                report.errors[feed.id] = str(e)
                deliver(self.router, error_message(feed.id, e))
                continue
            except Exception as e:  # pragma: no cover - unexpected bug in one feed
                logger.exception("Unexpected failure checking %s", feed.id)
                report.errors[feed.id] = f"{type(e).__name__}: {e}"
                deliver(self.router, error_message(feed.id, e))
                continue

            self.states[feed.id] = new_state
            if isinstance(outcome, Changed):
                logger.info("New notification on %s: %s", feed.id, outcome.notification)
                report.changed[feed.id] = outcome.notification
                deliver(self.router, notification_message(feed.id, outcome.notification))
            else:
                logger.info("Nothing changed on %s resource (%s)", feed.id, outcome.reason)
                report.unchanged.append(feed.id)

        if report.changed and self.persist:
            try:
                self.store.save(self.states)
                report.persisted = True
                logger.info("State changed, saved checkpoint to %s", self.store.path)
            except PersistError as e:
                report.persist_error = str(e)
                logger.error("Failed to save state: %s", e)
        return report


def _iso(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def _normalize_errors(
    errors: Iterable[tuple[str, str]], max_errors: int, now: Optional[str] = None
) -> list[dict[str, str]]:
    """Structured ``{"feed", "message", "ts"}`` entries, keeping the most recent."""
    errs_list = list(errors)
    if len(errs_list) > max_errors:
        errs_list = errs_list[-max_errors:]
    ts = now or _iso(time.time())
    return [{"feed": feed, "message": msg, "ts": ts} for feed, msg in errs_list]


def build_extra_status(
    report: CycleReport,
    interval: int,
    run_ts: float,
    max_errors: Optional[int] = None,
) -> dict[str, Any]:
    """Create the retained status payload for one completed cycle."""
    max_errors = max_errors or MAX_ERRORS_DEFAULT
    iso = _iso(run_ts)
    feeds: dict[str, str] = {}
    for feed_id in report.unchanged:
        feeds[feed_id] = "unchanged"
    for feed_id in report.changed:
        feeds[feed_id] = "changed"
    for feed_id in report.errors:
        feeds[feed_id] = "error"

    status: dict[str, Any] = {
        "status": "error" if report.errors else "active",
        "last_run_ts": int(run_ts),
        "last_run_iso": iso,
        "last_run_trigger": report.trigger,
        "interval_seconds": interval,
        "feeds": feeds,
        "changed": {
            feed_id: n.to_dict() for feed_id, n in report.changed.items()
        },
    }
    if report.errors:
        errors = _normalize_errors(report.errors.items(), max_errors, now=iso)
        status["errors"] = errors
        status["error_count"] = len(errors)
    if report.persist_error:
        status["persist_error"] = report.persist_error
    return status


def run_forever(
    monitor: FeedMonitor,
    interval: int,
    should_stop: Callable[[], bool],
    sleep: Callable[[float], None],
    once: bool = False,
    clock: Callable[[], float] = time.time,
) -> int:
    """Poll loop: run a cycle, publish status, sleep; returns cycles run."""
    cycles = 0
    trigger = "startup"
    while not should_stop():
        try:
            report = monitor.run_cycle(trigger)
            monitor.router.publish_status(
                build_extra_status(report, interval=interval, run_ts=clock())
            )
        except Exception:
            logger.exception("service cycle failed")
        cycles += 1
        if once:
            break
        trigger = "interval"
        # Sleep in short slices so a stop request is honoured promptly
        remaining = float(interval)
        while remaining > 0 and not should_stop():
            step = min(1.0, remaining)
            sleep(step)
            remaining -= step
    return cycles


__all__ = [
    "CycleReport",
    "FeedMonitor",
    "HttpFetcher",
    "MAX_ERRORS_DEFAULT",
    "build_extra_status",
    "run_forever",
]
