"""Change detection for a single feed.

``detect`` is a pure function over immutable FeedState values: it never
touches the network itself, it calls ``load_notification`` only once the
timestamp gate has passed, and any exception from that loader leaves the
caller holding the previous state.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Union

from .models import FeedState, Notification, ResourceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoChange:
    reason: str = "not modified"


@dataclass(frozen=True)
class Changed:
    notification: Notification


Outcome = Union[NoChange, Changed]


def is_newer(state: FeedState, descriptor: ResourceDescriptor) -> bool:
    """Timestamp gate: strictly newer than the last confirmed check."""
    return descriptor.last_modified > state.last_checked


def detect(
    state: FeedState,
    descriptor: ResourceDescriptor,
    load_notification: Callable[[str], Notification],
    advance_on_duplicate: bool = False,
) -> tuple[FeedState, Outcome]:
    """Decide whether ``descriptor`` carries a new notification.

    Args:
        state: Current tracker state for the feed.
        descriptor: Freshly fetched catalogue entry.
        load_notification: Fetches and parses the detail file at a path.
        advance_on_duplicate: Move ``last_checked`` forward when the content
            turns out to be unchanged, avoiding a re-fetch next cycle.

    Returns:
        ``(new_state, outcome)``. On ``Changed`` the new state holds both the
        descriptor's timestamp and the parsed notification.
    """
    if not is_newer(state, descriptor):
        return state, NoChange("not modified")

    notification = load_notification(descriptor.path)

    if notification == state.last_notification:
        logger.debug(
            "Resource %s modified at %s but content unchanged",
            descriptor.name,
            descriptor.last_modified,
        )
        if advance_on_duplicate:
            return (
                FeedState(descriptor.last_modified, state.last_notification),
                NoChange("duplicate"),
            )
        return state, NoChange("duplicate")

    return FeedState(descriptor.last_modified, notification), Changed(notification)


__all__ = ["Changed", "NoChange", "Outcome", "detect", "is_newer"]
