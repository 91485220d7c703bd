"""Map the feed's free-text notification labels onto NotificationKind.

Matching is exact after trimming. An unseen label raises instead of
falling back to a default, so a renamed label shows up as an error alert
rather than a misclassified grid event.
"""

from __future__ import annotations

from .errors import UnknownNotificationType
from .models import NotificationKind

NOTIFICATION_LABELS: dict[str, NotificationKind] = {
    "Requirement Published": NotificationKind.PUBLISHED,
    "Anticipated Requirement Notice": NotificationKind.ANTICIPATED,
    "Requirement Cancelled": NotificationKind.CANCELLED,
    "Test DFS Requirement not issued": NotificationKind.CANCELLED,
    "Live DFS Requirement not issued": NotificationKind.CANCELLED,
}


def classify(text: str) -> NotificationKind:
    """Return the kind for a label, or raise UnknownNotificationType."""
    kind = NOTIFICATION_LABELS.get(text.strip())
    if kind is None:
        raise UnknownNotificationType(text)
    return kind


__all__ = ["NOTIFICATION_LABELS", "classify"]
