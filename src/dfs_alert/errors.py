"""Exception hierarchy for DFS Alert.

Everything except ConfigError and PersistError is feed-scoped: the
orchestrator catches it, reports it as an error alert and moves on to the
next feed.
"""

from __future__ import annotations

from typing import Any


class DfsAlertError(Exception):
    """Base class for all DFS Alert errors."""


class ConfigError(DfsAlertError):
    """Invalid or missing configuration (fatal at startup)."""


class NetworkError(DfsAlertError):
    """Transient fetch failure: connection, timeout, HTTP status or success=false."""


class DecodeError(DfsAlertError):
    """Catalogue document could not be decoded into resource descriptors."""


class ResourceNotFound(DfsAlertError):
    def __init__(self, prefixes: list[str] | tuple[str, ...]):
        self.prefixes = list(prefixes)
        expected = "|".join(f"{p}*" for p in self.prefixes)
        super().__init__(
            f"Couldn't find resource '{expected}' in DFS available resource list."
        )


class ParseError(DfsAlertError):
    """Detail file had no data rows or its first row could not be decoded."""


class UnknownNotificationType(DfsAlertError):
    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Unknown notification type '{text}'")


class PersistError(DfsAlertError):
    """Checkpoint could not be written."""


class RoutingError(DfsAlertError):
    """One or more alert destinations failed.

    ``errors`` holds ``(destination_name, exception)`` pairs and
    ``delivered`` the number of destinations that did succeed.
    """

    def __init__(self, errors: list[tuple[str, Any]], delivered: int = 0):
        self.errors = errors
        self.delivered = delivered
        lines = [f"{name}: {err}" for name, err in errors]
        super().__init__(
            f"{len(errors)} destination(s) failed ({delivered} delivered): "
            + "; ".join(lines)
        )


__all__ = [
    "ConfigError",
    "DecodeError",
    "DfsAlertError",
    "NetworkError",
    "ParseError",
    "PersistError",
    "ResourceNotFound",
    "RoutingError",
    "UnknownNotificationType",
]
