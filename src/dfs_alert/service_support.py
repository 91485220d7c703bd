"""Service support: stop-signal handling for the poll loop.

SIGINT/SIGTERM handling is delegated to ha_mqtt_publisher. An explicit
signal tuple gets a local controller instead, so tests can use a spare
signal without touching the process-wide handlers.
"""

from __future__ import annotations

import signal as _signal
from types import FrameType
from typing import Any, Callable

from ha_mqtt_publisher import install_signal_handlers


class _SelectedSignals:
    """Routes only the given signals to a callback; restores them on exit."""

    def __init__(self, shutdown_cb: Callable[[], None], signals: tuple[int, ...]):
        self.shutdown_cb = shutdown_cb
        self.signals = signals
        self._previous: dict[int, Any] = {}

    def __enter__(self) -> _SelectedSignals:
        def _on_signal(signum: int, frame: FrameType | None) -> None:
            self.shutdown_cb()

        for sig in self.signals:
            self._previous[sig] = _signal.signal(sig, _on_signal)
        return self

    def __exit__(self, *exc_info: object) -> None:
        while self._previous:
            sig, handler = self._previous.popitem()
            _signal.signal(sig, handler)


def install_global_signal_handler(
    shutdown_cb: Callable[[], None], signals: tuple[int, ...] | None = None
) -> Any:
    """Context manager calling ``shutdown_cb`` on a stop signal.

    Without ``signals`` the library installs SIGINT/SIGTERM handlers.
    """
    if not signals:
        return install_signal_handlers(shutdown_cb)
    return _SelectedSignals(shutdown_cb, signals)


__all__ = ["install_global_signal_handler"]
