"""
DFS Alert - Demand Flexibility Service notification watcher.

Polls the grid operator's open-data catalogue for new DFS industry
notifications, deduplicates and classifies them, and routes alerts to
MQTT, webhooks and the log.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("dfs_alert")
except PackageNotFoundError:
    # Package is not installed
    __version__ = "0.0.0-dev"

__all__ = [
    "__version__",
]
