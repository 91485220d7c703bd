from pathlib import Path
import sys

import pytest

# Add only the src directory to path, not the project root
# This prevents accidentally picking up sibling workspace projects
project_root = Path(__file__).parent.parent
src_path = str(project_root / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from dfs_alert.config import Config  # noqa: E402

NOTIFICATION_CSV = (
    "Date,Time,Status,Type\n"
    "2022-11-28,16:00,Turn down between 17:00 and 18:00,Requirement Published\n"
    ",,,\n"
    "2022-11-27,09:30,Earlier notice,Anticipated Requirement Notice\n"
)

RESOURCE_NAME = "dfs_industry_notification_20221128"


def make_catalogue(last_modified="2022-11-28T16:05:00", name=RESOURCE_NAME, path=None):
    """Datapackage-shaped catalogue with one notification resource."""
    return {
        "resources": [
            {
                "name": "dfs_utilisation_report",
                "last_modified": "2022-11-01T00:00:00",
                "path": "https://example.test/utilisation.csv",
            },
            {
                "name": name,
                "last_modified": last_modified,
                "path": path or f"https://example.test/{name}.csv",
            },
        ]
    }


class FakeFetcher:
    """Stands in for HttpFetcher; serves canned documents per URL."""

    def __init__(self, catalogues=None, details=None):
        self.catalogues = dict(catalogues or {})
        self.details = dict(details or {})
        self.catalogue_calls = []
        self.detail_calls = []

    def catalogue(self, url):
        self.catalogue_calls.append(url)
        value = self.catalogues[url]
        if isinstance(value, Exception):
            raise value
        return value

    def detail(self, url):
        self.detail_calls.append(url)
        value = self.details[url]
        if isinstance(value, Exception):
            raise value
        return value


class RecordingDestination:
    def __init__(self, name="recorder", fail=False):
        self.name = name
        self.fail = fail
        self.messages = []
        self.statuses = []

    def send(self, message):
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        self.messages.append(message)

    def publish_status(self, payload):
        self.statuses.append(payload)


@pytest.fixture
def two_feed_config(tmp_path):
    """Config with live and test feeds and a checkpoint under tmp_path."""
    return Config(
        {
            "feeds": [
                {"id": "live", "url": "https://example.test/live/datapackage.json"},
                {"id": "test", "url": "https://example.test/test/datapackage.json"},
            ],
            "http": {"timeout": 1, "max_retries": 1, "retry_delay": 0},
            "service": {"interval_seconds": 5},
            "state": {"file": str(tmp_path / "state.json")},
            "alerts": {"log": True, "webhooks": []},
        }
    )
