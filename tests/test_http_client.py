"""Tests for the retrying HTTP helpers."""

from unittest.mock import Mock, patch

import pytest
import requests

from dfs_alert.errors import DecodeError, NetworkError
from dfs_alert.http_client import USER_AGENT, fetch, fetch_bytes, fetch_json


def _ok(content=b"", json_value=None):
    response = Mock()
    response.raise_for_status = Mock()
    response.content = content
    response.json.return_value = json_value
    return response


@patch("dfs_alert.http_client.requests.get")
def test_fetch_success_sends_user_agent(mock_get):
    mock_get.return_value = _ok(b"abc")
    assert fetch_bytes("https://example.test/a.csv", timeout=7) == b"abc"
    _, kwargs = mock_get.call_args
    assert kwargs["timeout"] == 7
    assert kwargs["headers"]["User-Agent"] == USER_AGENT


@patch("dfs_alert.http_client.time.sleep")
@patch("dfs_alert.http_client.requests.get")
def test_retries_then_succeeds(mock_get, mock_sleep):
    mock_get.side_effect = [requests.ConnectionError("down"), _ok(b"ok")]
    assert fetch_bytes("https://example.test/a.csv", max_retries=3, retry_delay=2) == b"ok"
    assert mock_get.call_count == 2
    mock_sleep.assert_called_once_with(2)


@patch("dfs_alert.http_client.time.sleep")
@patch("dfs_alert.http_client.requests.get")
def test_all_attempts_fail(mock_get, mock_sleep):
    mock_get.side_effect = requests.Timeout("slow")
    with pytest.raises(NetworkError, match="All 3 attempts failed"):
        fetch("https://example.test/a.csv", max_retries=3, retry_delay=0)
    assert mock_get.call_count == 3
    assert mock_sleep.call_count == 2


@patch("dfs_alert.http_client.requests.get")
def test_http_status_error_is_network_error(mock_get):
    response = _ok()
    response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
    mock_get.return_value = response
    with pytest.raises(NetworkError, match="503"):
        fetch("https://example.test/a.csv", max_retries=1)


def test_empty_url():
    with pytest.raises(NetworkError):
        fetch("")


@patch("dfs_alert.http_client.requests.get")
def test_fetch_json_invalid_body(mock_get):
    response = _ok()
    response.json.side_effect = ValueError("Expecting value")
    mock_get.return_value = response
    with pytest.raises(DecodeError):
        fetch_json("https://example.test/datapackage.json", max_retries=1)


@patch("dfs_alert.http_client.requests.get")
def test_fetch_json(mock_get):
    mock_get.return_value = _ok(json_value={"resources": []})
    assert fetch_json("https://example.test/datapackage.json") == {"resources": []}
