"""HTTP fetch helpers with retry logic for temporary outages."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .errors import DecodeError, NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "dfs-alert"


def fetch(
    url: str, timeout: float = 30, max_retries: int = 3, retry_delay: float = 5
) -> requests.Response:
    """GET ``url``, retrying on any requests failure.

    Raises:
        NetworkError: every attempt failed (connection, timeout or HTTP status).
    """
    if not url:
        raise NetworkError("No URL configured")

    attempts = max(1, int(max_retries))
    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            logger.debug("GET %s (attempt %d/%d)", url, attempt + 1, attempts)
            response = requests.get(
                url, timeout=timeout, headers={"User-Agent": USER_AGENT}
            )
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            last_error = e
            logger.warning("Attempt %d/%d for %s failed: %s", attempt + 1, attempts, url, e)
            if attempt < attempts - 1:
                time.sleep(retry_delay)

    raise NetworkError(f"All {attempts} attempts failed for {url}: {last_error}")


def fetch_json(url: str, **kwargs: Any) -> Any:
    response = fetch(url, **kwargs)
    try:
        return response.json()
    except ValueError as e:
        raise DecodeError(f"Invalid JSON from {url}: {e}") from e


def fetch_bytes(url: str, **kwargs: Any) -> bytes:
    return fetch(url, **kwargs).content


__all__ = ["fetch", "fetch_bytes", "fetch_json"]
