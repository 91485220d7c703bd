"""Durable checkpoint of per-feed tracker state.

File format (JSON)::

    {
      "live": {"industry_notification": {...} | null, "last_checked": "..." | null},
      "test": {...}
    }
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Union

from .errors import PersistError
from .models import Checkpoint, FeedState

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Loads and atomically rewrites the checkpoint file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Checkpoint:
        """Read the checkpoint; a missing or corrupt file yields an empty one."""
        if not self.path.exists():
            logger.info("No checkpoint at %s, starting fresh", self.path)
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
            return {
                str(feed_id): FeedState.from_dict(entry)
                for feed_id, entry in data.items()
            }
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning("Failed to load checkpoint %s, starting fresh: %s", self.path, e)
            return {}

    def save(self, checkpoint: Checkpoint) -> None:
        """Write the whole checkpoint via temp file + rename.

        Raises:
            PersistError: the file could not be written or replaced.
        """
        payload = {feed_id: state.to_dict() for feed_id, state in checkpoint.items()}
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistError(f"Failed to save checkpoint {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("Saved checkpoint for %d feeds to %s", len(payload), self.path)


__all__ = ["CheckpointStore"]
