"""Persisted tree snapshot, one JSON file per mode."""

import json
import os
import tempfile
from pathlib import Path

from loguru import logger

from workflowy_mirror.models.node import CacheRecord


class CacheFileStore:
    """Read and write the tree snapshot.

    An unreadable or malformed file is treated as absent, never as fatal.
    Writes go to a temporary file that replaces the old one, so readers
    see either the previous or the new snapshot.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> CacheRecord | None:
        try:
            contents = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Cannot read tree cache {}, ignoring it", self.path, exc_info=True)
            return None

        try:
            return CacheRecord.from_dict(json.loads(contents))
        except (ValueError, KeyError, TypeError):
            logger.warning("Tree cache {} is corrupt, ignoring it", self.path)
            return None

    def save(self, record: CacheRecord) -> None:
        contents = json.dumps(record.to_dict(), sort_keys=True, indent=4) + "\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".tree-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote tree cache {} ({} bytes)", self.path, len(contents))

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
