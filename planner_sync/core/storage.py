"""JSON-file backed key/value storage for local planner state."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..models.config import sanitize_key

logger = logging.getLogger(__name__)


class LocalStorage:
    """Persists JSON values under string keys, one file per key.

    Holds the local planner document and settings, the per-provider
    credentials and cached folder ids, and the active provider selection.
    """

    SUFFIX = ".json"

    def __init__(self, state_dir: Path) -> None:
        """Initialize storage.

        Args:
            state_dir: Directory holding one JSON file per key (created on first write)
        """
        self.state_dir = Path(state_dir)

    def _path_for(self, key: str) -> Path:
        return self.state_dir / f"{sanitize_key(key)}{self.SUFFIX}"

    def get_item(self, key: str, default: Any = None) -> Any:
        """Read the value stored under a key.

        Args:
            key: Storage key
            default: Value returned when nothing is stored

        Returns:
            Decoded JSON value, or default
        """
        path = self._path_for(key)
        if not path.exists():
            return default
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def set_item(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under a key.

        The file is replaced atomically so a crash never leaves a
        half-written document behind.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)

        fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".tmp-", suffix=self.SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Stored local key %s", key)

    def remove_item(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""
        self._path_for(key).unlink(missing_ok=True)

    def has_item(self, key: str) -> bool:
        return self._path_for(key).exists()

    def keys(self) -> list[str]:
        """List stored keys (as sanitized file stems)."""
        if not self.state_dir.exists():
            return []
        return sorted(
            p.stem for p in self.state_dir.glob(f"*{self.SUFFIX}") if not p.name.startswith(".")
        )
