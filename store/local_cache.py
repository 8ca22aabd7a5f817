"""
Local fast-path cache for preferences.

A single JSON file of key/value pairs. Read before authentication (and when
offline); overwritten on every change. Writes are atomic so a crash mid-save
never leaves a truncated file behind.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class LocalCache:
    """Small JSON-file key/value store."""

    def __init__(self, cache_file: Path) -> None:
        """
        Initialise the cache.

        Args:
            cache_file: Path to the JSON cache file (created on first write).
        """
        self.cache_file = cache_file

    def _load(self) -> Dict[str, Any]:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, 'r') as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning(f"Ignoring malformed preference cache at {self.cache_file}")
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.warning(f"Failed to read preference cache: {e}")
        return {}

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Return the cached value for key, or default."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> bool:
        """
        Store a value, replacing the file atomically.

        Args:
            key: Cache key.
            value: JSON-serialisable value.

        Returns:
            True if saved successfully, False otherwise.
        """
        data = self._load()
        data[key] = value

        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)

            # Write to a temp file in the same directory first (for atomic rename)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='prefs_',
                dir=self.cache_file.parent
            )
            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(data, f, indent=2)
                os.replace(temp_path, self.cache_file)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

            logger.debug(f"Cached {key}={value!r}")
            return True
        except (IOError, OSError) as e:
            logger.warning(f"Could not write preference cache: {e}")
            return False
