"""File-backed key/value storage for legacy local snapshots.

Each key is one JSON file in a directory. The only keys the dashboard uses
are the product and sales snapshots left behind by installations that
predate the remote store.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, List, Optional

from ..utils.exceptions import MigrationError
from ..utils.logger import get_migration_logger

PRODUCTS_SNAPSHOT_KEY = "products-snapshot"
SALES_SNAPSHOT_KEY = "sales-snapshot"


class LocalSnapshotStorage:
    """JSON files in ``directory``, one per key."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.logger = get_migration_logger()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        """Return the raw stored text, or None when the key is absent."""
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: Any) -> None:
        """Serialize ``value`` and replace the key atomically."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
            self.logger.info(f"Removed local key '{key}'")

    def load_array(self, key: str) -> List[Any]:
        """
        Load a JSON array stored under ``key``.

        Returns:
            The array, or an empty list when the key is absent or blank.

        Raises:
            MigrationError: If the stored text is not a JSON array.
        """
        raw = self.get(key)
        if raw is None or not raw.strip():
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MigrationError(
                f"Local key '{key}' is not valid JSON: {str(e)}",
                details={"key": key}
            )

        if not isinstance(data, list):
            raise MigrationError(
                f"Local key '{key}' does not hold an array",
                details={"key": key, "type": type(data).__name__}
            )
        return data
