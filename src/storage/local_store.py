"""
Local on-device persistence: the whole app state as one JSON blob.
"""
import json
import logging
import os
import tempfile
from pathlib import Path

from config.settings import DATA_DIR, STORAGE_KEY
from src.models.data_structures import AppState

logger = logging.getLogger(__name__)


class LocalStore:
    """Loads, saves and clears the app state stored under a fixed key."""

    def __init__(self, data_dir: Path = None, key: str = STORAGE_KEY):
        self.data_dir = Path(data_dir or DATA_DIR)
        self.key = key

    @property
    def path(self) -> Path:
        return self.data_dir / f"{self.key}.json"

    def load(self) -> AppState:
        """Return the stored state, or an empty one if missing or unreadable."""
        if not self.path.exists():
            return AppState()
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return AppState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Could not load state from %s: %s", self.path, e)
            return AppState()

    def save(self, state: AppState) -> bool:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.data_dir, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(state.to_dict(), f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error("Could not save state to %s: %s", self.path, e)
            return False
        return True

    def clear(self):
        self.path.unlink(missing_ok=True)
