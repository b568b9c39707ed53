"""Encrypted key-value storage for user settings and OAuth tokens"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from stretchtime.models.settings import AppSettings

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``partial`` into a copy of ``base``, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in partial.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class SettingsStore:
    """Persists AppSettings as an encrypted JSON document.

    ``get()`` always returns a fresh AppSettings built from the latest
    persisted values, so callers can never mutate the stored copy.
    ``update()`` deep-merges a partial dict, validates the result and writes
    it to disk before returning.
    """

    def __init__(
        self,
        storage_path: Union[str, Path] = "data/settings.enc",
        key_path: Optional[Union[str, Path]] = None,
    ):
        self.storage_path = Path(storage_path)
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path = Path(key_path) if key_path else self.storage_path.parent / ".key"

        self._cipher = Fernet(self._get_or_create_key())
        self._data: Dict[str, Any] = self._load_settings()

    def _get_or_create_key(self) -> bytes:
        """Get or create encryption key"""
        if self.key_path.exists():
            return self.key_path.read_bytes()

        key = Fernet.generate_key()
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path.write_bytes(key)
        return key

    def get(self) -> AppSettings:
        """Return the current settings."""
        return AppSettings.model_validate(self._data)

    def update(self, partial: Dict[str, Any]) -> AppSettings:
        """Apply a partial update and persist it.

        Raises pydantic.ValidationError if the merged document is invalid;
        nothing is written in that case.
        """
        merged = _deep_merge(self._data, partial)
        validated = AppSettings.model_validate(merged)
        self._data = validated.model_dump(mode="json")
        self._save_settings()
        return validated

    def _save_settings(self):
        data = json.dumps(self._data)
        self.storage_path.write_bytes(self._cipher.encrypt(data.encode()))

    def _load_settings(self) -> Dict[str, Any]:
        """Load settings from encrypted storage, creating defaults on first run"""
        if self.storage_path.exists():
            try:
                decrypted = self._cipher.decrypt(self.storage_path.read_bytes())
                stored = json.loads(decrypted.decode())
                return AppSettings.model_validate(stored).model_dump(mode="json")
            except (InvalidToken, ValueError) as e:
                backup_path = self.storage_path.with_name(self.storage_path.name + ".bak")
                self.storage_path.replace(backup_path)
                logger.error(
                    f"Error loading settings, falling back to defaults (unreadable file kept at {backup_path}): {e}"
                )

        self._data = AppSettings().model_dump(mode="json")
        self._save_settings()
        logger.info(f"Created default settings at {self.storage_path}")
        return self._data
