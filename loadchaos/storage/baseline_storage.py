"""Named baseline persistence.

Baselines and threshold profiles are stored as JSON files under a storage
directory, with an in-process expiring cache in front. Reads prefer the
cache and fall back to the file, so ``get`` after a successful ``save``
always sees the saved value even if the cache write did not happen.
"""

import copy
import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..core.exceptions import StorageError
from ..core.presets import BASELINE_TTL_SECONDS, PERFORMANCE_BASELINE_PREFIX

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9_\-]")


def sanitize_key(key: str) -> str:
    """Lowercase ``key`` and drop anything outside ``[a-z0-9_-]``."""
    return _UNSAFE_KEY_CHARS.sub("", key.lower())


class BaselineStorage(ABC):
    """Key/value store for baselines."""

    @abstractmethod
    def save(self, key: str, data: Any, ttl: int = BASELINE_TTL_SECONDS) -> bool:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass


class ExpiringCache:
    """Process-local cache whose entries expire after a TTL."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def set(self, key: str, value: Any, ttl: int) -> bool:
        self._entries[key] = (self._clock() + ttl, copy.deepcopy(value))
        return True

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None


class LayeredBaselineStorage(BaselineStorage):
    """Expiring cache over a durable JSON-file store."""

    def __init__(
        self,
        storage_dir: str,
        prefix: str = PERFORMANCE_BASELINE_PREFIX,
        cache: Optional[ExpiringCache] = None,
        clock=time.time,
    ):
        self.storage_dir = Path(storage_dir)
        self.prefix = prefix
        self.cache = cache if cache is not None else ExpiringCache(clock=clock)
        self._clock = clock

    def _ensure_dir(self) -> None:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self.storage_dir}: {e}")

    def _cache_key(self, key: str) -> str:
        return f"{self.prefix}_{sanitize_key(key)}"

    def file_path(self, key: str) -> Path:
        return self.storage_dir / f"{self._cache_key(key)}.json"

    def with_prefix(self, prefix: str) -> "LayeredBaselineStorage":
        """Same directory and cache, different key namespace."""
        return LayeredBaselineStorage(
            str(self.storage_dir), prefix=prefix, cache=self.cache, clock=self._clock
        )

    def save(self, key: str, data: Any, ttl: int = BASELINE_TTL_SECONDS) -> bool:
        cache_key = self._cache_key(key)
        file_saved = False
        try:
            self._ensure_dir()
            payload = {"expires_at": self._clock() + ttl, "data": data}
            with open(self.file_path(key), "w") as f:
                json.dump(payload, f, indent=2)
            file_saved = True
        except (OSError, TypeError, ValueError, StorageError) as e:
            logger.warning(f"Failed to write baseline file for '{key}': {e}")

        cache_saved = False
        try:
            cache_saved = self.cache.set(cache_key, data, ttl)
        except Exception as e:
            logger.warning(f"Failed to cache baseline '{key}': {e}")

        if not cache_saved:
            # Drop any older cached entry so reads fall through to the file
            try:
                self.cache.delete(cache_key)
            except Exception as e:
                logger.warning(f"Failed to evict cached baseline '{key}': {e}")

        return file_saved or cache_saved

    def get(self, key: str) -> Optional[Any]:
        cached = self.cache.get(self._cache_key(key))
        if cached is not None:
            return cached

        path = self.file_path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read baseline file {path}: {e}")
            return None

        if not isinstance(payload, dict) or "data" not in payload:
            return None
        expires_at = payload.get("expires_at")
        if expires_at is not None and expires_at <= self._clock():
            return None
        return payload["data"]

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        cache_deleted = self.cache.delete(self._cache_key(key))
        file_deleted = False
        path = self.file_path(key)
        if path.exists():
            try:
                os.remove(path)
                file_deleted = True
            except OSError as e:
                logger.warning(f"Failed to delete baseline file {path}: {e}")
        return cache_deleted or file_deleted
