from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from study_os.errors import StorageQuotaExceededError

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


class MemoryStore:
    """
    In-process store with local-storage semantics.

    Each value is kept as its own JSON string so a single corrupt entry only
    affects reads of that key. Quota accounting counts characters of keys and
    encoded values.
    """

    def __init__(self, *, quota_bytes: Optional[int] = None, raw: Optional[Mapping[str, str]] = None) -> None:
        self._quota_bytes = quota_bytes
        self._raw: Dict[str, str] = dict(raw or {})

    def get(self, key: str) -> Optional[Any]:
        encoded = self._raw.get(key)
        if encoded is None:
            return None
        try:
            return json.loads(encoded)
        except json.JSONDecodeError:
            logger.warning("Stored value is not valid JSON, treating as absent. key=%s", key)
            return None

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, separators=(",", ":"))
        self._check_quota(key, encoded)
        previous = self._raw.get(key)
        self._raw[key] = encoded
        try:
            self._persist()
        except OSError:
            if previous is None:
                self._raw.pop(key, None)
            else:
                self._raw[key] = previous
            raise

    def remove(self, key: str) -> None:
        if self._raw.pop(key, None) is not None:
            self._persist()

    def keys(self) -> List[str]:
        return list(self._raw.keys())

    def used_bytes(self) -> int:
        return sum(len(k) + len(v) for k, v in self._raw.items())

    def _check_quota(self, key: str, encoded: str) -> None:
        if self._quota_bytes is None:
            return
        current = self._raw.get(key)
        required = self.used_bytes() - (len(key) + len(current) if current is not None else 0)
        required += len(key) + len(encoded)
        if required > self._quota_bytes:
            logger.warning(
                "Storage quota exceeded. key=%s required_bytes=%d quota_bytes=%d",
                key,
                required,
                self._quota_bytes,
            )
            raise StorageQuotaExceededError(key, required, self._quota_bytes)

    def _persist(self) -> None:
        return None


class JsonFileStore(MemoryStore):
    """MemoryStore mirrored to a single JSON document on disk."""

    def __init__(self, path: str | Path, *, quota_bytes: Optional[int] = None) -> None:
        self._path = Path(path)
        super().__init__(quota_bytes=quota_bytes, raw=self._read())

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read store file, starting empty. path=%s", self._path)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Store file is not a JSON object, starting empty. path=%s", self._path)
            return {}
        return {str(k): v for k, v in payload.items() if isinstance(v, str)}

    def _persist(self) -> None:
        atomic_write_json(self._path, self._raw)


class NullStore:
    """Store used when no persistent environment exists: reads miss, writes vanish."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any) -> None:
        return None

    def remove(self, key: str) -> None:
        return None

    def keys(self) -> List[str]:
        return []
