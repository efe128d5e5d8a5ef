from __future__ import annotations

from typing import Any, List, Optional, Protocol


class StoragePort(Protocol):
    """
    Global key-value namespace holding every piece of user state.

    Values are JSON-compatible. Writes replace the whole value under a key; callers
    merge in memory before writing. Reads of missing or undecodable values return
    None. Writes that exceed the store's quota raise StorageQuotaExceededError.
    """

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...
