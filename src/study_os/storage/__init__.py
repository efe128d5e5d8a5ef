"""Persisted local state: the storage port, its implementations and the typed accessor."""

from study_os.storage.accessor import StudyStore
from study_os.storage.impl import JsonFileStore, MemoryStore, NullStore
from study_os.storage.interfaces import StoragePort

__all__ = ["JsonFileStore", "MemoryStore", "NullStore", "StoragePort", "StudyStore"]
