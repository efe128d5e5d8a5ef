from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Protocol, Sequence, Set

import aiohttp

from study_os.canvas.models import CanvasFile, CanvasFolder
from study_os.errors import CanvasApiError, InvalidTokenError, MissingTokenError
from study_os.storage.accessor import StudyStore

logger = logging.getLogger(__name__)


class FolderSource(Protocol):
    async def fetch_course_files(self, token: str, course_id: int) -> List[CanvasFile]:
        ...

    async def fetch_course_folders(self, token: str, course_id: int) -> List[CanvasFolder]:
        ...

    async def fetch_folder_files(self, token: str, folder_id: int) -> List[CanvasFile]:
        ...

    async def test_folder_access(self, token: str, folder_id: int) -> bool:
        ...


class FolderAccessChecker:
    """Classifies course folders as readable or restricted before they are opened."""

    def __init__(self, source: FolderSource) -> None:
        self._source = source

    async def classify(self, token: str, folders: Sequence[CanvasFolder]) -> Set[int]:
        candidates = [folder for folder in folders if folder.is_browsable]
        results = await asyncio.gather(
            *(self._source.test_folder_access(token, folder.id) for folder in candidates),
            return_exceptions=True,
        )
        restricted: Set[int] = set()
        for folder, result in zip(candidates, results):
            if isinstance(result, BaseException):
                # Check errors fail open.
                logger.debug("Folder check raised, treating as accessible. folder_id=%s error=%s", folder.id, result)
                continue
            if result is False:
                restricted.add(folder.id)
        if restricted:
            logger.info("Restricted folders detected. folder_ids=%s", sorted(restricted))
        return restricted


class FolderBrowser:
    """
    A course's browsable file view.

    load() rebuilds the root listing and the restricted-folder set from scratch.
    expand() refuses restricted folders and memoises each folder's listing; a folder
    that comes back empty while its metadata claims files, or that answers 403, is
    added to the restricted set.
    """

    def __init__(self, source: FolderSource, store: StudyStore, course_id: int) -> None:
        self._source = source
        self._store = store
        self._checker = FolderAccessChecker(source)
        self.course_id = course_id
        self.files: List[CanvasFile] = []
        self.folders: List[CanvasFolder] = []
        self.restricted: Set[int] = set()
        self.expanded: Set[int] = set()
        self._folder_files: Dict[int, List[CanvasFile]] = {}

    def _token(self) -> str:
        token = self._store.get_canvas_token()
        if token is None:
            raise MissingTokenError()
        return token

    async def load(self) -> None:
        token = self._token()
        files, folders = await asyncio.gather(
            self._list_or_empty(self._source.fetch_course_files(token, self.course_id), "course files"),
            self._list_or_empty(self._source.fetch_course_folders(token, self.course_id), "course folders"),
        )
        self.files = files
        self.folders = folders
        self.expanded = set()
        self._folder_files = {}
        self.restricted = await self._checker.classify(token, folders)

    def folder(self, folder_id: int) -> Optional[CanvasFolder]:
        for folder in self.folders:
            if folder.id == folder_id:
                return folder
        return None

    def folder_files(self, folder_id: int) -> List[CanvasFile]:
        return list(self._folder_files.get(folder_id, []))

    async def expand(self, folder_id: int) -> List[CanvasFile]:
        if folder_id in self.restricted:
            logger.info("Refusing to expand restricted folder. folder_id=%s", folder_id)
            return []

        if folder_id not in self._folder_files:
            token = self._token()
            try:
                files = await self._source.fetch_folder_files(token, folder_id)
            except InvalidTokenError:
                raise
            except CanvasApiError as e:
                logger.warning("Failed to load folder files. folder_id=%s status=%s", folder_id, e.status)
                if e.status == 403:
                    self.restricted.add(folder_id)
                files = []
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning("Failed to load folder files. folder_id=%s error=%s", folder_id, e)
                files = []
            else:
                folder = self.folder(folder_id)
                if not files and folder is not None and folder.files_count > 0:
                    self.restricted.add(folder_id)
            self._folder_files[folder_id] = files

        self.expanded.add(folder_id)
        return self.folder_files(folder_id)

    def collapse(self, folder_id: int) -> None:
        self.expanded.discard(folder_id)

    @staticmethod
    async def _list_or_empty(call, what: str) -> list:
        try:
            return await call
        except InvalidTokenError:
            raise
        except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to list %s, showing none. error=%s", what, e)
            return []
