from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

import aiohttp

from study_os.canvas.models import CanvasFile, CanvasFolder
from study_os.core.utils import format_rfc3339, try_parse_rfc3339, utc_now
from study_os.errors import CanvasApiError, InvalidTokenError
from study_os.files.extraction import is_file_type_supported
from study_os.storage.accessor import StudyStore
from study_os.storage.models import CachedCanvasFile

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 10


class FileSource(Protocol):
    async def fetch_course_files(self, token: str, course_id: int) -> List[CanvasFile]:
        ...

    async def fetch_course_folders(self, token: str, course_id: int) -> List[CanvasFolder]:
        ...

    async def fetch_folder_files(self, token: str, folder_id: int) -> List[CanvasFile]:
        ...

    async def download_file_base64(self, token: str, url: str, name: str) -> Optional[str]:
        ...


@dataclass(slots=True)
class ReconcileResult:
    course_id: int
    files: List[CachedCanvasFile] = field(default_factory=list)
    needs_download: List[int] = field(default_factory=list)
    downloaded: List[int] = field(default_factory=list)
    reused: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


def is_remote_newer(remote_modified_at: str, cached_modified_at: str) -> bool:
    """
    True when the remote timestamp is strictly later than the cached one.

    An unparsable timestamp on either side never counts as newer.
    """
    remote = try_parse_rfc3339(remote_modified_at)
    cached = try_parse_rfc3339(cached_modified_at)
    if remote is None or cached is None:
        return False
    return remote > cached


def plan_downloads(
    remote_files: Sequence[CanvasFile],
    cached: Mapping[int, CachedCanvasFile],
) -> Tuple[List[CanvasFile], List[CachedCanvasFile]]:
    """Split supported remote files into (to download, reusable cache entries)."""
    to_download: List[CanvasFile] = []
    reusable: List[CachedCanvasFile] = []
    for remote in remote_files:
        if not is_file_type_supported(remote.name, remote.content_type):
            continue
        entry = cached.get(remote.id)
        if entry is None or is_remote_newer(remote.effective_modified_at, entry.modified_at):
            to_download.append(remote)
        else:
            reusable.append(entry)
    return to_download, reusable


class FileCacheReconciler:
    """
    Keeps a course's local copy of Canvas file bytes in step with Canvas.

    Only new files and files whose remote modification time moved forward are
    downloaded. Downloads run in sequential batches; a failed download leaves the
    file out of the cache until the next pass.
    """

    def __init__(
        self,
        source: FileSource,
        store: StudyStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._source = source
        self._store = store
        self._batch_size = max(1, int(batch_size))
        self._clock = clock

    async def list_course_files(self, token: str, course_id: int) -> List[CanvasFile]:
        root_files, folders = await asyncio.gather(
            self._tolerate(self._source.fetch_course_files(token, course_id), [], what="course files", ref=course_id),
            self._tolerate(self._source.fetch_course_folders(token, course_id), [], what="course folders", ref=course_id),
        )
        folder_batches = await asyncio.gather(
            *(
                self._tolerate(self._source.fetch_folder_files(token, folder.id), [], what="folder files", ref=folder.id)
                for folder in folders
                if folder.is_browsable
            )
        )

        seen: set[int] = set()
        files: List[CanvasFile] = []
        for file in [*root_files, *(f for batch in folder_batches for f in batch)]:
            if file.locked or file.hidden or file.id in seen:
                continue
            seen.add(file.id)
            files.append(file)
        return files

    async def reconcile(self, course_id: int) -> ReconcileResult:
        cached_map: Dict[int, CachedCanvasFile] = {f.canvas_id: f for f in self._store.get_cached_canvas_files(course_id)}
        result = ReconcileResult(course_id=course_id)

        token = self._store.get_canvas_token()
        if token is None:
            logger.info("No Canvas token stored, using cached files only. course_id=%s", course_id)
            result.files = list(cached_map.values())
            return result

        remote_files = await self.list_course_files(token, course_id)
        to_download, reusable = plan_downloads(remote_files, cached_map)
        result.needs_download = [f.id for f in to_download]
        result.reused = [f.canvas_id for f in reusable]

        if to_download:
            logger.info("Downloading new or updated Canvas files. course_id=%s count=%d", course_id, len(to_download))
        for batch in self._batches(to_download):
            for entry in await self._download_batch(token, course_id, batch):
                if isinstance(entry, CachedCanvasFile):
                    self._store.cache_canvas_file(course_id, entry)
                    cached_map[entry.canvas_id] = entry
                    result.downloaded.append(entry.canvas_id)
                else:
                    result.failed.append(entry)

        result.files = list(cached_map.values())
        logger.info(
            "Canvas file cache reconciled. course_id=%s downloaded=%d reused=%d failed=%d",
            course_id,
            len(result.downloaded),
            len(result.reused),
            len(result.failed),
        )
        return result

    def _batches(self, files: Sequence[CanvasFile]) -> List[Sequence[CanvasFile]]:
        return [files[i : i + self._batch_size] for i in range(0, len(files), self._batch_size)]

    async def _download_batch(self, token: str, course_id: int, batch: Sequence[CanvasFile]) -> List[CachedCanvasFile | int]:
        payloads = await asyncio.gather(
            *(self._source.download_file_base64(token, file.url, file.name) for file in batch),
            return_exceptions=True,
        )
        entries: List[CachedCanvasFile | int] = []
        for file, payload in zip(batch, payloads):
            if isinstance(payload, BaseException) or payload is None:
                if isinstance(payload, BaseException):
                    logger.warning("Canvas file download raised. file_id=%s error=%s", file.id, payload)
                entries.append(file.id)
                continue
            entries.append(
                CachedCanvasFile(
                    canvas_id=file.id,
                    name=file.name,
                    type=file.content_type,
                    size=file.size,
                    data=payload,
                    url=file.url,
                    # Timestamp of the listing this download was issued from.
                    modified_at=file.effective_modified_at,
                    cached_at=format_rfc3339(self._clock()),
                    course_id=course_id,
                )
            )
        return entries

    @staticmethod
    async def _tolerate(call: Awaitable[List[T]], default: List[T], *, what: str, ref: int) -> List[T]:
        try:
            return await call
        except InvalidTokenError:
            raise
        except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to list %s, treating as empty. id=%s error=%s", what, ref, e)
            return default
