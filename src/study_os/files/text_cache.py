from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from study_os.core.utils import format_rfc3339, utc_now
from study_os.files.extraction import ExtractionInput, extract_texts
from study_os.storage.accessor import StudyStore
from study_os.storage.models import CachedCanvasFile, CachedExtractedText, UploadedFile

logger = logging.getLogger(__name__)

Extractor = Callable[[Sequence[ExtractionInput]], List[Optional[str]]]


@dataclass(frozen=True, slots=True)
class FileContext:
    file_name: str
    text: str


@dataclass(frozen=True, slots=True)
class _PendingExtraction:
    source: ExtractionInput
    canvas_id: Optional[int]
    file_modified_at: Optional[str]


@dataclass(slots=True)
class ExtractionPlan:
    reused: List[CachedExtractedText]
    pending: List[_PendingExtraction]


def plan_extractions(
    cached: Sequence[CachedExtractedText],
    uploads: Sequence[UploadedFile],
    canvas_files: Sequence[CachedCanvasFile],
) -> ExtractionPlan:
    """
    Decide which documents can reuse a cached extraction.

    Uploads are immutable once stored, so any cached text with the same file name is
    reused. A Canvas file reuses cached text only when the recorded modification time
    is exactly the file's current one.
    """
    by_upload_name: Dict[str, CachedExtractedText] = {}
    by_canvas_id: Dict[int, CachedExtractedText] = {}
    for entry in cached:
        if entry.canvas_id is None:
            by_upload_name.setdefault(entry.file_name, entry)
        else:
            by_canvas_id[entry.canvas_id] = entry

    plan = ExtractionPlan(reused=[], pending=[])
    seen_names: set[str] = set()
    for upload in uploads:
        if upload.name in seen_names:
            continue
        seen_names.add(upload.name)
        hit = by_upload_name.get(upload.name)
        if hit is not None:
            plan.reused.append(hit)
        else:
            plan.pending.append(
                _PendingExtraction(ExtractionInput(upload.name, upload.type, upload.data), None, None)
            )

    for file in canvas_files:
        hit = by_canvas_id.get(file.canvas_id)
        if hit is not None and hit.file_modified_at == file.modified_at:
            plan.reused.append(hit)
        else:
            plan.pending.append(
                _PendingExtraction(ExtractionInput(file.name, file.type, file.data), file.canvas_id, file.modified_at)
            )
    return plan


class TextExtractionCache:
    """Per-course extracted text used as assistant context, rebuilt only where sources changed."""

    def __init__(
        self,
        store: StudyStore,
        *,
        extractor: Extractor = extract_texts,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._clock = clock

    def candidate_uploads(self, course_id: int) -> List[UploadedFile]:
        return [*self._store.get_uploaded_files(course_id), *self._store.get_uploaded_files(None)]

    async def build_context(self, course_id: int, canvas_files: Sequence[CachedCanvasFile]) -> List[FileContext]:
        cached = self._store.get_cached_extracted_text(course_id)
        plan = plan_extractions(cached.texts if cached else [], self.candidate_uploads(course_id), canvas_files)

        extracted: List[CachedExtractedText] = []
        if plan.pending:
            logger.info("Extracting text from course documents. course_id=%s count=%d", course_id, len(plan.pending))
            texts = await asyncio.to_thread(self._extractor, [p.source for p in plan.pending])
            now = format_rfc3339(self._clock())
            for pending, text in zip(plan.pending, texts):
                if not text or not text.strip():
                    continue
                extracted.append(
                    CachedExtractedText(
                        file_name=pending.source.name,
                        text=text,
                        extracted_at=now,
                        canvas_id=pending.canvas_id,
                        file_modified_at=pending.file_modified_at,
                    )
                )

        entries = [*plan.reused, *extracted]
        self._store.save_cached_extracted_text(course_id, entries)
        logger.info(
            "Course text context ready. course_id=%s reused=%d extracted=%d",
            course_id,
            len(plan.reused),
            len(extracted),
        )
        return [FileContext(file_name=e.file_name, text=e.text) for e in entries]

