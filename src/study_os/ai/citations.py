from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence

from study_os.files.text_cache import FileContext

_CITATION_RE = re.compile(r"\[(\d+)\]")


@dataclass(frozen=True, slots=True)
class Citation:
    number: int
    file_name: str


def resolve_citations(text: str, contexts: Sequence[FileContext]) -> List[Citation]:
    """Map each distinct [n] in a reply to contexts[n - 1], in order of first appearance."""
    citations: List[Citation] = []
    seen: set[int] = set()
    for match in _CITATION_RE.finditer(text):
        number = int(match.group(1))
        if number in seen:
            continue
        seen.add(number)
        index = number - 1
        file_name = contexts[index].file_name if 0 <= index < len(contexts) else f"File {number}"
        citations.append(Citation(number=number, file_name=file_name))
    return citations
