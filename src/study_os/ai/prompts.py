from __future__ import annotations

from typing import Optional, Sequence

from study_os.files.text_cache import FileContext

GENERAL_ASSISTANT_NAME = "Study OS Assistant"

_TUTOR_ON = (
    "Tutor Mode is ON. Do not give direct answers. Instead, ask Socratic questions to help the "
    "student find the answer themselves{concepts}. Guide them through their thinking process step by step."
)
_TUTOR_OFF = (
    "Tutor Mode is OFF. Give concise, clear explanations{topic}. "
    "Be helpful and clear while maintaining academic rigor."
)


def greeting(course_nickname: Optional[str]) -> str:
    return f"Hi! I'm your {course_nickname or 'Course'} Junior Assistant. How can I help you today?"


def build_system_prompt(*, persona: str, tutor_mode: bool, course_nickname: Optional[str] = None) -> str:
    if course_nickname:
        intro = (
            f"You are the {course_nickname} Junior Assistant for {persona}. "
            f"You specialize in helping with {course_nickname} coursework."
        )
        if tutor_mode:
            return f"{intro} {_TUTOR_ON.format(concepts=f' using {course_nickname} concepts')}"
        return f"{intro} {_TUTOR_OFF.format(topic=f' related to {course_nickname}')}"

    intro = f"You are the {GENERAL_ASSISTANT_NAME} for {persona}."
    if tutor_mode:
        return f"{intro} {_TUTOR_ON.format(concepts='')}"
    return f"{intro} {_TUTOR_OFF.format(topic='')}"


def build_document_context(
    contexts: Sequence[FileContext],
    *,
    max_files: int,
    max_chars_per_file: int,
) -> str:
    """
    Numbered document block. Document n is contexts[n - 1], which is what a [n]
    citation in the reply refers back to.
    """
    if not contexts:
        return ""
    sections = []
    for number, context in enumerate(contexts[:max_files], 1):
        text = context.text
        if len(text) > max_chars_per_file:
            text = text[:max_chars_per_file].rstrip() + "\n[truncated]"
        sections.append(f"[{number}] {context.file_name}\n{text}")
    return (
        "Course documents:\n\n"
        + "\n\n".join(sections)
        + "\n\nWhen your answer uses information from a document, cite it with its number in "
        "square brackets, for example [1]."
    )


def build_prompt(system_prompt: str, message: str, document_context: str = "") -> str:
    parts = [system_prompt]
    if document_context:
        parts.append(document_context)
    parts.append(f"Student: {message}")
    parts.append("Assistant:")
    return "\n\n".join(parts)
