from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from study_os.ai.interfaces import ChatClient
from study_os.ai.prompts import build_document_context, build_prompt, build_system_prompt, greeting
from study_os.config.models import AISettings
from study_os.core.utils import utc_now
from study_os.errors import ChatServiceError
from study_os.files.text_cache import FileContext
from study_os.storage.accessor import StudyStore
from study_os.storage.models import ChatMessage

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"\d+")


def next_message_counter(messages: Sequence[ChatMessage]) -> int:
    highest = 1
    for message in messages:
        runs = _DIGITS_RE.findall(message.id)
        if runs:
            highest = max(highest, int(runs[-1]))
    return highest + 1


class ChatSession:
    """
    One persisted conversation: a course's assistant, or the general one when
    course_id is None.
    """

    def __init__(
        self,
        store: StudyStore,
        client: ChatClient,
        settings: AISettings,
        *,
        course_id: Optional[int] = None,
        course_nickname: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._client = client
        self._settings = settings
        self.course_id = course_id
        self.course_nickname = course_nickname
        self._clock = clock
        self._counter: Optional[int] = None

    def history(self) -> List[ChatMessage]:
        messages = self._store.get_chat_messages(self.course_id)
        if messages:
            return messages
        opening = ChatMessage(id="1", text=greeting(self.course_nickname), sender="assistant")
        self._store.save_chat_messages(self.course_id, [opening])
        return [opening]

    def clear(self) -> None:
        self._store.clear_chat_messages(self.course_id)
        self._counter = None

    def _new_id(self, messages: Sequence[ChatMessage]) -> str:
        if self._counter is None:
            self._counter = next_message_counter(messages)
        counter = self._counter
        self._counter += 1
        return f"msg-{int(self._clock().timestamp() * 1000)}-{counter}"

    async def send(
        self,
        text: str,
        *,
        tutor_mode: bool = False,
        contexts: Sequence[FileContext] = (),
    ) -> ChatMessage:
        """
        Append the student's message and the assistant's reply, persisting both.

        Upstream failures become an assistant message starting with "Error:".
        """
        text = text.strip()
        if not text:
            raise ValueError("Message must not be empty.")

        messages = self.history()
        messages.append(ChatMessage(id=self._new_id(messages), text=text, sender="user"))
        self._store.save_chat_messages(self.course_id, messages)

        system_prompt = build_system_prompt(
            persona=self._settings.persona,
            tutor_mode=tutor_mode,
            course_nickname=self.course_nickname if self.course_id is not None else None,
        )
        document_context = ""
        if self.course_id is not None:
            document_context = build_document_context(
                contexts,
                max_files=self._settings.max_context_files,
                max_chars_per_file=self._settings.max_context_chars_per_file,
            )

        try:
            reply_text = await self._client.complete(build_prompt(system_prompt, text, document_context))
        except ChatServiceError as e:
            reply_text = f"Error: {e}"

        reply = ChatMessage(id=self._new_id(messages), text=reply_text, sender="assistant")
        messages.append(reply)
        self._store.save_chat_messages(self.course_id, messages)
        logger.info("Chat reply stored. course_id=%s message_count=%d", self.course_id, len(messages))
        return reply
