from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from study_os.ai.interfaces import ChatClient


@dataclass(slots=True)
class MockChatClient(ChatClient):
    """
    A deterministic chat client for offline runs and tests.

    Returns a fixed reply and records every prompt it was given.
    """

    reply_text: str = "Mock assistant response: this is a fixed reply used for offline testing."
    prompts: List[str] = field(default_factory=list)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply_text
