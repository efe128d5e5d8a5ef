from __future__ import annotations


class ChatClient:
    async def complete(self, prompt: str) -> str:
        """
        Return the model's plain-text reply to a fully assembled prompt.

        Raises ChatServiceError with a user-facing explanation when the upstream
        service fails.
        """
        raise NotImplementedError
