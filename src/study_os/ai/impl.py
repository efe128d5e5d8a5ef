import asyncio
import logging
from typing import Any, Optional

import aiohttp

from study_os.ai.errors import LLMRequestError, explain_llm_error
from study_os.ai.interfaces import ChatClient
from study_os.config.models import AISettings
from study_os.errors import ChatServiceError

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "AIza"
API_KEY_MIN_LENGTH = 35


def validate_api_key(api_key: str) -> None:
    if not api_key:
        raise ChatServiceError("Google AI API key is not configured.")
    if not api_key.startswith(API_KEY_PREFIX) or len(api_key) < API_KEY_MIN_LENGTH:
        raise ChatServiceError(
            'API key format appears invalid. Google AI API keys should start with "AIza" '
            "and be approximately 39 characters long."
        )


def _reply_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMRequestError("Model returned no candidates.") from e
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    return text.strip()


def _error_message(status: int, reason: Optional[str], data: Any, body: str) -> str:
    detail = body
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        err = data["error"]
        detail = " ".join(str(p) for p in (err.get("status"), err.get("message")) if p)
    return f"[{status} {reason or ''}] {detail}".replace("  ", " ").strip()


class GeminiChatClient(ChatClient):
    """
    Chat completions over the Gemini REST API.

    Models are tried in configured order; the next model is tried only when the
    current one is not found. Server errors and network failures are retried up
    to max_retries times per model.
    """

    def __init__(self, settings: AISettings, session: aiohttp.ClientSession) -> None:
        self._settings = settings
        self._session = session

    async def complete(self, prompt: str) -> str:
        validate_api_key(self._settings.api_key)
        try:
            return await self._complete_with_fallback(prompt)
        except LLMRequestError as e:
            logger.warning("Chat completion failed. status=%s error=%s", e.status, e)
            raise ChatServiceError(explain_llm_error(str(e))) from e

    async def _complete_with_fallback(self, prompt: str) -> str:
        models = list(self._settings.models)
        for model in models:
            try:
                text = await self._generate(model, prompt)
            except LLMRequestError as e:
                if e.is_model_not_found:
                    logger.info("Model not found, trying the next one. model=%s", model)
                    continue
                raise
            logger.debug("Chat completion succeeded. model=%s", model)
            return text
        raise LLMRequestError(
            "No available models found. Tried: "
            + ", ".join(models)
            + ". Please check Google AI Studio for the exact model identifier.",
        )

    async def _generate(self, model: str, prompt: str) -> str:
        url = f"{self._settings.base_url.rstrip('/')}/models/{model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        timeout = aiohttp.ClientTimeout(total=self._settings.timeout_seconds)

        last_error: Optional[LLMRequestError] = None
        for attempt in range(self._settings.max_retries + 1):
            try:
                async with self._session.post(
                    url,
                    params={"key": self._settings.api_key},
                    json=payload,
                    timeout=timeout,
                ) as resp:
                    body = await resp.text()
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None

                    if resp.status == 200:
                        return _reply_text(data)

                    error = LLMRequestError(_error_message(resp.status, resp.reason, data, body), status=resp.status)
                    if 500 <= resp.status < 600:
                        logger.warning(
                            "Chat request failed and will be retried. model=%s status=%s attempt=%s",
                            model,
                            resp.status,
                            attempt + 1,
                        )
                        last_error = error
                    else:
                        raise error
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(
                    "Chat request encountered a network error and will be retried. model=%s error=%s attempt=%s",
                    model,
                    str(e) or type(e).__name__,
                    attempt + 1,
                )
                last_error = LLMRequestError(f"Network error: {str(e) or type(e).__name__}")

            if attempt < self._settings.max_retries:
                await asyncio.sleep(2**attempt)

        if last_error:
            raise last_error
        raise LLMRequestError(f"Chat request failed without a response. model={model}")
