from __future__ import annotations

import math
import re
from typing import Optional

_RETRY_IN_RE = re.compile(r"Please retry in ([\d.]+)s")

RATE_LIMIT_DOCS_URL = "https://ai.google.dev/gemini-api/docs/rate-limits"
USAGE_URL = "https://ai.dev/usage"
API_KEY_URL = "https://aistudio.google.com/apikey"


class LLMRequestError(Exception):
    """Raw upstream failure before it is rewritten for the user."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_model_not_found(self) -> bool:
        message = str(self).lower()
        if "api key" in message:
            return False
        return self.status == 404 or "not found" in message


def retry_after_seconds(message: str) -> Optional[int]:
    match = _RETRY_IN_RE.search(message)
    if not match:
        return None
    try:
        return math.ceil(float(match.group(1)))
    except ValueError:
        return None


def explain_llm_error(message: str) -> str:
    """Rewrite a raw LLM API failure into an explanation the student can act on."""
    if "429" in message or "quota" in message.lower():
        explanation = "You've exceeded your free tier quota for the Gemini API. "
        seconds = retry_after_seconds(message)
        if seconds is not None:
            explanation += f"Please wait {seconds} seconds and try again. "
        explanation += f"For more information, visit {RATE_LIMIT_DOCS_URL} or check your usage at {USAGE_URL}"
        return explanation

    if "API key not valid" in message or "API_KEY_INVALID" in message:
        return (
            "Invalid API key. Please check GOOGLE_GENERATIVE_AI_API_KEY (or STUDY_OS__AI__API_KEY) "
            f"and ensure it's correct. Get a new key from {API_KEY_URL}"
        )
    if "API key not found" in message:
        return "API key not found. Please set GOOGLE_GENERATIVE_AI_API_KEY (or STUDY_OS__AI__API_KEY) in data/.env."

    if "not found" in message or "404" in message:
        return f"Model not available. {message}"

    return f"API Error: {message}"
