"""Course chat assistant backed by the Gemini API."""

from study_os.ai.citations import Citation, resolve_citations
from study_os.ai.errors import explain_llm_error
from study_os.ai.impl import GeminiChatClient
from study_os.ai.interfaces import ChatClient
from study_os.ai.mock import MockChatClient
from study_os.ai.session import ChatSession

__all__ = [
    "ChatClient",
    "ChatSession",
    "Citation",
    "GeminiChatClient",
    "MockChatClient",
    "explain_llm_error",
    "resolve_citations",
]
