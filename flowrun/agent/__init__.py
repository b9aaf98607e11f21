"""Language-model agents used by llm nodes."""

from .gemini import GeminiAgent, GeminiAgentFactory
from .memory import ConversationBuffer

__all__ = [
    "ConversationBuffer",
    "GeminiAgent",
    "GeminiAgentFactory",
]
