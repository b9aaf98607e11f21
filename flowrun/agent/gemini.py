"""Gemini agents backed by the google-generativeai SDK."""

from typing import Any, Callable, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..core.exceptions import AgentError
from ..core.interfaces import Agent, AgentService
from ..core.logging import get_logger
from .memory import ConversationBuffer

logger = get_logger(__name__)

PROVIDER = "gemini"
DEFAULT_MODEL = "gemini-1.5-flash"


class GeminiAgent(Agent):
    """
    One conversational agent scoped to a single execution.

    Each call sends the full conversation so far to a model bound to the
    agent's system instruction, then records the prompt and the reply in
    the agent's memory.
    """

    def __init__(
        self,
        factory: "GeminiAgentFactory",
        name: str,
        model: Any,
        memory: Optional[ConversationBuffer] = None
    ):
        self.factory = factory
        self.name = name
        self.model = model
        self.memory = memory if memory is not None else ConversationBuffer()

    def run(self, prompt: str) -> str:
        contents = [
            {"role": turn["role"], "parts": [turn["text"]]}
            for turn in self.memory.turns()
        ]
        contents.append({"role": ConversationBuffer.USER, "parts": [prompt]})

        response = self.factory.generate(self.model, contents)

        self.memory.add_user(prompt)
        self.memory.add_model(response)
        return response


class GeminiAgentFactory(AgentService):
    """
    Creates Gemini agents from one configured SDK client.

    The API key is registered with the SDK once, when the factory is built.
    Every agent gets its own GenerativeModel carrying its system instruction.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        api_endpoint: Optional[str] = None,
        timeout: float = 60.0,
        model_builder: Optional[Callable[..., Any]] = None
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.api_endpoint = api_endpoint
        self.timeout = timeout
        self.model_builder = model_builder or genai.GenerativeModel

        if api_key:
            client_options = {"api_endpoint": api_endpoint} if api_endpoint else None
            genai.configure(api_key=api_key, client_options=client_options)

    @classmethod
    def from_config(cls, config) -> "GeminiAgentFactory":
        return cls(
            api_key=config.llm_api_key,
            model=config.llm_model,
            api_endpoint=config.llm_api_endpoint,
            timeout=config.llm_request_timeout
        )

    def create_agent(self, execution_id: str, system_prompt: str) -> GeminiAgent:
        if not self.api_key:
            raise AgentError("no API key configured for the language model", provider=PROVIDER)

        logger.debug(f"Creating agent for execution {execution_id} using model {self.model}")
        model = self.model_builder(
            model_name=self.model,
            system_instruction=system_prompt or None
        )
        return GeminiAgent(self, f"FlowrunWorker-{execution_id}", model)

    def generate(self, model: Any, contents: List[Dict[str, Any]]) -> str:
        """
        Call generate_content and return the joined text of the first candidate.

        Raises:
            AgentError: On an API or transport failure, a blocked prompt, or an empty reply
        """
        try:
            response = model.generate_content(
                contents,
                request_options={"timeout": self.timeout}
            )
        except google_exceptions.GoogleAPICallError as e:
            raise AgentError(
                f"gemini returned HTTP {e.code}: {e.message}",
                provider=PROVIDER,
                status_code=e.code
            )
        except google_exceptions.GoogleAPIError as e:
            raise AgentError(f"gemini request failed: {e}", provider=PROVIDER)
        except (genai.types.BlockedPromptException, genai.types.StopCandidateException) as e:
            raise AgentError(f"gemini blocked the request: {e}", provider=PROVIDER)

        return _extract_text(response)

    def close(self) -> None:
        # The SDK keeps no per-factory connections
        logger.debug("Gemini agent factory closed")


def _extract_text(response: Any) -> str:
    candidates = list(getattr(response, "candidates", None) or [])
    if not candidates:
        raise AgentError("empty response from gemini", provider=PROVIDER)

    content = getattr(candidates[0], "content", None)
    parts = list(getattr(content, "parts", None) or [])
    if not parts:
        raise AgentError("empty response from gemini", provider=PROVIDER)

    return "".join(getattr(part, "text", "") or "" for part in parts)
