"""Node processor: executes a single node given its predecessors' outputs."""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models.core import LogLevel, WorkflowNode
from .exceptions import ConfigurationError, NodeExecutionError
from .interfaces import AgentService
from .logging import get_logger

logger = get_logger(__name__)

START_OUTPUT = "Workflow Started"
DEFAULT_SYSTEM_PROMPT = "You are a helpful workflow assistant."
DEFAULT_USER_PROMPT = "Hello AI"
CONTEXT_HEADER = "CONTEXT FROM PREVIOUS STEPS:\n"
INSTRUCTION_HEADER = "\nUSER INSTRUCTION:\n"

LogSink = Callable[[Optional[str], LogLevel, str], None]


class NodeKind(str, Enum):
    """The closed set of node kinds the engine knows how to run."""
    START = "start"
    DEBUG = "debug"
    LLM = "llm"

    @classmethod
    def from_tag(cls, tag: str) -> Optional["NodeKind"]:
        """Map a node type tag to its kind, or None for unrecognised tags."""
        try:
            return cls(tag)
        except ValueError:
            return None


class NodeContext:
    """Per-run handle given to node handlers for emitting log entries."""

    def __init__(self, execution_id: str, log_sink: LogSink):
        self.execution_id = execution_id
        self._log_sink = log_sink

    def log(self, node_id: Optional[str], level: LogLevel, message: str) -> None:
        self._log_sink(node_id, level, message)


class NodeHandler(ABC):
    """Behaviour of one node kind."""

    @abstractmethod
    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        """Return the node's output or raise NodeExecutionError."""


class StartNodeHandler(NodeHandler):
    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        return START_OUTPUT


class DebugNodeHandler(NodeHandler):
    """Echoes its inputs; lets the engine be exercised without a model."""

    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        return render_debug_output(inputs)


class NoopNodeHandler(NodeHandler):
    """Fallback for unrecognised node types: empty output, no error."""

    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        return ""


class LLMNodeHandler(NodeHandler):
    """Calls the language-model agent service with upstream context."""

    def __init__(self, agent_service: Optional[AgentService]):
        self.agent_service = agent_service

    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        context.log(node.id, LogLevel.INFO, "Initializing Smart Agent...")

        config, parsed = parse_node_configuration(node.configuration)
        if not parsed:
            context.log(node.id, LogLevel.WARN, "Config parse error, using defaults")

        system_prompt = _config_text(config, "system_prompt", DEFAULT_SYSTEM_PROMPT)
        user_prompt = _config_text(config, "prompt", DEFAULT_USER_PROMPT)

        if self.agent_service is None:
            raise NodeExecutionError(
                "agent creation failed: no agent service configured",
                node_id=node.id,
                execution_id=context.execution_id
            )

        try:
            agent = self.agent_service.create_agent(context.execution_id, system_prompt)
        except Exception as e:
            raise NodeExecutionError(
                f"agent creation failed: {e}",
                node_id=node.id,
                execution_id=context.execution_id
            ) from e

        prompt = build_llm_prompt(inputs, user_prompt)

        try:
            response = agent.run(prompt)
        except Exception as e:
            raise NodeExecutionError(
                f"agent execution failed: {e}",
                node_id=node.id,
                execution_id=context.execution_id
            ) from e

        context.log(node.id, LogLevel.INFO, f"Agent Response: {response}")
        return response


def render_debug_output(inputs: Mapping[str, str]) -> str:
    """Deterministic rendering of a node's inputs mapping."""
    return "Debug Echo: " + json.dumps(dict(inputs), sort_keys=True, ensure_ascii=False)


def parse_node_configuration(configuration: Any) -> Tuple[Dict[str, Any], bool]:
    """
    Decode a node configuration payload into a mapping.

    Returns:
        The decoded mapping (empty when absent or unusable) and whether
        decoding succeeded. An absent payload counts as success.
    """
    if configuration is None or configuration == "" or configuration == b"":
        return {}, True

    if isinstance(configuration, dict):
        return dict(configuration), True

    if isinstance(configuration, (str, bytes)):
        try:
            decoded = json.loads(configuration)
        except (TypeError, ValueError):
            return {}, False
        if isinstance(decoded, dict):
            return decoded, True
        return {}, False

    return {}, False


def build_llm_prompt(inputs: Mapping[str, str], user_prompt: str) -> str:
    """
    Assemble the prompt for an LLM node.

    Predecessor outputs are listed under a fixed header, sorted by node ID,
    so the prompt does not depend on the order upstream nodes finished in.
    """
    parts = []
    if inputs:
        parts.append(CONTEXT_HEADER)
        for source_id in sorted(inputs):
            parts.append(f"- {source_id}: {inputs[source_id]}\n")
        parts.append(INSTRUCTION_HEADER)
    parts.append(user_prompt)
    return "".join(parts)


def _config_text(config: Dict[str, Any], key: str, default: str) -> str:
    value = config.get(key)
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


class NodeProcessor:
    """Dispatches nodes to the handler registered for their kind."""

    def __init__(self, agent_service: Optional[AgentService] = None):
        self._handlers: Dict[NodeKind, NodeHandler] = {
            NodeKind.START: StartNodeHandler(),
            NodeKind.DEBUG: DebugNodeHandler(),
            NodeKind.LLM: LLMNodeHandler(agent_service),
        }
        missing = set(NodeKind) - set(self._handlers)
        if missing:
            raise ConfigurationError(
                f"No handler registered for node kinds: {sorted(kind.value for kind in missing)}"
            )
        self._fallback = NoopNodeHandler()

    def handler_for(self, node_type: str) -> NodeHandler:
        kind = NodeKind.from_tag(node_type)
        if kind is None:
            return self._fallback
        return self._handlers[kind]

    def process(self, context: NodeContext, node: WorkflowNode, inputs: Mapping[str, str]) -> str:
        """
        Execute one node.

        Args:
            context: Run handle used for log entries
            node: The node to execute
            inputs: Outputs of the node's computed predecessors, keyed by node ID

        Returns:
            The node's textual output; empty for unrecognised node types

        Raises:
            NodeExecutionError: If the node's behaviour fails
        """
        label = node.label or "Unknown"
        context.log(node.id, LogLevel.INFO, f"Executing Node: {label} (Type: {node.type})")

        handler = self.handler_for(node.type)
        if isinstance(handler, NoopNodeHandler):
            logger.debug(f"Node {node.id} has unrecognised type '{node.type}', skipping")

        try:
            return handler.process(context, node, inputs)
        except NodeExecutionError:
            raise
        except Exception as e:
            raise NodeExecutionError(
                f"Node {node.id} execution failed: {e}",
                node_id=node.id,
                execution_id=context.execution_id
            ) from e
