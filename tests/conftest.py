"""Pytest configuration and fixtures."""

import os
import tempfile
import threading
from typing import Dict, List, Optional, Tuple

import pytest

from flowrun.core.interfaces import Agent, AgentService
from flowrun.models.core import (
    Execution,
    ExecutionStatusEnum,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
)
from flowrun.storage.database import build_engine, create_tables, get_session_factory
from flowrun.storage.memory import InMemoryExecutionStore, InMemoryWorkflowStore


class FakeAgent(Agent):
    def __init__(self, service: "FakeAgentService", system_prompt: str):
        self.service = service
        self.system_prompt = system_prompt

    def run(self, prompt: str) -> str:
        with self.service.lock:
            self.service.prompts.append(prompt)
        if self.service.run_error is not None:
            raise self.service.run_error
        return self.service.response


class FakeAgentService(AgentService):
    """Records every prompt sent to it and answers with a fixed response."""

    def __init__(self, response: str = "ok from model",
                 create_error: Optional[Exception] = None,
                 run_error: Optional[Exception] = None):
        self.response = response
        self.create_error = create_error
        self.run_error = run_error
        self.lock = threading.Lock()
        self.prompts: List[str] = []
        self.created: List[Tuple[str, str]] = []
        self.closed = False

    def create_agent(self, execution_id: str, system_prompt: str) -> Agent:
        if self.create_error is not None:
            raise self.create_error
        with self.lock:
            self.created.append((execution_id, system_prompt))
        return FakeAgent(self, system_prompt)

    def close(self) -> None:
        self.closed = True


def make_graph(
    nodes: List[Tuple[str, str]],
    edges: List[Tuple[str, str]] = (),
    graph_id: str = "wf-1",
    configurations: Optional[Dict[str, object]] = None
) -> WorkflowGraph:
    """Build a graph from (id, type) pairs and (source, target) pairs."""
    configurations = configurations or {}
    return WorkflowGraph(
        id=graph_id,
        name=f"Graph {graph_id}",
        nodes=[
            WorkflowNode(id=node_id, type=node_type, label=node_id.upper(),
                         configuration=configurations.get(node_id))
            for node_id, node_type in nodes
        ],
        edges=[
            WorkflowEdge(id=f"e{index}", source=source, target=target)
            for index, (source, target) in enumerate(edges)
        ]
    )


def new_execution(store, workflow_id: str = "wf-1", execution_id: str = "exec-1") -> Execution:
    return store.create(Execution(
        id=execution_id,
        workflow_id=workflow_id,
        status=ExecutionStatusEnum.PENDING
    ))


@pytest.fixture
def execution_store():
    """Create an in-memory execution store."""
    return InMemoryExecutionStore()


@pytest.fixture
def workflow_store():
    """Create an in-memory workflow store."""
    return InMemoryWorkflowStore()


@pytest.fixture
def agent_service():
    """Create a fake agent service."""
    return FakeAgentService()


@pytest.fixture
def sql_session_factory():
    """Create a temporary database file with all tables."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    engine = build_engine(f"sqlite:///{db_path}")
    create_tables(engine)

    yield get_session_factory(engine)

    # Cleanup
    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass
