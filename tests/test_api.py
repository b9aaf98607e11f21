"""Tests for the REST API."""

import logging
import threading
import time

import pytest
from fastapi.testclient import TestClient

from flowrun.config import get_testing_config
from flowrun.core.interfaces import Agent, AgentService
from flowrun.main import create_app, graceful_shutdown
from flowrun.storage.memory import InMemoryExecutionStore, InMemoryWorkflowStore

from conftest import FakeAgentService, make_graph

TERMINAL = {"COMPLETED", "FAILED", "CANCELLED"}


class GateAgentService(AgentService):
    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def create_agent(self, execution_id, system_prompt):
        service = self

        class _Agent(Agent):
            def run(self, prompt):
                service.started.set()
                service.release.wait(timeout=10)
                return "done"

        return _Agent()


def wait_for_terminal(client, execution_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/v1/executions/{execution_id}").json()
        if body["data"]["execution"]["status"] in TERMINAL:
            return body["data"]
        time.sleep(0.02)
    raise AssertionError(f"execution {execution_id} did not finish")


@pytest.fixture
def stores():
    workflows = InMemoryWorkflowStore([
        make_graph([("s", "start"), ("d", "debug"), ("l", "llm")], [("s", "d"), ("d", "l")]),
        make_graph([("a", "start"), ("a2", "debug")], [("a2", "a2")], graph_id="broken"),
    ])
    return InMemoryExecutionStore(), workflows


@pytest.fixture
def client(stores):
    """Create a test client with in-memory stores and a fake agent."""
    executions, workflows = stores
    app = create_app(get_testing_config(), executions, workflows, FakeAgentService(response="model says hi"))
    with TestClient(app) as test_client:
        yield test_client


class TestExecuteEndpoint:
    """Test cases for triggering executions."""

    def test_execute_returns_accepted(self, client):
        response = client.post("/api/v1/workflows/wf-1/execute", json={"input": {"topic": "cats"}})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["message"] == "Workflow execution started"

        detail = wait_for_terminal(client, body["execution_id"])
        assert detail["execution"]["status"] == "COMPLETED"
        assert detail["execution"]["input"] == {"topic": "cats"}
        messages = [entry["message"] for entry in detail["logs"]]
        assert "Agent Response: model says hi" in messages

    def test_execute_without_body(self, client):
        response = client.post("/api/v1/workflows/wf-1/execute")
        assert response.status_code == 202

    def test_execute_unknown_workflow(self, client):
        response = client.post("/api/v1/workflows/missing/execute")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "WorkflowNotFoundError"

    def test_invalid_graph_is_accepted_then_fails(self, client):
        execution_id = client.post("/api/v1/workflows/broken/execute").json()["execution_id"]

        detail = wait_for_terminal(client, execution_id)

        assert detail["execution"]["status"] == "FAILED"
        assert [entry["message"] for entry in detail["logs"]] == [
            "Graph validation failed: self-loop detected on node a2"
        ]

    def test_queue_full_returns_503(self, stores):
        executions, workflows = stores
        gate = GateAgentService()
        config = get_testing_config().model_copy(update={
            "max_concurrent_executions": 1,
            "execution_queue_size": 0
        })
        app = create_app(config, executions, workflows, gate)

        with TestClient(app) as client:
            try:
                first = client.post("/api/v1/workflows/wf-1/execute")
                assert first.status_code == 202
                assert gate.started.wait(timeout=5)

                second = client.post("/api/v1/workflows/wf-1/execute")
                assert second.status_code == 503
                assert second.json()["detail"]["error"] == "ExecutionQueueFullError"

                page = client.get("/api/v1/executions", params={"workflow_id": "wf-1"}).json()
                statuses = sorted(execution["status"] for execution in page["data"])
                assert statuses == ["CANCELLED", "RUNNING"]
            finally:
                gate.release.set()


class TestExecutionQueries:
    """Test cases for reading executions."""

    def test_get_unknown_execution(self, client):
        response = client.get("/api/v1/executions/nope")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "ExecutionNotFoundError"

    def test_list_with_paging_meta(self, client):
        ids = [client.post("/api/v1/workflows/wf-1/execute").json()["execution_id"] for _ in range(3)]
        for execution_id in ids:
            wait_for_terminal(client, execution_id)

        body = client.get("/api/v1/executions", params={"workflow_id": "wf-1", "limit": 2}).json()

        assert body["meta"] == {"total": 3, "limit": 2, "offset": 0}
        assert len(body["data"]) == 2

    def test_list_requires_workflow_id(self, client):
        assert client.get("/api/v1/executions").status_code == 422


class TestCancelEndpoint:
    """Test cases for cancellation."""

    def test_cancel_finished_execution_conflicts(self, client):
        execution_id = client.post("/api/v1/workflows/wf-1/execute").json()["execution_id"]
        wait_for_terminal(client, execution_id)

        response = client.post(f"/api/v1/executions/{execution_id}/cancel")

        assert response.status_code == 409

    def test_cancel_unknown_execution(self, client):
        assert client.post("/api/v1/executions/nope/cancel").status_code == 404

    def test_cancel_running_execution(self, stores):
        executions, workflows = stores
        gate = GateAgentService()
        app = create_app(get_testing_config(), executions, workflows, gate)

        with TestClient(app) as client:
            try:
                execution_id = client.post("/api/v1/workflows/wf-1/execute").json()["execution_id"]
                assert gate.started.wait(timeout=5)

                response = client.post(f"/api/v1/executions/{execution_id}/cancel")
                assert response.status_code == 202
            finally:
                gate.release.set()

            detail = wait_for_terminal(client, execution_id)

        assert detail["execution"]["status"] == "FAILED"
        assert "Execution cancelled or timed out: cancelled by user" in [
            entry["message"] for entry in detail["logs"]
        ]


class TestHealth:
    """Test cases for health endpoints."""

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["executions"]["capacity"] == 6

    def test_root(self, client):
        assert "running" in client.get("/").json()["message"]


class TestShutdown:
    """Test cases for application shutdown."""

    def test_shutdown_stops_running_executions(self):
        class RecordingCoordinator:
            def __init__(self):
                self.calls = []

            def shutdown(self, **kwargs):
                self.calls.append(kwargs)

        coordinator = RecordingCoordinator()
        service = FakeAgentService()

        graceful_shutdown(coordinator, service, logging.getLogger("flowrun.test"))

        assert coordinator.calls == [{"wait": True, "cancel_running": True}]
        assert service.closed
