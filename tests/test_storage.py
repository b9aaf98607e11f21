"""Tests for the SQL and in-memory stores."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from flowrun.core.exceptions import ExecutionNotFoundError, StorageError, WorkflowNotFoundError
from flowrun.models.core import Execution, ExecutionStatusEnum, LogLevel
from flowrun.storage.lifecycle import status_update_fields
from flowrun.storage.memory import InMemoryExecutionStore
from flowrun.storage.models import WorkflowEdgeModel, WorkflowModel, WorkflowNodeModel
from flowrun.storage.repositories import SqlExecutionStore, SqlWorkflowStore

from conftest import make_graph


def seed_workflow(session_factory, workflow_id="wf-1"):
    db = session_factory()
    try:
        workflow = WorkflowModel(id=workflow_id, name="Seeded")
        workflow.nodes = [
            WorkflowNodeModel(node_id="b", node_type="debug", label="B", position=1),
            WorkflowNodeModel(node_id="a", node_type="start", label="A", position=0),
            WorkflowNodeModel(node_id="c", node_type="llm", configuration={"prompt": "hi"}, position=2),
        ]
        workflow.edges = [
            WorkflowEdgeModel(edge_id="e1", source_node_id="a", target_node_id="b", position=0),
            WorkflowEdgeModel(edge_id="e2", source_node_id="b", target_node_id="c",
                              source_handle="out", position=1),
        ]
        db.add(workflow)
        db.commit()
    finally:
        db.close()


@pytest.fixture
def sql_store(sql_session_factory):
    seed_workflow(sql_session_factory)
    return SqlExecutionStore(sql_session_factory)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_session_factory):
    """Run the same contract against both execution stores."""
    if request.param == "memory":
        return InMemoryExecutionStore()
    seed_workflow(sql_session_factory)
    return SqlExecutionStore(sql_session_factory)


def pending(execution_id="exec-1", created_at=None):
    execution = Execution(id=execution_id, workflow_id="wf-1")
    if created_at is not None:
        execution.created_at = created_at
    return execution


class TestStatusLifecycle:
    """Test cases for status transition bookkeeping."""

    def test_running_stamps_start(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        fields = status_update_fields("x", ExecutionStatusEnum.PENDING, ExecutionStatusEnum.RUNNING, None, now=now)
        assert fields == {"status": ExecutionStatusEnum.RUNNING, "started_at": now}

    def test_terminal_stamps_finish_and_duration(self):
        started = datetime(2024, 1, 1, 12, 0, 0)
        now = started + timedelta(seconds=90)
        fields = status_update_fields("x", ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.FAILED, started, now=now)
        assert fields["finished_at"] == now
        assert fields["duration"] == 90.0

    def test_cancel_before_start_has_no_duration(self):
        fields = status_update_fields("x", ExecutionStatusEnum.PENDING, ExecutionStatusEnum.CANCELLED, None)
        assert "duration" not in fields
        assert "finished_at" in fields

    @pytest.mark.parametrize("current,target", [
        (ExecutionStatusEnum.COMPLETED, ExecutionStatusEnum.FAILED),
        (ExecutionStatusEnum.FAILED, ExecutionStatusEnum.RUNNING),
        (ExecutionStatusEnum.PENDING, ExecutionStatusEnum.COMPLETED),
        (ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.RUNNING),
    ])
    def test_invalid_transitions(self, current, target):
        with pytest.raises(StorageError) as exc_info:
            status_update_fields("x", current, target, None)
        assert not exc_info.value.recoverable


class TestExecutionStores:
    """Contract shared by the SQL and in-memory execution stores."""

    def test_create_and_get(self, any_store):
        any_store.create(pending())

        execution = any_store.get("exec-1")
        assert execution.status == ExecutionStatusEnum.PENDING
        assert execution.started_at is None

    def test_get_missing(self, any_store):
        with pytest.raises(ExecutionNotFoundError):
            any_store.get("missing")

    def test_full_lifecycle_stamps(self, any_store):
        any_store.create(pending())

        any_store.update_status("exec-1", ExecutionStatusEnum.RUNNING)
        running = any_store.get("exec-1")
        any_store.update_status("exec-1", ExecutionStatusEnum.COMPLETED)
        done = any_store.get("exec-1")

        assert running.status == ExecutionStatusEnum.RUNNING
        assert running.started_at is not None
        assert done.status == ExecutionStatusEnum.COMPLETED
        assert done.finished_at >= done.started_at
        assert done.duration is not None and done.duration >= 0

    def test_terminal_status_is_absorbing(self, any_store):
        any_store.create(pending())
        any_store.update_status("exec-1", ExecutionStatusEnum.RUNNING)
        any_store.update_status("exec-1", ExecutionStatusEnum.FAILED)

        with pytest.raises(StorageError):
            any_store.update_status("exec-1", ExecutionStatusEnum.COMPLETED)

        assert any_store.get("exec-1").status == ExecutionStatusEnum.FAILED

    def test_update_missing_execution(self, any_store):
        with pytest.raises(ExecutionNotFoundError):
            any_store.update_status("missing", ExecutionStatusEnum.RUNNING)

    def test_logs_in_creation_order(self, any_store):
        any_store.create(pending())
        any_store.append_log("exec-1", "a", LogLevel.INFO, "first")
        any_store.append_log("exec-1", "SYSTEM", LogLevel.ERROR, "second")
        any_store.append_log("exec-1", "b", LogLevel.WARN, "third")

        logs = any_store.get_logs("exec-1")

        assert [entry.message for entry in logs] == ["first", "second", "third"]
        assert [entry.level for entry in logs] == [LogLevel.INFO, LogLevel.ERROR, LogLevel.WARN]
        assert logs[1].node_id == "SYSTEM"

    def test_list_newest_first_with_paging(self, any_store):
        base = datetime(2024, 1, 1)
        for index in range(5):
            any_store.create(pending(f"exec-{index}", created_at=base + timedelta(minutes=index)))

        page, total = any_store.list_for_workflow("wf-1", limit=2, offset=1)

        assert total == 5
        assert [execution.id for execution in page] == ["exec-3", "exec-2"]

    def test_list_other_workflow_is_empty(self, any_store):
        any_store.create(pending())

        page, total = any_store.list_for_workflow("other")

        assert page == [] and total == 0


class TestSqlWorkflowStore:
    """Test cases for SqlWorkflowStore."""

    def test_graph_snapshot_preserves_positions(self, sql_session_factory):
        seed_workflow(sql_session_factory)

        graph = SqlWorkflowStore(sql_session_factory).get_graph("wf-1")

        assert graph.name == "Seeded"
        assert graph.node_ids() == ["a", "b", "c"]
        assert graph.nodes[2].configuration == {"prompt": "hi"}
        assert [(edge.source, edge.target) for edge in graph.edges] == [("a", "b"), ("b", "c")]
        assert graph.edges[1].source_handle == "out"

    def test_missing_workflow(self, sql_session_factory):
        with pytest.raises(WorkflowNotFoundError):
            SqlWorkflowStore(sql_session_factory).get_graph("nope")

    def test_opaque_configuration_passes_through(self, sql_session_factory):
        db = sql_session_factory()
        try:
            workflow = WorkflowModel(id="wf-list", name="List config")
            workflow.nodes = [
                WorkflowNodeModel(node_id="d", node_type="debug", configuration=["x"], position=0),
                WorkflowNodeModel(node_id="l", node_type="llm", configuration=7, position=1),
            ]
            db.add(workflow)
            db.commit()
        finally:
            db.close()

        graph = SqlWorkflowStore(sql_session_factory).get_graph("wf-list")

        assert [node.configuration for node in graph.nodes] == [["x"], 7]


class TestInMemoryWorkflowStore:
    """Test cases for InMemoryWorkflowStore."""

    def test_save_and_get(self, workflow_store):
        graph = make_graph([("a", "start")])
        workflow_store.save(graph)

        assert workflow_store.get_graph("wf-1") == graph

    def test_missing_workflow(self, workflow_store):
        with pytest.raises(WorkflowNotFoundError):
            workflow_store.get_graph("nope")


class LockedSession:
    """Session whose commits always fail as if the database were locked."""

    def add(self, instance):
        pass

    def commit(self):
        raise OperationalError("INSERT INTO execution_logs", {}, Exception("database is locked"))

    def rollback(self):
        pass

    def close(self):
        pass


class TestLogWrites:
    """Test cases for SqlExecutionStore.append_log failures."""

    def test_failed_log_write_is_not_retried(self):
        opened = []

        def session_factory():
            opened.append(1)
            return LockedSession()

        store = SqlExecutionStore(session_factory)

        with pytest.raises(StorageError) as exc_info:
            store.append_log("exec-1", "a", LogLevel.INFO, "hello")

        assert len(opened) == 1
        assert exc_info.value.context["operation"] == "append_log"
