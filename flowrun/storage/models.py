"""SQLAlchemy database models for the execution engine."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base


class WorkflowModel(Base):
    """Database model for workflows."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    nodes = relationship(
        "WorkflowNodeModel", back_populates="workflow",
        order_by="WorkflowNodeModel.position", cascade="all, delete-orphan"
    )
    edges = relationship(
        "WorkflowEdgeModel", back_populates="workflow",
        order_by="WorkflowEdgeModel.position", cascade="all, delete-orphan"
    )
    executions = relationship("ExecutionModel", back_populates="workflow")


class WorkflowNodeModel(Base):
    """Database model for workflow nodes."""
    __tablename__ = "workflow_nodes"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    node_id = Column(String, nullable=False)
    node_type = Column(String, nullable=False)
    label = Column(String)
    configuration = Column(JSON)  # opaque payload, passed through untouched
    position = Column(Integer, nullable=False, default=0)  # stable scan order for scheduling

    workflow = relationship("WorkflowModel", back_populates="nodes")


class WorkflowEdgeModel(Base):
    """Database model for workflow edges."""
    __tablename__ = "workflow_edges"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    edge_id = Column(String, nullable=False)
    source_node_id = Column(String, nullable=False)
    target_node_id = Column(String, nullable=False)
    source_handle = Column(String)
    target_handle = Column(String)
    position = Column(Integer, nullable=False, default=0)

    workflow = relationship("WorkflowModel", back_populates="edges")


class ExecutionModel(Base):
    """Database model for workflow executions."""
    __tablename__ = "executions"

    id = Column(String, primary_key=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    status = Column(String, nullable=False)  # PENDING, RUNNING, COMPLETED, FAILED, CANCELLED
    input = Column(JSON)
    output = Column(JSON)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    duration = Column(Float)  # seconds
    created_at = Column(DateTime, default=datetime.utcnow)

    workflow = relationship("WorkflowModel", back_populates="executions")
    logs = relationship(
        "ExecutionLogModel", back_populates="execution",
        order_by="ExecutionLogModel.id",
        cascade="all, delete-orphan"
    )


class ExecutionLogModel(Base):
    """Database model for execution log entries."""
    __tablename__ = "execution_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, ForeignKey("executions.id"), nullable=False, index=True)
    node_id = Column(String)
    level = Column(String, nullable=False, default="INFO")
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)

    execution = relationship("ExecutionModel", back_populates="logs")
