"""Application factory and entry point for the Flowrun API server."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .agent import GeminiAgentFactory
from .api.endpoints import router, init_dependencies
from .config import AppConfig, get_config, validate_config
from .core.coordinator import RunCoordinator
from .core.interfaces import AgentService, ExecutionStore, WorkflowStore
from .core.logging import setup_logging
from .storage.database import create_tables, get_database_engine, get_session_factory
from .storage.repositories import SqlExecutionStore, SqlWorkflowStore


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.execution_store: Optional[ExecutionStore] = None
        self.workflow_store: Optional[WorkflowStore] = None
        self.agent_service: Optional[AgentService] = None
        self.coordinator: Optional[RunCoordinator] = None
        self.logger = None


# Global application state
app_state = ApplicationState()


def initialize_storage(config: AppConfig, logger):
    """Create tables and build the SQL-backed stores."""
    try:
        engine = get_database_engine(
            config.database_url,
            echo=config.database_echo,
            connect_args=config.get_database_connect_args()
        )
        create_tables(engine)
        logger.info("Database tables created")

        session_factory = get_session_factory(engine)
        return SqlExecutionStore(session_factory), SqlWorkflowStore(session_factory)

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


def graceful_shutdown(coordinator: Optional[RunCoordinator],
                      agent_service: Optional[AgentService], logger) -> None:
    """Stop the coordinator, then close the agent client."""
    logger.info("Shutting down Flowrun")

    if coordinator is not None:
        try:
            coordinator.shutdown(wait=True, cancel_running=True)
            logger.info("Run coordinator shutdown completed")
        except Exception as e:
            logger.error(f"Error during run coordinator shutdown: {e}")

    if agent_service is not None:
        try:
            agent_service.close()
            logger.info("Agent service closed")
        except Exception as e:
            logger.error(f"Error closing agent service: {e}")


def create_lifespan_handler(
    config: AppConfig,
    execution_store: Optional[ExecutionStore] = None,
    workflow_store: Optional[WorkflowStore] = None,
    agent_service: Optional[AgentService] = None
):
    """Create the application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger = setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        executions, workflows = execution_store, workflow_store
        if executions is None or workflows is None:
            sql_executions, sql_workflows = initialize_storage(config, logger)
            executions = executions or sql_executions
            workflows = workflows or sql_workflows

        agents = agent_service or GeminiAgentFactory.from_config(config)
        coordinator = RunCoordinator.from_config(config, executions, agents)

        app_state.config = config
        app_state.execution_store = executions
        app_state.workflow_store = workflows
        app_state.agent_service = agents
        app_state.coordinator = coordinator
        app_state.logger = logger

        init_dependencies(
            coordinator=coordinator,
            execution_store=executions,
            workflow_store=workflows
        )
        logger.info("Application startup completed successfully")

        try:
            yield
        finally:
            # Shutdown
            await asyncio.to_thread(graceful_shutdown, coordinator, agents, logger)
            init_dependencies(None, None, None)

    return lifespan


def create_app(
    config: Optional[AppConfig] = None,
    execution_store: Optional[ExecutionStore] = None,
    workflow_store: Optional[WorkflowStore] = None,
    agent_service: Optional[AgentService] = None
) -> FastAPI:
    """Create and configure the FastAPI application instance."""

    # Use provided config or load from environment
    if config is None:
        config = get_config()

    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Runs workflow graphs of start, debug and llm nodes in dependency order",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config, execution_store, workflow_store, agent_service)
    )

    app.include_router(router)
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint with worker pool usage."""
        coordinator = app_state.coordinator
        return {
            "status": "healthy",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version,
            "executions": coordinator.get_queue_status() if coordinator else None
        }


if __name__ == "__main__":
    import uvicorn
    from .config import load_config

    app_config = load_config()
    uvicorn.run(create_app(app_config), **app_config.get_uvicorn_config())
