"""
FastAPI Backend for the Kanban Board

Exposes the board operations (getTasks, createTask, updateTask, deleteTask,
reorderTasks) as REST endpoints over TaskService. Board errors are mapped onto
HTTP status codes with the standard error envelope.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import BoardSettings
from .database import TaskDatabase
from .errors import StoreFailureError, TaskBoardError, TaskNotFoundError, TaskValidationError
from .models import (
    CreateTaskInput,
    DeleteTaskResponse,
    HealthResponse,
    ReorderTasksInput,
    Task,
    UpdateTaskInput,
    create_error_response,
)
from .service import TaskService

settings = BoardSettings.from_env()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Single database/service pair per process, created in lifespan
db_instance: Optional[TaskDatabase] = None
service_instance: Optional[TaskService] = None


def configure_app(new_settings: BoardSettings) -> None:
    """Replace settings before startup (used by the CLI to apply its options)."""
    global settings
    settings = new_settings


def get_database() -> TaskDatabase:
    """
    FastAPI dependency to provide database instance.

    Raises:
        HTTPException: If database is not available
    """
    if db_instance is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db_instance


def get_service() -> TaskService:
    """FastAPI dependency to provide the task service."""
    if service_instance is None:
        raise HTTPException(status_code=503, detail="Task service not available")
    return service_instance


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database on startup and close it on shutdown."""
    global db_instance, service_instance

    try:
        db_instance = TaskDatabase(settings.database_path)
        service_instance = TaskService(db_instance, settings)
        logger.info(f"Database initialized: {settings.database_path}")
        logger.info("Kanban Board API starting up...")
        logger.info("  GET    /healthz")
        logger.info("  GET    /api/tasks")
        logger.info("  POST   /api/tasks")
        logger.info("  PATCH  /api/tasks/{task_id}")
        logger.info("  DELETE /api/tasks/{task_id}")
        logger.info("  POST   /api/tasks/reorder")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    yield

    if db_instance:
        db_instance.close()
        logger.info("Database connection closed")
    db_instance = None
    service_instance = None


app = FastAPI(
    title="Kanban Board API",
    description="Task board with per-column ordering and drag-and-drop reordering",
    version="1.0.0",
    lifespan=lifespan,
)

# Browser clients are served from a different origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/healthz", response_model=HealthResponse)
async def health_check(db: TaskDatabase = Depends(get_database)):
    """Service health including database connectivity."""
    database_connected = True
    try:
        db.ping()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_connected = False

    return HealthResponse(
        status="ok" if database_connected else "degraded",
        database_connected=database_connected,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/api/tasks", response_model=List[Task])
async def get_tasks(service: TaskService = Depends(get_service)):
    """All tasks ordered by column then position."""
    tasks = service.list()
    logger.info(f"REST API: Retrieved {len(tasks)} tasks")
    return tasks


@app.get("/api/tasks/{task_id}", response_model=Task)
async def get_task(task_id: int, service: TaskService = Depends(get_service)):
    return service.get(task_id)


@app.post("/api/tasks", response_model=Task, status_code=201)
async def create_task(payload: CreateTaskInput, service: TaskService = Depends(get_service)):
    """Create a task at the end of its column."""
    return service.create(payload.title, payload.description, payload.status)


@app.patch("/api/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: int,
    payload: UpdateTaskInput,
    service: TaskService = Depends(get_service),
):
    """
    Patch a task. Only fields present in the body are written; send
    ``"description": null`` to clear the description.
    """
    return service.update(task_id, payload.to_patch())


@app.delete("/api/tasks/{task_id}", response_model=DeleteTaskResponse)
async def delete_task(task_id: int, service: TaskService = Depends(get_service)):
    """Delete a task; unknown ids report success=false instead of 404."""
    return DeleteTaskResponse(success=service.delete(task_id))


@app.post("/api/tasks/reorder", response_model=List[Task])
async def reorder_tasks(payload: ReorderTasksInput, service: TaskService = Depends(get_service)):
    """Move a task and return the authoritative, freshly ordered board."""
    return service.move(payload.task_id, payload.new_status, payload.new_position)


def _error_json(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(str(exc), code=status_code),
    )


@app.exception_handler(TaskNotFoundError)
async def not_found_handler(request: Request, exc: TaskNotFoundError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return _error_json(404, exc)


@app.exception_handler(TaskValidationError)
async def validation_handler(request: Request, exc: TaskValidationError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return _error_json(422, exc)


@app.exception_handler(StoreFailureError)
async def store_failure_handler(request: Request, exc: StoreFailureError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return _error_json(503, exc)


@app.exception_handler(TaskBoardError)
async def board_error_handler(request: Request, exc: TaskBoardError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return _error_json(400, exc)


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content=create_error_response("Internal server error", code=500),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
