"""
FlowRunner - FastAPI Application Entry Point.

Runs authored agent workflows against an Ollama server and streams the
execution log.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from flowrunner.config import settings
from flowrunner.api.dependencies import get_executor, get_inference_client
from flowrunner.api.routes import models, runs, websocket, workflows
from flowrunner.engine.errors import (
    GraphDefinitionError,
    InferenceError,
    RunInProgress,
    WorkflowError,
)
from flowrunner.engine.executor import Executor
from flowrunner.inference.base import InferenceClient
from flowrunner.inference.ollama import OllamaClient


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    client = OllamaClient()
    app.state.inference_client = client
    app.state.executor = Executor(client)

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.executor.stop()
    await client.aclose()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## FlowRunner API

Runs authored agent workflows against a local Ollama server.

### Node kinds
- **start**: receives the user input, available as `{START_ID.input}`
- **agentic**: sends its prompts to the model; JSON answers become structured output
- **decision**: takes the first branch whose condition holds, e.g. `{NODE.field} == "value"`
- **memory**: stores a resolved context string
- **end**: terminal node

### Quick Start
1. Check the model server: `GET /models`
2. Check a workflow: `POST /workflows/inspect`
3. Run it: `POST /runs`, or stream it over `WS /ws/run`
4. Stop the current run: `POST /runs/stop`

### Demo Workflow
A sentiment triage workflow is available at `GET /workflows/demo`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(runs.router)
app.include_router(models.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Runs authored agent workflows against an Ollama server",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflows": "/workflows",
            "runs": "/runs",
            "models": "/models",
            "websocket_run": "/ws/run",
        },
        "demo_workflow": "/workflows/demo",
    }


@app.get("/health", tags=["Root"])
async def health(
    executor: Executor = Depends(get_executor),
    client: InferenceClient = Depends(get_inference_client),
):
    """Health check endpoint."""
    current = executor.current_execution
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "inference_connected": await client.test_connection(),
        "run_in_progress": executor.is_running,
        "current_execution": current.id if current else None,
    }


# ============================================================
# Error Handlers
# ============================================================

def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc), "status_code": status_code},
    )


@app.exception_handler(RunInProgress)
async def run_in_progress_handler(request: Request, exc: RunInProgress):
    return _error(409, "Run In Progress", exc)


@app.exception_handler(GraphDefinitionError)
async def graph_definition_handler(request: Request, exc: GraphDefinitionError):
    return _error(400, "Invalid Workflow", exc)


@app.exception_handler(InferenceError)
async def inference_error_handler(request: Request, exc: InferenceError):
    logger.error(f"Inference service error: {exc}")
    return _error(502, "Inference Service Error", exc)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    return _error(400, "Workflow Error", exc)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
