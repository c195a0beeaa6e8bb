"""
FastAPI application for the issueflow workflow engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .core import WorkflowCore
from .database import create_db_engine
from .errors import ConflictError, InvalidWorkflowGraph, NotFoundError, WorkflowEngineError
from .ids import new_id
from .routers import boards, catalog, drafts, issues, workflows

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _error(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or []}},
    )


def create_app(core: Optional[WorkflowCore] = None) -> FastAPI:
    """
    Build the app. Tests pass a ready WorkflowCore; otherwise one is built
    from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "core", None) is None:
            configure_logging()
            engine = create_db_engine(settings)
            app.state.core = WorkflowCore(engine, settings)
            app.state.core.create_schema()
            logger.info("issueflow started (env=%s)", settings.app_env)
        yield

    app = FastAPI(
        title="Issueflow Workflow Engine API",
        version="0.1.0",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.core = core

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(catalog.router, prefix="/api/v0", tags=["catalog"])
    app.include_router(workflows.router, prefix="/api/v0", tags=["workflows"])
    app.include_router(drafts.router, prefix="/api/v0", tags=["drafts"])
    app.include_router(issues.router, prefix="/api/v0", tags=["issues"])
    app.include_router(boards.router, prefix="/api/v0", tags=["boards"])

    @app.get("/api/v0/healthz")
    def healthz():
        return {"status": "ok"}

    @app.middleware("http")
    async def add_request_id_header(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or new_id("req_")
        resp: Response = await call_next(request)
        resp.headers.setdefault("X-Request-Id", request_id)
        return resp

    # ========================================================================
    # Error envelope: {"error": {"code", "message", "details"}}
    # ========================================================================

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc.code, str(exc), [{"entity": exc.entity, "id": exc.entity_id}])

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc)
        return _error(409, exc.code, str(exc))

    @app.exception_handler(InvalidWorkflowGraph)
    async def invalid_graph_handler(request: Request, exc: InvalidWorkflowGraph):
        return _error(422, exc.code, str(exc), [e.model_dump(mode="json") for e in exc.errors])

    @app.exception_handler(WorkflowEngineError)
    async def engine_error_handler(request: Request, exc: WorkflowEngineError):
        return _error(400, exc.code, str(exc))

    @app.exception_handler(Exception)
    async def default_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "INTERNAL", "Unhandled error", [{"path": request.url.path, "msg": str(exc)}])

    return app


app = create_app()
