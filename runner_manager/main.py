"""
Runner manager FastAPI application.

Provides a REST API for registering and unregistering GitLab runners,
listing them with their live status, restarting them and reading their
logs. Served by uvicorn through the `create_app` factory.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from . import __version__
from .config import Config, config
from .errors import ExternalToolError, RunnerIOError, RunnerManagerError, StartError, StopError, ValidationError
from .models import validate_runner_name
from .process import RunnerProcessManager
from .registration import Registrar
from .runner_config import RunnerConfigStore

logger = logging.getLogger(__name__)


def setup_logging(cfg: Config) -> list[logging.Handler]:
    """
    Log to a rotating file in the data dir and to the console.

    Returns the handlers added to the root logger so the caller can remove
    them again with `teardown_logging`.
    """
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Console handler
    console_handler = logging.StreamHandler()
    handlers: list[logging.Handler] = [console_handler]

    # Rotating file handler
    file_error = None
    try:
        Path(cfg.manager_log).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            cfg.manager_log,
            maxBytes=cfg.log_max_bytes,
            backupCount=cfg.log_backup_count,
        )
        handlers.append(file_handler)
    except OSError as e:
        file_error = e

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in handlers:
        handler.setFormatter(log_formatter)
        root.addHandler(handler)

    if file_error is not None:
        logger.warning(f"Failed to open log file {cfg.manager_log}: {file_error}")

    return handlers


def teardown_logging(handlers: list[logging.Handler]):
    root = logging.getLogger()
    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    cfg: Config = app.state.config
    handlers = setup_logging(cfg)
    cfg.ensure_dirs()

    logger.info("GitLab CI Runner Manager")
    logger.info(f"Version: {cfg.version}")
    logger.info(f"Git Commit: {cfg.git_commit} ({cfg.git_branch})")
    logger.info(f"Build Time: {cfg.build_time}")
    logger.info(f"Config Path: {cfg.config_path}")
    logger.info("========================================")

    yield

    # Runners are detached and keep running; their PID files let the next
    # instance find them again
    logger.info("Shutting down runner manager...")
    teardown_logging(handlers)


# Request models. Fields default to empty so missing values get a 400 with a
# readable message instead of a schema error.
class RegisterRequest(BaseModel):
    name: str = Field("", description="Runner name")
    url: str = Field("", description="GitLab instance URL")
    token: str = Field("", description="Runner authentication token")


class DeleteRequest(BaseModel):
    name: str = Field("", description="Runner name, used to stop its process")
    token: str = Field("", description="Runner authentication token")


class RestartRequest(BaseModel):
    name: str = Field("", description="Runner name")


router = APIRouter(prefix="/api")


@router.post("/runners/register")
async def register_runner(data: RegisterRequest, request: Request):
    """Register a runner with gitlab-runner."""
    if not data.name or not data.url or not data.token:
        raise ValidationError("Name, URL and Token are required")
    validate_runner_name(data.name)

    registrar: Registrar = request.app.state.registrar
    try:
        output = await asyncio.to_thread(registrar.register, data.name, data.url, data.token)
    except ExternalToolError as e:
        return JSONResponse(
            status_code=e.http_status,
            content={
                "success": False,
                "message": f"Failed to register runner, please check the token and url: {e.output}",
                "output": e.output,
            },
        )

    return {"success": True, "message": "Runner registered successfully", "output": output}


@router.get("/runners")
async def list_runners(request: Request):
    """List configured runners with their status."""
    store: RunnerConfigStore = request.app.state.store
    manager: RunnerProcessManager = request.app.state.manager

    try:
        runners = await asyncio.to_thread(store.list_runners, manager.probe)
    except RunnerIOError as e:
        logger.error(f"Error getting runners: {e.message}")
        raise RunnerIOError(f"Failed to get runners: {e.message}")

    return [runner.to_dict() for runner in runners]


@router.post("/runners/delete")
async def delete_runner(data: DeleteRequest, request: Request):
    """Stop a runner (best effort) and unregister it."""
    if not data.token:
        raise ValidationError("Token is required")

    manager: RunnerProcessManager = request.app.state.manager
    registrar: Registrar = request.app.state.registrar

    if data.name:
        try:
            await asyncio.to_thread(manager.stop, data.name)
        except (StopError, ValidationError) as e:
            logger.warning(f"Failed to stop runner {data.name}: {e.message}")

    try:
        output = await asyncio.to_thread(registrar.unregister, data.token)
    except ExternalToolError as e:
        return JSONResponse(
            status_code=e.http_status,
            content={
                "success": False,
                "message": f"Failed to unregister runner: {e.output}",
                "output": e.output,
            },
        )

    return {"success": True, "message": "Runner unregistered successfully", "output": output}


@router.post("/runners/restart")
async def restart_runner(data: RestartRequest, request: Request):
    """Stop a runner if it is running, then start it."""
    if not data.name:
        raise ValidationError("Runner name is required")

    manager: RunnerProcessManager = request.app.state.manager
    try:
        record, restarted = await asyncio.to_thread(manager.restart, data.name)
    except StartError as e:
        logger.error(f"Error starting runner {data.name}: {e.message}")
        raise

    if not restarted:
        return {
            "success": True,
            "message": f"Runner {data.name} could not be stopped and is still running with PID {record.pid}",
            "pid": record.pid,
            "restarted": False,
        }

    logger.info(f"Runner {data.name} restarted successfully")
    return {
        "success": True,
        "message": f"Runner {data.name} restarted successfully",
        "pid": record.pid,
        "restarted": True,
    }


@router.get("/runners/logs")
async def get_runner_logs(
    request: Request,
    name: str = Query("", description="Runner name"),
    lines: Optional[int] = Query(None, ge=1, le=1000, description="Number of lines to return"),
):
    """Get the tail of a runner's log file."""
    if not name:
        raise ValidationError("Runner name is required")

    manager: RunnerProcessManager = request.app.state.manager
    try:
        content = await asyncio.to_thread(manager.logs, name, lines)
    except RunnerIOError as e:
        content = f"Error reading logs for runner {name}: {e.message}"

    return {"success": True, "name": name, "logs": content}


@router.get("/version")
async def get_version(request: Request):
    """Build metadata."""
    cfg: Config = request.app.state.config
    return {
        "version": cfg.version,
        "gitCommit": cfg.git_commit,
        "gitCommitFull": cfg.git_commit_full,
        "gitBranch": cfg.git_branch,
        "buildTime": cfg.build_time,
    }


def setup_error_handlers(app: FastAPI):
    """Render errors as {success: false, message} JSON."""

    @app.exception_handler(RunnerManagerError)
    async def runner_manager_error_handler(request: Request, exc: RunnerManagerError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request body"},
        )


def create_app(
    cfg: Config = None,
    manager: RunnerProcessManager = None,
    registrar: Registrar = None,
    store: RunnerConfigStore = None,
) -> FastAPI:
    """Build the application. Collaborators default to ones built from cfg."""
    cfg = cfg or config

    app = FastAPI(
        title="Runner Manager",
        description="Control plane for local GitLab CI runners",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.manager = manager or RunnerProcessManager(cfg)
    app.state.registrar = registrar or Registrar(cfg)
    app.state.store = store or RunnerConfigStore(cfg.config_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    setup_error_handlers(app)
    app.include_router(router)

    # Dashboard, mounted last so it does not shadow the API
    if cfg.static_dir is not None:
        if Path(cfg.static_dir).is_dir():
            app.mount("/", StaticFiles(directory=str(cfg.static_dir), html=True), name="static")
        else:
            logger.warning(f"Static directory {cfg.static_dir} not found, dashboard disabled")

    return app
