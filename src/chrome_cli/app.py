"""FastAPI application exposing the daemon commands over local HTTP."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncIterator

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from chrome_cli.config import get_version
from chrome_cli.handlers import CommandHandlers, Session
from chrome_cli.models import (
    ClickRequest,
    ClosePageRequest,
    EvaluateRequest,
    FillRequest,
    NavigateRequest,
    NewPageRequest,
    ScreenshotRequest,
    SelectPageRequest,
    SnapshotRequest,
    WaitRequest,
)

logger = logging.getLogger("chrome_cli.app")

router = APIRouter()


def get_handlers(request: Request) -> CommandHandlers:
    """Get the command handlers from app state."""
    return request.app.state.handlers


HandlersDep = Annotated[CommandHandlers, Depends(get_handlers)]


async def _dispatch(
    handlers: CommandHandlers, cmd: str, args: dict[str, Any] | None = None
) -> JSONResponse:
    status, body = await handlers.handle_command(cmd, args)
    return JSONResponse(status_code=status, content=jsonable_encoder(body))


# -- Connection / global ------------------------------------------------------


@router.get("/health")
async def health(handlers: HandlersDep) -> JSONResponse:
    return await _dispatch(handlers, "health")


@router.get("/pages")
async def pages(handlers: HandlersDep) -> JSONResponse:
    return await _dispatch(handlers, "pages")


@router.post("/new-page")
async def new_page(handlers: HandlersDep, body: NewPageRequest | None = None) -> JSONResponse:
    body = body or NewPageRequest()
    return await _dispatch(handlers, "new-page", body.model_dump())


@router.post("/select-page")
async def select_page(handlers: HandlersDep, body: SelectPageRequest) -> JSONResponse:
    return await _dispatch(handlers, "select-page", body.model_dump())


@router.post("/close-page")
async def close_page(
    handlers: HandlersDep, body: ClosePageRequest | None = None
) -> JSONResponse:
    body = body or ClosePageRequest()
    return await _dispatch(handlers, "close-page", body.model_dump())


@router.post("/shutdown")
async def shutdown(handlers: HandlersDep, background_tasks: BackgroundTasks) -> JSONResponse:
    response = await _dispatch(handlers, "shutdown")
    # Runs only after the acknowledgement has been sent.
    background_tasks.add_task(handlers.session.teardown)
    return response


# -- Page operations ----------------------------------------------------------


@router.post("/navigate")
async def navigate(handlers: HandlersDep, body: NavigateRequest) -> JSONResponse:
    return await _dispatch(handlers, "navigate", body.model_dump())


@router.post("/screenshot")
async def screenshot(
    handlers: HandlersDep, body: ScreenshotRequest | None = None
) -> JSONResponse:
    body = body or ScreenshotRequest()
    return await _dispatch(handlers, "screenshot", body.model_dump())


@router.post("/click")
async def click(handlers: HandlersDep, body: ClickRequest) -> JSONResponse:
    return await _dispatch(handlers, "click", body.model_dump())


@router.post("/fill")
async def fill(handlers: HandlersDep, body: FillRequest) -> JSONResponse:
    return await _dispatch(handlers, "fill", body.model_dump())


@router.post("/evaluate")
async def evaluate(handlers: HandlersDep, body: EvaluateRequest) -> JSONResponse:
    return await _dispatch(handlers, "evaluate", body.model_dump())


@router.post("/wait")
async def wait(handlers: HandlersDep, body: WaitRequest | None = None) -> JSONResponse:
    body = body or WaitRequest()
    return await _dispatch(handlers, "wait", body.model_dump())


@router.post("/snapshot")
async def snapshot(
    handlers: HandlersDep, body: SnapshotRequest | None = None
) -> JSONResponse:
    body = body or SnapshotRequest()
    return await _dispatch(handlers, "snapshot", body.model_dump())


# -- Capture buffers ----------------------------------------------------------


@router.get("/console")
async def console(
    handlers: HandlersDep,
    page: str | None = None,
    level: str | None = None,
    clear: bool = False,
) -> JSONResponse:
    return await _dispatch(
        handlers, "console", {"page_id": page, "level": level, "clear": clear}
    )


@router.get("/network")
async def network(
    handlers: HandlersDep, page: str | None = None, clear: bool = False
) -> JSONResponse:
    return await _dispatch(handlers, "network", {"page_id": page, "clear": clear})


# -- Application factory ------------------------------------------------------


def create_app(session: Session) -> FastAPI:
    """Create the daemon application around an existing *session*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("chrome-cli daemon starting up")
        yield
        await session.close()
        logger.info("chrome-cli daemon shutting down")

    daemon_app = FastAPI(
        title="chrome-cli daemon",
        description="Persistent browser session controlled over local HTTP",
        version=get_version(),
        lifespan=lifespan,
    )

    # Store the session and handlers in app.state for dependency injection
    daemon_app.state.session = session
    daemon_app.state.handlers = CommandHandlers(session)

    @daemon_app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        logger.warning(f"Rejected {request.url.path}: {errors}")
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": f"Invalid request: {errors}"},
        )

    daemon_app.include_router(router)
    return daemon_app
