from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import anyio
import structlog
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from menu_metadata.catalog import ImageUpload, RequestInput, build_request
from menu_metadata.core.config import settings
from menu_metadata.core.errors import (
    GenerationError,
    ServiceError,
    SessionNotFound,
    SubmissionInFlight,
    ValidationError,
)
from menu_metadata.core.logging import configure_logging, request_id_ctx, session_id_ctx
from menu_metadata.core.sentry import init_sentry
from menu_metadata.llm.gemini_client import GeminiClient, GenerationContext
from menu_metadata.session.controller import MenuItemController
from menu_metadata.session.registry import SessionRegistry
from menu_metadata.web.page import render_page

configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_sentry()
    # Refuses to start without a credential.
    context = GenerationContext.from_settings(settings)
    app.state.client = GeminiClient(context)
    app.state.sessions = SessionRegistry(
        lambda: MenuItemController(
            app.state.client,
            copy_feedback_seconds=settings.copy_feedback_seconds,
        ),
        max_sessions=settings.max_sessions,
    )
    logger.info("service_started", model=context.model)
    try:
        yield
    finally:
        app.state.sessions.clear()
        app.state.client.http.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class FieldsRequest(BaseModel):
    item_name: str | None = None
    description: str | None = None


def _controller(request: Request, session_id: str) -> MenuItemController:
    controller = request.app.state.sessions.get(session_id)
    session_id_ctx.set(session_id)
    return controller


def _state(controller: MenuItemController) -> dict[str, object]:
    return controller.snapshot().to_public()


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request_id_token = request_id_ctx.set(request_id)
    session_id_token = session_id_ctx.set(None)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(request_id_token)
        session_id_ctx.reset(session_id_token)

    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("request_validation_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(ValidationError)
async def input_validation_handler(request: Request, exc: ValidationError):
    logger.warning("input_rejected", path=request.url.path, error=str(exc))
    status_code = 409 if isinstance(exc, SubmissionInFlight) else 400
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    logger.info("session_not_found", path=request.url.path)
    return JSONResponse(status_code=404, content={"detail": "Session not found"})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    logger.warning(
        "generation_failed",
        path=request.url.path,
        kind=exc.kind,
        status_code=exc.status_code if isinstance(exc, ServiceError) else None,
        error=str(exc),
    )
    return JSONResponse(
        status_code=502,
        content={"detail": f"Failed to extract metadata: {exc.kind}: {exc}"},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limit_exceeded", path=request.url.path)
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please slow down."},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    return HTMLResponse(render_page(settings.app_name))


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/ready")
async def ready(request: Request) -> JSONResponse:
    checks: dict[str, dict[str, str]] = {}
    status_code = 200
    client: GeminiClient = request.app.state.client

    if client.context.api_key:
        checks["credential"] = {"status": "ok"}
    else:
        checks["credential"] = {"status": "error", "error": "gemini_api_key missing"}
        status_code = 503

    try:
        with anyio.fail_after(1.5):
            await anyio.to_thread.run_sync(client.ping)
        checks["gemini"] = {"status": "ok"}
    except Exception as exc:  # noqa: BLE001
        checks["gemini"] = {"status": "error", "error": str(exc) or type(exc).__name__}
        status_code = 503

    overall = "ok" if status_code == 200 else "error"
    return JSONResponse(status_code=status_code, content={"status": overall, "checks": checks})


@app.post("/api/sessions")
async def create_session(request: Request) -> dict[str, object]:
    session_id, controller = request.app.state.sessions.create()
    session_id_ctx.set(session_id)
    logger.info("session_created")
    return {"session_id": session_id, "state": _state(controller)}


@app.get("/api/sessions/{session_id}")
async def get_session(request: Request, session_id: str) -> dict[str, object]:
    return _state(_controller(request, session_id))


@app.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(request: Request, session_id: str) -> None:
    _controller(request, session_id)
    request.app.state.sessions.discard(session_id)


@app.put("/api/sessions/{session_id}/image")
async def upload_image(
    request: Request,
    session_id: str,
    file: UploadFile = File(...),
) -> dict[str, object]:
    controller = _controller(request, session_id)
    content = await file.read()
    controller.set_image(content, file.content_type or "")
    return _state(controller)


@app.delete("/api/sessions/{session_id}/image")
async def remove_image(request: Request, session_id: str) -> dict[str, object]:
    controller = _controller(request, session_id)
    controller.clear_image()
    return _state(controller)


@app.put("/api/sessions/{session_id}/fields")
async def update_fields(request: Request, session_id: str, payload: FieldsRequest) -> dict[str, object]:
    controller = _controller(request, session_id)
    controller.set_fields(payload.item_name, payload.description)
    return _state(controller)


@app.post("/api/sessions/{session_id}/submit", status_code=202)
@limiter.limit(settings.submit_rate_limit)
async def submit(request: Request, session_id: str) -> dict[str, object]:
    controller = _controller(request, session_id)
    controller.start_submission()
    return _state(controller)


@app.post("/api/sessions/{session_id}/reset")
async def reset(request: Request, session_id: str) -> dict[str, object]:
    controller = _controller(request, session_id)
    controller.reset()
    return _state(controller)


@app.get("/api/sessions/{session_id}/result.json")
async def result_json(request: Request, session_id: str) -> Response:
    controller = _controller(request, session_id)
    return Response(content=controller.result_text(), media_type="application/json")


@app.post("/api/sessions/{session_id}/copy")
async def confirm_copied(request: Request, session_id: str) -> dict[str, object]:
    controller = _controller(request, session_id)
    controller.mark_copied()
    return _state(controller)


@app.post("/api/metadata")
@limiter.limit(settings.submit_rate_limit)
async def extract_metadata(
    request: Request,
    file: UploadFile | None = File(default=None),
    item_name: str | None = Form(default=None),
    description: str | None = Form(default=None),
) -> dict[str, object]:
    image = None
    if file is not None:
        image = ImageUpload(data=await file.read(), mime_type=file.content_type or "")
    request_input = RequestInput.from_raw(image=image, item_name=item_name, description=description)
    if not request_input.has_content:
        raise ValidationError("Upload an image or enter an item name or description.")

    built = build_request(request_input)
    client: GeminiClient = request.app.state.client
    result = await client.agenerate(
        built.prompt_text,
        built.result_schema,
        image.data if image else None,
        image.mime_type if image else None,
        item_name=request_input.item_name,
        description=request_input.description,
    )
    return result.to_dict()
