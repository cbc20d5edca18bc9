"""FastAPI entrypoint for the checklist service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import register_api_handlers
from app.checklist_repository import ChecklistRepository
from app.config import load_config
from app.errors import ChecklistError, ErrorResponse, error_response, status_code_for
from app.user_scope import (
    AUTH_EXEMPT_PATHS,
    SERVICE_TOKEN_HEADER,
    USER_ID_HEADER,
    normalize_user_id,
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = load_config()
        app.state.config = config
        app.state.data_path = config.data_path
        app.state.repository = ChecklistRepository(
            config.data_path, config.admin_user_ids
        )
        logger.info("Serving checklists from %s", config.data_path)
        yield

    app = FastAPI(lifespan=lifespan)

    @app.middleware("http")
    async def enforce_request_identity(request: Request, call_next):
        path = request.url.path
        if path in AUTH_EXEMPT_PATHS:
            return await call_next(request)

        config = getattr(request.app.state, "config", None)
        require_user_header = bool(
            getattr(config, "require_user_header", True)
        )
        service_token = getattr(config, "service_token", None)

        if require_user_header:
            raw_user_id = request.headers.get(USER_ID_HEADER)
            if raw_user_id is None:
                error = ErrorResponse(
                    code="AUTH_REQUIRED",
                    message="Missing required user identity header.",
                    details={"header": USER_ID_HEADER},
                )
                return JSONResponse(
                    status_code=401, content=error_response(error)
                )
            try:
                request.state.user_id = normalize_user_id(raw_user_id)
            except ChecklistError as exc:
                return JSONResponse(
                    status_code=401, content=error_response(exc.error)
                )

        if service_token:
            supplied_token = request.headers.get(SERVICE_TOKEN_HEADER)
            if supplied_token != service_token:
                error = ErrorResponse(
                    code="AUTH_FORBIDDEN",
                    message="Invalid service token.",
                    details={"header": SERVICE_TOKEN_HEADER},
                )
                return JSONResponse(
                    status_code=403, content=error_response(error)
                )

        return await call_next(request)

    @app.exception_handler(ChecklistError)
    def handle_checklist_error(request: Request, exc: ChecklistError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code_for(exc.error), content=error_response(exc.error)
        )

    @app.get("/health", status_code=200)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    register_api_handlers(app)
    return app


app = create_app()
