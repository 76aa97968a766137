from __future__ import annotations

import base64
import hmac
import os
import time
import uuid
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from ..api.routers import app_data, community, dashboard, documents, leads, notifications, reports, webhooks
from ..config import Config
from ..core.database import get_crm_store
from ..core.documents import DocumentNotFound, DocumentStore, StoreError
from ..core.logging import configure_logging, get_logger


logger = get_logger(__name__)

SERVICE_NAME = "ama-ops-desk"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "change-me"
REQUEST_ID_HEADER = "x-request-id"

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
}


def _parse_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["http://localhost:3000", "http://127.0.0.1:3000"]


def _get_expected_admin_credentials() -> tuple[str, str]:
    expected_username = os.getenv("ADMIN_USERNAME", DEFAULT_ADMIN_USERNAME)
    expected_password = os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
    return expected_username, expected_password


def _is_valid_admin_credentials(username: str, password: str) -> bool:
    expected_username, expected_password = _get_expected_admin_credentials()
    return (
        hmac.compare_digest(username, expected_username)
        and hmac.compare_digest(password, expected_password)
    )


def _extract_basic_credentials(request: Request) -> tuple[str, str] | None:
    raw_auth = request.headers.get("authorization")
    if not raw_auth or not raw_auth.lower().startswith("basic "):
        return None
    encoded = raw_auth[len("basic ") :].strip()
    if not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded).decode("utf-8")
        username, password = decoded.split(":", 1)
        return username, password
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed basic authorization header.",
            headers={"WWW-Authenticate": "Basic"},
        )


def require_admin(request: Request) -> str:
    credentials = _extract_basic_credentials(request)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
            headers={"WWW-Authenticate": "Basic"},
        )
    username, password = credentials
    if not _is_valid_admin_credentials(username, password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials.",
            headers={"WWW-Authenticate": "Basic"},
        )
    return username


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    retryable: bool = False,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = _request_id(request)
    response_headers = dict(headers or {})
    response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "retryable": retryable,
                "request_id": request_id,
            }
        },
        headers=response_headers,
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        code = ERROR_CODES.get(exc.status_code)
        if code is None:
            code = "INTERNAL_ERROR" if exc.status_code >= 500 else "BAD_REQUEST"
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _error_response(
            request,
            exc.status_code,
            code,
            message,
            retryable=exc.status_code >= 500,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        return _error_response(
            request,
            422,
            "VALIDATION_ERROR",
            f"Invalid request: {', '.join(fields)}" if fields else "Invalid request.",
        )

    @app.exception_handler(DocumentNotFound)
    async def document_not_found(request: Request, exc: DocumentNotFound):
        return _error_response(request, 404, "NOT_FOUND", f"Document not found: {exc.path}")

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.error(
            "Document store request failed.",
            extra={"path": request.url.path, "error": str(exc), "request_id": _request_id(request)},
        )
        return _error_response(request, 500, "UPSTREAM_ERROR", "Document store request failed.", retryable=True)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        return _error_response(request, 500, "INTERNAL_ERROR", "Internal Server Error")


def create_app() -> FastAPI:
    configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FORMAT", "json"))

    app = FastAPI(
        title="AMA Ops Desk",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.middleware("http")
    async def observe_requests(request: Request, call_next):
        started_at = time.perf_counter()
        request_id = _request_id(request)
        try:
            response = await call_next(request)
        except Exception:
            if request.url.path.startswith("/api/v1"):
                logger.exception(
                    "Request failed with unhandled exception.",
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "latency_ms": round((time.perf_counter() - started_at) * 1000, 2),
                        "request_id": request_id,
                    },
                )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path.startswith("/api/v1"):
            logger.info(
                "api_request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "latency_ms": round((time.perf_counter() - started_at) * 1000, 2),
                    "request_id": request_id,
                },
            )
        return response

    @app.get("/healthz")
    def healthcheck(store: DocumentStore = Depends(get_crm_store)) -> dict[str, Any]:
        try:
            store_ok = store.ping()
        except StoreError as exc:
            logger.warning("Healthcheck store ping failed.", extra={"error": str(exc)})
            store_ok = False
        return {"ok": store_ok, "service": SERVICE_NAME, "store_backend": Config.STORE_BACKEND}

    api_v1 = APIRouter(prefix="/api/v1")
    admin_v1 = APIRouter(dependencies=[Depends(require_admin)])
    for feature in (leads, dashboard, reports, app_data, community, notifications, documents):
        admin_v1.include_router(feature.router)

    api_v1.include_router(webhooks.router)
    api_v1.include_router(admin_v1)
    app.include_router(api_v1)

    return app


app = create_app()
