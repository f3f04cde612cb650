import logging

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from storage_gateway.api.v1.deps import get_storage, require_api_key
from storage_gateway.api.v1.routers.deletes import router as deletes_router
from storage_gateway.api.v1.routers.downloads import router as downloads_router
from storage_gateway.api.v1.routers.presigned_urls import router as presigned_urls_router
from storage_gateway.api.v1.routers.search import router as search_router
from storage_gateway.api.v1.routers.uploads import router as uploads_router
from storage_gateway.common.config import Settings, get_settings
from storage_gateway.common.logging import setup_logging
from storage_gateway.infra.observability.metrics import metrics_app
from storage_gateway.infra.observability.middleware import MetricsMiddleware
from storage_gateway.infra.storage.client import StorageClient, StorageError

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    416: "range_not_satisfiable",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
}


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _problem(
    request: Request,
    *,
    status_code: int,
    title: str,
    detail,
    error_code: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        media_type="application/problem+json",
        headers=headers,
        content={
            "type": "about:blank",
            "title": title,
            "status": status_code,
            "detail": detail,
            "error_code": error_code,
            "instance": str(request.url),
            "request_id": request.headers.get("X-Request-Id"),
        },
    )


def _describe_storage_target(settings: Settings) -> str:
    endpoint = settings.S3_ENDPOINT_URL or "aws"
    bucket = settings.S3_BUCKET or "<unset>"
    return f"endpoint={endpoint}, region={settings.S3_REGION}, bucket={bucket}"


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(
        title="Storage Gateway",
        version="v1.0",
        description="HTTP gateway for listing, transferring and deleting objects in one S3 bucket",
    )

    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    for router, tag in (
        (search_router, "search"),
        (presigned_urls_router, "presigned-urls"),
        (uploads_router, "uploads"),
        (downloads_router, "downloads"),
        (deletes_router, "deletes"),
    ):
        app.include_router(
            router,
            prefix=settings.API_PREFIX,
            tags=[tag],
            dependencies=[Depends(require_api_key)],
        )

    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.on_event("startup")
    def on_startup() -> None:
        startup_logger = logging.getLogger("storage_gateway.startup")
        startup_logger.info(
            "Storage gateway starting. [event=startup] (%s, prefix=%s, part_size=%s)",
            _describe_storage_target(settings),
            settings.API_PREFIX or "/",
            settings.STORAGE_PART_SIZE_BYTES,
        )
        if not settings.S3_BUCKET:
            startup_logger.warning(
                "S3_BUCKET is not set; object routes will answer 503."
                " [event=storage_not_configured]"
            )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return _problem(
            request,
            status_code=exc.status_code,
            title="HTTP Error",
            detail=normalized_detail,
            error_code=_resolve_error_code(exc.status_code, code_override),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return _problem(
            request,
            status_code=422,
            title="Validation Error",
            detail=jsonable_encoder(exc.errors()),
            error_code=_resolve_error_code(422),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logging.getLogger("http").exception(
            "unhandled_exception method=%s path=%s error=%r",
            request.method,
            request.url.path,
            exc,
        )
        return _problem(
            request,
            status_code=500,
            title="Internal Server Error",
            detail="Unexpected error",
            error_code=_resolve_error_code(500),
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    async def ready(storage: StorageClient = Depends(get_storage)):
        try:
            await run_in_threadpool(storage.check_bucket, bucket=settings.S3_BUCKET)
        except StorageError as exc:
            return {"status": "not_ready", "detail": {"storage": str(exc)}}
        return {"status": "ready"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("storage_gateway.main:app", host="0.0.0.0", port=8000, reload=True)
