import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from storage_gateway.common.config import get_settings
from storage_gateway.infra.observability.metrics import LATENCY, REQUESTS

MAX_TRACED_BODY_CHARS = 2048

# Only bodies of these media types are traced; uploads and archives are not.
TRACEABLE_MEDIA_TYPES = (
    "application/json",
    "application/problem+json",
    "application/x-www-form-urlencoded",
    "text/",
)

_MASK_PATTERNS = [
    re.compile(
        r"(?i)(token|secret|api_key|x-api-key|password|authorization)\s*[:=]\s*[^\s&]+"
    ),
    re.compile(r"(?i)authorization\s*:\s*bearer\s+[A-Za-z0-9\-_.]+"),
    # presigned URLs embed credentials in their query string
    re.compile(r"(?i)(X-Amz-Signature|X-Amz-Credential|X-Amz-Security-Token)=[^&\s\"]+"),
]


def _is_traceable(content_type: str | None) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return any(lowered.startswith(media) for media in TRACEABLE_MEDIA_TYPES)


class MetricsMiddleware(BaseHTTPMiddleware):
    SENSITIVE_KEYS = {
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "access_token",
        "refresh_token",
        "api_key",
        "x-api-key",
        "authorization",
        "aws_secret_access_key",
    }

    def _mask_mapping(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            masked: dict[str, Any] = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in self.SENSITIVE_KEYS:
                    masked[k] = "***"
                else:
                    masked[k] = self._mask_mapping(v)
            return masked
        if isinstance(obj, list):
            return [self._mask_mapping(x) for x in obj]
        if isinstance(obj, str):
            return self._mask_text(obj)
        return obj

    def _mask_text(self, text: str) -> str:
        masked = text
        for pattern in _MASK_PATTERNS:
            masked = pattern.sub(
                lambda m: m.group(0).split(":")[0].split("=")[0] + "=***",
                masked,
            )
        return masked

    def _render_body(self, raw_body: bytes) -> str:
        decoded_body = raw_body.decode("utf-8", errors="replace")
        try:
            parsed = json.loads(decoded_body)
        except ValueError:
            masked_text = self._mask_text(decoded_body)
        else:
            masked_text = json.dumps(self._mask_mapping(parsed), ensure_ascii=False)
        if len(masked_text) > MAX_TRACED_BODY_CHARS:
            masked_text = masked_text[:MAX_TRACED_BODY_CHARS] + "...<truncated>"
        return masked_text

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        client = request.client or None
        client_ip = request.headers.get("X-Forwarded-For")
        if client_ip:
            client_ip = client_ip.split(",")[0].strip()
        elif client:
            client_ip = client.host
        else:
            client_ip = None

        trace_http = get_settings().TRACE_HTTP
        request_body: str | None = None
        if trace_http:
            if not _is_traceable(request.headers.get("Content-Type")):
                request_body = "<skipped>" if request.headers.get("Content-Type") else None
            else:
                try:
                    raw_body = await request.body()
                    if raw_body:
                        request_body = self._render_body(raw_body)

                    async def receive():
                        return {
                            "type": "http.request",
                            "body": raw_body,
                            "more_body": False,
                        }

                    request._receive = receive
                except Exception:
                    request_body = "<unavailable>"

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            elapsed = time.perf_counter() - start
            logger = logging.getLogger("http")
            logger.exception(
                "request_error method=%s route=%s status=%s duration_ms=%.3f "
                "request_id=%s client_ip=%s query=%s user_agent=%s",
                request.method,
                request.url.path,
                500,
                round(elapsed * 1000, 3),
                request_id,
                client_ip or "-",
                request.url.query or "-",
                request.headers.get("User-Agent") or "-",
                extra={
                    "extra": {
                        "method": request.method,
                        "route": request.url.path,
                        "query": request.url.query,
                        "status": 500,
                        "duration_ms": round(elapsed * 1000, 3),
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "user_agent": request.headers.get("User-Agent"),
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - start

        route_template = request.scope.get("route", None)
        if route_template and hasattr(route_template, "path"):
            route = route_template.path
        else:
            route = request.url.path

        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        logger = logging.getLogger("http")
        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING

        duration_ms = round(elapsed * 1000, 3)
        response_body_str: str | None = None
        if trace_http and _is_traceable(response.headers.get("Content-Type")):
            try:
                response_body_bytes = b""
                async for chunk in response.body_iterator:
                    response_body_bytes += chunk
                response.body_iterator = iterate_in_threadpool(
                    iter([response_body_bytes])
                )
                if response_body_bytes:
                    response_body_str = self._render_body(response_body_bytes)
            except Exception:
                response_body_str = "<unavailable>"

        extra_payload = {
            "method": request.method,
            "route": route,
            "query": request.url.query,
            "status": status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
            "client_ip": client_ip,
            "user_agent": request.headers.get("User-Agent"),
        }
        if trace_http:
            extra_payload["request_body"] = request_body
            extra_payload["response_body"] = response_body_str

        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s client_ip=%s query=%s user_agent=%s",
            request.method,
            route,
            status_code,
            duration_ms,
            request_id,
            client_ip or "-",
            request.url.query or "-",
            request.headers.get("User-Agent") or "-",
            extra={"extra": extra_payload},
        )
        return response
