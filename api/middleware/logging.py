"""
Access log middleware with timing.
"""
import hashlib
import json
import time
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    One ``request_started`` and one outcome line per request.

    JSON bodies are logged (credentials masked) in DEBUG or on ``X-Log-Body: true``.
    Webhook bodies are bank data, so only their size and sha256 are logged.
    """

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
    DIGEST_ONLY_PREFIX = "/api/v1/payments/webhooks/"

    SENSITIVE_FIELDS = {
        "access_token", "accesstoken", "secret_token", "secrettoken",
        "token", "secret", "signature", "authorization",
    }

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        request_info = await self._request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
                **request_info,
            )
            raise

        duration = time.perf_counter() - started
        self._log_response(response.status_code, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _request_info(self, request: Request) -> dict:
        info: dict[str, Any] = {"query_params": dict(request.query_params)}
        if request.path_params:
            info["path_params"] = request.path_params

        if request.method in ("POST", "PUT", "PATCH"):
            if request.url.path.startswith(self.DIGEST_ONLY_PREFIX):
                body = await request.body()
                info["body_bytes"] = len(body)
                info["body_sha256"] = hashlib.sha256(body).hexdigest()
            elif self._should_log_body(request):
                snippet = await self._body_snippet(request)
                if snippet is not None:
                    info["body"] = snippet

        user_agent = request.headers.get("User-Agent")
        if user_agent:
            info["user_agent"] = user_agent
        return info

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false overrides the environment default
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    async def _body_snippet(self, request: Request) -> Any:
        body = await request.body()
        if not body:
            return None
        text = body[: self.max_body_log_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return text
        try:
            return self._mask(json.loads(text))
        except ValueError:
            return text

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: ("***" if str(k).lower() in self.SENSITIVE_FIELDS else self._mask(v))
                for k, v in data.items()
            }
        if isinstance(data, list):
            return [self._mask(v) for v in data]
        return data

    def _log_response(self, status_code: int, duration: float, request_info: dict):
        log_data = {"status_code": status_code, "duration": round(duration, 4), **request_info}
        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
