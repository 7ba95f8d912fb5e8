"""
Outbound REST client base

Bank aggregators are called through this class so every integration shares the
same retry, timeout and credential-stripping behaviour:
- transient statuses (429, 5xx) and transport errors are retried by tenacity
- after the last attempt they surface as ``TransientAPIError``
- any other non-2xx surfaces as ``APIError`` carrying the upstream message
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
SENSITIVE_HEADERS = frozenset({"authorization", "signature", "x-secret-token"})


@dataclass
class APIResponse:
    status_code: int
    data: Any
    elapsed_ms: float
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def request_id(self) -> Optional[str]:
        return self.headers.get("x-request-id")


class APIError(Exception):
    """Upstream rejected the call, or it never completed."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[APIResponse] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


class TransientAPIError(APIError):
    """Rate limit, 5xx or transport failure: the same call may succeed later."""


def error_message(status_code: int, data: Any) -> str:
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if data.get(key):
                return str(data[key])
    return f"API request failed with status {status_code}"


class BaseAPIClient:
    """
    Thin httpx wrapper; subclasses expose endpoint methods built on get/post.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Union[float, httpx.Timeout] = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root, endpoints are joined onto it
            timeout: seconds, or a full httpx.Timeout
            max_retries: retries after the first attempt
            retry_delay: backoff multiplier in seconds
            headers: extra default headers
            auth_token: sent as a bearer token
            transport: custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport

        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": "bank-reconcile/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"

        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _send_once(self, method: str, url: str, **kwargs) -> APIResponse:
        started = time.perf_counter()
        try:
            response = await self._http().request(method, url, headers=self.default_headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientAPIError(f"Request timeout: {exc.__class__.__name__}") from exc
        except httpx.TransportError as exc:
            raise TransientAPIError(f"Network error: {exc}") from exc

        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except json.JSONDecodeError:
                data = None
        result = APIResponse(
            status_code=response.status_code,
            data=data,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            headers=dict(response.headers),
        )
        logger.debug(
            "api_response",
            method=method,
            url=url,
            status_code=result.status_code,
            elapsed_ms=result.elapsed_ms,
            request_id=result.request_id,
        )

        if result.status_code >= 400:
            error_class = TransientAPIError if result.status_code in TRANSIENT_STATUS_CODES else APIError
            raise error_class(error_message(result.status_code, data), result.status_code, result)
        return result

    async def _request(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        """
        Send one logical request, retrying transient failures

        Raises:
            TransientAPIError: retries exhausted
            APIError: non-retryable upstream rejection
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(
            "api_request",
            method=method,
            url=url,
            params=kwargs.get("params"),
            headers={k: v for k, v in self.default_headers.items() if k.lower() not in SENSITIVE_HEADERS},
        )

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type(TransientAPIError),
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                return await self._send_once(method, url, **kwargs)

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)
