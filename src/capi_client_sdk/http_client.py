from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import httpx

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import ApiError, TransportError
from .logger import get_logger, log_event

ResponseHook = Callable[[httpx.Response], None]
RequestHook = Callable[[str, str, dict[str, Any]], None]

logger = get_logger(__name__)


def _error_type_from_status(status_code: int) -> str:
    if status_code in {401, 403}:
        return "auth"
    if status_code in {400, 404, 422}:
        return "validation"
    if status_code == 402:
        return "payment"
    if status_code == 409:
        return "conflict"
    if status_code <= 0:
        return "network"
    return "internal"


TRACE_HEADER = "X-Trace-ID"
# Header lookups on httpx.Headers are case-insensitive.
_RESPONSE_TRACE_HEADERS = (TRACE_HEADER, "X-Request-ID")


@dataclass
class TraceContext:
    """Correlation id sent with every request of a session.

    The backend may answer with its own id (response header or error body);
    that id replaces ours so later requests and user-facing errors carry it.
    """

    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def adopt_headers(self, headers: httpx.Headers) -> None:
        for key in _RESPONSE_TRACE_HEADERS:
            trace_id = headers.get(key)
            if trace_id:
                self.trace_id = trace_id
                return

    def adopt_payload(self, payload: Mapping[str, Any]) -> None:
        nested = payload.get("error")
        for source in (payload, nested if isinstance(nested, Mapping) else {}):
            for key in ("trace_id", "traceId"):
                trace_id = source.get(key)
                if isinstance(trace_id, str) and trace_id:
                    self.trace_id = trace_id
                    return


@dataclass(frozen=True)
class NormalizedError:
    code: str
    message: str
    trace_id: str | None
    type: str


@dataclass
class LastOperation:
    module: str
    operation: str
    duration_ms: int
    result: str
    trace_id: str | None


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext | None = None
    client: httpx.AsyncClient | None = None
    base_url: str | None = None
    before_request: RequestHook | None = None
    after_response: ResponseHook | None = None
    last_operation: LastOperation | None = None

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self.config.read_timeout_seconds,
                    connect=self.config.connect_timeout_seconds,
                ),
                limits=httpx.Limits(max_connections=self.config.max_connections),
                verify=self.config.verify_ssl,
            )
        if self.trace is None:
            self.trace = TraceContext()

    def _build_url(self, path: str) -> str:
        base = (self.base_url or self.config.api_base_url).rstrip("/")
        return f"{base}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        response_hook: ResponseHook | None = None,
        retry_mutation: bool = False,
        module: str = "unknown",
        operation: str = "unknown",
    ) -> dict[str, Any] | list[Any] | None:
        if self.client is None:
            raise RuntimeError("HTTP client not initialized")
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        trace_context = self.trace or TraceContext()
        request_headers[TRACE_HEADER] = trace_context.ensure()

        normalized_method = method.upper()
        url = self._build_url(path)
        if self.before_request:
            self.before_request(
                normalized_method,
                url,
                {"headers": request_headers, "json_body": json_body, "params": params},
            )

        can_retry = normalized_method in {"GET", "HEAD"} or retry_mutation
        attempts = self.config.retries + 1 if can_retry else 1

        started = time.monotonic()
        response: httpx.Response | None = None
        for attempt in range(attempts):
            try:
                response = await self.client.request(
                    normalized_method,
                    url,
                    headers=request_headers,
                    json=json_body,
                    params=params,
                )
            except httpx.HTTPError as exc:
                if attempt >= attempts - 1:
                    self._record_operation(module, operation, started, "error", trace_context.trace_id)
                    log_event(
                        logger,
                        "http.transport_error",
                        module=module,
                        operation=operation,
                        error=type(exc).__name__,
                        trace_id=trace_context.trace_id,
                    )
                    raise TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc) or type(exc).__name__,
                        details={"type": type(exc).__name__},
                        trace_id=trace_context.trace_id,
                        status_code=0,
                        raw_payload=None,
                    ) from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            await asyncio.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError("HTTP request failed without response")

        if self.after_response:
            self.after_response(response)
        trace_context.adopt_headers(response.headers)
        if response_hook:
            response_hook(response)
        if response.is_success:
            self._record_operation(module, operation, started, "success", trace_context.trace_id)
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise ApiError(
                    code="INVALID_JSON",
                    message="Response body is not valid JSON",
                    details={"body": response.text[:200]},
                    trace_id=trace_context.trace_id,
                    status_code=response.status_code,
                ) from exc

        payload: Any
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text or response.reason_phrase}
        if not isinstance(payload, dict):
            payload = {"message": response.reason_phrase, "details": payload}
        trace_context.adopt_payload(payload)
        self._record_operation(module, operation, started, "error", trace_context.trace_id)
        log_event(
            logger,
            "http.error_response",
            module=module,
            operation=operation,
            status_code=response.status_code,
            trace_id=trace_context.trace_id,
        )
        raise map_error(response.status_code, payload, trace_context.trace_id)

    def normalize_error(self, error: Exception) -> NormalizedError:
        if isinstance(error, TransportError):
            return NormalizedError(
                code=error.code,
                message=error.message,
                trace_id=error.trace_id,
                type="network",
            )
        code = getattr(error, "code", "UNKNOWN_ERROR")
        message = getattr(error, "message", str(error))
        trace_id = getattr(error, "trace_id", None)
        status_code = int(getattr(error, "status_code", 0) or 0)
        return NormalizedError(
            code=str(code),
            message=str(message),
            trace_id=trace_id,
            type=_error_type_from_status(status_code),
        )

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _record_operation(self, module: str, operation: str, started: float, result: str, trace_id: str | None) -> None:
        self.last_operation = LastOperation(
            module=module,
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            trace_id=trace_id,
        )
