"""Request-scoped middleware: correlation ids, logging, metrics, and quotas."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp

from .errors import RateLimitExceeded
from .logging_config import correlation_id_var
from .metrics import GatewayMetrics
from .ratelimit import ClientQuota

logger = logging.getLogger(__name__)

CORRELATION_HEADER = 'X-Correlation-ID'

SECURITY_HEADERS: dict[str, str] = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'SAMEORIGIN',
    'Referrer-Policy': 'no-referrer',
    'X-XSS-Protection': '0',
}

CallNext = Callable[[Request], Awaitable[Response]]


def current_correlation_id(request: Request | None = None) -> str | None:
    """Return the correlation id of the request being served."""
    if request is not None:
        state_id = getattr(request.state, 'correlation_id', None)
        if state_id:
            return state_id
    return correlation_id_var.get()


def error_response(
    request: Request,
    status_code: int,
    message: str,
    *,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    """Build the JSON error body shared by every failure mode."""
    body: dict[str, Any] = {'error': message, **extra}
    body['correlationId'] = current_correlation_id(request)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def client_address(request: Request) -> str:
    return request.client.host if request.client else 'unknown'


def _route_label(request: Request) -> str:
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match is Match.FULL:
            return str(getattr(route, 'path', request.url.path))
    return '<unmatched>'


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Outermost layer around every request.

    Assigns the correlation id, logs the request lifecycle, records HTTP
    metrics, applies the security headers, and converts any exception that
    escaped the route handlers into a generic 500 response.
    """

    def __init__(self, app: ASGIApp, metrics: GatewayMetrics) -> None:
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        started = time.perf_counter()
        logger.info(
            'Request started',
            extra={
                'method': request.method,
                'url': str(request.url.path),
                'userAgent': request.headers.get('user-agent'),
                'ip': client_address(request),
            },
        )
        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    'Unhandled error',
                    extra={'method': request.method, 'url': str(request.url.path)},
                )
                response = error_response(request, 500, 'Internal server error')

            duration = time.perf_counter() - started
            response.headers[CORRELATION_HEADER] = correlation_id
            for header, value in SECURITY_HEADERS.items():
                response.headers.setdefault(header, value)
            self.metrics.observe_request(
                request.method, _route_label(request), response.status_code, duration
            )
            logger.info(
                'Request completed',
                extra={
                    'method': request.method,
                    'url': str(request.url.path),
                    'statusCode': response.status_code,
                    'duration': f'{duration:.4f}s',
                    'contentLength': response.headers.get('content-length'),
                },
            )
            return response
        finally:
            correlation_id_var.reset(token)


class GlobalRateLimitMiddleware(BaseHTTPMiddleware):
    """Coarse per-client quota over the whole API surface."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: ClientQuota,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        decision = self.limiter.hit(client_address(request))
        if not decision.allowed:
            exceeded = RateLimitExceeded(decision.reset_after, self.limiter.message)
            logger.warning(
                'Global rate limit exceeded',
                extra={'ip': client_address(request), 'retryAfter': exceeded.retry_after},
            )
            return error_response(
                request,
                exceeded.status_code,
                exceeded.message,
                headers={'Retry-After': str(exceeded.retry_after), **decision.headers()},
                retryAfter=exceeded.retry_after,
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
