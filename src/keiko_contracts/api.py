"""HTTP API surface of the contract gateway."""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from limits.storage import storage_from_string
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from . import __version__
from .config import Settings, get_settings
from .contract import YAML_MEDIA_TYPE, ContractCategory, ContractFile, ContractStore, wants_yaml
from .errors import (
    ContractNotFound,
    ContractParseError,
    GatewayError,
    MetricsRenderError,
    RateLimitExceeded,
)
from .logging_config import SERVICE_NAME
from .metrics import GatewayMetrics
from .middleware import (
    GlobalRateLimitMiddleware,
    RequestContextMiddleware,
    client_address,
    current_correlation_id,
    error_response,
)
from .ratelimit import ClientQuota

logger = logging.getLogger(__name__)

FRONTEND_SPEC_PATH = '/frontend/openapi.json'
BACKEND_SPEC_PATH = '/backend/openapi.json'
UNLIMITED_PATHS = ('/health', '/metrics')


def _finite(value: Any) -> Any:
    """Replace YAML `.inf` and `.nan` with ``None``, which JSON renders as ``null``."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_finite(item) for item in value]
    return value


def _json(document: Any) -> JSONResponse:
    # YAML timestamps and dates become ISO strings.
    return JSONResponse(content=_finite(jsonable_encoder(document)))


def _store(request: Request) -> ContractStore:
    return request.app.state.store


def _metrics(request: Request) -> GatewayMetrics:
    return request.app.state.metrics


def enforce_strict_limit(request: Request) -> None:
    """Route dependency applying the per-minute quota of the aggregate documents."""
    limiter: ClientQuota = request.app.state.strict_limiter
    limiter.check(client_address(request))


def _render_contract(
    request: Request,
    contract: ContractFile,
    accept: str | None,
) -> Response:
    size = len(contract.raw_bytes)
    if not contract.category.is_yaml:
        _metrics(request).record_download(contract.category.value, contract.file_name)
        logger.info(
            'Protobuf file downloaded',
            extra={'protoFile': contract.file_name, 'fileSize': size},
        )
        return Response(content=contract.raw_bytes, media_type='text/plain')

    if wants_yaml(accept):
        text = contract.text
        _metrics(request).record_download(contract.category.value, contract.file_name)
        logger.info(
            'Specification downloaded as YAML',
            extra={
                'specType': contract.category.value,
                'specFile': contract.file_name,
                'specSize': size,
            },
        )
        return Response(content=text, media_type=YAML_MEDIA_TYPE)

    response = _json(contract.parse())
    _metrics(request).record_download(contract.category.value, contract.file_name)
    logger.info(
        'Specification downloaded as JSON',
        extra={
            'specType': contract.category.value,
            'specFile': contract.file_name,
            'specSize': size,
        },
    )
    return response


def _serve_aggregate(request: Request, audience: str, file_name: str) -> JSONResponse:
    try:
        contract = _store(request).load_trusted(ContractCategory.OPENAPI, file_name)
        response = _json(contract.parse())
    except (ContractNotFound, ContractParseError) as exc:
        raise ContractParseError(f'Failed to load {audience} API spec') from exc
    _metrics(request).record_download(ContractCategory.OPENAPI.value, audience)
    logger.info(
        '%s OpenAPI spec downloaded',
        audience.capitalize(),
        extra={
            'specSize': len(contract.raw_bytes),
            'userAgent': request.headers.get('user-agent'),
        },
    )
    return response


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        headers: dict[str, str] | None = None
        extra: dict[str, Any] = {}
        if isinstance(exc, RateLimitExceeded):
            headers = {'Retry-After': str(exc.retry_after)}
            extra['retryAfter'] = exc.retry_after
            logger.warning('Rate limit exceeded', extra={'ip': client_address(request)})
        elif exc.status_code >= 500:
            cause = exc.__cause__
            logger.error(
                exc.message,
                exc_info=(type(cause), cause, cause.__traceback__) if cause else None,
                extra={'url': request.url.path, 'error': str(cause or exc)},
            )
        else:
            logger.warning(
                exc.message,
                extra={'url': request.url.path, 'ip': client_address(request)},
            )
        return error_response(request, exc.status_code, exc.message, headers=headers, **extra)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = 'Not found' if exc.status_code == 404 else str(exc.detail)
        return error_response(request, exc.status_code, message, headers=exc.headers)


def create_app(
    settings: Settings | None = None,
    metrics: GatewayMetrics | None = None,
) -> FastAPI:
    """Instantiate the gateway application.

    Parameters
    ----------
    settings:
        Runtime configuration; defaults to :func:`get_settings`.
    metrics:
        Process-wide metrics handle. A fresh registry is created when omitted,
        which keeps independently built apps (e.g. in tests) isolated.
    """
    settings = settings or get_settings()
    metrics = metrics or GatewayMetrics()

    app = FastAPI(
        title='Keiko API Contracts',
        version=__version__,
        summary='Read-only access to the provisioned API contract artifacts.',
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.store = ContractStore(settings.contracts_root)
    storage = storage_from_string(settings.rate_limit_storage_uri)
    app.state.global_limiter = ClientQuota(
        settings.rate_limit_max,
        settings.rate_limit_window_seconds,
        storage=storage,
        namespace='global',
        message='Too many requests from this IP, please try again later.',
    )
    app.state.strict_limiter = ClientQuota(
        settings.strict_rate_limit_max,
        settings.strict_rate_limit_window_seconds,
        storage=storage,
        namespace='strict',
        message='Rate limit exceeded for this endpoint, please try again later.',
    )

    # Starlette wraps in reverse order: the request context is outermost.
    app.add_middleware(
        GlobalRateLimitMiddleware,
        limiter=app.state.global_limiter,
        exempt_paths=UNLIMITED_PATHS,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=['GET', 'OPTIONS'],
        allow_headers=['*'],
        expose_headers=['X-Correlation-ID', 'Retry-After'],
    )
    app.add_middleware(RequestContextMiddleware, metrics=metrics)
    _install_exception_handlers(app)

    @app.get('/health', tags=['Meta'])
    def health(request: Request) -> dict[str, Any]:
        """Liveness payload; never touches the contract directories."""
        return {
            'status': 'healthy',
            'timestamp': datetime.now(UTC).isoformat(),
            'service': SERVICE_NAME,
            'version': __version__,
            'correlationId': current_correlation_id(request),
        }

    @app.get('/metrics', tags=['Meta'])
    def metrics_endpoint(request: Request) -> Response:
        try:
            payload = _metrics(request).render()
        except Exception as exc:
            raise MetricsRenderError() from exc
        return Response(content=payload, media_type=GatewayMetrics.content_type)

    @app.get('/versions', tags=['Contracts'])
    def versions(request: Request) -> JSONResponse:
        manifest = _store(request).load_version_manifest()
        logger.info(
            'Versions endpoint accessed',
            extra={'versionsCount': len(manifest) if isinstance(manifest, dict) else 0},
        )
        return _json(manifest)

    @app.get('/specs', tags=['Contracts'])
    def specs(request: Request) -> dict[str, Any]:
        listing = _store(request).list_contracts()
        payload: dict[str, Any] = {
            category.value: [f'/{category.value}/{name}' for name in names]
            for category, names in listing.items()
        }
        payload.update(
            frontend_spec=FRONTEND_SPEC_PATH,
            backend_spec=BACKEND_SPEC_PATH,
            metrics='/metrics',
            health='/health',
            versions='/versions',
        )
        logger.info(
            'Specs listing accessed',
            extra={'totalSpecs': sum(len(names) for names in listing.values())},
        )
        return payload

    @app.get(FRONTEND_SPEC_PATH, tags=['Contracts'], dependencies=[Depends(enforce_strict_limit)])
    def frontend_spec(request: Request) -> JSONResponse:
        return _serve_aggregate(request, 'frontend', settings.frontend_spec)

    @app.get(BACKEND_SPEC_PATH, tags=['Contracts'], dependencies=[Depends(enforce_strict_limit)])
    def backend_spec(request: Request) -> JSONResponse:
        return _serve_aggregate(request, 'backend', settings.backend_spec)

    # ``:path`` lets names containing separators reach the validator and get a 400.
    @app.get('/openapi/{file_name:path}', tags=['Contracts'])
    def openapi_spec(
        request: Request, file_name: str, accept: str | None = Header(default=None)
    ) -> Response:
        contract = _store(request).load(ContractCategory.OPENAPI, file_name)
        return _render_contract(request, contract, accept)

    @app.get('/asyncapi/{file_name:path}', tags=['Contracts'])
    def asyncapi_spec(
        request: Request, file_name: str, accept: str | None = Header(default=None)
    ) -> Response:
        contract = _store(request).load(ContractCategory.ASYNCAPI, file_name)
        return _render_contract(request, contract, accept)

    @app.get('/protobuf/{file_name:path}', tags=['Contracts'])
    def protobuf_file(request: Request, file_name: str) -> Response:
        contract = _store(request).load(ContractCategory.PROTOBUF, file_name)
        return _render_contract(request, contract, None)

    return app
