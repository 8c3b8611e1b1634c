from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .db.dynamodb.errors import (
    DdbConflict,
    DdbError,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)
from .domain.cleanup.errors import CleanupError
from .errors import cleanup_error_handler, cleanup_failure_response, is_cleanup_route
from .middleware import AccessLogMiddleware, AuthMiddleware, RequestContextMiddleware
from .middleware.cors import build_allowed_origin_regex, build_allowed_origins
from .observability.logging import configure_logging, get_logger
from .observability.otel import configure_otel, instrument_app
from .problem_details import problem_response, request_id_of
from .routers.cleanup import router as cleanup_router
from .routers.health import router as health_router
from .settings import settings


def create_app() -> FastAPI:
    # Logging must be configured before the app starts handling requests.
    configure_logging(
        level=str(settings.log_level or "INFO").upper(),
        service=settings.otel_service_name or "cleanup-api",
        environment=settings.normalized_environment,
    )
    log = get_logger("startup")

    # Optional tracing (no-op unless OTEL_ENABLED=true)
    configure_otel(settings)

    app = FastAPI(
        title="Community Cleanup API",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        # Avoid 307/308 redirects between /path and /path/ behind proxies.
        redirect_slashes=False,
    )

    allowed_origins = build_allowed_origins(
        frontend_base_url=settings.frontend_base_url,
        frontend_urls=settings.frontend_urls,
    )

    log.info("app_starting", settings=settings.to_log_safe_dict())

    # Middlewares (order matters; last added is outermost)
    # Auth runs inside CORS so auth failures still get CORS headers.
    app.add_middleware(AuthMiddleware)
    # Access logs (structured JSON)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/"})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=build_allowed_origin_regex(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=3000,
    )
    # Outermost: request context (request-id) wraps everything.
    app.add_middleware(RequestContextMiddleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(CleanupError, cleanup_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DdbError, _ddb_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    # Routes
    app.include_router(health_router)
    app.include_router(cleanup_router, prefix="/api")

    # Instrument after routers/middleware are attached.
    instrument_app(app, settings)

    return app


# Most specific first; DdbInternal and anything unknown fall through to 500.
_DDB_STATUS: tuple[tuple[type[DdbError], int, str], ...] = (
    (DdbValidation, 400, "Bad Request"),
    (DdbConflict, 409, "Conflict"),
    (DdbThrottled, 503, "Service Unavailable"),
    (DdbUnavailable, 503, "Service Unavailable"),
)


def _ddb_error_handler(request: Request, exc: DdbError) -> Response:
    # Storage errors that escaped the campaign store (e.g. missing table config).
    status_code, title = next(
        ((code, t) for cls, code, t in _DDB_STATUS if isinstance(exc, cls)),
        (500, "Storage Error"),
    )
    get_logger("ddb").warning(
        "ddb_error_unhandled",
        error_kind=type(exc).__name__,
        operation=exc.operation,
        table=exc.table_name,
        aws_request_id=exc.aws_request_id,
        path=request.url.path,
    )
    if is_cleanup_route(request):
        return cleanup_failure_response(request, status_code, exc.message)
    extensions = {
        k: v
        for k, v in {
            "operation": exc.operation,
            "table": exc.table_name,
            "awsRequestId": exc.aws_request_id,
            "retryable": bool(exc.retryable),
        }.items()
        if v is not None
    }
    # problem_response drops 5xx detail in production.
    return problem_response(
        request=request,
        status_code=status_code,
        title=title,
        detail=exc.message or None,
        extensions=extensions,
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    status_code = int(exc.status_code or 500)
    detail = str(exc.detail) if exc.detail else None
    if status_code == 404 and detail in (None, "Not Found"):
        detail = "Route not found"
    return problem_response(request=request, status_code=status_code, detail=detail)


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    # Field checks live in the coordinators; this only sees bodies that are not JSON objects.
    get_logger("validation").info(
        "request_body_rejected",
        path=request.url.path,
        errors=[
            {"loc": ".".join(str(p) for p in e.get("loc", ())), "type": e.get("type")}
            for e in exc.errors()
        ],
    )
    return cleanup_failure_response(request, 400, "Invalid request body")


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # Traceback goes to the logs; the client gets a generic problem.
    user = getattr(request.state, "user", None)
    get_logger("unhandled").error(
        "unhandled_exception",
        http_method=request.method.upper(),
        path=request.url.path,
        user_uid=getattr(user, "uid", None),
        exc_info=exc,
    )
    if is_cleanup_route(request):
        response: Response = cleanup_failure_response(request, 500, str(exc))
    else:
        response = problem_response(
            request=request,
            status_code=500,
            title="Internal Server Error",
            detail=str(exc) or None,
        )
    # This handler runs outside the request-context middleware.
    rid = request_id_of(request)
    if rid:
        response.headers[RequestContextMiddleware.header_name] = rid
    return response


app = create_app()
