import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from attendance_app.config import Settings, get_settings
from attendance_app.container import build_container
from attendance_app.exceptions import AttendanceError
from attendance_app.logging_config import setup_logging
from attendance_app.routes.attendance import router as attendance_router
from attendance_app.routes.directory import router as directory_router
from attendance_app.routes.realtime import router as realtime_router
from attendance_app.schemas.response import ApiResponse, ErrorResponse, HealthStatus
from attendance_app.services.repository import AttendanceRepository

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _register_error_handlers(application: FastAPI) -> None:
    @application.exception_handler(AttendanceError)
    async def attendance_error(request: Request, exc: AttendanceError) -> JSONResponse:
        return _error(exc.status_code, exc.message)

    @application.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(400, message)

    @application.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error(404, "Route not found")
        return _error(exc.status_code, str(exc.detail))

    @application.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(
    settings: Settings | None = None,
    repository: AttendanceRepository | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    application = FastAPI(
        title="Live Classroom Attendance API",
        version="0.1.0",
        description="Start an attendance session over HTTP, then mark, summarise and finalize it over a WebSocket.",
    )
    application.state.container = build_container(settings, repository)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(application)

    application.include_router(attendance_router)
    application.include_router(directory_router)
    application.include_router(realtime_router)

    @application.get("/health", response_model=ApiResponse[HealthStatus])
    def health() -> ApiResponse[HealthStatus]:
        return ApiResponse[HealthStatus](
            data=HealthStatus(timestamp=datetime.now(timezone.utc).isoformat()),
        )

    return application


app = create_app()
