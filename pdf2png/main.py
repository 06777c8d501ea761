# pdf2png/main.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pdf2png.api import routers
from pdf2png.core.config import get_settings
from pdf2png.core.errors import ConversionError, ErrorKind
from pdf2png.core.logging import configure_logging
from pdf2png.models import DeploymentProbeResponse, ErrorResponse, HealthResponse, new_correlation_id
from pdf2png.services.conversion_service import ConversionService

# === Settings and logging ===
settings = get_settings()
logger = configure_logging()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Renders the first page of a PDF document as a PNG image for OCR.",
)

# === CORS ===
CONVERSION_HEADERS = [
    "X-Processing-Time-Ms",
    "X-Correlation-Id",
    "X-Original-Size",
    "X-Converted-Size",
]


def _as_list(val: Iterable | str | None, fallback: list[str]) -> list[str]:
    if val is None:
        return fallback
    if isinstance(val, (list, tuple, set)):
        return [str(x).strip() for x in val if str(x).strip()] or fallback
    return [x.strip() for x in str(val).split(",") if x.strip()] or fallback


app.add_middleware(
    CORSMiddleware,
    allow_origins=_as_list(settings.allow_origins, fallback=["*"]),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=CONVERSION_HEADERS,
)

# === Rasterizer, built once for the process ===
app.state.conversion_service = ConversionService.from_settings(settings)

# === Routers ===
for router in routers:
    app.include_router(router)


def _correlation_id(request: Request) -> str:
    # Framework-level rejections can happen before the route dependencies run.
    correlation_id = (
        getattr(request.state, "correlation_id", None)
        or (request.headers.get("x-correlation-id") or "").strip()
        or new_correlation_id()
    )
    request.state.correlation_id = correlation_id
    return correlation_id


def _error_response(
    request: Request,
    status_code: int,
    kind: ErrorKind,
    message: str,
    processing_time_ms: int = 0,
) -> JSONResponse:
    correlation_id = _correlation_id(request)
    body = ErrorResponse(
        error=kind.value,
        message=message,
        correlation_id=correlation_id,
        processing_time_ms=processing_time_ms,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True),
        headers={
            "X-Correlation-Id": correlation_id,
            "X-Processing-Time-Ms": str(processing_time_ms),
        },
    )


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.kind, exc.message, exc.processing_time_ms)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("[%s] Rejected malformed request: %s", _correlation_id(request), exc.errors())
    return _error_response(request, 400, ErrorKind.invalid_input, "No PDF file provided")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        return _error_response(request, exc.status_code, ErrorKind.render_failure, "PDF conversion failed")
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Invalid request"
    return _error_response(request, exc.status_code, ErrorKind.invalid_input, message)


# === Basic endpoints ===
@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    logger.debug("Health check invoked")
    service: ConversionService = request.app.state.conversion_service
    return HealthResponse(
        service=settings.service_name,
        version=settings.app_version,
        backend=service.rasterizer.name,
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/test", response_model=DeploymentProbeResponse)
async def deployment_probe(request: Request) -> DeploymentProbeResponse:
    service: ConversionService = request.app.state.conversion_service
    return DeploymentProbeResponse(
        message=f"PDF converter running the {service.rasterizer.name} rasterizer",
        library=service.rasterizer.library,
        timestamp=datetime.now(timezone.utc),
    )


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    logger.info("PDF Converter Service running on port %s", settings.port)
    logger.info("Convert endpoints: POST /convert, POST /convert-raw")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
