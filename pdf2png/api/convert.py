from typing import Optional

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile
from fastapi.responses import Response

from pdf2png.core.logging import configure_logging
from pdf2png.models import ConversionOutput, ErrorResponse, RequestContext, new_correlation_id
from pdf2png.services.conversion_service import ConversionService
from pdf2png.utils.file_utils import (
    check_declared_length,
    is_pdf_content_type,
    read_request_body,
    read_upload,
)

router = APIRouter(tags=["Conversion"])

logger = configure_logging()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing, empty or invalid PDF"},
    413: {"model": ErrorResponse, "description": "PDF larger than the upload limit"},
    500: {"model": ErrorResponse, "description": "Rendering failed"},
}


def get_conversion_service(request: Request) -> ConversionService:
    return request.app.state.conversion_service


def get_correlation_id(request: Request, x_correlation_id: Optional[str] = Header(None)) -> str:
    correlation_id = (x_correlation_id or "").strip() or new_correlation_id()
    request.state.correlation_id = correlation_id
    return correlation_id


def _png_response(output: ConversionOutput, ctx: RequestContext) -> Response:
    return Response(
        content=output.image_bytes,
        media_type=output.media_type,
        headers={
            "X-Processing-Time-Ms": str(output.processing_time_ms),
            "X-Correlation-Id": ctx.correlation_id,
            "X-Original-Size": str(ctx.original_size_bytes),
            "X-Converted-Size": str(output.size_bytes),
        },
    )


@router.post(
    "/convert",
    summary="Render page 1 of an uploaded PDF (multipart field 'pdf') as PNG",
    response_class=Response,
    responses=ERROR_RESPONSES,
)
async def convert(
    pdf: Optional[UploadFile] = File(None),
    correlation_id: str = Depends(get_correlation_id),
    service: ConversionService = Depends(get_conversion_service),
) -> Response:
    data = await read_upload(pdf, service.max_input_bytes)
    ctx = RequestContext.create(correlation_id, len(data))
    logger.info("[%s] PDF conversion request received, size: %s bytes", ctx.correlation_id, len(data))

    output = await service.convert_async(data, ctx)
    return _png_response(output, ctx)


@router.post(
    "/convert-raw",
    summary="Render page 1 of a raw application/pdf body as PNG",
    response_class=Response,
    responses=ERROR_RESPONSES,
)
async def convert_raw(
    request: Request,
    correlation_id: str = Depends(get_correlation_id),
    service: ConversionService = Depends(get_conversion_service),
) -> Response:
    if is_pdf_content_type(request.headers.get("content-type")):
        check_declared_length(request, service.max_input_bytes)
        data = await read_request_body(request, service.max_input_bytes)
    else:
        logger.warning(
            "[%s] Ignoring raw body with content type %r",
            correlation_id,
            request.headers.get("content-type"),
        )
        data = b""
    ctx = RequestContext.create(correlation_id, len(data))
    logger.info("[%s] Raw PDF conversion request received, size: %s bytes", ctx.correlation_id, len(data))

    output = await service.convert_async(data, ctx)
    return _png_response(output, ctx)
