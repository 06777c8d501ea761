from typing import AsyncIterator, Optional

from fastapi import Request, UploadFile

from pdf2png.core.errors import PayloadTooLargeError

CHUNK_SIZE = 1024 * 1024
PDF_MEDIA_TYPE = "application/pdf"


def is_pdf_content_type(content_type: Optional[str]) -> bool:
    """True for ``application/pdf``, ignoring case and parameters such as charset."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return media_type == PDF_MEDIA_TYPE


def check_declared_length(request: Request, limit: int) -> None:
    """Reject early when the client announces a body larger than ``limit``."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(limit)


async def _collect(chunks: AsyncIterator[bytes], limit: int) -> bytes:
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise PayloadTooLargeError(limit)
    return bytes(buffer)


async def read_upload(upload: Optional[UploadFile], limit: int) -> bytes:
    """Read a multipart file part, stopping as soon as it exceeds ``limit``."""
    if upload is None:
        return b""

    async def chunks() -> AsyncIterator[bytes]:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    return await _collect(chunks(), limit)


async def read_request_body(request: Request, limit: int) -> bytes:
    """Read a raw request body, stopping as soon as it exceeds ``limit``."""
    return await _collect(request.stream(), limit)
