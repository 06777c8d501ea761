from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    invalid_input = "InvalidInput"
    malformed_document = "MalformedDocument"
    no_pages_rendered = "NoPagesRendered"
    render_failure = "RenderFailure"
    resource_error = "ResourceError"
    timeout = "Timeout"


_STATUS_CODES = {
    ErrorKind.invalid_input: 400,
    ErrorKind.malformed_document: 400,
    ErrorKind.no_pages_rendered: 500,
    ErrorKind.render_failure: 500,
    ErrorKind.resource_error: 500,
    ErrorKind.timeout: 500,
}


class ConversionError(Exception):
    """Uniform, client-safe failure of a conversion request.

    ``message`` is what the caller sees; it must never contain file paths or
    renderer output. Details belong in the log.
    """

    def __init__(self, kind: ErrorKind, message: str, processing_time_ms: int = 0) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.processing_time_ms = processing_time_ms

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]


class RasterizerError(Exception):
    """Base class for failures raised by a rasterizer backend."""


class MalformedDocumentError(RasterizerError):
    """The input bytes could not be opened as a PDF."""


class NoPagesError(RasterizerError):
    """The document has no renderable page, or the renderer produced nothing."""


class RenderError(RasterizerError):
    """The renderer failed while rasterizing the page."""


class RenderCancelledError(RasterizerError):
    """Rendering was abandoned because the request was cancelled."""


class SandboxError(Exception):
    """Scratch space for a request could not be allocated."""


class PayloadTooLargeError(ConversionError):
    """Request body exceeded the upload limit before reaching the converter."""

    def __init__(self, limit_bytes: int) -> None:
        super().__init__(ErrorKind.invalid_input, f"PDF exceeds the maximum size of {limit_bytes} bytes")
        self.limit_bytes = limit_bytes

    @property
    def status_code(self) -> int:
        return 413
