from __future__ import annotations

import asyncio
import threading
import time
from typing import Optional

from pdf2png.core.config import Settings
from pdf2png.core.errors import (
    ConversionError,
    ErrorKind,
    MalformedDocumentError,
    NoPagesError,
    RenderCancelledError,
    RenderError,
    SandboxError,
)
from pdf2png.core.logging import configure_logging
from pdf2png.models.conversion import ConversionOutput, RequestContext
from pdf2png.services.rasterizer import Rasterizer, build_rasterizer
from pdf2png.storage.sandbox import NullSandbox, Sandbox, ScratchSandbox

logger = configure_logging()

DEFAULT_MAX_INPUT_BYTES = 10 * 1024 * 1024


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


class ConversionService:
    """Turns one PDF payload into a PNG of its first page.

    Validates the payload, gives the rasterizer a private sandbox for the
    duration of the call, and converts every backend failure into a
    ``ConversionError``. The sandbox is released before ``convert`` returns
    or raises. No retries.
    """

    def __init__(
        self,
        rasterizer: Rasterizer,
        sandbox: Sandbox | None = None,
        *,
        max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.rasterizer = rasterizer
        self.sandbox = sandbox or NullSandbox()
        self.max_input_bytes = max_input_bytes
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConversionService":
        rasterizer = build_rasterizer(settings)
        sandbox = ScratchSandbox(settings.scratch_dir) if rasterizer.requires_scratch else NullSandbox()
        logger.info("Rasterizer backend: %s (%s)", rasterizer.name, rasterizer.library)
        return cls(
            rasterizer,
            sandbox,
            max_input_bytes=settings.max_upload_bytes,
            timeout_seconds=settings.request_timeout_seconds,
        )

    # ------------------------------------------------------------------
    def convert(
        self,
        data: bytes,
        ctx: RequestContext,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConversionOutput:
        started = time.perf_counter()
        cid = ctx.correlation_id

        if not data:
            raise self._fail(ctx, ErrorKind.invalid_input, "No PDF data provided", started)
        if len(data) > self.max_input_bytes:
            raise self._fail(
                ctx,
                ErrorKind.invalid_input,
                f"PDF exceeds the maximum size of {self.max_input_bytes} bytes",
                started,
            )

        logger.info("[%s] Starting PDF to PNG conversion (%s bytes)", cid, len(data))

        try:
            with self.sandbox.scoped(cid) as handle:
                image = self.rasterizer.render_first_page(data, handle, cancel_event)
        except SandboxError:
            logger.exception("[%s] Sandbox allocation failed", cid)
            raise self._fail(ctx, ErrorKind.resource_error, "Temporary storage unavailable", started)
        except MalformedDocumentError:
            raise self._fail(ctx, ErrorKind.malformed_document, "Input is not a valid PDF document", started)
        except NoPagesError:
            raise self._fail(ctx, ErrorKind.no_pages_rendered, "No pages converted from PDF", started)
        except RenderCancelledError:
            raise self._fail(ctx, ErrorKind.timeout, "PDF conversion timed out", started)
        except RenderError as exc:
            logger.debug("[%s] Render error detail", cid, exc_info=exc)
            raise self._fail(ctx, ErrorKind.render_failure, "PDF conversion failed", started)
        except Exception:
            logger.exception("[%s] Unexpected rasterizer failure", cid)
            raise self._fail(ctx, ErrorKind.render_failure, "PDF conversion failed", started)

        if not image:
            raise self._fail(ctx, ErrorKind.no_pages_rendered, "No pages converted from PDF", started)

        output = ConversionOutput(image_bytes=image, processing_time_ms=_elapsed_ms(started))
        logger.info(
            "[%s] Conversion successful: %s bytes PDF -> %s bytes PNG in %sms",
            cid,
            len(data),
            output.size_bytes,
            output.processing_time_ms,
        )
        return output

    async def convert_async(self, data: bytes, ctx: RequestContext) -> ConversionOutput:
        """Run ``convert`` off the event loop under the request time budget.

        On timeout the cancel event is set so the backend stops working on an
        abandoned request.
        """
        started = time.perf_counter()
        cancel_event = threading.Event()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.convert, data, ctx, cancel_event),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            cancel_event.set()
            raise self._fail(ctx, ErrorKind.timeout, "PDF conversion timed out", started)
        except asyncio.CancelledError:
            cancel_event.set()
            raise

    # ------------------------------------------------------------------
    @staticmethod
    def _fail(ctx: RequestContext, kind: ErrorKind, message: str, started: float) -> ConversionError:
        error = ConversionError(kind, message, processing_time_ms=_elapsed_ms(started))
        logger.error(
            "[%s] Conversion failed after %sms: %s (%s)",
            ctx.correlation_id,
            error.processing_time_ms,
            message,
            kind.value,
        )
        return error
