from __future__ import annotations

import threading
from io import BytesIO
from typing import Optional

import pypdfium2 as pdfium

from pdf2png.core.errors import MalformedDocumentError, NoPagesError, RenderError
from pdf2png.core.logging import configure_logging
from pdf2png.services.rasterizer import SerializedRasterizer
from pdf2png.storage.sandbox import SandboxHandle

logger = configure_logging()

WHITE = (255, 255, 255, 255)


class PdfiumRasterizer(SerializedRasterizer):
    """Draws page 1 onto a white-filled pdfium bitmap and encodes it with Pillow.

    pdfium keeps native handles for the document, the page and the bitmap;
    all three are closed explicitly so nothing survives the request.
    """

    name = "pdfium"
    library = "pypdfium2"

    def render_first_page(
        self,
        data: bytes,
        sandbox: SandboxHandle,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        with self.serialized(cancel_event):
            try:
                document = pdfium.PdfDocument(data)
            except pdfium.PdfiumError as exc:
                raise MalformedDocumentError("could not open PDF") from exc

            try:
                if len(document) < 1:
                    raise NoPagesError("document has no pages")
                self.check_cancelled(cancel_event)
                return self._render_page(document, sandbox.correlation_id)
            finally:
                document.close()

    def _render_page(self, document: "pdfium.PdfDocument", correlation_id: str) -> bytes:
        page = document[0]
        bitmap = None
        try:
            width, height = page.get_size()
            logger.debug(
                "[%s] Page geometry %.0fx%.0f pt, canvas %dx%d px",
                correlation_id,
                width,
                height,
                round(width * self.scale),
                round(height * self.scale),
            )
            bitmap = page.render(scale=self.scale, fill_color=WHITE)
            image = bitmap.to_pil().convert("RGB")
            buffer = BytesIO()
            image.save(buffer, format="PNG")
            return buffer.getvalue()
        except Exception as exc:
            raise RenderError("pdfium failed to render page 1") from exc
        finally:
            if bitmap is not None:
                bitmap.close()
            page.close()
