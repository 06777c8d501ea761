from __future__ import annotations

import threading
from typing import Optional

import fitz  # PyMuPDF

from pdf2png.core.errors import MalformedDocumentError, NoPagesError, RenderError
from pdf2png.services.rasterizer import SerializedRasterizer
from pdf2png.storage.sandbox import SandboxHandle


class PyMuPDFRasterizer(SerializedRasterizer):
    """In-process rendering with PyMuPDF, entirely in memory."""

    name = "pymupdf"
    library = "PyMuPDF"

    def render_first_page(
        self,
        data: bytes,
        sandbox: SandboxHandle,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        with self.serialized(cancel_event):
            try:
                document = fitz.open(stream=data, filetype="pdf")
            except Exception as exc:
                raise MalformedDocumentError("could not open PDF") from exc

            with document:
                if document.page_count < 1:
                    raise NoPagesError("document has no pages")

                self.check_cancelled(cancel_event)
                try:
                    page = document.load_page(0)
                    matrix = fitz.Matrix(self.scale, self.scale)
                    # alpha=False paints a white background under transparent pages
                    pixmap = page.get_pixmap(matrix=matrix, alpha=False)
                    return pixmap.tobytes("png")
                except Exception as exc:
                    raise RenderError("PyMuPDF failed to render page 1") from exc
