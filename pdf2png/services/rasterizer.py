from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from pdf2png.core.config import Settings
from pdf2png.core.errors import RenderCancelledError
from pdf2png.storage.sandbox import SandboxHandle


class Rasterizer(ABC):
    """Renders the first page of a PDF to PNG bytes.

    Implementations raise ``RasterizerError`` subclasses only; the conversion
    service maps them onto the client-facing error kinds. One instance is
    built at startup and shared by all requests.
    """

    name: str = ""
    library: str = ""
    requires_scratch: bool = False

    def __init__(self, scale: float = 2.0) -> None:
        self.scale = scale

    @abstractmethod
    def render_first_page(
        self,
        data: bytes,
        sandbox: SandboxHandle,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        raise NotImplementedError

    @staticmethod
    def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RenderCancelledError("rendering cancelled")


class SerializedRasterizer(Rasterizer):
    """Base for in-process backends whose native library is not thread-safe.

    Neither MuPDF nor pdfium may be entered from two threads at once, even
    for different documents, so one render runs at a time per process and a
    pool of instances would not help. Parallelism comes from running several
    server worker processes, or from the poppler backend. Requests queued
    behind the lock give up their place as soon as they are cancelled, so a
    render stuck in native code only delays the requests that are still
    within their time budget.
    """

    lock_poll_interval: float = 0.05

    def __init__(self, scale: float = 2.0) -> None:
        super().__init__(scale)
        self._lock = threading.Lock()

    @contextmanager
    def serialized(self, cancel_event: Optional[threading.Event]) -> Iterator[None]:
        while not self._lock.acquire(timeout=self.lock_poll_interval):
            self.check_cancelled(cancel_event)
        try:
            self.check_cancelled(cancel_event)
            yield
        finally:
            self._lock.release()


def build_rasterizer(settings: Settings) -> Rasterizer:
    name = settings.rasterizer.strip().lower()
    if name == "pymupdf":
        from pdf2png.services.pymupdf_rasterizer import PyMuPDFRasterizer

        return PyMuPDFRasterizer(scale=settings.render_scale)
    if name == "pdfium":
        from pdf2png.services.pdfium_rasterizer import PdfiumRasterizer

        return PdfiumRasterizer(scale=settings.render_scale)
    if name == "poppler":
        from pdf2png.services.poppler_rasterizer import PopplerRasterizer

        return PopplerRasterizer(
            scale=settings.render_scale,
            executable=settings.pdftoppm_path,
            poll_interval=settings.poppler_poll_interval_seconds,
        )
    raise ValueError(f"Unknown rasterizer backend: {settings.rasterizer!r} (expected pymupdf, pdfium or poppler)")
