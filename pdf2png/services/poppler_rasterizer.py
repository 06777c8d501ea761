from __future__ import annotations

import subprocess
import threading
from pathlib import Path
from typing import Optional

from pdf2png.core.errors import (
    MalformedDocumentError,
    NoPagesError,
    RenderCancelledError,
    RenderError,
)
from pdf2png.core.logging import configure_logging
from pdf2png.services.rasterizer import Rasterizer
from pdf2png.storage.sandbox import SandboxHandle

logger = configure_logging()

# pdftoppm exit status for "error opening a PDF file"
EXIT_OPEN_ERROR = 1


class PopplerRasterizer(Rasterizer):
    """Runs poppler's ``pdftoppm`` against a copy of the input in the request sandbox.

    Layout inside the sandbox::

        input.pdf
        output/page.png

    The sandbox directory is removed by the caller, so every artifact written
    here disappears with it on success and failure alike.
    """

    name = "poppler"
    library = "pdftoppm"
    requires_scratch = True

    input_name = "input.pdf"
    output_dir_name = "output"
    output_prefix = "page"

    def __init__(self, scale: float = 2.0, executable: str = "pdftoppm", poll_interval: float = 0.1) -> None:
        super().__init__(scale)
        self.executable = executable
        self.poll_interval = poll_interval

    @property
    def dpi(self) -> int:
        return round(72 * self.scale)

    def build_command(self, input_path: Path, output_prefix: Path) -> list[str]:
        return [
            self.executable,
            "-f",
            "1",
            "-l",
            "1",
            "-r",
            str(self.dpi),
            "-png",
            "-singlefile",
            str(input_path),
            str(output_prefix),
        ]

    def render_first_page(
        self,
        data: bytes,
        sandbox: SandboxHandle,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        input_path = sandbox.file(self.input_name)
        output_dir = sandbox.file(self.output_dir_name)
        try:
            input_path.write_bytes(data)
            output_dir.mkdir()
        except OSError as exc:
            raise RenderError("could not stage input for the renderer") from exc

        output_prefix = output_dir / self.output_prefix
        returncode, stderr = self._run(self.build_command(input_path, output_prefix), cancel_event)

        if returncode != 0:
            logger.warning(
                "[%s] pdftoppm exited with %s: %s",
                sandbox.correlation_id,
                returncode,
                stderr.strip() or "<no output>",
            )
            if returncode == EXIT_OPEN_ERROR:
                raise MalformedDocumentError("renderer could not open the PDF")
            raise RenderError(f"renderer exited with status {returncode}")

        output_path = output_prefix.with_suffix(".png")
        if not output_path.is_file():
            raise NoPagesError("renderer produced no page image")
        try:
            return output_path.read_bytes()
        except OSError as exc:
            raise RenderError("could not read renderer output") from exc

    def _run(self, command: list[str], cancel_event: Optional[threading.Event]) -> tuple[int, str]:
        self.check_cancelled(cancel_event)
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise RenderError("renderer executable is not available") from exc

        while True:
            try:
                _, stderr = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    process.kill()
                    process.communicate()
                    raise RenderCancelledError("renderer killed after cancellation")

        return process.returncode, stderr.decode("utf-8", errors="replace")
