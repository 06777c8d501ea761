"""Helpers that build PDF inputs and fake renderer executables for the tests."""

from __future__ import annotations

import os
import stat
import sys
from io import BytesIO
from pathlib import Path
from typing import Sequence

from reportlab.lib.pagesizes import A4, landscape, letter
from reportlab.pdfgen import canvas

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
LETTER_AT_2X = (1224, 1584)


def make_pdf(text: str = "Hello PDF!", page_sizes: Sequence[tuple[float, float]] = (letter,)) -> bytes:
    """Build a PDF with one page per entry in ``page_sizes``."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=page_sizes[0], invariant=1)
    for number, size in enumerate(page_sizes, start=1):
        c.setPageSize(size)
        width, height = size
        c.setFont("Helvetica", 24)
        c.drawString(72, height - 72, text)
        c.setFont("Helvetica", 12)
        c.drawString(72, height - 108, f"Automated test document for PDF to PNG service, page {number}.")
        c.showPage()
    c.save()
    return buffer.getvalue()


def make_multipage_pdf(pages: int = 3) -> bytes:
    sizes = [letter] + [landscape(A4)] * (pages - 1)
    return make_pdf("Multi page", sizes)


def write_fake_pdftoppm(directory: Path, body: str, name: str = "fake-pdftoppm") -> Path:
    """Write an executable stand-in for pdftoppm.

    The script receives pdftoppm's arguments; ``input_path`` and ``prefix``
    are the last two of them.
    """
    script = directory / name
    script.write_text(
        f"#!{sys.executable}\n"
        "import sys, time\n"
        "input_path, prefix = sys.argv[-2], sys.argv[-1]\n"
        f"{body}\n",
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


# Accepts anything starting with %PDF and writes a fake PNG derived from the input.
FAKE_SUCCESS = (
    "data = open(input_path, 'rb').read()\n"
    "if not data.startswith(b'%PDF'):\n"
    "    sys.stderr.write('Syntax Error: Couldn\\'t find trailer dictionary\\n')\n"
    "    sys.exit(1)\n"
    "with open(prefix + '.png', 'wb') as out:\n"
    f"    out.write({PNG_SIGNATURE!r} + data[:64])\n"
)
FAKE_CRASH = "sys.stderr.write('internal error at ' + input_path + '\\n')\nsys.exit(99)"
FAKE_NO_OUTPUT = "sys.exit(0)"
FAKE_SLOW = "time.sleep(30)"


def listdir(path: Path) -> list[str]:
    return sorted(os.listdir(path))
