from __future__ import annotations

import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from pdf2png.core.errors import SandboxError
from pdf2png.core.logging import configure_logging

logger = configure_logging()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
_MAX_ID_LENGTH = 64


def safe_path_component(correlation_id: str) -> str:
    """Reduce a caller-supplied correlation id to something usable in a file name."""
    cleaned = _UNSAFE_CHARS.sub("_", correlation_id)[:_MAX_ID_LENGTH].strip(".")
    return cleaned or "request"


@dataclass
class SandboxHandle:
    correlation_id: str
    path: Optional[Path] = None
    released: bool = False

    def file(self, name: str) -> Path:
        if self.path is None:
            raise SandboxError("sandbox has no scratch directory")
        return self.path / name


class Sandbox(ABC):
    """Per-request transient storage with a release guaranteed by ``scoped``."""

    @abstractmethod
    def acquire(self, correlation_id: str) -> SandboxHandle:
        raise NotImplementedError

    @abstractmethod
    def release(self, handle: SandboxHandle) -> None:
        """Free the handle's storage. Idempotent; never raises for cleanup failures."""
        raise NotImplementedError

    @contextmanager
    def scoped(self, correlation_id: str) -> Iterator[SandboxHandle]:
        handle = self.acquire(correlation_id)
        try:
            yield handle
        finally:
            self.release(handle)


class NullSandbox(Sandbox):
    """Sandbox for in-memory rasterizers: nothing to allocate or remove."""

    def acquire(self, correlation_id: str) -> SandboxHandle:
        return SandboxHandle(correlation_id=correlation_id)

    def release(self, handle: SandboxHandle) -> None:
        handle.released = True


class ScratchSandbox(Sandbox):
    """Per-request scratch directories under a shared root.

    Each handle owns a directory named after the correlation id plus a random
    suffix from ``mkdtemp``; two requests never share a path, even when
    callers reuse the same correlation id.
    """

    prefix = "pdf2png"

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def acquire(self, correlation_id: str) -> SandboxHandle:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path = tempfile.mkdtemp(prefix=f"{self.prefix}-{safe_path_component(correlation_id)}-", dir=self.root)
        except OSError as exc:
            raise SandboxError("could not allocate scratch space") from exc
        return SandboxHandle(correlation_id=correlation_id, path=Path(path))

    def release(self, handle: SandboxHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if handle.path is None or not handle.path.exists():
            return
        try:
            shutil.rmtree(handle.path)
        except OSError as exc:
            logger.warning("[%s] Cleanup warning: %s", handle.correlation_id, exc)
