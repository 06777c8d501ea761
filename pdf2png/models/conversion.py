from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


def new_correlation_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    """Per-request values threaded through the pipeline for logging and headers."""

    correlation_id: str
    original_size_bytes: int
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.original_size_bytes < 0:
            raise ValueError("original_size_bytes must be >= 0")

    @classmethod
    def create(cls, correlation_id: str | None, original_size_bytes: int) -> "RequestContext":
        correlation_id = (correlation_id or "").strip() or new_correlation_id()
        return cls(correlation_id=correlation_id, original_size_bytes=original_size_bytes)


@dataclass(frozen=True)
class ConversionOutput:
    image_bytes: bytes
    processing_time_ms: int
    media_type: str = "image/png"

    @property
    def size_bytes(self) -> int:
        return len(self.image_bytes)
