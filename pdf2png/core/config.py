import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings, loaded from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "PDF Converter Service"
    service_name: str = "pdf-converter-service"
    app_version: str = "0.1.0"

    # pymupdf | pdfium | poppler
    rasterizer: str = "pymupdf"
    render_scale: float = Field(default=2.0, gt=0)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    scratch_dir: Optional[Path] = None
    pdftoppm_path: str = "pdftoppm"
    poppler_poll_interval_seconds: float = Field(default=0.1, gt=0)

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def render_dpi(self) -> int:
        return round(72 * self.render_scale)

    def configure_paths(self) -> None:
        """Resolve the scratch root and make sure it exists."""
        self.scratch_dir = (self.scratch_dir or (Path(tempfile.gettempdir()) / "pdf2png")).resolve()
        self.scratch_dir.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.configure_paths()
    return settings
