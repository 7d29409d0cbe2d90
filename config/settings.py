# config/settings.py
# ============================================================
# Centralized Configuration for the ID Card Merge Pipeline
# ============================================================
# All settings are loaded from environment variables (or .env file).
# Pydantic validates types and provides sensible defaults.
#
# Usage:
#   from config.settings import settings
#   gateway = RecognitionGateway(capability, timeout=settings.recognition_timeout_s)
# ============================================================

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings. Values are loaded from environment variables
    or a .env file. Everything except the recognition credentials has a
    typed default so the pipeline can be wired up without configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Recognition provider (Baidu AI Cloud OCR) ---
    baidu_api_key: str = Field(
        default="",
        description="API key of the Baidu OCR application.",
    )
    baidu_secret_key: str = Field(
        default="",
        description="Secret key of the Baidu OCR application.",
    )
    baidu_token_url: str = Field(
        default="https://aip.baidubce.com/oauth/2.0/token",
        description="OAuth endpoint used to obtain access tokens.",
    )
    baidu_api_base: str = Field(
        default="https://aip.baidubce.com/rest/2.0/ocr/v1",
        description="Base URL of the OCR REST endpoints.",
    )

    # --- Retry policy ---
    recognition_timeout_s: float = Field(
        default=60.0,
        description="Timeout applied to every single recognition attempt.",
    )
    recognition_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts (first call included) per recognition.",
    )
    recognition_backoff_s: float = Field(
        default=2.0,
        description="Linear backoff step: wait attempt * step before retrying.",
    )

    # --- Batch processing ---
    unit_timeout_s: Optional[float] = Field(
        default=None,
        description="Hard timeout per unit. Derived from the retry budget when unset.",
    )
    unit_timeout_margin_s: float = Field(
        default=30.0,
        description="Margin added on top of the retry budget for the derived unit timeout.",
    )
    max_concurrent_units: int = Field(
        default=1,
        ge=1,
        le=8,
        description="Units processed in parallel. 1 keeps processing strictly sequential.",
    )
    max_concurrent_images: int = Field(
        default=4,
        ge=1,
        description="Images of one unit classified in parallel.",
    )

    # --- Output ---
    output_dir: str = Field(
        default="output",
        description="Directory where merged PDF documents are written.",
    )
    temp_dir: Optional[str] = Field(
        default=None,
        description="Root for per-unit staging directories. System temp dir when unset.",
    )
    compose_dpi: int = Field(
        default=150,
        description="Raster resolution of the composed A4 page.",
    )
    compose_font_path: Optional[str] = Field(
        default=None,
        description="TrueType/OpenType font able to render CJK text on the page.",
    )

    # --- Classification rules ---
    rules_path: Optional[str] = Field(
        default=None,
        description="JSON file overriding the marker phrases, authority keywords and period patterns.",
    )

    # --- Logging ---
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG | INFO | WARNING | ERROR.",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Also append plain-text log lines to this file (batch audit trail).",
    )

    @property
    def effective_unit_timeout(self) -> float:
        """Unit timeout: explicit override, else the full retry budget plus a margin."""
        if self.unit_timeout_s is not None:
            return self.unit_timeout_s
        backoff_total = sum(
            attempt * self.recognition_backoff_s
            for attempt in range(1, self.recognition_max_attempts)
        )
        return (
            self.recognition_max_attempts * self.recognition_timeout_s
            + backoff_total
            + self.unit_timeout_margin_s
        )


# ============================================================
# Singleton instance — import this everywhere:
#   from config.settings import settings
# ============================================================
settings = Settings()
