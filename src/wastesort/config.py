"""Environment-based configuration for WasteSort."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from WASTESORT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WASTESORT_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: str = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model bundle: a local file wins over the Hub download
    model_path: str | None = None
    model_repo_id: str = "wastesort/dry-wet-classifier"
    model_filename: str = "dry_wet_640.onnx"
    models_dir: str = "models"
    input_size: int = Field(default=640, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Bin codes
    bin_code_prefix: str = Field(default="HS", min_length=1)

    # Input limits
    max_image_pixels: int = Field(default=50_000_000, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
