"""Configuration loading and validation using Pydantic models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError


WireName = Literal["auto", "chat_completions", "messages", "responses_stream"]
_WIRE_NAMES = {"auto", "chat_completions", "messages", "responses_stream"}


def _default_data_dir() -> Path:
    override = os.environ.get("GUI_OPERATE_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".gui_operate"


class DisplaySettings(BaseModel):
    cache_ttl_s: float = Field(
        5.0, ge=0.0, description="Seconds a queried display topology stays valid."
    )
    query_timeout_s: float = Field(
        10.0, gt=0, description="Timeout for each OS display query subprocess."
    )
    fallback_width: int = Field(1920, ge=1)
    fallback_height: int = Field(1080, ge=1)


class HistorySettings(BaseModel):
    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Root directory; per-app ledgers live under gui_apps/.",
    )
    max_markers: int = Field(
        10, ge=1, description="Maximum history markers drawn on a screenshot (incl. #0)."
    )
    min_pixel_separation: float = Field(
        50.0, ge=0.0, description="Minimum device-pixel distance between drawn markers."
    )
    lock_timeout_s: float = Field(5.0, gt=0)


class CaptureSettings(BaseModel):
    timeout_s: float = Field(15.0, gt=0, description="Timeout for a single screen capture.")
    reuse_ttl_s: float = Field(
        1.0, ge=0.0, description="Reuse a screenshot of the same display for this long."
    )
    output_dir: Optional[Path] = Field(
        None, description="Where debug screenshots are written (None disables)."
    )


class VisionSettings(BaseModel):
    api_key: Optional[str] = Field(None, description="Anthropic-style API key or auth token.")
    base_url: Optional[str] = None
    model: str = Field("claude-3-5-sonnet-20241022")
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: Optional[str] = None
    wire: WireName = Field("auto", description="Force a wire format instead of routing.")
    timeout_s: float = Field(45.0, gt=0, description="Hard wall-clock timeout per attempt.")
    max_attempts: int = Field(3, ge=1)
    backoff_base_s: float = Field(1.0, ge=0.0)
    max_tokens: int = Field(2048, ge=16)
    confidence_threshold: float = Field(50.0, ge=0.0, le=100.0)
    anthropic_version: str = Field("2023-06-01")
    app_title: str = Field("gui_operate", description="X-Title header sent to OpenRouter.")
    app_url: Optional[str] = Field(None, description="HTTP-Referer header sent to OpenRouter.")

    @field_validator("base_url", "openai_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value.rstrip("/") or None


class LoggingSettings(BaseModel):
    level: str = Field("INFO")
    log_dir: Optional[Path] = None
    file_logging: bool = False


class AppConfig(BaseModel):
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    vision: VisionSettings = Field(default_factory=VisionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def apply_env_overrides(config: AppConfig, env: Mapping[str, str] | None = None) -> AppConfig:
    """Overlay provider credentials and paths from environment variables."""

    env = os.environ if env is None else env
    vision = config.vision.model_copy()
    api_key = env.get("ANTHROPIC_API_KEY") or env.get("ANTHROPIC_AUTH_TOKEN")
    if api_key:
        vision.api_key = api_key
    if env.get("ANTHROPIC_BASE_URL"):
        vision.base_url = env["ANTHROPIC_BASE_URL"].rstrip("/")
    model = env.get("CLAUDE_MODEL") or env.get("ANTHROPIC_DEFAULT_SONNET_MODEL")
    if model:
        vision.model = model
    if env.get("OPENAI_API_KEY"):
        vision.openai_api_key = env["OPENAI_API_KEY"]
    if env.get("OPENAI_BASE_URL"):
        vision.openai_base_url = env["OPENAI_BASE_URL"].rstrip("/")
    if env.get("OPENAI_MODEL"):
        vision.openai_model = env["OPENAI_MODEL"]
    wire = env.get("GUI_OPERATE_VISION_WIRE")
    if wire:
        wire = wire.strip().lower()
        if wire not in _WIRE_NAMES:
            raise ConfigurationError(
                f"GUI_OPERATE_VISION_WIRE={wire!r} is not one of {sorted(_WIRE_NAMES)}"
            )
        vision.wire = wire  # type: ignore[assignment]

    history = config.history.model_copy()
    if env.get("GUI_OPERATE_DATA_DIR"):
        history.data_dir = Path(env["GUI_OPERATE_DATA_DIR"]).expanduser()

    logging_settings = config.logging.model_copy()
    if env.get("GUI_OPERATE_LOG_LEVEL"):
        logging_settings.level = env["GUI_OPERATE_LOG_LEVEL"].upper()

    return config.model_copy(
        update={"vision": vision, "history": history, "logging": logging_settings}
    )


def load_config(path: Path | str | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    """Load YAML configuration from disk (if present) and apply env overrides."""

    data: dict = {}
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
            if not isinstance(data, dict):
                raise ConfigurationError(f"{config_path} must contain a YAML mapping")
    config = AppConfig.model_validate(data)
    return apply_env_overrides(config, env)
