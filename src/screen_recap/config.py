"""
ScreenRecapAgent Configuration
==============================

This module handles configuration loading for the capture agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SCREEN_RECAP_CAPTURE_BACKEND    -> capture.backend
    SCREEN_RECAP_MONITOR            -> capture.monitor
    SCREEN_RECAP_STREAM_URL         -> capture.stream_url
    SCREEN_RECAP_FLUSH_SIZE         -> buffer.flush_size
    SCREEN_RECAP_FLUSH_INTERVAL_MS  -> buffer.flush_interval_ms
    SCREEN_RECAP_ANALYSIS_BACKEND   -> analysis.backend
    SCREEN_RECAP_MODEL              -> analysis.model
    SCREEN_RECAP_MAX_CONCURRENCY    -> analysis.max_concurrency
    SCREEN_RECAP_PORT               -> server.port
    SCREEN_RECAP_LOG_LEVEL          -> logging.level
    PORT                            -> server.port (container platforms)
    OPENAI_API_KEY                  -> read by the OpenAI client itself

Example:
    from screen_recap.config import settings

    print(settings.capture.initial_delay_ms)
    print(settings.buffer.flush_size)
    print(settings.analysis.max_concurrency)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AgentConfig(BaseModel):
    """Agent identification configuration."""

    name: str = Field(default="screen-recap-agent", description="Agent name")
    version: str = Field(default="v0.1.0", description="Service version")


class MockCaptureConfig(BaseModel):
    """Mock frame source configuration."""

    width: int = Field(default=320, ge=16, description="Synthetic frame width")
    height: int = Field(default=180, ge=16, description="Synthetic frame height")
    hold_frames: int = Field(default=3, ge=1, description="Ticks each scene is held")
    max_frames: int = Field(default=0, ge=0, description="Ticks before stream ends (0 = never)")


class CaptureConfig(BaseModel):
    """Frame source and adaptive clock configuration."""

    backend: str = Field(
        default="mock",
        description="Frame source backend: 'mock', 'screen' or 'stream'",
    )
    monitor: int = Field(default=1, ge=0, description="mss monitor index for 'screen'")
    jpeg_quality: int = Field(default=80, ge=1, le=100, description="JPEG quality")
    max_width: int = Field(default=1280, ge=0, description="Downscale wider frames (0 = off)")
    stream_url: str = Field(
        default="ws://localhost:8000/ws/frames",
        description="WebSocket URL for the 'stream' backend",
    )
    initial_delay_ms: int = Field(default=1000, gt=0, description="Delay at session start")
    min_delay_ms: int = Field(default=500, gt=0, description="Fastest capture delay")
    max_delay_ms: int = Field(default=2000, gt=0, description="Slowest capture delay")
    delay_step_ms: int = Field(default=100, gt=0, description="Delay change per frame")
    frame_timeout_sec: float = Field(
        default=3.0,
        gt=0,
        description="Time allowed to acquire one frame before the tick is skipped",
    )
    mock: MockCaptureConfig = Field(default_factory=MockCaptureConfig)

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "CaptureConfig":
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        if not self.min_delay_ms <= self.initial_delay_ms <= self.max_delay_ms:
            raise ValueError("initial_delay_ms must lie within [min_delay_ms, max_delay_ms]")
        return self


class BufferConfig(BaseModel):
    """Frame buffer flush policy."""

    flush_size: int = Field(default=5, ge=1, description="Frames that trigger a flush")
    flush_interval_ms: int = Field(
        default=5000,
        gt=0,
        description="Period of the time-based flush",
    )


class AnalysisConfig(BaseModel):
    """Vision describer and summarizer configuration."""

    backend: str = Field(
        default="mock",
        description="Analysis backend: 'mock' or 'openai'",
    )
    model: str = Field(default="gpt-4o-mini", description="Vision / summary model")
    max_concurrency: int = Field(
        default=3,
        ge=1,
        description="Describer calls in flight per batch",
    )
    describe_max_tokens: int = Field(default=500, ge=1, description="Tokens per frame description")
    summary_max_tokens: int = Field(default=1000, ge=1, description="Tokens for the summary")
    describe_timeout_sec: Optional[float] = Field(
        default=60.0,
        gt=0,
        description="Time allowed per describer call (None = unlimited)",
    )
    request_timeout_sec: float = Field(default=30.0, gt=0, description="HTTP timeout per API call")
    max_retries: int = Field(default=2, ge=0, description="Client-side API retries")
    api_key: Optional[str] = Field(
        default=None,
        description="API key (defaults to OPENAI_API_KEY)",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for ScreenRecapAgent.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations
            (SCREEN_RECAP_CONFIG first).

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path(os.environ.get("SCREEN_RECAP_CONFIG", "config.yaml")),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_backend := os.environ.get("SCREEN_RECAP_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_backend
    if env_monitor := os.environ.get("SCREEN_RECAP_MONITOR"):
        config_data.setdefault("capture", {})["monitor"] = int(env_monitor)
    if env_url := os.environ.get("SCREEN_RECAP_STREAM_URL"):
        config_data.setdefault("capture", {})["stream_url"] = env_url

    # Buffer settings
    if env_size := os.environ.get("SCREEN_RECAP_FLUSH_SIZE"):
        config_data.setdefault("buffer", {})["flush_size"] = int(env_size)
    if env_interval := os.environ.get("SCREEN_RECAP_FLUSH_INTERVAL_MS"):
        config_data.setdefault("buffer", {})["flush_interval_ms"] = int(env_interval)

    # Analysis settings
    if env_analysis := os.environ.get("SCREEN_RECAP_ANALYSIS_BACKEND"):
        config_data.setdefault("analysis", {})["backend"] = env_analysis
    if env_model := os.environ.get("SCREEN_RECAP_MODEL"):
        config_data.setdefault("analysis", {})["model"] = env_model
    if env_conc := os.environ.get("SCREEN_RECAP_MAX_CONCURRENCY"):
        config_data.setdefault("analysis", {})["max_concurrency"] = int(env_conc)

    # Server settings (container platforms use PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SCREEN_RECAP_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("SCREEN_RECAP_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
