"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from anywhere.config import settings
    print(settings.gemini.model)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from anywhere.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()


DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ConfigurationError when not set

    Returns:
        The environment variable value or default

    Raises:
        ConfigurationError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class GeminiConfig:
    """
    Gemini Live API configuration.

    Attributes:
        api_key: Gemini API key
        model: Native-audio live model name
        url: BidiGenerateContent websocket endpoint
        voice: Prebuilt voice used for synthesized speech
        connect_timeout_s: Upper bound on waiting for the session to open
    """
    api_key: str = field(default_factory=lambda: get_env("GEMINI_API_KEY"))
    model: str = field(default_factory=lambda: get_env("GEMINI_LIVE_MODEL", DEFAULT_LIVE_MODEL))
    url: str = field(default_factory=lambda: get_env("GEMINI_LIVE_URL", DEFAULT_LIVE_URL))
    voice: str = field(default_factory=lambda: get_env("GEMINI_VOICE", "Puck"))
    connect_timeout_s: float = field(default_factory=lambda: get_env_float("GEMINI_CONNECT_TIMEOUT_S", 10.0))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def validate(self) -> bool:
        """Validate that required Gemini settings are configured."""
        if not self.is_configured:
            raise ConfigurationError("GEMINI_API_KEY is required")
        if self.connect_timeout_s <= 0:
            raise ConfigurationError("GEMINI_CONNECT_TIMEOUT_S must be positive")
        return True


@dataclass
class MapsConfig:
    """
    Google Maps configuration for geocoding and panorama lookup.

    Attributes:
        api_key: Google Maps API key
        search_radius_m: Radius searched around a geocoded point for a panorama
        request_timeout_s: HTTP timeout per Maps request
    """
    api_key: str = field(default_factory=lambda: get_env("GOOGLE_MAPS_API_KEY"))
    search_radius_m: int = field(default_factory=lambda: get_env_int("PANORAMA_SEARCH_RADIUS_M", 100))
    request_timeout_s: float = field(default_factory=lambda: get_env_float("MAPS_REQUEST_TIMEOUT_S", 10.0))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class NavigationConfig:
    """
    Camera navigation tuning.

    Attributes:
        pan_duration_s: Duration of a smooth rotation
        pano_load_timeout_s: Max wait for a panorama to load after a step or jump
        step_pause_s: Pause between consecutive forward steps
        max_link_deviation_deg: A link further than this from the heading is not "ahead"
        max_steps: Upper bound on steps per move request
    """
    pan_duration_s: float = field(default_factory=lambda: get_env_float("PAN_DURATION_S", 2.0))
    pano_load_timeout_s: float = field(default_factory=lambda: get_env_float("PANO_LOAD_TIMEOUT_S", 2.0))
    step_pause_s: float = field(default_factory=lambda: get_env_float("STEP_PAUSE_S", 0.4))
    max_link_deviation_deg: float = field(default_factory=lambda: get_env_float("MAX_LINK_DEVIATION_DEG", 90.0))
    max_steps: int = 5


@dataclass
class ExplorerConfig:
    """
    Orchestrator behaviour.

    Attributes:
        context_update_interval_s: Period of viewport context pushes
        greeting_delay_s: Delay before the automatic greeting after connect
        auto_greet: Whether to greet the user after connecting
    """
    context_update_interval_s: float = field(default_factory=lambda: get_env_float("CONTEXT_UPDATE_INTERVAL_S", 5.0))
    greeting_delay_s: float = field(default_factory=lambda: get_env_float("GREETING_DELAY_S", 1.0))
    auto_greet: bool = field(default_factory=lambda: get_env_bool("AUTO_GREET", True))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Example:
        from anywhere.config import settings

        settings.gemini.validate()
        radius = settings.maps.search_radius_m
    """
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    maps: MapsConfig = field(default_factory=MapsConfig)
    navigation: NavigationConfig = field(default_factory=NavigationConfig)
    explorer: ExplorerConfig = field(default_factory=ExplorerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: If any validation fails
        """
        self.gemini.validate()
        return True


# Singleton settings instance
# Import this in other modules: from anywhere.config import settings
settings = Settings()
