"""
PAIDEIA - Configuration

Centralized configuration management for the tutor engine.
Uses environment variables with sensible defaults.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.errors import ConfigError

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(
            f"{name} must be an integer", config_key=name, actual_value=raw, cause=e
        ) from e


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(
            f"{name} must be a number", config_key=name, actual_value=raw, cause=e
        ) from e


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Environment(Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreBackend(Enum):
    """Session store implementations."""
    MEMORY = "memory"
    SQL = "sql"


@dataclass
class GenerationConfig:
    """Text-generation service configuration."""
    api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    model: str = field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.5-flash"))
    base_url: str = field(
        default_factory=lambda: os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        )
    )
    temperature: float = field(default_factory=lambda: _env_float("GENERATION_TEMPERATURE", "0.4"))

    # Per-call bound and retry policy for transient failures
    timeout_seconds: float = field(default_factory=lambda: _env_float("GENERATION_TIMEOUT", "60"))
    max_attempts: int = field(default_factory=lambda: _env_int("GENERATION_MAX_ATTEMPTS", "3"))
    base_delay: float = field(default_factory=lambda: _env_float("GENERATION_BASE_DELAY", "0.5"))
    max_delay: float = field(default_factory=lambda: _env_float("GENERATION_MAX_DELAY", "10"))

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigError(
                "GENERATION_TIMEOUT must be > 0",
                config_key="GENERATION_TIMEOUT",
                actual_value=self.timeout_seconds,
            )
        if self.max_attempts < 1:
            raise ConfigError(
                "GENERATION_MAX_ATTEMPTS must be >= 1",
                config_key="GENERATION_MAX_ATTEMPTS",
                actual_value=self.max_attempts,
            )


@dataclass
class StoreConfig:
    """Session store configuration."""
    backend: StoreBackend = field(
        default_factory=lambda: StoreBackend(os.getenv("SESSION_STORE", "memory").lower())
    )
    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./paideia.db")
    )
    echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", "false"))
    pool_size: int = field(default_factory=lambda: _env_int("DB_POOL_SIZE", "5"))


@dataclass
class TutorConfig:
    """Pedagogical engine settings."""
    default_language: str = field(default_factory=lambda: os.getenv("TUTOR_DEFAULT_LANGUAGE", "es"))
    quiz_default_count: int = field(default_factory=lambda: _env_int("QUIZ_DEFAULT_COUNT", "3"))
    max_update_attempts: int = field(default_factory=lambda: _env_int("SESSION_UPDATE_ATTEMPTS", "5"))
    max_insight_tags: int = field(default_factory=lambda: _env_int("INSIGHT_MAX_TAGS", "10"))


@dataclass
class ObservabilityConfig:
    """
    OpenTelemetry observability configuration for distributed tracing,
    metrics, and structured logging.
    """
    service_name: str = field(
        default_factory=lambda: os.getenv("OTEL_SERVICE_NAME", "paideia")
    )
    service_version: str = field(
        default_factory=lambda: os.getenv("OTEL_SERVICE_VERSION", "1.0.0")
    )

    # Empty endpoint keeps exporters off
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    )
    otlp_insecure: bool = field(
        default_factory=lambda: _env_bool("OTEL_EXPORTER_OTLP_INSECURE", "true")
    )

    tracing_enabled: bool = field(
        default_factory=lambda: _env_bool("OTEL_TRACING_ENABLED", "false")
    )
    trace_console_export: bool = field(
        default_factory=lambda: _env_bool("OTEL_TRACE_CONSOLE", "false")
    )
    metrics_enabled: bool = field(
        default_factory=lambda: _env_bool("OTEL_METRICS_ENABLED", "false")
    )
    metrics_export_interval: int = field(
        default_factory=lambda: _env_int("OTEL_METRICS_INTERVAL", "60000")
    )

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json_format: bool = field(default_factory=lambda: _env_bool("LOG_JSON", "false"))

    environment: str = field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "development")
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for diagnostics."""
        return {
            "service_name": self.service_name,
            "service_version": self.service_version,
            "otlp_endpoint": self.otlp_endpoint,
            "tracing_enabled": self.tracing_enabled,
            "metrics_enabled": self.metrics_enabled,
            "environment": self.environment,
        }


@dataclass
class Config:
    """Main configuration class combining all sub-configs."""
    env: Environment = field(default_factory=lambda: Environment(os.getenv("ENVIRONMENT", "development")))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", "false"))

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    tutor: TutorConfig = field(default_factory=TutorConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (excluding sensitive values)."""
        return {
            "env": self.env.value,
            "debug": self.debug,
            "generation": {
                "model": self.generation.model,
                "timeout_seconds": self.generation.timeout_seconds,
                "max_attempts": self.generation.max_attempts,
                "api_key_set": bool(self.generation.api_key),
            },
            "store": {
                "backend": self.store.backend.value,
            },
            "tutor": {
                "default_language": self.tutor.default_language,
                "quiz_default_count": self.tutor.quiz_default_count,
            },
            "observability": self.observability.to_dict(),
        }


# Singleton configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create configuration singleton."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    load_dotenv(override=True)
    _config = Config()
    return _config
