"""Configuration settings for the vocabulary builder."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
EXPORTS_DIR = DATA_DIR / "exports"

# Scheduling constants
SCHEMA_VERSION = 1
RETRY_OFFSETS = [5, 6, 7]  # items between a lapse and its re-drill


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        EXPORTS_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


def get_retry_offsets() -> list[int]:
    """Get retry offsets from environment variable."""
    raw = os.getenv("RETRY_OFFSETS", "")
    if not raw:
        return list(RETRY_OFFSETS)
    return [int(offset) for offset in raw.split(",") if offset.strip()]


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    exports_dir: Path = EXPORTS_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocab_builder.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class SessionSettings:
    """Review session settings."""
    default_size: int = int(os.getenv("DEFAULT_SESSION_SIZE", "20"))
    timeout_minutes: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "10"))
    max_again_attempts: int = int(os.getenv("MAX_AGAIN_ATTEMPTS", "3"))
    deferral_hours: int = int(os.getenv("DEFERRAL_HOURS", "24"))
    due_ratio: float = float(os.getenv("DUE_RATIO", "0.6"))
    in_progress_ratio: float = float(os.getenv("IN_PROGRESS_RATIO", "0.25"))
    retry_offsets: list[int] = field(default_factory=get_retry_offsets)


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_session_settings() -> SessionSettings:
    """Get session settings."""
    return SessionSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.session.default_size < 1:
            raise ValueError("DEFAULT_SESSION_SIZE must be positive")

        if self.session.timeout_minutes < 1:
            raise ValueError("SESSION_TIMEOUT_MINUTES must be positive")

        if self.session.max_again_attempts < 1:
            raise ValueError("MAX_AGAIN_ATTEMPTS must be positive")

        if not self.session.retry_offsets or min(self.session.retry_offsets) < 1:
            raise ValueError("RETRY_OFFSETS must be a non-empty list of positive integers")

        for name, ratio in (("DUE_RATIO", self.session.due_ratio),
                            ("IN_PROGRESS_RATIO", self.session.in_progress_ratio)):
            if ratio < 0 or ratio > 1:
                raise ValueError(f"{name} must be between 0 and 1")

        if self.session.due_ratio + self.session.in_progress_ratio > 1:
            raise ValueError("DUE_RATIO and IN_PROGRESS_RATIO must not exceed 1 together")


# Create global settings instance
settings = Settings()
settings.validate()
