"""Configuration settings for the trainer."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directory from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))

# Learning settings
SRS_INTERVALS_HOURS = {
    1: 12,    # 12 hours
    2: 48,    # 2 days
    3: 96,    # 4 days
    4: 240,   # 10 days
    5: 336,   # 2 weeks
    6: 720,   # 1 month (approx)
    7: 4380,  # 6 months (approx)
    8: 8760,  # 1 year (approx)
}
MAX_SRS_LEVEL = 8
NEW_WORDS_PER_SESSION = 5
NEW_WORD_STREAK_TO_LEVEL_DOWN = 3


def ensure_directories(data_dir: Optional[Path] = None) -> None:
    """Ensure the data directory holding the database exists."""
    (data_dir or settings.paths.data_dir).mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    data_dir: Path = DATA_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'flashlingo.db'}")
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
class BotSettings:
    """Bot configuration settings."""
    token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")


@dataclass
class GeneratorSettings:
    """Word generation settings."""
    api_key: str = os.getenv("GEMINI_API_KEY", "")
    model_name: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    temperature: float = float(os.getenv("GEMINI_TEMPERATURE", "1.2"))


@dataclass
class LearningSettings:
    """Learning process settings."""
    new_words_per_session: int = int(os.getenv("NEW_WORDS_PER_SESSION", str(NEW_WORDS_PER_SESSION)))
    new_word_streak_to_level_down: int = int(
        os.getenv("NEW_WORD_STREAK_TO_LEVEL_DOWN", str(NEW_WORD_STREAK_TO_LEVEL_DOWN))
    )
    max_srs_level: int = MAX_SRS_LEVEL
    srs_intervals_hours: dict[int, int] = field(default_factory=lambda: dict(SRS_INTERVALS_HOURS))


@dataclass
class MonitoringSettings:
    """Metrics server settings."""
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


def get_bot_settings() -> BotSettings:
    """Get bot settings."""
    return BotSettings()


def get_generator_settings() -> GeneratorSettings:
    """Get word generation settings."""
    return GeneratorSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    bot: BotSettings = field(default_factory=get_bot_settings)
    generator: GeneratorSettings = field(default_factory=get_generator_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.learning.new_words_per_session < 1:
            raise ValueError("NEW_WORDS_PER_SESSION must be positive")

        if self.learning.new_word_streak_to_level_down < 1:
            raise ValueError("NEW_WORD_STREAK_TO_LEVEL_DOWN must be positive")

        intervals = self.learning.srs_intervals_hours
        if sorted(intervals) != list(range(1, self.learning.max_srs_level + 1)):
            raise ValueError("SRS intervals must cover every level from 1 to MAX_SRS_LEVEL")

        hours = [intervals[level] for level in sorted(intervals)]
        if hours != sorted(hours):
            raise ValueError("SRS intervals must be ascending")

        if not 0 <= self.generator.temperature <= 2:
            raise ValueError("GEMINI_TEMPERATURE must be between 0 and 2")


# Create global settings instance
settings = Settings()
settings.validate()
