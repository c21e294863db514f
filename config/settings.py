"""
Process settings using Pydantic Settings.
Loads exporter tuning knobs from environment variables with validation.
The broker node list itself lives in the JSON config file (see
src/common/config_loader.py).
"""
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import Field

# Load .env file into os.environ so all nested BaseSettings pick up values
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)


class ExporterSettings(BaseSettings):
    """Polling, startup and exposition configuration"""
    config_path: str = Field(default="config.json")
    request_timeout_seconds: float = Field(default=10.0)
    failure_cooldown_seconds: float = Field(default=10.0)
    default_interval_seconds: float = Field(default=30.0)
    config_retry_seconds: float = Field(default=10.0)
    listen_address: str = Field(default="0.0.0.0")
    metrics_namespace: str = Field(default="")

    class Config:
        env_prefix = ""


class ShutdownSettings(BaseSettings):
    """Graceful shutdown configuration"""
    timeout_seconds: int = Field(default=30)
    join_timeout_seconds: float = Field(default=5.0)

    class Config:
        env_prefix = "SHUTDOWN_"


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Main settings aggregating all configuration sections"""
    exporter: ExporterSettings = Field(default_factory=ExporterSettings)
    shutdown: ShutdownSettings = Field(default_factory=ShutdownSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        extra = "ignore"


# Singleton instance - import this in other modules
settings = Settings()
