# config.py

import logging
import sys
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_prefix='SLICE_INSPECTOR_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore' # Ignore extra fields from environment/dotenv
    )

    # Logging Configuration
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    # Worker pool used by the per-layer scans. None lets the executor pick.
    max_workers: Optional[int] = Field(None, ge=1, description="Thread pool size for parallel layer processing.")

    # Maximum number of layer tasks in flight, and so decoded rasters held by the detection cache
    raster_cache_window: int = Field(16, ge=2, description="Sliding window of in-flight layers during detection.")

    detect_empty_layers: bool = Field(True, description="Report layers without any lit pixel.")

    # Validators
    @field_validator('log_level')
    @classmethod
    def log_level_must_be_valid(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v.upper()


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configures the 'slice_inspector' logger with a stdout handler.

    Args:
        level: Logging level name; defaults to the configured `log_level`.
    """
    level = (level or settings.log_level).upper()
    package_logger = logging.getLogger("slice_inspector")
    package_logger.setLevel(level)

    # Avoid duplicate handlers when called more than once
    if package_logger.hasHandlers():
        package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.debug(f"Logging initialized at {level}.")

# --- Singleton Instance ---
# Create a single instance of the settings to be imported across the application
try:
    settings = Settings()
    logger.debug(f"Configuration loaded. Log level: {settings.log_level}, workers: {settings.max_workers}, "
                 f"window: {settings.raster_cache_window}")
except Exception as e:
    logger.error(f"Failed to load application configuration: {e}", exc_info=True)
    settings = Settings.model_construct() # Defaults without reading the environment
    logger.warning("Continuing with default settings due to configuration load failure.")
