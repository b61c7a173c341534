"""Configuration management for ChainLens."""
from .settings import (
    Settings,
    DatabaseConfig,
    EmbeddingsConfig,
    CrawlerConfig,
    SearchSettings,
    SchedulerConfig,
    LoggingConfig,
    load_settings,
    configure_logging,
)

__all__ = [
    "Settings",
    "DatabaseConfig",
    "EmbeddingsConfig",
    "CrawlerConfig",
    "SearchSettings",
    "SchedulerConfig",
    "LoggingConfig",
    "load_settings",
    "configure_logging",
]
