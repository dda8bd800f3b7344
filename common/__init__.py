"""Common utilities for the RMM dashboard."""

from common.config import Config, ConfigError
from common.logging_setup import setup_logging, get_logger

__all__ = ["Config", "ConfigError", "setup_logging", "get_logger"]
