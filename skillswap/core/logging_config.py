"""
Logging configuration for the SkillSwap service and client.

Call setup_logging() once at startup (the FastAPI app does this on import).
"""

import logging
import logging.config
import sys
from typing import Dict, Any


def get_logging_config(log_level: str = "INFO") -> Dict[str, Any]:
    """
    Get logging configuration dictionary

    Args:
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logging configuration dict
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(levelname)s:     %(name)s - %(message)s",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "detailed",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "skillswap": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # Keep third-party chatter down
            "google": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


def setup_logging(log_level: str = "INFO") -> None:
    """Configure logging for the whole application."""
    logging.config.dictConfig(get_logging_config(log_level.upper()))
    logging.getLogger(__name__).debug(f"Logging configured at level {log_level}")
