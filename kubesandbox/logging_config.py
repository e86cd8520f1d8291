"""
Logging configuration shared by the runner, the server and the cleaner.
"""

import logging
import logging.config
from typing import Any, Dict


class ProbeFilter(logging.Filter):
    """Filter to suppress the access logs of readiness probes."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Drop uvicorn access lines for the anonymous GET the runner sends while waiting."""
        if record.name == "uvicorn.access":
            message = record.getMessage()
            if '"GET / ' in message:
                return False
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration for the given level."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "probe_filter": {
                "()": ProbeFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "access": {
                "format": "%(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr"
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stderr",
                "filters": ["probe_filter"]
            }
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": level,
                "propagate": False
            },
            "kubesandbox": {
                "level": level
            }
        },
        "root": {
            "level": level,
            "handlers": ["default"]
        }
    }


def configure_logging(debug: bool = False) -> None:
    """Apply the logging configuration to the current process."""
    logging.config.dictConfig(get_logging_config("DEBUG" if debug else "INFO"))
