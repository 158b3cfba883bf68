import logging
from logging.config import dictConfig

from payplan.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the API process."""
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default"
            }
        },
        "loggers": {
            "payplan": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
                "propagate": False
            }
        }
    })
    logging.getLogger("payplan").debug("Logging configured")
