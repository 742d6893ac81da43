from logging.config import dictConfig

from groupsplit.core.config import settings


def configure_logging(level: str | None = None):
    level = (level or settings.LOG_LEVEL).upper()

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "groupsplit": {
                "handlers": ["console"],
                "level": level,
                "propagate": True,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
            },
        },
    })
