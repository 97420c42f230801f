"""One logging configuration for the app process and uvicorn.

Every handler carries ``RequestContextFilter``, so any record emitted while a
request is in flight shows that request's correlation id.
"""

import logging.config

from creativehub.config import settings

DEV_FORMAT = "%(levelname)s:     [%(request_id)s] %(name)s - %(message)s"
PROD_FORMAT = "%(asctime)s - [%(request_id)s] %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that only speak up on problems
QUIET_LOGGERS = ("httpx", "httpcore", "aiosmtplib", "sqlalchemy.engine")


def build_log_config(include_uvicorn: bool = False) -> dict:
    """dictConfig for the current environment.

    With ``include_uvicorn`` the server's own loggers get uvicorn's colourised
    formatters; access lines carry the client address outside development.
    """
    is_dev = settings.is_development

    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": "creativehub.api.middleware.RequestContextFilter"},
        },
        "formatters": {
            "app": {"format": DEV_FORMAT if is_dev else PROD_FORMAT},
        },
        "handlers": {
            "app": {
                "class": "logging.StreamHandler",
                "formatter": "app",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"handlers": ["app"], "level": settings.log_level},
    }

    if include_uvicorn:
        config["formatters"]["uvicorn_access"] = {
            "()": "uvicorn.logging.AccessFormatter",
            "fmt": '%(levelprefix)s "%(request_line)s" %(status_code)s' if is_dev
            else '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
        }
        config["handlers"]["uvicorn_access"] = {
            "class": "logging.StreamHandler",
            "formatter": "uvicorn_access",
            "stream": "ext://sys.stdout",
        }
        config["loggers"]["uvicorn.access"] = {
            "handlers": ["uvicorn_access"],
            "level": "INFO",
            "propagate": False,
        }
        config["loggers"]["uvicorn.error"] = {
            "handlers": ["app"],
            "level": "INFO",
            "propagate": False,
        }

    return config


def get_uvicorn_log_config() -> dict:
    return build_log_config(include_uvicorn=True)


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(build_log_config())
