"""
logging_config.py — Loguru setup for the API process and the poller

Every module logs through logging.getLogger("loadhunter.<component>");
the intercept handler below forwards those records to Loguru, tagged with
the component name so one sink can serve the whole pipeline.

Business Rules:
- One backend (Loguru); stdlib records are bridged, never printed directly
- APP_ENV=production → JSON lines on stdout, plus a rotating file when
  LOG_FILE is set (50 MB, 7 days, gzip)
- Anything else → colored single-line output
- Pipeline events are "event key=value" strings (message_failed reason=...)
  so they stay greppable in both formats

Called by: loadhunter/main.py (lifespan), loadhunter/scheduler.py (_main)
Depends on: config (app_env, log_level, log_file)
"""

import logging
import sys

from loguru import logger

from .config import settings

DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]: <16}</cyan> | "
    "{message}"
)
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "alembic")


def _component(record) -> bool:
    """Default the component tag for records logged through Loguru directly."""
    record["extra"].setdefault("component", record["name"].rsplit(".", 1)[-1])
    return True


def setup_logging() -> None:
    logger.remove()
    level = settings.log_level.upper()
    production = settings.app_env.lower() == "production"

    if production:
        logger.add(sys.stdout, level=level, serialize=True, filter=_component)
        if settings.log_file:
            logger.add(
                settings.log_file,
                level=level,
                rotation="50 MB",
                retention="7 days",
                compression="gz",
                serialize=True,
                filter=_component,
            )
    else:
        logger.add(sys.stdout, level=level, format=DEV_FORMAT, colorize=True, filter=_component)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.bind(component="logging").info(f"logging_configured level={level} production={production}")


class _InterceptHandler(logging.Handler):
    """Forward stdlib records to Loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        component = record.name.removeprefix("loadhunter.")
        logger.bind(component=component).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
