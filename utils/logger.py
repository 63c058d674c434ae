"""Centralized logging with rotation and per-request context."""
import logging
import os
import uuid
from logging.handlers import RotatingFileHandler

from flask import g, has_request_context, request
from flask_login import current_user


class RequestContextFilter(logging.Filter):
    """Attach the request id and acting user id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = "-"
        record.actor_id = "-"
        if has_request_context():
            record.request_id = getattr(g, "request_id", "-")
            try:
                if current_user and current_user.is_authenticated:
                    record.actor_id = current_user.id
            except Exception:  # user loader unavailable outside a full app context
                record.actor_id = "-"
        return True


def assign_request_id() -> None:
    g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]


def init_logging(app) -> logging.Logger:
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "app.log")

    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(actor_id)s | %(module)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    context_filter = RequestContextFilter()

    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(context_filter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(context_filter)

    logger = logging.getLogger(app.name)
    # The factory may run more than once per process (tests); do not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.info("Logging initialized", extra={"log_path": log_path})
    return logger
