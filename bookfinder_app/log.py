import os
import sys
import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

# Package logger; module loggers (logging.getLogger(__name__)) propagate here
logger = logging.getLogger("bookfinder_app")

# Structured debug events (one JSON object per line)
DEBUG_LOGGING = os.environ.get('BOOKFINDER_DEBUG_LOGGING', 'false').lower() in ('1', 'true', 'yes', 'on')

debug_logger = logging.getLogger("bookfinder_app.debug")
debug_logger.setLevel(logging.INFO)
debug_logger.propagate = False
if not DEBUG_LOGGING:
    debug_logger.disabled = True


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach stdout (and optionally rotating file) handlers to the package logger.

    Safe to call more than once; handlers are only added the first time.
    """
    logger.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
               for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter('%(message)s'))  # Keep stdout clean
        logger.addHandler(stream_handler)

    if log_file:
        log_file = os.path.abspath(log_file)
        if not any(getattr(h, "baseFilename", None) == log_file for h in logger.handlers):
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
            file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
            logger.addHandler(file_handler)

        debug_file = os.path.join(os.path.dirname(log_file), 'debug.log')
        if not any(getattr(h, "baseFilename", None) == debug_file for h in debug_logger.handlers):
            debug_handler = RotatingFileHandler(debug_file, maxBytes=10 * 1024 * 1024, backupCount=10)
            debug_handler.setFormatter(logging.Formatter('%(message)s'))
            debug_logger.addHandler(debug_handler)

    return logger


def debug_log_event(event: dict) -> None:
    """Write structured debug events to the debug logger."""
    if debug_logger.disabled:
        return
    try:
        debug_logger.info(json.dumps(event, ensure_ascii=True, separators=(',', ':'), default=str))
    except (TypeError, ValueError) as exc:
        logger.warning(f"Debug log failure: {exc}")
