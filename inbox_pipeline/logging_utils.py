"""Shared logging utilities.

The supervisor is usually triggered by cron or a scheduler that may close
stdout before the sweep finishes. SafeStreamHandler keeps logging to the
stream best-effort so that file handlers still receive every record.
"""
import logging
import logging.handlers
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "uvicorn.access")


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that ignores broken pipe and closed file errors."""

    def emit(self, record):
        try:
            super().emit(record)
        except BrokenPipeError:
            pass  # stdout closed by the scheduler
        except ValueError:
            pass  # I/O operation on closed file


def configure_safe_logging(level=logging.INFO):
    """Configure root logger with SafeStreamHandler.

    Call this in CLI entrypoints that might run with closed stdout.
    Safe to call multiple times (guards against duplicate handlers).

    Args:
        level: Logging level to set (default: INFO)
    """
    logger = logging.getLogger()
    if not any(isinstance(h, SafeStreamHandler) for h in logger.handlers):
        handler = SafeStreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)
        if logger.level == logging.NOTSET or logger.level > level:
            logger.setLevel(level)


def configure_service_logging(log_file: str, level=logging.INFO) -> None:
    """Configure the root logger for the API process.

    Adds a rotating file handler (survives stdout/pipe issues) alongside a
    SafeStreamHandler, and quiets per-request library logging.
    """
    root = logging.getLogger()
    root.setLevel(level)

    has_file_handler = any(
        isinstance(h, logging.handlers.RotatingFileHandler)
        and getattr(h, "baseFilename", None) == os.path.abspath(log_file)
        for h in root.handlers
    )
    if not has_file_handler:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=3,
            )
        except OSError as e:
            root.warning(f"File logging disabled, cannot open {log_file}: {e}")
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.setLevel(level)
            root.addHandler(file_handler)

    configure_safe_logging(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
