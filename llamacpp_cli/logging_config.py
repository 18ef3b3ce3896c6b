"""Loguru-based logging configuration.

Provides:
- Console output on stderr, kept quiet by default so it does not interleave
  with the chat session
- A rotating log file with the full retry history
- Intercept handler for standard logging compatibility

Defaults come from ClientSettings (LLAMACPP_CLI_LOG_LEVEL, LLAMACPP_CLI_LOG_DIR).
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from llamacpp_cli.config import get_settings

LOG_FILE_NAME = "llamacpp-cli.log"

# Track if logging has been configured to avoid duplicate setup
_logging_configured = False


def setup_logging(level: str | None = None, log_dir: Path | None = None) -> None:
    """Configure Loguru logging.

    Sets up:
    - Console output (stderr) with colorized format
    - llamacpp-cli log file, always at DEBUG so retries can be inspected later

    Log files are rotated at 10 MB and retained for 7 days.

    Args:
        level: Console log level, defaults to ClientSettings.log_level
        log_dir: Log directory, defaults to ClientSettings.log_dir
    """
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    settings = get_settings()
    console_level = (level or settings.log_level).upper()
    directory = log_dir or settings.log_dir

    # Ensure log directory exists
    directory.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    # Console output (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    logger.add(
        directory / LOG_FILE_NAME,
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        rotation="10 MB",
        retention="7 days",
    )


# Standard-library loggers that only reach the sinks at WARNING and above
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _loguru_level(record: logging.LogRecord) -> str:
    """Map a stdlib record to a Loguru level name, or its number if unknown."""
    try:
        return logger.level(record.levelname).name
    except ValueError:
        return str(record.levelno)


class InterceptHandler(logging.Handler):
    """Forward stdlib records (httpx, httpcore) into the Loguru sinks.

    Messages are prefixed with the originating logger name so transport
    chatter can be told apart from the worker's own retry log.
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Skip logging's own frames so the record points at the library call site
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            _loguru_level(record), f"{record.name}: {record.getMessage()}"
        )


def intercept_standard_logging() -> None:
    """Route all standard logging through Loguru and quiet the HTTP stack."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
