"""
Logging setup for the service.

Console output always; error.log and combined.log under LOG_DIR when
LOG_TO_FILE is enabled.
"""
import logging
from pathlib import Path

from app.config import Settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Configure the 'app' logger once per process.

    Args:
        settings: Application settings (LOG_LEVEL, LOG_DIR, LOG_TO_FILE)

    Returns:
        The configured 'app' logger
    """
    global _configured

    app_logger = logging.getLogger("app")
    if _configured:
        return app_logger

    formatter = logging.Formatter(LOG_FORMAT)
    app_logger.setLevel(settings.LOG_LEVEL)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    app_logger.addHandler(console)

    if settings.LOG_TO_FILE:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        error_handler = logging.FileHandler(log_dir / "error.log")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        app_logger.addHandler(error_handler)

        combined_handler = logging.FileHandler(log_dir / "combined.log")
        combined_handler.setFormatter(formatter)
        app_logger.addHandler(combined_handler)

    # Avoid duplicate lines through the root logger
    app_logger.propagate = False
    _configured = True
    return app_logger
