"""Logging for AgentTrail.

Every module logs through a child of the ``agent-trail`` logger. The CLI
configures it once: warnings on stderr (everything with ``-v``) and a debug
log of discovery, watcher and server activity in
``~/.cache/agent-trail/agent-trail.log``. Per-change chatter from
watchfiles is kept out of the console unless verbose.
"""

import logging
import sys
from pathlib import Path

# Log file location
LOG_DIR = Path.home() / ".cache" / "agent-trail"
LOG_FILE = LOG_DIR / "agent-trail.log"

# Create logger
logger = logging.getLogger("agent-trail")


def setup_logging(verbose: bool = False, log_to_file: bool = True) -> None:
    """Configure logging for the application.

    Safe to call more than once; handlers are only attached on the first call.

    Args:
        verbose: If True, log DEBUG level to console
        log_to_file: If True, also log to file
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    # watchfiles reports every change batch at INFO
    logging.getLogger("watchfiles").setLevel(logging.DEBUG if verbose else logging.WARNING)

    if logger.handlers:
        return

    # Console handler - warnings and errors unless verbose
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING if not verbose else logging.DEBUG)
    console_format = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler - all logs
    if log_to_file:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(LOG_FILE)
        except OSError as e:
            logger.warning(f"Cannot open log file {LOG_FILE}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_format = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            file_handler.setFormatter(file_format)
            logger.addHandler(file_handler)

    logger.debug("Logging initialized")


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for the logger (will be prefixed with app name)

    Returns:
        A logger instance
    """
    if name:
        return logging.getLogger(f"agent-trail.{name}")
    return logger
