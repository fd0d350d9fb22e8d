import logging
import sys
import os
from logging.handlers import RotatingFileHandler


def setup_logger(name="FinSuggest"):
    """
    Configure a logger writing to a rotating file and stderr.
    Never stdout, which is reserved for command output.
    """
    # FINSUGGEST_LOG_DIR overrides the per-user default
    log_dir = os.environ.get("FINSUGGEST_LOG_DIR") or os.path.join(
        os.path.expanduser("~"), ".finsuggest", "logs"
    )
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "pipeline.log")

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Already configured (module reloaded or called twice)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # File Handler (Rotating)
    # Max 5MB, keep 3 backups
    file_handler = RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def set_log_level(level: str) -> None:
    """Apply a level name from config (e.g. "DEBUG") to the pipeline logger."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name in ("FinSuggest", "finsuggest"):
        logging.getLogger(name).setLevel(resolved)


logger = setup_logger()
