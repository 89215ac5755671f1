"""
Logging setup for brainsearch.

Library output from the embedding providers is quiet by default. The
``brainsearch`` logger always writes to a per-store operations log; debug
mode adds a stderr handler on the root logger.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

APP_LOGGER = "brainsearch"
OPS_LOG_NAME = "brainsearch-ops.log"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Loggers of libraries used by the embedding providers
_LIBRARY_LOGGERS = ("transformers", "sentence_transformers", "httpx", "openai")

# HuggingFace reads these when it is imported, so they are applied at import
# time as well as by configure_quiet_mode()
_QUIET_ENV = {
    "HF_HUB_DISABLE_PROGRESS_BARS": "1",
    "HF_HUB_DISABLE_TELEMETRY": "1",
    "TRANSFORMERS_VERBOSITY": "error",
    "TOKENIZERS_PARALLELISM": "false",
}


def _apply_quiet_env() -> None:
    for name, value in _QUIET_ENV.items():
        os.environ.setdefault(name, value)


if not os.environ.get("BRAINSEARCH_VERBOSE"):
    _apply_quiet_env()


def configure_quiet_mode(quiet: bool = True):
    """
    Silence provider libraries: progress bars, per-request HTTP logging
    and warnings. Does nothing when ``quiet`` is False.
    """
    if not quiet:
        return
    _apply_quiet_env()
    warnings.filterwarnings("ignore")
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def enable_debug_mode():
    """Log everything at DEBUG to stderr, including provider libraries."""
    warnings.filterwarnings("default")
    for name in ("HF_HUB_DISABLE_PROGRESS_BARS", "TRANSFORMERS_VERBOSITY"):
        os.environ.pop(name, None)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    has_stderr = any(
        isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
        for h in root.handlers
    )
    if not has_stderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)

    for name in (APP_LOGGER,) + _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """Attach a rotating operations log (1 MB x 3) for one store.

    The handler records INFO and above from the ``brainsearch`` logger
    whether or not --verbose is given. Pass it to detach_ops_log() when the
    store is closed.
    """
    handler = RotatingFileHandler(
        str(Path(store_path) / OPS_LOG_NAME),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.addHandler(handler)
    if app_logger.level == logging.NOTSET or app_logger.level > logging.INFO:
        app_logger.setLevel(logging.INFO)
    return handler


def detach_ops_log(handler: Optional[logging.Handler]) -> None:
    """Remove and close a handler returned by configure_ops_log()."""
    if handler is None:
        return
    logging.getLogger(APP_LOGGER).removeHandler(handler)
    handler.close()
