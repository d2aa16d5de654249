# pingmap/utils/logging.py

from __future__ import annotations

import logging
import sys

ROOT_LOGGER = "pingmap"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger living under the ``pingmap`` namespace.

    Modules call ``get_logger(__name__)``; names that are not already inside
    the package (e.g. "__main__") are re-parented so one handler covers them.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(verbose: bool = False) -> None:
    """
    Install a single stderr handler on the package logger.

    Calling it again replaces the previous handler, so logs follow whatever
    ``sys.stderr`` is now (the old stream may already be closed).
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    for old in [h for h in root.handlers if getattr(h, "_pingmap", False)]:
        root.removeHandler(old)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(root.level)
    handler._pingmap = True
    root.addHandler(handler)
