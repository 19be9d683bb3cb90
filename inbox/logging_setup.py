"""Centralized logging configuration for the transaction inbox.

``configure_logging(...)`` attaches a single ``StreamHandler`` to each of the
project's package loggers (``inbox``, ``ledger``, ``extraction``). It is meant
to be called once by entrypoints (``api/index.py``, ``__main__`` blocks).

Library modules never attach handlers themselves; they only call
``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER_NAMES = ("inbox", "ledger", "extraction")
_CONFIGURED = False


def _level_from_name(name: str) -> int | None:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        numeric = _level_from_name(level)
        if numeric is not None:
            return numeric
    env_val = os.getenv("INBOX_LOG_LEVEL")
    if env_val:
        numeric = _level_from_name(env_val)
        if numeric is not None:
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package loggers exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level name. If ``None`` (or unrecognized),
        ``INBOX_LOG_LEVEL`` is used when set, otherwise ``logging.INFO``.
    fmt:
        Optional format string. Defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the handler (defaults to ``sys.stderr``).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    numeric_level = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s"))

    for name in PACKAGE_LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(numeric_level)
        logger.addHandler(handler)
        # Avoid double emission via the root logger.
        logger.propagate = False

    _CONFIGURED = True
