# Copyright 2025 Sushanth (https://github.com/sushanthpy)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Package logging.

The library stays silent unless asked: a ``NullHandler`` is attached to the
``vsag_index`` logger at import time. Set ``VSAG_LOG_LEVEL`` or call
``setup_logging()`` to get output on stderr.

Usage::

    from ._logging import get_logger

    logger = get_logger(__name__)
    logger.debug("created index handle", extra={"index_type": "hnsw"})

Environment::

    VSAG_LOG_LEVEL=debug|info|warn|error|off (default: off)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

__all__ = ["get_logger", "setup_logging"]

LOGGER_NAME = "vsag_index"

_NAME_TO_LEVEL = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
    "none": logging.CRITICAL + 10,
}

_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"

# Marks the handler we install so setup_logging() can be called repeatedly.
_HANDLER_ATTR = "_vsag_index_handler"

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the package hierarchy."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def _resolve_level(level: Union[str, int, None]) -> Optional[int]:
    if level is None:
        return None
    if isinstance(level, int):
        return level
    try:
        return _NAME_TO_LEVEL[level.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level {level!r}; expected one of {sorted(_NAME_TO_LEVEL)}"
        ) from None


def setup_logging(
    level: Union[str, int, None] = None,
    stream=None,
) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    Args:
        level: Level name or number. Defaults to ``VSAG_LOG_LEVEL`` and, when
            that is unset, to ``warn``.
        stream: Output stream (default: ``sys.stderr``).

    Returns:
        The package root logger.
    """
    if level is None:
        level = os.environ.get("VSAG_LOG_LEVEL", "warn")
    resolved = _resolve_level(level)

    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)
    root.setLevel(resolved)
    return root


if os.environ.get("VSAG_LOG_LEVEL"):
    setup_logging()
