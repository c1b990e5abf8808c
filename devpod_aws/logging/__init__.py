"""Logging setup for devpod-provider-aws.

Everything goes to stderr: stdout carries ``status`` output and the byte
stream of remote commands.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import TextIO

from devpod_aws.logging.formatters import LevelFormatter

DEBUG_ENV_VAR = "DEVPOD_DEBUG"
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "paramiko")

_TRUTHY = {"1", "true", "yes", "on"}


def is_debug_enabled(environ: Mapping[str, str]) -> bool:
    """Return True when ``DEVPOD_DEBUG`` holds a truthy value."""
    return environ.get(DEBUG_ENV_VAR, "").strip().lower() in _TRUTHY


def configure_logging(debug: bool = False, stream: TextIO | None = None) -> logging.Handler:
    """Install the stderr handler on the root logger.

    Parameters
    ----------
    debug : bool
        Log at DEBUG instead of INFO
    stream : TextIO | None
        Destination stream (default: sys.stderr)

    Returns
    -------
    logging.Handler
        The installed handler
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(LevelFormatter(verbose=debug))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler


__all__ = ["LevelFormatter", "configure_logging", "is_debug_enabled"]
