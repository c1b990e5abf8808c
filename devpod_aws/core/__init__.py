"""Core provider functionality."""

from __future__ import annotations

from devpod_aws.core.interfaces import ComputeProvider, RemoteShell, RemoteShellFactory
from devpod_aws.core.options import Options, get_command, load_options
from devpod_aws.core.signals import (
    CancellationToken,
    get_cancellation_token,
    setup_signal_handlers,
)

__all__ = [
    "ComputeProvider",
    "RemoteShell",
    "RemoteShellFactory",
    "Options",
    "load_options",
    "get_command",
    "CancellationToken",
    "get_cancellation_token",
    "setup_signal_handlers",
]
