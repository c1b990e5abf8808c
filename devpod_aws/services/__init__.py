"""Provider-agnostic services (SSH sessions, key material)."""

from __future__ import annotations

from devpod_aws.services.keys import ensure_key_pair, load_private_key_file
from devpod_aws.services.ssh import SSHManager

__all__ = [
    "SSHManager",
    "ensure_key_pair",
    "load_private_key_file",
]
