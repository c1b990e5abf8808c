"""Global constants for devpod-provider-aws.

This module contains application-wide constants that are shared by the CLI,
the option loader and the SSH services. Values specific to EC2 live in
``devpod_aws.providers.aws.constants``.
"""

from enum import Enum

MACHINE_ID_PREFIX = "devpod-"
"""Prefix prepended to the machine identifier supplied by DevPod.

The prefixed identifier is used verbatim as the value of the machine tag on
every cloud resource belonging to the machine.
"""

SSH_USERNAME = "devpod"
"""Remote user created by the cloud-init script and used for SSH sessions."""

SSH_PORT = 22
"""Port used for SSH sessions to the instance."""

SSH_CONNECT_TIMEOUT_SECONDS = 10
"""Timeout for a single SSH connection attempt.

Each candidate address is tried exactly once, so this bounds how long an
unreachable public address delays the fallback to the private address.
"""

PRIVATE_KEY_FILENAME = "id_devpod_rsa"
"""File name of the machine's private key inside the machine folder."""

PUBLIC_KEY_FILENAME = "id_devpod_rsa.pub"
"""File name of the machine's public key inside the machine folder."""

RSA_KEY_BITS = 2048
"""Size of generated RSA keys."""

STREAM_CHUNK_SIZE = 32768
"""Buffer size for copying bytes between local stdio and the SSH channel."""

EXIT_ERROR = 1
"""Exit code indicating a cloud, SSH or unexpected error."""

EXIT_CONFIG_ERROR = 2
"""Exit code indicating missing or invalid configuration."""


class InstanceStatus(str, Enum):
    """Machine status values reported to DevPod on stdout."""

    RUNNING = "Running"
    BUSY = "Busy"
    STOPPED = "Stopped"
    NOT_FOUND = "NotFound"


class SSHIngress(str, Enum):
    """Source range opened for inbound SSH on a created security group."""

    CALLER_IP = "caller-ip"
    ANYWHERE = "anywhere"
