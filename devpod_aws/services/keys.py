"""SSH key material stored in the machine folder."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import paramiko

from devpod_aws.constants import PRIVATE_KEY_FILENAME, PUBLIC_KEY_FILENAME, RSA_KEY_BITS
from devpod_aws.providers.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def private_key_path(machine_folder: str | Path) -> Path:
    return Path(machine_folder) / PRIVATE_KEY_FILENAME


def public_key_path(machine_folder: str | Path) -> Path:
    return Path(machine_folder) / PUBLIC_KEY_FILENAME


def ensure_key_pair(machine_folder: str | Path) -> str:
    """Return the machine's OpenSSH public key, generating the pair if needed.

    The private key is written with mode 0600. An existing private key without
    a public key file gets its public half re-derived.

    Parameters
    ----------
    machine_folder : str | Path
        Folder DevPod allocated for the machine

    Returns
    -------
    str
        Public key in ``ssh-rsa AAAA...`` form
    """
    folder = Path(machine_folder)
    folder.mkdir(parents=True, exist_ok=True)

    private_path = private_key_path(folder)
    public_path = public_key_path(folder)

    if private_path.exists():
        key = paramiko.RSAKey.from_private_key_file(str(private_path))
    else:
        logger.info("Generating SSH key pair in %s", folder)
        key = paramiko.RSAKey.generate(RSA_KEY_BITS)
        key.write_private_key_file(str(private_path))
        os.chmod(private_path, 0o600)

    public_key = f"{key.get_name()} {key.get_base64()}"
    if not public_path.exists():
        public_path.write_text(public_key + "\n")

    return public_key


def load_private_key_file(machine_folder: str | Path) -> str:
    """Return the path of an existing private key.

    Raises
    ------
    ConfigurationError
        If the machine folder holds no private key
    """
    path = private_key_path(machine_folder)
    if not path.is_file():
        raise ConfigurationError(f"load private key: {path} does not exist")
    return str(path)
