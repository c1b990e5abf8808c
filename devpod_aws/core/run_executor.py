"""Remote command execution with public to private address fallback."""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

import paramiko

from devpod_aws.constants import SSH_USERNAME
from devpod_aws.core.interfaces import RemoteShellFactory
from devpod_aws.providers.aws.ssh import get_ssh_candidate_hosts
from devpod_aws.providers.exceptions import InstanceNotReachableError

logger = logging.getLogger(__name__)


class RunExecutor:
    """Runs a command on a machine's instance over the first reachable address.

    Each candidate address gets exactly one connection attempt; there is no
    retry loop.

    Parameters
    ----------
    ssh_manager_factory : RemoteShellFactory
        Factory creating ``RemoteShell`` objects from host, key_file and username
    username : str
        Remote user to authenticate as
    """

    def __init__(
        self, ssh_manager_factory: RemoteShellFactory, username: str = SSH_USERNAME
    ) -> None:
        self.ssh_manager_factory = ssh_manager_factory
        self.username = username

    def execute(
        self,
        machine_id: str,
        instance: dict[str, Any],
        key_file: str,
        command: str,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> int:
        """Connect to ``instance`` and run ``command``.

        Parameters
        ----------
        machine_id : str
            Machine identifier, used in the reachability error
        instance : dict[str, Any]
            Normalized instance details with ``public_ip`` and ``private_ip``
        key_file : str
            Private key path
        command : str
            Command to run remotely
        stdin, stdout, stderr : BinaryIO | None
            Local streams forwarded to the remote command

        Returns
        -------
        int
            Remote exit status

        Raises
        ------
        InstanceNotReachableError
            If the instance has no address or no address accepts a session
        """
        hosts = get_ssh_candidate_hosts(instance)
        if not hosts:
            raise InstanceNotReachableError(machine_id)

        for host in hosts:
            shell = self.ssh_manager_factory(
                host=host, key_file=key_file, username=self.username
            )
            try:
                shell.connect()
            except (paramiko.SSHException, OSError) as e:
                logger.debug("error connecting to [%s]: %s", host, e)
                continue

            try:
                return shell.execute_command(
                    command, stdin=stdin, stdout=stdout, stderr=stderr
                )
            finally:
                shell.close()

        raise InstanceNotReachableError(machine_id)
