"""Provider command orchestration: options, key material, compute and SSH."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, BinaryIO

from devpod_aws.constants import InstanceStatus
from devpod_aws.core.interfaces import ComputeProvider, RemoteShellFactory
from devpod_aws.core.options import Options, get_command, load_options
from devpod_aws.core.run_executor import RunExecutor
from devpod_aws.services.keys import ensure_key_pair, load_private_key_file

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Maps DevPod provider commands onto compute and SSH operations.

    Options are loaded from the environment on every command, before any
    cloud client is created, so missing configuration fails fast.

    Parameters
    ----------
    compute_provider_factory : Callable[..., ComputeProvider]
        Factory creating a ``ComputeProvider`` for a region
    ssh_manager_factory : RemoteShellFactory
        Factory creating ``RemoteShell`` objects
    environ : Mapping[str, str] | None
        Environment to read options from; defaults to ``os.environ``
    """

    def __init__(
        self,
        compute_provider_factory: Callable[..., ComputeProvider],
        ssh_manager_factory: RemoteShellFactory,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.compute_provider_factory = compute_provider_factory
        self.ssh_manager_factory = ssh_manager_factory
        self.environ = environ

    def _load(self, init: bool = False) -> Options:
        return load_options(self.environ, init=init)

    def _provider(self, options: Options) -> ComputeProvider:
        return self.compute_provider_factory(region=options.region or None)

    def init(self) -> None:
        """Validate options and cloud access without a machine."""
        options = self._load(init=True)
        self._provider(options).validate()
        logger.info("AWS provider configuration is valid")

    def create(self) -> dict[str, Any]:
        """Generate key material if needed and launch the machine."""
        options = self._load()
        public_key = ensure_key_pair(options.machine_folder)
        return self._provider(options).create(options, public_key)

    def start(self) -> None:
        options = self._load()
        self._provider(options).start(options.machine_id)

    def stop(self) -> None:
        options = self._load()
        self._provider(options).stop(options.machine_id)

    def delete(self) -> None:
        options = self._load()
        self._provider(options).delete(options.machine_id)

    def status(self) -> InstanceStatus:
        options = self._load()
        return self._provider(options).status(options.machine_id)

    def command(
        self,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> int:
        """Run ``$COMMAND`` on the machine's running instance.

        Returns
        -------
        int
            Exit status of the remote command
        """
        options = self._load()
        command = get_command(self.environ)
        key_file = load_private_key_file(options.machine_folder)

        instance = self._provider(options).get_running_instance(options.machine_id)

        executor = RunExecutor(self.ssh_manager_factory)
        return executor.execute(
            options.machine_id,
            instance,
            key_file,
            command,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
        )
