#!/usr/bin/env python3
"""devpod-provider-aws - DevPod machine provider for AWS EC2."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, BinaryIO, Callable

import boto3

from devpod_aws.core.interfaces import ComputeProvider, RemoteShellFactory
from devpod_aws.lifecycle import LifecycleManager
from devpod_aws.providers.aws.compute import EC2Manager
from devpod_aws.services.ssh import SSHManager

logger = logging.getLogger(__name__)


class DevPodAWS:
    """Provider commands invoked by DevPod.

    Every command reads its options from the environment DevPod prepares.

    Parameters
    ----------
    compute_provider_factory : Callable[..., ComputeProvider] | None
        Optional factory for compute provider instances, called with ``region``
    ssh_manager_factory : RemoteShellFactory | None
        Optional factory for SSH sessions (default: SSHManager)
    boto3_client_factory : Callable | None
        Optional factory for boto3 clients (default: boto3.client)
    environ : Mapping[str, str] | None
        Environment override, mostly for tests
    """

    def __init__(
        self,
        compute_provider_factory: Callable[..., ComputeProvider] | None = None,
        ssh_manager_factory: RemoteShellFactory | None = None,
        boto3_client_factory: Callable | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._boto3_client_factory = boto3_client_factory or boto3.client
        self._compute_provider_factory_override = compute_provider_factory
        self._ssh_manager_factory = ssh_manager_factory or SSHManager
        self._environ = environ
        self._lifecycle_manager: LifecycleManager | None = None

    @property
    def compute_provider_factory(self) -> Callable[..., ComputeProvider]:
        """Get the compute provider factory."""
        if self._compute_provider_factory_override is not None:
            return self._compute_provider_factory_override
        return self._create_compute_provider

    def _create_compute_provider(self, region: str | None = None) -> ComputeProvider:
        return EC2Manager(region=region, boto3_client_factory=self._boto3_client_factory)

    @property
    def lifecycle_manager(self) -> LifecycleManager:
        """Get the lifecycle manager instance."""
        if self._lifecycle_manager is None:
            self._lifecycle_manager = LifecycleManager(
                compute_provider_factory=self.compute_provider_factory,
                ssh_manager_factory=self._ssh_manager_factory,
                environ=self._environ if self._environ is not None else os.environ,
            )
        return self._lifecycle_manager

    def init(self) -> None:
        """Validate provider options and AWS access."""
        self.lifecycle_manager.init()

    def create(self) -> dict[str, Any]:
        """Create the machine's network resources and instance."""
        return self.lifecycle_manager.create()

    def start(self) -> None:
        """Start the machine's stopped instance."""
        self.lifecycle_manager.start()

    def stop(self) -> None:
        """Stop the machine's running instance."""
        self.lifecycle_manager.stop()

    def delete(self) -> None:
        """Cancel any spot request and terminate the machine's instance."""
        self.lifecycle_manager.delete()

    def status(self) -> str:
        """Report the machine status: Running, Busy, Stopped or NotFound."""
        return self.lifecycle_manager.status().value

    def command(
        self,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> int:
        """Run ``$COMMAND`` on the machine and return its exit status."""
        return self.lifecycle_manager.command(stdin=stdin, stdout=stdout, stderr=stderr)


if __name__ == "__main__":
    from devpod_aws.cli.main import main

    main()
