"""Protocols for the collaborators injected into the lifecycle manager."""

from __future__ import annotations

from typing import Any, BinaryIO, Protocol

from devpod_aws.constants import InstanceStatus


class RemoteShell(Protocol):
    """SSH-capable client used to run one command on the instance."""

    host: str

    def connect(self) -> None:
        """Open the session, raising ``OSError`` or ``paramiko.SSHException``."""
        ...

    def execute_command(
        self,
        command: str,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> int:
        """Run ``command`` streaming stdio and return its exit status."""
        ...

    def close(self) -> None:
        """Close the session."""
        ...


class RemoteShellFactory(Protocol):
    def __call__(self, host: str, key_file: str, username: str = ..., port: int = ...) -> RemoteShell:
        ...


class ComputeProvider(Protocol):
    """Machine-scoped compute operations used by the lifecycle manager."""

    def create(self, options: Any, public_key: str) -> dict[str, Any]:
        ...

    def start(self, machine_id: str) -> None:
        ...

    def stop(self, machine_id: str) -> None:
        ...

    def status(self, machine_id: str) -> InstanceStatus:
        ...

    def delete(self, machine_id: str) -> None:
        ...

    def get_running_instance(self, machine_id: str) -> dict[str, Any]:
        ...

    def validate(self) -> None:
        ...
