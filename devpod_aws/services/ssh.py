"""SSH connection and command execution management."""

from __future__ import annotations

import logging
import select
import sys
import threading
from typing import BinaryIO

import paramiko
from paramiko.channel import Channel

from devpod_aws.constants import (
    SSH_CONNECT_TIMEOUT_SECONDS,
    SSH_PORT,
    SSH_USERNAME,
    STREAM_CHUNK_SIZE,
)
from devpod_aws.providers.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

SELECT_TIMEOUT_SECONDS = 0.1


class SSHManager:
    """Runs a single command on an instance over SSH.

    Parameters
    ----------
    host : str
        Remote host IP address or hostname
    key_file : str
        Path to SSH private key file
    username : str
        SSH username (default: devpod)
    port : int
        SSH port (default: 22)

    Attributes
    ----------
    client : paramiko.SSHClient | None
        SSH client instance (None when not connected)
    """

    def __init__(
        self,
        host: str,
        key_file: str,
        username: str = SSH_USERNAME,
        port: int = SSH_PORT,
        timeout: float = SSH_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.key_file = key_file
        self.username = username
        self.port = port
        self.timeout = timeout
        self.client: paramiko.SSHClient | None = None
        self._active_channel: Channel | None = None

    def connect(self) -> None:
        """Establish the SSH connection with a single attempt.

        Raises
        ------
        paramiko.SSHException
            If the handshake or authentication fails
        OSError
            If the address refuses or times out, or the key cannot be read
        """
        key = paramiko.RSAKey.from_private_key_file(self.key_file)

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=key,
                timeout=self.timeout,
                auth_timeout=self.timeout,
                banner_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except (paramiko.SSHException, OSError):
            client.close()
            raise

        self.client = client
        logger.debug("Connected to %s@%s:%s", self.username, self.host, self.port)

    def execute_command(
        self,
        command: str,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> int:
        """Execute ``command`` and stream stdio as raw bytes.

        Parameters
        ----------
        command : str
            Command line run by the remote user's shell
        stdin, stdout, stderr : BinaryIO | None
            Local streams; default to the process's binary stdio

        Returns
        -------
        int
            Remote exit status

        Raises
        ------
        RuntimeError
            If SSH connection is not established
        ValueError
            If command is empty
        """
        if not command or not command.strip():
            raise ValueError("Command cannot be empty")

        if not self.client:
            raise RuntimeError("SSH connection not established")

        stdin = stdin if stdin is not None else sys.stdin.buffer
        stdout = stdout if stdout is not None else sys.stdout.buffer
        stderr = stderr if stderr is not None else sys.stderr.buffer

        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise RuntimeError("SSH connection not established")

        channel = transport.open_session()
        self._active_channel = channel

        try:
            channel.exec_command(command)

            pump = threading.Thread(
                target=self._pump_stdin, args=(stdin, channel), daemon=True
            )
            pump.start()

            self._stream_output(channel, stdout, stderr)
            return channel.recv_exit_status()

        except (KeyboardInterrupt, OperationCancelledError):
            self.close()
            raise

        finally:
            channel.close()
            self._active_channel = None

    def _pump_stdin(self, stdin: BinaryIO, channel: Channel) -> None:
        """Copy local stdin into the channel until EOF."""
        read = getattr(stdin, "read1", stdin.read)
        try:
            while True:
                data = read(STREAM_CHUNK_SIZE)
                if not data:
                    channel.shutdown_write()
                    return
                channel.sendall(data)
        except OSError as e:
            logger.debug("Stopped forwarding stdin to %s: %s", self.host, e)

    def _stream_output(self, channel: Channel, stdout: BinaryIO, stderr: BinaryIO) -> None:
        """Copy channel output to local streams until the command exits."""
        while True:
            received = False

            if channel.recv_ready():
                data = channel.recv(STREAM_CHUNK_SIZE)
                if data:
                    stdout.write(data)
                    stdout.flush()
                    received = True

            if channel.recv_stderr_ready():
                data = channel.recv_stderr(STREAM_CHUNK_SIZE)
                if data:
                    stderr.write(data)
                    stderr.flush()
                    received = True

            if received:
                continue

            if channel.exit_status_ready():
                break

            select.select([channel], [], [], SELECT_TIMEOUT_SECONDS)

    def close(self) -> None:
        """Close SSH connection and clean up resources."""
        if self._active_channel is not None:
            self._active_channel.close()
            self._active_channel = None

        if self.client:
            self.client.close()
            self.client = None
