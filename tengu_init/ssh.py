from __future__ import annotations

import logging
import time
import typing as t
from dataclasses import dataclass

import paramiko

from tengu_init.errors import TransportError

_logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
PTY_WIDTH = 200
CHUNK_SIZE = 16 * 1024
POLL_INTERVAL = 0.05


@dataclass(frozen=True, slots=True)
class SshTarget:
    host: str
    user: str = "root"
    port: int = 22

    @classmethod
    def parse(cls, destination: str, port: int = 22) -> "SshTarget":
        """Parse ``user@host`` or a bare ``host`` (user defaults to root)."""
        user, _, host = destination.rpartition("@")
        if not host:
            raise ValueError(f"invalid SSH target: {destination!r}")
        return cls(host=host, user=user or "root", port=port)

    def __str__(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteStream(t.Protocol):
    def __iter__(self) -> t.Iterator[str]: ...

    def exit_status(self) -> int: ...


class RemoteShell(t.Protocol):
    """What the provisioning driver needs from a remote host."""

    def probe(self) -> bool: ...

    def run(self, command: str, stdin: bytes | None = None) -> CommandResult: ...

    def stream(self, command: str, *, pty: bool = True) -> RemoteStream: ...

    def close(self) -> None: ...


def _pull(channel: paramiko.Channel, stdout: list[bytes], stderr: list[bytes]) -> bool:
    pulled = False
    if channel.recv_ready():
        stdout.append(channel.recv(CHUNK_SIZE))
        pulled = True
    if channel.recv_stderr_ready():
        stderr.append(channel.recv_stderr(CHUNK_SIZE))
        pulled = True
    return pulled


def _read_output(channel: paramiko.Channel) -> tuple[bytes, bytes]:
    """Collect stdout and stderr side by side until the remote end sends EOF.

    Reading one stream to the end first stalls once the other fills its window.
    """
    stdout: list[bytes] = []
    stderr: list[bytes] = []
    while not (channel.eof_received or channel.closed):
        if not _pull(channel, stdout, stderr):
            time.sleep(POLL_INTERVAL)
    while _pull(channel, stdout, stderr):
        pass
    return b"".join(stdout), b"".join(stderr)


class _ChannelStream:
    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel

    def __iter__(self) -> t.Iterator[str]:
        try:
            with self._channel.makefile("rb") as output:
                for raw in output:
                    yield raw.decode("utf-8", errors="replace").rstrip("\r\n")
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"Lost SSH session while reading output: {exc}") from exc

    def exit_status(self) -> int:
        try:
            return self._channel.recv_exit_status()
        finally:
            self._channel.close()


class SshShell:
    """paramiko session to one host, opened lazily and reused.

    Host keys are accepted without checking: freshly created servers have
    keys nobody has seen yet.
    """

    def __init__(self, target: SshTarget, *, timeout: float = CONNECT_TIMEOUT) -> None:
        self.target = target
        self._timeout = timeout
        self._client: paramiko.SSHClient | None = None

    def __repr__(self) -> str:
        return f"<SshShell {self.target}>"

    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None:
            return self._client
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        _logger.debug("Connecting to %s", self.target)
        try:
            client.connect(
                self.target.host,
                port=self.target.port,
                username=self.target.user,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                allow_agent=True,
                look_for_keys=True,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise TransportError(f"Cannot connect to {self.target}: {exc}") from exc
        self._client = client
        return client

    def _open_channel(self) -> paramiko.Channel:
        transport = self._connect().get_transport()
        if transport is None or not transport.is_active():
            self.close()
            raise TransportError(f"SSH transport to {self.target} is closed")
        try:
            return transport.open_session()
        except (paramiko.SSHException, OSError) as exc:
            self.close()
            raise TransportError(f"Cannot open SSH session on {self.target}: {exc}") from exc

    def probe(self) -> bool:
        """Run ``true`` and report whether the host answered."""
        try:
            return self.run("true").ok
        except TransportError as exc:
            _logger.info("SSH probe of %s failed: %r", self.target, exc)
            self.close()
            return False

    def run(self, command: str, stdin: bytes | None = None) -> CommandResult:
        _logger.info("Run on %s: %s", self.target, command)
        channel = self._open_channel()
        try:
            channel.exec_command(command)
            if stdin is not None:
                channel.sendall(stdin)
            channel.shutdown_write()
            stdout, stderr = _read_output(channel)
            status = channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"SSH command failed on {self.target}: {exc}") from exc
        finally:
            channel.close()
        _logger.debug("Exit status %d from %s", status, self.target)
        return CommandResult(
            status,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    def stream(self, command: str, *, pty: bool = True) -> _ChannelStream:
        """Start ``command`` and iterate its output line by line."""
        _logger.info("Stream on %s: %s", self.target, command)
        channel = self._open_channel()
        try:
            if pty:
                channel.get_pty(width=PTY_WIDTH)
            channel.exec_command(command)
        except (paramiko.SSHException, OSError) as exc:
            channel.close()
            raise TransportError(f"SSH command failed on {self.target}: {exc}") from exc
        return _ChannelStream(channel)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
