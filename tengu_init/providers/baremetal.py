"""Provision an already running host over SSH.

The driver is a small state machine::

    CONNECTING -> UPLOADING -> EXECUTING -> CLEANING_UP -> DONE
         \\___________\\____________\\______________________-> FAILED

Every transition function returns the next state or raises a
:class:`~tengu_init.errors.TenguInitError`, which moves the driver to FAILED.
A failed run leaves the host in the state of the last completed step; since
every step is idempotent the same script can simply be uploaded and run again.
"""

from __future__ import annotations

import enum
import logging
import time
import typing as t

from tengu_init.config import TenguConfig
from tengu_init.errors import (
    CleanupFailed,
    ConnectionTimeout,
    ScriptFailed,
    TenguInitError,
    TransportError,
    UploadFailed,
)
from tengu_init.manifest import build_install_manifest
from tengu_init.markers import parse_progress_line
from tengu_init.progress import Indicator, ProgressReporter, Spinner
from tengu_init.render import BashRenderer
from tengu_init.ssh import RemoteShell, SshShell, SshTarget

_logger = logging.getLogger(__name__)

REMOTE_SCRIPT_PATH = "/tmp/tengu-provision.sh"
UPLOAD_COMMAND = f"cat > {REMOTE_SCRIPT_PATH} && chmod +x {REMOTE_SCRIPT_PATH}"
EXECUTE_COMMAND = f"sudo {REMOTE_SCRIPT_PATH}"
CLEANUP_COMMAND = f"rm -f {REMOTE_SCRIPT_PATH}"

MAX_CONNECT_ATTEMPTS = 30
RETRY_DELAY = 2.0


class DriverConsole(t.Protocol):
    def info(self, value: str, style: str | None = None) -> None: ...

    def always(self, value: str, style: str | None = None) -> None: ...

    def warn(self, value: str) -> None: ...


class DriverState(enum.Enum):
    CONNECTING = "connecting"
    UPLOADING = "uploading"
    EXECUTING = "executing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({DriverState.DONE, DriverState.FAILED})


def generate_script(config: TenguConfig) -> str:
    """The verbose, colored provisioning script for ``config``."""
    return BashRenderer(verbose=True, color=True).render(build_install_manifest(config))


def expected_step_count(config: TenguConfig) -> int:
    return len(build_install_manifest(config))


class BaremetalDriver:
    def __init__(
        self,
        shell: RemoteShell,
        target: SshTarget,
        console: DriverConsole,
        *,
        indicator_factory: t.Callable[[str], Indicator] = Spinner,
        max_attempts: int = MAX_CONNECT_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.shell = shell
        self.target = target
        self.console = console
        self.indicator_factory = indicator_factory
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.state = DriverState.CONNECTING
        self.history: list[DriverState] = []
        self.error: TenguInitError | None = None
        self.cleanup_error: CleanupFailed | None = None
        self._script = b""
        self._total = 0
        self._transitions: dict[DriverState, t.Callable[[], DriverState]] = {
            DriverState.CONNECTING: self._connect,
            DriverState.UPLOADING: self._upload,
            DriverState.EXECUTING: self._execute,
            DriverState.CLEANING_UP: self._cleanup,
        }

    def run(self, script: str, total_steps: int) -> None:
        """Drive ``script`` to completion on the target host.

        ``total_steps`` must be the step count of the manifest the script was
        rendered from. Raises the error that moved the driver to FAILED.
        """
        self._script = script.encode("utf-8")
        self._total = total_steps
        self.state = DriverState.CONNECTING
        self.history = []
        self.error = None
        self.cleanup_error = None

        while self.state not in TERMINAL_STATES:
            self.history.append(self.state)
            _logger.debug("Driver state %s", self.state.value)
            try:
                self.state = self._transitions[self.state]()
            except TenguInitError as exc:
                _logger.info("Driver failed in state %s: %s", self.state.value, exc)
                self.error = exc
                self.state = DriverState.FAILED
        self.history.append(self.state)

        if self.error is not None:
            raise self.error

    def _connect(self) -> DriverState:
        self.console.info(f"Waiting for SSH on {self.target.host}:{self.target.port}...")
        for attempt in range(1, self.max_attempts + 1):
            _logger.debug("SSH attempt %d/%d to %s", attempt, self.max_attempts, self.target)
            if self.shell.probe():
                self.console.info("SSH connection established", style="green")
                return DriverState.UPLOADING
            if attempt < self.max_attempts:
                self._sleep(self.retry_delay)
        raise ConnectionTimeout(self.target.host, self.target.port, self.max_attempts)

    def _upload(self) -> DriverState:
        self.console.info("Uploading provisioning script...")
        try:
            result = self.shell.run(UPLOAD_COMMAND, stdin=self._script)
        except TransportError as exc:
            raise UploadFailed(str(exc)) from exc
        if not result.ok:
            raise UploadFailed(result.stderr)
        return DriverState.EXECUTING

    def _execute(self) -> DriverState:
        self.console.info(f"Running {self._total} provisioning steps...")
        reporter = ProgressReporter(self._total, self.console, self.indicator_factory)
        stream = self.shell.stream(EXECUTE_COMMAND, pty=True)
        try:
            for line in stream:
                _logger.debug("remote: %s", line)
                event = parse_progress_line(line)
                if event is not None:
                    reporter.handle(event)
        finally:
            reporter.finish()
        status = stream.exit_status()
        if status != 0:
            raise ScriptFailed(status)
        return DriverState.CLEANING_UP

    def _cleanup(self) -> DriverState:
        detail: str | None = None
        try:
            result = self.shell.run(CLEANUP_COMMAND)
        except TransportError as exc:
            detail = str(exc)
        else:
            if not result.ok:
                detail = result.stderr.strip() or f"exit code {result.exit_status}"
        if detail is not None:
            self.cleanup_error = CleanupFailed(detail)
            _logger.warning("%s", self.cleanup_error)
            self.console.warn(str(self.cleanup_error))
        return DriverState.DONE


def provision_host(
    config: TenguConfig,
    target: SshTarget,
    console: DriverConsole,
    shell: RemoteShell | None = None,
) -> BaremetalDriver:
    """Render the script for ``config`` and run it on ``target``."""
    script = generate_script(config)
    total = expected_step_count(config)
    if shell is None:
        shell = SshShell(target)
    driver = BaremetalDriver(shell, target, console)
    try:
        driver.run(script, total)
    finally:
        shell.close()
    return driver
