"""Shared fixtures: a test configuration, a scripted remote shell and
recording stand-ins for the console and the progress indicator."""

from __future__ import annotations

import shutil
import typing as t

import pytest

from tengu_init.config import TenguConfig
from tengu_init.providers.baremetal import CLEANUP_COMMAND, EXECUTE_COMMAND, UPLOAD_COMMAND
from tengu_init.ssh import CommandResult

requires_bash = pytest.mark.skipif(
    not all(shutil.which(tool) for tool in ("bash", "sha256sum", "head")),
    reason="needs bash and coreutils",
)


@pytest.fixture
def config() -> TenguConfig:
    return TenguConfig(
        user="testuser",
        domain_platform="test.example.com",
        domain_apps="apps.example.com",
        cf_api_key="test-api-key",
        cf_email="test@example.com",
        resend_api_key="re_test",
        notify_email="notify@example.com",
        ssh_keys=("ssh-ed25519 AAAA... test@test",),
        release="v0.1.0-test",
    )


class RecordingConsole:
    def __init__(self, confirm_answer: bool = False) -> None:
        self.lines: list[tuple[str, str]] = []
        self.tables: list[tuple[str, list[tuple[str, str]]]] = []
        self.confirm_answer = confirm_answer
        self.questions: list[str] = []

    def info(self, value: str, style: str | None = None) -> None:
        self.lines.append(("info", value))

    def always(self, value: str, style: str | None = None) -> None:
        self.lines.append(("always", value))

    def warn(self, value: str) -> None:
        self.lines.append(("warn", value))

    def error(self, value: str) -> None:
        self.lines.append(("error", value))

    def banner(self, title: str, subtitle: str) -> None:
        self.lines.append(("banner", title))

    def table(self, title: str, rows: t.Iterable[tuple[str, str]]) -> None:
        self.tables.append((title, list(rows)))

    def confirm(self, question: str) -> bool:
        self.questions.append(question)
        return self.confirm_answer

    def texts(self, kind: str) -> list[str]:
        return [text for line_kind, text in self.lines if line_kind == kind]


class IndicatorRecorder:
    """Indicator factory that records every open and close."""

    def __init__(self) -> None:
        self.opened: list[str] = []
        self.closed: list[str] = []

    def __call__(self, label: str) -> "_RecordedIndicator":
        self.opened.append(label)
        return _RecordedIndicator(self, label)

    @property
    def open_count(self) -> int:
        return len(self.opened) - len(self.closed)


class _RecordedIndicator:
    def __init__(self, recorder: IndicatorRecorder, label: str) -> None:
        self._recorder = recorder
        self.label = label

    def close(self) -> None:
        self._recorder.closed.append(self.label)


class FakeStream:
    def __init__(self, lines: t.Sequence[str], status: int) -> None:
        self._lines = list(lines)
        self._status = status

    def __iter__(self) -> t.Iterator[str]:
        yield from self._lines

    def exit_status(self) -> int:
        return self._status


class FakeShell:
    """Scripted stand-in for :class:`tengu_init.ssh.SshShell`."""

    def __init__(
        self,
        *,
        reachable_after: int | None = 1,
        upload: CommandResult | Exception = CommandResult(0, "", ""),
        lines: t.Sequence[str] = (),
        exit_status: int = 0,
        cleanup: CommandResult | Exception = CommandResult(0, "", ""),
    ) -> None:
        self.reachable_after = reachable_after
        self.upload = upload
        self.lines = lines
        self.script_exit_status = exit_status
        self.cleanup = cleanup
        self.probes = 0
        self.commands: list[str] = []
        self.uploaded: bytes | None = None
        self.stream_pty: bool | None = None
        self.closed = False

    def probe(self) -> bool:
        self.probes += 1
        return self.reachable_after is not None and self.probes >= self.reachable_after

    def run(self, command: str, stdin: bytes | None = None) -> CommandResult:
        self.commands.append(command)
        if command == UPLOAD_COMMAND:
            outcome = self.upload
            self.uploaded = stdin
        elif command == CLEANUP_COMMAND:
            outcome = self.cleanup
        else:
            raise AssertionError(f"unexpected command {command!r}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def stream(self, command: str, *, pty: bool = True) -> FakeStream:
        self.commands.append(command)
        self.stream_pty = pty
        if command == EXECUTE_COMMAND:
            return FakeStream(self.lines, self.script_exit_status)
        return FakeStream(self.lines, 0)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def recording_console() -> RecordingConsole:
    return RecordingConsole()


@pytest.fixture
def indicators() -> IndicatorRecorder:
    return IndicatorRecorder()
