from __future__ import annotations

import pytest

from conftest import FakeShell
from tengu_init.errors import ConnectionTimeout, ScriptFailed, TransportError, UploadFailed
from tengu_init.manifest import build_install_manifest
from tengu_init.providers.baremetal import (
    CLEANUP_COMMAND,
    EXECUTE_COMMAND,
    UPLOAD_COMMAND,
    BaremetalDriver,
    DriverState,
    expected_step_count,
    generate_script,
    provision_host,
)
from tengu_init.ssh import CommandResult, SshTarget

TARGET = SshTarget("203.0.113.10", user="chi", port=2222)

SCRIPT_OUTPUT = [
    "\x1b[0;36mTENGU_STEP:START:1:Ensure user chi exists\x1b[0m\r",
    "\x1b[1;33mTENGU_STEP:SKIP:1:Ensure user chi exists\x1b[0m\r",
    "\x1b[0;36mTENGU_STEP:START:2:Install curl\x1b[0m\r",
    "Reading package lists... Done\r",
    "Setting up curl (8.5.0-2ubuntu10) ...\r",
    "\x1b[0;32mTENGU_STEP:DONE:2:Install curl\x1b[0m\r",
    "\x1b[0;32mTENGU_STEP:COMPLETE:2:Provisioning complete\x1b[0m\r",
]


class Sleeper:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _driver(shell, console, indicators, sleeper=None) -> BaremetalDriver:
    return BaremetalDriver(
        shell,
        TARGET,
        console,
        indicator_factory=indicators,
        sleep=sleeper if sleeper is not None else Sleeper(),
    )


class TestBaremetalDriver:
    def test_successful_run(self, recording_console, indicators):
        shell = FakeShell(lines=SCRIPT_OUTPUT)
        driver = _driver(shell, recording_console, indicators)
        driver.run("#!/usr/bin/env bash\necho hi\n", total_steps=2)

        assert driver.state is DriverState.DONE
        assert driver.history == [
            DriverState.CONNECTING,
            DriverState.UPLOADING,
            DriverState.EXECUTING,
            DriverState.CLEANING_UP,
            DriverState.DONE,
        ]
        assert shell.commands == [UPLOAD_COMMAND, EXECUTE_COMMAND, CLEANUP_COMMAND]
        assert shell.uploaded == b"#!/usr/bin/env bash\necho hi\n"
        assert shell.stream_pty is True
        assert recording_console.texts("always") == [
            "[1/2] ○ Ensure user chi exists (skipped)",
            "[2/2] ✓ Install curl",
        ]
        assert indicators.open_count == 0

    def test_commands(self):
        assert UPLOAD_COMMAND == "cat > /tmp/tengu-provision.sh && chmod +x /tmp/tengu-provision.sh"
        assert EXECUTE_COMMAND == "sudo /tmp/tengu-provision.sh"
        assert CLEANUP_COMMAND == "rm -f /tmp/tengu-provision.sh"

    def test_waits_until_reachable(self, recording_console, indicators):
        sleeper = Sleeper()
        shell = FakeShell(reachable_after=4)
        _driver(shell, recording_console, indicators, sleeper).run("x", 0)
        assert shell.probes == 4
        assert sleeper.calls == [2.0, 2.0, 2.0]

    def test_connection_timeout(self, recording_console, indicators):
        sleeper = Sleeper()
        shell = FakeShell(reachable_after=None)
        driver = _driver(shell, recording_console, indicators, sleeper)
        with pytest.raises(ConnectionTimeout) as excinfo:
            driver.run("x", 0)
        assert shell.probes == 30
        assert len(sleeper.calls) == 29
        assert excinfo.value.host == "203.0.113.10"
        assert excinfo.value.port == 2222
        assert "203.0.113.10:2222" in str(excinfo.value)
        assert driver.state is DriverState.FAILED
        assert shell.commands == []

    def test_upload_rejected(self, recording_console, indicators):
        shell = FakeShell(upload=CommandResult(1, "", "No space left on device\n"))
        driver = _driver(shell, recording_console, indicators)
        with pytest.raises(UploadFailed) as excinfo:
            driver.run("x", 0)
        assert "No space left on device" in str(excinfo.value)
        assert driver.history[-1] is DriverState.FAILED
        assert shell.commands == [UPLOAD_COMMAND]

    def test_upload_transport_error(self, recording_console, indicators):
        shell = FakeShell(upload=TransportError("connection reset"))
        with pytest.raises(UploadFailed, match="connection reset"):
            _driver(shell, recording_console, indicators).run("x", 0)

    def test_script_failure(self, recording_console, indicators):
        lines = [
            "TENGU_STEP:START:1:Install curl",
            "E: Unable to locate package curl",
            "TENGU_STEP:FAIL:1:Install curl",
        ]
        shell = FakeShell(lines=lines, exit_status=100)
        driver = _driver(shell, recording_console, indicators)
        with pytest.raises(ScriptFailed) as excinfo:
            driver.run("x", 1)
        assert excinfo.value.exit_status == 100
        assert driver.state is DriverState.FAILED
        assert DriverState.CLEANING_UP not in driver.history
        assert recording_console.texts("always") == ["[1/1] ✗ Install curl"]
        assert indicators.open_count == 0

    def test_cleanup_failure_is_only_a_warning(self, recording_console, indicators):
        shell = FakeShell(cleanup=CommandResult(1, "", "rm: Operation not permitted"))
        driver = _driver(shell, recording_console, indicators)
        driver.run("x", 0)
        assert driver.state is DriverState.DONE
        assert driver.cleanup_error is not None
        assert recording_console.texts("warn") == [
            "Could not remove temp script: rm: Operation not permitted"
        ]

    def test_cleanup_transport_error_is_only_a_warning(self, recording_console, indicators):
        shell = FakeShell(cleanup=TransportError("gone"))
        driver = _driver(shell, recording_console, indicators)
        driver.run("x", 0)
        assert driver.state is DriverState.DONE
        assert len(recording_console.texts("warn")) == 1

    def test_rerun_after_failure_starts_over(self, recording_console, indicators):
        shell = FakeShell(lines=["TENGU_STEP:START:1:a", "TENGU_STEP:FAIL:1:a"], exit_status=1)
        driver = _driver(shell, recording_console, indicators)
        with pytest.raises(ScriptFailed):
            driver.run("x", 1)
        shell.script_exit_status = 0
        shell.lines = ["TENGU_STEP:START:1:a", "TENGU_STEP:DONE:1:a"]
        driver.run("x", 1)
        assert driver.state is DriverState.DONE
        assert driver.error is None
        assert shell.commands.count(UPLOAD_COMMAND) == 2


class TestScriptGeneration:
    def test_step_count_matches_script(self, config):
        script = generate_script(config)
        total = expected_step_count(config)
        assert total == len(build_install_manifest(config))
        assert f"TENGU_STEP:COMPLETE:{total}:Provisioning complete" in script
        assert "CYAN=$'" in script

    def test_provision_host_uploads_generated_script(self, config, recording_console):
        shell = FakeShell(lines=["TENGU_STEP:COMPLETE:43:Provisioning complete"])
        driver = provision_host(config, TARGET, recording_console, shell=shell)
        assert driver.state is DriverState.DONE
        assert shell.uploaded == generate_script(config).encode("utf-8")
        assert shell.closed

    def test_provision_host_closes_shell_on_failure(self, config, recording_console):
        shell = FakeShell(upload=CommandResult(1, "", "denied"))
        with pytest.raises(UploadFailed):
            provision_host(config, TARGET, recording_console, shell=shell)
        assert shell.closed