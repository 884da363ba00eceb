from __future__ import annotations

import typing as t
from pathlib import Path


class TenguInitError(Exception):
    """Base class for failures that end a provisioning run."""

    exit_code = 1


class ConfigurationInvalid(TenguInitError):
    def __init__(
        self,
        missing: t.Sequence[str] = (),
        config_path: Path | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        self.missing = list(missing)
        self.config_path = config_path
        self.reason = reason
        if reason is not None:
            message = f"Failed to read config {config_path}: {reason}"
        else:
            message = f"Missing required credentials: {', '.join(self.missing)}"
        super().__init__(message)

    def guidance(self) -> list[str]:
        if self.reason is not None:
            return [f"Fix or remove {self.config_path} and retry."]
        lines: list[str] = []
        if self.config_path is not None:
            lines.append(f"Add to config file: {self.config_path}")
            lines.append("")
        lines.extend(
            [
                "  [cloudflare]",
                '  api_key = "your-api-key"',
                '  email = "your-email"',
                "",
                "  [resend]",
                '  api_key = "re_xxx"',
            ]
        )
        return lines


class ConnectionTimeout(TenguInitError):
    def __init__(self, host: str, port: int, attempts: int) -> None:
        self.host = host
        self.port = port
        self.attempts = attempts
        super().__init__(
            f"Could not connect to {host}:{port} via SSH after {attempts} attempts"
        )


class TransportError(TenguInitError):
    """The remote shell session broke while a command was running."""


class UploadFailed(TenguInitError):
    def __init__(self, stderr: str) -> None:
        self.stderr = stderr
        super().__init__(f"Failed to upload script: {stderr.strip() or 'unknown error'}")


class ScriptFailed(TenguInitError):
    def __init__(self, exit_status: int) -> None:
        self.exit_status = exit_status
        super().__init__(f"Provisioning script failed with exit code: {exit_status}")


class CleanupFailed(TenguInitError):
    """Never fatal; the driver reports it as a warning."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Could not remove temp script: {detail}")


class ProviderError(TenguInitError):
    def __init__(self, message: str, stderr: str = "") -> None:
        self.stderr = stderr
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class ReleaseLookupFailed(TenguInitError):
    pass
