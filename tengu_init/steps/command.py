from __future__ import annotations

from dataclasses import dataclass

from tengu_init.steps.base import DocumentFragment


@dataclass(frozen=True, slots=True)
class RunCommand:
    """Arbitrary shell command, skipped when ``unless`` succeeds."""

    description: str
    command: str
    unless: str | None = None

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(runcmd=self.to_shell_commands())

    def to_shell_commands(self) -> list[str]:
        if self.unless is None:
            return [self.command]
        return [f"{self.unless} || {{ {self.command}; }}"]

    def guard_command(self) -> str | None:
        return self.unless
