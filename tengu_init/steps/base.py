from __future__ import annotations

import shlex
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FileSpec:
    """A file entry of the boot-time document's ``write_files`` list."""

    path: str
    content: str
    permissions: str | None = None
    owner: str | None = None

    def as_document(self) -> dict[str, str]:
        entry = {"path": self.path, "content": self.content}
        if self.permissions is not None:
            entry["permissions"] = self.permissions
        if self.owner is not None:
            entry["owner"] = self.owner
        return entry


@dataclass(slots=True)
class DocumentFragment:
    """A single step's contribution to the boot-time document."""

    packages: list[str] = field(default_factory=list)
    write_files: list[FileSpec] = field(default_factory=list)
    runcmd: list[str] = field(default_factory=list)


def quote(value: str) -> str:
    return shlex.quote(value)


def double_quote(value: str) -> str:
    """Quote for the shell while still allowing ``$(...)`` substitutions."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("`", "\\`")
    return f'"{escaped}"'
