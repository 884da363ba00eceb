from __future__ import annotations

import hashlib
from dataclasses import dataclass

from tengu_init.steps.base import DocumentFragment, FileSpec, quote

HEREDOC_DELIMITERS = ("TENGU_EOF", "__TENGU_FILE_END__", "__FILE_CONTENT_END_MARKER__")


def pick_delimiter(content: str, candidates: tuple[str, ...] = HEREDOC_DELIMITERS) -> str:
    """Return the first candidate that does not occur anywhere in ``content``."""
    for candidate in candidates:
        if candidate not in content:
            return candidate
    raise ValueError(
        "file content contains every heredoc delimiter candidate: " + ", ".join(candidates)
    )


@dataclass(frozen=True, slots=True)
class WriteFile:
    path: str
    content: str
    permissions: str | None = None
    owner: str | None = None

    @property
    def description(self) -> str:
        return f"Write {self.path}"

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content.encode("utf-8")).hexdigest()

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(
            write_files=[FileSpec(self.path, self.content, self.permissions, self.owner)]
        )

    def to_shell_commands(self) -> list[str]:
        path = quote(self.path)
        delimiter = pick_delimiter(self.content)
        size = len(self.content.encode("utf-8"))
        # The heredoc always appends a newline; head -c keeps the exact bytes.
        write_block = (
            f"CURRENT=$(sha256sum {path} 2>/dev/null | cut -d' ' -f1 || echo none)\n"
            f'if [ "$CURRENT" != "{self.content_hash}" ]; then\n'
            f"head -c {size} > {path} <<'{delimiter}'\n"
            f"{self.content}\n"
            f"{delimiter}\n"
            "fi"
        )
        commands = [f'mkdir -p "$(dirname {path})"', write_block]
        if self.permissions is not None:
            commands.append(f"chmod {quote(self.permissions)} {path}")
        if self.owner is not None:
            commands.append(f"chown {quote(self.owner)} {path}")
        return commands

    def guard_command(self) -> str:
        path = quote(self.path)
        return (
            f"[ -f {path} ] && "
            f"[ \"$(sha256sum {path} | cut -d' ' -f1)\" = \"{self.content_hash}\" ]"
        )
