from __future__ import annotations

import textwrap
from dataclasses import dataclass

from tengu_init.steps.base import DocumentFragment, double_quote, quote

TENGU_RELEASES_URL = "https://github.com/saiden-dev/tengu/releases"


@dataclass(frozen=True, slots=True)
class Repository:
    """An external apt source together with its signing key."""

    key_url: str
    repo_line: str
    keyring_path: str

    @classmethod
    def docker(cls) -> "Repository":
        return cls(
            key_url="https://download.docker.com/linux/ubuntu/gpg",
            repo_line=(
                "deb [arch=$(dpkg --print-architecture) "
                "signed-by=/usr/share/keyrings/docker-archive-keyring.gpg] "
                "https://download.docker.com/linux/ubuntu $(lsb_release -cs) stable"
            ),
            keyring_path="/usr/share/keyrings/docker-archive-keyring.gpg",
        )

    @classmethod
    def postgresql(cls) -> "Repository":
        return cls(
            key_url="https://www.postgresql.org/media/keys/ACCC4CF8.asc",
            repo_line=(
                "deb [signed-by=/usr/share/keyrings/postgresql-archive-keyring.gpg] "
                "https://apt.postgresql.org/pub/repos/apt $(lsb_release -cs)-pgdg main"
            ),
            keyring_path="/usr/share/keyrings/postgresql-archive-keyring.gpg",
        )

    def fetch_key_command(self) -> str:
        keyring = quote(self.keyring_path)
        return (
            f"curl -fsSL {quote(self.key_url)} "
            f"| gpg --batch --yes --dearmor -o {keyring}"
        )

    def list_path(self, package: str) -> str:
        return f"/etc/apt/sources.list.d/{package}.list"


@dataclass(frozen=True, slots=True)
class InstallPackage:
    name: str
    repository: Repository | None = None

    @property
    def description(self) -> str:
        return f"Install {self.name}"

    def to_document_fragment(self) -> DocumentFragment:
        # cloud-init installs `packages` before any runcmd entry adds an apt source.
        if self.repository is not None:
            return DocumentFragment(runcmd=self.to_shell_commands())
        return DocumentFragment(packages=[self.name])

    def to_shell_commands(self) -> list[str]:
        commands: list[str] = []
        repo = self.repository
        if repo is not None:
            commands.append(
                f"if [ ! -f {quote(repo.keyring_path)} ]; then "
                f"{repo.fetch_key_command()}; fi"
            )
            commands.append(
                f"REPO_LINE={double_quote(repo.repo_line)}\n"
                'if ! grep -qsF "$REPO_LINE" /etc/apt/sources.list.d/*.list; then '
                f'echo "$REPO_LINE" > {quote(repo.list_path(self.name))}; '
                "apt-get update; fi"
            )
        name = quote(self.name)
        # A stale package index on a fresh host gets one refresh before giving up.
        commands.append(
            f"dpkg -s {name} >/dev/null 2>&1 || apt-get install -y {name} "
            f"|| {{ apt-get update && apt-get install -y {name}; }}"
        )
        return commands

    def guard_command(self) -> str | None:
        return f"dpkg -s {quote(self.name)} >/dev/null 2>&1"


@dataclass(frozen=True, slots=True)
class InstallDebFromUrl:
    """Download a .deb (URL may carry an ``{arch}`` placeholder) and install it."""

    name: str
    url_template: str
    check: str | None = None

    @classmethod
    def ollama(cls) -> "InstallDebFromUrl":
        return cls(
            "ollama",
            "https://github.com/ollama/ollama/releases/latest/download/ollama-linux-{arch}.deb",
            check="command -v ollama >/dev/null 2>&1",
        )

    @classmethod
    def tengu_caddy(cls) -> "InstallDebFromUrl":
        return cls(
            "tengu-caddy",
            "https://github.com/saiden-dev/tengu-caddy/releases/latest/download/tengu-caddy_{arch}.deb",
        )

    @classmethod
    def tengu(cls, release: str) -> "InstallDebFromUrl":
        if release:
            url = f"{TENGU_RELEASES_URL}/download/{release}/tengu_{{arch}}.deb"
        else:
            url = f"{TENGU_RELEASES_URL}/latest/download/tengu_{{arch}}.deb"
        return cls("tengu", url)

    @property
    def description(self) -> str:
        return f"Install {self.name} from URL"

    @property
    def temp_path(self) -> str:
        return f"/tmp/{self.name}.deb"

    def _install_script(self) -> str:
        deb = quote(self.temp_path)
        return textwrap.dedent(
            f"""\
            ARCH=$(dpkg --print-architecture)
            URL=$(printf '%s' {quote(self.url_template)} | sed "s/{{arch}}/$ARCH/g")
            wget -q "$URL" -O {deb}
            dpkg -i {deb} || apt-get install -f -y
            rm -f {deb}"""
        )

    def to_document_fragment(self) -> DocumentFragment:
        body = textwrap.indent(self._install_script(), "    ")
        return DocumentFragment(runcmd=[f"if ! {self.guard_command()}; then\n{body}\nfi"])

    def to_shell_commands(self) -> list[str]:
        return [self._install_script()]

    def guard_command(self) -> str:
        if self.check is not None:
            return self.check
        return f"dpkg -s {quote(self.name)} >/dev/null 2>&1"
