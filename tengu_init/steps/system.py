"""Directory, service, user and firewall assurance steps."""

from __future__ import annotations

from dataclasses import dataclass

from tengu_init.steps.base import DocumentFragment, quote


@dataclass(frozen=True, slots=True)
class EnsureDirectory:
    path: str
    permissions: str | None = None
    owner: str | None = None

    @property
    def description(self) -> str:
        return f"Ensure directory {self.path}"

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(runcmd=self.to_shell_commands())

    def to_shell_commands(self) -> list[str]:
        path = quote(self.path)
        commands = [f"mkdir -p {path}"]
        if self.permissions is not None:
            commands.append(f"chmod {quote(self.permissions)} {path}")
        if self.owner is not None:
            commands.append(f"chown {quote(self.owner)} {path}")
        return commands

    def guard_command(self) -> str:
        return f"[ -d {quote(self.path)} ]"


@dataclass(frozen=True, slots=True)
class EnsureService:
    name: str
    enabled: bool = True
    started: bool = True

    @property
    def description(self) -> str:
        return f"Ensure service {self.name}"

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(runcmd=self.to_shell_commands())

    def to_shell_commands(self) -> list[str]:
        name = quote(self.name)
        commands = []
        if self.enabled:
            commands.append(
                f"systemctl is-enabled {name} >/dev/null 2>&1 || systemctl enable {name}"
            )
        if self.started:
            commands.append(
                f"systemctl is-active {name} >/dev/null 2>&1 || systemctl start {name}"
            )
        return commands

    def guard_command(self) -> str | None:
        name = quote(self.name)
        if self.started:
            return f"systemctl is-active {name} >/dev/null 2>&1"
        if self.enabled:
            return f"systemctl is-enabled {name} >/dev/null 2>&1"
        return None


@dataclass(frozen=True, slots=True)
class EnsureUser:
    name: str
    groups: tuple[str, ...] = ()
    shell: str = "/bin/bash"
    sudo: str | None = None
    ssh_keys: tuple[str, ...] = ()

    @property
    def description(self) -> str:
        return f"Ensure user {self.name} exists"

    @property
    def home(self) -> str:
        return f"/home/{self.name}"

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(runcmd=self.to_shell_commands())

    def to_shell_commands(self) -> list[str]:
        name = quote(self.name)
        commands = [f"id {name} >/dev/null 2>&1 || useradd -m -s {quote(self.shell)} {name}"]

        if self.groups:
            groups = " ".join(quote(g) for g in self.groups)
            commands.append(
                f"for g in {groups}; do "
                f'getent group "$g" >/dev/null && usermod -aG "$g" {name} 2>/dev/null || true; '
                "done"
            )

        if self.sudo is not None:
            sudoers = quote(f"/etc/sudoers.d/{self.name}")
            rule = quote(f"{self.name} {self.sudo}")
            commands.append(
                f"grep -qxF {rule} {sudoers} 2>/dev/null || "
                f"{{ printf '%s\\n' {rule} > {sudoers} && chmod 440 {sudoers}; }}"
            )

        if self.ssh_keys:
            ssh_dir = quote(f"{self.home}/.ssh")
            authorized = quote(f"{self.home}/.ssh/authorized_keys")
            commands.append(f"mkdir -p {ssh_dir} && chmod 700 {ssh_dir}")
            for key in self.ssh_keys:
                key = quote(key)
                commands.append(
                    f"grep -qF {key} {authorized} 2>/dev/null || echo {key} >> {authorized}"
                )
            commands.append(
                f"chmod 600 {authorized} && chown -R {name}:{name} {ssh_dir}"
            )
        return commands

    def guard_command(self) -> str:
        return f"id {quote(self.name)} >/dev/null 2>&1"


@dataclass(frozen=True, slots=True)
class EnsureFirewall:
    """UFW policy plus allow rules such as ``22/tcp``."""

    allow: tuple[str, ...] = ()
    default_incoming: str = "deny"
    default_outgoing: str = "allow"

    @property
    def description(self) -> str:
        return "Configure firewall"

    def to_document_fragment(self) -> DocumentFragment:
        return DocumentFragment(runcmd=self.to_shell_commands())

    def to_shell_commands(self) -> list[str]:
        commands = [
            f"ufw default {quote(self.default_incoming)} incoming",
            f"ufw default {quote(self.default_outgoing)} outgoing",
        ]
        commands.extend(f"ufw allow {quote(rule)}" for rule in self.allow)
        commands.append("ufw status | grep -q 'Status: active' || ufw --force enable")
        return commands

    def guard_command(self) -> str:
        return "ufw status | grep -q 'Status: active'"
