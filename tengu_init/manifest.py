from __future__ import annotations

import typing as t
from dataclasses import dataclass, field

from tengu_init.config import TenguConfig
from tengu_init.steps import (
    STEP_TYPES,
    EnsureDirectory,
    EnsureFirewall,
    EnsureService,
    EnsureUser,
    InstallDebFromUrl,
    InstallPackage,
    Repository,
    RunCommand,
    Step,
    WriteFile,
)

BASE_PACKAGES = (
    "curl",
    "wget",
    "git",
    "jq",
    "htop",
    "vim",
    "fail2ban",
    "ufw",
    "ca-certificates",
    "gnupg",
    "lsb-release",
    "unzip",
)

DOCKER_PACKAGES = ("docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin")

POSTGRESQL_PACKAGES = ("postgresql-16", "postgresql-16-pgvector")

TENGU_DIRECTORIES = (
    "/etc/tengu",
    "/var/lib/tengu",
    "/var/lib/tengu/apps",
    "/var/lib/tengu/repos",
    "/var/log/tengu",
    "/etc/caddy/sites",
)

FIREWALL_ALLOW = ("22/tcp", "80/tcp", "443/tcp")

SUDO_RULE = "ALL=(ALL) NOPASSWD:ALL"

PSQL = "sudo -u postgres psql"


@dataclass(slots=True)
class Manifest:
    """Ordered provisioning steps plus host metadata.

    Step order is execution order. Nothing is reordered or deduplicated.
    """

    hostname: str
    fqdn: str | None = None
    timezone: str = "UTC"
    locale: str = "en_US.UTF-8"
    steps: list[Step] = field(default_factory=list)

    def add(self, step: Step) -> None:
        if not isinstance(step, STEP_TYPES):
            raise TypeError(f"not a provisioning step: {step!r}")
        self.steps.append(step)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> t.Iterator[Step]:
        return iter(self.steps)


def _database_steps() -> list[RunCommand]:
    grant_check = (
        f'{PSQL} -tAc "SELECT '
        "has_database_privilege('tengu', 'tengu', 'CREATE') "
        "AND has_database_privilege('tengu', 'tengu', 'CONNECT') "
        "AND has_database_privilege('tengu', 'tengu', 'TEMPORARY')\" "
        "2>/dev/null | grep -qx t"
    )
    return [
        RunCommand(
            "Create tengu PostgreSQL database",
            f'{PSQL} -c "CREATE DATABASE tengu;"',
            unless=f"{PSQL} -lqt | cut -d '|' -f 1 | grep -qw tengu",
        ),
        RunCommand(
            "Create tengu PostgreSQL user",
            f"{PSQL} -c \"CREATE USER tengu WITH PASSWORD 'tengu';\"",
            unless=f"{PSQL} -tAc \"SELECT 1 FROM pg_roles WHERE rolname='tengu'\" | grep -q 1",
        ),
        RunCommand(
            "Grant PostgreSQL privileges to tengu",
            f'{PSQL} -c "GRANT ALL PRIVILEGES ON DATABASE tengu TO tengu;"',
            unless=grant_check,
        ),
        RunCommand(
            "Enable pgvector extension",
            f'{PSQL} -d tengu -c "CREATE EXTENSION IF NOT EXISTS vector;"',
            unless=(
                f"{PSQL} -d tengu -tAc \"SELECT 1 FROM pg_extension WHERE extname='vector'\" "
                "| grep -q 1"
            ),
        ),
    ]


def build_install_manifest(config: TenguConfig) -> Manifest:
    """Assemble the full, fixed installation sequence for ``config``.

    Deterministic: the same configuration always yields the same steps in the
    same order. Later steps assume the earlier ones have been applied.
    """
    manifest = Manifest("tengu", fqdn=f"api.{config.domain_platform}")

    manifest.add(
        EnsureUser(
            config.user,
            groups=("docker", "sudo"),
            sudo=SUDO_RULE,
            ssh_keys=tuple(config.ssh_keys),
        )
    )

    for package in BASE_PACKAGES:
        manifest.add(InstallPackage(package))

    for package in DOCKER_PACKAGES:
        manifest.add(InstallPackage(package, Repository.docker()))

    for package in POSTGRESQL_PACKAGES:
        manifest.add(InstallPackage(package, Repository.postgresql()))

    manifest.add(InstallDebFromUrl.ollama())
    manifest.add(InstallDebFromUrl.tengu_caddy())

    for path in TENGU_DIRECTORIES:
        manifest.add(EnsureDirectory(path, permissions="0755", owner="root:root"))

    manifest.add(
        WriteFile("/etc/tengu/config.toml", config.tengu_config_toml(), "0600", "root:root")
    )
    manifest.add(WriteFile("/etc/caddy/Caddyfile", config.caddyfile(), "0644", "root:root"))
    manifest.add(
        WriteFile("/etc/fail2ban/jail.local", config.fail2ban_config(), "0644", "root:root")
    )

    manifest.add(EnsureFirewall(allow=FIREWALL_ALLOW))

    for service in ("docker", "postgresql", "fail2ban", "caddy"):
        manifest.add(EnsureService(service))

    # The ollama package may ship only a user unit, so these never fail the run.
    manifest.add(
        RunCommand(
            "Enable ollama service",
            "systemctl enable ollama || true",
            unless="systemctl is-enabled ollama >/dev/null 2>&1",
        )
    )
    manifest.add(
        RunCommand(
            "Start ollama service",
            "systemctl start ollama || true",
            unless="systemctl is-active ollama >/dev/null 2>&1",
        )
    )

    manifest.add(InstallDebFromUrl.tengu(config.release))
    manifest.add(EnsureService("tengu"))

    for step in _database_steps():
        manifest.add(step)

    return manifest
