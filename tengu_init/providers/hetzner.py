"""Create a fresh Hetzner Cloud server that provisions itself through cloud-init.

Server management goes through the ``hcloud`` CLI, which must be installed
and have an active context (``hcloud context create tengu``).
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
import textwrap
import time
import typing as t
from dataclasses import dataclass
from pathlib import Path

from tengu_init.config import TenguConfig
from tengu_init.console import Console
from tengu_init.errors import ConnectionTimeout, ProviderError
from tengu_init.manifest import build_install_manifest
from tengu_init.progress import Spinner
from tengu_init.render import CloudInitRenderer
from tengu_init.settings import ServerSettings
from tengu_init.ssh import RemoteShell, SshShell, SshTarget

_logger = logging.getLogger(__name__)

HCLOUD = "hcloud"
SERVER_TYPE_FORMAT = "format={{.Cores}} cores, {{.Memory}}GB RAM, {{.Architecture}}"

SSH_WAIT_ATTEMPTS = 60
SSH_WAIT_DELAY = 3.0
DELETE_SETTLE_DELAY = 2.0
PREVIEW_LINES = 50

CLOUD_INIT_LOG = "/var/log/cloud-init-output.log"
LOG_STREAM_COMMAND = textwrap.dedent(
    f"""\
    while [ ! -f {CLOUD_INIT_LOG} ]; do sleep 1; done
    tail -f {CLOUD_INIT_LOG} 2>/dev/null &
    PID=$!
    cloud-init status --wait >/dev/null 2>&1
    sleep 2
    kill $PID 2>/dev/null
    """
)
PROGRESS_KEYWORDS = (
    "Setting up",
    "Unpacking",
    "Created symlink",
    "enabled",
    "Processing",
    "tengu",
    "Tengu",
)


@dataclass(frozen=True, slots=True)
class ServerParams:
    name: str
    server_type: str
    image: str
    location: str
    user_data_path: Path


def _hcloud(*args: str) -> subprocess.CompletedProcess[str]:
    command = [HCLOUD, *args]
    _logger.info("Running %s", shlex.join(command))
    try:
        return subprocess.run(
            command,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as exc:
        raise ProviderError(
            "hcloud CLI not found; install it and run `hcloud context create tengu`"
        ) from exc


def server_type_info(server_type: str) -> str:
    """Describe a server type as ``"16 cores, 32GB RAM, arm"``."""
    completed = _hcloud("server-type", "describe", server_type, "-o", SERVER_TYPE_FORMAT)
    if completed.returncode != 0:
        raise ProviderError(f"Unknown server type: {server_type}", completed.stderr)
    return completed.stdout.strip()


def server_exists(name: str) -> bool:
    return _hcloud("server", "describe", name).returncode == 0


def delete_server(name: str) -> None:
    completed = _hcloud("server", "delete", name)
    if completed.returncode != 0:
        raise ProviderError(f"Failed to delete server {name}", completed.stderr)


def create_server(params: ServerParams) -> str:
    """Create the server and return its public IPv4 address."""
    completed = _hcloud(
        "server",
        "create",
        "--name",
        params.name,
        "--type",
        params.server_type,
        "--image",
        params.image,
        "--location",
        params.location,
        "--user-data-from-file",
        str(params.user_data_path),
    )
    if completed.returncode != 0:
        raise ProviderError("Failed to create server", completed.stderr)

    completed = _hcloud("server", "ip", params.name)
    ip = completed.stdout.strip()
    if completed.returncode != 0 or not ip:
        raise ProviderError(f"Failed to get IP of server {params.name}", completed.stderr)
    return ip


def clear_host_key(ip: str) -> None:
    """Forget a stale host key for ``ip``; best effort."""
    try:
        subprocess.run(
            ["ssh-keygen", "-R", ip],
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except FileNotFoundError:
        _logger.debug("ssh-keygen not found, not clearing host key for %s", ip)


def wait_for_ssh(
    shell: RemoteShell,
    target: SshTarget,
    *,
    attempts: int = SSH_WAIT_ATTEMPTS,
    delay: float = SSH_WAIT_DELAY,
    sleep: t.Callable[[float], None] = time.sleep,
) -> None:
    for attempt in range(1, attempts + 1):
        if shell.probe():
            return
        _logger.debug("SSH not ready on %s (%d/%d)", target, attempt, attempts)
        if attempt < attempts:
            sleep(delay)
    raise ConnectionTimeout(target.host, target.port, attempts)


def is_progress_line(line: str) -> bool:
    return any(keyword in line for keyword in PROGRESS_KEYWORDS)


def stream_cloud_init(shell: RemoteShell, console: Console) -> None:
    """Echo install progress from the cloud-init log until cloud-init is done."""
    console.info("─" * 50, style="dim")
    console.info("Cloud-init progress:", style="cyan")
    stream = shell.stream(LOG_STREAM_COMMAND, pty=False)
    for line in stream:
        if is_progress_line(line):
            console.info(f"  {line}", style="dim")
    status = stream.exit_status()
    _logger.debug("cloud-init log stream exited with %d", status)
    console.info("─" * 50, style="dim")


def configuration_rows(
    config: TenguConfig, server: ServerSettings, type_info: str
) -> list[tuple[str, str]]:
    return [
        ("Name", server.name),
        ("Type", f"{server.server_type} ({type_info})"),
        ("Location", server.location),
        ("Image", server.image),
        ("Cloudflare", config.cf_email),
        ("Resend", f"{config.resend_api_key[:12]}..."),
        ("Domains", f"{config.domain_platform}, {config.domain_apps}"),
        ("Release", config.release),
    ]


def success_rows(config: TenguConfig) -> list[tuple[str, str]]:
    return [
        ("SSH", f"ssh {config.user}@ssh.{config.domain_platform}"),
        ("API", f"https://api.{config.domain_platform}"),
        ("Docs", f"https://docs.{config.domain_platform}"),
        ("Apps", f"https://<app>.{config.domain_apps}"),
    ]


def render_user_data(config: TenguConfig) -> str:
    return CloudInitRenderer().render(build_install_manifest(config), config)


def run_hetzner(
    config: TenguConfig,
    server: ServerSettings,
    console: Console,
    *,
    dry_run: bool = False,
    force: bool = False,
    shell_factory: t.Callable[[SshTarget], RemoteShell] = SshShell,
    sleep: t.Callable[[float], None] = time.sleep,
) -> str | None:
    """Run the new-server flow. Returns the server IP, or ``None`` if nothing was created."""
    console.banner("TENGU CLOUD PROVISIONING", "Hetzner Cloud")
    type_info = server_type_info(server.server_type)
    console.table("Configuration", configuration_rows(config, server, type_info))

    console.info("Generating cloud-init configuration...")
    user_data = render_user_data(config)

    if dry_run:
        console.always("Dry run - not creating server", style="cyan")
        for line in user_data.splitlines()[:PREVIEW_LINES]:
            console.always(f"  {line}", style="dim")
        console.always("  ... (truncated)", style="dim")
        return None

    if server_exists(server.name):
        console.always(f"Server '{server.name}' already exists", style="yellow")
        if not force and not console.confirm("Delete and recreate?"):
            console.always("Aborted.")
            return None
        with Spinner(f"Deleting {server.name}..."):
            delete_server(server.name)
        console.info(f"✓ Deleted {server.name}", style="green")
        sleep(DELETE_SETTLE_DELAY)

    with tempfile.TemporaryDirectory(prefix="tengu-init-") as tmp:
        user_data_path = Path(tmp) / "cloud-init.yml"
        user_data_path.write_text(user_data, encoding="utf-8")
        params = ServerParams(
            name=server.name,
            server_type=server.server_type,
            image=server.image,
            location=server.location,
            user_data_path=user_data_path,
        )
        with Spinner(f"Provisioning {server.name} on Hetzner..."):
            ip = create_server(params)
    console.info(f"✓ Server created, IP: {ip}", style="green")

    clear_host_key(ip)

    target = SshTarget(ip, user=config.user)
    shell = shell_factory(target)
    try:
        with Spinner("Waiting for SSH..."):
            wait_for_ssh(shell, target, sleep=sleep)
        console.info("✓ SSH ready", style="green")
        stream_cloud_init(shell, console)
    finally:
        shell.close()

    console.always("SERVER READY!", style="bold green")
    console.table("Endpoints", success_rows(config))
    return ip
