"""Layered settings: CLI flags > environment > init file > defaults.

The init file is TOML at ``$XDG_CONFIG_HOME/tengu/init.toml`` (or
``~/.config/tengu/init.toml``)::

    [server]
    name = "tengu"
    type = "cax41"
    location = "hel1"
    image = "ubuntu-24.04"
    release = "v0.1.0-a680bf0"

    [domains]
    platform = "tengu.to"
    apps = "tengu.host"

    [cloudflare]
    api_key = "..."
    email = "..."

    [resend]
    api_key = "re_..."

    [ssh]
    public_key = "ssh-ed25519 ..."

    [notifications]
    email = "admin@example.com"
"""

from __future__ import annotations

import logging
import os
import tomllib
import typing as t
from dataclasses import dataclass, field
from pathlib import Path

from tengu_init.config import DEFAULT_RELEASE, DEFAULT_USER, TenguConfig
from tengu_init.errors import ConfigurationInvalid
from tengu_init.releases import resolve_release

_logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "tengu"
DEFAULT_SERVER_TYPE = "cax41"
DEFAULT_LOCATION = "hel1"
DEFAULT_IMAGE = "ubuntu-24.04"
DEFAULT_DOMAIN_PLATFORM = "tengu.to"
DEFAULT_DOMAIN_APPS = "tengu.host"
DEFAULT_NOTIFY_EMAIL = "admin@example.com"

# (init file section, key, environment variable, placeholder)
REQUIRED_CREDENTIALS = (
    ("cloudflare", "api_key", "CF_API_KEY", "<CF_API_KEY>"),
    ("cloudflare", "email", "CF_EMAIL", "<CF_EMAIL>"),
    ("resend", "api_key", "RESEND_API_KEY", "<RESEND_API_KEY>"),
)


@dataclass(frozen=True, slots=True)
class Overrides:
    """Values given on the command line; ``None`` means not given."""

    domain_platform: str | None = None
    domain_apps: str | None = None
    cf_api_key: str | None = None
    cf_email: str | None = None
    resend_api_key: str | None = None
    notify_email: str | None = None
    ssh_key: str | None = None
    release: str | None = None

    def credential(self, section: str, key: str) -> str | None:
        return {
            ("cloudflare", "api_key"): self.cf_api_key,
            ("cloudflare", "email"): self.cf_email,
            ("resend", "api_key"): self.resend_api_key,
        }[(section, key)]


@dataclass(frozen=True, slots=True)
class ServerSettings:
    name: str
    server_type: str
    location: str
    image: str


@dataclass(slots=True)
class InitFile:
    path: Path
    data: dict[str, t.Any] = field(default_factory=dict)

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def get(self, section: str, key: str) -> str | None:
        table = self.data.get(section)
        if not isinstance(table, dict):
            return None
        value = table.get(key)
        if value is None:
            return None
        return str(value)


def config_path(environ: t.Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    base = env.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "tengu" / "init.toml"


def load_init_file(path: Path | None = None) -> InitFile:
    """Read the init file; a missing file means every value takes its default."""
    path = path if path is not None else config_path()
    if not path.exists():
        _logger.debug("No init file at %s", path)
        return InitFile(path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationInvalid(config_path=path, reason=str(exc)) from exc
    _logger.debug("Loaded init file %s", path)
    return InitFile(path, data)


def _first(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def resolve_config(
    init_file: InitFile,
    overrides: Overrides | None = None,
    *,
    user: str = DEFAULT_USER,
    environ: t.Mapping[str, str] | None = None,
    placeholders: bool = False,
    release_resolver: t.Callable[[str], str] = resolve_release,
) -> TenguConfig:
    """Merge all layers into a :class:`TenguConfig`.

    Missing credentials raise :class:`ConfigurationInvalid`, unless
    ``placeholders`` is set, in which case visible placeholders are used.
    """
    overrides = overrides if overrides is not None else Overrides()
    env = os.environ if environ is None else environ

    credentials: dict[tuple[str, str], str] = {}
    missing: list[str] = []
    for section, key, variable, placeholder in REQUIRED_CREDENTIALS:
        value = _first(
            overrides.credential(section, key),
            env.get(variable),
            init_file.get(section, key),
        )
        if value is None:
            if not placeholders:
                missing.append(f"{section}.{key}")
            value = placeholder
        credentials[(section, key)] = value
    if missing:
        raise ConfigurationInvalid(missing, init_file.path)

    ssh_key = _first(
        overrides.ssh_key,
        env.get("SSH_PUBLIC_KEY"),
        init_file.get("ssh", "public_key"),
    )
    release = _first(overrides.release, init_file.get("server", "release")) or DEFAULT_RELEASE

    return TenguConfig(
        user=user,
        domain_platform=_first(overrides.domain_platform, init_file.get("domains", "platform"))
        or DEFAULT_DOMAIN_PLATFORM,
        domain_apps=_first(overrides.domain_apps, init_file.get("domains", "apps"))
        or DEFAULT_DOMAIN_APPS,
        cf_api_key=credentials[("cloudflare", "api_key")],
        cf_email=credentials[("cloudflare", "email")],
        resend_api_key=credentials[("resend", "api_key")],
        notify_email=_first(overrides.notify_email, init_file.get("notifications", "email"))
        or DEFAULT_NOTIFY_EMAIL,
        ssh_keys=(ssh_key,) if ssh_key else (),
        release=release_resolver(release),
    )


def resolve_server(
    init_file: InitFile,
    name: str | None = None,
    server_type: str | None = None,
    location: str | None = None,
    image: str | None = None,
) -> ServerSettings:
    return ServerSettings(
        name=_first(name, init_file.get("server", "name")) or DEFAULT_SERVER_NAME,
        server_type=_first(server_type, init_file.get("server", "type")) or DEFAULT_SERVER_TYPE,
        location=_first(location, init_file.get("server", "location")) or DEFAULT_LOCATION,
        image=_first(image, init_file.get("server", "image")) or DEFAULT_IMAGE,
    )
