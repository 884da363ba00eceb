from __future__ import annotations

import textwrap
from dataclasses import dataclass, field

DEFAULT_USER = "chi"
DEFAULT_RELEASE = "v0.1.0-a680bf0"


@dataclass(frozen=True, slots=True)
class TenguConfig:
    """Fully resolved installation parameters for one provisioning run."""

    user: str
    domain_platform: str
    domain_apps: str
    cf_api_key: str
    cf_email: str
    resend_api_key: str
    notify_email: str
    ssh_keys: tuple[str, ...] = field(default_factory=tuple)
    release: str = DEFAULT_RELEASE

    def fail2ban_config(self) -> str:
        return textwrap.dedent(
            """\
            [sshd]
            enabled = true
            port = ssh
            filter = sshd
            logpath = /var/log/auth.log
            maxretry = 3
            bantime = 3600
            findtime = 600
            """
        )

    def tengu_config_toml(self) -> str:
        platform = self.domain_platform
        return textwrap.dedent(
            f"""\
            # Tengu PaaS Configuration
            domain = "{self.domain_apps}"

            [cloudflare]
            api_key = "{self.cf_api_key}"
            email = "{self.cf_email}"

            [cloudflare.domains]
            platform = "{platform}"
            apps = "{self.domain_apps}"

            [cloudflare.services]
            api = "api.{platform}"
            docs = "docs.{platform}"
            git = "git.{platform}"
            ssh = "ssh.{platform}"
            """
        )

    def caddyfile(self) -> str:
        platform = self.domain_platform
        return textwrap.dedent(
            f"""\
            {{
                email {self.cf_email}
            }}

            import sites/*.caddy

            api.{platform} {{
                reverse_proxy localhost:8080
            }}

            docs.{platform} {{
                reverse_proxy localhost:8080
            }}

            git.{platform} {{
                reverse_proxy localhost:8080
            }}
            """
        )
