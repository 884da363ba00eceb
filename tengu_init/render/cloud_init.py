from __future__ import annotations

import typing as t

import yaml

from tengu_init.config import TenguConfig
from tengu_init.manifest import Manifest

DOCUMENT_MARKER = "#cloud-config"
FINAL_MESSAGE = "Tengu PaaS server ready!"
USER_GROUPS = ("sudo", "docker")
USER_SHELL = "/bin/bash"
USER_SUDO = "ALL=(ALL) NOPASSWD:ALL"


class _DocumentDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    # Embedded scripts and config files stay readable as literal blocks.
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_DocumentDumper.add_representer(str, _represent_str)


class CloudInitRenderer:
    """Lower a manifest into a ``#cloud-config`` document."""

    def user_record(self, config: TenguConfig) -> dict[str, t.Any]:
        record: dict[str, t.Any] = {
            "name": config.user,
            "groups": ", ".join(USER_GROUPS),
            "shell": USER_SHELL,
            "sudo": USER_SUDO,
        }
        if config.ssh_keys:
            record["ssh_authorized_keys"] = list(config.ssh_keys)
        return record

    def build_document(
        self, manifest: Manifest, config: TenguConfig | None = None
    ) -> dict[str, t.Any]:
        packages: set[str] = set()
        write_files: list[dict[str, str]] = []
        runcmd: list[str] = []
        for step in manifest:
            fragment = step.to_document_fragment()
            packages.update(fragment.packages)
            write_files.extend(spec.as_document() for spec in fragment.write_files)
            runcmd.extend(fragment.runcmd)

        document: dict[str, t.Any] = {
            "hostname": manifest.hostname,
            "fqdn": manifest.fqdn,
            "timezone": manifest.timezone,
            "locale": manifest.locale,
            "ssh_pwauth": False,
            "disable_root": True,
            "users": [self.user_record(config)] if config is not None else [],
            "package_update": True,
            "package_upgrade": True,
            "packages": sorted(packages),
            "write_files": write_files,
            "runcmd": runcmd,
            "final_message": FINAL_MESSAGE,
        }
        return {key: value for key, value in document.items() if value not in (None, [])}

    def render(self, manifest: Manifest, config: TenguConfig | None = None) -> str:
        """Render ``manifest``; with ``config`` the document also creates the user."""
        body = yaml.dump(
            self.build_document(manifest, config),
            Dumper=_DocumentDumper,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=4096,
        )
        return f"{DOCUMENT_MARKER}\n{body}"
