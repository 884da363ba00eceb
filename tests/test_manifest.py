from __future__ import annotations

import dataclasses

import pytest

from tengu_init.manifest import (
    BASE_PACKAGES,
    DOCKER_PACKAGES,
    POSTGRESQL_PACKAGES,
    Manifest,
    build_install_manifest,
)
from tengu_init.steps import (
    EnsureDirectory,
    EnsureFirewall,
    EnsureService,
    EnsureUser,
    InstallDebFromUrl,
    InstallPackage,
    Repository,
    RunCommand,
    WriteFile,
)


class TestManifest:
    def test_defaults(self):
        manifest = Manifest("host")
        assert manifest.fqdn is None
        assert manifest.timezone == "UTC"
        assert manifest.locale == "en_US.UTF-8"
        assert len(manifest) == 0

    def test_add_keeps_order(self):
        manifest = Manifest("host")
        first, second = InstallPackage("vim"), InstallPackage("curl")
        manifest.add(first)
        manifest.add(second)
        assert list(manifest) == [first, second]

    def test_add_does_not_deduplicate(self):
        manifest = Manifest("host")
        manifest.add(InstallPackage("vim"))
        manifest.add(InstallPackage("vim"))
        assert len(manifest) == 2

    def test_add_rejects_foreign_objects(self):
        with pytest.raises(TypeError):
            Manifest("host").add("apt-get install vim")  # type: ignore[arg-type]


class TestBuildInstallManifest:
    def test_metadata(self, config):
        manifest = build_install_manifest(config)
        assert manifest.hostname == "tengu"
        assert manifest.fqdn == "api.test.example.com"
        assert manifest.timezone == "UTC"

    def test_step_count(self, config):
        assert len(build_install_manifest(config)) == 43

    def test_deterministic(self, config):
        first = build_install_manifest(config)
        second = build_install_manifest(config)
        assert first.steps == second.steps
        assert [s.description for s in first] == [s.description for s in second]

    def test_phase_order(self, config):
        kinds = [type(step) for step in build_install_manifest(config)]
        phases = [
            (EnsureUser, 1),
            (InstallPackage, len(BASE_PACKAGES) + 6),
            (InstallDebFromUrl, 2),
            (EnsureDirectory, 6),
            (WriteFile, 3),
            (EnsureFirewall, 1),
            (EnsureService, 4),
            (RunCommand, 2),
            (InstallDebFromUrl, 1),
            (EnsureService, 1),
            (RunCommand, 4),
        ]
        expected = [kind for kind, count in phases for _ in range(count)]
        assert kinds == expected

    def test_user_step(self, config):
        user = build_install_manifest(config).steps[0]
        assert isinstance(user, EnsureUser)
        assert user.name == "testuser"
        assert user.groups == ("docker", "sudo")
        assert user.sudo == "ALL=(ALL) NOPASSWD:ALL"
        assert user.ssh_keys == ("ssh-ed25519 AAAA... test@test",)

    def test_repository_backed_packages(self, config):
        packages = {
            step.name: step
            for step in build_install_manifest(config)
            if isinstance(step, InstallPackage)
        }
        for name in DOCKER_PACKAGES:
            assert packages[name].repository == Repository.docker()
        for name in POSTGRESQL_PACKAGES:
            assert packages[name].repository == Repository.postgresql()
        for name in BASE_PACKAGES:
            assert packages[name].repository is None
        assert list(packages)[: len(BASE_PACKAGES)] == list(BASE_PACKAGES)

    def test_files_embed_configuration(self, config):
        files = {
            step.path: step
            for step in build_install_manifest(config)
            if isinstance(step, WriteFile)
        }
        assert list(files) == [
            "/etc/tengu/config.toml",
            "/etc/caddy/Caddyfile",
            "/etc/fail2ban/jail.local",
        ]
        assert files["/etc/tengu/config.toml"].permissions == "0600"
        assert 'api_key = "test-api-key"' in files["/etc/tengu/config.toml"].content
        assert "api.test.example.com {" in files["/etc/caddy/Caddyfile"].content
        assert "maxretry = 3" in files["/etc/fail2ban/jail.local"].content

    def test_tengu_package_uses_release(self, config):
        debs = [s for s in build_install_manifest(config) if isinstance(s, InstallDebFromUrl)]
        assert [d.name for d in debs] == ["ollama", "tengu-caddy", "tengu"]
        assert "/download/v0.1.0-test/tengu_{arch}.deb" in debs[-1].url_template

    def test_tengu_package_latest_for_empty_release(self, config):
        manifest = build_install_manifest(dataclasses.replace(config, release=""))
        tengu = [s for s in manifest if isinstance(s, InstallDebFromUrl)][-1]
        assert "/releases/latest/download/" in tengu.url_template

    def test_database_bootstrap_is_guarded(self, config):
        commands = list(build_install_manifest(config).steps[-4:])
        assert [c.description for c in commands] == [
            "Create tengu PostgreSQL database",
            "Create tengu PostgreSQL user",
            "Grant PostgreSQL privileges to tengu",
            "Enable pgvector extension",
        ]
        for command in commands:
            assert isinstance(command, RunCommand)
            assert command.unless is not None
            assert "sudo -u postgres psql" in command.unless
        assert "has_database_privilege" in commands[2].unless
        assert "pg_extension" in commands[3].unless

    def test_services(self, config):
        services = [s.name for s in build_install_manifest(config) if isinstance(s, EnsureService)]
        assert services == ["docker", "postgresql", "fail2ban", "caddy", "tengu"]
