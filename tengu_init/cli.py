#!/usr/bin/env python3
"""
tengu-init: provision a Tengu PaaS host.

    tengu-init [hetzner] [NAME]      create a Hetzner Cloud server (cloud-init)
    tengu-init baremetal USER@HOST   provision an existing server over SSH
    tengu-init show {cloud-init,bash}
"""

from __future__ import annotations

import argparse
import logging
import sys
import typing as t
from pathlib import Path

import dotenv

from tengu_init import __version__
from tengu_init.config import DEFAULT_USER
from tengu_init.console import Console
from tengu_init.errors import ConfigurationInvalid, TenguInitError
from tengu_init.manifest import build_install_manifest
from tengu_init.providers.baremetal import generate_script, provision_host
from tengu_init.providers.hetzner import run_hetzner
from tengu_init.render import BashRenderer, CloudInitRenderer
from tengu_init.settings import (
    InitFile,
    Overrides,
    config_path,
    load_init_file,
    resolve_config,
    resolve_server,
)
from tengu_init.ssh import SshTarget

_logger = logging.getLogger(__name__)

console = Console()


def _add_override_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--domain-platform", help="Platform domain (e.g. tengu.to)")
    parser.add_argument("--domain-apps", help="Apps domain (e.g. tengu.host)")
    parser.add_argument("--cf-api-key", help="Cloudflare API key")
    parser.add_argument("--cf-email", help="Cloudflare account email")
    parser.add_argument("--resend-api-key", help="Resend API key")
    parser.add_argument("--notify-email", help="Notification email")
    parser.add_argument("--ssh-key", help="SSH public key to authorize")
    parser.add_argument("--release", help="Tengu release tag, or 'latest'")


def _overrides(args: argparse.Namespace) -> Overrides:
    return Overrides(
        domain_platform=args.domain_platform,
        domain_apps=args.domain_apps,
        cf_api_key=args.cf_api_key,
        cf_email=args.cf_email,
        resend_api_key=args.resend_api_key,
        notify_email=args.notify_email,
        ssh_key=args.ssh_key,
        release=args.release,
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tengu-init",
        description="Provision Tengu PaaS on Hetzner Cloud or existing servers",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("-c", "--config", type=Path, help="Init file path")
    ap.add_argument(
        "--show-config",
        action="store_true",
        help="Show the init file path and exit",
    )
    ap.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log diagnostics to stderr",
    )
    sub = ap.add_subparsers(dest="command")

    hetzner = sub.add_parser("hetzner", help="Create a server on Hetzner Cloud (default)")
    hetzner.add_argument("name", nargs="?", help="Server name")
    hetzner.add_argument("-t", "--type", dest="server_type", help="Server type (e.g. cax41)")
    hetzner.add_argument("-l", "--location", help="Datacenter location (e.g. hel1)")
    hetzner.add_argument("--image", help="Ubuntu image")
    _add_override_arguments(hetzner)
    hetzner.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Delete and recreate an existing server without asking",
    )
    hetzner.add_argument(
        "--dry-run",
        action="store_true",
        help="Show configuration and cloud-init preview without creating anything",
    )

    baremetal = sub.add_parser("baremetal", help="Provision an existing server over SSH")
    baremetal.add_argument("host", help="SSH destination (user@host or host)")
    baremetal.add_argument("-p", "--port", type=int, default=22, help="SSH port")
    baremetal.add_argument(
        "--script-only",
        action="store_true",
        help="Print the provisioning script instead of running it",
    )
    _add_override_arguments(baremetal)

    show = sub.add_parser("show", help="Print the generated provisioning config")
    show.add_argument("format", choices=["cloud-init", "bash"])
    return ap


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        logging.getLogger("paramiko").setLevel(logging.WARNING)


def show_config(path: Path) -> None:
    console.always(f"Config: {path}")
    if path.is_file():
        console.always("  exists", style="green")
    else:
        console.always("  not found (will use defaults)", style="yellow")


def cmd_hetzner(args: argparse.Namespace, init_file: InitFile) -> None:
    config = resolve_config(init_file, _overrides(args))
    server = resolve_server(
        init_file,
        name=args.name,
        server_type=args.server_type,
        location=args.location,
        image=args.image,
    )
    run_hetzner(config, server, console, dry_run=args.dry_run, force=args.force)


def cmd_baremetal(args: argparse.Namespace, init_file: InitFile) -> None:
    target = SshTarget.parse(args.host, args.port)
    user = args.host.split("@", 1)[0] if "@" in args.host else DEFAULT_USER
    config = resolve_config(init_file, _overrides(args), user=user)

    if args.script_only:
        console.raw(generate_script(config))
        return

    console.banner("TENGU CLOUD PROVISIONING", f"Provisioning {args.host} via SSH")
    provision_host(config, target, console)

    console.always("SERVER READY!", style="bold green")
    console.table(
        "Endpoints",
        [
            ("API", f"https://api.{config.domain_platform}"),
            ("Docs", f"https://docs.{config.domain_platform}"),
            ("Apps", f"https://<app>.{config.domain_apps}"),
        ],
    )
    console.always("Deployment complete!")


def cmd_show(args: argparse.Namespace, init_file: InitFile) -> None:
    config = resolve_config(init_file, placeholders=True)
    manifest = build_install_manifest(config)
    if args.format == "cloud-init":
        console.raw(CloudInitRenderer().render(manifest, config))
    else:
        console.raw(BashRenderer(verbose=True, color=True).render(manifest))


COMMANDS: dict[str, t.Callable[[argparse.Namespace, InitFile], None]] = {
    "hetzner": cmd_hetzner,
    "baremetal": cmd_baremetal,
    "show": cmd_show,
}


def main(argv: t.Sequence[str] | None = None) -> int:
    dotenv.load_dotenv(dotenv.find_dotenv(usecwd=True))

    ap = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    args = ap.parse_args(argv)
    if args.command is None and not args.show_config:
        args = ap.parse_args([*argv, "hetzner"])

    _configure_logging(args.verbose)
    _logger.debug("Command %s, config %s", args.command, args.config)

    if args.show_config:
        show_config(args.config if args.config is not None else config_path())
        return 0

    try:
        init_file = load_init_file(args.config)
        COMMANDS[args.command](args, init_file)
    except ConfigurationInvalid as exc:
        console.error(str(exc))
        for line in exc.guidance():
            console.info_stderr(line)
        return exc.exit_code
    except TenguInitError as exc:
        console.error(str(exc))
        return exc.exit_code
    except KeyboardInterrupt:
        console.always("Interrupted.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
