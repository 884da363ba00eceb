"""
Provision a Tengu PaaS host, either as a fresh VPS booted from a cloud-init
document or as an existing server driven over SSH by a generated script.
"""

from __future__ import annotations

from tengu_init.config import TenguConfig
from tengu_init.manifest import Manifest, build_install_manifest
from tengu_init.render import BashRenderer, CloudInitRenderer

__version__ = "0.1.0"

__all__ = [
    "BashRenderer",
    "CloudInitRenderer",
    "Manifest",
    "TenguConfig",
    "build_install_manifest",
]
