from __future__ import annotations

from tengu_init.providers.baremetal import BaremetalDriver, DriverState, provision_host
from tengu_init.providers.hetzner import run_hetzner

__all__ = ["BaremetalDriver", "DriverState", "provision_host", "run_hetzner"]
