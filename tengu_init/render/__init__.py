from __future__ import annotations

from tengu_init.render.bash import BashRenderer
from tengu_init.render.cloud_init import CloudInitRenderer

__all__ = ["BashRenderer", "CloudInitRenderer"]
