"""Idempotent provisioning steps.

Every step exposes the same surface:

* ``description``: a stable, human readable label;
* ``to_document_fragment()``: its contribution to the cloud-init document;
* ``to_shell_commands()``: shell statements that are safe to run repeatedly;
* ``guard_command()``: a command whose success means the step is already
  satisfied, or ``None``.

The set of step types is closed; ``Step`` is the union of all of them.
"""

from __future__ import annotations

import typing as t

from tengu_init.steps.base import DocumentFragment, FileSpec
from tengu_init.steps.command import RunCommand
from tengu_init.steps.file import HEREDOC_DELIMITERS, WriteFile, pick_delimiter
from tengu_init.steps.package import InstallDebFromUrl, InstallPackage, Repository
from tengu_init.steps.system import EnsureDirectory, EnsureFirewall, EnsureService, EnsureUser

Step = t.Union[
    InstallPackage,
    InstallDebFromUrl,
    EnsureDirectory,
    WriteFile,
    EnsureService,
    EnsureUser,
    EnsureFirewall,
    RunCommand,
]

STEP_TYPES: tuple[type, ...] = t.get_args(Step)

__all__ = [
    "DocumentFragment",
    "EnsureDirectory",
    "EnsureFirewall",
    "EnsureService",
    "EnsureUser",
    "FileSpec",
    "HEREDOC_DELIMITERS",
    "InstallDebFromUrl",
    "InstallPackage",
    "Repository",
    "RunCommand",
    "STEP_TYPES",
    "Step",
    "WriteFile",
    "pick_delimiter",
]
