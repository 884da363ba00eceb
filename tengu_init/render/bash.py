from __future__ import annotations

import shlex
import textwrap

from tengu_init.manifest import Manifest
from tengu_init.markers import Action, format_marker
from tengu_init.steps import Step

SCRIPT_HEADER = textwrap.dedent(
    """\
    #!/usr/bin/env bash
    # Tengu PaaS provisioning script. Safe to run repeatedly.
    set -e
    export DEBIAN_FRONTEND=noninteractive
    """
)

COLOR_VARIABLES = textwrap.dedent(
    """\
    RED=$'\\033[0;31m'
    GREEN=$'\\033[0;32m'
    YELLOW=$'\\033[1;33m'
    CYAN=$'\\033[0;36m'
    NC=$'\\033[0m'
    """
)

_ACTION_COLORS = {
    Action.START: "CYAN",
    Action.DONE: "GREEN",
    Action.SKIP: "YELLOW",
    Action.FAIL: "RED",
    Action.COMPLETE: "GREEN",
}

COMPLETE_DESCRIPTION = "Provisioning complete"


class BashRenderer:
    """Lower a manifest into a stand-alone idempotent bash script.

    ``verbose`` emits ``TENGU_STEP`` progress markers around every step and a
    trailing ``COMPLETE`` marker. ``color`` defines ANSI color variables that
    the markers are wrapped in. Step commands are identical either way.
    """

    def __init__(self, *, verbose: bool = True, color: bool = True) -> None:
        self.verbose = verbose
        self.color = color

    def render(self, manifest: Manifest) -> str:
        total = len(manifest)
        parts = [SCRIPT_HEADER]
        if self.verbose and self.color:
            parts.append(COLOR_VARIABLES)
        for index, step in enumerate(manifest, start=1):
            parts.append(self._render_step(index, total, step))
        if self.verbose:
            parts.append(self._marker(Action.COMPLETE, total, COMPLETE_DESCRIPTION) + "\n")
        return "\n".join(parts)

    def _marker(self, action: Action, index: int, description: str) -> str:
        text = shlex.quote(format_marker(action, index, description))
        if self.color:
            color = _ACTION_COLORS[action]
            return f"printf '%s%s%s\\n' \"${color}\" {text} \"$NC\""
        return f"printf '%s\\n' {text}"

    @staticmethod
    def _subshell(step: Step) -> str:
        # Commands stay unindented so heredoc terminators keep column 0.
        body = "\n".join(step.to_shell_commands())
        return f"(\nset -eo pipefail\n{body}\n)"

    def _render_step(self, index: int, total: int, step: Step) -> str:
        guard = step.guard_command()
        lines = [f"# [{index}/{total}] {step.description}"]

        if not self.verbose:
            if guard is None:
                lines.append(self._subshell(step))
            else:
                lines.append(f"if ! {guard}; then")
                lines.append(self._subshell(step))
                lines.append("fi")
            return "\n".join(lines) + "\n"

        description = step.description
        run = "\n".join(
            [
                "set +e",
                self._subshell(step),
                "TENGU_RC=$?",
                "set -e",
                'if [ "$TENGU_RC" -eq 0 ]; then',
                self._marker(Action.DONE, index, description),
                "else",
                self._marker(Action.FAIL, index, description),
                'exit "$TENGU_RC"',
                "fi",
            ]
        )
        lines.append(self._marker(Action.START, index, description))
        if guard is None:
            lines.append(run)
        else:
            lines.append(f"if {guard}; then")
            lines.append(self._marker(Action.SKIP, index, description))
            lines.append("else")
            lines.append(run)
            lines.append("fi")
        return "\n".join(lines) + "\n"
