"""Progress marker wire format shared by the script renderer and the driver.

A marker is a plain output line ``TENGU_STEP:<ACTION>:<index>:<description>``.
Parsing is two independent transforms: :func:`strip_ansi` removes terminal
escape sequences, :func:`parse_marker` matches the grammar on what is left.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

MARKER_PREFIX = "TENGU_STEP"

# ESC, optionally "[" and everything up to the first letter.
_ANSI_ESCAPE = re.compile(r"\x1b(?:\[[^A-Za-z]*[A-Za-z]?)?")


class Action(str, enum.Enum):
    START = "START"
    DONE = "DONE"
    SKIP = "SKIP"
    FAIL = "FAIL"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    action: Action
    index: int
    description: str


def format_marker(action: Action, index: int, description: str) -> str:
    return f"{MARKER_PREFIX}:{action.value}:{index}:{description}"


def strip_ansi(line: str) -> str:
    return _ANSI_ESCAPE.sub("", line)


def parse_marker(line: str) -> ProgressEvent | None:
    """Parse one already de-colored line; anything else yields ``None``."""
    line = line.strip()
    if not line.startswith(MARKER_PREFIX + ":"):
        return None
    parts = line.split(":", 3)
    if len(parts) not in (3, 4):
        return None
    # Description is optional.
    _, action, index = parts[:3]
    description = parts[3] if len(parts) == 4 else ""
    try:
        parsed_action = Action(action)
    except ValueError:
        return None
    if not (index.isascii() and index.isdigit()):
        return None
    return ProgressEvent(parsed_action, int(index), description)


def parse_progress_line(line: str) -> ProgressEvent | None:
    return parse_marker(strip_ansi(line))
