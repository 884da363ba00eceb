from __future__ import annotations

import threading
import typing as t

from tqdm import tqdm

from tengu_init.markers import Action, ProgressEvent

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

_SUMMARY_GLYPHS = {
    Action.DONE: ("✓", "green", ""),
    Action.SKIP: ("○", "yellow", " (skipped)"),
    Action.FAIL: ("✗", "red", ""),
}


class Indicator(t.Protocol):
    def close(self) -> None: ...


class Spinner:
    """Single-line tqdm spinner, animated from a background ticker thread."""

    def __init__(self, label: str, interval: float = 0.1) -> None:
        self.label = label
        self.interval = interval
        self._bar = tqdm(
            total=None,
            desc=f"{SPINNER_FRAMES[0]} {label}",
            bar_format="{desc} [{elapsed}]",
            leave=False,
        )
        self._stop = threading.Event()
        self._ticker = threading.Thread(target=self._tick, daemon=True)
        self._ticker.start()

    def _tick(self) -> None:
        frame = 0
        while not self._stop.wait(self.interval):
            frame = (frame + 1) % len(SPINNER_FRAMES)
            self._bar.set_description_str(f"{SPINNER_FRAMES[frame]} {self.label}")

    def close(self) -> None:
        self._stop.set()
        self._ticker.join()
        self._bar.close()

    def __enter__(self) -> "Spinner":
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.close()


class SummaryConsole(t.Protocol):
    def always(self, value: str, style: str | None = None) -> None: ...


def summary_line(event: ProgressEvent, total: int) -> str:
    glyph, _, suffix = _SUMMARY_GLYPHS[event.action]
    return f"[{event.index}/{total}] {glyph} {event.description}{suffix}"


class ProgressReporter:
    """Turn parsed progress events into one open indicator at a time.

    START replaces whatever indicator is still open. DONE, SKIP and FAIL close
    it and print a permanent summary line. COMPLETE only closes it.
    """

    def __init__(
        self,
        total: int,
        console: SummaryConsole,
        indicator_factory: t.Callable[[str], Indicator] = Spinner,
    ) -> None:
        self.total = total
        self.console = console
        self.indicator_factory = indicator_factory
        self.completed = False
        self._indicator: Indicator | None = None

    def _close_indicator(self) -> None:
        if self._indicator is not None:
            self._indicator.close()
            self._indicator = None

    def handle(self, event: ProgressEvent) -> None:
        if event.action is Action.START:
            self._close_indicator()
            label = f"[{event.index}/{self.total}] {event.description}"
            self._indicator = self.indicator_factory(label)
        elif event.action is Action.COMPLETE:
            self._close_indicator()
            self.completed = True
        else:
            self._close_indicator()
            style = _SUMMARY_GLYPHS[event.action][1]
            self.console.always(summary_line(event, self.total), style=style)

    def finish(self) -> None:
        self._close_indicator()
