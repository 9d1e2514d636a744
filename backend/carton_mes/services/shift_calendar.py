"""Map timestamps to named production shifts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, tzinfo
from zoneinfo import ZoneInfo

from ..config import settings


DEFAULT_SHIFT_SCHEDULE = "Morning=06:00-14:00,Afternoon=14:00-22:00,Night=22:00-06:00"


@dataclass(frozen=True)
class ShiftWindow:
    name: str
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        if self.start <= self.end:
            return self.start <= moment < self.end
        # Window runs past midnight.
        return moment >= self.start or moment < self.end


def _parse_clock(text: str) -> time:
    hours, _, minutes = text.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def parse_shift_schedule(raw: str) -> tuple[ShiftWindow, ...]:
    windows: list[ShiftWindow] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, span = chunk.partition("=")
        start, dash, end = span.partition("-")
        if not sep or not dash or not name.strip():
            raise ValueError(f"Invalid shift definition: {chunk!r}")
        windows.append(ShiftWindow(name=name.strip(), start=_parse_clock(start), end=_parse_clock(end)))
    if not windows:
        raise ValueError("Shift schedule must define at least one shift")
    return tuple(windows)


@dataclass(frozen=True)
class ShiftCalendar:
    windows: tuple[ShiftWindow, ...]
    tz: tzinfo | None = None

    @classmethod
    def from_schedule(cls, raw: str | None, tz_name: str | None = None) -> "ShiftCalendar":
        return cls(
            windows=parse_shift_schedule(raw or DEFAULT_SHIFT_SCHEDULE),
            tz=ZoneInfo(tz_name) if tz_name else None,
        )

    def shift_for(self, at: datetime) -> str | None:
        if self.tz is not None and at.tzinfo is not None:
            at = at.astimezone(self.tz)
        moment = at.time()
        for window in self.windows:
            if window.contains(moment):
                return window.name
        return None

    def describe(self) -> list[dict[str, str]]:
        return [
            {"name": w.name, "start": w.start.strftime("%H:%M"), "end": w.end.strftime("%H:%M")}
            for w in self.windows
        ]


def default_shift_calendar() -> ShiftCalendar:
    return ShiftCalendar.from_schedule(settings.SHIFT_SCHEDULE, settings.SHIFT_TIMEZONE)
