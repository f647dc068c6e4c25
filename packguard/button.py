"""On/off push button handling."""

from __future__ import annotations

import time
from collections.abc import Callable

__all__ = ["Button", "LONG_PRESS_MS"]

LONG_PRESS_MS = 3000


def _uptime_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class Button:
    """Power button that detects a press held for more than three seconds.

    ``read_pin`` returns the logical pin level (1 while pressed); :meth:`on_pressed`
    is to be called on the edge to the active level.
    """

    def __init__(
        self,
        read_pin: Callable[[], int],
        clock: Callable[[], int] = _uptime_ms,
    ) -> None:
        self.read_pin = read_pin
        self.clock = clock
        self.time_pressed = 0

    def on_pressed(self) -> None:
        """Record the moment the button became active."""
        self.time_pressed = self.clock()

    def pressed_for_3s(self) -> bool:
        """Return True if the button is held and was pressed more than 3 s ago."""
        return int(self.read_pin()) == 1 and self.clock() - self.time_pressed > LONG_PRESS_MS