"""Charge and discharge LED control driven by the BMS state."""

from __future__ import annotations

import threading
from collections.abc import Callable

from packguard.bms import Bms, BmsState, chg_error, dis_error

__all__ = ["LedController"]

LedSetter = Callable[[bool], None]


class LedController:
    """Drive the green (charge) and red (discharge) LEDs.

    :meth:`update` should be called every 100 ms. Patterns per LED:

    - finished (full or empty): off
    - allowed, current below idle threshold: steady on
    - active, current above idle threshold: on with a short gap every 2 s
    - error: quick flashing
    - off without error: short flash every 2 s
    """

    def __init__(
        self,
        bms: Bms,
        chg_led: LedSetter | None = None,
        dis_led: LedSetter | None = None,
    ) -> None:
        self.bms = bms
        self.chg_led = chg_led
        self.dis_led = dis_led
        self.count = 0

    def set_chg(self, on: bool) -> None:
        """Switch the green charging LED on or off, if present."""
        if self.chg_led is not None:
            self.chg_led(bool(on))

    def set_dis(self, on: bool) -> None:
        """Switch the red discharging LED on or off, if present."""
        if self.dis_led is not None:
            self.dis_led(bool(on))

    def _pattern(self, active_states: tuple[BmsState, ...], busy: bool, error: bool) -> bool:
        state = self.bms.state
        slow_phase = (self.count // 2) % 10 == 0
        if state in active_states:
            # not idle: on with a short gap; idle: steady on
            return not (busy and slow_phase)
        if state is BmsState.SHUTDOWN:
            return False
        if error:
            return self.count % 2 == 1
        return slow_phase

    def update(self) -> None:
        """Update both LEDs according to the current BMS state and advance the pattern."""
        data = self.bms.ic_data
        idle_current = self.bms.ic_conf.bal_idle_current

        self.set_chg(
            self._pattern(
                (BmsState.NORMAL, BmsState.CHG),
                data.current > idle_current,
                chg_error(data.error_flags),
            )
        )
        self.set_dis(
            self._pattern(
                (BmsState.NORMAL, BmsState.DIS),
                data.current < -idle_current,
                dis_error(data.error_flags),
            )
        )
        self.count += 1

    def run(self, stop: threading.Event, interval: float = 0.1) -> None:
        """Call :meth:`update` every ``interval`` seconds until ``stop`` is set."""
        while not stop.is_set():
            self.update()
            stop.wait(interval)