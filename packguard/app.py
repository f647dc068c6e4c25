"""Main application loop polling the BMS IC and running the state machine."""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable

from packguard.bms import Bms
from packguard.button import Button
from packguard.ic import BmsIcError, ConfFlag, DataFlag, IcMode

__all__ = ["Application", "SHUTDOWN_WAIT_MS"]

_log = logging.getLogger(__name__)

SHUTDOWN_WAIT_MS = 10000


class Application:
    """Periodic BMS main loop.

    ``sleep`` takes seconds; time stamps come from the clock of ``bms``.
    """

    def __init__(
        self,
        bms: Bms,
        button: Button | None = None,
        polling_interval_ms: int = 250,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.bms = bms
        self.button = button
        self.polling_interval_ms = polling_interval_ms
        self.sleep = sleep
        self._t_start = 0

    def start(self) -> None:
        """Bring up the IC, apply the configuration and estimate the initial SOC."""
        ic = self.bms.ic
        ic.assign_data(self.bms.ic_data)

        try:
            ic.set_mode(IcMode.ACTIVE)
        except BmsIcError as exc:
            _log.error("Failed to activate BMS IC: %s", exc)

        try:
            ic.configure(self.bms.ic_conf, ConfFlag.ALL)
        except BmsIcError as exc:
            _log.error("Failed to configure BMS IC: %s", exc)

        try:
            ic.read_data(DataFlag.CELL_VOLTAGES)
        except BmsIcError as exc:
            _log.error("Failed to read data from BMS IC: %s", exc)

        self.bms.soc_reset(-1)
        self._t_start = self.bms.clock()

    def step(self) -> None:
        """Run one polling cycle and wait until the next one is due."""
        bms = self.bms
        try:
            bms.ic.read_data(DataFlag.ALL)
        except BmsIcError as exc:
            _log.error("Failed to read data from BMS IC: %s", exc)

        bms.soc_update()
        bms.state_machine()

        if self.button is not None and self.button.pressed_for_3s():
            _log.warning("Button pressed for 3s: shutdown...")
            try:
                bms.ic.set_mode(IcMode.OFF)
            except BmsIcError as exc:
                _log.error("Failed to switch off BMS IC: %s", exc)
            self.sleep(SHUTDOWN_WAIT_MS / 1000)

        self._t_start += self.polling_interval_ms
        remaining_ms = self._t_start - bms.clock()
        self.sleep(max(0, remaining_ms) / 1000)

    def run(self, iterations: int | None = None) -> None:
        """Start up and poll ``iterations`` times, or forever if None."""
        self.start()
        cycles = itertools.count() if iterations is None else range(iterations)
        for _ in cycles:
            self.step()