"""Battery management: cell presets, state machine and state-of-charge estimation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from enum import Enum, IntEnum

from packguard.helper import interpolate
from packguard.ic import BmsIc, BmsIcError, ErrorFlag, IcConf, IcData, Switch

__all__ = [
    "OCV_POINTS",
    "SOC_PCT",
    "OCV_LFP",
    "OCV_NMC",
    "BmsState",
    "CellType",
    "Bms",
    "chg_error",
    "dis_error",
]

_log = logging.getLogger(__name__)

OCV_POINTS = 21

SOC_PCT: tuple[float, ...] = (
    100.0, 95.0, 90.0, 85.0, 80.0, 85.0, 70.0,
    65.0, 60.0, 55.0, 50.0, 45.0, 40.0, 35.0,
    30.0, 25.0, 20.0, 15.0, 10.0, 5.0, 0.0,
)

OCV_LFP: tuple[float, ...] = (
    3.392, 3.314, 3.309, 3.308, 3.304, 3.296, 3.283,
    3.275, 3.271, 3.268, 3.265, 3.264, 3.262, 3.252,
    3.240, 3.226, 3.213, 3.190, 3.177, 3.132, 2.833,
)

OCV_NMC: tuple[float, ...] = (
    4.198, 4.135, 4.089, 4.056, 4.026, 3.993, 3.962,
    3.924, 3.883, 3.858, 3.838, 3.819, 3.803, 3.787,
    3.764, 3.745, 3.726, 3.702, 3.684, 3.588, 2.800,
)

_CHG_ERRORS = (
    ErrorFlag.CELL_OVERVOLTAGE
    | ErrorFlag.CHG_OVERCURRENT
    | ErrorFlag.OPEN_WIRE
    | ErrorFlag.CHG_UNDERTEMP
    | ErrorFlag.CHG_OVERTEMP
    | ErrorFlag.INT_OVERTEMP
    | ErrorFlag.CELL_FAILURE
    | ErrorFlag.CHG_OFF
)

_DIS_ERRORS = (
    ErrorFlag.CELL_UNDERVOLTAGE
    | ErrorFlag.SHORT_CIRCUIT
    | ErrorFlag.DIS_OVERCURRENT
    | ErrorFlag.OPEN_WIRE
    | ErrorFlag.DIS_UNDERTEMP
    | ErrorFlag.DIS_OVERTEMP
    | ErrorFlag.INT_OVERTEMP
    | ErrorFlag.CELL_FAILURE
    | ErrorFlag.DIS_OFF
)


class BmsState(IntEnum):
    """Possible BMS states."""

    OFF = 0
    CHG = 1
    DIS = 2
    NORMAL = 3
    SHUTDOWN = 4


class CellType(Enum):
    """Battery cell types."""

    CUSTOM = 0
    LFP = 1
    NMC = 2
    LTO = 3


def chg_error(error_flags: int) -> bool:
    """Return True if any charging error flag is set."""
    return bool(error_flags & _CHG_ERRORS)


def dis_error(error_flags: int) -> bool:
    """Return True if any discharging error flag is set."""
    return bool(error_flags & _DIS_ERRORS)


def _uptime_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class Bms:
    """Battery management system context driving a front-end IC."""

    #: Drive the idle FET as an ideal diode in CHG and DIS states.
    ideal_diode_control: bool = True

    def __init__(self, ic: BmsIc, clock: Callable[[], int] = _uptime_ms) -> None:
        self.ic = ic
        self.clock = clock
        self.state = BmsState.OFF
        self.chg_enable = False
        self.dis_enable = False
        self.full = False
        self.empty = False
        self.soc = 0.0
        self.nominal_capacity_ah = 0.0
        self.ocv_points: Sequence[float] | None = None
        self.soc_points: Sequence[float] = SOC_PCT
        self.ic_conf = IcConf()
        self.ic_data = IcData()
        self._coulomb_counter_mas = 0.0
        self._last_update = 0

    def init_config(self, cell_type: CellType, capacity_ah: float) -> None:
        """Fill the IC configuration with typical defaults for the cell type."""
        conf = self.ic_conf
        self.nominal_capacity_ah = capacity_ah
        self.chg_enable = True
        self.dis_enable = True

        conf.bal_idle_delay = 1800
        conf.bal_idle_current = 0.1
        conf.bal_cell_voltage_diff = 0.01

        # 1C should be safe for all batteries
        conf.dis_oc_limit = capacity_ah
        conf.chg_oc_limit = capacity_ah
        conf.dis_oc_delay_ms = 320
        conf.chg_oc_delay_ms = 320
        conf.dis_sc_limit = conf.dis_oc_limit * 2
        conf.dis_sc_delay_us = 200

        conf.dis_ut_limit = -20
        conf.dis_ot_limit = 45
        conf.chg_ut_limit = 0
        conf.chg_ot_limit = 45
        conf.temp_limit_hyst = 5

        conf.cell_ov_delay_ms = 2000
        conf.cell_uv_delay_ms = 2000

        if cell_type is CellType.LFP:
            conf.cell_ov_limit = 3.80
            conf.cell_chg_voltage_limit = 3.55
            conf.cell_ov_reset = 3.40
            conf.bal_cell_voltage_min = 3.30
            conf.cell_uv_reset = 3.10
            conf.cell_dis_voltage_limit = 2.80
            # keep some margin for further self-discharge
            conf.cell_uv_limit = 2.50
            self.ocv_points = OCV_LFP
        elif cell_type is CellType.NMC:
            conf.cell_ov_limit = 4.25
            conf.cell_chg_voltage_limit = 4.20
            conf.cell_ov_reset = 4.05
            conf.bal_cell_voltage_min = 3.80
            conf.cell_uv_reset = 3.50
            conf.cell_dis_voltage_limit = 3.20
            conf.cell_uv_limit = 3.00
            self.ocv_points = OCV_NMC
        elif cell_type is CellType.LTO:
            conf.cell_ov_limit = 2.85
            conf.cell_chg_voltage_limit = 2.80
            conf.cell_ov_reset = 2.70
            conf.bal_cell_voltage_min = 2.50
            conf.cell_uv_reset = 2.10
            conf.cell_dis_voltage_limit = 2.00
            conf.cell_uv_limit = 1.90
            self.ocv_points = None

        conf.alert_mask = int(ErrorFlag.ALL)

    def _switch(self, switches: Switch, enabled: bool) -> None:
        try:
            self.ic.set_switches(switches, enabled)
        except BmsIcError as exc:
            _log.warning("Failed to set switches %s: %s", switches, exc)

    def _transition(self, new_state: BmsState) -> None:
        _log.info(
            "%s -> %s (error flags: 0x%08x)",
            self.state.name,
            new_state.name,
            self.ic_data.error_flags,
        )
        self.state = new_state

    def state_machine(self) -> None:
        """Run one step of the main BMS state machine."""
        state = self.state
        current = self.ic_data.current

        if state is BmsState.OFF:
            if self.dis_allowed():
                self._switch(Switch.DIS, True)
                self._transition(BmsState.DIS)
            elif self.chg_allowed():
                self._switch(Switch.CHG, True)
                self._transition(BmsState.CHG)
        elif state is BmsState.CHG:
            if not self.chg_allowed():
                self._switch(Switch.CHG, False)
                # DIS switch may be on because of ideal diode control
                self._switch(Switch.DIS, False)
                self._transition(BmsState.OFF)
            elif self.dis_allowed():
                self._switch(Switch.DIS, True)
                self._transition(BmsState.NORMAL)
            elif self.ideal_diode_control:
                if current > 0.5:
                    self._switch(Switch.DIS, True)
                elif current < 0.1:
                    self._switch(Switch.DIS, False)
        elif state is BmsState.DIS:
            if not self.dis_allowed():
                self._switch(Switch.DIS, False)
                # CHG switch may be on because of ideal diode control
                self._switch(Switch.CHG, False)
                self._transition(BmsState.OFF)
            elif self.chg_allowed():
                self._switch(Switch.CHG, True)
                self._transition(BmsState.NORMAL)
            elif self.ideal_diode_control:
                if current < -0.5:
                    self._switch(Switch.CHG, True)
                elif current > -0.1:
                    self._switch(Switch.CHG, False)
        elif state is BmsState.NORMAL:
            if not self.dis_allowed():
                self._switch(Switch.DIS, False)
                self._transition(BmsState.CHG)
            elif not self.chg_allowed():
                self._switch(Switch.CHG, False)
                self._transition(BmsState.DIS)
        # SHUTDOWN: wait until shutdown is completed

    def chg_allowed(self) -> bool:
        """Return True if charging is allowed."""
        flags = self.ic_data.error_flags & ~ErrorFlag.CHG_OFF
        return not chg_error(flags) and not self.full and self.chg_enable

    def dis_allowed(self) -> bool:
        """Return True if discharging is allowed."""
        flags = self.ic_data.error_flags & ~ErrorFlag.DIS_OFF
        return not dis_error(flags) and not self.empty and self.dis_enable

    def soc_reset(self, percent: int = -1) -> None:
        """Set the SOC to ``percent`` (0-100) or estimate it from the average cell OCV."""
        if 0 <= percent <= 100:
            self.soc = float(percent)
        elif self.ocv_points is not None:
            self.soc = interpolate(self.ocv_points, SOC_PCT, self.ic_data.cell_voltage_avg)
        else:
            ocv_simple = (
                self.ic_conf.cell_chg_voltage_limit,
                self.ic_conf.cell_dis_voltage_limit,
            )
            self.soc = interpolate(ocv_simple, (100.0, 0.0), self.ic_data.cell_voltage_avg)

    def soc_update(self) -> None:
        """Update the SOC by coulomb counting from the latest current measurement."""
        if self.nominal_capacity_ah <= 0:
            raise ValueError("nominal capacity must be positive")
        now = self.clock()
        self._coulomb_counter_mas += self.ic_data.current * (now - self._last_update)
        soc_delta = self._coulomb_counter_mas / (self.nominal_capacity_ah * 3.6e4)

        # only update after significant changes to maintain higher resolution
        if abs(soc_delta) > 0.1:
            self.soc = min(max(self.soc + soc_delta, 0.0), 100.0)
            self._coulomb_counter_mas = 0.0

        self._last_update = now