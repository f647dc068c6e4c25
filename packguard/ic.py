"""Interface for battery management front-end ICs, with shared flags and data types."""

from __future__ import annotations

import abc
import errno
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag
from typing import Any, ClassVar

__all__ = [
    "ErrorFlag",
    "Switch",
    "ConfFlag",
    "DataFlag",
    "IcMode",
    "Bq769x2Pin",
    "IcConf",
    "IcData",
    "BmsIcError",
    "BmsIc",
    "BALANCING_OFF",
    "BALANCING_AUTO",
]

_DEFAULT_MAX_CELLS = 16
_DEFAULT_MAX_THERMISTORS = 4

BALANCING_OFF = 0
BALANCING_AUTO = 0xFFFFFFFF


class ErrorFlag(IntFlag):
    """BMS error flags."""

    CELL_UNDERVOLTAGE = 1 << 0
    CELL_OVERVOLTAGE = 1 << 1
    SHORT_CIRCUIT = 1 << 2
    DIS_OVERCURRENT = 1 << 3
    CHG_OVERCURRENT = 1 << 4
    OPEN_WIRE = 1 << 5
    DIS_UNDERTEMP = 1 << 6
    DIS_OVERTEMP = 1 << 7
    CHG_UNDERTEMP = 1 << 8
    CHG_OVERTEMP = 1 << 9
    INT_OVERTEMP = 1 << 10
    CELL_FAILURE = 1 << 11
    DIS_OFF = 1 << 12
    CHG_OFF = 1 << 13
    FET_OVERTEMP = 1 << 14
    ALL = (1 << 15) - 1


class Switch(IntFlag):
    """BMS switches (MOSFETs or contactors)."""

    CHG = 1 << 0
    DIS = 1 << 1
    PDSG = 1 << 2
    PCHG = 1 << 3


class ConfFlag(IntFlag):
    """Parts of the configuration to apply to the IC."""

    VOLTAGE_LIMITS = 1 << 0
    TEMP_LIMITS = 1 << 1
    CURRENT_LIMITS = 1 << 2
    BALANCING = 1 << 3
    ALERTS = 1 << 4
    VOLTAGE_REGS = 1 << 5
    ALL = (1 << 6) - 1


class DataFlag(IntFlag):
    """Parts of the data to read from the IC."""

    CELL_VOLTAGES = 1 << 0
    PACK_VOLTAGES = 1 << 1
    TEMPERATURES = 1 << 2
    CURRENT = 1 << 3
    BALANCING = 1 << 4
    ERROR_FLAGS = 1 << 5
    ALL = (1 << 6) - 1


class IcMode(Enum):
    """BMS IC operating modes."""

    ACTIVE = 0
    IDLE = 1
    STANDBY = 2
    OFF = 3


class Bq769x2Pin(IntEnum):
    """Multi-function pins of the bq769x2 usable for temperature measurement."""

    CFETOFF = 0
    DFETOFF = 1
    ALERT = 2
    TS1 = 3
    TS2 = 4
    TS3 = 5
    HDQ = 6
    DCHG = 7
    DDSG = 8


@dataclass
class IcConf:
    """BMS IC configuration values."""

    cell_chg_voltage_limit: float = 0.0
    cell_dis_voltage_limit: float = 0.0
    cell_ov_limit: float = 0.0
    cell_ov_reset: float = 0.0
    cell_ov_delay_ms: int = 0
    cell_uv_limit: float = 0.0
    cell_uv_reset: float = 0.0
    cell_uv_delay_ms: int = 0

    chg_oc_limit: float = 0.0
    chg_oc_delay_ms: int = 0
    dis_oc_limit: float = 0.0
    dis_oc_delay_ms: int = 0
    dis_sc_limit: float = 0.0
    dis_sc_delay_us: int = 0

    dis_ot_limit: float = 0.0
    dis_ut_limit: float = 0.0
    chg_ot_limit: float = 0.0
    chg_ut_limit: float = 0.0
    temp_limit_hyst: float = 0.0

    bal_cell_voltage_diff: float = 0.0
    bal_cell_voltage_min: float = 0.0
    bal_idle_current: float = 0.0
    bal_idle_delay: int = 0

    vregs_enable: int = 0
    alert_mask: int = 0


@dataclass
class IcData:
    """Measurements and status read from the BMS IC."""

    cell_voltages: list[float] = field(default_factory=lambda: [0.0] * _DEFAULT_MAX_CELLS)
    cell_voltage_max: float = 0.0
    cell_voltage_min: float = 0.0
    cell_voltage_avg: float = 0.0
    total_voltage: float = 0.0
    external_voltage: float = 0.0
    current: float = 0.0
    cell_temps: list[float] = field(
        default_factory=lambda: [0.0] * _DEFAULT_MAX_THERMISTORS
    )
    cell_temp_max: float = 0.0
    cell_temp_min: float = 0.0
    cell_temp_avg: float = 0.0
    ic_temp: float = 0.0
    mosfet_temp: float = 0.0
    connected_cells: int = 0
    used_thermistors: int = 0
    balancing_status: int = 0
    error_flags: int = 0


class BmsIcError(OSError):
    """Error reported by a BMS IC driver, carrying an errno value."""


class BmsIc(abc.ABC):
    """Base class for BMS front-end IC drivers.

    Reading data and balancing must be provided by every driver. The optional
    operations are supplied by defining the matching hook (``_configure``,
    ``_set_switches``, ``_set_mode``, ``_read_mem``, ``_write_mem``,
    ``_debug_print_mem``); calling an operation whose hook is missing raises
    :class:`BmsIcError` with ``errno.ENOSYS``.
    """

    _configure: ClassVar[Callable[..., Any] | None] = None
    _set_switches: ClassVar[Callable[..., Any] | None] = None
    _set_mode: ClassVar[Callable[..., Any] | None] = None
    _read_mem: ClassVar[Callable[..., Any] | None] = None
    _write_mem: ClassVar[Callable[..., Any] | None] = None
    _debug_print_mem: ClassVar[Callable[..., Any] | None] = None

    def __init__(self) -> None:
        self.data: IcData | None = None

    def _dispatch(self, operation: str, *args: Any) -> Any:
        hook = getattr(self, f"_{operation}", None)
        if hook is None:
            raise BmsIcError(errno.ENOSYS, f"{operation}: {os.strerror(errno.ENOSYS)}")
        return hook(*args)

    def configure(self, conf: IcConf, flags: ConfFlag) -> None:
        """Write the selected parts of ``conf`` to the IC, updating it with applied values."""
        self._dispatch("configure", conf, flags)

    def assign_data(self, data: IcData) -> None:
        """Assign the object that :meth:`read_data` fills in."""
        self.data = data

    @abc.abstractmethod
    def read_data(self, flags: DataFlag) -> None:
        """Read the selected parts of the data from the IC into the assigned object."""

    def set_switches(self, switches: Switch, enabled: bool) -> None:
        """Switch the given MOSFETs on or off."""
        self._dispatch("set_switches", switches, enabled)

    @abc.abstractmethod
    def balance(self, cells: int) -> None:
        """Balance the cells in the bit set, or use BALANCING_OFF / BALANCING_AUTO."""

    def set_mode(self, mode: IcMode) -> None:
        """Request the IC to enter the given operating mode."""
        self._dispatch("set_mode", mode)

    def read_mem(self, addr: int, length: int) -> bytes:
        """Read ``length`` bytes of IC memory starting at ``addr``."""
        return bytes(self._dispatch("read_mem", addr, length))

    def write_mem(self, addr: int, data: bytes) -> None:
        """Write ``data`` to IC memory starting at ``addr``."""
        self._dispatch("write_mem", addr, bytes(data))

    def debug_print_mem(self) -> None:
        """Print the IC's main registers for debugging."""
        self._dispatch("debug_print_mem")