"""Named, numbered data objects exposing the BMS state for remote access."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Any

from packguard.bms import Bms, CellType
from packguard.ic import BmsIcError, ConfFlag, IcMode

__all__ = [
    "Access",
    "Subset",
    "DataObject",
    "DataObjects",
    "ID_ROOT",
    "ID_DEVICE",
    "ID_CONF",
    "ID_MEAS",
    "ID_INPUT",
    "MANUFACTURER",
]

_log = logging.getLogger(__name__)

ID_ROOT = 0x00
ID_DEVICE = 0x04
ID_CONF = 0x05
ID_MEAS = 0x07
ID_INPUT = 0x09

MANUFACTURER = "Libre Solar"


class Access(IntFlag):
    """Access rights of a data object."""

    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    RW = READ | WRITE


class Subset(IntFlag):
    """Subsets a data object belongs to."""

    NONE = 0
    NVM = 1 << 0
    LIVE = 1 << 1


@dataclass(eq=False)
class DataObject:
    """A group, value item or function in the data object tree."""

    id: int
    parent_id: int
    name: str
    path: str
    access: Access = Access.READ
    subset: Subset = Subset.NONE
    value_type: type | None = None
    precision: int | None = None
    bits: int | None = None
    getter: Callable[[], Any] | None = field(default=None, repr=False)
    setter: Callable[[Any], None] | None = field(default=None, repr=False)
    function: Callable[[], Any] | None = field(default=None, repr=False)
    callback: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def is_group(self) -> bool:
        """True for a group without value or function."""
        return self.value_type is None and self.function is None

    @property
    def is_function(self) -> bool:
        """True for an executable object."""
        return self.function is not None

    @property
    def value(self) -> Any:
        """The current value of an item."""
        if self.getter is None:
            raise TypeError(f"{self.path} has no value")
        return self.getter()


def _resolve(owner: object, path: str) -> object:
    for part in path.split(".") if path else ():
        owner = getattr(owner, part)
    return owner


def _binding(owner: object, dotted: str) -> tuple[Callable[[], Any], Callable[[Any], None]]:
    head, _, attr = dotted.rpartition(".")

    def getter() -> Any:
        return getattr(_resolve(owner, head), attr)

    def setter(value: Any) -> None:
        setattr(_resolve(owner, head), attr, value)

    return getter, setter


class DataObjects:
    """The tree of data objects of a BMS: device info, configuration, measurements, inputs."""

    def __init__(
        self,
        bms: Bms,
        device_type: str = "",
        hardware_version: str = "",
        firmware_version: str = "",
        reboot: Callable[[], None] | None = None,
        save: Callable[[], None] | None = None,
    ) -> None:
        self.bms = bms
        self.device_type = device_type
        self.hardware_version = hardware_version
        self.firmware_version = firmware_version
        self.manufacturer = MANUFACTURER
        self.reboot = reboot
        self.save = save
        self.new_capacity = 0.0
        self._by_id: dict[int, DataObject] = {}
        self._by_path: dict[str, DataObject] = {}
        self._build()

    # construction

    def _add(self, obj: DataObject) -> DataObject:
        if obj.id in self._by_id:
            raise ValueError(f"duplicate object id 0x{obj.id:02X}")
        self._by_id[obj.id] = obj
        self._by_path[obj.path] = obj
        return obj

    def _path(self, parent_id: int, name: str) -> str:
        if parent_id == ID_ROOT:
            return name
        return f"{self._by_id[parent_id].path}/{name}"

    def _group(self, parent_id: int, oid: int, name: str,
               callback: Callable[[], None] | None = None) -> None:
        self._add(DataObject(oid, parent_id, name, self._path(parent_id, name),
                             access=Access.READ, callback=callback))

    def _function(self, parent_id: int, oid: int, name: str, fn: Callable[[], Any]) -> None:
        self._add(DataObject(oid, parent_id, name, self._path(parent_id, name),
                             access=Access.RW, function=fn))

    def _item(
        self,
        parent_id: int,
        oid: int,
        name: str,
        dotted: str,
        value_type: type,
        access: Access,
        subset: Subset = Subset.NONE,
        precision: int | None = None,
        bits: int | None = None,
        owner: object | None = None,
    ) -> None:
        getter, setter = _binding(self.bms if owner is None else owner, dotted)
        if value_type is list:
            raw = getter
            getter = lambda: list(raw())  # noqa: E731
            setter = None
        self._add(DataObject(oid, parent_id, name, self._path(parent_id, name),
                             access=access, subset=subset, value_type=value_type,
                             precision=precision, bits=bits, getter=getter, setter=setter))

    def _build(self) -> None:
        r, rw = Access.READ, Access.RW
        nvm, live = Subset.NVM, Subset.LIVE

        self._group(ID_ROOT, ID_DEVICE, "Device")
        self._item(ID_DEVICE, 0x40, "cManufacturer", "manufacturer", str, r, owner=self)
        self._item(ID_DEVICE, 0x41, "cDeviceType", "device_type", str, r, owner=self)
        self._item(ID_DEVICE, 0x42, "cHardwareVersion", "hardware_version", str, r, owner=self)
        self._item(ID_DEVICE, 0x43, "cFirmwareVersion", "firmware_version", str, r, owner=self)
        self._function(ID_DEVICE, 0x4A, "xShutdown", self.shutdown)
        self._function(ID_DEVICE, 0x4B, "xReset", self.reset_device)
        self._function(ID_DEVICE, 0x4E, "xDebugPrintRegisters", self.print_registers)

        self._group(ID_ROOT, ID_CONF, "Conf", callback=self.update_conf)
        conf_items = [
            (0x50, "sNominalCapacity_Ah", "nominal_capacity_ah", float, 1, None),
            (0x51, "sShortCircuitLimit_A", "ic_conf.dis_sc_limit", float, 1, None),
            (0x52, "sShortCircuitDelay_us", "ic_conf.dis_sc_delay_us", int, None, 32),
            (0x53, "sDisOvercurrent_A", "ic_conf.dis_oc_limit", float, 1, None),
            (0x54, "sDisOvercurrentDelay_ms", "ic_conf.dis_oc_delay_ms", int, None, 32),
            (0x55, "sChgOvercurrent_A", "ic_conf.chg_oc_limit", float, 1, None),
            (0x56, "sChgOvercurrentDelay_ms", "ic_conf.chg_oc_delay_ms", int, None, 32),
            (0x58, "sDisMaxTemp_degC", "ic_conf.dis_ot_limit", float, 1, None),
            (0x59, "sDisMinTemp_degC", "ic_conf.dis_ut_limit", float, 1, None),
            (0x5A, "sChgMaxTemp_degC", "ic_conf.chg_ot_limit", float, 1, None),
            (0x5B, "sChgMinTemp_degC", "ic_conf.chg_ut_limit", float, 1, None),
            (0x5C, "sTempLimitHysteresis_degC", "ic_conf.temp_limit_hyst", float, 1, None),
            (0x60, "sCellOvervoltage_V", "ic_conf.cell_ov_limit", float, 1, None),
            (0x61, "sCellOvervoltageReset_V", "ic_conf.cell_ov_reset", float, 1, None),
            (0x62, "sCellOvervoltageDelay_ms", "ic_conf.cell_ov_delay_ms", int, None, 32),
            (0x63, "sCellUndervoltage_V", "ic_conf.cell_uv_limit", float, 1, None),
            (0x64, "sCellUndervoltageReset_V", "ic_conf.cell_uv_reset", float, 1, None),
            (0x65, "sCellUndervoltageDelay_ms", "ic_conf.cell_uv_delay_ms", int, None, 32),
            (0x68, "sBalTargetVoltageDiff_V", "ic_conf.bal_cell_voltage_diff", float, 3, None),
            (0x69, "sBalMinVoltage_V", "ic_conf.bal_cell_voltage_min", float, 1, None),
            (0x6A, "sBalIdleDelay_s", "ic_conf.bal_idle_delay", int, None, 16),
            (0x6B, "sBalIdleCurrent_A", "ic_conf.bal_idle_current", float, 1, None),
        ]
        for oid, name, dotted, value_type, precision, bits in conf_items:
            self._item(ID_CONF, oid, name, dotted, value_type, rw, nvm, precision, bits)

        self._function(ID_CONF, 0xA0, "xPresetNMC", self.bat_preset_nmc)
        self._item(0xA0, 0xA1, "fCapacity_Ah", "new_capacity", float, rw,
                   precision=1, owner=self)
        self._function(ID_CONF, 0xA2, "xPresetLFP", self.bat_preset_lfp)
        self._item(0xA2, 0xA3, "fCapacity_Ah", "new_capacity", float, rw,
                   precision=1, owner=self)

        self._group(ID_ROOT, ID_MEAS, "Meas")
        meas_items = [
            (0x71, "rPackVoltage_V", "ic_data.total_voltage", float, 2, None),
            (0x72, "rStackVoltage_V", "ic_data.external_voltage", float, 2, None),
            (0x73, "rPackCurrent_A", "ic_data.current", float, 2, None),
            (0x74, "rCellTemps_degC", "ic_data.cell_temps", list, 1, None),
            (0x75, "rICTemp_degC", "ic_data.ic_temp", float, 1, None),
            (0x77, "rMOSFETTemp_degC", "ic_data.mosfet_temp", float, 1, None),
            (0x7C, "rSOC_pct", "soc", float, 1, None),
            (0x7E, "rErrorFlags", "ic_data.error_flags", int, None, 32),
        ]
        for oid, name, dotted, value_type, precision, bits in meas_items:
            self._item(ID_MEAS, oid, name, dotted, value_type, r, live, precision, bits)

        self._add(DataObject(0x7F, ID_MEAS, "rBmsState", "Meas/rBmsState",
                             access=r, subset=live, value_type=int, bits=8,
                             getter=lambda: int(self.bms.state)))

        meas_items = [
            (0x80, "rCellVoltages_V", "ic_data.cell_voltages", list, 3, None),
            (0x81, "rCellAvgVoltage_V", "ic_data.cell_voltage_avg", float, 3, None),
            (0x82, "rCellMinVoltage_V", "ic_data.cell_voltage_min", float, 3, None),
            (0x83, "rCellMaxVoltage_V", "ic_data.cell_voltage_max", float, 3, None),
            (0x84, "rBalancingStatus", "ic_data.balancing_status", int, None, 32),
        ]
        for oid, name, dotted, value_type, precision, bits in meas_items:
            self._item(ID_MEAS, oid, name, dotted, value_type, r, live, precision, bits)

        self._group(ID_ROOT, ID_INPUT, "Input")
        self._item(ID_INPUT, 0x90, "wChgEnable", "chg_enable", bool, rw)
        self._item(ID_INPUT, 0x91, "wDisEnable", "dis_enable", bool, rw)

    # lookup and access

    def __iter__(self) -> Iterator[DataObject]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def by_id(self, object_id: int) -> DataObject:
        """Return the object with the given numeric id."""
        try:
            return self._by_id[object_id]
        except KeyError:
            raise KeyError(f"no data object with id 0x{object_id:02X}") from None

    def by_name(self, name: str) -> DataObject:
        """Return the object at the given path, e.g. ``"Conf/sNominalCapacity_Ah"``."""
        try:
            return self._by_path[name]
        except KeyError:
            raise KeyError(f"no data object named {name!r}") from None

    def _children(self, parent_id: int) -> Iterator[DataObject]:
        return (obj for obj in self._by_id.values() if obj.parent_id == parent_id)

    def get(self, name: str) -> Any:
        """Return an item's value, or a dict of child values for groups and functions."""
        obj = self.by_name(name)
        if not obj.access & Access.READ:
            raise PermissionError(f"{obj.path} is not readable")
        if obj.getter is not None:
            return obj.getter()
        return {
            child.name: child.getter()
            for child in self._children(obj.id)
            if child.getter is not None and child.access & Access.READ
        }

    def set(self, name: str, value: Any) -> None:
        """Write an item's value and notify the group it belongs to."""
        obj = self.by_name(name)
        if obj.setter is None or not obj.access & Access.WRITE:
            raise PermissionError(f"{obj.path} is not writable")
        obj.setter(self._convert(obj, value))
        parent = self._by_id.get(obj.parent_id)
        if parent is not None and parent.callback is not None:
            parent.callback()

    @staticmethod
    def _convert(obj: DataObject, value: Any) -> Any:
        if obj.value_type is bool:
            if not isinstance(value, bool):
                raise TypeError(f"{obj.path} expects a bool")
            return value
        if isinstance(value, bool):
            raise TypeError(f"{obj.path} does not accept a bool")
        if obj.value_type is float:
            if not isinstance(value, (int, float)):
                raise TypeError(f"{obj.path} expects a number")
            return float(value)
        if obj.value_type is int:
            if not isinstance(value, int):
                raise TypeError(f"{obj.path} expects an integer")
            if obj.bits is not None and not 0 <= value < (1 << obj.bits):
                raise ValueError(f"{obj.path} value {value} out of range")
            return value
        if obj.value_type is str:
            if not isinstance(value, str):
                raise TypeError(f"{obj.path} expects a string")
            return value
        raise TypeError(f"{obj.path} cannot be written")

    def subset(self, subset: Subset) -> dict[str, Any]:
        """Return the values of all items in the given subset, keyed by path."""
        return {
            obj.path: obj.getter()
            for obj in self._by_id.values()
            if obj.getter is not None and obj.subset & subset
        }

    # callbacks

    def update_conf(self) -> None:
        """Apply the configuration to the IC and queue it for storage."""
        try:
            self.bms.ic.configure(self.bms.ic_conf, ConfFlag.ALL)
        except BmsIcError as exc:
            _log.error("Failed to configure BMS IC: %s", exc)
        if self.save is not None:
            self.save()

    def bat_preset(self, cell_type: CellType) -> None:
        """Load default settings for the cell type with the capacity in ``new_capacity``."""
        self.bms.init_config(cell_type, self.new_capacity)
        self.bms.ic.configure(self.bms.ic_conf, ConfFlag.ALL)
        if self.save is not None:
            self.save()

    def bat_preset_nmc(self) -> None:
        """Apply the NMC preset."""
        self.bat_preset(CellType.NMC)

    def bat_preset_lfp(self) -> None:
        """Apply the LFP preset."""
        self.bat_preset(CellType.LFP)

    def print_registers(self) -> None:
        """Print the IC's registers."""
        self.bms.ic.debug_print_mem()

    def reset_device(self) -> None:
        """Reboot the device."""
        if self.reboot is None:
            raise RuntimeError("no reboot handler configured")
        self.reboot()

    def shutdown(self) -> None:
        """Switch the IC off."""
        self.bms.ic.set_mode(IcMode.OFF)