"""Screen layouts for the OLED status display."""

from __future__ import annotations

from dataclasses import dataclass

from packguard.bms import Bms

__all__ = ["TextItem", "overview_screen", "cell_voltages_screen"]


@dataclass(frozen=True)
class TextItem:
    """A piece of text at a pixel position on the display."""

    text: str
    x: int
    y: int


def overview_screen(bms: Bms, device_type: str) -> list[TextItem]:
    """Return the overview screen: pack voltage, current, temperature, SOC and errors."""
    data = bms.ic_data
    return [
        TextItem("Libre Solar", 0, 0),
        TextItem(device_type, 0, 12),
        TextItem(f"{data.total_voltage:.2f}V", 0, 28),
        TextItem(f"{data.current:.1f}A", 64, 28),
        TextItem(f"T:{data.cell_temp_avg:.1f}", 0, 40),
        TextItem(f"SOC:{bms.soc:.0f}", 64, 40),
        TextItem(f"Err:0x{data.error_flags:X}", 0, 52),
    ]


def cell_voltages_screen(
    bms: Bms,
    offset: int = 0,
    blink_on: bool = True,
    max_cells: int | None = None,
) -> list[TextItem]:
    """Return the cell voltage screen starting at cell index ``offset``.

    Cells being balanced are hidden while ``blink_on`` is False, so they blink.
    """
    data = bms.ic_data
    if max_cells is None:
        max_cells = len(data.cell_voltages)
    items = [TextItem("Cell Voltages", 0, 0)]
    for i, voltage in enumerate(data.cell_voltages[offset:max_cells], start=offset):
        if blink_on or not data.balancing_status & (1 << i):
            items.append(
                TextItem(f"{i + 1}:{voltage:.2f}", 0 if i % 2 == 0 else 64, 16 + (i // 2) * 12)
            )
    return items