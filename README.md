# packguard

Control logic for a lithium-ion battery management system (BMS), written
against an abstract front-end IC so that it can run on top of any
measurement back end, or against a simulated one in tests.

## What it contains

- `packguard.helper`: `interpolate(a, b, value_a)` looks up a value in table
  `b` at a position in the monotonic table `a`, clamping outside its range;
  `byte_to_bitstr(b)` gives the 8-character bit string of a byte.
- `packguard.ic`: the front-end IC base class `BmsIc`, its configuration
  (`IcConf`) and measurement data (`IcData`), the error flags (`ErrorFlag`),
  switch, configuration and data selection flags (`Switch`, `ConfFlag`,
  `DataFlag`), operating modes (`IcMode`), the bq769x2 multi-function pin
  numbers (`Bq769x2Pin`) and the balancing constants `BALANCING_OFF` and
  `BALANCING_AUTO`. A driver must implement `read_data` and `balance`; the
  other operations are provided by defining the hooks `_configure`,
  `_set_switches`, `_set_mode`, `_read_mem`, `_write_mem` and
  `_debug_print_mem`. Calling an operation whose hook is missing raises
  `BmsIcError` with `errno.ENOSYS`.
- `packguard.bms`: the `Bms` context with default limits per cell chemistry
  (`CellType`: `CUSTOM`, `LFP`, `NMC`, `LTO`), the charge/discharge state
  machine (`BmsState`), the checks `chg_error` and `dis_error`, the open
  circuit voltage curves `OCV_LFP` and `OCV_NMC`, and state of charge
  estimation from the open-circuit voltage and by coulomb counting.
- `packguard.leds`: `LedController`, which drives a green charge LED and a
  red discharge LED from the BMS state; `update` is meant to be called every
  100 ms, and `run(stop, interval)` does so until a `threading.Event` is set.
- `packguard.button`: `Button`, which reports whether the power button has
  been held for more than three seconds.
- `packguard.oled`: `overview_screen` and `cell_voltages_screen`, which lay
  out the display contents as lists of positioned `TextItem`s.
- `packguard.app`: `Application`, the main polling loop that reads the IC,
  updates the state of charge, runs the state machine and switches the IC
  off when the button is held.
- `packguard.data_objects`: `DataObjects`, the tree of named and numbered
  data objects (`DataObject`) for device information, configuration,
  measurements and inputs, with access rights (`Access`), subsets
  (`Subset`) and the configuration presets for NMC and LFP cells.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Interpolating in a look-up table whose first column is monotonic:

```python
from packguard.helper import interpolate, byte_to_bitstr

ocv = [4.2, 3.7, 3.0]
soc = [100.0, 50.0, 0.0]
interpolate(ocv, soc, 3.7)      # 50.0

byte_to_bitstr(0b10100000)      # "10100000"
```

### The BMS

A `Bms` is built from a `BmsIc` implementation and a clock returning the
uptime in milliseconds (by default the monotonic clock). `init_config`
loads the default limits for a `CellType` and a nominal capacity in Ah and
enables charging and discharging. `soc_reset(percent)` sets the state of
charge to a value from 0 to 100, or with `-1` estimates it from the average
cell voltage: from the chemistry's OCV curve, or linearly between the
charge and discharge voltage limits where there is none (LTO, custom).
`soc_update` counts charge from the measured current and needs a positive
nominal capacity, otherwise it raises `ValueError`.

`state_machine` is called after every new measurement. It moves between
`OFF`, `CHG`, `DIS` and `NORMAL` according to `chg_allowed` and
`dis_allowed` (error flags, `full`/`empty`, `chg_enable`/`dis_enable`) and
switches the charge and discharge paths of the IC. In `CHG` and `DIS` it
drives the idle switch as an ideal diode unless `ideal_diode_control` is
set to False. `SHUTDOWN` is left alone.

### The main loop

```python
from packguard.app import Application
from packguard.button import Button

button = Button(read_pin=lambda: 0, clock=bms.clock)
app = Application(bms, button, polling_interval_ms=250)
app.run(iterations=10)
```

`Application.start` assigns the data object to the IC, activates and
configures it, reads the cell voltages and estimates the state of charge;
`step` runs one polling cycle and sleeps until the next is due. IC errors in
the loop are logged, not raised. `run` calls `start` and then `step` the
given number of times, or forever with `None`.

### Data objects

```python
from packguard.data_objects import DataObjects, Subset

objects = DataObjects(bms, device_type="BMS-8S50-IC", save=lambda: None)
objects.get("Meas/rSOC_pct")
objects.set("Conf/sNominalCapacity_Ah", 50)   # reconfigures the IC, then calls save
objects.set("Conf/xPresetNMC/fCapacity_Ah", 100)
objects.bat_preset_nmc()
objects.subset(Subset.LIVE)                   # {"Meas/rPackVoltage_V": ..., ...}
```

Objects are looked up by path with `by_name` or by numeric id with
`by_id`. `get` on a group returns a dict of its readable children. `set`
checks write access and value type (integers also against their bit width)
and calls the group's callback: for `Conf` that is `update_conf`, which
applies the configuration to the IC and calls `save`.

## What the package does not do

- It contains no driver for any real front-end IC; a `BmsIc` subclass that
  talks to the hardware has to be supplied.
- It does not touch GPIOs or a display: LEDs, the button pin and the reboot
  action are callables passed in, and the screen functions only return
  text positions without drawing them.
- It does not store settings; `DataObjects` calls a `save` callable and
  leaves persistence to it.
- It offers no wire protocol for the data objects and no command-line
  program.

The package has no dependencies outside the Python standard library.