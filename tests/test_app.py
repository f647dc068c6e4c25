import errno

import pytest

from packguard.app import SHUTDOWN_WAIT_MS, Application
from packguard.bms import Bms, BmsState, CellType
from packguard.button import Button
from packguard.ic import BmsIc, BmsIcError, ConfFlag, DataFlag, IcMode


class _Clock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


class _FakeIc(BmsIc):
    def __init__(self, fail_mode=False):
        super().__init__()
        self.calls = []
        self.fail_mode = fail_mode

    def configure(self, conf, flags):
        self.calls.append(("configure", flags))

    def read_data(self, flags):
        self.calls.append(("read_data", flags))

    def balance(self, cells):
        self.calls.append(("balance", cells))

    def set_switches(self, switches, enabled):
        self.calls.append(("set_switches", switches, enabled))

    def set_mode(self, mode):
        if self.fail_mode:
            raise BmsIcError(errno.EIO, "I/O error")
        self.calls.append(("set_mode", mode))


@pytest.fixture
def clock():
    return _Clock()


def _make(clock, ic=None, button=None, interval=250):
    ic = ic or _FakeIc()
    bms = Bms(ic, clock=clock)
    bms.init_config(CellType.LFP, 10.0)
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        clock.now += int(round(seconds * 1000))

    app = Application(bms, button, interval, sleep)
    return app, ic, sleeps


def test_start_sequence(clock):
    app, ic, _ = _make(clock)
    app.start()
    assert ic.calls[:3] == [
        ("set_mode", IcMode.ACTIVE),
        ("configure", ConfFlag.ALL),
        ("read_data", DataFlag.CELL_VOLTAGES),
    ]
    assert ic.data is app.bms.ic_data


def test_start_estimates_soc_from_ocv(clock):
    app, _, _ = _make(clock)
    app.bms.ic_data.cell_voltage_avg = 3.392
    app.start()
    assert app.bms.soc == pytest.approx(100.0)


def test_start_survives_ic_errors(clock):
    app, ic, _ = _make(clock, ic=_FakeIc(fail_mode=True))
    app.start()
    assert ("configure", ConfFlag.ALL) in ic.calls


def test_step_runs_state_machine(clock):
    app, ic, _ = _make(clock)
    app.start()
    app.step()
    assert ("read_data", DataFlag.ALL) in ic.calls
    assert app.bms.state is BmsState.DIS


def test_run_keeps_polling_period(clock):
    interval = 250
    app, _, sleeps = _make(clock, interval=interval)
    app.run(iterations=3)
    assert clock.now == 3 * interval
    assert len(sleeps) == 3


def test_long_button_press_shuts_down(clock):
    button = Button(lambda: 1, clock)
    button.on_pressed()
    app, ic, sleeps = _make(clock, button=button)
    app.start()
    clock.now = 5000
    app.step()
    assert ("set_mode", IcMode.OFF) in ic.calls
    assert SHUTDOWN_WAIT_MS / 1000 in sleeps


def test_no_shutdown_without_press(clock):
    button = Button(lambda: 0, clock)
    app, ic, sleeps = _make(clock, button=button)
    app.start()
    clock.now = 5000
    app.step()
    assert ("set_mode", IcMode.OFF) not in ic.calls
    assert sleeps == [0.0]