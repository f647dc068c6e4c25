import errno

import pytest

from packguard.bms import (
    OCV_LFP,
    OCV_NMC,
    SOC_PCT,
    Bms,
    BmsState,
    CellType,
    chg_error,
    dis_error,
)
from packguard.ic import BmsIc, BmsIcError, ErrorFlag, Switch


class FakeIc(BmsIc):
    def __init__(self):
        super().__init__()
        self.switch_calls = []

    def read_data(self, flags):
        pass

    def balance(self, cells):
        pass

    def set_switches(self, switches, enabled):
        self.switch_calls.append((switches, enabled))


class NoSwitchIc(BmsIc):
    def read_data(self, flags):
        pass

    def balance(self, cells):
        pass


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


@pytest.fixture
def ic():
    return FakeIc()


@pytest.fixture
def bms(ic):
    b = Bms(ic, FakeClock())
    b.init_config(CellType.LFP, 10.0)
    return b


def test_tables_have_fixed_length():
    b = Bms(FakeIc(), FakeClock())
    b.init_config(CellType.NMC, 1.0)
    assert len(b.ocv_points) == 21
    assert len(b.ocv_points) == len(SOC_PCT)
    b.init_config(CellType.LFP, 1.0)
    assert len(b.ocv_points) == 21


def test_init_config_lfp(bms):
    conf = bms.ic_conf
    assert conf.cell_ov_limit == pytest.approx(3.80)
    assert conf.cell_chg_voltage_limit == pytest.approx(3.55)
    assert conf.cell_uv_limit == pytest.approx(2.50)
    assert conf.dis_sc_limit == pytest.approx(2 * conf.dis_oc_limit)
    assert conf.chg_oc_limit == pytest.approx(10.0)
    assert conf.bal_idle_delay == 1800
    assert conf.alert_mask == int(ErrorFlag.ALL)
    assert bms.ocv_points == OCV_LFP
    assert bms.chg_enable and bms.dis_enable


def test_init_config_nmc_and_lto(ic):
    b = Bms(ic, FakeClock())
    b.init_config(CellType.NMC, 5.0)
    assert b.ic_conf.cell_ov_limit == pytest.approx(4.25)
    assert b.ocv_points == OCV_NMC
    b.init_config(CellType.LTO, 5.0)
    assert b.ic_conf.cell_uv_limit == pytest.approx(1.90)
    assert b.ocv_points is None


def test_init_config_custom_keeps_voltages(bms):
    bms.ic_conf.cell_ov_limit = 3.65
    bms.init_config(CellType.CUSTOM, 20.0)
    assert bms.ic_conf.cell_ov_limit == pytest.approx(3.65)
    assert bms.ocv_points == OCV_LFP
    assert bms.nominal_capacity_ah == 20.0


def test_error_checks():
    assert chg_error(ErrorFlag.CELL_OVERVOLTAGE)
    assert not chg_error(ErrorFlag.CELL_UNDERVOLTAGE)
    assert dis_error(ErrorFlag.SHORT_CIRCUIT)
    assert not dis_error(ErrorFlag.CHG_OVERTEMP)
    assert chg_error(ErrorFlag.OPEN_WIRE) and dis_error(ErrorFlag.OPEN_WIRE)
    assert not chg_error(0) and not dis_error(0)


def test_allowed_ignores_fet_off_flags(bms):
    bms.ic_data.error_flags = ErrorFlag.CHG_OFF | ErrorFlag.DIS_OFF
    assert bms.chg_allowed()
    assert bms.dis_allowed()
    bms.full = True
    assert not bms.chg_allowed()
    bms.dis_enable = False
    assert not bms.dis_allowed()


def test_state_machine_off_to_dis_to_normal(bms, ic):
    bms.state_machine()
    assert bms.state is BmsState.DIS
    assert ic.switch_calls == [(Switch.DIS, True)]
    bms.state_machine()
    assert bms.state is BmsState.NORMAL
    assert ic.switch_calls[-1] == (Switch.CHG, True)


def test_state_machine_off_to_chg_when_discharge_blocked(bms, ic):
    bms.empty = True
    bms.state_machine()
    assert bms.state is BmsState.CHG
    assert ic.switch_calls == [(Switch.CHG, True)]


def test_normal_to_dis_on_overvoltage(bms, ic):
    bms.state = BmsState.NORMAL
    bms.ic_data.error_flags = ErrorFlag.CELL_OVERVOLTAGE
    bms.state_machine()
    assert bms.state is BmsState.DIS
    assert ic.switch_calls == [(Switch.CHG, False)]


def test_normal_to_chg_on_undervoltage(bms, ic):
    bms.state = BmsState.NORMAL
    bms.ic_data.error_flags = ErrorFlag.CELL_UNDERVOLTAGE
    bms.state_machine()
    assert bms.state is BmsState.CHG
    assert ic.switch_calls == [(Switch.DIS, False)]


def test_chg_to_off_switches_both_off(bms, ic):
    bms.state = BmsState.CHG
    bms.chg_enable = False
    bms.state_machine()
    assert bms.state is BmsState.OFF
    assert ic.switch_calls == [(Switch.CHG, False), (Switch.DIS, False)]


def test_ideal_diode_in_chg_state(bms, ic):
    bms.state = BmsState.CHG
    bms.dis_enable = False
    bms.ic_data.current = 0.6
    bms.state_machine()
    bms.ic_data.current = 0.3
    bms.state_machine()
    bms.ic_data.current = 0.05
    bms.state_machine()
    assert bms.state is BmsState.CHG
    assert ic.switch_calls == [(Switch.DIS, True), (Switch.DIS, False)]


def test_ideal_diode_in_dis_state(bms, ic):
    bms.state = BmsState.DIS
    bms.chg_enable = False
    bms.ic_data.current = -0.6
    bms.state_machine()
    assert bms.state is BmsState.DIS
    bms.ic_data.current = -0.05
    bms.state_machine()
    assert bms.state is BmsState.DIS
    assert ic.switch_calls == [(Switch.CHG, True), (Switch.CHG, False)]


def test_ideal_diode_can_be_disabled(bms, ic):
    bms.ideal_diode_control = False
    bms.state = BmsState.DIS
    bms.chg_enable = False
    bms.ic_data.current = -0.6
    bms.state_machine()
    assert bms.state is BmsState.DIS
    assert not bms.chg_allowed()
    assert ic.switch_calls == []


def test_shutdown_state_does_nothing(bms, ic):
    bms.state = BmsState.SHUTDOWN
    bms.state_machine()
    assert bms.state is BmsState.SHUTDOWN
    assert ic.switch_calls == []


def test_state_changes_even_without_switch_support():
    b = Bms(NoSwitchIc(), FakeClock())
    b.init_config(CellType.LFP, 10.0)
    with pytest.raises(BmsIcError) as excinfo:
        b.ic.set_switches(Switch.DIS, True)
    assert excinfo.value.errno == errno.ENOSYS
    b.state_machine()
    assert b.state is BmsState.DIS


def test_soc_reset_explicit_percent(bms):
    bms.soc_reset(42)
    assert bms.soc == 42.0


def test_soc_reset_from_ocv_endpoints(bms):
    bms.ic_data.cell_voltage_avg = OCV_LFP[0]
    bms.soc_reset(-1)
    assert bms.soc == pytest.approx(100.0)
    bms.ic_data.cell_voltage_avg = OCV_LFP[-1]
    bms.soc_reset(-1)
    assert bms.soc == pytest.approx(0.0)


def test_soc_reset_from_ocv_clamps_outside_table(bms):
    bms.ic_data.cell_voltage_avg = 4.0
    bms.soc_reset()
    assert bms.soc == pytest.approx(100.0)
    bms.ic_data.cell_voltage_avg = 1.0
    bms.soc_reset()
    assert bms.soc == pytest.approx(0.0)


def test_soc_reset_simple_estimation_for_lto(ic):
    b = Bms(ic, FakeClock())
    b.init_config(CellType.LTO, 5.0)
    b.ic_data.cell_voltage_avg = b.ic_conf.cell_chg_voltage_limit
    b.soc_reset(-1)
    assert b.soc == pytest.approx(100.0)
    b.ic_data.cell_voltage_avg = 2.40
    b.soc_reset(-1)
    assert b.soc == pytest.approx(50.0)


def test_soc_update_ignores_small_changes(ic):
    clock = FakeClock()
    b = Bms(ic, clock)
    b.init_config(CellType.LFP, 1.0)
    b.soc = 50.0
    b.ic_data.current = 1.0
    clock.now = 3000
    b.soc_update()
    assert b.soc == 50.0


def test_soc_update_accumulates_until_significant(ic):
    clock = FakeClock()
    b = Bms(ic, clock)
    b.init_config(CellType.LFP, 1.0)
    b.soc = 50.0
    b.ic_data.current = 1.0
    clock.now = 3000
    b.soc_update()
    clock.now = 6000
    b.soc_update()
    assert b.soc > 50.0
    before = b.soc
    clock.now = 6100
    b.soc_update()
    assert b.soc == before


def test_soc_update_discharge_decreases(ic):
    clock = FakeClock()
    b = Bms(ic, clock)
    b.init_config(CellType.LFP, 1.0)
    b.soc = 50.0
    b.ic_data.current = -2.0
    clock.now = 10000
    b.soc_update()
    assert b.soc < 50.0


def test_soc_update_clamps(ic):
    clock = FakeClock()
    b = Bms(ic, clock)
    b.init_config(CellType.LFP, 1.0)
    b.soc = 99.9
    b.ic_data.current = 100.0
    clock.now = 100000
    b.soc_update()
    assert b.soc == 100.0
    b.ic_data.current = -1000.0
    clock.now = 10_000_000
    b.soc_update()
    assert b.soc == 0.0


def test_soc_update_requires_capacity(ic):
    b = Bms(ic, FakeClock())
    with pytest.raises(ValueError):
        b.soc_update()