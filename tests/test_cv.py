import pytest

from cvocd.constants import (
    NRPVH_CHAN_OMNI,
    NRPVH_CHAN_SPECIFIC,
    NRPVH_PITCH_12VO,
    NRPVH_PITCH_HZV,
    NRPVH_SRC_DISABLE,
    NRPVH_SRC_MIDIBEND,
    NRPVH_SRC_MIDICC,
    NRPVH_SRC_MIDITOUCH,
    NRPVH_SRC_STACK1,
    NRPVH_SRC_TESTVOLTAGE,
    NRPVL_SRC_NOTE1,
    NRPVL_SRC_VEL,
    TRANSPOSE_NONE,
    Channel,
    NrpnLow,
)
from cvocd.cv import CvConfig, CvMode, CvOutputs
from cvocd.outputs import OutputState
from cvocd.settings import GlobalConfig
from cvocd.stack import NoteStacks


def make():
    settings = GlobalConfig()
    outputs = OutputState()
    holder = {}
    stacks = NoteStacks(
        settings,
        lambda event, stack_id: holder["cv"].event(event, stack_id),
        lambda event, stack_id: None,
    )
    cv = CvOutputs(settings, outputs, stacks)
    holder["cv"] = cv
    stacks.nrpn(0, NrpnLow.NOTE_MAX, 0, 127)
    stacks.reset()
    return settings, outputs, stacks, cv


def note_cv(cv, stacks, note, which=0):
    stacks.midi_note(0, note, 100)
    value = cv.dac[which]
    stacks.midi_note(0, note, 0)
    return value


def test_note_octave_is_500_steps():
    _, _, stacks, cv = make()
    assert cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    low = note_cv(cv, stacks, 60)
    high = note_cv(cv, stacks, 72)
    assert high - low == 500


def test_12vo_octave_is_600_steps():
    _, _, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    assert cv.nrpn(0, NrpnLow.PITCH_SCHEME, 0, NRPVH_PITCH_12VO)
    assert cv.configs[0].mode == CvMode.NOTE_12VO
    low = note_cv(cv, stacks, 48)
    high = note_cv(cv, stacks, 60)
    assert high - low == 600


def test_note_stored_with_offset_and_wraps_low_notes():
    _, _, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    stacks.midi_note(0, 60, 100)
    assert cv.notes[0] == 36
    stacks.midi_note(0, 60, 0)
    assert note_cv(cv, stacks, 10) == note_cv(cv, stacks, 22)
    assert cv.notes[0] == 10


def test_transpose_raises_by_an_octave():
    _, _, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    plain = note_cv(cv, stacks, 60)
    assert cv.nrpn(0, NrpnLow.TRANSPOSE, 0, TRANSPOSE_NONE + 12)
    assert note_cv(cv, stacks, 60) == plain + 500


def test_hz_per_volt_c6_and_octave_doubling():
    _, _, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    cv.nrpn(0, NrpnLow.PITCH_SCHEME, 0, NRPVH_PITCH_HZV)
    assert note_cv(cv, stacks, 96) == 4000
    upper = note_cv(cv, stacks, 84)
    lower = note_cv(cv, stacks, 72)
    assert upper == 2000
    assert upper == 2 * lower


def test_pitch_bend_moves_note_up_within_range():
    _, _, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    stacks.nrpn(0, NrpnLow.PB_RANGE, 0, 12)
    stacks.midi_note(0, 60, 100)
    unbent = cv.dac[0]
    stacks.midi_bend(0, 16383)
    bent = cv.dac[0]
    assert unbent < bent <= unbent + 500
    stacks.midi_bend(0, 8192)
    assert cv.dac[0] == unbent


def test_velocity_matches_cc_scaling():
    _, _, stacks, cv = make()
    assert cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_VEL)
    assert cv.nrpn(1, NrpnLow.SRC, NRPVH_SRC_MIDICC, 7)
    stacks.midi_note(0, 60, 90)
    cv.midi_cc(0, 7, 90)
    assert cv.dac[0] == cv.dac[1]
    assert cv.dac[0] > 0


def test_cc_clamps_and_filters():
    _, _, _, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_MIDICC, 7)
    cv.midi_cc(0, 7, 127)
    full = cv.dac[0]
    cv.midi_cc(0, 7, 0)
    assert cv.dac[0] == 0
    cv.midi_cc(0, 7, 200)
    assert cv.dac[0] == full
    cv.midi_cc(0, 8, 0)
    assert cv.dac[0] == full
    cv.midi_cc(5, 7, 0)
    assert cv.dac[0] == full


def test_specific_and_omni_channels():
    _, _, _, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_MIDITOUCH, 0)
    assert cv.nrpn(0, NrpnLow.CHAN, NRPVH_CHAN_SPECIFIC, 4)
    assert cv.configs[0].chan == 3
    cv.midi_touch(0, 100)
    assert cv.dac[0] == 0
    cv.midi_touch(3, 100)
    touched = cv.dac[0]
    assert touched > 0
    assert cv.nrpn(0, NrpnLow.CHAN, NRPVH_CHAN_OMNI, 0)
    assert cv.configs[0].chan == Channel.OMNI
    cv.midi_touch(9, 0)
    assert cv.dac[0] == 0
    assert not cv.nrpn(0, NrpnLow.CHAN, NRPVH_CHAN_SPECIFIC, 17)


def test_bend_full_scale_and_reset_centre():
    _, outputs, _, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_MIDIBEND, 0)
    assert cv.nrpn(0, NrpnLow.VOLTS, 0, 8)
    cv.midi_bend(0, 16383)
    assert cv.dac[0] == 4095
    cv.midi_bend(0, 0)
    assert cv.dac[0] == 0
    outputs.dac_pending = False
    cv.reset()
    assert cv.dac[0] * 2 == 4096
    assert outputs.dac_pending


def test_test_voltage_reset():
    _, _, _, cv = make()
    assert cv.nrpn(2, NrpnLow.SRC, NRPVH_SRC_TESTVOLTAGE, 0)
    cv.nrpn(2, NrpnLow.VOLTS, 0, 1)
    cv.reset()
    assert cv.dac == (0, 0, 500, 0)


def test_disable_writes_zero():
    _, _, _, cv = make()
    cv.nrpn(1, NrpnLow.SRC, NRPVH_SRC_TESTVOLTAGE, 0)
    cv.reset()
    assert cv.dac[1] > 0
    assert cv.nrpn(1, NrpnLow.SRC, NRPVH_SRC_DISABLE, 0)
    assert cv.dac[1] == 0
    assert cv.configs[1].mode == CvMode.DISABLE


def test_calibration_identity_offset_and_clamp():
    _, _, _, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_TESTVOLTAGE, 0)
    cv.nrpn(0, NrpnLow.VOLTS, 0, 1)
    cv.reset()
    plain = cv.dac[0]
    cv.nrpn(0, NrpnLow.CAL_SCALE, 0, 64)
    cv.nrpn(0, NrpnLow.CAL_OFS, 0, 64)
    cv.reset()
    assert cv.dac[0] == plain
    cv.nrpn(0, NrpnLow.CAL_OFS, 0, 70)
    cv.reset()
    assert cv.dac[0] == plain + 6
    cv.nrpn(0, NrpnLow.VOLTS, 0, 0)
    cv.nrpn(0, NrpnLow.CAL_OFS, 0, 0)
    cv.reset()
    assert cv.dac[0] == 0


def test_pending_only_on_change():
    _, outputs, _, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_MIDICC, 1)
    outputs.dac_pending = False
    cv.midi_cc(0, 1, 0)
    assert outputs.dac_pending is False
    cv.midi_cc(0, 1, 50)
    assert outputs.dac_pending is True


def test_dac_frame_layout():
    _, _, _, cv = make()
    for which in range(4):
        cv.nrpn(which, NrpnLow.SRC, NRPVH_SRC_TESTVOLTAGE, 0)
        cv.nrpn(which, NrpnLow.VOLTS, 0, which + 1)
    cv.reset()
    frame = cv.dac_frame()
    assert len(frame) == 9
    assert frame[0] == 0b1100000 << 1
    pairs = [(frame[i] << 8) | frame[i + 1] for i in range(1, 9, 2)]
    dac = cv.dac
    assert pairs == [dac[1], dac[3], dac[2], dac[0]]


def test_nrpn_rejections():
    _, _, _, cv = make()
    assert not cv.nrpn(4, NrpnLow.VOLTS, 0, 1)
    assert not cv.nrpn(-1, NrpnLow.VOLTS, 0, 1)
    assert not cv.nrpn(0, NrpnLow.VOLTS, 0, 9)
    assert not cv.nrpn(0, NrpnLow.PRIORITY, 0, 1)
    assert not cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_STACK1, 30)


def test_config_aliases():
    cfg = CvConfig()
    cfg.stack_id = 2
    assert cfg.chan == 2
    cfg.cc = 9
    assert cfg.out == 9
    with pytest.raises(ValueError):
        CvConfig(bytearray(3))


def test_storage_round_trip():
    _, outputs, stacks, cv = make()
    cv.nrpn(0, NrpnLow.SRC, NRPVH_SRC_MIDICC, 7)
    cv.nrpn(3, NrpnLow.SRC, NRPVH_SRC_STACK1, NRPVL_SRC_NOTE1)
    cv.nrpn(3, NrpnLow.CAL_SCALE, 0, 60)
    data = cv.to_bytes()
    assert len(data) == 4 * CvConfig.SIZE
    other = CvOutputs(GlobalConfig(), outputs, stacks)
    other.load_bytes(data)
    assert other.to_bytes() == data
    assert other.configs[0].mode == CvMode.MIDI_CC
    assert other.configs[0].cc == 7
    assert other.configs[3].scale == 60
    with pytest.raises(ValueError):
        other.load_bytes(data[:-1])