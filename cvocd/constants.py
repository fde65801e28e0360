"""Shared constants, enumerations and matching rules for the converter."""

from enum import IntEnum

# Hardware dimensions
CV_MAX = 4
GATE_MAX = 12
SZ_NOTE_STACK = 5
NUM_NOTE_STACKS = 4
NO_NOTE_OUT = 0xFF
I2C_TX_BUF_SZ = 12

# Defaults
DEFAULT_GATE_NOTE = 60
DEFAULT_GATE_CC = 1
DEFAULT_GATE_CC_THRESHOLD = 64
DEFAULT_GATE_DIV = 6
DEFAULT_GATE_DURATION = 10
DEFAULT_ACCENT_VELOCITY = 127
DEFAULT_MIDI_CHANNEL = 0
DEFAULT_CV_BPM_MAX_VOLTS = 5
DEFAULT_CV_CC_MAX_VOLTS = 5
DEFAULT_CV_PB_MAX_VOLTS = 5
DEFAULT_CV_VEL_MAX_VOLTS = 5
DEFAULT_CV_TOUCH_MAX_VOLTS = 5
DEFAULT_CV_TEST_VOLTS = 5

# Millisecond timings
SHORT_BUTTON_PRESS = 40
LONG_BUTTON_PRESS = 2000
LED_PULSE_MIDI_IN = 2
LED_PULSE_MIDI_TICK = 10
LED_PULSE_MIDI_BEAT = 100
LED_PULSE_PARAM = 255

# MIDI message bytes
MIDI_MTC_QTR_FRAME = 0xF1
MIDI_SPP = 0xF2
MIDI_SONG_SELECT = 0xF3
MIDI_SYNCH_TICK = 0xF8
MIDI_SYNCH_START = 0xFA
MIDI_SYNCH_CONTINUE = 0xFB
MIDI_SYNCH_STOP = 0xFC
MIDI_SYSEX_BEGIN = 0xF0
MIDI_SYSEX_END = 0xF7

MIDI_CC_NRPN_HI = 99
MIDI_CC_NRPN_LO = 98
MIDI_CC_DATA_HI = 6
MIDI_CC_DATA_LO = 38

# Manufacturer id expected at the start of a patch sysex block
SYSEX_ID = (0x00, 0x7F, 0x15)

TRANSPOSE_NONE = 64

# Parameter value, high byte
NRPVH_SRC_DISABLE = 0
NRPVH_SRC_MIDINOTE = 1
NRPVH_SRC_MIDICC = 2
NRPVH_SRC_MIDICC_NEG = 3
NRPVH_SRC_MIDIBEND = 4
NRPVH_SRC_MIDITOUCH = 5
NRPVH_SRC_STACK1 = 11
NRPVH_SRC_STACK2 = 12
NRPVH_SRC_STACK3 = 13
NRPVH_SRC_STACK4 = 14
NRPVH_SRC_MIDITICK = 20
NRPVH_SRC_MIDITICKRUN = 21
NRPVH_SRC_MIDIRUN = 22
NRPVH_SRC_MIDISTART = 23
NRPVH_SRC_MIDISTOP = 25
NRPVH_SRC_MIDISTARTSTOP = 26
NRPVH_SRC_TESTVOLTAGE = 127

NRPVH_CHAN_SPECIFIC = 0
NRPVH_CHAN_OMNI = 1
NRPVH_CHAN_GLOBAL = 2

NRPVH_DUR_INF = 0
NRPVH_DUR_MS = 1
NRPVH_DUR_GLOBAL = 2
NRPVH_DUR_RETRIG = 3

NRPVH_PITCH_VOCT = 0
NRPVH_PITCH_HZV = 1
NRPVH_PITCH_12VO = 2

# Parameter value, low byte
NRPVL_SRC_NO_NOTES = 0
NRPVL_SRC_NOTE1 = 1
NRPVL_SRC_NOTE2 = 2
NRPVL_SRC_NOTE3 = 3
NRPVL_SRC_NOTE4 = 4
NRPVL_SRC_ANY_NOTES = 5
NRPVL_SRC_VEL = 20


class Channel(IntEnum):
    """Special channel settings; 0-15 select a specific MIDI channel."""

    OMNI = 0x80
    GLOBAL = 0x81
    DISABLE = 0xFF


class GateDuration(IntEnum):
    """Special gate durations; other values are milliseconds."""

    INFINITE = 0x00
    GLOBAL = 0x80


class Event(IntEnum):
    """Events raised by note stacks."""

    NOTE_A = 1
    NOTE_B = 2
    NOTE_C = 3
    NOTE_D = 4
    NO_NOTE_A = 5
    NO_NOTE_B = 6
    NO_NOTE_C = 7
    NO_NOTE_D = 8
    NOTES_OFF = 9
    NOTE_ON = 10
    BEND = 11


class Priority(IntEnum):
    """How a note stack assigns held notes to its outputs."""

    LAST = 0
    LOW = 1
    HIGH = 3
    CYCLE2 = 6
    CYCLE3 = 7
    CYCLE4 = 8
    CHORD2 = 9
    CHORD3 = 10
    CHORD4 = 11
    MAX = 12


class NrpnHigh(IntEnum):
    """Parameter number high byte: which unit is being configured."""

    GLOBAL = 1
    STACK1 = 11
    STACK2 = 12
    STACK3 = 13
    STACK4 = 14
    CV1 = 21
    CV2 = 22
    CV3 = 23
    CV4 = 24
    GATE1 = 31
    GATE2 = 32
    GATE3 = 33
    GATE4 = 34
    GATE5 = 35
    GATE6 = 36
    GATE7 = 37
    GATE8 = 38
    GATE9 = 39
    GATE10 = 40
    GATE11 = 41
    GATE12 = 42


class NrpnLow(IntEnum):
    """Parameter number low byte: which setting is being configured."""

    SRC = 1
    CHAN = 2
    NOTE_MIN = 3
    NOTE = 3
    NOTE_MAX = 4
    VEL_MIN = 5
    PB_RANGE = 7
    PRIORITY = 8
    TICK_OFS = 11
    GATE_DUR = 12
    THRESHOLD = 13
    TRANSPOSE = 14
    VOLTS = 15
    PITCH_SCHEME = 16
    CAL_SCALE = 98
    CAL_OFS = 99
    SAVE = 100


def is_chan(mychan, chan, global_chan):
    """Return whether MIDI channel ``chan`` matches the setting ``mychan``."""
    return (
        chan == mychan
        or mychan == Channel.OMNI
        or (mychan == Channel.GLOBAL and global_chan == chan)
    )


def is_note_match(note_min, note_max, note):
    """Return whether ``note`` is in range; a zero ``note_max`` means exactly ``note_min``."""
    if not note_max:
        return note == note_min
    return note_min <= note <= note_max