"""Gate outputs: twelve on/off outputs driven by notes, CCs, clock or note stacks."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

from .constants import (
    DEFAULT_GATE_CC_THRESHOLD,
    DEFAULT_GATE_DIV,
    DEFAULT_GATE_DURATION,
    GATE_MAX,
    MIDI_SYNCH_CONTINUE,
    MIDI_SYNCH_START,
    MIDI_SYNCH_STOP,
    MIDI_SYNCH_TICK,
    NRPVH_CHAN_GLOBAL,
    NRPVH_CHAN_OMNI,
    NRPVH_CHAN_SPECIFIC,
    NRPVH_DUR_GLOBAL,
    NRPVH_DUR_INF,
    NRPVH_DUR_MS,
    NRPVH_DUR_RETRIG,
    NRPVH_SRC_DISABLE,
    NRPVH_SRC_MIDICC,
    NRPVH_SRC_MIDICC_NEG,
    NRPVH_SRC_MIDINOTE,
    NRPVH_SRC_MIDIRUN,
    NRPVH_SRC_MIDISTART,
    NRPVH_SRC_MIDISTARTSTOP,
    NRPVH_SRC_MIDISTOP,
    NRPVH_SRC_MIDITICK,
    NRPVH_SRC_MIDITICKRUN,
    NRPVH_SRC_STACK1,
    NRPVH_SRC_STACK4,
    NRPVL_SRC_ANY_NOTES,
    NRPVL_SRC_NO_NOTES,
    NRPVL_SRC_NOTE1,
    NRPVL_SRC_NOTE4,
    Channel,
    Event,
    GateDuration,
    NrpnLow,
    is_chan,
    is_note_match,
)

# Last-value marker for CC gates that have not yet seen a value
NO_VALUE = 0xFF

# Configuration flag: pull the gate low briefly before each new trigger
GATE_FLAG_RETRIG = 0x01

# Shift register bit for each gate output, in output order
_GATE_BITS = (
    0x0004, 0x0008, 0x0002, 0x0001,
    0x0100, 0x0200, 0x0400, 0x0800,
    0x1000, 0x2000, 0x4000, 0x8000,
)


class GateMode(IntEnum):
    """What a gate output responds to."""

    DISABLE = 0
    MIDI_NOTE = NRPVH_SRC_MIDINOTE
    MIDI_CC = NRPVH_SRC_MIDICC
    MIDI_CC_NEG = NRPVH_SRC_MIDICC_NEG
    MIDI_CLOCK_TICK = NRPVH_SRC_MIDITICK
    MIDI_CLOCK_RUN_TICK = NRPVH_SRC_MIDITICKRUN
    MIDI_CLOCK_RUN = NRPVH_SRC_MIDIRUN
    MIDI_CLOCK_START = NRPVH_SRC_MIDISTART
    MIDI_CLOCK_STOP = NRPVH_SRC_MIDISTOP
    MIDI_CLOCK_STARTSTOP = NRPVH_SRC_MIDISTARTSTOP
    NOTE_EVENT_BASE = 128
    NOTE_ON = 129
    NOTES_OFF = 130
    NOTE_GATEA = 131
    NOTE_GATEB = 132
    NOTE_GATEC = 133
    NOTE_GATED = 134


_CLOCK_SOURCES = frozenset(
    {
        NRPVH_SRC_MIDITICK,
        NRPVH_SRC_MIDITICKRUN,
        NRPVH_SRC_MIDIRUN,
        NRPVH_SRC_MIDISTART,
        NRPVH_SRC_MIDISTOP,
        NRPVH_SRC_MIDISTARTSTOP,
    }
)

_TICK_MODES = (GateMode.MIDI_CLOCK_TICK, GateMode.MIDI_CLOCK_RUN_TICK)

# Note stack gate modes: the event that opens the gate and the one that closes it
_STACK_EVENTS = {
    GateMode.NOTE_ON: (Event.NOTE_ON, Event.NOTES_OFF),
    GateMode.NOTES_OFF: (Event.NOTES_OFF, Event.NOTE_ON),
    GateMode.NOTE_GATEA: (Event.NOTE_A, Event.NO_NOTE_A),
    GateMode.NOTE_GATEB: (Event.NOTE_B, Event.NO_NOTE_B),
    GateMode.NOTE_GATEC: (Event.NOTE_C, Event.NO_NOTE_C),
    GateMode.NOTE_GATED: (Event.NOTE_D, Event.NO_NOTE_D),
}


def gate_bit(which_gate):
    """Return the shift register bit that drives gate output ``which_gate``."""
    if not 0 <= which_gate < GATE_MAX:
        raise ValueError(f"no gate output {which_gate}")
    return _GATE_BITS[which_gate]


class _Slot:
    """A byte of a gate configuration, shared by every field stored at that offset."""

    def __init__(self, offset):
        self.offset = offset

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.raw[self.offset]

    def __set__(self, obj, value):
        obj.raw[self.offset] = value & 0xFF


@dataclass
class GateConfig:
    """Configuration of one gate output.

    The stored layout is shared between the modes, so fields that occupy the
    same byte (for example ``stack_id``, ``chan`` and ``div``) alias each other.
    """

    SIZE: ClassVar[int] = 7

    raw: bytearray = field(default_factory=lambda: bytearray(7))

    mode = _Slot(0)
    flags = _Slot(1)
    duration = _Slot(2)
    stack_id = _Slot(3)
    chan = _Slot(3)
    div = _Slot(3)
    note = _Slot(4)
    cc = _Slot(4)
    tick_ofs = _Slot(4)
    note_max = _Slot(5)
    threshold = _Slot(5)
    vel_min = _Slot(6)

    def __post_init__(self):
        self.raw = bytearray(self.raw)
        if len(self.raw) != self.SIZE:
            raise ValueError(
                f"gate config needs {self.SIZE} bytes, got {len(self.raw)}"
            )


@dataclass
class _GateState:
    counter: int = 0
    value: int = 0


class Gates:
    """The set of gate outputs and their trigger logic."""

    def __init__(self, settings, outputs):
        self._settings = settings
        self._outputs = outputs
        self.clock_running = False
        self.configs = [GateConfig() for _ in range(GATE_MAX)]
        self._states = [_GateState() for _ in range(GATE_MAX)]
        for cfg in self.configs:
            cfg.mode = GateMode.DISABLE
            cfg.flags = 0
            cfg.duration = DEFAULT_GATE_DURATION
        self.reset()

    def _trigger(self, which_gate, enabled, sync=False):
        bit = _GATE_BITS[which_gate]
        cfg = self.configs[which_gate]
        state = self._states[which_gate]
        out = self._outputs
        if enabled:
            retrig = bool(cfg.flags & GATE_FLAG_RETRIG)
            if retrig:
                out.sr_retrigs |= bit
            if sync and out.dac_pending:
                # hold the gate back until the CV has reached the DAC
                if not out.sync_sr_data & bit:
                    out.sync_sr_data |= bit
                    out.sync_sr_data_pending = True
            elif retrig or not out.sr_data & bit:
                out.sr_data |= bit
                out.sr_data_pending = True
            if cfg.duration == GateDuration.GLOBAL:
                counter = self._settings.gate_duration & 0xFF
            else:
                counter = cfg.duration
            if counter:
                # compensate for the decrement on the next millisecond tick
                counter = (counter + 1) & 0xFF
            state.counter = counter
        else:
            out.sync_sr_data &= ~bit
            if out.sr_data & bit:
                out.sr_data &= ~bit
                out.sr_data_pending = True
            state.counter = 0

    def event(self, event, stack_id):
        """Handle an event raised by note stack ``stack_id``."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.stack_id != stack_id:
                continue
            events = _STACK_EVENTS.get(cfg.mode)
            if events is None:
                continue
            on_event, off_event = events
            if event == on_event:
                self._trigger(which_gate, True, sync=True)
            elif event == off_event:
                self._trigger(which_gate, False)

    def midi_note(self, chan, note, vel):
        """Handle a MIDI note; a zero velocity is a note off."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.mode != GateMode.MIDI_NOTE:
                continue
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            if not is_note_match(cfg.note, cfg.note_max, note):
                continue
            if vel and vel < cfg.vel_min:
                continue
            self._trigger(which_gate, bool(vel))

    def midi_cc(self, chan, cc, value):
        """Handle a MIDI CC, switching gates as the value crosses their threshold."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.mode not in (GateMode.MIDI_CC, GateMode.MIDI_CC_NEG):
                continue
            if cc != cfg.cc:
                continue
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            state = self._states[which_gate]
            negative = cfg.mode == GateMode.MIDI_CC_NEG
            threshold = cfg.threshold
            if value >= threshold and (
                state.value < threshold or state.value == NO_VALUE
            ):
                self._trigger(which_gate, not negative)
                state.value = value & 0xFF
            elif value < threshold and (
                state.value >= threshold or state.value == NO_VALUE
            ):
                self._trigger(which_gate, negative)
                state.value = value & 0xFF

    def midi_clock(self, msg):
        """Handle a MIDI realtime clock, start, continue or stop message."""
        if msg == MIDI_SYNCH_TICK:
            for which_gate, cfg in enumerate(self.configs):
                if cfg.mode not in _TICK_MODES:
                    continue
                if cfg.mode == GateMode.MIDI_CLOCK_RUN_TICK and not self.clock_running:
                    continue
                state = self._states[which_gate]
                if not state.value:
                    self._trigger(which_gate, True)
                state.value = (state.value + 1) & 0xFF
                if state.value >= cfg.div:
                    state.value = 0
        elif msg in (MIDI_SYNCH_START, MIDI_SYNCH_CONTINUE):
            self.clock_running = True
            start = msg == MIDI_SYNCH_START
            for which_gate, cfg in enumerate(self.configs):
                mode = cfg.mode
                if mode in _TICK_MODES:
                    if start:
                        self._states[which_gate].value = cfg.tick_ofs
                elif mode == GateMode.MIDI_CLOCK_START and not start:
                    continue
                elif mode in (
                    GateMode.MIDI_CLOCK_START,
                    GateMode.MIDI_CLOCK_STARTSTOP,
                    GateMode.MIDI_CLOCK_RUN,
                ):
                    self._trigger(which_gate, True)
                elif mode == GateMode.MIDI_CLOCK_STOP:
                    self._trigger(which_gate, False)
        elif msg == MIDI_SYNCH_STOP:
            self.clock_running = False
            for which_gate, cfg in enumerate(self.configs):
                if cfg.mode == GateMode.MIDI_CLOCK_RUN:
                    self._trigger(which_gate, False)
                elif cfg.mode in (
                    GateMode.MIDI_CLOCK_STOP,
                    GateMode.MIDI_CLOCK_STARTSTOP,
                ):
                    self._trigger(which_gate, True)

    def run(self):
        """Advance gate timers by one millisecond, closing gates that expire."""
        for which_gate, state in enumerate(self._states):
            if state.counter:
                state.counter -= 1
                if not state.counter:
                    self._trigger(which_gate, False)

    def trigger(self, which_gate, enabled):
        """Open or close a gate directly; out-of-range gates are ignored."""
        if 0 <= which_gate < GATE_MAX:
            self._trigger(which_gate, bool(enabled))

    def reset(self):
        """Close every gate and reset timers, clock counters and CC history."""
        for which_gate, (cfg, state) in enumerate(zip(self.configs, self._states)):
            state.counter = 0
            if cfg.mode in _TICK_MODES:
                state.value = cfg.tick_ofs
            else:
                state.value = NO_VALUE
            self._trigger(which_gate, False)

    def nrpn(self, which_gate, param_lo, value_hi, value_lo):
        """Apply a gate parameter; return True if the setting was accepted."""
        if not 0 <= which_gate < GATE_MAX:
            return False
        cfg = self.configs[which_gate]

        if param_lo == NrpnLow.SRC:
            if value_hi == NRPVH_SRC_DISABLE:
                cfg.mode = GateMode.DISABLE
                return True
            if NRPVH_SRC_STACK1 <= value_hi <= NRPVH_SRC_STACK4:
                cfg.stack_id = value_hi - NRPVH_SRC_STACK1
                cfg.duration = GateDuration.GLOBAL
                cfg.flags = 0
                if NRPVL_SRC_NOTE1 <= value_lo <= NRPVL_SRC_NOTE4:
                    cfg.mode = GateMode.NOTE_GATEA + (value_lo - NRPVL_SRC_NOTE1)
                    return True
                if value_lo == NRPVL_SRC_NO_NOTES:
                    cfg.mode = GateMode.NOTES_OFF
                    return True
                if value_lo == NRPVL_SRC_ANY_NOTES:
                    cfg.mode = GateMode.NOTE_ON
                    return True
                return False
            if value_hi == NRPVH_SRC_MIDINOTE:
                cfg.mode = GateMode.MIDI_NOTE
                cfg.chan = Channel.GLOBAL
                cfg.note = value_lo
                cfg.note_max = 0
                cfg.vel_min = 0
                return True
            if value_hi in (NRPVH_SRC_MIDICC, NRPVH_SRC_MIDICC_NEG):
                cfg.mode = value_hi
                cfg.chan = Channel.GLOBAL
                cfg.cc = value_lo
                cfg.threshold = DEFAULT_GATE_CC_THRESHOLD
                return True
            if value_hi in _CLOCK_SOURCES:
                cfg.mode = value_hi
                cfg.tick_ofs = 0
                cfg.div = value_lo if value_lo else DEFAULT_GATE_DIV
                return True
            return False

        if param_lo == NrpnLow.CHAN:
            if value_hi == NRPVH_CHAN_SPECIFIC:
                if 1 <= value_lo <= 16:
                    cfg.chan = value_lo - 1
                    return True
                return False
            if value_hi == NRPVH_CHAN_OMNI:
                cfg.chan = Channel.OMNI
                return True
            if value_hi == NRPVH_CHAN_GLOBAL:
                cfg.chan = Channel.GLOBAL
                return True
            return False

        if param_lo == NrpnLow.NOTE_MIN:
            cfg.note = value_lo
            cfg.note_max = 0
            return True
        if param_lo == NrpnLow.NOTE_MAX:
            cfg.note_max = value_lo
            return True
        if param_lo == NrpnLow.VEL_MIN:
            cfg.vel_min = value_lo
            return True
        if param_lo == NrpnLow.THRESHOLD:
            cfg.threshold = value_lo
            return True

        if param_lo == NrpnLow.GATE_DUR:
            if value_hi == NRPVH_DUR_MS:
                cfg.duration = value_lo
                return True
            if value_hi == NRPVH_DUR_INF:
                cfg.duration = GateDuration.INFINITE
                return True
            if value_hi == NRPVH_DUR_GLOBAL:
                cfg.duration = GateDuration.GLOBAL
                return True
            if value_hi == NRPVH_DUR_RETRIG:
                cfg.duration = GateDuration.INFINITE
                cfg.flags |= GATE_FLAG_RETRIG
                return True
            return False

        if param_lo == NrpnLow.TICK_OFS:
            cfg.tick_ofs = value_lo
            return True
        return False

    def to_bytes(self):
        """Return the stored form of every gate configuration."""
        return b"".join(bytes(cfg.raw) for cfg in self.configs)

    def load_bytes(self, data):
        """Restore every gate configuration from its stored form."""
        raw = bytes(data)
        expected = GATE_MAX * GateConfig.SIZE
        if len(raw) != expected:
            raise ValueError(f"gate config needs {expected} bytes, got {len(raw)}")
        size = GateConfig.SIZE
        self.configs = [
            GateConfig(bytearray(raw[offset:offset + size]))
            for offset in range(0, expected, size)
        ]