"""CV outputs: four DAC channels driven by note stacks, CCs, aftertouch or bend."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

from .constants import (
    CV_MAX,
    DEFAULT_CV_BPM_MAX_VOLTS,
    DEFAULT_CV_CC_MAX_VOLTS,
    DEFAULT_CV_PB_MAX_VOLTS,
    DEFAULT_CV_TEST_VOLTS,
    DEFAULT_CV_TOUCH_MAX_VOLTS,
    DEFAULT_CV_VEL_MAX_VOLTS,
    NRPVH_CHAN_GLOBAL,
    NRPVH_CHAN_OMNI,
    NRPVH_CHAN_SPECIFIC,
    NRPVH_PITCH_12VO,
    NRPVH_PITCH_HZV,
    NRPVH_SRC_DISABLE,
    NRPVH_SRC_MIDIBEND,
    NRPVH_SRC_MIDICC,
    NRPVH_SRC_MIDITICK,
    NRPVH_SRC_MIDITOUCH,
    NRPVH_SRC_STACK1,
    NRPVH_SRC_STACK4,
    NRPVH_SRC_TESTVOLTAGE,
    NRPVL_SRC_NOTE1,
    NRPVL_SRC_NOTE4,
    NRPVL_SRC_VEL,
    TRANSPOSE_NONE,
    Channel,
    Event,
    NrpnLow,
    is_chan,
)
from .testgen import DAC_ADDRESS, dac_write_bytes

DAC_MAX = 4095

# DAC steps per volt
DAC_PER_VOLT = 500

# Raw MIDI pitch bend value meaning "no bend"
_BEND_CENTRE = 8192

# DAC values for each semitone of the top octave in Hz/Volt mode
_HZV_TABLE = (2000, 2119, 2245, 2378, 2520, 2670, 2828, 2997, 3175, 3364, 3564, 3775)
_HZV_C6 = 4000

_NOTE_EVENTS = (Event.NOTE_A, Event.NOTE_B, Event.NOTE_C, Event.NOTE_D)


def _to_int16(value):
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _div_trunc(numerator, denominator):
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


class CvMode(IntEnum):
    """What a CV output follows."""

    DISABLE = 0
    NOTE = 1
    VEL = 2
    MIDI_BEND = 3
    MIDI_TOUCH = 4
    MIDI_CC = 5
    MIDI_BPM = 6
    TEST = 7
    NOTE_HZV = 8
    NOTE_12VO = 9


_NOTE_MODES = (CvMode.NOTE, CvMode.NOTE_HZV, CvMode.NOTE_12VO)


class _Slot:
    """A byte of a CV configuration, shared by every field stored at that offset."""

    def __init__(self, offset):
        self.offset = offset

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.raw[self.offset]

    def __set__(self, obj, value):
        obj.raw[self.offset] = int(value) & 0xFF


@dataclass
class CvConfig:
    """Configuration of one CV output.

    The stored layout is shared between the modes, so ``stack_id`` aliases
    ``chan`` and ``out`` aliases ``cc``.
    """

    SIZE: ClassVar[int] = 7

    raw: bytearray = field(default_factory=lambda: bytearray(7))

    mode = _Slot(0)
    volts = _Slot(1)
    ofs = _Slot(2)
    scale = _Slot(3)
    stack_id = _Slot(4)
    chan = _Slot(4)
    out = _Slot(5)
    cc = _Slot(5)
    transpose = _Slot(6)

    def __post_init__(self):
        self.raw = bytearray(self.raw)
        if len(self.raw) != self.SIZE:
            raise ValueError(
                f"cv config needs {self.SIZE} bytes, got {len(self.raw)}"
            )


class CvOutputs:
    """The four CV outputs and the DAC values they hold."""

    def __init__(self, settings, outputs, stacks):
        self._settings = settings
        self._outputs = outputs
        self._stacks = stacks
        self.configs = [CvConfig() for _ in range(CV_MAX)]
        self._dac = [0] * CV_MAX
        self._note = [0] * CV_MAX

    @property
    def dac(self):
        """The current DAC value of each output."""
        return tuple(self._dac)

    @property
    def notes(self):
        """The note most recently assigned to each output."""
        return tuple(self._note)

    def _update(self, which, value):
        cfg = self.configs[which]
        value = _to_int16(value)
        if cfg.scale:
            scale = cfg.scale - 64
            ofs = cfg.ofs - 64
            value = _to_int16(_div_trunc(value * (4096 + scale), 4096) + ofs)
        value = min(max(value, 0), DAC_MAX)
        if value != self._dac[which]:
            self._dac[which] = value
            self._outputs.dac_pending = True

    def _write_note(self, which, note, pitch_bend, dacs_per_oct):
        value = ((note << 8) + pitch_bend) * dacs_per_oct
        value = _div_trunc(value, 12) >> 8
        self._update(which, value)

    def _write_note_hzvolt(self, which, note, pitch_bend):
        value = (note << 8) + _to_int16(pitch_bend)
        fraction = value & 0xFF
        note = value >> 8
        if note == 72:
            dac = _HZV_C6
        else:
            dac = _HZV_TABLE[(note & 0xFF) % 12]
        # linear interpolation towards the next semitone
        dac += (dac * 244 * fraction) // 0x100000
        octave = min((note & 0xFF) // 12, 5)
        self._update(which, dac >> (5 - octave))

    def _write_7bit(self, which, value, volts):
        value = min(value, 127)
        self._update(which, (value * volts) << 2)

    def _write_bend(self, which, value, volts):
        self._update(which, (value * volts) >> 5)

    def _write_volts(self, which, volts):
        self._update(which, volts * DAC_PER_VOLT)

    def event(self, event, stack_id):
        """Handle an event raised by note stack ``stack_id``."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode == CvMode.DISABLE or cfg.stack_id != stack_id:
                continue
            stack = self._stacks[stack_id]
            if cfg.mode in _NOTE_MODES:
                if event in _NOTE_EVENTS:
                    output_id = event - Event.NOTE_A
                    if cfg.out == output_id:
                        note = (
                            stack.out[output_id]
                            + (cfg.transpose - TRANSPOSE_NONE)
                            - 24
                        )
                        while note < 0:
                            note += 12
                        while note > 120:
                            note -= 12
                        self._note[which] = note
                elif event != Event.BEND:
                    continue
                note = self._note[which]
                if cfg.mode == CvMode.NOTE_HZV:
                    self._write_note_hzvolt(which, note, stack.bend)
                elif cfg.mode == CvMode.NOTE_12VO:
                    self._write_note(which, note, stack.bend, 600)
                else:
                    self._write_note(which, note, stack.bend, DAC_PER_VOLT)
            elif cfg.mode == CvMode.VEL and event in _NOTE_EVENTS:
                self._write_7bit(which, stack.vel, cfg.volts)

    def midi_cc(self, chan, cc, value):
        """Handle a MIDI CC."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode != CvMode.MIDI_CC or cc != cfg.cc:
                continue
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            self._write_7bit(which, value, cfg.volts)

    def midi_touch(self, chan, value):
        """Handle MIDI channel aftertouch."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode != CvMode.MIDI_TOUCH:
                continue
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            self._write_7bit(which, value, cfg.volts)

    def midi_bend(self, chan, value):
        """Handle a raw 14-bit MIDI pitch bend value."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode != CvMode.MIDI_BEND:
                continue
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            self._write_bend(which, value, cfg.volts)

    def nrpn(self, which_cv, param_lo, value_hi, value_lo):
        """Apply a CV parameter; return True if the setting was accepted."""
        if not 0 <= which_cv < CV_MAX:
            return False
        cfg = self.configs[which_cv]

        if param_lo == NrpnLow.SRC:
            if value_hi == NRPVH_SRC_DISABLE:
                self._write_volts(which_cv, 0)
                cfg.mode = CvMode.DISABLE
                return True
            if value_hi == NRPVH_SRC_TESTVOLTAGE:
                cfg.mode = CvMode.TEST
                cfg.volts = DEFAULT_CV_TEST_VOLTS
                return True
            if value_hi == NRPVH_SRC_MIDITICK:
                cfg.mode = CvMode.MIDI_BPM
                cfg.volts = DEFAULT_CV_BPM_MAX_VOLTS
                return True
            if value_hi == NRPVH_SRC_MIDICC:
                cfg.mode = CvMode.MIDI_CC
                cfg.chan = Channel.GLOBAL
                cfg.cc = value_lo
                cfg.volts = DEFAULT_CV_CC_MAX_VOLTS
                return True
            if value_hi == NRPVH_SRC_MIDITOUCH:
                cfg.mode = CvMode.MIDI_TOUCH
                cfg.chan = Channel.GLOBAL
                cfg.volts = DEFAULT_CV_TOUCH_MAX_VOLTS
                return True
            if value_hi == NRPVH_SRC_MIDIBEND:
                cfg.mode = CvMode.MIDI_BEND
                cfg.chan = Channel.GLOBAL
                cfg.volts = DEFAULT_CV_PB_MAX_VOLTS
                return True
            if NRPVH_SRC_STACK1 <= value_hi <= NRPVH_SRC_STACK4:
                cfg.stack_id = value_hi - NRPVH_SRC_STACK1
                if NRPVL_SRC_NOTE1 <= value_lo <= NRPVL_SRC_NOTE4:
                    cfg.mode = CvMode.NOTE
                    cfg.out = value_lo - NRPVL_SRC_NOTE1
                    cfg.transpose = TRANSPOSE_NONE
                    return True
                if value_lo == NRPVL_SRC_VEL:
                    cfg.mode = CvMode.VEL
                    cfg.volts = DEFAULT_CV_VEL_MAX_VOLTS
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

        if param_lo == NrpnLow.TRANSPOSE:
            cfg.transpose = value_lo
            return True
        if param_lo == NrpnLow.VOLTS:
            if 0 <= value_lo <= 8:
                cfg.volts = value_lo
                return True
            return False
        if param_lo == NrpnLow.PITCH_SCHEME:
            if value_lo == NRPVH_PITCH_HZV:
                cfg.mode = CvMode.NOTE_HZV
            elif value_lo == NRPVH_PITCH_12VO:
                cfg.mode = CvMode.NOTE_12VO
            else:
                cfg.mode = CvMode.NOTE
            return True
        if param_lo == NrpnLow.CAL_SCALE:
            # zero turns calibration off
            cfg.scale = value_lo
            return True
        if param_lo == NrpnLow.CAL_OFS:
            cfg.ofs = value_lo
            return True
        return False

    def reset(self):
        """Set every output to its resting voltage and mark the DAC for update."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode == CvMode.TEST:
                self._write_volts(which, cfg.volts)
            elif cfg.mode == CvMode.MIDI_BEND:
                self._write_bend(which, _BEND_CENTRE, cfg.volts)
            else:
                self._write_volts(which, 0)
        self._outputs.dac_pending = True

    def dac_frame(self):
        """Return the bus write that sends the current values to the DAC."""
        a, b, c, d = self._dac
        return dac_write_bytes(a, b, c, d, DAC_ADDRESS)

    def to_bytes(self):
        """Return the stored form of every CV configuration."""
        return b"".join(bytes(cfg.raw) for cfg in self.configs)

    def load_bytes(self, data):
        """Restore every CV configuration from its stored form."""
        raw = bytes(data)
        size = CvConfig.SIZE
        expected = CV_MAX * size
        if len(raw) != expected:
            raise ValueError(f"cv config needs {expected} bytes, got {len(raw)}")
        self.configs = [
            CvConfig(bytearray(raw[offset:offset + size]))
            for offset in range(0, expected, size)
        ]