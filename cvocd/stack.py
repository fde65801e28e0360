"""Note stacks: track held notes and assign them to up to four note outputs."""

from dataclasses import astuple, dataclass, field, fields
from typing import Callable, ClassVar, List

from .constants import (
    NO_NOTE_OUT,
    NRPVH_CHAN_GLOBAL,
    NRPVH_CHAN_OMNI,
    NUM_NOTE_STACKS,
    SZ_NOTE_STACK,
    Channel,
    Event,
    NrpnLow,
    Priority,
    is_chan,
    is_note_match,
)

# Raw MIDI pitch bend value meaning "no bend"
BEND_CENTRE = 8192

_OUTPUTS = 4


def _to_int16(value):
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _div_trunc(numerator, denominator):
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


@dataclass
class NoteStack:
    """Live state of one note stack.

    ``held`` lists the held notes in priority order, ``out`` the note on each
    of the four outputs (``NO_NOTE_OUT`` when silent) and ``bend`` the pitch
    bend in 1/256ths of a semitone.
    """

    held: List[int] = field(default_factory=list)
    out: List[int] = field(default_factory=lambda: [NO_NOTE_OUT] * _OUTPUTS)
    bend: int = 0
    vel: int = 0
    index: int = 0


@dataclass
class StackConfig:
    """Configuration of one note stack, in its stored byte order."""

    SIZE: ClassVar[int] = 6

    chan: int = 0
    note_min: int = 0
    note_max: int = 0
    vel_min: int = 0
    bend_range: int = 0
    priority: int = Priority.LAST


def _update_held(stack, note, vel, priority):
    held = stack.held
    if vel:
        pos = next(
            (
                pos
                for pos, other in enumerate(held)
                if priority == Priority.LAST
                or (priority == Priority.HIGH and note > other)
                or (priority == Priority.LOW and note < other)
            ),
            len(held),
        )
        held.insert(pos, note)
        # a full stack drops its lowest priority note
        del held[SZ_NOTE_STACK:]
    elif note in held:
        held.remove(note)


class NoteStacks:
    """The four note stacks, fed with MIDI notes and pitch bend.

    Changes are reported through ``on_cv_event(event, stack_id)`` and
    ``on_gate_event(event, stack_id)``.
    """

    def __init__(self, settings, on_cv_event, on_gate_event):
        self._settings = settings
        self._cv_event: Callable[[Event, int], None] = on_cv_event
        self._gate_event: Callable[[Event, int], None] = on_gate_event
        self.configs = [StackConfig() for _ in range(NUM_NOTE_STACKS)]
        self._stacks = [NoteStack() for _ in range(NUM_NOTE_STACKS)]

    def __getitem__(self, stack_id):
        if not 0 <= stack_id < NUM_NOTE_STACKS:
            raise IndexError(f"no note stack {stack_id}")
        return self._stacks[stack_id]

    def _prioritize(self, stack_id, stack, priority, note, vel):
        _update_held(stack, note, vel, priority)
        prev_out = stack.out[0]
        if not stack.held:
            if prev_out != NO_NOTE_OUT:
                stack.out[0] = NO_NOTE_OUT
                self._gate_event(Event.NO_NOTE_A, stack_id)
                self._gate_event(Event.NOTES_OFF, stack_id)
        elif prev_out != stack.held[0]:
            stack.out[0] = stack.held[0]
            self._cv_event(Event.NOTE_A, stack_id)
            self._gate_event(Event.NOTE_A, stack_id)
            if prev_out == NO_NOTE_OUT:
                self._gate_event(Event.NOTE_ON, stack_id)

    def _release_outputs(self, stack_id, stack, note):
        any_note = False
        for which, playing in enumerate(stack.out):
            if playing == note:
                stack.out[which] = NO_NOTE_OUT
                self._gate_event(Event(Event.NO_NOTE_A + which), stack_id)
            elif playing != NO_NOTE_OUT:
                any_note = True
        if not any_note:
            self._gate_event(Event.NOTES_OFF, stack_id)

    def _cycle(self, stack_id, stack, cycle_size, note, vel):
        if vel:
            which = stack.index
            stack.out[which] = note
            self._cv_event(Event(Event.NOTE_A + which), stack_id)
            self._gate_event(Event(Event.NOTE_A + which), stack_id)
            self._gate_event(Event.NOTE_ON, stack_id)
            stack.index += 1
            if stack.index >= cycle_size:
                stack.index = 0
        else:
            self._release_outputs(stack_id, stack, note)

    def _para_chord(self, stack_id, stack, chord_size, note, vel):
        _update_held(stack, note, vel, Priority.LOW)
        held = stack.held
        if vel:
            for which in range(chord_size):
                chord_note = held[which % len(held)]
                if chord_note != stack.out[which]:
                    stack.out[which] = chord_note
                    self._cv_event(Event(Event.NOTE_A + which), stack_id)
            if len(held) <= chord_size:
                self._gate_event(Event.NOTE_ON, stack_id)
            if len(held) == 1:
                self._gate_event(Event.NOTE_A, stack_id)
        elif not held:
            self._gate_event(Event.NO_NOTE_A, stack_id)
            self._gate_event(Event.NOTES_OFF, stack_id)

    def midi_note(self, chan, note, vel):
        """Handle a MIDI note; a zero velocity is a note off."""
        for stack_id, (cfg, stack) in enumerate(zip(self.configs, self._stacks)):
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            if not is_note_match(cfg.note_min, cfg.note_max, note):
                continue
            if vel:
                if cfg.vel_min and vel < cfg.vel_min:
                    continue
                stack.vel = vel
            priority = cfg.priority
            if priority in (Priority.LAST, Priority.LOW, Priority.HIGH):
                self._prioritize(stack_id, stack, priority, note, vel)
            elif Priority.CYCLE2 <= priority <= Priority.CYCLE4:
                self._cycle(stack_id, stack, 2 + priority - Priority.CYCLE2, note, vel)
            elif Priority.CHORD2 <= priority <= Priority.CHORD4:
                self._para_chord(
                    stack_id, stack, 2 + priority - Priority.CHORD2, note, vel
                )

    def midi_bend(self, chan, bend):
        """Handle a raw 14-bit MIDI pitch bend value."""
        for stack_id, (cfg, stack) in enumerate(zip(self.configs, self._stacks)):
            if not is_chan(cfg.chan, chan, self._settings.chan):
                continue
            new_bend = _to_int16(
                _div_trunc(cfg.bend_range * (bend - BEND_CENTRE), 32)
            )
            if stack.bend != new_bend:
                stack.bend = new_bend
                self._cv_event(Event.BEND, stack_id)

    def nrpn(self, which_stack, param_lo, value_hi, value_lo):
        """Apply a note stack parameter; return True if the setting was accepted."""
        if not 0 <= which_stack < NUM_NOTE_STACKS:
            return False
        cfg = self.configs[which_stack]
        if param_lo == NrpnLow.CHAN:
            if value_hi == NRPVH_CHAN_OMNI:
                cfg.chan = int(Channel.OMNI)
                return True
            if value_hi == NRPVH_CHAN_GLOBAL:
                cfg.chan = int(Channel.GLOBAL)
                return True
            if 1 <= value_lo <= 16:
                cfg.chan = value_lo - 1
                return True
            return False
        if param_lo == NrpnLow.NOTE_MIN:
            cfg.note_min = value_lo
            return True
        if param_lo == NrpnLow.NOTE_MAX:
            cfg.note_max = value_lo
            return True
        if param_lo == NrpnLow.VEL_MIN:
            cfg.vel_min = value_lo
            return True
        if param_lo == NrpnLow.PB_RANGE:
            cfg.bend_range = value_lo
            return True
        if param_lo == NrpnLow.PRIORITY:
            if 0 <= value_lo < Priority.MAX:
                cfg.priority = value_lo
                return True
            return False
        return False

    def reset(self):
        """Release every note and clear bend, velocity and cycling state."""
        for stack_id, stack in enumerate(self._stacks):
            stack.held.clear()
            stack.out[:] = [NO_NOTE_OUT] * _OUTPUTS
            stack.bend = 0
            stack.vel = 0
            stack.index = 0
            self._gate_event(Event.NOTES_OFF, stack_id)

    def to_bytes(self):
        """Return the stored form of every stack configuration."""
        return bytes(
            int(value) & 0xFF for cfg in self.configs for value in astuple(cfg)
        )

    def load_bytes(self, data):
        """Restore every stack configuration from its stored form."""
        raw = bytes(data)
        size = len(fields(StackConfig))
        expected = NUM_NOTE_STACKS * size
        if len(raw) != expected:
            raise ValueError(
                f"note stack config needs {expected} bytes, got {len(raw)}"
            )
        self.configs = [
            StackConfig(*raw[offset:offset + size])
            for offset in range(0, expected, size)
        ]