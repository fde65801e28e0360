"""The converter: MIDI input parsing, parameter dispatch, timing and output flushing."""

import argparse
import os
import sys
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .constants import (
    LED_PULSE_MIDI_BEAT,
    LED_PULSE_MIDI_IN,
    LED_PULSE_PARAM,
    LONG_BUTTON_PRESS,
    MIDI_CC_DATA_HI,
    MIDI_CC_DATA_LO,
    MIDI_CC_NRPN_HI,
    MIDI_CC_NRPN_LO,
    MIDI_MTC_QTR_FRAME,
    MIDI_SONG_SELECT,
    MIDI_SPP,
    MIDI_SYNCH_CONTINUE,
    MIDI_SYNCH_START,
    MIDI_SYNCH_STOP,
    MIDI_SYNCH_TICK,
    MIDI_SYSEX_BEGIN,
    MIDI_SYSEX_END,
    SHORT_BUTTON_PRESS,
    SYSEX_ID,
    NrpnHigh,
)
from .cv import CvOutputs
from .gate import Gates
from .outputs import OutputState
from .settings import GlobalConfig
from .stack import NoteStacks
from .storage import Eeprom, read_patch, write_patch

# Receive ring buffer size; one slot is always left free
RX_BUFFER_SIZE = 64

# MIDI clock ticks per beat
TICKS_PER_BEAT = 24

_RESET_PULSE = 100

_REALTIME = frozenset(
    {MIDI_SYNCH_TICK, MIDI_SYNCH_START, MIDI_SYNCH_CONTINUE, MIDI_SYNCH_STOP}
)
_REPORTED_KINDS = frozenset({0x80, 0x90, 0xE0, 0xB0, 0xD0})


@dataclass(frozen=True)
class MidiMessage:
    """A complete MIDI message: status byte and its data bytes."""

    status: int
    params: Tuple[int, ...] = ()

    @property
    def kind(self):
        return self.status & 0xF0

    @property
    def channel(self):
        return self.status & 0x0F


class _Sysex(IntEnum):
    NONE = 0
    IGNORE = 1
    ID0 = 2
    ID1 = 3
    ID2 = 4
    PARAMH = 5
    PARAML = 6
    VALUEH = 7
    VALUEL = 8


@dataclass
class MidiParser:
    """Turn a MIDI byte stream into messages, with running status.

    Patch sysex blocks deliver parameters through ``on_nrpn(hi, lo, vhi, vlo)``
    and report their end through ``on_sysex_end(ok)``.
    """

    on_nrpn: Optional[Callable[[int, int, int, int], None]] = None
    on_sysex_end: Optional[Callable[[bool], None]] = None
    status: int = field(default=0, init=False)
    _num_params: int = field(default=0, init=False, repr=False)
    _params: List[int] = field(default_factory=list, init=False, repr=False)
    _sysex: _Sysex = field(default=_Sysex.NONE, init=False, repr=False)
    _sysex_param: List[int] = field(default_factory=list, init=False, repr=False)

    def _start(self, status, num_params):
        self.status = status
        self._num_params = num_params
        self._params = []

    def feed(self, byte):
        """Consume one byte; return a MidiMessage when one is complete, else None."""
        ch = byte & 0xFF
        if ch & 0xF0 == 0xF0:
            return self._system(ch)
        if ch & 0x80:
            # a status byte cancels any sysex block
            self._sysex = _Sysex.NONE
            self._start(ch, 1 if ch & 0xF0 in (0xC0, 0xD0) else 2)
            return None
        return self._data(ch)

    def _system(self, ch):
        if ch in _REALTIME:
            return MidiMessage(ch)
        if ch in (MIDI_MTC_QTR_FRAME, MIDI_SONG_SELECT, MIDI_SPP):
            self._start(ch, 2 if ch == MIDI_SPP else 1)
        elif ch == MIDI_SYSEX_BEGIN:
            self._sysex = _Sysex.ID0
        elif ch == MIDI_SYSEX_END:
            state = self._sysex
            self._sysex = _Sysex.NONE
            if state not in (_Sysex.NONE, _Sysex.IGNORE) and self.on_sysex_end:
                self.on_sysex_end(state == _Sysex.PARAMH)
        return None

    def _data(self, ch):
        state = self._sysex
        if state in (_Sysex.ID0, _Sysex.ID1, _Sysex.ID2):
            expected = SYSEX_ID[state - _Sysex.ID0]
            self._sysex = _Sysex(state + 1) if ch == expected else _Sysex.IGNORE
            return None
        if state == _Sysex.PARAMH:
            self._sysex_param = [ch]
            self._sysex = _Sysex.PARAML
            return None
        if state in (_Sysex.PARAML, _Sysex.VALUEH):
            self._sysex_param.append(ch)
            self._sysex = _Sysex(state + 1)
            return None
        if state == _Sysex.VALUEL:
            param_hi, param_lo, value_hi = self._sysex_param
            self._sysex = _Sysex.PARAMH
            if self.on_nrpn:
                self.on_nrpn(param_hi, param_lo, value_hi, ch)
            return None
        if state == _Sysex.IGNORE or not self.status:
            return None
        self._params.append(ch)
        if len(self._params) < self._num_params:
            return None
        params = tuple(self._params)
        self._params = []
        if self.status & 0xF0 in _REPORTED_KINDS:
            return MidiMessage(self.status, params)
        return None


class Converter:
    """The complete MIDI to CV converter."""

    def __init__(self, eeprom=None):
        self.eeprom = eeprom if eeprom is not None else Eeprom()
        self.settings = GlobalConfig(on_save=self.save)
        self.outputs = OutputState()
        self.gates = Gates(self.settings, self.outputs)
        self.stacks = NoteStacks(self.settings, self._cv_event, self.gates.event)
        self.cv = CvOutputs(self.settings, self.outputs, self.stacks)
        self.parser = MidiParser(on_nrpn=self.nrpn, on_sysex_end=self._sysex_end)
        self.dac_writes: List[bytes] = []
        self.sr_writes: List[int] = []
        self.led1 = False
        self.led2 = False
        self._led1_timeout = 0
        self._led2_timeout = 0
        self.midi_ticks = 0
        self._rx = deque()
        self._nrpn_hi = 0
        self._nrpn_lo = 0
        self._nrpn_value_hi = 0
        self._button_press = 0
        self._pulse_led1(255)
        self._pulse_led2(255)
        read_patch(self.eeprom, self._sections())
        self.reset_all()

    def _sections(self):
        return [self.settings, self.stacks, self.cv, self.gates]

    def _cv_event(self, event, stack_id):
        self.cv.event(event, stack_id)

    def _pulse_led1(self, ms):
        self.led1 = True
        self._led1_timeout = ms

    def _pulse_led2(self, ms):
        self.led2 = True
        self._led2_timeout = ms

    def receive(self, data):
        """Queue incoming MIDI bytes; bytes arriving while the buffer is full are lost."""
        for byte in bytes(data):
            if len(self._rx) < RX_BUFFER_SIZE - 1:
                self._rx.append(byte)
            self._pulse_led1(LED_PULSE_MIDI_IN)

    def poll(self):
        """Handle the next complete message, flush outputs, and return the message or None."""
        message = None
        while self._rx and message is None:
            message = self.parser.feed(self._rx.popleft())
        if message is not None:
            self._dispatch(message)
        self._flush()
        return message

    def _dispatch(self, msg):
        kind, chan, params = msg.kind, msg.channel, msg.params
        if kind == 0xF0:
            if msg.status == MIDI_SYNCH_TICK:
                if not self.midi_ticks:
                    self._pulse_led2(LED_PULSE_MIDI_BEAT)
                self.midi_ticks += 1
                if self.midi_ticks >= TICKS_PER_BEAT:
                    self.midi_ticks = 0
            elif msg.status == MIDI_SYNCH_START:
                self.midi_ticks = 0
            self.gates.midi_clock(msg.status)
        elif kind == 0x80:
            self.stacks.midi_note(chan, params[0], 0)
            self.gates.midi_note(chan, params[0], 0)
        elif kind == 0x90:
            self.stacks.midi_note(chan, params[0], params[1])
            self.gates.midi_note(chan, params[0], params[1])
        elif kind == 0xB0:
            self._control_change(chan, params[0], params[1])
        elif kind == 0xD0:
            self.cv.midi_touch(chan, params[0])
        elif kind == 0xE0:
            bend = (params[1] << 7) | (params[0] & 0x7F)
            self.stacks.midi_bend(chan, bend)
            self.cv.midi_bend(chan, bend)

    def _control_change(self, chan, cc, value):
        if cc == MIDI_CC_NRPN_HI:
            self._nrpn_hi = value
            self._nrpn_lo = 0
            self._nrpn_value_hi = 0
        elif cc == MIDI_CC_NRPN_LO:
            self._nrpn_lo = value
            self._nrpn_value_hi = 0
        elif cc == MIDI_CC_DATA_HI:
            self._nrpn_value_hi = value
        elif cc == MIDI_CC_DATA_LO:
            self.nrpn(self._nrpn_hi, self._nrpn_lo, self._nrpn_value_hi, value)
        else:
            self.cv.midi_cc(chan, cc, value)
            self.gates.midi_cc(chan, cc, value)

    def _flush(self):
        out = self.outputs
        if out.dac_pending:
            self.dac_writes.append(self.cv.dac_frame())
            out.dac_pending = False
            out.complete_dac_transfer()
        self.sr_writes.extend(out.take_shift_register_writes())

    def tick(self, button_down=False):
        """Advance one millisecond: gate timers, LEDs and the front panel button."""
        self.gates.run()
        if self._led1_timeout:
            self._led1_timeout -= 1
            if not self._led1_timeout:
                self.led1 = False
        if self._led2_timeout:
            self._led2_timeout -= 1
            if not self._led2_timeout:
                self.led2 = False
        if button_down:
            self._button_press = (self._button_press + 1) & 0xFFFF
            if self._button_press == SHORT_BUTTON_PRESS:
                self.reset_all()
                self._pulse_led2(_RESET_PULSE)
            elif self._button_press == LONG_BUTTON_PRESS:
                self.led2 = True
                self.save()
                self._pulse_led2(255)
        else:
            self._button_press = 0
        self._flush()

    def nrpn(self, param_hi, param_lo, value_hi, value_lo):
        """Apply a configuration parameter; return True if it was accepted."""
        if param_hi == NrpnHigh.GLOBAL:
            result = self.settings.nrpn(param_lo, value_hi, value_lo)
        elif NrpnHigh.STACK1 <= param_hi <= NrpnHigh.STACK4:
            result = self.stacks.nrpn(
                param_hi - NrpnHigh.STACK1, param_lo, value_hi, value_lo
            )
        elif NrpnHigh.GATE1 <= param_hi <= NrpnHigh.GATE12:
            result = self.gates.nrpn(
                param_hi - NrpnHigh.GATE1, param_lo, value_hi, value_lo
            )
        elif NrpnHigh.CV1 <= param_hi <= NrpnHigh.CV4:
            result = self.cv.nrpn(param_hi - NrpnHigh.CV1, param_lo, value_hi, value_lo)
        else:
            result = False
        if result:
            self._pulse_led2(LED_PULSE_PARAM)
        return bool(result)

    def _sysex_end(self, ok):
        self.led1 = False
        self.led2 = False
        if ok:
            self.save()
        self.reset_all()

    def reset_all(self):
        """Return gates, CV outputs and note stacks to their resting state."""
        self.gates.reset()
        self.cv.reset()
        self.stacks.reset()

    def save(self):
        """Store the whole configuration in the EEPROM."""
        write_patch(self.eeprom, self._sections())


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="cvocd",
        description="Run raw MIDI bytes through the converter and show its outputs.",
    )
    parser.add_argument("input", help="file of raw MIDI bytes, or - for standard input")
    parser.add_argument(
        "--eeprom", help="patch memory image to load, and to save back afterwards"
    )
    parser.add_argument(
        "--ticks", type=int, default=0, help="milliseconds to run after the input"
    )
    args = parser.parse_args(argv)

    eeprom = Eeprom()
    if args.eeprom and os.path.exists(args.eeprom):
        image = Path(args.eeprom).read_bytes()
        for address, value in enumerate(image[: eeprom.size]):
            eeprom.write(address, value)

    if args.input == "-":
        data = sys.stdin.buffer.read()
    else:
        data = Path(args.input).read_bytes()

    converter = Converter(eeprom)
    for byte in data:
        converter.receive((byte,))
        converter.poll()
    for _ in range(args.ticks):
        converter.tick()
    converter.poll()

    for name, value in zip("ABCD", converter.cv.dac):
        print(f"CV {name}: {value}")
    print(f"gates: {converter.outputs.sr_data:#06x}")

    if args.eeprom:
        Path(args.eeprom).write_bytes(
            bytes(eeprom.read(a) for a in range(eeprom.size))
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())