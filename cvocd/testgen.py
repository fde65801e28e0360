"""Hardware test pattern: triangle waves on the CV outputs and rotating gates."""

from dataclasses import dataclass
from typing import Optional, Tuple

from .gate import gate_bit

DAC_ADDRESS = 0b1100000

# Sent once before the pattern: internal voltage reference, then x2 gain
DAC_CONFIG_COMMANDS = (0b10001111, 0b11001111)

_WAVE_MASK = 0x1FFF
_STEP_MASK = 0x3FFF
_STEP_LENGTH = 0x1000


@dataclass(frozen=True)
class OutputFrame:
    """One step of the test pattern.

    ``cv`` holds the DAC values for outputs A-D. ``gates`` and ``leds`` are
    None on steps where the shift registers and LEDs are left unchanged.
    """

    cv: Tuple[int, int, int, int]
    gates: Optional[int] = None
    leds: Optional[Tuple[bool, bool]] = None


def triangle_wave(i):
    """Return a 12-bit triangle wave sample for a 13-bit phase counter."""
    i &= _WAVE_MASK
    if i < 0x1000:
        return i
    return _WAVE_MASK - i


def dac_write_bytes(a, b, c, d, address=DAC_ADDRESS):
    """Return the bytes of the bus write that sets the four DAC channels."""
    payload = [(address << 1) & 0xFF]
    for value in (b, d, c, a):
        payload.append((value >> 8) & 0x0F)
        payload.append(value & 0xFF)
    return bytes(payload)


def gate_step(j):
    """Return ``(gate_word, (led1, led2))`` when step ``j`` changes the gates, else None."""
    j &= _STEP_MASK
    if j % _STEP_LENGTH:
        return None
    step = j // _STEP_LENGTH
    word = gate_bit(step) | gate_bit(step + 4) | gate_bit(step + 8)
    return word, (bool(step & 2), bool(step & 1))


def generate_test_outputs():
    """Yield the endless sequence of test pattern frames."""
    i = 0
    j = 0
    while True:
        cv = (
            triangle_wave(i),
            triangle_wave(i + 0x0800),
            triangle_wave(i + 0x1000),
            triangle_wave(i + 0x1800),
        )
        step = gate_step(j)
        if step is None:
            yield OutputFrame(cv)
        else:
            gates, leds = step
            yield OutputFrame(cv, gates, leds)
        i = (i + 1) & _WAVE_MASK
        j = (j + 1) & _STEP_MASK