# cvocd

A software model of a MIDI-to-CV converter with four CV outputs and twelve
gate outputs. It turns a raw MIDI byte stream into 12-bit DAC values and
gate bits, and it can be configured through NRPN messages or sysex.

## What is in the package

- `cvocd.device` – `MidiParser` splits a MIDI byte stream into
  `MidiMessage`s, with running status, realtime clock messages and
  configuration sysex. `Converter` ties the whole device together.
- `cvocd.stack` – `NoteStacks`: four note stacks with last, low and high
  note priority, 2–4 note cycling and 2–4 note chords, plus pitch bend.
- `cvocd.gate` – `Gates`: twelve gate outputs. Each can follow a note
  stack event, a raw MIDI note or note range, a CC crossing a threshold
  (or falling below it), or MIDI clock ticks, start, stop and run state.
  Gates can be timed, held open, or retriggered.
- `cvocd.cv` – `CvOutputs`: four CV outputs. Each can follow note pitch
  (V/oct, Hz/V or 1.2 V/oct, with transpose), velocity, a CC, channel
  aftertouch or pitch bend, or put out a fixed test voltage, with a
  per-output calibration scale and offset.
- `cvocd.settings` – `GlobalConfig`: the global MIDI channel and gate
  duration.
- `cvocd.outputs` – `OutputState`: pending DAC and shift-register data, and
  `shift_register_frames` for the bit pairs clocked into the two registers.
- `cvocd.storage` – `Eeprom`, `write_patch` and `read_patch`: the patch is
  saved after a marker byte, as the global, note stack, CV and gate
  settings in that order.
- `cvocd.testgen` – the hardware test pattern: `triangle_wave`,
  `dac_write_bytes`, `gate_step` and the endless generator
  `generate_test_outputs`, yielding `OutputFrame`s.
- `cvocd.constants` – shared values and the enumerations `Channel`,
  `GateDuration`, `Event`, `Priority`, `NrpnHigh` and `NrpnLow`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Using the converter

```python
from cvocd.device import Converter
from cvocd.storage import Eeprom

conv = Converter(Eeprom(256))

# Stack 1 accepts notes 0..127 (note max = 127)
conv.nrpn(11, 4, 0, 127)
# CV 1 follows stack 1, note output A
conv.nrpn(21, 1, 11, 1)

# Middle C on MIDI channel 1
conv.receive(bytes([0x90, 60, 100]))
conv.poll()

print(conv.cv.dac)   # (1500, 0, 0, 0): two octaves below C4 is 3 V at 500 steps per volt
```

`Converter.receive` queues incoming bytes (up to 63 are held; more are
dropped). `Converter.poll` handles the next complete message, if any,
returns it, and flushes pending output: each DAC update is appended to
`Converter.dac_writes` as the bytes of a bus write, and each gate word
latched into the shift registers to `Converter.sr_writes`.
`Converter.outputs.sr_data` holds the current gate bits.

`Converter.tick(button_down=False)` advances one millisecond: it runs gate
timeouts and the LED timers (`led1`, `led2`), and tracks the front-panel
button, which resets the outputs after 40 ms held and saves the patch
after 2000 ms. `Converter.nrpn`, `Converter.reset_all` and
`Converter.save` can also be called directly. A patch found in the EEPROM
is loaded when the converter is created.

## Command line

```
cvocd INPUT [--eeprom IMAGE] [--ticks N]
```

`INPUT` is a file of raw MIDI bytes, or `-` for standard input. The bytes
are run through a converter, then `N` milliseconds are ticked, and the four
CV values and the gate word are printed. With `--eeprom`, the given image
file is loaded first if it exists and written back afterwards.

## Configuration parameters

The parameter number high byte picks the target:

| High byte | Target           |
|-----------|------------------|
| 1         | global settings  |
| 11–14     | note stacks 1–4  |
| 21–24     | CV outputs 1–4   |
| 31–42     | gates 1–12       |

The low byte picks the setting: source (1), channel (2), note min/max
(3/4), velocity minimum (5), bend range (7), priority (8), tick offset
(11), gate duration (12), CC threshold (13), transpose (14), volts (15),
pitch scheme (16), calibration scale/offset (98/99) and save (100, global
only). Over MIDI they are sent as CC 99 and 98 (parameter high and low),
then CC 6 (value high) and CC 38 (value low), which applies the setting.

Sysex blocks with the id `00 7F 15` carry the same settings as groups of
four bytes (parameter high, parameter low, value high, value low). When such
a block ends cleanly the patch is saved; either way the outputs are reset.

## What it does not do

The package talks to no MIDI port, DAC or shift register. Input is handed
to it as bytes, time passes only when `tick` is called, and output is the
recorded DAC writes, gate words and LED flags. The EEPROM is a byte array
in memory; the command line can keep it in a file.