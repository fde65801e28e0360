"""Model of a MIDI-to-CV converter: MIDI parsing, note stacks, gate and CV outputs, NRPN configuration, patch storage and a hardware test pattern."""

__version__ = "0.1.0"

__all__ = [
    "constants",
    "settings",
    "outputs",
    "gate",
    "stack",
    "testgen",
    "cv",
    "storage",
    "device",
]