"""Global settings: the default MIDI channel and default gate duration."""

from dataclasses import dataclass, field
from typing import Callable, ClassVar, Optional

from .constants import (
    DEFAULT_GATE_DURATION,
    DEFAULT_MIDI_CHANNEL,
    NRPVH_DUR_MS,
    NrpnLow,
)


@dataclass
class GlobalConfig:
    """Settings shared by every unit configured to follow the global setting."""

    SIZE: ClassVar[int] = 2

    chan: int = DEFAULT_MIDI_CHANNEL
    gate_duration: int = DEFAULT_GATE_DURATION
    on_save: Optional[Callable[[], None]] = field(
        default=None, repr=False, compare=False
    )

    def nrpn(self, param_lo, value_hi, value_lo):
        """Apply a global parameter; return True if the setting was accepted."""
        if param_lo == NrpnLow.CHAN:
            if 1 <= value_lo <= 16:
                self.chan = value_lo - 1
                return True
            return False
        if param_lo == NrpnLow.GATE_DUR:
            if value_hi == NRPVH_DUR_MS:
                self.gate_duration = value_lo & 0xFF
                return True
            return False
        if param_lo == NrpnLow.SAVE:
            if self.on_save is not None:
                self.on_save()
            return True
        return False

    def to_bytes(self):
        """Return the stored form of the settings."""
        return bytes([self.chan & 0xFF, self.gate_duration & 0xFF])

    def load_bytes(self, data):
        """Restore settings from their stored form."""
        raw = bytes(data)
        if len(raw) != self.SIZE:
            raise ValueError(
                f"global settings need {self.SIZE} bytes, got {len(raw)}"
            )
        self.chan, self.gate_duration = raw