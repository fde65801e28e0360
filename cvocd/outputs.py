"""Pending output state shared by the CV and gate units, and shift register framing."""

from dataclasses import dataclass

_WORD_MASK = 0xFFFF


@dataclass
class OutputState:
    """Flags and gate bits waiting to be written to the DAC and shift registers."""

    dac_pending: bool = False
    sr_data: int = 0
    sr_retrigs: int = 0
    sr_data_pending: bool = False
    sync_sr_data: int = 0
    sync_sr_data_pending: bool = False

    def complete_dac_transfer(self):
        """Release gates that were held back until the DAC had been written."""
        if self.sync_sr_data_pending:
            self.sr_data |= self.sync_sr_data
            self.sync_sr_data = 0
            self.sync_sr_data_pending = False
            self.sr_data_pending = True

    def take_shift_register_writes(self):
        """Return the gate words to latch now, in order, and clear what was pending.

        Retriggered gates are first latched low, then the current gate data
        is latched if it has changed.
        """
        writes = []
        if self.sr_retrigs:
            writes.append(self.sr_data & ~self.sr_retrigs & _WORD_MASK)
            self.sr_retrigs = 0
        if self.sr_data_pending:
            self.sr_data_pending = False
            writes.append(self.sr_data & _WORD_MASK)
        return writes


def shift_register_frames(data, nmask):
    """Return the eight (data1, data2) bit pairs clocked into the two shift registers.

    Bits set in ``nmask`` are forced low. The first register takes the low
    byte and the second the high byte, most significant bit first.
    """
    word = data & ~nmask & _WORD_MASK
    return tuple(
        (bool(word & (0x0080 >> shift)), bool(word & (0x8000 >> shift)))
        for shift in range(8)
    )