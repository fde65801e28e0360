"""Patch memory: the EEPROM image and the layout of a saved patch."""

# Marks an EEPROM that holds a saved patch
MAGIC_COOKIE = 0xA9

EEPROM_SIZE = 256

# Value of a cell that has never been written
ERASED = 0xFF


class Eeprom:
    """Byte-addressed non-volatile memory."""

    def __init__(self, size=EEPROM_SIZE):
        if size < 1:
            raise ValueError(f"eeprom size must be positive, got {size}")
        self.size = size
        self._cells = bytearray([ERASED]) * size

    def _check(self, address):
        if not 0 <= address < self.size:
            raise IndexError(f"eeprom address {address} out of range 0-{self.size - 1}")

    def read(self, address):
        """Return the byte stored at ``address``."""
        self._check(address)
        return self._cells[address]

    def write(self, address, value):
        """Store the byte ``value`` at ``address``."""
        self._check(address)
        if not 0 <= value <= 0xFF:
            raise ValueError(f"eeprom value {value} is not a byte")
        self._cells[address] = value


def _check_fits(eeprom, total):
    needed = 1 + total
    if needed > eeprom.size:
        raise ValueError(f"patch needs {needed} bytes, eeprom holds {eeprom.size}")


def write_patch(eeprom, sections):
    """Save each section's stored form after the marker byte, in order."""
    blocks = [bytes(section.to_bytes()) for section in sections]
    _check_fits(eeprom, sum(len(block) for block in blocks))
    eeprom.write(0, MAGIC_COOKIE)
    address = 1
    for block in blocks:
        for value in block:
            eeprom.write(address, value)
            address += 1


def read_patch(eeprom, sections):
    """Restore each section from a saved patch; return False if none is saved."""
    sections = list(sections)
    if eeprom.read(0) != MAGIC_COOKIE:
        return False
    sizes = [len(section.to_bytes()) for section in sections]
    _check_fits(eeprom, sum(sizes))
    address = 1
    for section, size in zip(sections, sizes):
        section.load_bytes(bytes(eeprom.read(a) for a in range(address, address + size)))
        address += size
    return True