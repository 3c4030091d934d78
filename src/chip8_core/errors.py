"""ROM loading errors.

None of these are retried internally; they are raised to the caller of
Chip8CPU.load_rom / Chip8CPU.load_bytes, which leaves the previous
machine state untouched.
"""

from typing import Optional


class RomError(Exception):
    """Base class for every ROM loading failure."""


class RomOpenError(RomError):
    """The ROM file could not be opened."""

    def __init__(self, path: str, err: Optional[OSError] = None):
        self.path = path
        self.err = err
        super().__init__(f"Failed to open CHIP-8 ROM file '{path}': {err}")


class RomReadError(RomError):
    """The ROM file was opened but could not be fully read."""

    def __init__(self, path: str, err: Optional[OSError] = None):
        self.path = path
        self.err = err
        super().__init__(f"Failed to read CHIP-8 ROM file '{path}': {err}")


class RomSizeError(RomError):
    """The ROM image does not fit in program memory."""

    def __init__(self, max: int, actual: int):
        self.max = max
        self.actual = actual
        super().__init__(
            f"CHIP-8 ROM too large for memory. Expected <= {max}, got {actual} bytes"
        )
