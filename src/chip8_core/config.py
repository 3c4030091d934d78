"""Machine constants and variant configuration for chip8-core.

Memory Map:
    0x000-0x04F: Reserved (interpreter area)
    0x050-0x09F: Built-in hexadecimal font (16 glyphs, 5 bytes each)
    0x0A0-0x1FF: Reserved
    0x200-0xFFF: Program code and data

Quirks:
    CHIP-8 interpreters disagree on a handful of instructions. The Quirks
    dataclass selects between those variants. By default shifts read Vy and
    block loads/stores advance I, as on the COSMAC VIP; the extra VF side
    effects are off, and CALL pushes its own address so RET restores the
    exact pre-call PC.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List


MEMORY_SIZE = 0x1000
ADDRESS_MASK = 0x0FFF
PROGRAM_START = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - PROGRAM_START

NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
NUM_KEYS = 16
STACK_DEPTH = 16

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32

TIMER_HZ = 60

FONT_START = 0x050
FONT_GLYPH_SIZE = 5

FONT_SET: List[int] = [
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
]


@dataclass(frozen=True)
class Quirks:
    """Selectable interpreter variants.

    Attributes:
        shift_uses_vy: 8xy6/8xyE shift Vy into Vx (True) or shift Vx in place (False)
        load_store_increments_index: Fx55/Fx65 leave I pointing past the last byte accessed
        index_overflow_sets_vf: Fx1E sets VF when I leaves the 12-bit address space
        logic_resets_vf: 8xy1/8xy2/8xy3 clear VF after the operation
        call_pushes_next: 2nnn pushes the address after the CALL instead of the CALL's own
    """
    shift_uses_vy: bool = True
    load_store_increments_index: bool = True
    index_overflow_sets_vf: bool = False
    logic_resets_vf: bool = False
    call_pushes_next: bool = False

    def to_dict(self) -> Dict[str, bool]:
        """Return the quirk settings as a plain dictionary."""
        return asdict(self)
