"""chip8-core: CHIP-8 Virtual Machine Core.

This package implements the instruction execution engine of a CHIP-8
interpreter: memory and register state, opcode decode and dispatch,
timers, and the keypad/framebuffer interfaces used by a front end.

Architecture:
    MEMORY -> FETCH -> DECODE -> OP TAG -> REGISTRY -> EXECUTE -> STATE
               |         |         |          |           |
           [PC-based] [nibbles]  [Op enum] [handlers]  [MachineState]

Modules:
    config: Machine constants, font and Quirks
    state: MachineState (memory, registers, stack, timers, keypad, display)
    decode: Instruction decoder and disassembler
    registry: Instruction handlers keyed by Op tag
    errors: ROM loading errors
    cpu: Main Chip8CPU orchestrator
"""

__version__ = "0.1.0"
__author__ = "chip8-core Project"

from .config import Quirks
from .state import MachineState
from .decode import Instruction, Op, decode
from .registry import OpcodeRegistry
from .errors import RomError, RomOpenError, RomReadError, RomSizeError
from .cpu import Chip8CPU

__all__ = [
    "Quirks",
    "MachineState",
    "Instruction",
    "Op",
    "decode",
    "OpcodeRegistry",
    "RomError",
    "RomOpenError",
    "RomReadError",
    "RomSizeError",
    "Chip8CPU",
]
