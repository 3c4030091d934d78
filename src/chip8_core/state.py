"""MachineState: Memory and register state for chip8-core.

This module defines the single owned state object that the opcode
handlers mutate. There is no module-level machine state: every Chip8CPU
holds its own MachineState and passes it by reference to the handlers.

State Components:
    - Memory: 4096 bytes (font at 0x050, program at 0x200)
    - V: V0-VF (16 general-purpose 8-bit registers, VF doubles as flag)
    - I: 16-bit index register
    - PC: Program counter (12-bit address, starts at 0x200)
    - Stack: Return addresses, at most 16 deep (SP is its length)
    - Timers: delay and sound, 8-bit, count down toward zero
    - Keypad: 16 key states, written only by the input collaborator
    - Display: 64x32 framebuffer of booleans
    - Meta: wait-for-key stall, halted flag, cycle count

Every address computed from register contents is masked to 0xFFF before
it touches memory.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import (
    ADDRESS_MASK,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    FONT_SET,
    FONT_START,
    MAX_ROM_SIZE,
    MEMORY_SIZE,
    NUM_KEYS,
    NUM_REGISTERS,
    PROGRAM_START,
    STACK_DEPTH,
)
from .errors import RomSizeError


def _blank_display() -> List[List[bool]]:
    return [[False] * DISPLAY_WIDTH for _ in range(DISPLAY_HEIGHT)]


@dataclass
class MachineState:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4096-byte address space
        v: General-purpose registers V0-VF
        i: Index register (16-bit)
        pc: Program counter
        stack: Return addresses, most recent last
        delay_timer: Delay timer (8-bit)
        sound_timer: Sound timer (8-bit)
        keypad: Pressed state of keys 0x0-0xF
        display: Framebuffer rows, display[y][x]
        waiting_register: Target register while Fx0A is stalled, else None
        wait_keypad: Keypad as seen at the previous poll of the stall
        halted: Set when RET executes with an empty stack
        rom_size: Size of the loaded ROM in bytes
        cycle_count: Number of step() calls that executed an instruction
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    v: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    i: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=list)
    delay_timer: int = 0
    sound_timer: int = 0
    keypad: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    display: List[List[bool]] = field(default_factory=_blank_display)
    waiting_register: Optional[int] = None
    wait_keypad: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    halted: bool = False
    rom_size: int = 0
    cycle_count: int = 0

    @property
    def sp(self) -> int:
        """Stack pointer (current stack depth)."""
        return len(self.stack)

    # =========================================================================
    # Memory
    # =========================================================================

    def load(self, rom: bytes) -> int:
        """Copy a ROM image into memory at 0x200.

        Registers, stack, timers and display are left as they are; use
        create_initial_state() for a full reset.

        Args:
            rom: ROM image bytes

        Returns:
            Number of bytes loaded

        Raises:
            RomSizeError: If the image exceeds program memory (memory untouched)
        """
        size = len(rom)
        if size > MAX_ROM_SIZE:
            raise RomSizeError(max=MAX_ROM_SIZE, actual=size)

        self.memory[PROGRAM_START:PROGRAM_START + size] = bytes(rom)
        self.rom_size = size
        return size

    def load_font(self) -> None:
        """Install the hexadecimal font in reserved memory."""
        self.memory[FONT_START:FONT_START + len(FONT_SET)] = bytes(FONT_SET)

    def fetch(self, pc: Optional[int] = None) -> int:
        """Read the big-endian instruction word at pc (defaults to PC).

        The second byte address wraps, so 0xFFF never reads past memory.
        """
        addr = (self.pc if pc is None else pc) & ADDRESS_MASK
        hi = self.memory[addr]
        lo = self.memory[(addr + 1) & ADDRESS_MASK]
        return (hi << 8) | lo

    def read_byte(self, addr: int) -> int:
        return self.memory[addr & ADDRESS_MASK]

    def write_byte(self, addr: int, value: int) -> None:
        self.memory[addr & ADDRESS_MASK] = value & 0xFF

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get value of register V[index].

        Raises:
            IndexError: If index is outside 0-15
        """
        self._check_register(index)
        return self.v[index]

    def set_register(self, index: int, value: int) -> None:
        """Set V[index], truncating the value to 8 bits.

        Raises:
            IndexError: If index is outside 0-15
        """
        self._check_register(index)
        self.v[index] = value & 0xFF

    def set_index(self, value: int) -> None:
        self.i = value & 0xFFFF

    def set_pc(self, new_pc: int) -> None:
        self.pc = new_pc & ADDRESS_MASK

    def increment_pc(self, amount: int = 2) -> None:
        self.pc = (self.pc + amount) & ADDRESS_MASK

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all V registers keyed by name (V0-VF)."""
        return {f"V{n:X}": value for n, value in enumerate(self.v)}

    @staticmethod
    def _check_register(index: int) -> None:
        if not 0 <= index < NUM_REGISTERS:
            raise IndexError(f"Invalid register: V{index}")

    # =========================================================================
    # Stack
    # =========================================================================

    def push(self, addr: int) -> bool:
        """Push a return address. Returns False (stack unchanged) when full."""
        if len(self.stack) >= STACK_DEPTH:
            return False
        self.stack.append(addr & ADDRESS_MASK)
        return True

    def pop(self) -> Optional[int]:
        """Pop a return address, or None when the stack is empty."""
        if not self.stack:
            return None
        return self.stack.pop()

    # =========================================================================
    # Timers
    # =========================================================================

    def tick_timers(self) -> None:
        """Decrement both timers once, clamping at zero."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    # =========================================================================
    # Keypad and display
    # =========================================================================

    def is_key_pressed(self, key: int) -> bool:
        self._check_key(key)
        return self.keypad[key]

    def set_key(self, key: int, pressed: bool) -> None:
        self._check_key(key)
        self.keypad[key] = bool(pressed)

    @staticmethod
    def _check_key(key: int) -> None:
        if not 0 <= key < NUM_KEYS:
            raise IndexError(f"Invalid key: {key}")

    def clear_display(self) -> None:
        for row in self.display:
            for x in range(DISPLAY_WIDTH):
                row[x] = False

    def get_pixel(self, x: int, y: int) -> bool:
        return self.display[y % DISPLAY_HEIGHT][x % DISPLAY_WIDTH]

    def xor_pixel(self, x: int, y: int) -> bool:
        """Flip the pixel at (x, y) with wraparound.

        Returns:
            True if the pixel was set and is now cleared (collision)
        """
        row = self.display[y % DISPLAY_HEIGHT]
        x %= DISPLAY_WIDTH
        was_set = row[x]
        row[x] = not was_set
        return was_set

    @property
    def waiting_for_key(self) -> bool:
        return self.waiting_register is not None

    # =========================================================================
    # Tracing and validation
    # =========================================================================

    def snapshot(self) -> dict:
        """Create a copy of the register-level state for tracing.

        Returns:
            Dictionary containing deep copies of all registers and meta state
        """
        return {
            "registers": self.dump_registers(),
            "i": self.i,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "waiting_register": self.waiting_register,
            "halted": self.halted,
            "cycle_count": self.cycle_count,
            # Note: memory and display excluded from snapshot for efficiency
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory is exactly 4096 bytes
            - 16 registers, each 0-255; I fits in 16 bits
            - PC is a 12-bit address
            - Stack depth and entries are in range
            - Timers are 8-bit
            - Keypad and display have the fixed shapes

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False

        if len(self.v) != NUM_REGISTERS:
            return False
        for value in self.v:
            if not isinstance(value, int) or not 0 <= value <= 0xFF:
                return False
        if not 0 <= self.i <= 0xFFFF:
            return False

        if not 0 <= self.pc <= ADDRESS_MASK:
            return False

        if len(self.stack) > STACK_DEPTH:
            return False
        if any(not 0 <= addr <= ADDRESS_MASK for addr in self.stack):
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        if len(self.keypad) != NUM_KEYS:
            return False
        if len(self.display) != DISPLAY_HEIGHT:
            return False
        if any(len(row) != DISPLAY_WIDTH for row in self.display):
            return False

        if self.waiting_register is not None and not 0 <= self.waiting_register < NUM_REGISTERS:
            return False

        return self.cycle_count >= 0

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{n:X}={value:02X}" for n, value in enumerate(self.v))
        status = "HALTED" if self.halted else ("WAIT-KEY" if self.waiting_for_key else "")
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} SP={self.sp} "
            f"DT={self.delay_timer} ST={self.sound_timer} {regs} {status}"
        ).rstrip()


def create_initial_state(rom: bytes = b"") -> MachineState:
    """Create a fresh machine state with the font installed and a ROM loaded.

    Args:
        rom: ROM image bytes (may be empty)

    Returns:
        Fresh MachineState

    Raises:
        RomSizeError: If the ROM exceeds program memory
    """
    state = MachineState()
    state.load_font()
    state.load(rom)
    return state
