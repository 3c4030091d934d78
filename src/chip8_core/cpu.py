"""Chip8CPU: Main orchestrator for CHIP-8 emulation.

This module implements the execution pipeline:
    MEMORY -> FETCH -> DECODE -> OP TAG -> REGISTRY -> EXECUTE -> STATE

The CPU owns no clock or thread. A driver calls step() at its instruction
rate and tick_timers() at 60 Hz; each call does one unit of work and
returns. The keypad is written by the driver between steps and the
framebuffer is read back after them.
"""

import logging
import random
from pathlib import Path
from typing import List, Dict, Optional, Tuple, Union
from dataclasses import dataclass

from .config import MAX_ROM_SIZE, Quirks
from .decode import Instruction, Op, decode, disassemble
from .errors import RomOpenError, RomReadError, RomSizeError
from .registry import OpcodeRegistry, resolve_key_wait
from .state import MachineState, create_initial_state

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle count after the step
        pc: Address the instruction was fetched from
        word: Raw instruction word
        instruction: Decoded instruction
        pre_state: State before execution
        post_state: State after execution
        stalled: True if the step only polled a pending wait-for-key
        error: Description of an anomaly (halt, unknown opcode), if any
    """
    cycle: int
    pc: int
    word: int
    instruction: Instruction
    pre_state: dict
    post_state: dict
    stalled: bool = False
    error: Optional[str] = None


class Chip8CPU:
    """CHIP-8 virtual machine.

    Attributes:
        registry: OpcodeRegistry with the instruction handlers
        state: Current machine state
        trace: List of execution trace entries
        max_cycles: Default limit for run()
        record_trace: Whether step() appends to trace
    """

    DEFAULT_MAX_CYCLES = 10000

    def __init__(
        self,
        quirks: Optional[Quirks] = None,
        seed: Optional[int] = None,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        record_trace: bool = True
    ):
        """Initialize the CPU with an empty program.

        Args:
            quirks: Interpreter variant settings (defaults to Quirks())
            seed: Seed for the RND instruction's random source
            max_cycles: Default cycle limit for run()
            record_trace: Keep a trace entry per step
        """
        self.registry = OpcodeRegistry(quirks=quirks, rng=random.Random(seed))
        self.state: MachineState = create_initial_state()
        self.trace: List[ExecutionTraceEntry] = []
        self.max_cycles = max_cycles
        self.record_trace = record_trace
        self._rom: bytes = b""

    # =========================================================================
    # ROM loading
    # =========================================================================

    def load_rom(self, path: Union[str, Path]) -> int:
        """Load a ROM file and reset the machine.

        Args:
            path: Path to the ROM image

        Returns:
            Number of bytes loaded

        Raises:
            RomOpenError: If the file cannot be opened
            RomReadError: If the file cannot be read
            RomSizeError: If the image does not fit in program memory
        """
        try:
            f = open(path, "rb")
        except OSError as e:
            raise RomOpenError(str(path), e) from e

        with f:
            try:
                data = f.read()
            except OSError as e:
                raise RomReadError(str(path), e) from e

        size = self.load_bytes(data)
        logger.info("Read %d bytes from CHIP-8 ROM '%s'", size, path)
        return size

    def load_bytes(self, data: bytes) -> int:
        """Load a ROM image from memory and reset the machine.

        A failed load leaves the current machine untouched.

        Args:
            data: ROM image bytes

        Returns:
            Number of bytes loaded

        Raises:
            RomSizeError: If the image does not fit in program memory
        """
        data = bytes(data)
        if len(data) > MAX_ROM_SIZE:
            raise RomSizeError(max=MAX_ROM_SIZE, actual=len(data))

        self._rom = data
        self.reset()
        return len(data)

    def reset(self) -> None:
        """Reset registers, stack, timers, keypad and display; reload the ROM."""
        self.state = create_initial_state(self._rom)
        self.trace = []

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> ExecutionTraceEntry:
        """Execute a single instruction.

        While a wait-for-key is pending, the step only polls the keypad and
        completes the pending instruction when a new key press shows up.
        A halted machine is not advanced and the step is not recorded.

        Register snapshots are only taken when record_trace is set; otherwise
        the entry's pre_state and post_state are empty dictionaries.

        Returns:
            ExecutionTraceEntry for this step
        """
        state = self.state
        pc = state.pc
        word = state.fetch(pc)
        instruction = decode(word)

        if state.halted:
            return ExecutionTraceEntry(
                cycle=state.cycle_count,
                pc=pc,
                word=word,
                instruction=instruction,
                pre_state={},
                post_state={},
                stalled=True,
                error="CPU is halted"
            )

        pre_state = state.snapshot() if self.record_trace else {}
        stalled = False
        error = None

        if state.waiting_for_key:
            if resolve_key_wait(state):
                state.cycle_count += 1
                logger.debug("%03X: %s resolved, V%X=%X", pc, instruction.mnemonic,
                             instruction.x, state.v[instruction.x])
            else:
                stalled = True
        else:
            logger.debug("%03X: %s", pc, instruction)
            self.registry.execute(state, instruction)
            if state.halted:
                error = "RET with empty stack"
            elif instruction.op is Op.UNKNOWN:
                error = f"Unknown opcode {word:04X}"

        entry = ExecutionTraceEntry(
            cycle=state.cycle_count,
            pc=pc,
            word=word,
            instruction=instruction,
            pre_state=pre_state,
            post_state=state.snapshot() if self.record_trace else {},
            stalled=stalled,
            error=error
        )
        if self.record_trace:
            self.trace.append(entry)

        return entry

    def tick_timers(self) -> None:
        """Decrement the delay and sound timers once (60 Hz cadence)."""
        self.state.tick_timers()

    def run(self, max_cycles: Optional[int] = None, timer_ratio: Optional[int] = None) -> List[ExecutionTraceEntry]:
        """Step until the machine halts or the step limit is reached.

        Args:
            max_cycles: Number of steps to take (uses instance default if None)
            timer_ratio: If given, tick timers once every timer_ratio steps

        Returns:
            Execution trace
        """
        limit = max_cycles if max_cycles is not None else self.max_cycles

        for count in range(1, limit + 1):
            if self.state.halted:
                break
            self.step()
            if timer_ratio and count % timer_ratio == 0:
                self.tick_timers()

        return self.trace

    # =========================================================================
    # Keypad
    # =========================================================================

    def set_key(self, key: int, pressed: bool) -> None:
        """Set the state of key 0x0-0xF."""
        self.state.set_key(key, pressed)

    def press_key(self, key: int) -> None:
        self.set_key(key, True)

    def release_key(self, key: int) -> None:
        self.set_key(key, False)

    # =========================================================================
    # Display
    # =========================================================================

    def get_display(self) -> List[List[bool]]:
        """Get a copy of the 64x32 framebuffer, indexed [y][x]."""
        return [list(row) for row in self.state.display]

    def render_display(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as text, one line per row."""
        return "\n".join(
            "".join(on if pixel else off for pixel in row)
            for row in self.state.display
        )

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get value of register V[index]."""
        return self.state.get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        """Get all V register values keyed by name."""
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_index(self) -> int:
        return self.state.i

    def get_timers(self) -> Tuple[int, int]:
        """Get (delay_timer, sound_timer)."""
        return self.state.delay_timer, self.state.sound_timer

    def is_sound_active(self) -> bool:
        """True while the sound timer is non-zero."""
        return self.state.sound_timer > 0

    def is_waiting_for_key(self) -> bool:
        return self.state.waiting_for_key

    def is_halted(self) -> bool:
        return self.state.halted

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def get_rom_size(self) -> int:
        return self.state.rom_size

    def disassemble(self) -> List[Tuple[int, Instruction]]:
        """Disassemble the loaded ROM."""
        return disassemble(self._rom)

    # =========================================================================
    # Reporting
    # =========================================================================

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            if entry.stalled and not entry.error:
                status = "WAITING FOR KEY"
            print(f"\n[Cycle {entry.cycle}] {status}")
            print(f"  {entry.pc:03X}: {entry.instruction}")

            # Show register changes
            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = []
            for reg in pre_regs:
                if pre_regs[reg] != post_regs[reg]:
                    changes.append(f"{reg}: {pre_regs[reg]:02X} → {post_regs[reg]:02X}")
            if entry.pre_state["i"] != entry.post_state["i"]:
                changes.append(f"I: {entry.pre_state['i']:03X} → {entry.post_state['i']:03X}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            # Show PC change
            post_pc = entry.post_state["pc"]
            if entry.pc != post_pc:
                print(f"  PC: {entry.pc:03X} → {post_pc:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        delay, sound = self.get_timers()
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "waiting_for_key": self.is_waiting_for_key(),
            "registers": self.dump_registers(),
            "i": self.get_index(),
            "pc": self.get_pc(),
            "stack": list(self.state.stack),
            "delay_timer": delay,
            "sound_timer": sound,
            "rom_size": self.get_rom_size(),
            "quirks": self.registry.quirks.to_dict(),
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
