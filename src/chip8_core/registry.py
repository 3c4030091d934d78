"""OpcodeRegistry: CHIP-8 instruction handlers for chip8-core.

This module implements the registry pattern for instruction execution:
every Op tag produced by the decoder maps to exactly one handler, and
the registry refuses to freeze until each tag has one.

Handler contract:
    handler(state, instruction) -> None

Handlers mutate the MachineState in place. Every non-control instruction
advances PC by 2; jumps, calls and returns set PC directly; skips add an
extra 2 when their condition holds. Register arithmetic is computed in
a Python int and then truncated, so carry and borrow are exact.

Execution-time anomalies (empty-stack return, full-stack call, unknown
opcode) are logged and turned into defined no-ops; handlers never raise
for any decoded word.
"""

import logging
import random
from typing import Callable, Dict, Optional

from .config import (
    ADDRESS_MASK,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    FLAG_REGISTER,
    FONT_GLYPH_SIZE,
    FONT_START,
    Quirks,
)
from .decode import Instruction, Op
from .state import MachineState

logger = logging.getLogger(__name__)

Handler = Callable[[MachineState, Instruction], None]


class OpcodeRegistry:
    """Frozen registry of instruction handlers.

    Attributes:
        quirks: Interpreter variant settings used by the handlers
        _primitives: Dictionary mapping Op tags to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self, quirks: Optional[Quirks] = None, rng: Optional[random.Random] = None):
        """Initialize registry with all instruction handlers.

        Args:
            quirks: Variant settings (defaults to Quirks())
            rng: Random source for RND (defaults to an unseeded random.Random)
        """
        self.quirks = quirks or Quirks()
        self._rng = rng or random.Random()
        self._primitives: Dict[Op, Handler] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction handlers."""
        # System and flow control
        self.register(Op.CLS, self._op_cls)
        self.register(Op.RET, self._op_ret)
        self.register(Op.SYS, self._op_sys)
        self.register(Op.JP, self._op_jp)
        self.register(Op.CALL, self._op_call)
        self.register(Op.JP_V0, self._op_jp_v0)

        # Conditional skips
        self.register(Op.SE_IMM, self._op_se_imm)
        self.register(Op.SNE_IMM, self._op_sne_imm)
        self.register(Op.SE_REG, self._op_se_reg)
        self.register(Op.SNE_REG, self._op_sne_reg)
        self.register(Op.SKP, self._op_skp)
        self.register(Op.SKNP, self._op_sknp)

        # Register loads and arithmetic
        self.register(Op.LD_IMM, self._op_ld_imm)
        self.register(Op.ADD_IMM, self._op_add_imm)
        self.register(Op.LD_REG, self._op_ld_reg)
        self.register(Op.OR, self._op_or)
        self.register(Op.AND, self._op_and)
        self.register(Op.XOR, self._op_xor)
        self.register(Op.ADD_REG, self._op_add_reg)
        self.register(Op.SUB, self._op_sub)
        self.register(Op.SHR, self._op_shr)
        self.register(Op.SUBN, self._op_subn)
        self.register(Op.SHL, self._op_shl)
        self.register(Op.RND, self._op_rnd)

        # Index register and memory
        self.register(Op.LD_I, self._op_ld_i)
        self.register(Op.ADD_I, self._op_add_i)
        self.register(Op.LD_F, self._op_ld_f)
        self.register(Op.LD_B, self._op_ld_b)
        self.register(Op.LD_MEM, self._op_ld_mem)
        self.register(Op.LD_REGS, self._op_ld_regs)

        # Display, timers and keypad
        self.register(Op.DRW, self._op_drw)
        self.register(Op.LD_VX_DT, self._op_ld_vx_dt)
        self.register(Op.LD_DT, self._op_ld_dt)
        self.register(Op.LD_ST, self._op_ld_st)
        self.register(Op.LD_KEY, self._op_ld_key)

        # Special
        self.register(Op.UNKNOWN, self._op_unknown)

    def register(self, key: Op, handler: Handler) -> None:
        """Register an instruction handler.

        Args:
            key: Operation tag
            handler: Function that takes (state, instruction) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key.value}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications.

        Raises:
            RuntimeError: If any Op tag has no handler
        """
        missing = set(Op) - set(self._primitives)
        if missing:
            names = ", ".join(sorted(op.value for op in missing))
            raise RuntimeError(f"Registry incomplete, no handler for: {names}")
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all registered operation tags."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> None:
        """Execute one decoded instruction against the state.

        Args:
            state: Machine state (mutated in place)
            instruction: Decoded instruction
        """
        handler = self._primitives[instruction.op]
        handler(state, instruction)

        # Always increment cycle count after execution
        state.cycle_count += 1

    # =========================================================================
    # System and Flow Control
    # =========================================================================

    def _op_cls(self, state: MachineState, ins: Instruction) -> None:
        """00E0 CLS - Clear the display."""
        state.clear_display()
        state.increment_pc()

    def _op_ret(self, state: MachineState, ins: Instruction) -> None:
        """00EE RET - Pop the return address into PC.

        PC becomes exactly the value CALL pushed. With an empty stack the
        machine halts in place: PC is left unchanged.
        """
        addr = state.pop()
        if addr is None:
            logger.warning("RET with empty stack at %03X, halting", state.pc)
            state.halted = True
            return
        state.set_pc(addr)

    def _op_sys(self, state: MachineState, ins: Instruction) -> None:
        """0nnn SYS addr - Machine code routine; ignored."""
        logger.warning("SYS %03X at %03X not supported, ignored", ins.nnn, state.pc)
        state.increment_pc()

    def _op_jp(self, state: MachineState, ins: Instruction) -> None:
        """1nnn JP addr - Jump to nnn."""
        state.set_pc(ins.nnn)

    def _op_call(self, state: MachineState, ins: Instruction) -> None:
        """2nnn CALL addr - Push the return address, jump to nnn.

        The return address is the CALL's own address, or the next
        instruction when Quirks.call_pushes_next is set. When the stack is
        full the call is dropped and execution continues with the next
        instruction.
        """
        ret = state.pc + 2 if self.quirks.call_pushes_next else state.pc
        if not state.push(ret):
            logger.warning("CALL %03X at %03X: stack overflow, call dropped", ins.nnn, state.pc)
            state.increment_pc()
            return
        state.set_pc(ins.nnn)

    def _op_jp_v0(self, state: MachineState, ins: Instruction) -> None:
        """Bnnn JP V0, addr - Jump to nnn + V0."""
        state.set_pc(ins.nnn + state.v[0])

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _skip_if(self, state: MachineState, condition: bool) -> None:
        state.increment_pc(4 if condition else 2)

    def _op_se_imm(self, state: MachineState, ins: Instruction) -> None:
        """3xkk SE Vx, byte."""
        self._skip_if(state, state.v[ins.x] == ins.kk)

    def _op_sne_imm(self, state: MachineState, ins: Instruction) -> None:
        """4xkk SNE Vx, byte."""
        self._skip_if(state, state.v[ins.x] != ins.kk)

    def _op_se_reg(self, state: MachineState, ins: Instruction) -> None:
        """5xy0 SE Vx, Vy."""
        self._skip_if(state, state.v[ins.x] == state.v[ins.y])

    def _op_sne_reg(self, state: MachineState, ins: Instruction) -> None:
        """9xy0 SNE Vx, Vy."""
        self._skip_if(state, state.v[ins.x] != state.v[ins.y])

    def _op_skp(self, state: MachineState, ins: Instruction) -> None:
        """Ex9E SKP Vx - Skip if key Vx is pressed."""
        self._skip_if(state, state.keypad[state.v[ins.x] & 0xF])

    def _op_sknp(self, state: MachineState, ins: Instruction) -> None:
        """ExA1 SKNP Vx - Skip if key Vx is not pressed."""
        self._skip_if(state, not state.keypad[state.v[ins.x] & 0xF])

    # =========================================================================
    # Register Loads and Arithmetic
    # =========================================================================

    def _op_ld_imm(self, state: MachineState, ins: Instruction) -> None:
        """6xkk LD Vx, byte."""
        state.set_register(ins.x, ins.kk)
        state.increment_pc()

    def _op_add_imm(self, state: MachineState, ins: Instruction) -> None:
        """7xkk ADD Vx, byte - Wrapping add, VF untouched."""
        state.set_register(ins.x, state.v[ins.x] + ins.kk)
        state.increment_pc()

    def _op_ld_reg(self, state: MachineState, ins: Instruction) -> None:
        """8xy0 LD Vx, Vy."""
        state.set_register(ins.x, state.v[ins.y])
        state.increment_pc()

    def _op_or(self, state: MachineState, ins: Instruction) -> None:
        """8xy1 OR Vx, Vy."""
        state.set_register(ins.x, state.v[ins.x] | state.v[ins.y])
        self._logic_flag(state)
        state.increment_pc()

    def _op_and(self, state: MachineState, ins: Instruction) -> None:
        """8xy2 AND Vx, Vy."""
        state.set_register(ins.x, state.v[ins.x] & state.v[ins.y])
        self._logic_flag(state)
        state.increment_pc()

    def _op_xor(self, state: MachineState, ins: Instruction) -> None:
        """8xy3 XOR Vx, Vy."""
        state.set_register(ins.x, state.v[ins.x] ^ state.v[ins.y])
        self._logic_flag(state)
        state.increment_pc()

    def _logic_flag(self, state: MachineState) -> None:
        if self.quirks.logic_resets_vf:
            state.v[FLAG_REGISTER] = 0

    def _op_add_reg(self, state: MachineState, ins: Instruction) -> None:
        """8xy4 ADD Vx, Vy - VF = carry.

        Params:
            x: Destination register
            y: Source register

        The sum is formed before truncation, so VF = 1 exactly when it
        exceeds 255.
        """
        total = state.v[ins.x] + state.v[ins.y]
        state.set_register(ins.x, total)
        state.v[FLAG_REGISTER] = 1 if total > 0xFF else 0
        state.increment_pc()

    def _op_sub(self, state: MachineState, ins: Instruction) -> None:
        """8xy5 SUB Vx, Vy - Vx = Vx - Vy, VF = NOT borrow.

        VF = 1 when Vx >= Vy.
        """
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.set_register(ins.x, vx - vy)
        state.v[FLAG_REGISTER] = 1 if vx >= vy else 0
        state.increment_pc()

    def _op_subn(self, state: MachineState, ins: Instruction) -> None:
        """8xy7 SUBN Vx, Vy - Vx = Vy - Vx, VF = NOT borrow.

        VF = 1 when Vy >= Vx.
        """
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.set_register(ins.x, vy - vx)
        state.v[FLAG_REGISTER] = 1 if vy >= vx else 0
        state.increment_pc()

    def _shift_source(self, state: MachineState, ins: Instruction) -> int:
        return state.v[ins.y] if self.quirks.shift_uses_vy else state.v[ins.x]

    def _op_shr(self, state: MachineState, ins: Instruction) -> None:
        """8xy6 SHR Vx, Vy - VF = lsb of source, Vx = source >> 1."""
        source = self._shift_source(state, ins)
        state.set_register(ins.x, source >> 1)
        state.v[FLAG_REGISTER] = source & 0x1
        state.increment_pc()

    def _op_shl(self, state: MachineState, ins: Instruction) -> None:
        """8xyE SHL Vx, Vy - VF = msb of source, Vx = source << 1."""
        source = self._shift_source(state, ins)
        state.set_register(ins.x, source << 1)
        state.v[FLAG_REGISTER] = (source >> 7) & 0x1
        state.increment_pc()

    def _op_rnd(self, state: MachineState, ins: Instruction) -> None:
        """Cxkk RND Vx, byte - Vx = random byte AND kk."""
        state.set_register(ins.x, self._rng.randint(0, 0xFF) & ins.kk)
        state.increment_pc()

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_ld_i(self, state: MachineState, ins: Instruction) -> None:
        """Annn LD I, addr."""
        state.set_index(ins.nnn)
        state.increment_pc()

    def _op_add_i(self, state: MachineState, ins: Instruction) -> None:
        """Fx1E ADD I, Vx - I wraps within 16 bits.

        VF is only touched when quirks.index_overflow_sets_vf is enabled,
        in which case it reports I leaving the 12-bit address space.
        """
        total = state.i + state.v[ins.x]
        if self.quirks.index_overflow_sets_vf:
            state.v[FLAG_REGISTER] = 1 if total > ADDRESS_MASK else 0
        state.set_index(total)
        state.increment_pc()

    def _op_ld_f(self, state: MachineState, ins: Instruction) -> None:
        """Fx29 LD F, Vx - I = address of the font glyph for digit Vx."""
        state.set_index(FONT_START + (state.v[ins.x] & 0xF) * FONT_GLYPH_SIZE)
        state.increment_pc()

    def _op_ld_b(self, state: MachineState, ins: Instruction) -> None:
        """Fx33 LD B, Vx - Store BCD of Vx at I, I+1, I+2."""
        value = state.v[ins.x]
        state.write_byte(state.i, value // 100)
        state.write_byte(state.i + 1, (value // 10) % 10)
        state.write_byte(state.i + 2, value % 10)
        state.increment_pc()

    def _op_ld_mem(self, state: MachineState, ins: Instruction) -> None:
        """Fx55 LD [I], Vx - Store V0..Vx at I."""
        for reg in range(ins.x + 1):
            state.write_byte(state.i + reg, state.v[reg])
        if self.quirks.load_store_increments_index:
            state.set_index(state.i + ins.x + 1)
        state.increment_pc()

    def _op_ld_regs(self, state: MachineState, ins: Instruction) -> None:
        """Fx65 LD Vx, [I] - Load V0..Vx from I."""
        for reg in range(ins.x + 1):
            state.v[reg] = state.read_byte(state.i + reg)
        if self.quirks.load_store_increments_index:
            state.set_index(state.i + ins.x + 1)
        state.increment_pc()

    # =========================================================================
    # Display, Timers and Keypad
    # =========================================================================

    def _op_drw(self, state: MachineState, ins: Instruction) -> None:
        """Dxyn DRW Vx, Vy, n - XOR an n-row sprite from I at (Vx, Vy).

        Pixels wrap around both edges of the 64x32 display. VF = 1 if any
        lit pixel was turned off, else 0.
        """
        origin_x = state.v[ins.x] % DISPLAY_WIDTH
        origin_y = state.v[ins.y] % DISPLAY_HEIGHT
        collision = False

        for row in range(ins.n):
            sprite_byte = state.read_byte(state.i + row)
            for col in range(8):
                if sprite_byte & (0x80 >> col):
                    if state.xor_pixel(origin_x + col, origin_y + row):
                        collision = True

        state.v[FLAG_REGISTER] = 1 if collision else 0
        state.increment_pc()

    def _op_ld_vx_dt(self, state: MachineState, ins: Instruction) -> None:
        """Fx07 LD Vx, DT."""
        state.set_register(ins.x, state.delay_timer)
        state.increment_pc()

    def _op_ld_dt(self, state: MachineState, ins: Instruction) -> None:
        """Fx15 LD DT, Vx."""
        state.delay_timer = state.v[ins.x]
        state.increment_pc()

    def _op_ld_st(self, state: MachineState, ins: Instruction) -> None:
        """Fx18 LD ST, Vx."""
        state.sound_timer = state.v[ins.x]
        state.increment_pc()

    def _op_ld_key(self, state: MachineState, ins: Instruction) -> None:
        """Fx0A LD Vx, K - Enter the wait-for-key stall.

        PC stays on this instruction; resolve_key_wait() completes it once
        a key goes from released to pressed.
        """
        state.waiting_register = ins.x
        state.wait_keypad = list(state.keypad)

    # =========================================================================
    # Special
    # =========================================================================

    def _op_unknown(self, state: MachineState, ins: Instruction) -> None:
        """Unassigned bit pattern - no state change."""
        logger.warning("Unknown opcode %04X at %03X ignored", ins.word, state.pc)


def resolve_key_wait(state: MachineState) -> bool:
    """Poll the keypad for a pending Fx0A.

    Compares the keypad with the one seen at the previous poll; the lowest
    key that went from released to pressed is stored in the waiting
    register and PC moves past the Fx0A.

    Args:
        state: Machine state with an active stall

    Returns:
        True if the stall was resolved by this poll
    """
    if state.waiting_register is None:
        return False

    for key, pressed in enumerate(state.keypad):
        if pressed and not state.wait_keypad[key]:
            state.set_register(state.waiting_register, key)
            state.waiting_register = None
            state.increment_pc()
            return True

    state.wait_keypad = list(state.keypad)
    return False

