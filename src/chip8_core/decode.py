"""Instruction decoder for chip8-core.

Every CHIP-8 instruction is one big-endian 16-bit word. The high nibble
selects an opcode family; the remaining nibbles are read as operand
fields depending on the family:

    nnn: lowest 12 bits (address)
    kk:  lowest 8 bits (immediate byte)
    x:   bits 8-11 (register index)
    y:   bits 4-7 (register index)
    n:   lowest 4 bits (nibble)

decode() maps a word to an Instruction tagged with a member of the closed
Op enumeration. Bit patterns that no instruction uses decode to
Op.UNKNOWN instead of raising, so decoding never fails.
"""

from enum import Enum
from typing import Dict, List, Tuple
from dataclasses import dataclass

from .config import PROGRAM_START


class Op(str, Enum):
    """Operation tags, one per CHIP-8 instruction."""
    CLS = "OP_CLS"
    RET = "OP_RET"
    SYS = "OP_SYS"
    JP = "OP_JP"
    CALL = "OP_CALL"
    SE_IMM = "OP_SE_IMM"
    SNE_IMM = "OP_SNE_IMM"
    SE_REG = "OP_SE_REG"
    LD_IMM = "OP_LD_IMM"
    ADD_IMM = "OP_ADD_IMM"
    LD_REG = "OP_LD_REG"
    OR = "OP_OR"
    AND = "OP_AND"
    XOR = "OP_XOR"
    ADD_REG = "OP_ADD_REG"
    SUB = "OP_SUB"
    SHR = "OP_SHR"
    SUBN = "OP_SUBN"
    SHL = "OP_SHL"
    SNE_REG = "OP_SNE_REG"
    LD_I = "OP_LD_I"
    JP_V0 = "OP_JP_V0"
    RND = "OP_RND"
    DRW = "OP_DRW"
    SKP = "OP_SKP"
    SKNP = "OP_SKNP"
    LD_VX_DT = "OP_LD_VX_DT"
    LD_KEY = "OP_LD_KEY"
    LD_DT = "OP_LD_DT"
    LD_ST = "OP_LD_ST"
    ADD_I = "OP_ADD_I"
    LD_F = "OP_LD_F"
    LD_B = "OP_LD_B"
    LD_MEM = "OP_LD_MEM"
    LD_REGS = "OP_LD_REGS"
    UNKNOWN = "OP_UNKNOWN"


# 8xyN sub-opcodes
_ALU_OPS: Dict[int, Op] = {
    0x0: Op.LD_REG,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_REG,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

# ExKK sub-opcodes
_KEY_OPS: Dict[int, Op] = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

# FxKK sub-opcodes
_MISC_OPS: Dict[int, Op] = {
    0x07: Op.LD_VX_DT,
    0x0A: Op.LD_KEY,
    0x15: Op.LD_DT,
    0x18: Op.LD_ST,
    0x1E: Op.ADD_I,
    0x29: Op.LD_F,
    0x33: Op.LD_B,
    0x55: Op.LD_MEM,
    0x65: Op.LD_REGS,
}

# High nibble -> op for families with a single member
_SIMPLE_OPS: Dict[int, Op] = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_IMM,
    0x4: Op.SNE_IMM,
    0x6: Op.LD_IMM,
    0x7: Op.ADD_IMM,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction word.

    Attributes:
        op: Operation tag
        word: Raw 16-bit instruction word
        x: Register index from bits 8-11
        y: Register index from bits 4-7
        n: Lowest nibble
        kk: Lowest byte
        nnn: Lowest 12 bits
    """
    op: Op
    word: int
    x: int
    y: int
    n: int
    kk: int
    nnn: int

    @property
    def mnemonic(self) -> str:
        """Assembly-style rendering of the instruction."""
        template = _MNEMONICS.get(self.op)
        if template is None:
            return f"DW {self.word:#06x}"
        return template.format(x=self.x, y=self.y, n=self.n, kk=self.kk, nnn=self.nnn)

    def __str__(self) -> str:
        return f"{self.word:04X}  {self.mnemonic}"


_MNEMONICS: Dict[Op, str] = {
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.SYS: "SYS {nnn:#05x}",
    Op.JP: "JP {nnn:#05x}",
    Op.CALL: "CALL {nnn:#05x}",
    Op.SE_IMM: "SE V{x:X}, {kk:#04x}",
    Op.SNE_IMM: "SNE V{x:X}, {kk:#04x}",
    Op.SE_REG: "SE V{x:X}, V{y:X}",
    Op.LD_IMM: "LD V{x:X}, {kk:#04x}",
    Op.ADD_IMM: "ADD V{x:X}, {kk:#04x}",
    Op.LD_REG: "LD V{x:X}, V{y:X}",
    Op.OR: "OR V{x:X}, V{y:X}",
    Op.AND: "AND V{x:X}, V{y:X}",
    Op.XOR: "XOR V{x:X}, V{y:X}",
    Op.ADD_REG: "ADD V{x:X}, V{y:X}",
    Op.SUB: "SUB V{x:X}, V{y:X}",
    Op.SHR: "SHR V{x:X}, V{y:X}",
    Op.SUBN: "SUBN V{x:X}, V{y:X}",
    Op.SHL: "SHL V{x:X}, V{y:X}",
    Op.SNE_REG: "SNE V{x:X}, V{y:X}",
    Op.LD_I: "LD I, {nnn:#05x}",
    Op.JP_V0: "JP V0, {nnn:#05x}",
    Op.RND: "RND V{x:X}, {kk:#04x}",
    Op.DRW: "DRW V{x:X}, V{y:X}, {n}",
    Op.SKP: "SKP V{x:X}",
    Op.SKNP: "SKNP V{x:X}",
    Op.LD_VX_DT: "LD V{x:X}, DT",
    Op.LD_KEY: "LD V{x:X}, K",
    Op.LD_DT: "LD DT, V{x:X}",
    Op.LD_ST: "LD ST, V{x:X}",
    Op.ADD_I: "ADD I, V{x:X}",
    Op.LD_F: "LD F, V{x:X}",
    Op.LD_B: "LD B, V{x:X}",
    Op.LD_MEM: "LD [I], V{x:X}",
    Op.LD_REGS: "LD V{x:X}, [I]",
}


def _classify(word: int) -> Op:
    family = word >> 12

    if family == 0x0:
        if word == 0x00E0:
            return Op.CLS
        if word == 0x00EE:
            return Op.RET
        return Op.SYS

    if family in _SIMPLE_OPS:
        return _SIMPLE_OPS[family]

    if family == 0x5:
        return Op.SE_REG if word & 0x000F == 0 else Op.UNKNOWN

    if family == 0x8:
        return _ALU_OPS.get(word & 0x000F, Op.UNKNOWN)

    if family == 0x9:
        return Op.SNE_REG if word & 0x000F == 0 else Op.UNKNOWN

    if family == 0xE:
        return _KEY_OPS.get(word & 0x00FF, Op.UNKNOWN)

    # family == 0xF
    return _MISC_OPS.get(word & 0x00FF, Op.UNKNOWN)


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word.

    Args:
        word: Instruction word (only the low 16 bits are used)

    Returns:
        Instruction with its operation tag and every operand field extracted
    """
    word &= 0xFFFF
    return Instruction(
        op=_classify(word),
        word=word,
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        n=word & 0x000F,
        kk=word & 0x00FF,
        nnn=word & 0x0FFF,
    )


def disassemble(rom: bytes, origin: int = PROGRAM_START) -> List[Tuple[int, Instruction]]:
    """Decode a ROM image word by word.

    Data embedded in the ROM (sprites) is decoded like code; an odd
    trailing byte is padded with zero.

    Args:
        rom: ROM image bytes
        origin: Address of the first byte

    Returns:
        List of (address, Instruction) pairs
    """
    listing = []
    for offset in range(0, len(rom), 2):
        hi = rom[offset]
        lo = rom[offset + 1] if offset + 1 < len(rom) else 0
        listing.append((origin + offset, decode((hi << 8) | lo)))
    return listing
