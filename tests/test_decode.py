"""Tests for the instruction decoder."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_core.decode import Instruction, Op, decode, disassemble


class TestOperandFields:
    """Test operand extraction."""

    def test_fields(self):
        """decode extracts x, y, n, kk and nnn from the word."""
        ins = decode(0xD12F)
        assert ins.word == 0xD12F
        assert ins.x == 0x1
        assert ins.y == 0x2
        assert ins.n == 0xF
        assert ins.kk == 0x2F
        assert ins.nnn == 0x12F

    def test_instruction_is_frozen(self):
        """Decoded instructions are immutable."""
        ins = decode(0x6A12)
        with pytest.raises(Exception):
            ins.x = 3

    def test_word_masked_to_16_bits(self):
        """Only the low 16 bits of the argument are decoded."""
        assert decode(0x16A12).word == 0x6A12


class TestOpcodeFamilies:
    """Test decoding of every opcode family."""

    @pytest.mark.parametrize("word,op", [
        (0x00E0, Op.CLS),
        (0x00EE, Op.RET),
        (0x0123, Op.SYS),
        (0x1ABC, Op.JP),
        (0x2ABC, Op.CALL),
        (0x3A12, Op.SE_IMM),
        (0x4A12, Op.SNE_IMM),
        (0x5AB0, Op.SE_REG),
        (0x6A12, Op.LD_IMM),
        (0x7A12, Op.ADD_IMM),
        (0x8AB0, Op.LD_REG),
        (0x8AB1, Op.OR),
        (0x8AB2, Op.AND),
        (0x8AB3, Op.XOR),
        (0x8AB4, Op.ADD_REG),
        (0x8AB5, Op.SUB),
        (0x8AB6, Op.SHR),
        (0x8AB7, Op.SUBN),
        (0x8ABE, Op.SHL),
        (0x9AB0, Op.SNE_REG),
        (0xA123, Op.LD_I),
        (0xB123, Op.JP_V0),
        (0xCA0F, Op.RND),
        (0xDAB5, Op.DRW),
        (0xEA9E, Op.SKP),
        (0xEAA1, Op.SKNP),
        (0xFA07, Op.LD_VX_DT),
        (0xFA0A, Op.LD_KEY),
        (0xFA15, Op.LD_DT),
        (0xFA18, Op.LD_ST),
        (0xFA1E, Op.ADD_I),
        (0xFA29, Op.LD_F),
        (0xFA33, Op.LD_B),
        (0xFA55, Op.LD_MEM),
        (0xFA65, Op.LD_REGS),
    ])
    def test_family(self, word, op):
        """Each documented word decodes to its operation tag."""
        assert decode(word).op is op


class TestUnknownOpcodes:
    """Test that unassigned bit patterns decode without raising."""

    @pytest.mark.parametrize("word", [
        0x5AB1, 0x8AB8, 0x8ABF, 0x9AB1, 0xEA00, 0xEAFF, 0xFA00, 0xFAFF,
    ])
    def test_unknown(self, word):
        """Unassigned words decode to Op.UNKNOWN."""
        assert decode(word).op is Op.UNKNOWN

    def test_every_word_decodes(self):
        """decode never raises for any 16-bit word."""
        for word in range(0x10000):
            assert isinstance(decode(word), Instruction)


class TestMnemonics:
    """Test disassembly text."""

    def test_mnemonics(self):
        """Instructions render assembly-style mnemonics."""
        assert decode(0x00E0).mnemonic == "CLS"
        assert decode(0x1ABC).mnemonic == "JP 0xabc"
        assert decode(0x6A12).mnemonic == "LD VA, 0x12"
        assert decode(0x8AB4).mnemonic == "ADD VA, VB"
        assert decode(0xD125).mnemonic == "DRW V1, V2, 5"
        assert decode(0xF30A).mnemonic == "LD V3, K"

    def test_unknown_mnemonic(self):
        """Unknown words render as data."""
        assert decode(0xFAFF).mnemonic == "DW 0xfaff"

    def test_str_includes_word(self):
        """str() prefixes the mnemonic with the raw word."""
        assert str(decode(0x00EE)) == "00EE  RET"


class TestDisassemble:
    """Test whole-ROM disassembly."""

    def test_disassemble_addresses(self):
        """Listing starts at 0x200 and steps by 2."""
        listing = disassemble(b"\x00\xE0\x12\x00")
        assert [addr for addr, _ in listing] == [0x200, 0x202]
        assert listing[0][1].op is Op.CLS
        assert listing[1][1].op is Op.JP

    def test_disassemble_odd_length(self):
        """A trailing odd byte is padded with zero."""
        listing = disassemble(b"\x00\xE0\x60")
        assert listing[-1][1].word == 0x6000

    def test_disassemble_empty(self):
        """An empty ROM yields an empty listing."""
        assert disassemble(b"") == []
