"""Integration tests: ROM loading and small programs."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_core import Chip8CPU, Quirks, RomOpenError, RomReadError, RomSizeError


def program(*words) -> bytes:
    return b"".join(word.to_bytes(2, "big") for word in words)


class TestRomLoading:
    """Test loading ROMs from files and bytes."""

    @pytest.fixture
    def cpu(self):
        return Chip8CPU()

    def test_load_rom_file(self, cpu, tmp_path):
        """load_rom reads the file and returns its size."""
        rom = tmp_path / "test.ch8"
        rom.write_bytes(program(0x00E0, 0x1200))
        assert cpu.load_rom(rom) == 4
        assert bytes(cpu.state.memory[0x200:0x204]) == b"\x00\xE0\x12\x00"
        assert cpu.get_rom_size() == 4

    def test_load_max_size(self, cpu, tmp_path):
        """A 3584-byte ROM fills program memory exactly."""
        rom = tmp_path / "max.ch8"
        rom.write_bytes(b"\x5A" * 3584)
        assert cpu.load_rom(str(rom)) == 3584
        assert cpu.state.memory[0xFFF] == 0x5A

    def test_missing_file(self, cpu, tmp_path):
        """A missing file raises RomOpenError."""
        with pytest.raises(RomOpenError) as exc_info:
            cpu.load_rom(tmp_path / "missing.ch8")
        assert "missing.ch8" in str(exc_info.value)

    def test_directory_is_open_or_read_error(self, cpu, tmp_path):
        """A directory cannot be loaded as a ROM."""
        with pytest.raises((RomOpenError, RomReadError)):
            cpu.load_rom(tmp_path)

    def test_oversized_file(self, cpu, tmp_path):
        """A ROM over 3584 bytes raises RomSizeError with both sizes."""
        rom = tmp_path / "big.ch8"
        rom.write_bytes(b"\x00" * 4000)
        with pytest.raises(RomSizeError) as exc_info:
            cpu.load_rom(rom)
        assert exc_info.value.max == 3584
        assert exc_info.value.actual == 4000
        assert "Expected <= 3584, got 4000 bytes" in str(exc_info.value)

    def test_failed_load_keeps_previous_state(self, cpu):
        """A failed load leaves the running machine untouched."""
        cpu.load_bytes(program(0x6A12, 0x1202))
        cpu.step()
        before = cpu.state.snapshot()
        memory = bytes(cpu.state.memory)

        with pytest.raises(RomSizeError):
            cpu.load_bytes(b"\x00" * 3585)

        assert cpu.state.snapshot() == before
        assert bytes(cpu.state.memory) == memory

    def test_reload_resets_machine(self, cpu):
        """Loading a new ROM resets registers, stack, timers and display."""
        cpu.load_bytes(program(0x6A12, 0x2206, 0x0000, 0xF015, 0xD015))
        state = cpu.state
        state.v[0] = 3
        cpu.run(max_cycles=5)
        assert state.v[0xA] == 0x12
        cpu.state.xor_pixel(0, 0)

        cpu.load_bytes(program(0x00E0))
        assert cpu.get_register(0xA) == 0
        assert cpu.state.stack == []
        assert cpu.get_timers() == (0, 0)
        assert not any(any(row) for row in cpu.get_display())
        assert cpu.get_pc() == 0x200
        assert cpu.trace == []

    def test_reload_clears_old_rom_bytes(self, cpu):
        """A shorter ROM does not leave the previous ROM's tail in memory."""
        cpu.load_bytes(program(0x1111, 0x2222))
        cpu.load_bytes(program(0x3333))
        assert bytes(cpu.state.memory[0x200:0x204]) == b"\x33\x33\x00\x00"


class TestCountdownProgram:
    """A loop that counts V0 down to zero."""

    def test_countdown(self):
        """V0 reaches zero and V1 counts the iterations."""
        cpu = Chip8CPU()
        cpu.load_bytes(program(
            0x600A,  # 200: LD V0, 10
            0x6100,  # 202: LD V1, 0
            0x6201,  # 204: LD V2, 1
            0x8025,  # 206: SUB V0, V2
            0x7101,  # 208: ADD V1, 1
            0x3000,  # 20A: SE V0, 0
            0x1206,  # 20C: JP 206
            0x120E,  # 20E: JP 20E
        ))
        cpu.run(max_cycles=100)

        assert cpu.get_register(0) == 0
        assert cpu.get_register(1) == 10
        assert cpu.get_pc() == 0x20E


class TestSubroutineProgram:
    """Nested subroutine calls."""

    def test_nested_calls(self):
        """Two levels of CALL/RET return to the right places."""
        cpu = Chip8CPU(quirks=Quirks(call_pushes_next=True))
        cpu.load_bytes(program(
            0x2208,  # 200: CALL 208
            0x7001,  # 202: ADD V0, 1
            0x1204,  # 204: JP 204
            0x0000,  # 206
            0x220E,  # 208: CALL 20E
            0x00EE,  # 20A: RET
            0x0000,  # 20C
            0x6010,  # 20E: LD V0, 0x10
            0x00EE,  # 210: RET
        ))
        cpu.run(max_cycles=6)

        assert cpu.get_register(0) == 0x11
        assert cpu.get_pc() == 0x204
        assert cpu.state.stack == []
        assert cpu.is_halted() is False


class TestBcdDisplayProgram:
    """Store BCD digits and draw them with the font."""

    def test_draw_bcd_digits(self):
        """Digits of 137 are stored and drawn without collision."""
        cpu = Chip8CPU()
        cpu.load_bytes(program(
            0x6389,  # 200: LD V3, 137
            0xA300,  # 202: LD I, 300
            0xF333,  # 204: LD B, V3
            0xF265,  # 206: LD V2, [I]
            0x6A00,  # 208: LD VA, 0
            0x6B00,  # 20A: LD VB, 0
            0xF029,  # 20C: LD F, V0
            0xDAB5,  # 20E: DRW VA, VB, 5
            0x1210,  # 210: JP 210
        ))
        cpu.run(max_cycles=9)

        assert [cpu.get_register(n) for n in range(3)] == [1, 3, 7]
        assert cpu.get_register(0xF) == 0
        rows = cpu.render_display().splitlines()
        assert len(rows) == 32
        assert all(len(row) == 64 for row in rows)
        assert rows[0].startswith("..#.")  # glyph "1": 0x20


class TestRun:
    """Test run() and timers."""

    def test_run_stops_when_halted(self):
        """run() stops once RET on an empty stack halts the machine."""
        cpu = Chip8CPU()
        cpu.load_bytes(program(0x6001, 0x00EE))
        trace = cpu.run(max_cycles=50)
        assert cpu.is_halted() is True
        assert len(trace) == 2
        assert cpu.get_cycle_count() == 2

    def test_run_cycle_limit(self):
        """An endless loop runs exactly max_cycles steps."""
        cpu = Chip8CPU(max_cycles=25)
        cpu.load_bytes(program(0x1200))
        trace = cpu.run()
        assert len(trace) == 25
        assert cpu.get_cycle_count() == 25

    def test_run_ticks_timers(self):
        """timer_ratio ticks the timers every N steps."""
        cpu = Chip8CPU()
        cpu.load_bytes(program(0x6005, 0xF015, 0x1204))
        cpu.run(max_cycles=12, timer_ratio=4)
        assert cpu.get_timers()[0] == 2

    def test_record_trace_disabled(self):
        """record_trace=False keeps the trace empty."""
        cpu = Chip8CPU(record_trace=False)
        cpu.load_bytes(program(0x1200))
        cpu.run(max_cycles=10)
        assert cpu.trace == []
        assert cpu.get_cycle_count() == 10


class TestExecutionTrace:
    """Test trace and reporting."""

    @pytest.fixture
    def cpu(self):
        cpu = Chip8CPU()
        cpu.load_bytes(program(0x6A12, 0xA222, 0x1204))
        return cpu

    def test_trace_entries(self, cpu):
        """Each step records pc, word and pre/post registers."""
        trace = cpu.run(max_cycles=3)
        assert [entry.pc for entry in trace] == [0x200, 0x202, 0x204]
        assert trace[0].word == 0x6A12
        assert trace[0].instruction.mnemonic == "LD VA, 0x12"
        assert trace[0].pre_state["registers"]["VA"] == 0
        assert trace[0].post_state["registers"]["VA"] == 0x12

    def test_summary(self, cpu):
        """get_summary reports the final machine state."""
        cpu.run(max_cycles=3)
        summary = cpu.get_summary()
        assert summary["cycles"] == 3
        assert summary["halted"] is False
        assert summary["registers"]["VA"] == 0x12
        assert summary["i"] == 0x222
        assert summary["pc"] == 0x204
        assert summary["rom_size"] == 6
        assert summary["quirks"]["shift_uses_vy"] is True
        assert summary["errors"] == []

    def test_print_trace(self, cpu, capsys):
        """print_trace writes the trace and final state."""
        cpu.run(max_cycles=2)
        cpu.print_trace()
        out = capsys.readouterr().out
        assert "CHIP-8 EXECUTION TRACE" in out
        assert "LD VA, 0x12" in out
        assert "FINAL STATE" in out

    def test_disassemble_loaded_rom(self, cpu):
        """disassemble lists the loaded ROM."""
        listing = cpu.disassemble()
        assert [addr for addr, _ in listing] == [0x200, 0x202, 0x204]
        assert listing[2][1].mnemonic == "JP 0x204"


class TestKeypadInterface:
    """Test keypad accessors."""

    def test_invalid_key(self):
        """Keys outside 0-15 raise IndexError."""
        cpu = Chip8CPU()
        with pytest.raises(IndexError):
            cpu.press_key(16)

    def test_key_state(self):
        """press_key and release_key update the keypad."""
        cpu = Chip8CPU()
        cpu.press_key(0x3)
        assert cpu.state.is_key_pressed(0x3)
        cpu.release_key(0x3)
        assert not cpu.state.is_key_pressed(0x3)


class TestTraceRecording:
    """Test what step() records with tracing on and off."""

    def test_untraced_step_skips_snapshots(self):
        """With record_trace=False the entry carries no register snapshots."""
        cpu = Chip8CPU(record_trace=False)
        cpu.load_bytes(program(0x6A12))
        entry = cpu.step()
        assert entry.pre_state == {}
        assert entry.post_state == {}
        assert cpu.get_register(0xA) == 0x12

    def test_halted_step_not_recorded(self):
        """Steps on a halted machine report the halt without adding to the trace."""
        cpu = Chip8CPU()
        cpu.load_bytes(program(0x00EE))
        cpu.step()
        assert len(cpu.trace) == 1
        entry = cpu.step()
        assert entry.stalled is True
        assert entry.error == "CPU is halted"
        assert entry.pre_state == {}
        assert len(cpu.trace) == 1
        assert cpu.get_cycle_count() == 1
