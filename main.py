#!/usr/bin/env python3
"""chip8-core Command Line Interface.

Run CHIP-8 ROMs headless with the chip8-core engine.

Usage:
    python main.py --rom roms/test_opcode.ch8
    python main.py --rom roms/ibm_logo.ch8 --cycles 200 --display
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_core import Chip8CPU, Quirks, RomError
from chip8_core.config import TIMER_HZ


def main():
    parser = argparse.ArgumentParser(
        description="chip8-core: CHIP-8 Virtual Machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for the default number of cycles
    python main.py --rom roms/test_opcode.ch8

    # Run 200 instructions and show the framebuffer
    python main.py --rom roms/ibm_logo.ch8 --cycles 200 --display

    # Disassemble a ROM without running it
    python main.py --rom roms/ibm_logo.ch8 --disassemble

    # Log every executed instruction
    python main.py --rom roms/ibm_logo.ch8 --cycles 20 --log-level DEBUG
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        required=True,
        help="Path to CHIP-8 ROM file"
    )
    parser.add_argument(
        "--cycles", "-c",
        type=int,
        default=Chip8CPU.DEFAULT_MAX_CYCLES,
        help=f"Number of instructions to execute. Default: {Chip8CPU.DEFAULT_MAX_CYCLES}"
    )
    parser.add_argument(
        "--timer-ratio",
        type=int,
        default=8,
        help=f"Instructions per {TIMER_HZ} Hz timer tick (8 ~ 500 Hz CPU). Default: 8"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--display", "-d",
        action="store_true",
        help="Print the framebuffer after execution"
    )
    parser.add_argument(
        "--disassemble",
        action="store_true",
        help="Print a disassembly of the ROM and exit"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final registers only)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level. Default: WARNING"
    )
    parser.add_argument(
        "--shift-vx",
        action="store_true",
        help="Quirk: 8xy6/8xyE shift Vx in place instead of Vy"
    )
    parser.add_argument(
        "--no-index-increment",
        action="store_true",
        help="Quirk: Fx55/Fx65 leave I unchanged"
    )
    parser.add_argument(
        "--index-overflow-vf",
        action="store_true",
        help="Quirk: Fx1E sets VF when I overflows 0xFFF"
    )
    parser.add_argument(
        "--logic-resets-vf",
        action="store_true",
        help="Quirk: 8xy1/8xy2/8xy3 clear VF"
    )
    parser.add_argument(
        "--call-pushes-next",
        action="store_true",
        help="Quirk: 2nnn pushes the following address so RET resumes after the CALL"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.cycles < 0:
        parser.error("--cycles must be non-negative")

    quirks = Quirks(
        shift_uses_vy=not args.shift_vx,
        load_store_increments_index=not args.no_index_increment,
        index_overflow_sets_vf=args.index_overflow_vf,
        logic_resets_vf=args.logic_resets_vf,
        call_pushes_next=args.call_pushes_next,
    )

    # Initialize CPU
    cpu = Chip8CPU(
        quirks=quirks,
        seed=args.seed,
        max_cycles=args.cycles,
        record_trace=args.trace
    )

    # Load ROM
    try:
        size = cpu.load_rom(args.rom)
    except RomError as e:
        print(f"Error loading ROM: {e}")
        return 1

    if args.disassemble:
        for addr, instruction in cpu.disassemble():
            print(f"{addr:03X}: {instruction}")
        return 0

    if not args.quiet:
        print(f"Loaded ROM: {args.rom} ({size} bytes)")
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    cpu.run(timer_ratio=args.timer_ratio)

    # Output
    if args.trace:
        cpu.print_trace()
    elif not args.quiet:
        print()
        summary = cpu.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"Waiting for key: {summary['waiting_for_key']}")
        print(f"PC: {summary['pc']:03X}  I: {summary['i']:03X}  Stack: {summary['stack']}")
        print(f"Registers: {summary['registers']}")
        print(f"Timers: DT={summary['delay_timer']} ST={summary['sound_timer']}")
    else:
        # Quiet mode - just print non-zero registers
        regs = cpu.dump_registers()
        for reg, value in regs.items():
            if value != 0:
                print(f"{reg}={value:02X}")

    if args.display:
        print()
        print(cpu.render_display())

    return 0


if __name__ == "__main__":
    sys.exit(main())
