"""chip8-core Interactive Demo.

A Gradio web interface for running CHIP-8 ROMs and inspecting the machine.

Usage:
    cd /path/to/chip8-core
    python demo/gradio_app.py

Features:
    - Upload a ROM or pick a built-in example program
    - Run a fixed number of instructions with 60 Hz timer ticks
    - Feed a key press to programs waiting on Fx0A
    - See the disassembly, execution trace, registers and framebuffer
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_core import Chip8CPU, Quirks, RomError


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Font digits 0-7": [
        0x00E0,  # CLS
        0x6000,  # LD V0, 0x00     ; digit
        0x6105,  # LD V1, 0x05     ; x
        0x6205,  # LD V2, 0x05     ; y
        0xF029,  # LD F, V0        ; I = glyph(V0)
        0xD125,  # DRW V1, V2, 5
        0x7001,  # ADD V0, 0x01
        0x7106,  # ADD V1, 0x06
        0x3008,  # SE V0, 0x08
        0x1208,  # JP 0x208
        0x1214,  # JP 0x214        ; idle
    ],
    "BCD of 255": [
        0x6AFF,  # LD VA, 0xFF
        0xA300,  # LD I, 0x300
        0xFA33,  # LD B, VA
        0xF265,  # LD V2, [I]      ; V0..V2 = 2, 5, 5
        0x1208,  # JP 0x208        ; idle
    ],
    "Carry and borrow": [
        0x60FF,  # LD V0, 0xFF
        0x6101,  # LD V1, 0x01
        0x8014,  # ADD V0, V1      ; V0 = 0x00, VF = 1
        0x6205,  # LD V2, 0x05
        0x630A,  # LD V3, 0x0A
        0x8235,  # SUB V2, V3      ; V2 = 0xFB, VF = 0
        0x120C,  # JP 0x20C        ; idle
    ],
    "Wait for key": [
        0x00E0,  # CLS
        0xF00A,  # LD V0, K
        0xF029,  # LD F, V0
        0x6110,  # LD V1, 0x10
        0x620A,  # LD V2, 0x0A
        0xD125,  # DRW V1, V2, 5
        0x120C,  # JP 0x20C        ; idle
    ],
}

KEY_CHOICES = ["none"] + [f"{k:X}" for k in range(16)]


def program_bytes(words) -> bytes:
    """Assemble a list of instruction words into a ROM image."""
    return b"".join(word.to_bytes(2, "big") for word in words)


# =============================================================================
# Execution Functions
# =============================================================================

def run_rom(rom_file, example: str, key: str, cycles: int, timer_ratio: int, seed: int) -> tuple:
    """Load and run a ROM, returning formatted results.

    Args:
        rom_file: Uploaded ROM path (takes priority over example)
        example: Name of a built-in example program
        key: Key (hex digit) pressed once the program waits for input, or "none"
        cycles: Number of instructions to execute
        timer_ratio: Instructions per timer tick
        seed: Seed for RND

    Returns:
        Tuple of (summary_text, display_text, disassembly_text, trace_text, registers_text)
    """
    cpu = Chip8CPU(quirks=Quirks(), seed=int(seed), max_cycles=int(cycles))

    try:
        if rom_file:
            path = rom_file if isinstance(rom_file, str) else rom_file.name
            size = cpu.load_rom(path)
            source = Path(path).name
        else:
            size = cpu.load_bytes(program_bytes(EXAMPLE_PROGRAMS[example]))
            source = example
    except RomError as e:
        return f"Error: {e}", "", "", "", ""

    pressed = key != "none"
    ratio = max(1, int(timer_ratio))
    for count in range(1, int(cycles) + 1):
        if cpu.is_halted():
            break
        if pressed and cpu.is_waiting_for_key():
            cpu.press_key(int(key, 16))
        cpu.step()
        if count % ratio == 0:
            cpu.tick_timers()

    summary = cpu.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"ROM: {source} ({size} bytes)",
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Waiting for key: {'Yes' if summary['waiting_for_key'] else 'No'}",
        f"Sound active: {'Yes' if cpu.is_sound_active() else 'No'}",
    ]
    errors = sorted(set(summary["errors"]))
    if errors:
        summary_lines.append("\nAnomalies:")
        for err in errors[:5]:
            summary_lines.append(f"  - {err}")
    summary_text = "\n".join(summary_lines)

    display_text = cpu.render_display(on="█", off=" ")

    disassembly_text = "\n".join(
        f"{addr:03X}: {instruction}" for addr, instruction in cpu.disassemble()[:200]
    )

    # Format trace
    trace = cpu.trace
    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in trace[:100]:  # Limit to 100 entries
        marker = " (waiting)" if entry.stalled else ""
        trace_lines.append(f"[{entry.cycle:>5}] {entry.pc:03X}: {entry.instruction}{marker}")

        pre_regs = entry.pre_state["registers"]
        post_regs = entry.post_state["registers"]
        changes = []
        for reg in pre_regs:
            if pre_regs[reg] != post_regs[reg]:
                changes.append(f"{reg}: {pre_regs[reg]:02X} -> {post_regs[reg]:02X}")
        if changes:
            trace_lines.append(f"        {', '.join(changes)}")

    if len(trace) > 100:
        trace_lines.append(f"\n... ({len(trace) - 100} more entries)")
    trace_text = "\n".join(trace_lines)

    # Format registers
    reg_lines = [
        "REGISTERS",
        "=" * 30,
    ]
    for reg, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: {value:02X}{marker}")
    reg_lines.append("")
    reg_lines.append(f"  I:  {summary['i']:03X}")
    reg_lines.append(f"  PC: {summary['pc']:03X}")
    reg_lines.append(f"  SP: {len(summary['stack'])}")
    reg_lines.append(f"  DT: {summary['delay_timer']}")
    reg_lines.append(f"  ST: {summary['sound_timer']}")
    registers_text = "\n".join(reg_lines)

    return summary_text, display_text, disassembly_text, trace_text, registers_text


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-core Demo") as demo:
        gr.Markdown("""
        # chip8-core: CHIP-8 Virtual Machine

        Load a ROM, run it for a fixed number of instructions and inspect the machine.

        **Pipeline**: `fetch -> decode -> op tag -> registry -> execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                rom_upload = gr.File(label="ROM file (.ch8)", type="filepath")
                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Font digits 0-7",
                    label="Example (used when no ROM is uploaded)"
                )

                gr.Markdown("### Settings")

                key_dropdown = gr.Dropdown(
                    choices=KEY_CHOICES,
                    value="none",
                    label="Key to press when waiting for input"
                )
                with gr.Row():
                    cycles = gr.Slider(
                        minimum=1,
                        maximum=50000,
                        value=500,
                        step=1,
                        label="Instructions"
                    )
                    timer_ratio = gr.Slider(
                        minimum=1,
                        maximum=50,
                        value=8,
                        step=1,
                        label="Instructions per timer tick"
                    )
                seed = gr.Number(value=0, precision=0, label="RND seed")

                run_button = gr.Button("Run", variant="primary")

            with gr.Column(scale=3):
                display_output = gr.Textbox(
                    label="Framebuffer (64x32)",
                    lines=32,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Registers",
                        lines=10,
                        interactive=False
                    )

        with gr.Row():
            disassembly_output = gr.Textbox(
                label="Disassembly",
                lines=20,
                interactive=False
            )
            trace_output = gr.Textbox(
                label="Execution Trace",
                lines=20,
                interactive=False
            )

        run_button.click(
            fn=run_rom,
            inputs=[rom_upload, example_dropdown, key_dropdown, cycles, timer_ratio, seed],
            outputs=[summary_output, display_output, disassembly_output, trace_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
