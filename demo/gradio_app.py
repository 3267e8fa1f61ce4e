"""chip8-vm Interactive Demo.

A Gradio web interface for running and inspecting CHIP-8 programs.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write hex programs or upload a ROM image
    - Hold keypad keys during the run
    - See the framebuffer, final registers and the execution trace
"""

import random
import re
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8, Chip8Error, program_from_words
from chip8_vm.display import to_image


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Digits 0-9": """6000  ; V0 = digit
6100  ; V1 = x
6200  ; V2 = y
F029  ; loop: I = font(V0)
D125  ; draw digit
7105  ; x += 5
7001  ; digit += 1
300A  ; skip if digit == 10
1206  ; jump loop
1212  ; done""",

    "BCD of 123": """637B  ; V3 = 123
A300  ; I = 0x300
F333  ; BCD V3 -> [I]
F265  ; V0..V2 = [I]
6400  ; x
6500  ; y
F029  ; hundreds
D455
7405
F129  ; tens
D455
7405
F229  ; ones
D455
121C  ; done""",

    "Wait for key": """F00A  ; V0 = key (blocks until a key is held)
F029  ; I = font(V0)
6A00
DAA5  ; draw it at (0, 0)
1208  ; done""",

    "Custom": ""
}

KEYPAD = ["1", "2", "3", "4", "q", "w", "e", "r", "a", "s", "d", "f", "z", "x", "c", "v"]
KEYMAP = dict(zip(KEYPAD, [0x1, 0x2, 0x3, 0xC, 0x4, 0x5, 0x6, 0xD,
                           0x7, 0x8, 0x9, 0xE, 0xA, 0x0, 0xB, 0xF]))


# =============================================================================
# Execution Functions
# =============================================================================

def parse_hex_program(source: str) -> bytes:
    """Parse hex words, ignoring ';' comments."""
    words = []
    for line in source.split("\n"):
        line = re.sub(r";.*$", "", line).strip()
        words.extend(int(w, 16) for w in line.split())
    return program_from_words(words)


def run_program(program: str, rom_file, keys: list, cycles: int, seed: int) -> tuple:
    """Execute a program and return results.

    Args:
        program: Hex source (used when no ROM is uploaded)
        rom_file: Uploaded ROM path or None
        keys: Keypad keys held during the run
        cycles: Number of cycles to execute
        seed: Seed for RND

    Returns:
        Tuple of (screen_image, summary_text, trace_text, registers_text)
    """
    chip = Chip8(trace=True, rng=random.Random(int(seed)), max_trace=500)
    blank = to_image(chip.read_output_pins())

    try:
        if rom_file:
            image = Path(rom_file).read_bytes()
        else:
            if not program.strip():
                return blank, "Error: No program provided", "", ""
            image = parse_hex_program(program)
    except ValueError as e:
        return blank, f"Error: {e}", "", ""

    error_msg = None
    try:
        chip.load_program(image)
        for key in keys or []:
            chip.set_input_pin(KEYMAP[key], True)
        chip.run(int(cycles))
    except Chip8Error as e:
        error_msg = str(e)

    summary = chip.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Program size: {len(image)} bytes",
        f"Cycles: {summary['cycles']}",
        f"PC: 0x{summary['pc']:03X}",
        f"Pixels on: {summary['pixels_on']}",
        f"Sound: {'on' if chip.is_sound_active() else 'off'}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    summary_text = "\n".join(summary_lines)

    trace_text = chip.format_trace() or "(no cycles executed)"

    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for name, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {name}: 0x{value:02X} {value:>4}{marker}")
    reg_lines.append("")
    reg_lines.append(f"  I:  0x{summary['index']:03X}")
    reg_lines.append(f"  SP: {summary['sp']}")
    reg_lines.append(f"  DT: {summary['delay_timer']}")
    reg_lines.append(f"  ST: {summary['sound_timer']}")
    registers_text = "\n".join(reg_lines)

    return to_image(chip.read_output_pins()), summary_text, trace_text, registers_text


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-vm Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8-vm: CHIP-8 Virtual Machine

        Runs a CHIP-8 program for a fixed number of cycles and shows the
        64x32 framebuffer, the register file and a per-cycle trace.

        **Pipeline**: `fetch -> decode -> key -> registry -> execute -> timers`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Digits 0-9",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Digits 0-9"],
                    label="Hex Words (';' starts a comment)",
                    lines=15,
                    placeholder="6005\n7001\n1204"
                )

                rom_input = gr.File(label="Or upload a ROM", type="filepath")

                gr.Markdown("### Settings")

                keys_input = gr.CheckboxGroup(
                    choices=KEYPAD,
                    label="Held Keys",
                    info="1234 / qwer / asdf / zxcv"
                )

                with gr.Row():
                    cycles_slider = gr.Slider(
                        minimum=1,
                        maximum=20000,
                        value=200,
                        step=1,
                        label="Cycles"
                    )
                    seed_input = gr.Number(value=0, label="RND Seed", precision=0)

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Image(label="Screen", interactive=False)

                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=10,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Encoding | Instruction | Effect |
            |----------|-------------|--------|
            | `00E0` | CLS | Clear screen |
            | `00EE` | RET | Return from subroutine |
            | `1NNN` | JP addr | Jump |
            | `2NNN` | CALL addr | Call subroutine |
            | `3XNN` / `4XNN` | SE / SNE Vx, byte | Skip if equal / not equal |
            | `5XY0` / `9XY0` | SE / SNE Vx, Vy | Skip if registers equal / differ |
            | `6XNN` / `7XNN` | LD / ADD Vx, byte | Load / add immediate |
            | `8XY0`-`8XYE` | LD, OR, AND, XOR, ADD, SUB, SHR, SUBN, SHL | Register ops, VF = flag |
            | `ANNN` | LD I, addr | Set index |
            | `BNNN` | JP V0, addr | Jump to addr + V0 |
            | `CXNN` | RND Vx, byte | Random AND byte |
            | `DXYN` | DRW Vx, Vy, n | XOR sprite, VF = collision |
            | `EX9E` / `EXA1` | SKP / SKNP Vx | Skip on key state |
            | `FX07` `FX0A` `FX15` `FX18` | Timers and key wait | |
            | `FX1E` `FX29` `FX33` `FX55` `FX65` | Index, font, BCD, register dump/load | |
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_input, keys_input, cycles_slider, seed_input],
            outputs=[screen_output, summary_output, trace_output, registers_output]
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
