#!/usr/bin/env python3
"""chip8-vm Command Line Interface.

Run CHIP-8 programs for a fixed number of cycles and print the screen.

Usage:
    python main.py --rom roms/IBM_Logo.ch8 --cycles 200
    python main.py --inline "A050 6000 6100 D015 1208" --trace
"""

import argparse
import logging
import random
import re
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8, Chip8Error, program_from_words
from chip8_vm.display import render_text


# COSMAC VIP keypad layout mapped onto the left side of a QWERTY keyboard
KEYMAP = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}


def parse_inline(source: str) -> bytes:
    """Parse hex instruction words separated by whitespace, commas or ;."""
    words = [w for w in re.split(r"[\s,;]+", source.strip()) if w]
    return program_from_words(int(w, 16) for w in words)


def parse_keys(value: str) -> list:
    pins = []
    for key in value.split(","):
        key = key.strip().lower()
        if not key:
            continue
        if key not in KEYMAP:
            raise argparse.ArgumentTypeError(f"Unknown key: {key!r}")
        pins.append(KEYMAP[key])
    return pins


def main():
    parser = argparse.ArgumentParser(
        description="chip8-vm: CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for 500 cycles
    python main.py --rom roms/IBM_Logo.ch8 --cycles 500

    # Draw the font glyph for 0 and show the trace
    python main.py --inline "A050 6000 6100 D015 1208" --cycles 5 --trace

    # Hold keys 1 and Q (pins 0x1 and 0x4) for the whole run
    python main.py --rom game.ch8 --keys 1,q
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to a CHIP-8 program image"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline program as hex instruction words (e.g. \"6005 1200\")"
    )
    parser.add_argument(
        "--cycles", "-c",
        type=int,
        default=1000,
        help="Number of cycles to execute. Default: 1000"
    )
    parser.add_argument(
        "--keys", "-k",
        type=parse_keys,
        default=[],
        help="Comma separated keys held down during the run (1234/qwer/asdf/zxcv)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--on-invalid",
        choices=["raise", "skip"],
        default="raise",
        help="Stop on (raise) or step over (skip) invalid opcodes. Default: raise"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (screen only)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    if not args.rom and not args.inline:
        parser.error("Either --rom or --inline is required")

    if args.rom:
        rom_path = Path(args.rom)
        if not rom_path.exists():
            print(f"Error: ROM file not found: {args.rom}")
            return 1
        program = rom_path.read_bytes()
        if not args.quiet:
            print(f"Loading ROM: {args.rom} ({len(program)} bytes)")
    else:
        try:
            program = parse_inline(args.inline)
        except ValueError as e:
            parser.error(f"Invalid inline program: {e}")

    rng = random.Random(args.seed) if args.seed is not None else None
    chip = Chip8(on_invalid=args.on_invalid, trace=args.trace, rng=rng)

    status = 0
    try:
        chip.load_program(program)
        for pin in args.keys:
            chip.set_input_pin(pin, True)
        chip.run(args.cycles)
    except Chip8Error as e:
        print(f"Execution error: {e}")
        status = 1

    if args.trace:
        print(chip.format_trace())
        print()

    print(render_text(chip.read_output_pins()))

    if not args.quiet:
        summary = chip.get_summary()
        print()
        print(f"Cycles: {summary['cycles']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['index']:03X}  SP: {summary['sp']}")
        print(f"DT: {summary['delay_timer']}  ST: {summary['sound_timer']}")
        regs = " ".join(f"{name}={value:02X}" for name, value in summary["registers"].items())
        print(f"Registers: {regs}")
        if summary["errors"]:
            print(f"Errors: {summary['errors']}")

    return status


if __name__ == "__main__":
    sys.exit(main())
