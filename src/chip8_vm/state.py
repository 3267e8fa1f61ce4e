"""Chip8State: Memory and register file of the CHIP-8 machine.

This module defines the single mutable aggregate that every instruction
operates on, together with the machine constants and the built-in font.

State Components:
    - Memory: 4096 bytes, font sprites preloaded at FONT_OFFSET
    - Registers: V0-VF (16 bytes); VF doubles as the flag register
    - Index: 16-bit pointer used for indexed memory access
    - PC: Program counter, starts at 0x200
    - Stack: 16 return addresses plus stack pointer
    - Timers: delay and sound, decremented every timer_resolution cycles
    - Pins: 16 input latches and 2048 output pins (64x32 framebuffer)
    - Draw flag: set whenever the framebuffer changes

The host owns exactly one instance and mutates it only through the Chip8
orchestrator and its input pin methods.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .errors import ProgramCounterOutOfRange, ProgramTooLarge


MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START  # 3584

REGISTER_COUNT = 16
STACK_SIZE = 16
INPUT_PIN_COUNT = 16

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
OUTPUT_PIN_COUNT = DISPLAY_WIDTH * DISPLAY_HEIGHT

FONT_OFFSET = 0x050
FONT_GLYPH_SIZE = 5

# Hex digits 0-F, 4 pixels wide and 5 rows tall
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


def _initial_memory() -> bytearray:
    memory = bytearray(MEMORY_SIZE)
    memory[FONT_OFFSET:FONT_OFFSET + len(FONT)] = FONT
    return memory


@dataclass
class Chip8State:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4096 bytes of main memory, font preloaded
        registers: V0-VF, one byte each
        index: Index register (I)
        pc: Program counter
        stack: Return addresses pushed by CALL
        sp: Stack pointer, number of used stack entries
        delay_timer: Delay countdown, readable by programs
        sound_timer: Sound countdown, buzzer is active while non-zero
        input_pins: Key latches 0x0-0xF
        output_pins: Row-major 64x32 framebuffer
        cycles_since_timer_dec: Cycles executed since the last timer tick
        draw: Whether the framebuffer changed since the flag was cleared
        cycle_count: Number of completed cycles
    """
    memory: bytearray = field(default_factory=_initial_memory)
    registers: bytearray = field(default_factory=lambda: bytearray(REGISTER_COUNT))
    index: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)
    sp: int = 0
    delay_timer: int = 0
    sound_timer: int = 0
    input_pins: List[bool] = field(default_factory=lambda: [False] * INPUT_PIN_COUNT)
    output_pins: List[bool] = field(default_factory=lambda: [False] * OUTPUT_PIN_COUNT)
    cycles_since_timer_dec: int = 0
    draw: bool = False
    cycle_count: int = 0

    def snapshot(self) -> dict:
        """Create a copy of the register file for tracing.

        Returns:
            Dictionary of registers, index, pc, stack and timers
        """
        return {
            "registers": list(self.registers),
            "index": self.index,
            "pc": self.pc,
            "stack": list(self.stack[:self.sp]),
            "sp": self.sp,
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "cycle_count": self.cycle_count,
            # Note: memory and pins excluded from snapshot for efficiency
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory, register, stack and pin arrays have their fixed sizes
            - Registers and timers are bytes, index is 16 bits
            - PC is below 4096 and SP within [0, 16]

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False
        if len(self.registers) != REGISTER_COUNT:
            return False
        if len(self.stack) != STACK_SIZE:
            return False
        if len(self.input_pins) != INPUT_PIN_COUNT:
            return False
        if len(self.output_pins) != OUTPUT_PIN_COUNT:
            return False

        if not 0 <= self.pc < MEMORY_SIZE:
            return False
        if not 0 <= self.sp <= STACK_SIZE:
            return False
        if not 0 <= self.index <= 0xFFFF:
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        for address in self.stack:
            if not 0 <= address <= 0xFFFF:
                return False

        return self.cycle_count >= 0

    def get_register(self, reg: int) -> int:
        """Get value of register V{reg}.

        Raises:
            IndexError: If reg is not in 0x0-0xF
        """
        if not 0 <= reg < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{reg}")
        return self.registers[reg]

    def set_register(self, reg: int, value: int) -> None:
        """Set register V{reg}, wrapping value to 8 bits.

        Raises:
            IndexError: If reg is not in 0x0-0xF
        """
        if not 0 <= reg < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{reg}")
        self.registers[reg] = value & 0xFF

    def read_memory(self, address: int) -> int:
        """Read one byte, wrapping the address mod 4096."""
        return self.memory[address % MEMORY_SIZE]

    def write_memory(self, address: int, value: int) -> None:
        """Write one byte, wrapping the address mod 4096."""
        self.memory[address % MEMORY_SIZE] = value & 0xFF

    def next_pc(self, amount: int = 2) -> int:
        """Return PC + amount without moving the program counter.

        Raises:
            ProgramCounterOutOfRange: If the new PC would leave memory
        """
        new_pc = self.pc + amount
        if new_pc >= MEMORY_SIZE:
            raise ProgramCounterOutOfRange(new_pc)
        return new_pc

    def increment_pc(self, amount: int = 2) -> None:
        """Advance the program counter.

        Raises:
            ProgramCounterOutOfRange: If the new PC would leave memory
        """
        self.pc = self.next_pc(amount)

    def set_pc(self, new_pc: int) -> None:
        if not 0 <= new_pc < MEMORY_SIZE:
            raise ProgramCounterOutOfRange(new_pc)
        self.pc = new_pc

    def load_program(self, program: bytes) -> int:
        """Copy a program image into memory starting at 0x200.

        The copy is all-or-nothing: an oversized program leaves memory
        untouched.

        Args:
            program: Raw CHIP-8 machine code

        Returns:
            Number of bytes loaded

        Raises:
            ProgramTooLarge: If the program exceeds 3584 bytes
        """
        data = bytes(program)
        if len(data) > MAX_PROGRAM_SIZE:
            raise ProgramTooLarge(len(data), MAX_PROGRAM_SIZE)
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        return len(data)

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0-VF."""
        return {f"V{i:X}": value for i, value in enumerate(self.registers)}

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{i:X}={v:02X}" for i, v in enumerate(self.registers))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer} {regs}"
        )


def create_initial_state(program: bytes = b"") -> Chip8State:
    """Create a fresh machine state with an optional program loaded.

    Args:
        program: Raw CHIP-8 machine code

    Returns:
        Chip8State with font preloaded, PC at 0x200 and program in memory
    """
    state = Chip8State()
    if program:
        state.load_program(program)
    return state
