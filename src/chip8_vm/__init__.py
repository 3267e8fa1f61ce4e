"""chip8-vm: CHIP-8 virtual machine core.

This package implements the fetch-decode-execute core of a CHIP-8 machine:
4KB memory, 16 registers, index register, 16-level call stack, delay and
sound timers, a 64x32 monochrome framebuffer and 16 input latches.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |          |        |        |           |
           [PC-based] [Opcode]  [OP_*]  [Frozen]    [Timers]
                                        handlers

Modules:
    state: Chip8State dataclass, memory map constants and font
    decode: Opcode splitting and resolution to operation keys
    registry: Handlers for the instruction set
    cpu: Main Chip8 orchestrator (cycle, timers, pins, trace)
    display: Text and image rendering of the output pins for hosts
    errors: Typed machine errors
"""

__version__ = "0.1.0"

from .state import Chip8State
from .decode import DecodeResult, Opcode, OpcodeDecoder, program_from_words
from .registry import InstructionRegistry
from .cpu import Chip8, ExecutionTraceEntry
from .errors import (
    Chip8Error,
    InvalidCharacterIndex,
    ProgramCounterOutOfRange,
    ProgramTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)

__all__ = [
    "Chip8",
    "Chip8State",
    "ExecutionTraceEntry",
    "DecodeResult",
    "Opcode",
    "OpcodeDecoder",
    "InstructionRegistry",
    "program_from_words",
    "Chip8Error",
    "ProgramTooLarge",
    "UnknownOpcode",
    "StackOverflow",
    "StackUnderflow",
    "InvalidCharacterIndex",
    "ProgramCounterOutOfRange",
]
