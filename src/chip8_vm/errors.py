"""Typed errors raised by the CHIP-8 core.

Every failure the machine can hit while loading or executing a program is
reported as a subclass of Chip8Error, so a host can decide whether to halt,
skip the offending instruction, or surface diagnostics.
"""


class Chip8Error(Exception):
    """Base class for all CHIP-8 machine errors."""


class ProgramTooLarge(Chip8Error):
    """Program image does not fit between 0x200 and the end of memory."""

    def __init__(self, size: int, limit: int = 3584):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Program is too large. Maximum program size is {limit} bytes. "
            f"Got {size} bytes."
        )


class UnknownOpcode(Chip8Error):
    """Fetched word does not encode any supported instruction."""

    def __init__(self, word: int, pc: int, reason: str = ""):
        self.word = word
        self.pc = pc
        self.reason = reason
        message = f"Unknown opcode 0x{word:04X} at 0x{pc:03X}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StackOverflow(Chip8Error):
    """CALL executed with all 16 stack entries in use."""

    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Stack overflow at 0x{pc:03X}")


class StackUnderflow(Chip8Error):
    """RET executed with an empty stack."""

    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Stack underflow at 0x{pc:03X}")


class InvalidCharacterIndex(Chip8Error):
    """LD F, Vx with Vx outside the built-in font (0x0 - 0xF)."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"No font sprite for character 0x{value:02X}")


class ProgramCounterOutOfRange(Chip8Error):
    """Program counter left addressable memory."""

    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Program counter out of range: 0x{pc:04X}")
