"""Opcode decoding for the CHIP-8 core.

Decoding happens in two steps:

    Raw bytes -> Opcode (class nibble + 3 payload nibbles) -> DecodeResult

Splitting a word into an Opcode is pure and never fails. Resolving the
Opcode against the instruction set produces an operation key from a closed
set (e.g. "OP_ADD_REG") with its parameters, which the InstructionRegistry
executes. Encodings outside the instruction set resolve to "OP_INVALID"
with an error message instead of raising, so the caller picks the policy.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Set, Tuple


@dataclass(frozen=True)
class Opcode:
    """One 16-bit CHIP-8 instruction.

    Attributes:
        instruction_class: Most significant nibble (0x0-0xF)
        payload: Remaining three nibbles, most significant first
    """
    instruction_class: int
    payload: Tuple[int, int, int]

    @classmethod
    def from_bytes(cls, high: int, low: int) -> "Opcode":
        """Split two big-endian instruction bytes into class and payload."""
        return cls(
            instruction_class=(high >> 4) & 0xF,
            payload=(high & 0xF, (low >> 4) & 0xF, low & 0xF),
        )

    @classmethod
    def from_word(cls, word: int) -> "Opcode":
        return cls.from_bytes((word >> 8) & 0xFF, word & 0xFF)

    @property
    def word(self) -> int:
        n1, n2, n3 = self.payload
        return (self.instruction_class << 12) | (n1 << 8) | (n2 << 4) | n3

    @property
    def address(self) -> int:
        """Payload as a 12-bit address (NNN)."""
        n1, n2, n3 = self.payload
        return (n1 << 8) | (n2 << 4) | n3

    @property
    def reg_and_value(self) -> Tuple[int, int]:
        """Payload as a register index and an 8-bit immediate (XNN)."""
        n1, n2, n3 = self.payload
        return n1, (n2 << 4) | n3

    @property
    def operands(self) -> Tuple[int, int, int]:
        """Payload as three separate nibbles (XYN)."""
        return self.payload

    def __str__(self) -> str:
        return f"0x{self.word:04X}"


@dataclass
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key (e.g., "OP_ADD_REG")
        params: Operation parameters dictionary
        valid: Whether decode succeeded
        error: Error message if decode failed
        raw_instruction: Mnemonic of the decoded instruction
    """
    key: str
    params: Dict = field(default_factory=dict)
    valid: bool = True
    error: Optional[str] = None
    raw_instruction: str = ""


class OpcodeDecoder:
    """Resolves opcodes to operation keys understood by the registry.

    Attributes:
        VALID_KEYS: Every operation key the decoder can emit
    """

    VALID_KEYS: Set[str] = {
        "OP_CLS", "OP_RET", "OP_JP", "OP_CALL",
        "OP_SE_IMM", "OP_SNE_IMM", "OP_SE_REG",
        "OP_LD_IMM", "OP_ADD_IMM",
        "OP_LD_REG", "OP_OR", "OP_AND", "OP_XOR",
        "OP_ADD_REG", "OP_SUB", "OP_SHR", "OP_SUBN", "OP_SHL",
        "OP_SNE_REG", "OP_LD_I", "OP_JP_V0", "OP_RND", "OP_DRW",
        "OP_SKP", "OP_SKNP",
        "OP_LD_VX_DT", "OP_LD_VX_K", "OP_LD_DT_VX", "OP_LD_ST_VX",
        "OP_ADD_I_VX", "OP_LD_F_VX", "OP_LD_B_VX",
        "OP_LD_MEM_VX", "OP_LD_VX_MEM",
        "OP_INVALID",
    }

    # Class 0x8 register operations, selected by the low nibble
    _ALU_OPS: Dict[int, Tuple[str, str]] = {
        0x0: ("OP_LD_REG", "LD"),
        0x1: ("OP_OR", "OR"),
        0x2: ("OP_AND", "AND"),
        0x3: ("OP_XOR", "XOR"),
        0x4: ("OP_ADD_REG", "ADD"),
        0x5: ("OP_SUB", "SUB"),
        0x6: ("OP_SHR", "SHR"),
        0x7: ("OP_SUBN", "SUBN"),
        0xE: ("OP_SHL", "SHL"),
    }

    # Class 0xF operations, selected by the low byte
    _MISC_OPS: Dict[int, Tuple[str, str]] = {
        0x07: ("OP_LD_VX_DT", "LD V{x:X}, DT"),
        0x0A: ("OP_LD_VX_K", "LD V{x:X}, K"),
        0x15: ("OP_LD_DT_VX", "LD DT, V{x:X}"),
        0x18: ("OP_LD_ST_VX", "LD ST, V{x:X}"),
        0x1E: ("OP_ADD_I_VX", "ADD I, V{x:X}"),
        0x29: ("OP_LD_F_VX", "LD F, V{x:X}"),
        0x33: ("OP_LD_B_VX", "LD B, V{x:X}"),
        0x55: ("OP_LD_MEM_VX", "LD [I], V{x:X}"),
        0x65: ("OP_LD_VX_MEM", "LD V{x:X}, [I]"),
    }

    def __init__(self):
        self._class_decoders: Dict[int, Callable[[Opcode], DecodeResult]] = {
            0x0: self._decode_sys,
            0x1: lambda op: self._with_address(op, "OP_JP", "JP"),
            0x2: lambda op: self._with_address(op, "OP_CALL", "CALL"),
            0x3: lambda op: self._with_reg_and_value(op, "OP_SE_IMM", "SE"),
            0x4: lambda op: self._with_reg_and_value(op, "OP_SNE_IMM", "SNE"),
            0x5: lambda op: self._with_reg_pair(op, "OP_SE_REG", "SE"),
            0x6: lambda op: self._with_reg_and_value(op, "OP_LD_IMM", "LD"),
            0x7: lambda op: self._with_reg_and_value(op, "OP_ADD_IMM", "ADD"),
            0x8: self._decode_alu,
            0x9: lambda op: self._with_reg_pair(op, "OP_SNE_REG", "SNE"),
            0xA: lambda op: self._with_address(op, "OP_LD_I", "LD I,"),
            0xB: lambda op: self._with_address(op, "OP_JP_V0", "JP V0,"),
            0xC: lambda op: self._with_reg_and_value(op, "OP_RND", "RND"),
            0xD: self._decode_drw,
            0xE: self._decode_keys,
            0xF: self._decode_misc,
        }

    def decode(self, opcode: Opcode) -> DecodeResult:
        """Decode an opcode to operation key and parameters.

        Args:
            opcode: Opcode split from two instruction bytes

        Returns:
            DecodeResult with operation key and parameters; OP_INVALID
            with an error message for unsupported encodings
        """
        return self._class_decoders[opcode.instruction_class](opcode)

    def decode_word(self, word: int) -> DecodeResult:
        """Decode a 16-bit instruction word."""
        return self.decode(Opcode.from_word(word))

    # =========================================================================
    # Payload Shapes
    # =========================================================================

    def _with_address(self, opcode: Opcode, key: str, mnemonic: str) -> DecodeResult:
        addr = opcode.address
        return DecodeResult(key, {"addr": addr}, raw_instruction=f"{mnemonic} 0x{addr:03X}")

    def _with_reg_and_value(self, opcode: Opcode, key: str, mnemonic: str) -> DecodeResult:
        x, value = opcode.reg_and_value
        return DecodeResult(
            key,
            {"x": x, "value": value},
            raw_instruction=f"{mnemonic} V{x:X}, 0x{value:02X}"
        )

    def _with_reg_pair(self, opcode: Opcode, key: str, mnemonic: str) -> DecodeResult:
        x, y, modifier = opcode.operands
        if modifier != 0:
            return self._invalid(opcode, f"low nibble must be 0, got 0x{modifier:X}")
        return DecodeResult(key, {"x": x, "y": y}, raw_instruction=f"{mnemonic} V{x:X}, V{y:X}")

    # =========================================================================
    # Multi-Instruction Classes
    # =========================================================================

    def _decode_sys(self, opcode: Opcode) -> DecodeResult:
        if opcode.address == 0x0E0:
            return DecodeResult("OP_CLS", raw_instruction="CLS")
        if opcode.address == 0x0EE:
            return DecodeResult("OP_RET", raw_instruction="RET")
        # 0NNN machine-code routines are not supported
        return self._invalid(opcode, "machine code routines (SYS) are not supported")

    def _decode_alu(self, opcode: Opcode) -> DecodeResult:
        x, y, op = opcode.operands
        if op not in self._ALU_OPS:
            return self._invalid(opcode, f"unknown register operation 0x{op:X}")
        key, mnemonic = self._ALU_OPS[op]
        return DecodeResult(key, {"x": x, "y": y}, raw_instruction=f"{mnemonic} V{x:X}, V{y:X}")

    def _decode_drw(self, opcode: Opcode) -> DecodeResult:
        x, y, n = opcode.operands
        return DecodeResult(
            "OP_DRW",
            {"x": x, "y": y, "n": n},
            raw_instruction=f"DRW V{x:X}, V{y:X}, {n}"
        )

    def _decode_keys(self, opcode: Opcode) -> DecodeResult:
        x, selector = opcode.reg_and_value
        if selector == 0x9E:
            return DecodeResult("OP_SKP", {"x": x}, raw_instruction=f"SKP V{x:X}")
        if selector == 0xA1:
            return DecodeResult("OP_SKNP", {"x": x}, raw_instruction=f"SKNP V{x:X}")
        return self._invalid(opcode, f"unknown key operation 0x{selector:02X}")

    def _decode_misc(self, opcode: Opcode) -> DecodeResult:
        x, selector = opcode.reg_and_value
        if selector not in self._MISC_OPS:
            return self._invalid(opcode, f"unknown 0xF operation 0x{selector:02X}")
        key, template = self._MISC_OPS[selector]
        return DecodeResult(key, {"x": x}, raw_instruction=template.format(x=x))

    def _invalid(self, opcode: Opcode, error: str) -> DecodeResult:
        return DecodeResult(
            "OP_INVALID",
            {"raw": opcode.word},
            False,
            error=error,
            raw_instruction=f"??? {opcode}"
        )


def program_from_words(words: Iterable[int]) -> bytes:
    """Pack 16-bit instruction words into a big-endian program image.

    Args:
        words: Instruction words, e.g. [0x6005, 0x1200]

    Returns:
        Program bytes ready for Chip8.load_program

    Raises:
        ValueError: If a word does not fit in 16 bits
    """
    program = bytearray()
    for word in words:
        if not 0 <= word <= 0xFFFF:
            raise ValueError(f"Instruction word out of range: {word:#x}")
        program += bytes((word >> 8, word & 0xFF))
    return bytes(program)
