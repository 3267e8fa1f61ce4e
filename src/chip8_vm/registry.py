"""InstructionRegistry: Execution semantics of the CHIP-8 instruction set.

This module implements the registry pattern for the CHIP-8 instruction set:
each operation key emitted by the OpcodeDecoder maps to exactly one handler
that mutates the machine state in place.

Registry Keys:
    System:      OP_CLS, OP_RET
    Flow:        OP_JP, OP_CALL, OP_JP_V0
    Skips:       OP_SE_IMM, OP_SNE_IMM, OP_SE_REG, OP_SNE_REG, OP_SKP, OP_SKNP
    Loads:       OP_LD_IMM, OP_LD_REG, OP_LD_I
    Arithmetic:  OP_ADD_IMM, OP_ADD_REG, OP_SUB, OP_SUBN, OP_SHR, OP_SHL
    Logic:       OP_OR, OP_AND, OP_XOR, OP_RND
    Display:     OP_DRW
    Timers/keys: OP_LD_VX_DT, OP_LD_VX_K, OP_LD_DT_VX, OP_LD_ST_VX
    Memory:      OP_ADD_I_VX, OP_LD_F_VX, OP_LD_B_VX, OP_LD_MEM_VX, OP_LD_VX_MEM
    Errors:      OP_INVALID

Each handler has the signature (Chip8State, params) -> None. Handlers that
can fail (stack misuse, font lookups, PC leaving memory) check before
touching the state.
"""

import random
from typing import Any, Callable, Dict, Optional

from .errors import (
    InvalidCharacterIndex,
    ProgramCounterOutOfRange,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from .state import (
    Chip8State,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    FONT_GLYPH_SIZE,
    FONT_OFFSET,
    MEMORY_SIZE,
    STACK_SIZE,
)


Handler = Callable[[Chip8State, Dict[str, Any]], None]

VF = 0xF

# Keys whose handlers write their result and then advance PC by 2
FALLTHROUGH_KEYS = frozenset([
    "OP_CLS",
    "OP_LD_IMM", "OP_LD_REG", "OP_LD_I",
    "OP_ADD_IMM", "OP_OR", "OP_AND", "OP_XOR", "OP_ADD_REG",
    "OP_SUB", "OP_SHR", "OP_SUBN", "OP_SHL", "OP_RND",
    "OP_DRW",
    "OP_LD_VX_DT", "OP_LD_DT_VX", "OP_LD_ST_VX",
    "OP_ADD_I_VX", "OP_LD_F_VX", "OP_LD_B_VX", "OP_LD_MEM_VX", "OP_LD_VX_MEM",
])


class InstructionRegistry:
    """Frozen registry of CHIP-8 instruction handlers.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        rng: Random source for the RND instruction
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """Initialize registry with all instruction handlers.

        Args:
            rng: Random source for RND; a fresh unseeded Random if omitted
        """
        self.rng = rng if rng is not None else random.Random()
        self._primitives: Dict[str, Handler] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        # System
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)

        # Control flow
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_IMM", self._op_se_imm)
        self.register("OP_SNE_IMM", self._op_sne_imm)
        self.register("OP_SE_REG", self._op_se_reg)
        self.register("OP_SNE_REG", self._op_sne_reg)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Loads
        self.register("OP_LD_IMM", self._op_ld_imm)
        self.register("OP_LD_REG", self._op_ld_reg)
        self.register("OP_LD_I", self._op_ld_i)

        # Arithmetic and logic
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Display
        self.register("OP_DRW", self._op_drw)

        # Timers and keys
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_VX_K", self._op_ld_vx_k)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)

        # Index register and memory
        self.register("OP_ADD_I_VX", self._op_add_i_vx)
        self.register("OP_LD_F_VX", self._op_ld_f_vx)
        self.register("OP_LD_B_VX", self._op_ld_b_vx)
        self.register("OP_LD_MEM_VX", self._op_ld_mem_vx)
        self.register("OP_LD_VX_MEM", self._op_ld_vx_mem)

        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Handler) -> None:
        """Register an instruction handler.

        Args:
            key: Operation key (e.g., "OP_ADD_REG")
            handler: Function that takes (state, params) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: Chip8State, key: str, params: Dict[str, Any]) -> None:
        """Execute a registered instruction against the state.

        Args:
            state: Machine state, mutated in place
            key: Operation key
            params: Operation parameters

        Raises:
            KeyError: If key not in registry
            ProgramCounterOutOfRange: If the instruction would advance PC
                past memory; the state is left untouched
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")
        if key in FALLTHROUGH_KEYS:
            state.next_pc()
        self._primitives[key](state, params)

    # =========================================================================
    # System Instructions
    # =========================================================================

    def _op_cls(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """CLS (00E0) - Clear the framebuffer."""
        if any(state.output_pins):
            state.output_pins[:] = [False] * len(state.output_pins)
            state.draw = True
        state.increment_pc()

    def _op_ret(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """RET (00EE) - Return from subroutine.

        Pops the return address pushed by CALL and continues two bytes
        past it.

        Raises:
            StackUnderflow: If the stack is empty
        """
        if state.sp == 0:
            raise StackUnderflow(state.pc)
        target = state.stack[state.sp - 1] + 2
        if target >= MEMORY_SIZE:
            raise ProgramCounterOutOfRange(target)
        state.sp -= 1
        state.set_pc(target)

    # =========================================================================
    # Control Flow
    # =========================================================================

    def _op_jp(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """JP addr (1NNN) - Jump to address."""
        state.set_pc(params["addr"])

    def _op_call(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """CALL addr (2NNN) - Push return address and jump.

        Raises:
            StackOverflow: If all 16 stack entries are in use
        """
        if state.sp >= STACK_SIZE:
            raise StackOverflow(state.pc)
        state.stack[state.sp] = state.next_pc()
        state.sp += 1
        state.set_pc(params["addr"])

    def _op_jp_v0(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """JP V0, addr (BNNN) - Jump to address plus V0, wrapping."""
        state.set_pc((params["addr"] + state.registers[0]) % MEMORY_SIZE)

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _op_se_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SE Vx, byte (3XNN) - Skip next instruction if Vx == NN."""
        self._skip_if(state, state.registers[params["x"]] == params["value"])

    def _op_sne_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SNE Vx, byte (4XNN) - Skip next instruction if Vx != NN."""
        self._skip_if(state, state.registers[params["x"]] != params["value"])

    def _op_se_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SE Vx, Vy (5XY0) - Skip next instruction if Vx == Vy."""
        regs = state.registers
        self._skip_if(state, regs[params["x"]] == regs[params["y"]])

    def _op_sne_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SNE Vx, Vy (9XY0) - Skip next instruction if Vx != Vy."""
        regs = state.registers
        self._skip_if(state, regs[params["x"]] != regs[params["y"]])

    def _op_skp(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SKP Vx (EX9E) - Skip next instruction if key Vx is pressed."""
        pin = state.registers[params["x"]] & 0xF
        self._skip_if(state, state.input_pins[pin])

    def _op_sknp(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SKNP Vx (EXA1) - Skip next instruction if key Vx is not pressed."""
        pin = state.registers[params["x"]] & 0xF
        self._skip_if(state, not state.input_pins[pin])

    # =========================================================================
    # Loads
    # =========================================================================

    def _op_ld_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD Vx, byte (6XNN)."""
        state.registers[params["x"]] = params["value"]
        state.increment_pc()

    def _op_ld_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD Vx, Vy (8XY0)."""
        state.registers[params["x"]] = state.registers[params["y"]]
        state.increment_pc()

    def _op_ld_i(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD I, addr (ANNN)."""
        state.index = params["addr"]
        state.increment_pc()

    # =========================================================================
    # Arithmetic and Logic
    # =========================================================================

    def _op_add_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """ADD Vx, byte (7XNN) - Wrapping add, VF is not affected."""
        x = params["x"]
        state.registers[x] = (state.registers[x] + params["value"]) & 0xFF
        state.increment_pc()

    def _op_or(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """OR Vx, Vy (8XY1)."""
        self._alu(state, params, lambda vx, vy: (vx | vy, None))

    def _op_and(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """AND Vx, Vy (8XY2)."""
        self._alu(state, params, lambda vx, vy: (vx & vy, None))

    def _op_xor(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """XOR Vx, Vy (8XY3)."""
        self._alu(state, params, lambda vx, vy: (vx ^ vy, None))

    def _op_add_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """ADD Vx, Vy (8XY4) - VF = 1 on carry."""
        self._alu(state, params, lambda vx, vy: (vx + vy, vx + vy > 0xFF))

    def _op_sub(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SUB Vx, Vy (8XY5) - VF = 1 when there is no borrow (Vx >= Vy)."""
        self._alu(state, params, lambda vx, vy: (vx - vy, vx >= vy))

    def _op_shr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SHR Vx (8XY6) - VF = least significant bit before the shift."""
        self._alu(state, params, lambda vx, vy: (vx >> 1, bool(vx & 0x01)))

    def _op_subn(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SUBN Vx, Vy (8XY7) - Vx = Vy - Vx, VF = 1 when Vy >= Vx."""
        self._alu(state, params, lambda vx, vy: (vy - vx, vy >= vx))

    def _op_shl(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """SHL Vx (8XYE) - VF = most significant bit before the shift."""
        self._alu(state, params, lambda vx, vy: (vx << 1, bool(vx & 0x80)))

    def _op_rnd(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """RND Vx, byte (CXNN) - Vx = random byte AND NN."""
        state.registers[params["x"]] = self.rng.getrandbits(8) & params["value"]
        state.increment_pc()

    # =========================================================================
    # Display
    # =========================================================================

    def _op_drw(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """DRW Vx, Vy, n (DXYN) - XOR an 8xN sprite onto the framebuffer.

        Sprite rows are read from memory[I..I+n], wrapping mod 4096.
        Coordinates wrap at the screen edges. VF is set to 1 if any set
        pixel was cleared, and the draw flag is raised if any pixel changed.
        """
        origin_x = state.registers[params["x"]]
        origin_y = state.registers[params["y"]]
        pins = state.output_pins

        collision = False
        changed = False
        for row in range(params["n"]):
            sprite_byte = state.read_memory(state.index + row)
            y = (origin_y + row) % DISPLAY_HEIGHT
            for col in range(8):
                if not sprite_byte & (0x80 >> col):
                    continue
                pos = (origin_x + col) % DISPLAY_WIDTH + y * DISPLAY_WIDTH
                if pins[pos]:
                    collision = True
                pins[pos] = not pins[pos]
                changed = True

        state.registers[VF] = 1 if collision else 0
        if changed:
            state.draw = True
        state.increment_pc()

    # =========================================================================
    # Timers and Keys
    # =========================================================================

    def _op_ld_vx_dt(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD Vx, DT (FX07)."""
        state.registers[params["x"]] = state.delay_timer
        state.increment_pc()

    def _op_ld_vx_k(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD Vx, K (FX0A) - Wait for a key press.

        Stores the lowest pressed pin in Vx. While no pin is set the PC
        stays put, so the next cycle fetches this instruction again.
        """
        for pin, pressed in enumerate(state.input_pins):
            if pressed:
                state.pc, state.registers[params["x"]] = state.next_pc(), pin
                return

    def _op_ld_dt_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD DT, Vx (FX15)."""
        state.delay_timer = state.registers[params["x"]]
        state.increment_pc()

    def _op_ld_st_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD ST, Vx (FX18)."""
        state.sound_timer = state.registers[params["x"]]
        state.increment_pc()

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_add_i_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """ADD I, Vx (FX1E) - 16-bit wrapping add, VF is not affected."""
        state.index = (state.index + state.registers[params["x"]]) & 0xFFFF
        state.increment_pc()

    def _op_ld_f_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD F, Vx (FX29) - Point I at the font sprite for digit Vx.

        Raises:
            InvalidCharacterIndex: If Vx > 0xF
        """
        character = state.registers[params["x"]]
        if character > 0xF:
            raise InvalidCharacterIndex(character)
        state.index = FONT_OFFSET + character * FONT_GLYPH_SIZE
        state.increment_pc()

    def _op_ld_b_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD B, Vx (FX33) - Store BCD of Vx at I, I+1, I+2."""
        value = state.registers[params["x"]]
        state.write_memory(state.index, value // 100)
        state.write_memory(state.index + 1, (value // 10) % 10)
        state.write_memory(state.index + 2, value % 10)
        state.increment_pc()

    def _op_ld_mem_vx(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD [I], Vx (FX55) - Store V0..Vx at I, I stays unchanged."""
        for reg in range(params["x"] + 1):
            state.write_memory(state.index + reg, state.registers[reg])
        state.increment_pc()

    def _op_ld_vx_mem(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """LD Vx, [I] (FX65) - Load V0..Vx from I, I stays unchanged."""
        for reg in range(params["x"] + 1):
            state.registers[reg] = state.read_memory(state.index + reg)
        state.increment_pc()

    # =========================================================================
    # Errors
    # =========================================================================

    def _op_invalid(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """Reject an instruction the decoder could not resolve.

        Raises:
            UnknownOpcode: Always
        """
        raise UnknownOpcode(params.get("raw", 0), state.pc, params.get("error", ""))

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _skip_if(self, state: Chip8State, condition: bool) -> None:
        state.increment_pc(4 if condition else 2)

    def _alu(self, state: Chip8State, params: Dict[str, Any], f) -> None:
        """Apply f(Vx, Vy) -> (result, flag) to Vx.

        The result is wrapped to 8 bits. When flag is not None it is written
        to VF after the result, so VF holds the flag even when x is 0xF.
        """
        x = params["x"]
        result, flag = f(state.registers[x], state.registers[params["y"]])
        state.registers[x] = result & 0xFF
        if flag is not None:
            state.registers[VF] = 1 if flag else 0
        state.increment_pc()


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the shared registry instance with an unseeded random source."""
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
