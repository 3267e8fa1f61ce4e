"""Chip8: Fetch-decode-execute orchestrator for the CHIP-8 machine.

This module implements the execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> TIMERS

The host calls cycle() at its own cadence. Timers are driven purely by the
cycle count, so real-time 60Hz behaviour depends on the host calling cycle()
at a steady rate.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from .decode import DecodeResult, Opcode, OpcodeDecoder
from .errors import ProgramCounterOutOfRange, UnknownOpcode
from .registry import InstructionRegistry, get_registry
from .state import Chip8State, INPUT_PIN_COUNT, MEMORY_SIZE, create_initial_state


logger = logging.getLogger(__name__)

INVALID_POLICIES = ("raise", "skip")


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        pc: Address the instruction was fetched from
        opcode: Fetched opcode
        decode_result: Result from the decoder
        pre_state: State snapshot before execution
        post_state: State snapshot after execution and timer update
        error: Error message if the instruction was skipped as invalid
    """
    cycle: int
    pc: int
    opcode: Opcode
    decode_result: DecodeResult
    pre_state: dict
    post_state: dict
    error: Optional[str] = None

    @property
    def instruction(self) -> str:
        return self.decode_result.raw_instruction


class Chip8:
    """CHIP-8 virtual machine.

    Attributes:
        decoder: OpcodeDecoder resolving opcodes to operation keys
        registry: InstructionRegistry executing operation keys
        state: Current machine state
        timer_resolution: Cycles per delay/sound timer decrement
        on_invalid: "raise" to raise UnknownOpcode, "skip" to step over it
        trace_enabled: Whether cycle() records ExecutionTraceEntry objects
        trace: Recorded trace entries (most recent max_trace kept)
        errors: Messages for every invalid instruction skipped so far
    """

    DEFAULT_TIMER_RESOLUTION = 10
    DEFAULT_MAX_TRACE = 10000

    def __init__(
        self,
        timer_resolution: int = DEFAULT_TIMER_RESOLUTION,
        on_invalid: str = "raise",
        trace: bool = False,
        rng: Optional[random.Random] = None,
        max_trace: int = DEFAULT_MAX_TRACE
    ):
        """Initialize the machine with font loaded and PC at 0x200.

        Args:
            timer_resolution: Cycles between timer decrements
            on_invalid: Policy for undecodable instructions ("raise" or "skip")
            trace: Record a trace entry for every cycle
            rng: Random source for RND (shared unseeded source if None)
            max_trace: Maximum number of trace entries kept
        """
        if timer_resolution < 1:
            raise ValueError("timer_resolution must be at least 1")
        if on_invalid not in INVALID_POLICIES:
            raise ValueError(f"on_invalid must be one of {INVALID_POLICIES}, got {on_invalid!r}")

        self.decoder = OpcodeDecoder()
        self.registry = get_registry() if rng is None else InstructionRegistry(rng=rng)
        self.state: Chip8State = create_initial_state()
        self.timer_resolution = timer_resolution
        self.on_invalid = on_invalid
        self.trace_enabled = trace
        self.max_trace = max_trace
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=max_trace)
        self.errors: List[str] = []

    def load_program(self, program: bytes) -> None:
        """Copy a program image into memory at 0x200.

        Args:
            program: Raw CHIP-8 machine code

        Raises:
            ProgramTooLarge: If the program exceeds 3584 bytes; memory is
                left untouched
        """
        size = self.state.load_program(program)
        logger.debug("Loaded %d byte program at 0x200", size)

    def fetch(self) -> Opcode:
        """Read the two instruction bytes at PC.

        Raises:
            ProgramCounterOutOfRange: If PC > 4094
        """
        pc = self.state.pc
        if pc > MEMORY_SIZE - 2:
            raise ProgramCounterOutOfRange(pc)
        return Opcode.from_bytes(self.state.memory[pc], self.state.memory[pc + 1])

    def cycle(self) -> Optional[ExecutionTraceEntry]:
        """Execute one fetch-decode-execute step and update the timers.

        Returns:
            ExecutionTraceEntry when tracing is enabled, else None

        Raises:
            UnknownOpcode: On an undecodable instruction with policy "raise"
            StackOverflow, StackUnderflow: On CALL/RET stack misuse
            InvalidCharacterIndex: On LD F, Vx with Vx > 0xF
            ProgramCounterOutOfRange: If PC leaves memory
        """
        state = self.state
        pc = state.pc
        opcode = self.fetch()
        decode_result = self.decoder.decode(opcode)
        pre_state = state.snapshot() if self.trace_enabled else {}

        error = None
        if decode_result.valid:
            logger.debug("0x%03X: %s %s", pc, opcode, decode_result.raw_instruction)
            self.registry.execute(state, decode_result.key, decode_result.params)
            if decode_result.key == "OP_LD_VX_K" and state.pc == pc:
                logger.debug("0x%03X: waiting for key press", pc)
        elif self.on_invalid == "raise":
            raise UnknownOpcode(opcode.word, pc, decode_result.error or "")
        else:
            error = f"Skipped {opcode}: {decode_result.error}"
            state.increment_pc()
            logger.warning("0x%03X: %s", pc, error)
            self.errors.append(error)

        self._tick_timers()
        state.cycle_count += 1

        if not self.trace_enabled:
            return None

        entry = ExecutionTraceEntry(
            cycle=state.cycle_count - 1,
            pc=pc,
            opcode=opcode,
            decode_result=decode_result,
            pre_state=pre_state,
            post_state=state.snapshot(),
            error=error
        )
        self.trace.append(entry)
        return entry

    def _tick_timers(self) -> None:
        state = self.state
        state.cycles_since_timer_dec += 1
        if state.cycles_since_timer_dec < self.timer_resolution:
            return

        if state.delay_timer > 0:
            state.delay_timer -= 1
        if state.sound_timer > 0:
            state.sound_timer -= 1
        state.cycles_since_timer_dec = 0
        logger.debug("Timer tick: DT=%d ST=%d", state.delay_timer, state.sound_timer)

    def run(self, cycles: int) -> List[ExecutionTraceEntry]:
        """Execute a fixed number of cycles.

        The machine has no halt state, so the host always bounds the run.

        Args:
            cycles: Number of cycles to execute

        Returns:
            Execution trace (empty unless tracing is enabled)
        """
        for _ in range(cycles):
            self.cycle()
        return list(self.trace)

    # =========================================================================
    # Pins
    # =========================================================================

    def read_output_pins(self) -> Tuple[bool, ...]:
        """Snapshot of the 64x32 framebuffer, row-major."""
        return tuple(self.state.output_pins)

    def set_input_pin(self, pin: int, value: bool) -> None:
        """Set or release input pin 0x0-0xF.

        Raises:
            ValueError: If pin is outside 0x0-0xF
        """
        if not 0 <= pin < INPUT_PIN_COUNT:
            raise ValueError(f"Invalid input pin: {pin}")
        self.state.input_pins[pin] = bool(value)

    def reset_input_pins(self) -> None:
        """Release all 16 input pins."""
        self.state.input_pins[:] = [False] * INPUT_PIN_COUNT

    def consume_draw_flag(self) -> bool:
        """Return whether the framebuffer changed and clear the flag."""
        draw = self.state.draw
        self.state.draw = False
        return draw

    def is_sound_active(self) -> bool:
        """The buzzer sounds while the sound timer is non-zero."""
        return self.state.sound_timer > 0

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_register(self, reg: int) -> int:
        return self.state.get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def format_trace(self) -> str:
        """Render the execution trace in human-readable form."""
        lines = []
        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            lines.append(f"[Cycle {entry.cycle}] 0x{entry.pc:03X} {entry.opcode} "
                         f"{entry.instruction:<18} {status}")

            pre_regs = entry.pre_state.get("registers", [])
            post_regs = entry.post_state.get("registers", [])
            changes = [
                f"V{i:X}: {before:02X} -> {after:02X}"
                for i, (before, after) in enumerate(zip(pre_regs, post_regs))
                if before != after
            ]
            if entry.pre_state.get("index") != entry.post_state.get("index"):
                changes.append(f"I: {entry.pre_state['index']:03X} -> {entry.post_state['index']:03X}")
            if changes:
                lines.append(f"    Changes: {', '.join(changes)}")
        return "\n".join(lines)

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        state = self.state
        return {
            "cycles": state.cycle_count,
            "pc": state.pc,
            "index": state.index,
            "sp": state.sp,
            "delay_timer": state.delay_timer,
            "sound_timer": state.sound_timer,
            "registers": self.dump_registers(),
            "pixels_on": sum(state.output_pins),
            "trace_length": len(self.trace),
            "errors": list(self.errors),
        }
