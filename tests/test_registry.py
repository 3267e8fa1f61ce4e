"""Tests for instruction semantics executed through the registry."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8, program_from_words
from chip8_vm.errors import (
    InvalidCharacterIndex,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from chip8_vm.registry import InstructionRegistry, get_registry
from chip8_vm.state import Chip8State, FONT_OFFSET


def single_instruction(word: int) -> Chip8:
    """Machine with one instruction at 0x200."""
    chip = Chip8(rng=random.Random(1234))
    chip.load_program(program_from_words([word]))
    return chip


class TestRegistryStructure:
    """Test registry freezing and lookup."""

    def test_registry_is_frozen(self):
        registry = InstructionRegistry()
        assert registry.is_frozen() is True
        with pytest.raises(RuntimeError):
            registry.register("OP_NEW", lambda state, params: None)

    def test_has_34_instructions(self):
        keys = InstructionRegistry().get_valid_keys()
        assert len(keys - {"OP_INVALID"}) == 34

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            InstructionRegistry().execute(Chip8State(), "OP_NOPE", {})

    def test_invalid_key_raises(self):
        with pytest.raises(UnknownOpcode):
            InstructionRegistry().execute(Chip8State(), "OP_INVALID", {"raw": 0xFFFF})

    def test_singleton(self):
        assert get_registry() is get_registry()


class TestSystemInstructions:
    """CLS and RET."""

    def test_cls_clears_screen(self):
        chip = single_instruction(0x00E0)
        chip.state.output_pins[10] = True
        chip.cycle()
        assert not any(chip.read_output_pins())
        assert chip.state.draw is True
        assert chip.get_pc() == 0x202

    def test_cls_on_blank_screen_keeps_draw_flag_clear(self):
        chip = single_instruction(0x00E0)
        chip.cycle()
        assert chip.state.draw is False
        assert chip.get_pc() == 0x202

    def test_ret_pops_and_increments(self):
        chip = single_instruction(0x00EE)
        chip.state.stack[0] = 0x202
        chip.state.sp = 1
        chip.cycle()
        assert chip.state.sp == 0
        assert chip.get_pc() == 0x204

    def test_ret_underflow(self):
        chip = single_instruction(0x00EE)
        with pytest.raises(StackUnderflow):
            chip.cycle()
        assert chip.get_pc() == 0x200
        assert chip.state.sp == 0


class TestControlFlow:
    """JP, CALL and JP V0."""

    def test_jump(self):
        chip = single_instruction(0x1CAF)
        assert chip.get_pc() == 0x200
        chip.cycle()
        assert chip.get_pc() == 0xCAF

    def test_call_pushes_return_address(self):
        chip = single_instruction(0x2CAF)
        chip.cycle()
        assert chip.get_pc() == 0xCAF
        assert chip.state.sp == 1
        assert chip.state.stack[chip.state.sp - 1] == 0x202

    def test_call_overflow(self):
        chip = single_instruction(0x2CAF)
        chip.state.sp = 16
        with pytest.raises(StackOverflow):
            chip.cycle()
        assert chip.get_pc() == 0x200
        assert chip.state.sp == 16

    def test_jump_v0(self):
        chip = single_instruction(0xB300)
        chip.state.registers[0] = 0x10
        chip.cycle()
        assert chip.get_pc() == 0x310

    def test_jump_v0_wraps(self):
        chip = single_instruction(0xBFFF)
        chip.state.registers[0] = 0x03
        chip.cycle()
        assert chip.get_pc() == 0x002


class TestConditionalSkips:
    """SE, SNE, SKP and SKNP."""

    def test_skip_if_equal(self):
        chip = single_instruction(0x34AF)
        chip.state.registers[4] = 0xAF
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0x34BF)
        chip.state.registers[4] = 0xAF
        chip.cycle()
        assert chip.get_pc() == 0x202

    def test_skip_if_not_equal(self):
        chip = single_instruction(0x4401)
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0x4400)
        chip.cycle()
        assert chip.get_pc() == 0x202

    def test_skip_if_registers_equal(self):
        chip = single_instruction(0x5120)
        chip.state.registers[1] = 7
        chip.state.registers[2] = 7
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0x5120)
        chip.state.registers[1] = 7
        chip.cycle()
        assert chip.get_pc() == 0x202

    def test_skip_if_registers_differ(self):
        chip = single_instruction(0x9120)
        chip.state.registers[1] = 7
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0x9120)
        chip.cycle()
        assert chip.get_pc() == 0x202

    def test_skip_if_key_pressed(self):
        chip = single_instruction(0xE39E)
        chip.state.registers[3] = 0xA
        chip.set_input_pin(0xA, True)
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0xE39E)
        chip.state.registers[3] = 0xA
        chip.cycle()
        assert chip.get_pc() == 0x202

    def test_skip_if_key_not_pressed(self):
        chip = single_instruction(0xE3A1)
        chip.state.registers[3] = 0x2
        chip.cycle()
        assert chip.get_pc() == 0x204

        chip = single_instruction(0xE3A1)
        chip.state.registers[3] = 0x2
        chip.set_input_pin(0x2, True)
        chip.cycle()
        assert chip.get_pc() == 0x202


class TestLoads:
    """LD immediate, register and index."""

    def test_load_immediate(self):
        chip = single_instruction(0x6A42)
        chip.cycle()
        assert chip.get_register(0xA) == 0x42
        assert chip.get_pc() == 0x202

    def test_load_register(self):
        chip = single_instruction(0x8120)
        chip.state.registers[2] = 0x99
        chip.cycle()
        assert chip.get_register(1) == 0x99
        assert chip.get_register(2) == 0x99

    def test_load_index(self):
        chip = single_instruction(0xA123)
        chip.cycle()
        assert chip.state.index == 0x123
        assert chip.get_pc() == 0x202


class TestArithmetic:
    """ADD, SUB, SUBN, SHR and SHL with their VF conventions."""

    def test_add_immediate_wraps_without_flag(self):
        chip = single_instruction(0x7302)
        chip.state.registers[3] = 0xFF
        chip.state.registers[0xF] = 0x55
        chip.cycle()
        assert chip.get_register(3) == 0x01
        assert chip.get_register(0xF) == 0x55

    @pytest.mark.parametrize("a", range(0, 256, 17))
    @pytest.mark.parametrize("b", range(0, 256, 15))
    def test_add_registers(self, a, b):
        chip = single_instruction(0x8124)
        chip.state.registers[1] = a
        chip.state.registers[2] = b
        chip.cycle()
        assert chip.get_register(1) == (a + b) % 256
        assert chip.get_register(0xF) == (1 if a + b > 255 else 0)

    def test_sub_no_borrow(self):
        chip = single_instruction(0x8125)
        chip.state.registers[1] = 10
        chip.state.registers[2] = 3
        chip.cycle()
        assert chip.get_register(1) == 7
        assert chip.get_register(0xF) == 1

    def test_sub_equal_is_no_borrow(self):
        chip = single_instruction(0x8125)
        chip.state.registers[1] = 5
        chip.state.registers[2] = 5
        chip.cycle()
        assert chip.get_register(1) == 0
        assert chip.get_register(0xF) == 1

    def test_sub_borrow(self):
        chip = single_instruction(0x8125)
        chip.state.registers[1] = 3
        chip.state.registers[2] = 10
        chip.cycle()
        assert chip.get_register(1) == 249
        assert chip.get_register(0xF) == 0

    def test_subn(self):
        chip = single_instruction(0x8127)
        chip.state.registers[1] = 3
        chip.state.registers[2] = 10
        chip.cycle()
        assert chip.get_register(1) == 7
        assert chip.get_register(0xF) == 1

    def test_subn_borrow(self):
        chip = single_instruction(0x8127)
        chip.state.registers[1] = 10
        chip.state.registers[2] = 3
        chip.cycle()
        assert chip.get_register(1) == 249
        assert chip.get_register(0xF) == 0

    def test_shr(self):
        chip = single_instruction(0x8106)
        chip.state.registers[1] = 0b00000101
        chip.cycle()
        assert chip.get_register(1) == 0b00000010
        assert chip.get_register(0xF) == 1

        chip = single_instruction(0x8106)
        chip.state.registers[1] = 0b00000100
        chip.cycle()
        assert chip.get_register(1) == 0b00000010
        assert chip.get_register(0xF) == 0

    def test_shl(self):
        chip = single_instruction(0x810E)
        chip.state.registers[1] = 0b10000001
        chip.cycle()
        assert chip.get_register(1) == 0b00000010
        assert chip.get_register(0xF) == 1

        chip = single_instruction(0x810E)
        chip.state.registers[1] = 0b01000001
        chip.cycle()
        assert chip.get_register(1) == 0b10000010
        assert chip.get_register(0xF) == 0

    def test_flag_overrides_result_in_vf(self):
        """When Vx is VF the flag wins over the arithmetic result."""
        chip = single_instruction(0x8F14)
        chip.state.registers[0xF] = 0xFF
        chip.state.registers[1] = 0x02
        chip.cycle()
        assert chip.get_register(0xF) == 1


class TestLogic:
    """OR, AND, XOR and RND."""

    def test_or(self):
        chip = single_instruction(0x8121)
        chip.state.registers[1] = 0b1100
        chip.state.registers[2] = 0b1010
        chip.cycle()
        assert chip.get_register(1) == 0b1110

    def test_and(self):
        chip = single_instruction(0x8122)
        chip.state.registers[1] = 0b1100
        chip.state.registers[2] = 0b1010
        chip.cycle()
        assert chip.get_register(1) == 0b1000

    def test_xor(self):
        chip = single_instruction(0x8123)
        chip.state.registers[1] = 0b1100
        chip.state.registers[2] = 0b1010
        chip.cycle()
        assert chip.get_register(1) == 0b0110

    def test_random_masked(self):
        for seed in range(20):
            chip = Chip8(rng=random.Random(seed))
            chip.load_program(program_from_words([0xC50F]))
            chip.cycle()
            assert chip.get_register(5) & 0xF0 == 0
            assert chip.get_pc() == 0x202

    def test_random_zero_mask(self):
        chip = single_instruction(0xC500)
        chip.state.registers[5] = 0xFF
        chip.cycle()
        assert chip.get_register(5) == 0

    def test_random_deterministic_with_seed(self):
        values = []
        for _ in range(2):
            chip = Chip8(rng=random.Random(42))
            chip.load_program(program_from_words([0xC5FF]))
            chip.cycle()
            values.append(chip.get_register(5))
        assert values[0] == values[1]


class TestDraw:
    """DRW sprite drawing, wraparound and collision."""

    def test_draw_font_zero(self):
        chip = single_instruction(0xD125)
        chip.state.index = FONT_OFFSET
        chip.cycle()
        pins = chip.read_output_pins()
        # First row of "0" is 0xF0
        assert pins[0:8] == (True, True, True, True, False, False, False, False)
        # Second row is 0x90
        assert pins[64:72] == (True, False, False, True, False, False, False, False)
        assert chip.get_register(0xF) == 0
        assert chip.state.draw is True
        assert chip.get_pc() == 0x202

    def test_draw_twice_restores_region(self):
        chip = Chip8()
        chip.load_program(program_from_words([0xD125, 0xD125]))
        chip.state.index = FONT_OFFSET
        chip.state.registers[1] = 10
        chip.state.registers[2] = 7
        before = chip.read_output_pins()

        chip.cycle()
        assert chip.get_register(0xF) == 0
        assert chip.read_output_pins() != before

        chip.cycle()
        assert chip.read_output_pins() == before
        assert chip.get_register(0xF) == 1

    def test_collision_sets_vf(self):
        chip = single_instruction(0xD121)
        chip.state.index = 0x300
        chip.state.memory[0x300] = 0x80
        chip.state.output_pins[0] = True
        chip.cycle()
        assert chip.get_register(0xF) == 1
        assert chip.read_output_pins()[0] is False
        assert chip.state.draw is True

    def test_zero_bits_do_not_touch_pixels(self):
        chip = single_instruction(0xD121)
        chip.state.index = 0x300
        chip.state.memory[0x300] = 0x00
        chip.state.output_pins[3] = True
        chip.state.registers[0xF] = 1
        chip.cycle()
        assert chip.read_output_pins()[3] is True
        assert chip.get_register(0xF) == 0
        assert chip.state.draw is False

    def test_wraps_horizontally(self):
        chip = single_instruction(0xD121)
        chip.state.index = 0x300
        chip.state.memory[0x300] = 0xFF
        chip.state.registers[1] = 60
        chip.cycle()
        pins = chip.read_output_pins()
        assert all(pins[60:64])
        assert all(pins[0:4])
        assert not pins[4]

    def test_wraps_vertically(self):
        chip = single_instruction(0xD122)
        chip.state.index = 0x300
        chip.state.memory[0x300] = 0x80
        chip.state.memory[0x301] = 0x80
        chip.state.registers[2] = 31
        chip.cycle()
        pins = chip.read_output_pins()
        assert pins[31 * 64] is True
        assert pins[0] is True

    def test_origin_wraps(self):
        """Coordinates beyond the screen start wrapped."""
        chip = single_instruction(0xD121)
        chip.state.index = 0x300
        chip.state.memory[0x300] = 0x80
        chip.state.registers[1] = 64 + 2
        chip.state.registers[2] = 32 + 1
        chip.cycle()
        assert chip.read_output_pins()[64 + 2] is True

    def test_sprite_rows_wrap_memory(self):
        chip = single_instruction(0xD122)
        chip.state.index = 0xFFF
        chip.state.memory[0xFFF] = 0x80
        chip.state.memory[0x000] = 0x40
        chip.cycle()
        pins = chip.read_output_pins()
        assert pins[0] is True
        assert pins[64 + 1] is True


class TestTimersAndKeys:
    """FX07, FX0A, FX15, FX18."""

    def test_load_delay_timer(self):
        chip = single_instruction(0xF307)
        chip.state.delay_timer = 42
        chip.cycle()
        assert chip.get_register(3) == 42

    def test_set_delay_timer(self):
        chip = single_instruction(0xF315)
        chip.state.registers[3] = 60
        chip.cycle()
        assert chip.state.delay_timer == 60

    def test_set_sound_timer(self):
        chip = single_instruction(0xF318)
        chip.state.registers[3] = 30
        chip.cycle()
        assert chip.state.sound_timer == 30
        assert chip.is_sound_active() is True

    def test_wait_for_key_without_key(self):
        chip = single_instruction(0xF30A)
        chip.cycle()
        assert chip.get_pc() == 0x200
        assert chip.get_register(3) == 0

    def test_wait_for_key_takes_lowest_pin(self):
        chip = single_instruction(0xF30A)
        chip.set_input_pin(0xC, True)
        chip.set_input_pin(0x5, True)
        chip.cycle()
        assert chip.get_register(3) == 0x5
        assert chip.get_pc() == 0x202


class TestIndexAndMemory:
    """FX1E, FX29, FX33, FX55, FX65."""

    def test_add_index(self):
        chip = single_instruction(0xF31E)
        chip.state.index = 0x100
        chip.state.registers[3] = 0x20
        chip.cycle()
        assert chip.state.index == 0x120

    def test_add_index_wraps_16_bits(self):
        chip = single_instruction(0xF31E)
        chip.state.index = 0xFFFF
        chip.state.registers[3] = 0x02
        chip.cycle()
        assert chip.state.index == 0x0001

    def test_font_address(self):
        chip = single_instruction(0xF329)
        chip.state.registers[3] = 0xA
        chip.cycle()
        assert chip.state.index == FONT_OFFSET + 0xA * 5

    def test_font_invalid_character(self):
        chip = single_instruction(0xF329)
        chip.state.registers[3] = 0x10
        chip.state.index = 0x123
        with pytest.raises(InvalidCharacterIndex) as exc_info:
            chip.cycle()
        assert exc_info.value.value == 0x10
        assert chip.state.index == 0x123
        assert chip.get_pc() == 0x200

    @pytest.mark.parametrize("value,digits", [
        (255, [2, 5, 5]),
        (0, [0, 0, 0]),
        (7, [0, 0, 7]),
        (42, [0, 4, 2]),
        (100, [1, 0, 0]),
    ])
    def test_bcd(self, value, digits):
        chip = single_instruction(0xF333)
        chip.state.registers[3] = value
        chip.state.index = 0x300
        chip.cycle()
        assert list(chip.state.memory[0x300:0x303]) == digits
        assert chip.state.index == 0x300

    def test_bcd_wraps_memory(self):
        chip = single_instruction(0xF333)
        chip.state.registers[3] = 123
        chip.state.index = 0xFFF
        chip.cycle()
        assert chip.state.memory[0xFFF] == 1
        assert chip.state.memory[0x000] == 2
        assert chip.state.memory[0x001] == 3

    def test_store_registers(self):
        chip = single_instruction(0xF255)
        chip.state.registers[0:4] = bytes([1, 2, 3, 4])
        chip.state.index = 0x300
        chip.cycle()
        assert list(chip.state.memory[0x300:0x304]) == [1, 2, 3, 0]
        assert chip.state.index == 0x300

    def test_load_registers(self):
        chip = single_instruction(0xF265)
        chip.state.memory[0x300:0x304] = bytes([9, 8, 7, 6])
        chip.state.index = 0x300
        chip.cycle()
        assert list(chip.state.registers[0:4]) == [9, 8, 7, 0]

    def test_store_wraps_memory(self):
        chip = single_instruction(0xF155)
        chip.state.registers[0] = 0xAA
        chip.state.registers[1] = 0xBB
        chip.state.index = 0xFFF
        chip.cycle()
        assert chip.state.memory[0xFFF] == 0xAA
        assert chip.state.memory[0x000] == 0xBB

    @pytest.mark.parametrize("x", range(16))
    def test_dump_then_load_round_trip(self, x):
        values = bytes(random.Random(x).getrandbits(8) for _ in range(16))

        dump = single_instruction(0xF055 | (x << 8))
        dump.state.registers[:] = values
        dump.state.index = 0x7F0
        dump.cycle()

        load = single_instruction(0xF065 | (x << 8))
        load.state.memory[0x7F0:0x800] = dump.state.memory[0x7F0:0x800]
        load.state.index = 0x7F0
        load.cycle()

        assert list(load.state.registers[:x + 1]) == list(values[:x + 1])
        assert list(load.state.registers[x + 1:]) == [0] * (15 - x)
