"""
CHIP-8 VM — Core Integration Tests

Every test runs hand-assembled CHIP-8 words through Interpreter.cycle()
and checks registers, memory, framebuffer and error behavior. No ROM
files or external tools required.
"""

import random

import pytest

from chip8_vm import (
    Interpreter, StopReason, RunConfig,
    RomTooLarge, RomNotFound, UnknownOpcode, StackOverflow, StackUnderflow,
    OutOfRange, ProtectedWrite, BadProgramCounter, MachineHalted,
)
from chip8_vm.mem.memory import FONTSET


def _rom(*words) -> bytes:
    return b"".join(w.to_bytes(2, "big") for w in words)


def _vm(*words, seed=None) -> Interpreter:
    vm = Interpreter(seed=seed)
    vm.load_rom(_rom(*words))
    return vm


def _step(vm, count):
    for _ in range(count):
        vm.cycle()


# ═══════════════════════════════════════════════
# Reset / loading
# ═══════════════════════════════════════════════

class TestReset:

    def test_power_on_state(self):
        vm = Interpreter()
        assert vm.regs.PC == 0x200
        assert vm.regs.sp == 0
        assert vm.regs.I == 0
        assert list(vm.regs.V) == [0] * 16
        assert vm.display.is_clear()
        assert vm.mem.read_block(0x050, 80) == FONTSET
        assert not vm.halted
        assert not vm.waiting_for_key

    def test_rom_bytes_land_at_200(self):
        data = bytes(range(1, 11))
        vm = Interpreter()
        vm.load_rom(data)
        assert vm.mem.read_block(0x200, len(data)) == data
        assert vm.mem.read(0x200 + len(data)) == 0

    def test_new_rom_replaces_session(self):
        """LD V1,#05; LD I,$050; DRW V0,V0,1; CALL $200, then load a new ROM"""
        vm = _vm(0x6105, 0xA050, 0xD001, 0x2200)
        _step(vm, 4)
        assert not vm.display.is_clear()
        vm.load_rom(_rom(0x1200))
        assert vm.regs.PC == 0x200
        assert vm.regs.V[1] == 0
        assert vm.regs.I == 0
        assert vm.regs.sp == 0
        assert vm.display.is_clear()
        assert vm.mem.read(0x202) == 0

    def test_max_size_rom_fits(self):
        vm = Interpreter()
        vm.load_rom(bytes(0xDFF) + b"\x42")
        assert vm.mem.read(0xFFF) == 0x42

    def test_rom_too_large(self):
        vm = Interpreter()
        with pytest.raises(RomTooLarge) as exc:
            vm.load_rom(bytes(0xE01))
        assert exc.value.size == 0xE01

    def test_load_rom_file(self, tmp_path):
        path = tmp_path / "loop.ch8"
        path.write_bytes(_rom(0x1200))
        vm = Interpreter()
        vm.load_rom_file(path)
        assert vm.mem.read16(0x200) == 0x1200

    def test_load_missing_file(self, tmp_path):
        vm = Interpreter()
        with pytest.raises(RomNotFound):
            vm.load_rom_file(tmp_path / "missing.ch8")


# ═══════════════════════════════════════════════
# Flow control
# ═══════════════════════════════════════════════

class TestFlow:

    def test_jump(self):
        """JP $208 → PC=$208"""
        vm = _vm(0x1208)
        vm.cycle()
        assert vm.regs.PC == 0x208

    def test_call_return_round_trip(self):
        """CALL $206 at $200, RET at $206 → PC=$202, depth 0"""
        vm = _vm(0x2206, 0x0000, 0x0000, 0x00EE)
        vm.cycle()
        assert vm.regs.PC == 0x206
        assert vm.regs.stack_view() == (0x202,)
        vm.cycle()
        assert vm.regs.PC == 0x202
        assert vm.regs.sp == 0

    def test_return_with_empty_stack(self):
        vm = _vm(0x00EE)
        with pytest.raises(StackUnderflow):
            vm.cycle()
        assert vm.regs.PC == 0x200
        assert vm.halted

    def test_seventeenth_call_overflows(self):
        """CALL $200 at $200, forever → 17th call fails, nothing else moves"""
        vm = _vm(0x2200)
        _step(vm, 16)
        assert vm.regs.sp == 16

        mem_before = vm.mem.read_block(0, 0x1000)
        with pytest.raises(StackOverflow):
            vm.cycle()
        assert vm.regs.sp == 16
        assert vm.regs.stack_view() == (0x202,) * 16
        assert vm.regs.PC == 0x200
        assert list(vm.regs.V) == [0] * 16
        assert vm.mem.read_block(0, 0x1000) == mem_before

    def test_jump_plus_v0(self):
        """LD V0,#04; JP V0,$300 → PC=$304"""
        vm = _vm(0x6004, 0xB300)
        _step(vm, 2)
        assert vm.regs.PC == 0x304

    def test_fetch_last_word_of_memory(self):
        vm = Interpreter()
        vm.load_rom(bytes(0xDFE) + _rom(0x1200))
        vm.regs.PC = 0xFFE
        vm.cycle()
        assert vm.regs.PC == 0x200

    def test_odd_jump_target_halts_on_fetch(self):
        """JP $201 → next fetch fails"""
        vm = _vm(0x1201)
        vm.cycle()
        with pytest.raises(BadProgramCounter) as exc:
            vm.cycle()
        assert exc.value.pc == 0x201

    def test_pc_past_end_of_memory(self):
        """LD V0,#FF; JP V0,$FFF → PC=$10FE"""
        vm = _vm(0x60FF, 0xBFFF)
        _step(vm, 2)
        with pytest.raises(BadProgramCounter):
            vm.cycle()


class TestFatalErrors:

    def test_unknown_opcode(self):
        vm = _vm(0x0123)
        with pytest.raises(UnknownOpcode) as exc:
            vm.cycle()
        assert exc.value.word == 0x0123
        assert exc.value.pc == 0x200
        assert vm.regs.PC == 0x200
        assert vm.fatal_error is exc.value

    def test_cycle_after_halt(self):
        vm = _vm(0x8008)
        with pytest.raises(UnknownOpcode):
            vm.cycle()
        with pytest.raises(MachineHalted) as exc:
            vm.cycle()
        assert isinstance(exc.value.cause, UnknownOpcode)

    def test_reset_clears_halt(self):
        vm = _vm(0xFFFF)
        with pytest.raises(UnknownOpcode):
            vm.cycle()
        vm.load_rom(_rom(0x1200))
        vm.cycle()
        assert not vm.halted


# ═══════════════════════════════════════════════
# Skips
# ═══════════════════════════════════════════════

class TestSkips:

    def test_se_immediate_taken(self):
        """LD V1,#42; SE V1,#42 → skip"""
        vm = _vm(0x6142, 0x3142)
        _step(vm, 2)
        assert vm.regs.PC == 0x206

    def test_se_immediate_not_taken(self):
        vm = _vm(0x6142, 0x3143)
        _step(vm, 2)
        assert vm.regs.PC == 0x204

    def test_sne_immediate(self):
        vm = _vm(0x6142, 0x4143)
        _step(vm, 2)
        assert vm.regs.PC == 0x206

    def test_se_register(self):
        """LD V1,#05; LD V2,#05; SE V1,V2 → skip"""
        vm = _vm(0x6105, 0x6205, 0x5120)
        _step(vm, 3)
        assert vm.regs.PC == 0x208

    def test_sne_register(self):
        vm = _vm(0x6105, 0x6206, 0x9120)
        _step(vm, 3)
        assert vm.regs.PC == 0x208

    def test_sne_register_not_taken(self):
        vm = _vm(0x6105, 0x6205, 0x9120)
        _step(vm, 3)
        assert vm.regs.PC == 0x206


# ═══════════════════════════════════════════════
# Registers / ALU
# ═══════════════════════════════════════════════

class TestArithmetic:

    def test_load_immediate(self):
        vm = _vm(0x6A42)
        vm.cycle()
        assert vm.regs.V[0xA] == 0x42
        assert vm.regs.PC == 0x202

    def test_add_immediate_wraps_without_flag(self):
        """LD VF,#07; LD V1,#FF; ADD V1,#02 → V1=$01, VF untouched"""
        vm = _vm(0x6F07, 0x61FF, 0x7102)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x01
        assert vm.regs.VF == 0x07

    def test_register_copy(self):
        vm = _vm(0x6133, 0x8210)
        _step(vm, 2)
        assert vm.regs.V[2] == 0x33

    def test_bitwise_ops_leave_flag(self):
        """V1=$0C, V2=$0A, VF=$05: OR / AND / XOR"""
        for word, expected in ((0x8121, 0x0E), (0x8122, 0x08), (0x8123, 0x06)):
            vm = _vm(0x610C, 0x620A, 0x6F05, word)
            _step(vm, 4)
            assert vm.regs.V[1] == expected
            assert vm.regs.VF == 0x05

    def test_add_with_carry(self):
        """LD V1,#FF; LD V2,#01; ADD V1,V2 → V1=$00, VF=1"""
        vm = _vm(0x61FF, 0x6201, 0x8124)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x00
        assert vm.regs.VF == 1

    def test_add_without_carry(self):
        vm = _vm(0x6110, 0x6220, 0x6F09, 0x8124)
        _step(vm, 4)
        assert vm.regs.V[1] == 0x30
        assert vm.regs.VF == 0

    def test_sub_with_borrow(self):
        """LD V1,#01; LD V2,#02; SUB V1,V2 → V1=$FF, VF=0"""
        vm = _vm(0x6101, 0x6202, 0x8125)
        _step(vm, 3)
        assert vm.regs.V[1] == 0xFF
        assert vm.regs.VF == 0

    def test_sub_without_borrow(self):
        vm = _vm(0x6105, 0x6203, 0x8125)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x02
        assert vm.regs.VF == 1

    def test_sub_equal_operands_is_no_borrow(self):
        vm = _vm(0x6105, 0x6205, 0x8125)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x00
        assert vm.regs.VF == 1

    def test_subn(self):
        """V1=3, V2=5: SUBN V1,V2 → V1=V2-V1=2, VF=1"""
        vm = _vm(0x6103, 0x6205, 0x8127)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x02
        assert vm.regs.VF == 1

    def test_subn_with_borrow(self):
        vm = _vm(0x6105, 0x6203, 0x8127)
        _step(vm, 3)
        assert vm.regs.V[1] == 0xFE
        assert vm.regs.VF == 0

    def test_shift_right(self):
        """LD V1,#05; SHR V1 → V1=$02, VF=1"""
        vm = _vm(0x6105, 0x8106)
        _step(vm, 2)
        assert vm.regs.V[1] == 0x02
        assert vm.regs.VF == 1

    def test_shift_right_ignores_vy(self):
        vm = _vm(0x6104, 0x62FF, 0x8126)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x02
        assert vm.regs.V[2] == 0xFF
        assert vm.regs.VF == 0

    def test_shift_left(self):
        """LD V1,#81; SHL V1 → V1=$02, VF=1"""
        vm = _vm(0x6181, 0x810E)
        _step(vm, 2)
        assert vm.regs.V[1] == 0x02
        assert vm.regs.VF == 1

    def test_shift_left_no_carry(self):
        vm = _vm(0x6141, 0x6F09, 0x810E)
        _step(vm, 3)
        assert vm.regs.V[1] == 0x82
        assert vm.regs.VF == 0

    def test_flag_wins_when_destination_is_vf(self):
        """LD VF,#FF; LD V1,#01; ADD VF,V1 → VF holds the carry"""
        vm = _vm(0x6FFF, 0x6101, 0x8F14)
        _step(vm, 3)
        assert vm.regs.VF == 1

    def test_sub_into_vf(self):
        vm = _vm(0x6F01, 0x6102, 0x8F15)
        _step(vm, 3)
        assert vm.regs.VF == 0

    def test_random_is_masked(self):
        vm = _vm(0xC10F, 0xC200, seed=1234)
        _step(vm, 2)
        assert vm.regs.V[1] == random.Random(1234).randrange(256) & 0x0F
        assert vm.regs.V[2] == 0

    def test_random_is_reproducible(self):
        a = _vm(0xC1FF, seed=7)
        b = _vm(0xC1FF, seed=7)
        a.cycle()
        b.cycle()
        assert a.regs.V[1] == b.regs.V[1]


# ═══════════════════════════════════════════════
# Index register / memory
# ═══════════════════════════════════════════════

class TestIndexMemory:

    def test_set_index(self):
        vm = _vm(0xA123)
        vm.cycle()
        assert vm.regs.I == 0x123

    def test_add_index(self):
        """LD I,$300; LD V1,#10; ADD I,V1 → I=$310, VF untouched"""
        vm = _vm(0xA300, 0x6110, 0x6F03, 0xF11E)
        _step(vm, 4)
        assert vm.regs.I == 0x310
        assert vm.regs.VF == 0x03

    def test_font_glyph_address(self):
        """LD V1,#0A; LD F,V1 → I=$082"""
        vm = _vm(0x610A, 0xF129)
        _step(vm, 2)
        assert vm.regs.I == 0x082

    def test_font_glyph_uses_low_nibble(self):
        vm = _vm(0x611A, 0xF129)
        _step(vm, 2)
        assert vm.regs.I == 0x082

    def test_store_bcd(self):
        """LD V1,#FE (254); LD I,$300; LD B,V1 → 2 5 4"""
        vm = _vm(0x61FE, 0xA300, 0xF133)
        _step(vm, 3)
        assert vm.mem.read_block(0x300, 3) == bytes([2, 5, 4])

    def test_store_registers(self):
        """V0..V2 = 11 22 33; LD I,$300; LD [I],V2"""
        vm = _vm(0x6011, 0x6122, 0x6233, 0x6344, 0xA300, 0xF255)
        _step(vm, 6)
        assert vm.mem.read_block(0x300, 4) == bytes([0x11, 0x22, 0x33, 0x00])
        assert vm.regs.I == 0x300

    def test_load_registers(self):
        vm = _vm(0xA300, 0xF265)
        for offset, value in enumerate((0xAA, 0xBB, 0xCC, 0xDD)):
            vm.mem.write(0x300 + offset, value)
        _step(vm, 2)
        assert list(vm.regs.V[:4]) == [0xAA, 0xBB, 0xCC, 0x00]
        assert vm.regs.I == 0x300

    def test_bcd_below_200_is_refused(self):
        vm = _vm(0x61FE, 0xA100, 0xF133)
        _step(vm, 2)
        with pytest.raises(ProtectedWrite) as exc:
            vm.cycle()
        assert exc.value.addr == 0x100
        assert vm.mem.read_block(0x100, 3) == bytes(3)

    def test_store_straddling_200_is_refused(self):
        vm = _vm(0x6011, 0x6122, 0xA1FF, 0xF155)
        _step(vm, 3)
        with pytest.raises(ProtectedWrite):
            vm.cycle()
        assert vm.mem.read(0x200) == 0x60

    def test_store_past_end_of_memory(self):
        vm = _vm(0x6011, 0x6122, 0x6233, 0xAFFE, 0xF255)
        _step(vm, 4)
        with pytest.raises(OutOfRange):
            vm.cycle()
        assert vm.mem.read_block(0xFFE, 2) == bytes(2)

    def test_load_past_end_of_memory(self):
        vm = _vm(0x6077, 0xAFFF, 0xF165)
        _step(vm, 2)
        with pytest.raises(OutOfRange):
            vm.cycle()
        assert vm.regs.V[0] == 0x77
        assert vm.regs.PC == 0x204


# ═══════════════════════════════════════════════
# Display
# ═══════════════════════════════════════════════

class TestDraw:

    def test_double_draw_restores_and_collides(self):
        """LD I,$208; DRW V0,V1,2 twice; sprite FF FF"""
        vm = _vm(0xA208, 0xD012, 0xD012, 0x1206, 0xFFFF)
        _step(vm, 2)
        assert vm.regs.VF == 0
        assert all(vm.display.pixel(x, y) for x in range(8) for y in range(2))
        vm.cycle()
        assert vm.regs.VF == 1
        assert vm.display.is_clear()

    def test_clear_screen(self):
        vm = _vm(0xA208, 0xD012, 0x00E0, 0x1206, 0xFFFF)
        _step(vm, 3)
        assert vm.display.is_clear()

    def test_draw_font_glyph(self):
        """LD V2,#00; LD F,V2; DRW V0,V0,5 → glyph '0' at (0,0)"""
        vm = _vm(0x6200, 0xF229, 0xD005)
        _step(vm, 3)
        assert vm.display.pixel(0, 0) == 1
        assert vm.display.pixel(3, 0) == 1
        assert vm.display.pixel(4, 0) == 0
        assert vm.display.pixel(1, 1) == 0
        assert vm.display.pixel(3, 4) == 1

    def test_draw_wraps_right_edge(self):
        """V0=62, V1=31, sprite FF → pixels 62..63 and 0..5 on row 31"""
        vm = _vm(0x603E, 0x611F, 0xA20A, 0xD011, 0x1208, 0xFF00)
        _step(vm, 4)
        row = [vm.display.pixel(x, 31) for x in range(64)]
        assert row[62] == row[63] == 1
        assert row[0:6] == [1] * 6
        assert row[6] == 0
        assert row[61] == 0

    def test_draw_wraps_bottom_edge(self):
        vm = _vm(0x6000, 0x611F, 0xA20A, 0xD012, 0x1208, 0x80C0)
        _step(vm, 4)
        assert vm.display.pixel(0, 31) == 1
        assert vm.display.pixel(0, 0) == 1
        assert vm.display.pixel(1, 0) == 1
        assert vm.display.pixel(1, 31) == 0

    def test_draw_position_is_modulo_screen(self):
        """V0=67 → x=3"""
        vm = _vm(0x6043, 0x6121, 0xA20A, 0xD011, 0x1208, 0x8000)
        _step(vm, 4)
        assert vm.display.pixel(3, 1) == 1

    def test_draw_past_end_of_memory(self):
        vm = _vm(0xAFFF, 0xD002)
        vm.cycle()
        with pytest.raises(OutOfRange):
            vm.cycle()
        assert vm.display.is_clear()

    def test_zero_row_sprite(self):
        vm = _vm(0x6F05, 0xD000)
        _step(vm, 2)
        assert vm.regs.VF == 0
        assert vm.display.is_clear()


# ═══════════════════════════════════════════════
# Timers / keys
# ═══════════════════════════════════════════════

class TestTimersAndKeys:

    def test_delay_timer_round_trip(self):
        """LD V1,#05; LD DT,V1; (tick); LD V2,DT → V2=4"""
        vm = _vm(0x6105, 0xF115, 0xF207)
        _step(vm, 2)
        vm.tick_timers()
        vm.cycle()
        assert vm.regs.V[2] == 4

    def test_sound_timer(self):
        vm = _vm(0x6102, 0xF118)
        _step(vm, 2)
        assert vm.sound_active
        vm.tick_timers()
        vm.tick_timers()
        assert not vm.sound_active
        vm.tick_timers()
        assert vm.timers.sound == 0

    def test_skip_if_pressed(self):
        vm = _vm(0x6105, 0xE19E)
        vm.set_key(5, True)
        _step(vm, 2)
        assert vm.regs.PC == 0x206

    def test_skip_if_pressed_not_taken(self):
        vm = _vm(0x6105, 0xE19E)
        _step(vm, 2)
        assert vm.regs.PC == 0x204

    def test_skip_if_not_pressed(self):
        vm = _vm(0x6105, 0xE1A1)
        _step(vm, 2)
        assert vm.regs.PC == 0x206

    def test_key_index_uses_low_nibble(self):
        vm = _vm(0x6115, 0xE19E)
        vm.set_key(5, True)
        _step(vm, 2)
        assert vm.regs.PC == 0x206

    def test_key_wait_suspends_everything(self):
        """LD V3,K; ADD V3,#01; JP $204"""
        vm = _vm(0xF30A, 0x7301, 0x1204)
        vm.cycle()
        assert vm.waiting_for_key
        assert vm.regs.PC == 0x202

        regs_before = bytes(vm.regs.V)
        mem_before = vm.mem.read_block(0, 0x1000)
        _step(vm, 5)
        assert bytes(vm.regs.V) == regs_before
        assert vm.regs.PC == 0x202
        assert vm.mem.read_block(0, 0x1000) == mem_before
        assert vm.cycles == 1

        vm.resolve_wait(7)
        assert not vm.waiting_for_key
        assert vm.regs.V[3] == 7
        vm.cycle()
        assert vm.regs.V[3] == 8
        assert vm.regs.PC == 0x204

    def test_key_press_resolves_wait(self):
        vm = _vm(0xF30A)
        vm.cycle()
        vm.set_key(0xA, True)
        assert vm.regs.V[3] == 0xA
        assert not vm.waiting_for_key

    def test_key_release_does_not_resolve_wait(self):
        vm = _vm(0xF30A)
        vm.cycle()
        vm.set_key(0xA, False)
        assert vm.waiting_for_key

    def test_resolve_without_wait(self):
        vm = _vm(0x1200)
        with pytest.raises(RuntimeError):
            vm.resolve_wait(1)


# ═══════════════════════════════════════════════
# Headless run loop
# ═══════════════════════════════════════════════

class TestRun:

    def test_timeout(self):
        vm = _vm(0x1200)
        assert vm.run(100) == StopReason.TIMEOUT
        assert vm.cycles == 100

    def test_timers_tick_at_configured_rate(self):
        """DT=48, then spin: 100 cycles at 10 cycles/tick → 10 ticks"""
        vm = _vm(0x6130, 0xF115, 0x1204)
        vm.run(100, RunConfig(cpu_hz=600, timer_hz=60))
        assert vm.timers.delay == 38

    def test_breakpoint(self):
        vm = _vm(0x6101, 0x6202, 0x6303, 0x1206)
        vm.add_breakpoint(0x204)
        assert vm.run(100) == StopReason.BREAK
        assert vm.regs.PC == 0x204
        assert vm.regs.V[2] == 2
        assert vm.regs.V[3] == 0
        assert vm.run(1) == StopReason.TIMEOUT
        assert vm.regs.V[3] == 3

    def test_stops_on_key_wait(self):
        vm = _vm(0xF00A, 0x1202)
        assert vm.run(10) == StopReason.WAIT_KEY
        assert vm.cycles == 1
        vm.set_key(4, True)
        assert vm.run(5) == StopReason.TIMEOUT
        assert vm.regs.V[0] == 4

    def test_held_key_resolves_wait(self):
        vm = _vm(0xF00A, 0x1202)
        vm.set_key(9, True)
        assert vm.run(5) == StopReason.TIMEOUT
        assert vm.regs.V[0] == 9

    def test_error(self):
        vm = _vm(0x0000)
        assert vm.run(10) == StopReason.ERROR
        assert isinstance(vm.fatal_error, UnknownOpcode)
        assert vm.run(10) == StopReason.ERROR

    def test_trace(self):
        vm = Interpreter(trace=True)
        vm.load_rom(_rom(0x6142))
        vm.run(1)
        assert vm.trace_output[0].startswith("$200: 6142  LD    V1, #42")

    def test_config_turns_on_trace(self):
        vm = _vm(0x6142, 0x6243)
        vm.run(2, RunConfig(trace=True))
        assert len(vm.trace_output) == 2
        assert vm.trace_output[1].startswith("$202: 6243  LD    V2, #43")

    def test_config_seeds_random(self):
        vm = _vm(0xC1FF)
        vm.run(1, RunConfig(seed=99))
        assert vm.regs.V[1] == random.Random(99).randrange(256)

    def test_run_without_config_keeps_trace_setting(self):
        vm = Interpreter(trace=True)
        vm.load_rom(_rom(0x6142))
        vm.run(1)
        assert len(vm.trace_output) == 1

    def test_trace_keeps_latest_lines(self):
        vm = Interpreter(trace=True, trace_limit=3)
        vm.load_rom(_rom(0x1200))
        vm.run(10)
        assert len(vm.trace_output) == 3
        assert all(line.startswith("$200: 1200") for line in vm.trace_output)

    def test_key_wait_leaves_pc_past_instruction(self):
        vm = _vm(0x6101, 0xF00A, 0x1204)
        assert vm.run(10) == StopReason.WAIT_KEY
        assert vm.regs.PC == 0x204
        vm.resolve_wait(3)
        assert vm.regs.PC == 0x204
        assert vm.regs.V[0] == 3
