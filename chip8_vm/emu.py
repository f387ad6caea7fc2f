"""
CHIP-8 VM — Interpreter

Integrates:
  - Register file + call stack (cpu/regs.py)
  - Opcode decoder (cpu/decoder.py)
  - ALU flag helpers (cpu/alu.py)
  - 4K address space (mem/memory.py)
  - Timers, framebuffer, keypad (periph/)

Execution model, one cycle():
  1. If halted by an earlier fatal error → MachineHalted
  2. If a key-wait is pending → return, nothing changes
  3. Fetch the big-endian word at PC (PC must be even and <= $FFE)
  4. Decode → Instruction
  5. Execute the handler for its Op. The handler returns the new PC, or
     None for "next instruction" (PC + 2). Every check that can fail runs
     before the handler mutates anything, and PC is only committed once
     the handler returns, so a fatal error leaves state untouched.

The host loop calls cycle() at its CPU rate and tick_timers() at 60 Hz.
run() is a headless version of that loop for tools and tests.

Shift policy: 8XY6 / 8XYE shift VX in place and ignore VY.
Load/store policy: FX55 / FX65 leave I unchanged.
Key-wait policy: FX0A commits PC to the following instruction before the
wait starts, so while waiting PC already points past the FX0A. Resolving
the wait only writes VX.
"""

import logging
import random
from collections import deque
from enum import Enum
from typing import Optional, Set, Callable, Dict

from .config import PROGRAM_START, PC_LIMIT, MEM_SIZE, TRACE_LIMIT, RunConfig
from .errors import FatalError, MachineHalted, BadProgramCounter, OutOfRange, ProtectedWrite
from .cpu.regs import Registers
from .cpu.decoder import decode, Instruction, Op
from .cpu import alu
from .mem.memory import AddressSpace, glyph_address
from .periph.timer import Timers
from .periph.display import FrameBuffer
from .periph.keypad import InputLatch

log = logging.getLogger(__name__)


class StopReason(Enum):
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'
    WAIT_KEY = 'WAIT_KEY'
    ERROR = 'ERROR'


class Interpreter:
    """CHIP-8 interpreter.

    Usage:
        vm = Interpreter()
        vm.load_rom(rom_bytes)
        while running:
            vm.cycle()              # CPU rate
            vm.tick_timers()        # 60 Hz
            draw(vm.display.snapshot())
    """

    def __init__(self, seed: Optional[int] = None, trace: bool = False,
                 trace_limit: int = TRACE_LIMIT):
        self.regs = Registers()
        self.mem = AddressSpace()
        self.timers = Timers()
        self.display = FrameBuffer()
        self.keys = InputLatch(self.regs)

        self._rng = random.Random(seed)
        self._halted_by: Optional[FatalError] = None
        self.cycles = 0

        self._breakpoints: Set[int] = set()
        self.trace = trace
        self.trace_output = deque(maxlen=trace_limit)

        self._dispatch: Dict[Op, Callable[[Instruction], Optional[int]]] = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Session lifecycle
    # ══════════════════════════════════════════════

    def reset(self):
        """Power-on state. Everything from the previous session is dropped."""
        self.regs.reset()
        self.mem.reset()
        self.timers.reset()
        self.display.clear()
        self.keys.reset()
        self._halted_by = None
        self.cycles = 0
        self.trace_output.clear()
        log.info("VM reset")

    def load_rom(self, data: bytes):
        """Reset, then load a ROM image at $200. Raises LoadError."""
        self.reset()
        self.mem.load(data)

    def load_rom_file(self, path):
        """Reset, then load a ROM file from disk. Raises LoadError."""
        self.reset()
        self.mem.load_file(path)

    # ══════════════════════════════════════════════
    # State views for frontends
    # ══════════════════════════════════════════════

    @property
    def halted(self) -> bool:
        return self._halted_by is not None

    @property
    def fatal_error(self) -> Optional[FatalError]:
        return self._halted_by

    @property
    def waiting_for_key(self) -> bool:
        return self.keys.awaiting is not None

    @property
    def sound_active(self) -> bool:
        return self.timers.sound_active

    # ══════════════════════════════════════════════
    # Input
    # ══════════════════════════════════════════════

    def set_key(self, index: int, pressed: bool):
        self.keys.set_key(index, pressed)

    def resolve_wait(self, value: int):
        self.keys.resolve_wait(value)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def cycle(self):
        """Execute one instruction. Raises FatalError / MachineHalted."""
        if self._halted_by is not None:
            raise MachineHalted(self._halted_by)
        if self.keys.awaiting is not None:
            return

        pc = self.regs.PC
        try:
            if pc & 1 or pc > PC_LIMIT:
                raise BadProgramCounter(pc)
            word = self.mem.read16(pc)
            ins = decode(word, pc)

            if self.trace:
                line = f"${pc:03X}: {word:04X}  {str(ins):<22} {self.regs.display()}"
                self.trace_output.append(line)
                log.debug(line)

            new_pc = self._dispatch[ins.op](ins)
        except FatalError as e:
            self._halted_by = e
            log.error("Halted at $%03X: %s", pc, e)
            raise

        self.regs.PC = (pc + 2) if new_pc is None else new_pc
        self.cycles += 1

    def tick_timers(self):
        """One 60 Hz timer tick."""
        self.timers.tick()

    def add_breakpoint(self, addr: int):
        self._breakpoints.add(addr)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr)

    def run(self, max_cycles: int, config: Optional[RunConfig] = None) -> StopReason:
        """Headless scheduler: run up to max_cycles instructions.

        Timers tick once every config.cycles_per_tick executed cycles. A
        pending key-wait is resolved with the lowest key currently held;
        with no key held the run stops with WAIT_KEY. Breakpoints stop the
        run before the instruction at that address executes, except on the
        very first cycle so that a second run() steps past the breakpoint.

        An explicit config also sets tracing, and reseeds RND when its seed
        is not None. Without one, tracing and the RNG are left as they are.
        """
        if config is None:
            config = RunConfig()
        else:
            self.trace = config.trace
            if config.seed is not None:
                self._rng.seed(config.seed)
        per_tick = config.cycles_per_tick
        executed = 0

        while executed < max_cycles:
            if self.keys.awaiting is not None:
                held = self.keys.pressed_keys()
                if not held:
                    return StopReason.WAIT_KEY
                self.keys.resolve_wait(held[0])

            if executed and self.regs.PC in self._breakpoints:
                return StopReason.BREAK

            try:
                self.cycle()
            except (FatalError, MachineHalted):
                return StopReason.ERROR

            executed += 1
            if executed % per_tick == 0:
                self.tick_timers()

        return StopReason.TIMEOUT

    # ══════════════════════════════════════════════
    # Memory helpers
    # ══════════════════════════════════════════════

    def _check_writable(self, addr: int, length: int):
        """Programs may only write $200–$FFF."""
        if addr < PROGRAM_START:
            raise ProtectedWrite(addr)
        if addr + length > MEM_SIZE:
            raise OutOfRange(max(addr, MEM_SIZE))

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(ins) -> new PC or None.
    # "Next instruction" is self.regs.PC + 2 (PC still holds the address
    # of the executing instruction).

    def _build_dispatch(self) -> dict:
        return {
            # ── Flow ──
            Op.CLS:     self._op_cls,
            Op.RET:     self._op_ret,
            Op.JP:      self._op_jp,
            Op.CALL:    self._op_call,
            Op.JP_V0:   self._op_jp_v0,

            # ── Skips ──
            Op.SE_IMM:  self._op_se_imm,
            Op.SNE_IMM: self._op_sne_imm,
            Op.SE_REG:  self._op_se_reg,
            Op.SNE_REG: self._op_sne_reg,
            Op.SKP:     self._op_skp,
            Op.SKNP:    self._op_sknp,

            # ── Load / arithmetic ──
            Op.LD_IMM:  self._op_ld_imm,
            Op.ADD_IMM: self._op_add_imm,
            Op.LD_REG:  self._op_ld_reg,
            Op.OR:      self._op_or,
            Op.AND:     self._op_and,
            Op.XOR:     self._op_xor,
            Op.ADD_REG: self._op_add_reg,
            Op.SUB:     self._op_sub,
            Op.SHR:     self._op_shr,
            Op.SUBN:    self._op_subn,
            Op.SHL:     self._op_shl,
            Op.RND:     self._op_rnd,

            # ── Display ──
            Op.DRW:     self._op_drw,

            # ── Timers / keys ──
            Op.LD_DT:   self._op_ld_dt,
            Op.LD_KEY:  self._op_ld_key,
            Op.SET_DT:  self._op_set_dt,
            Op.SET_ST:  self._op_set_st,

            # ── Index / memory ──
            Op.LD_I:    self._op_ld_i,
            Op.ADD_I:   self._op_add_i,
            Op.LD_F:    self._op_ld_f,
            Op.BCD:     self._op_bcd,
            Op.STORE:   self._op_store,
            Op.LOAD:    self._op_load,
        }

    def _skip_if(self, cond: bool) -> Optional[int]:
        return self.regs.PC + 4 if cond else None

    # ── Flow ──

    def _op_cls(self, ins):
        self.display.clear()

    def _op_ret(self, ins):
        return self.regs.pop()

    def _op_jp(self, ins):
        return ins.nnn

    def _op_call(self, ins):
        self.regs.push(self.regs.PC + 2)
        return ins.nnn

    def _op_jp_v0(self, ins):
        return ins.nnn + self.regs.V[0]

    # ── Skips ──

    def _op_se_imm(self, ins):
        return self._skip_if(self.regs.V[ins.x] == ins.kk)

    def _op_sne_imm(self, ins):
        return self._skip_if(self.regs.V[ins.x] != ins.kk)

    def _op_se_reg(self, ins):
        return self._skip_if(self.regs.V[ins.x] == self.regs.V[ins.y])

    def _op_sne_reg(self, ins):
        return self._skip_if(self.regs.V[ins.x] != self.regs.V[ins.y])

    def _op_skp(self, ins):
        return self._skip_if(self.keys.is_pressed(self.regs.V[ins.x] & 0xF))

    def _op_sknp(self, ins):
        return self._skip_if(not self.keys.is_pressed(self.regs.V[ins.x] & 0xF))

    # ── Load / arithmetic ──

    def _op_ld_imm(self, ins):
        self.regs.V[ins.x] = ins.kk

    def _op_add_imm(self, ins):
        self.regs.V[ins.x] = (self.regs.V[ins.x] + ins.kk) & 0xFF

    def _op_ld_reg(self, ins):
        self.regs.V[ins.x] = self.regs.V[ins.y]

    def _op_or(self, ins):
        self.regs.V[ins.x] |= self.regs.V[ins.y]

    def _op_and(self, ins):
        self.regs.V[ins.x] &= self.regs.V[ins.y]

    def _op_xor(self, ins):
        self.regs.V[ins.x] ^= self.regs.V[ins.y]

    def _set_with_flag(self, x: int, result: tuple):
        # result first, flag last: VF as destination ends up holding the flag
        value, flag = result
        self.regs.V[x] = value
        self.regs.VF = flag

    def _op_add_reg(self, ins):
        V = self.regs.V
        self._set_with_flag(ins.x, alu.add8(V[ins.x], V[ins.y]))

    def _op_sub(self, ins):
        V = self.regs.V
        self._set_with_flag(ins.x, alu.sub8(V[ins.x], V[ins.y]))

    def _op_subn(self, ins):
        V = self.regs.V
        self._set_with_flag(ins.x, alu.sub8(V[ins.y], V[ins.x]))

    def _op_shr(self, ins):
        self._set_with_flag(ins.x, alu.shr8(self.regs.V[ins.x]))

    def _op_shl(self, ins):
        self._set_with_flag(ins.x, alu.shl8(self.regs.V[ins.x]))

    def _op_rnd(self, ins):
        self.regs.V[ins.x] = self._rng.randrange(256) & ins.kk

    # ── Display ──

    def _op_drw(self, ins):
        sprite = self.mem.read_block(self.regs.I, ins.n)
        V = self.regs.V
        collided = self.display.draw(V[ins.x], V[ins.y], sprite)
        self.regs.VF = 1 if collided else 0

    # ── Timers / keys ──

    def _op_ld_dt(self, ins):
        self.regs.V[ins.x] = self.timers.delay

    def _op_ld_key(self, ins):
        self.keys.begin_wait(ins.x)

    def _op_set_dt(self, ins):
        self.timers.delay = self.regs.V[ins.x]

    def _op_set_st(self, ins):
        self.timers.sound = self.regs.V[ins.x]

    # ── Index / memory ──

    def _op_ld_i(self, ins):
        self.regs.I = ins.nnn

    def _op_add_i(self, ins):
        self.regs.I = (self.regs.I + self.regs.V[ins.x]) & 0xFFFF

    def _op_ld_f(self, ins):
        self.regs.I = glyph_address(self.regs.V[ins.x])

    def _op_bcd(self, ins):
        addr = self.regs.I
        self._check_writable(addr, 3)
        for offset, digit in enumerate(alu.bcd(self.regs.V[ins.x])):
            self.mem.write(addr + offset, digit)

    def _op_store(self, ins):
        addr = self.regs.I
        self._check_writable(addr, ins.x + 1)
        for k in range(ins.x + 1):
            self.mem.write(addr + k, self.regs.V[k])

    def _op_load(self, ins):
        data = self.mem.read_block(self.regs.I, ins.x + 1)
        self.regs.V[:ins.x + 1] = data
