"""
CHIP-8 Virtual Machine Core
===========================
Fetch-decode-execute engine for the CHIP-8 8-bit virtual machine: 4K
address space, 16 registers, 16-deep call stack, delay/sound timers,
64x32 XOR framebuffer and 16-key input latch.

Architecture:
    ┌──────────────┐   cycle()    ┌──────────────┐
    │ Host loop    │────────────>│ Interpreter  │── regs (V0–VF, I, PC, stack)
    │ (frontend)   │ tick_timers()│   emu.py     │── mem     AddressSpace
    └──────────────┘             └──────────────┘── display FrameBuffer
           │ set_key / resolve_wait                ── timers  Timers
           └──────────────────────────────────────── keys    InputLatch

The host owns the window, audio, key mapping and scheduling; this package
owns the machine state and its exact semantics.
"""

__version__ = "0.1.0"

from .errors import (
    Chip8Error, LoadError, RomTooLarge, RomNotFound,
    FatalError, UnknownOpcode, StackOverflow, StackUnderflow,
    OutOfRange, ProtectedWrite, BadProgramCounter, MachineHalted,
)
from .config import RunConfig
from .emu import Interpreter, StopReason
from .cpu.decoder import decode, disassemble, Instruction, Op
from .log_setup import setup_logging
