"""
CHIP-8 VM — Machine Constants / Run Configuration
==================================================

Fixed machine geometry lives here as module constants. Scheduling rates
are defaults only; the embedding loop (or the CLI) picks the real values
through RunConfig.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


# =============================================================================
#  MEMORY MAP
# =============================================================================
MEM_SIZE = 0x1000          # 4096 bytes
FONTSET_ADDR = 0x050       # 16 glyphs x 5 bytes → $050–$09F
GLYPH_BYTES = 5
PROGRAM_START = 0x200      # ROM load address, initial PC
MAX_ROM_SIZE = MEM_SIZE - PROGRAM_START   # 0xE00 = 3584 bytes
PC_LIMIT = MEM_SIZE - 2    # last address a 2-byte word can be fetched from


# =============================================================================
#  CPU
# =============================================================================
NUM_REGISTERS = 16
FLAG_REGISTER = 0xF        # VF — carry / borrow / collision output
STACK_DEPTH = 16


# =============================================================================
#  DISPLAY / KEYPAD
# =============================================================================
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
NUM_KEYS = 16


# =============================================================================
#  SCHEDULING
# =============================================================================
CPU_HZ = 500               # ≈ CYCLE_DELAY_MS of 2 ms
TIMER_HZ = 60              # delay/sound timers, fixed by the machine
TRACE_LIMIT = 10_000       # trace lines kept; older lines are dropped


@dataclass
class RunConfig:
    """Settings for the headless scheduler (Interpreter.run / chip8kit run)."""
    cpu_hz: int = CPU_HZ
    timer_hz: int = TIMER_HZ
    seed: Optional[int] = None
    trace: bool = False

    @property
    def cycles_per_tick(self) -> int:
        """CPU cycles between two timer ticks (at least 1)."""
        return max(1, self.cpu_hz // self.timer_hz)
