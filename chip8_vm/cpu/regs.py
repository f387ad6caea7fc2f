"""
CHIP-8 VM — Register File + Call Stack

Register model:
  V0–VF  — 16 general-purpose 8-bit registers. VF doubles as the
           carry / borrow / collision flag, but only because the
           instructions that produce a flag write it there.
  I      — 16-bit index register (memory pointer)
  PC     — 16-bit program counter, $200 at reset
  stack  — 16 return addresses, sp = current depth (0 = empty)

Stack operations check depth before touching anything, so a failed push
or pop leaves the register file exactly as it was.
"""

from typing import Tuple

from ..config import NUM_REGISTERS, STACK_DEPTH, PROGRAM_START, FLAG_REGISTER
from ..errors import StackOverflow, StackUnderflow


class Registers:
    """CHIP-8 CPU register set."""

    __slots__ = ('V', 'I', 'PC', 'stack', 'sp')

    def __init__(self):
        self.V = bytearray(NUM_REGISTERS)       # V0–VF
        self.I: int = 0                         # Index register
        self.PC: int = PROGRAM_START            # Program counter
        self.stack = [0] * STACK_DEPTH          # Return addresses
        self.sp: int = 0                        # Stack depth

    # --- Flag register ---

    @property
    def VF(self) -> int:
        return self.V[FLAG_REGISTER]

    @VF.setter
    def VF(self, value: int):
        self.V[FLAG_REGISTER] = value & 0xFF

    # --- Stack operations ---

    def push(self, addr: int):
        """Push a return address."""
        if self.sp >= STACK_DEPTH:
            raise StackOverflow(self.PC, self.sp)
        self.stack[self.sp] = addr & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        """Pop a return address."""
        if self.sp == 0:
            raise StackUnderflow(self.PC)
        self.sp -= 1
        return self.stack[self.sp]

    def stack_view(self) -> Tuple[int, ...]:
        """Live return addresses, oldest first."""
        return tuple(self.stack[:self.sp])

    # --- Display ---

    def display(self) -> str:
        """One-line register dump for trace / debugger output."""
        v = ' '.join(f'V{i:X}={val:02X}' for i, val in enumerate(self.V))
        return f"PC={self.PC:03X} I={self.I:03X} SP={self.sp:X} {v}"

    def reset(self):
        """Reset to power-on state."""
        self.V[:] = bytes(NUM_REGISTERS)
        self.I = 0
        self.PC = PROGRAM_START
        self.stack = [0] * STACK_DEPTH
        self.sp = 0
