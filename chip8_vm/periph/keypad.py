"""
CHIP-8 VM — 16-Key Input Latch

Hex keypad layout (logical keys, mapping physical keys onto these is the
frontend's job):

    1 2 3 C
    4 5 6 D
    7 8 9 E
    A 0 B F

Besides the 16 key states, the latch holds the "awaiting key" slot used by
Fx0A. While a register index is recorded there the interpreter is
suspended; resolve_wait() writes the key value into that register and
lets execution continue. A key press reported while a wait is pending
resolves it immediately, which is how a frontend normally drives it.
"""

import logging
from typing import Optional

from ..config import NUM_KEYS

log = logging.getLogger(__name__)


def _check_nibble(value: int, what: str) -> int:
    if not 0 <= value < NUM_KEYS:
        raise ValueError(f"{what} must be 0-15, got {value}")
    return value


class InputLatch:
    """Key states + key-wait suspension slot."""

    def __init__(self, registers):
        self._regs = registers
        self._keys = [False] * NUM_KEYS
        self._awaiting: Optional[int] = None

    # --- Frontend side ---

    def set_key(self, index: int, pressed: bool):
        _check_nibble(index, "key index")
        self._keys[index] = bool(pressed)
        if pressed and self._awaiting is not None:
            self.resolve_wait(index)

    def resolve_wait(self, value: int):
        """Complete a pending key-wait with key `value`."""
        _check_nibble(value, "key value")
        if self._awaiting is None:
            raise RuntimeError("no key-wait is pending")
        self._regs.V[self._awaiting] = value
        log.debug("Key-wait resolved: V%X <- %X", self._awaiting, value)
        self._awaiting = None

    # --- Interpreter side ---

    def is_pressed(self, index: int) -> bool:
        return self._keys[_check_nibble(index, "key index")]

    def begin_wait(self, register: int):
        self._awaiting = _check_nibble(register, "register index")
        log.debug("Waiting for key -> V%X", register)

    @property
    def awaiting(self) -> Optional[int]:
        """Destination register of the pending key-wait, or None."""
        return self._awaiting

    def pressed_keys(self):
        return [k for k in range(NUM_KEYS) if self._keys[k]]

    def reset(self):
        self._keys = [False] * NUM_KEYS
        self._awaiting = None
