"""
CHIP-8 VM — ALU Operations

Each flag-producing function returns a tuple: (result_byte, vf).
The caller writes the result to Vx first and VF second, so an
instruction whose destination is VF itself ends up holding the flag.

VF conventions:
  add:  1 if the true sum exceeded 255 (carry), else 0
  sub:  1 if NO borrow occurred (minuend >= subtrahend), else 0
  shr:  the bit shifted out on the right (old bit 0)
  shl:  the bit shifted out on the left (old bit 7)
"""


def add8(a: int, b: int) -> tuple:
    """a + b with carry out."""
    total = a + b
    return (total & 0xFF, 1 if total > 0xFF else 0)


def sub8(a: int, b: int) -> tuple:
    """a - b with NOT-borrow."""
    return ((a - b) & 0xFF, 1 if a >= b else 0)


def shr8(val: int) -> tuple:
    """Logical shift right by one."""
    return ((val & 0xFF) >> 1, val & 0x01)


def shl8(val: int) -> tuple:
    """Shift left by one."""
    return ((val << 1) & 0xFF, (val >> 7) & 0x01)


def bcd(val: int) -> tuple:
    """Decimal digits of a byte: (hundreds, tens, ones)."""
    return (val // 100, (val // 10) % 10, val % 10)
