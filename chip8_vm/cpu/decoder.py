"""
CHIP-8 VM — Opcode Decoder

Turns a 16-bit big-endian instruction word into a tagged Instruction.

Word fields:
  F... — family (leading nibble)
  .X.. — x register
  ..Y. — y register
  ...N — n (low nibble)
  ..KK — kk (low byte)
  .NNN — nnn (12-bit address)

Families that share a leading nibble are disambiguated as follows:
  0     full word       (00E0 CLS, 00EE RET; everything else is unknown,
                         including 0NNN machine-code calls)
  5, 9  low nibble      must be 0
  8     low nibble      ALU operation selector
  E, F  low byte        operation selector
  other no sub-dispatch

Anything not in the tables raises UnknownOpcode.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List

from ..errors import UnknownOpcode


class Op(Enum):
    CLS = 'CLS'
    RET = 'RET'
    JP = 'JP'
    CALL = 'CALL'
    SE_IMM = 'SE_IMM'
    SNE_IMM = 'SNE_IMM'
    SE_REG = 'SE_REG'
    LD_IMM = 'LD_IMM'
    ADD_IMM = 'ADD_IMM'
    LD_REG = 'LD_REG'
    OR = 'OR'
    AND = 'AND'
    XOR = 'XOR'
    ADD_REG = 'ADD_REG'
    SUB = 'SUB'
    SHR = 'SHR'
    SUBN = 'SUBN'
    SHL = 'SHL'
    SNE_REG = 'SNE_REG'
    LD_I = 'LD_I'
    JP_V0 = 'JP_V0'
    RND = 'RND'
    DRW = 'DRW'
    SKP = 'SKP'
    SKNP = 'SKNP'
    LD_DT = 'LD_DT'
    LD_KEY = 'LD_KEY'
    SET_DT = 'SET_DT'
    SET_ST = 'SET_ST'
    ADD_I = 'ADD_I'
    LD_F = 'LD_F'
    BCD = 'BCD'
    STORE = 'STORE'
    LOAD = 'LOAD'


# ──────────────────────────────────────────────
# Dispatch tables
# ──────────────────────────────────────────────

# Family 0 — matched on the whole word
SYSTEM_OPS = {
    0x00E0: Op.CLS,
    0x00EE: Op.RET,
}

# Families with no sub-dispatch
FAMILY_OPS = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_IMM,
    0x4: Op.SNE_IMM,
    0x6: Op.LD_IMM,
    0x7: Op.ADD_IMM,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}

# Families 5 / 9 — low nibble must be 0
REG_COMPARE_OPS = {
    0x5: Op.SE_REG,
    0x9: Op.SNE_REG,
}

# Family 8 — low nibble
ALU_OPS = {
    0x0: Op.LD_REG,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_REG,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

# Family E — low byte
KEY_OPS = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

# Family F — low byte
MISC_OPS = {
    0x07: Op.LD_DT,
    0x0A: Op.LD_KEY,
    0x15: Op.SET_DT,
    0x18: Op.SET_ST,
    0x1E: Op.ADD_I,
    0x29: Op.LD_F,
    0x33: Op.BCD,
    0x55: Op.STORE,
    0x65: Op.LOAD,
}


# ──────────────────────────────────────────────
# Disassembly formats
# ──────────────────────────────────────────────
# Format fields: {x} {y} {n} {kk} {nnn}

ASM_FORMATS = {
    Op.CLS:     'CLS',
    Op.RET:     'RET',
    Op.JP:      'JP    ${nnn:03X}',
    Op.CALL:    'CALL  ${nnn:03X}',
    Op.SE_IMM:  'SE    V{x:X}, #{kk:02X}',
    Op.SNE_IMM: 'SNE   V{x:X}, #{kk:02X}',
    Op.SE_REG:  'SE    V{x:X}, V{y:X}',
    Op.LD_IMM:  'LD    V{x:X}, #{kk:02X}',
    Op.ADD_IMM: 'ADD   V{x:X}, #{kk:02X}',
    Op.LD_REG:  'LD    V{x:X}, V{y:X}',
    Op.OR:      'OR    V{x:X}, V{y:X}',
    Op.AND:     'AND   V{x:X}, V{y:X}',
    Op.XOR:     'XOR   V{x:X}, V{y:X}',
    Op.ADD_REG: 'ADD   V{x:X}, V{y:X}',
    Op.SUB:     'SUB   V{x:X}, V{y:X}',
    Op.SHR:     'SHR   V{x:X}',
    Op.SUBN:    'SUBN  V{x:X}, V{y:X}',
    Op.SHL:     'SHL   V{x:X}',
    Op.SNE_REG: 'SNE   V{x:X}, V{y:X}',
    Op.LD_I:    'LD    I, ${nnn:03X}',
    Op.JP_V0:   'JP    V0, ${nnn:03X}',
    Op.RND:     'RND   V{x:X}, #{kk:02X}',
    Op.DRW:     'DRW   V{x:X}, V{y:X}, {n}',
    Op.SKP:     'SKP   V{x:X}',
    Op.SKNP:    'SKNP  V{x:X}',
    Op.LD_DT:   'LD    V{x:X}, DT',
    Op.LD_KEY:  'LD    V{x:X}, K',
    Op.SET_DT:  'LD    DT, V{x:X}',
    Op.SET_ST:  'LD    ST, V{x:X}',
    Op.ADD_I:   'ADD   I, V{x:X}',
    Op.LD_F:    'LD    F, V{x:X}',
    Op.BCD:     'LD    B, V{x:X}',
    Op.STORE:   'LD    [I], V{x:X}',
    Op.LOAD:    'LD    V{x:X}, [I]',
}


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction word. All operand fields are always filled;
    each Op only looks at the ones it uses."""
    op: Op
    word: int

    @property
    def x(self) -> int:
        return (self.word >> 8) & 0xF

    @property
    def y(self) -> int:
        return (self.word >> 4) & 0xF

    @property
    def n(self) -> int:
        return self.word & 0xF

    @property
    def kk(self) -> int:
        return self.word & 0xFF

    @property
    def nnn(self) -> int:
        return self.word & 0xFFF

    def __str__(self) -> str:
        return ASM_FORMATS[self.op].format(
            x=self.x, y=self.y, n=self.n, kk=self.kk, nnn=self.nnn)


def decode(word: int, pc: int = None) -> Instruction:
    """Decode a 16-bit instruction word.

    pc is only used to make the UnknownOpcode message more useful.
    """
    word &= 0xFFFF
    family = word >> 12
    op = None

    if family == 0x0:
        op = SYSTEM_OPS.get(word)
    elif family in FAMILY_OPS:
        op = FAMILY_OPS[family]
    elif family in REG_COMPARE_OPS:
        if word & 0xF == 0:
            op = REG_COMPARE_OPS[family]
    elif family == 0x8:
        op = ALU_OPS.get(word & 0xF)
    elif family == 0xE:
        op = KEY_OPS.get(word & 0xFF)
    elif family == 0xF:
        op = MISC_OPS.get(word & 0xFF)

    if op is None:
        raise UnknownOpcode(word, pc)
    return Instruction(op, word)


# ──────────────────────────────────────────────
# Disassembler
# ──────────────────────────────────────────────

def iter_words(data: bytes, base: int = 0x200) -> Iterator[tuple]:
    """Yield (address, word) for each 2-byte word in data. A trailing odd
    byte is yielded padded with zero."""
    for off in range(0, len(data), 2):
        hi = data[off]
        lo = data[off + 1] if off + 1 < len(data) else 0
        yield base + off, (hi << 8) | lo


def disassemble(data: bytes, base: int = 0x200) -> List[str]:
    """Linear disassembly. Words that do not decode (sprite data, padding)
    are listed as DW."""
    lines = []
    for addr, word in iter_words(data, base):
        try:
            text = str(decode(word))
        except UnknownOpcode:
            text = f'DW    #{word:04X}'
        lines.append(f'{addr:03X}: {word:04X}  {text}')
    return lines
