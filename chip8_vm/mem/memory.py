"""
CHIP-8 VM — 4K Address Space

Memory map:
  $000–$04F  Interpreter area (unused, zero)
  $050–$09F  Built-in hex glyphs 0–F (5 bytes each), written at reset
  $0A0–$1FF  Interpreter area (unused, zero)
  $200–$FFF  Program ROM + working RAM

The address space itself only range-checks. Protection of the area below
$200 against program writes is the interpreter's job, because ROM loading
and reset must still be able to write there.
"""

import logging
from pathlib import Path

from ..config import MEM_SIZE, FONTSET_ADDR, GLYPH_BYTES, PROGRAM_START, MAX_ROM_SIZE
from ..errors import OutOfRange, RomTooLarge, RomNotFound

log = logging.getLogger(__name__)


FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


def glyph_address(digit: int) -> int:
    """Address of the 5-byte glyph for hex digit (low nibble only)."""
    return FONTSET_ADDR + GLYPH_BYTES * (digit & 0x0F)


class AddressSpace:
    """Flat 4096-byte memory with the fontset preloaded."""

    def __init__(self):
        self._mem = bytearray(MEM_SIZE)
        self.rom_size = 0
        self.reset()

    def reset(self):
        """Zero everything, then write the glyph set at $050."""
        self._mem[:] = bytes(MEM_SIZE)
        self._mem[FONTSET_ADDR:FONTSET_ADDR + len(FONTSET)] = FONTSET
        self.rom_size = 0

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        if not 0 <= addr < MEM_SIZE:
            raise OutOfRange(addr)
        return self._mem[addr]

    def write(self, addr: int, value: int):
        if not 0 <= addr < MEM_SIZE:
            raise OutOfRange(addr)
        self._mem[addr] = value & 0xFF

    def read16(self, addr: int) -> int:
        """Read a big-endian instruction word."""
        return (self.read(addr) << 8) | self.read(addr + 1)

    def read_block(self, addr: int, length: int) -> bytes:
        """Read `length` bytes starting at addr. Fails before reading anything
        if the block runs past the end of memory."""
        if addr < 0:
            raise OutOfRange(addr)
        if addr + length > MEM_SIZE:
            raise OutOfRange(max(addr, MEM_SIZE))
        return bytes(self._mem[addr:addr + length])

    # --- ROM loading ---

    def load(self, data: bytes):
        """Copy ROM bytes to $200. Memory is untouched if the ROM is too big."""
        data = bytes(data)
        if len(data) > MAX_ROM_SIZE:
            raise RomTooLarge(len(data), MAX_ROM_SIZE)
        self._mem[PROGRAM_START:PROGRAM_START + len(data)] = data
        self.rom_size = len(data)
        log.info("Loaded %d-byte ROM at $%03X", len(data), PROGRAM_START)

    def load_file(self, path):
        """Load a raw ROM image from disk."""
        path = Path(path)
        if not path.is_file():
            raise RomNotFound(path)
        self.load(path.read_bytes())

    # --- Debug ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Hex dump of memory, 16 bytes per line, clipped at $FFF."""
        lines = []
        end = min(start + length, MEM_SIZE)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:03X}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)

    def __len__(self) -> int:
        return MEM_SIZE
