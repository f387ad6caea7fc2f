"""
CHIP-8 VM — 64x32 Monochrome Framebuffer

Pixels are stored row-major, one byte per pixel (0 or 1), at
pixels[y * 64 + x]. Only clear() and draw() mutate them.

Draw rule:
  - The start position is (x mod 64, y mod 32).
  - Each sprite byte is one row, MSB = leftmost pixel.
  - Pixels are XORed in. Positions past the right or bottom edge wrap
    around to the opposite edge, per pixel.
  - The draw reports a collision if any pixel went from 1 to 0.

Turning the grid into visible pixels is the frontend's job; snapshot()
and render_text() are the read-only views offered to it.
"""

from typing import Tuple

from ..config import DISPLAY_WIDTH, DISPLAY_HEIGHT


class FrameBuffer:
    """64x32 1-bit pixel grid."""

    WIDTH = DISPLAY_WIDTH
    HEIGHT = DISPLAY_HEIGHT

    def __init__(self):
        self.pixels = bytearray(self.WIDTH * self.HEIGHT)

    def clear(self):
        self.pixels[:] = bytes(len(self.pixels))

    def draw(self, x: int, y: int, sprite: bytes) -> bool:
        """XOR sprite rows into the grid at (x, y). Returns True on collision."""
        x %= self.WIDTH
        y %= self.HEIGHT
        collided = False
        for row, bits in enumerate(sprite):
            py = (y + row) % self.HEIGHT
            base = py * self.WIDTH
            for col in range(8):
                if not bits & (0x80 >> col):
                    continue
                idx = base + (x + col) % self.WIDTH
                if self.pixels[idx]:
                    collided = True
                self.pixels[idx] ^= 1
        return collided

    def pixel(self, x: int, y: int) -> int:
        return self.pixels[(y % self.HEIGHT) * self.WIDTH + (x % self.WIDTH)]

    def snapshot(self) -> Tuple[Tuple[int, ...], ...]:
        """Immutable copy of the grid: HEIGHT rows of WIDTH ints."""
        w = self.WIDTH
        return tuple(tuple(self.pixels[r * w:(r + 1) * w]) for r in range(self.HEIGHT))

    def is_clear(self) -> bool:
        return not any(self.pixels)

    def render_text(self, on: str = '█', off: str = ' ') -> str:
        """Text rendering, one line per row."""
        return '\n'.join(
            ''.join(on if p else off for p in row) for row in self.snapshot()
        )
