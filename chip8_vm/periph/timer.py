"""
CHIP-8 VM — Delay / Sound Timers

Two independent 8-bit down-counters ticked at 60 Hz by the host. Each
decrements by one per tick while non-zero and never goes below zero.
The sound timer drives the buzzer: the audio collaborator polls
sound_active and beeps while it is True.
"""


class Timers:
    """Delay + sound counters."""

    __slots__ = ('_delay', '_sound')

    def __init__(self):
        self._delay = 0
        self._sound = 0

    @property
    def delay(self) -> int:
        return self._delay

    @delay.setter
    def delay(self, value: int):
        self._delay = value & 0xFF

    @property
    def sound(self) -> int:
        return self._sound

    @sound.setter
    def sound(self, value: int):
        self._sound = value & 0xFF

    @property
    def sound_active(self) -> bool:
        return self._sound > 0

    def tick(self):
        """One 60 Hz tick."""
        if self._delay > 0:
            self._delay -= 1
        if self._sound > 0:
            self._sound -= 1

    def reset(self):
        self._delay = 0
        self._sound = 0
