"""
CHIP-8 VM — Error Taxonomy

Two families:
  LoadError   — raised while loading a ROM. Recoverable: the caller can
                offer ROM selection again.
  FatalError  — raised by Interpreter.cycle(). Unrecoverable for the
                session: the interpreter halts and state is left exactly
                as it was before the failing instruction.

MachineHalted is raised by cycle() on any call after a FatalError.
"""


class Chip8Error(Exception):
    """Base class for every error the VM raises."""


# ──────────────────────────────────────────────
# Load-time errors
# ──────────────────────────────────────────────

class LoadError(Chip8Error):
    """ROM could not be loaded."""


class RomTooLarge(LoadError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"ROM is {size} bytes, limit is {limit} (0x{limit:03X})")


class RomNotFound(LoadError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"ROM file not found: {path}")


# ──────────────────────────────────────────────
# Run-time errors
# ──────────────────────────────────────────────

class FatalError(Chip8Error):
    """Session-fatal execution error."""


class UnknownOpcode(FatalError):
    def __init__(self, word: int, pc: int = None):
        self.word = word
        self.pc = pc
        where = f" at ${pc:03X}" if pc is not None else ""
        super().__init__(f"Unknown opcode ${word:04X}{where}")


class StackOverflow(FatalError):
    def __init__(self, pc: int, depth: int):
        self.pc = pc
        self.depth = depth
        super().__init__(f"Call stack overflow at ${pc:03X} (depth {depth})")


class StackUnderflow(FatalError):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Return with empty call stack at ${pc:03X}")


class OutOfRange(FatalError):
    def __init__(self, addr: int):
        self.addr = addr
        super().__init__(f"Address ${addr:X} outside 4K address space")


class ProtectedWrite(FatalError):
    def __init__(self, addr: int):
        self.addr = addr
        super().__init__(f"Program write to interpreter area ${addr:03X} (< $200)")


class BadProgramCounter(FatalError):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Program counter ${pc:X} is misaligned or past $FFE")


class MachineHalted(Chip8Error):
    """cycle() called after a fatal error halted the machine."""

    def __init__(self, cause: FatalError):
        self.cause = cause
        super().__init__(f"Machine halted: {cause}")
