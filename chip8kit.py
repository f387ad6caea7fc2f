#!/usr/bin/env python3
"""
chip8kit — CHIP-8 ROM Toolkit
=============================

One CLI around the chip8_vm core:
    chip8kit run     — Run a ROM headless and report where it stopped
    chip8kit disasm  — Linear disassembly of a ROM
    chip8kit info    — ROM size, free space, opcode histogram

Usage:
    python chip8kit.py <command> [options]
    python chip8kit.py --help
    python chip8kit.py <command> --help

Examples:
    python chip8kit.py run IBM.ch8 --cycles 2000 --screen
    python chip8kit.py run PONG.ch8 --keys 1,4 --trace --regs
    python chip8kit.py run TEST.ch8 --break 0x23A --regs
    python chip8kit.py disasm PONG.ch8 --start 0x200 --count 32
    python chip8kit.py info PONG.ch8
"""

import argparse
import hashlib
import logging
import sys
from collections import Counter
from pathlib import Path

from rich.console import Console
from rich.table import Table

from chip8_vm import (
    __version__, Interpreter, StopReason, RunConfig, Chip8Error, setup_logging,
)
from chip8_vm.config import CPU_HZ, MEM_SIZE, NUM_KEYS, PROGRAM_START, MAX_ROM_SIZE
from chip8_vm.cpu.decoder import decode, disassemble, iter_words
from chip8_vm.errors import UnknownOpcode, RomNotFound


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8kit",
        description="CHIP-8 ROM Toolkit — run, disassemble, inspect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""commands:
  run        Run a ROM headless
  disasm     Disassemble a ROM
  info       Summarize a ROM file
""",
    )
    parser.add_argument("--version", action="version", version=f"chip8kit {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v INFO, -vv DEBUG)")
    parser.add_argument("--log-dir", default=None,
                        help="Also write a DEBUG log file into this directory")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run a ROM headless")
    p_run.add_argument("rom", help="ROM file (.ch8)")
    p_run.add_argument("--cycles", type=int, default=10_000,
                       help="Maximum instructions to execute (default: 10000)")
    p_run.add_argument("--cpu-hz", type=int, default=CPU_HZ,
                       help=f"Emulated CPU rate, sets timer tick spacing (default: {CPU_HZ})")
    p_run.add_argument("--seed", type=int, default=None,
                       help="Seed for the RND instruction")
    p_run.add_argument("--keys", type=_key_list, default=[],
                       help="Comma-separated hex keys held down for the whole run, e.g. 1,A")
    p_run.add_argument("--break", dest="breakpoints", type=_hex_address,
                       action="append", default=[],
                       help="Stop before executing this address (hex, repeatable)")
    p_run.add_argument("--trace", action="store_true",
                       help="Print every executed instruction")
    p_run.add_argument("--screen", action="store_true",
                       help="Print the framebuffer when stopped")
    p_run.add_argument("--regs", action="store_true",
                       help="Print registers, stack and timers when stopped")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a ROM")
    p_dis.add_argument("rom", help="ROM file (.ch8)")
    p_dis.add_argument("--start", type=_hex_address, default=None,
                       help="First address to list (hex, default: 0x200)")
    p_dis.add_argument("--count", type=int, default=None,
                       help="Number of words to list (default: all)")
    p_dis.add_argument("-o", "--output", help="Output file (default: stdout)")

    # ── info ─────────────────────────────────────────────────────────────
    p_info = sub.add_parser("info", help="Summarize a ROM file")
    p_info.add_argument("rom", help="ROM file (.ch8)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    if args.verbose or args.log_dir:
        level = logging.DEBUG if args.verbose > 1 else logging.INFO
        setup_logging(console_level=level if args.verbose else logging.WARNING,
                      log_dir=Path(args.log_dir) if args.log_dir else None)

    handler = COMMANDS[args.command]
    try:
        return handler(args)
    except Chip8Error as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def _parse_hex(s):
    """Parse hex string with optional 0x or $ prefix."""
    if s is None:
        return None
    s = s.strip()
    if s.startswith("0x") or s.startswith("0X"):
        return int(s, 16)
    if s.startswith("$"):
        return int(s[1:], 16)
    return int(s, 16)


def _hex_address(s):
    """argparse type: hex address inside the 4K address space."""
    try:
        addr = _parse_hex(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hex address: {s!r}")
    if not 0 <= addr < MEM_SIZE:
        raise argparse.ArgumentTypeError(f"address ${addr:X} is outside $000-${MEM_SIZE - 1:03X}")
    return addr


def _key_list(s):
    """argparse type: comma-separated hex key indices, e.g. '1,A'."""
    keys = []
    for part in filter(None, (p.strip() for p in s.split(","))):
        try:
            key = int(part, 16)
        except ValueError:
            raise argparse.ArgumentTypeError(f"not a hex key: {part!r}")
        if not 0 <= key < NUM_KEYS:
            raise argparse.ArgumentTypeError(f"key {part} is outside 0-F")
        keys.append(key)
    return keys


def _read_rom(path) -> bytes:
    path = Path(path)
    if not path.is_file():
        raise RomNotFound(path)
    return path.read_bytes()


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    config = RunConfig(cpu_hz=args.cpu_hz, seed=args.seed, trace=args.trace)
    vm = Interpreter()
    vm.load_rom_file(args.rom)

    for key in args.keys:
        vm.set_key(key, True)
    for bp in args.breakpoints:
        vm.add_breakpoint(bp)

    reason = vm.run(args.cycles, config)

    if args.trace:
        print("\n".join(vm.trace_output))
    print(f"Stopped:  {reason.value} after {vm.cycles} cycles at PC=${vm.regs.PC:03X}")
    if vm.fatal_error is not None:
        print(f"Error:    {vm.fatal_error}")
    if args.screen:
        print(vm.display.render_text("#", "."))
    if args.regs:
        _print_registers(vm)

    return 1 if reason == StopReason.ERROR else 0


def _print_registers(vm):
    """Debugger view: V registers, I/PC/stack, timers."""
    console = Console()
    regs = Table(title="Registers")
    for i in range(16):
        regs.add_column(f"V{i:X}", justify="right")
    regs.add_row(*(f"{v:02X}" for v in vm.regs.V))
    console.print(regs)

    state = Table(show_header=False)
    state.add_column("Name")
    state.add_column("Value")
    state.add_row("PC", f"${vm.regs.PC:03X}")
    state.add_row("I", f"${vm.regs.I:03X}")
    state.add_row("Stack", " ".join(f"${a:03X}" for a in vm.regs.stack_view()) or "(empty)")
    state.add_row("DT / ST", f"{vm.timers.delay} / {vm.timers.sound}")
    state.add_row("Key-wait", f"V{vm.keys.awaiting:X}" if vm.waiting_for_key else "-")
    console.print(state)


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    data = _read_rom(args.rom)
    lines = disassemble(data, PROGRAM_START)

    start = PROGRAM_START if args.start is None else args.start
    first = max(0, (start - PROGRAM_START) // 2)
    last = None if args.count is None else first + args.count
    lines = lines[first:last]

    output = "\n".join(lines)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output + "\n")
        print(f"Disassembled {len(lines)} words -> {args.output}")
    else:
        print(output)
    return 0


# ── info ─────────────────────────────────────────────────────────────────
def cmd_info(args):
    data = _read_rom(args.rom)
    size = len(data)

    print(f"File:     {args.rom}")
    print(f"Size:     {size} bytes (limit {MAX_ROM_SIZE})")
    print(f"MD5:      {hashlib.md5(data).hexdigest()}")
    if size > MAX_ROM_SIZE:
        print(f"Fits:     NO ({size - MAX_ROM_SIZE} bytes too large)")
    else:
        print(f"Fits:     yes ({MAX_ROM_SIZE - size} bytes free)")
    print(f"End:      ${PROGRAM_START + size - 1:03X}" if size else "End:      (empty)")

    ops = Counter()
    for addr, word in iter_words(data, PROGRAM_START):
        try:
            ops[decode(word).op.value] += 1
        except UnknownOpcode:
            ops["(data)"] += 1
    print("Opcodes:")
    for name, count in ops.most_common():
        print(f"  {name:<8} {count}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "disasm": cmd_disasm,
    "info": cmd_info,
}


if __name__ == "__main__":
    sys.exit(main())
