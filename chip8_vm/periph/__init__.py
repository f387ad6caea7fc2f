"""Peripherals: timers, framebuffer, keypad."""
