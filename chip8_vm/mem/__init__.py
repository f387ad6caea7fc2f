"""Memory: 4K address space and built-in fontset."""
