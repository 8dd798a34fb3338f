"""Paged memory server: frames and page tables, a process instruction store and a TCP protocol."""

__version__ = "0.1.0"