"""Frames, page tables and the frame table for simple paging."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator

logger = logging.getLogger("pagedmem")


class OutOfMemoryError(Exception):
    """Raised when no free frame is left."""


@dataclass
class PageTableEntry:
    """Maps one page of a process to the frame that holds it."""

    page_number: int
    frame_number: int


@dataclass(eq=False)
class Process:
    """A process known to memory: its instructions, size and page table."""

    pid: int
    path: str | None = None
    size: int = 0
    instructions: list[str] = field(default_factory=list)
    page_table: list[PageTableEntry] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_page(self, page_number: int, frame_number: int) -> PageTableEntry:
        """Append a page table entry and return it."""
        entry = PageTableEntry(page_number, frame_number)
        with self.lock:
            self.page_table.append(entry)
        return entry


@dataclass(eq=False)
class Frame:
    """One frame of user space."""

    number: int
    base: int
    free: bool = True
    process: object | None = None
    page_number: int = 0
    used: int = 0
    has_room: bool = True

    def assign(self, process: object, page_number: int) -> None:
        """Give the frame to ``process`` as page ``page_number``, empty."""
        self.page_number = page_number
        self.process = process
        self.used = 0
        self.has_room = True

    def release(self) -> None:
        """Make the frame free again."""
        self.free = True
        self.process = None
        self.used = 0
        self.has_room = True


class FrameTable:
    """All frames of user space, in order of their numbers."""

    def __init__(self, memory_size: int, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page size must be positive")
        if memory_size < 0:
            raise ValueError("memory size must not be negative")
        self.memory_size = memory_size
        self.page_size = page_size
        self.lock = threading.Lock()
        self.frames = [
            Frame(number, page_size * number) for number in range(memory_size // page_size)
        ]

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def get(self, number: int) -> Frame:
        """Return the frame with ``number``."""
        if not 0 <= number < len(self.frames):
            raise IndexError(f"no frame number {number}")
        with self.lock:
            return self.frames[number]

    def _first_free(self) -> Frame | None:
        return next((frame for frame in self.frames if frame.free), None)

    def take_free(self) -> Frame:
        """Mark the first free frame as taken and return it."""
        with self.lock:
            frame = self._first_free()
            if frame is None:
                logger.error("Error: out of memory")
                raise OutOfMemoryError("no free frame left")
            frame.free = False
            return frame

    def try_reserve_for(self, owner: object) -> bool:
        """Reserve the first free frame for ``owner``; False if none is free."""
        with self.lock:
            frame = self._first_free()
            if frame is None:
                return False
            frame.free = False
            frame.process = owner
            return True

    def pages_needed(self, size: int) -> int:
        """Number of pages that ``size`` bytes take up."""
        return -(-size // self.page_size)

    def frame_of_page(self, process: Process, page_number: int) -> int:
        """Frame number that page ``page_number`` of ``process`` lives in."""
        with process.lock:
            if not 0 <= page_number < len(process.page_table):
                raise IndexError(
                    f"PID {process.pid} has no page number {page_number}"
                )
            return process.page_table[page_number].frame_number

    def assign_first_frame(self, process: Process) -> Frame:
        """Give a process with an empty table its page 0."""
        frame = self.take_free()
        frame.assign(process, 0)
        process.add_page(0, frame.number)
        return frame

    def frame_number_for_address(self, address: int) -> int:
        """Frame number that a physical address falls in."""
        return address // self.page_size