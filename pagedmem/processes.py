"""Process creation, lookup and destruction."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .paging import FrameTable, Process

logger = logging.getLogger("pagedmem")

_LINE_LIMIT = 511


class ProcessNotFoundError(LookupError):
    """Raised when no process has the requested PID."""


class InvalidInstructionError(IndexError):
    """Raised when an instruction pointer is out of range."""


def read_instructions(path: str | Path) -> list[str]:
    """Read one instruction per line; a missing file gives no instructions.

    Lines longer than 511 characters are read in pieces of that size, each
    piece becoming an instruction of its own.
    """
    try:
        with open(path, encoding="utf-8", newline="") as source:
            raw_lines = list(source)
    except OSError as error:
        logger.error("Instruction file not found: %s", error)
        return []

    instructions = []
    for raw in raw_lines:
        for start in range(0, len(raw), _LINE_LIMIT):
            piece = raw[start:start + _LINE_LIMIT]
            instructions.append(piece.removesuffix("\n"))
    return instructions


class ProcessRegistry:
    """The list of processes memory currently holds."""

    def __init__(self, frames: FrameTable) -> None:
        self.frames = frames
        self.processes: list[Process] = []
        self.lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.processes)

    def __contains__(self, pid: object) -> bool:
        with self.lock:
            return any(process.pid == pid for process in self.processes)

    def create(self, pid: int, path: str) -> Process:
        """Create a process with size 0 from the instructions at ``path``."""
        process = Process(pid=pid, path=path, instructions=read_instructions(path))
        with self.lock:
            self.processes.append(process)
        logger.info("PID: <%d>- Tamaño: <%d>", pid, len(process.page_table))
        return process

    def get(self, pid: int) -> Process:
        """Return the process with ``pid``."""
        with self.lock:
            found = next((p for p in self.processes if p.pid == pid), None)
        if found is None:
            logger.error("PID<%d> No encontrado en la lista de procesos", pid)
            raise ProcessNotFoundError(f"no process with PID {pid}")
        return found

    def instruction_at(self, process: Process, ip: int) -> str:
        """Return the instruction at index ``ip`` of ``process``."""
        if not 0 <= ip < len(process.instructions):
            logger.error(
                "PID: <%d> - Índice de instrucción  <%d> NO VALIDO", process.pid, ip
            )
            raise InvalidInstructionError(f"PID {process.pid} has no instruction {ip}")
        return process.instructions[ip]

    def destroy(self, process: Process) -> None:
        """Free the frames of ``process`` and drop it from the registry."""
        process.instructions.clear()
        with process.lock:
            pages = len(process.page_table)
            for entry in process.page_table:
                self.frames.get(entry.frame_number).release()
            process.page_table.clear()
        logger.info("PID: <%d> - Tamaño: <%d>", process.pid, pages)
        with self.lock:
            if process in self.processes:
                self.processes.remove(process)

    def remove(self, pid: int) -> int:
        """Destroy the process with ``pid`` and return how many pages it had."""
        process = self.get(pid)
        pages = self.frames.pages_needed(process.size)
        with self.lock:
            if process not in self.processes:
                logger.error("Erorr: el proceso con el PID: <%d> no fue encontrado", pid)
                raise ProcessNotFoundError(f"no process with PID {pid}")
            self.processes.remove(process)
        self.destroy(process)
        logger.info("DESTRUCCION DE: PID: <%d> - TAMANIO: <%d> ", pid, pages)
        return pages