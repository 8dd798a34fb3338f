"""User space: the memory bytes and the growing and shrinking of processes."""

from __future__ import annotations

import logging
import threading

from .paging import Frame, FrameTable, OutOfMemoryError, Process

logger = logging.getLogger("pagedmem")


class UserSpace:
    """The bytes of user memory together with the frames that divide them."""

    def __init__(self, memory_size: int, page_size: int) -> None:
        self.frames = FrameTable(memory_size, page_size)
        self.memory_size = memory_size
        self.page_size = page_size
        self.memory = bytearray(memory_size)
        self.lock = threading.Lock()
        logger.info("Memoria inicializada: Paginacion Simple.")

    def _last_frame(self, process: Process) -> Frame:
        """Frame of the last page of ``process``, giving it page 0 if it has none."""
        if not process.page_table:
            self.frames.assign_first_frame(process)
        with process.lock:
            entry = process.page_table[-1]
        return self.frames.get(entry.frame_number)

    def _release_reserved(self, owner: object) -> None:
        with self.frames.lock:
            for frame in self.frames:
                if frame.process is owner:
                    frame.release()

    def has_room(self, process: Process, amount: int) -> bool:
        """Whether ``amount`` more bytes fit for ``process``.

        A process without pages is given its first frame as a side effect.
        """
        last = self._last_frame(process)
        if last.has_room:
            amount -= self.page_size - last.used
        if amount <= 0:
            return True

        owner = object()
        try:
            for _ in range(self.frames.pages_needed(amount)):
                if not self.frames.try_reserve_for(owner):
                    return False
            return True
        finally:
            self._release_reserved(owner)

    def grow(self, process: Process, new_size: int) -> None:
        """Enlarge ``process`` to ``new_size`` bytes, taking frames as needed."""
        initial = process.size
        amount = new_size - initial
        if amount < 0:
            raise ValueError(f"cannot grow PID {process.pid} from {initial} to {new_size}")
        if not self.has_room(process, amount):
            logger.error("ERROR: Out Of Memory")
            raise OutOfMemoryError(
                f"PID {process.pid} cannot grow by {amount} bytes"
            )

        remaining = amount
        while remaining > 0:
            last = self._last_frame(process)
            if not last.has_room:
                frame = self.frames.take_free()
                page_number = last.page_number + 1
                frame.assign(process, page_number)
                process.add_page(page_number, frame.number)
                continue
            available = self.page_size - last.used
            if available <= remaining:
                last.used = self.page_size
                last.has_room = False
                remaining -= available
            else:
                last.used += remaining
                last.has_room = True
                remaining = 0

        process.size = new_size
        logger.info(
            "PID <%d> - Tamaño Actual: <%d> - Tamaño a Ampliar: <%d>",
            process.pid, initial, amount,
        )

    def shrink(self, process: Process, new_size: int) -> None:
        """Reduce ``process`` to ``new_size`` bytes, freeing emptied frames."""
        initial = process.size
        if not 0 <= new_size <= initial:
            raise ValueError(
                f"cannot shrink PID {process.pid} from {initial} to {new_size}"
            )
        amount = initial - new_size

        remaining = amount
        while remaining > 0 and process.page_table:
            with process.lock:
                entry = process.page_table[-1]
            frame = self.frames.get(entry.frame_number)
            if frame.used <= remaining:
                process.size -= frame.used
                remaining -= frame.used
                frame.release()
                with process.lock:
                    process.page_table.remove(entry)
            else:
                frame.used -= remaining
                frame.has_room = True
                process.size -= remaining
                remaining = 0

        logger.info(
            "PID <%d> - Tamaño Actual: <%d> - Tamaño a Reducir: <%d>",
            process.pid, initial, amount,
        )

    def resize(self, process: Process, new_size: int) -> None:
        """Grow or shrink ``process`` so that it holds ``new_size`` bytes."""
        if new_size > process.size:
            self.grow(process, new_size)
        else:
            self.shrink(process, new_size)