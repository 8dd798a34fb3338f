"""Reading and writing user space on behalf of processes."""

from __future__ import annotations

import logging

from .paging import Process
from .processes import ProcessRegistry
from .protocol import Buffer, ProtocolError
from .user_space import UserSpace

logger = logging.getLogger("pagedmem")

OK = "OK"
ERROR = "ERROR"


class AccessDeniedError(PermissionError):
    """Raised when a process touches an address outside its own frames."""


def can_access(space: UserSpace, process: Process, address: int, size: int) -> bool:
    """Whether ``process`` may read or write ``size`` bytes at ``address``.

    Access is granted when the frame holding ``address`` is in the page table
    of ``process`` and that frame belongs to it; the size does not narrow the
    decision further.
    """
    if address < 0 or size < 0:
        return False
    frame_number = space.frames.frame_number_for_address(address)
    with process.lock:
        in_table = any(
            entry.frame_number == frame_number for entry in process.page_table
        )
    if not in_table:
        return False
    if frame_number >= len(space.frames):
        return False
    with space.frames.lock:
        owner = space.frames.frames[frame_number].process
    return getattr(owner, "pid", None) == process.pid


def _chunks(space: UserSpace, address: int, size: int) -> list[tuple[int, int]]:
    """Split an access into ``(start, length)`` pieces, one per frame."""
    if address < 0:
        raise ValueError(f"negative address {address}")
    if size < 0:
        raise ValueError(f"negative size {size}")
    page_size = space.page_size
    number = space.frames.frame_number_for_address(address)
    offset = address % page_size
    remaining = size
    pieces = []
    while remaining > 0:
        frame = space.frames.get(number)
        length = min(remaining, page_size - offset)
        pieces.append((frame.base + offset, length))
        remaining -= length
        number += 1
        offset = 0
    return pieces


def read(space: UserSpace, address: int, size: int) -> bytes:
    """Return ``size`` bytes of user space starting at ``address``."""
    pieces = _chunks(space, address, size)
    data = bytearray()
    for start, length in pieces:
        with space.lock:
            data += space.memory[start:start + length]
    return bytes(data)


def write(space: UserSpace, data: bytes, address: int) -> None:
    """Store ``data`` in user space starting at ``address``."""
    pieces = _chunks(space, address, len(data))
    written = 0
    for start, length in pieces:
        with space.lock:
            space.memory[start:start + length] = data[written:written + length]
        written += length


def read_block(
    space: UserSpace, registry: ProcessRegistry, pid: int, address: int, size: int
) -> bytes:
    """Read ``size`` bytes at ``address`` for the process ``pid``."""
    process = registry.get(pid)
    if not can_access(space, process, address, size):
        raise AccessDeniedError(f"PID {pid} may not read at address {address}")
    data = read(space, address, size)
    logger.info(
        "PID: <%d> - Accion <LEER> - Direccion Fisica: <%d>- Tamaño: <%d>",
        pid, address, size,
    )
    return data


def write_block(
    space: UserSpace, registry: ProcessRegistry, pid: int, address: int, data: bytes
) -> None:
    """Write ``data`` at ``address`` for the process ``pid``."""
    process = registry.get(pid)
    if not can_access(space, process, address, len(data)):
        logger.error(
            "ERROR: No tiene permitido leer en la direccion: <%d>", address
        )
        raise AccessDeniedError(f"PID {pid} may not write at address {address}")
    write(space, data, address)
    logger.info(
        "PID: <%d> - Accion <ESCRIBIR> - Direccion Fisica: <%d>- Tamaño: <%d>",
        pid, address, len(data),
    )


def resolve_read_request(
    space: UserSpace, registry: ProcessRegistry, buffer: Buffer
) -> str:
    """Serve a read request (pid, address, size) and return the text to send.

    The text ends at the first NUL byte read; a denied access gives "ERROR".
    """
    pid = buffer.take_int()
    address = buffer.take_int32()
    size = buffer.take_int()
    try:
        data = read_block(space, registry, pid, address, size)
    except AccessDeniedError:
        return ERROR
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def resolve_write_request(
    space: UserSpace, registry: ProcessRegistry, buffer: Buffer
) -> str:
    """Serve a write request (pid, address, size, data); return "OK" or "ERROR"."""
    pid = buffer.take_int()
    address = buffer.take_int32()
    size = buffer.take_int()
    if size < 0:
        raise ProtocolError(f"negative write size {size}")
    data = buffer.take_bytes()
    if len(data) < size:
        raise ProtocolError(f"write of {size} bytes carries only {len(data)}")
    try:
        write_block(space, registry, pid, address, data[:size])
    except AccessDeniedError:
        return ERROR
    return OK