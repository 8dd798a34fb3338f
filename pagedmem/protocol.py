"""Wire protocol shared by the memory server and its clients.

A packet on the wire is ``op_code | size | stream`` where both header fields
are 4-byte little-endian signed integers. A stream built through
:class:`Buffer` is a sequence of ``length | payload`` items.
"""

from __future__ import annotations

import logging
import socket
import struct
from dataclasses import dataclass, field
from enum import IntEnum

logger = logging.getLogger("pagedmem")

_INT = struct.Struct("<i")
_UINT = struct.Struct("<I")
_HEADER = struct.Struct("<ii")


class OpCode(IntEnum):
    """Operation codes exchanged between modules."""

    MESSAGE = 0
    PACKAGE = 1
    HANDSHAKE = 2
    HANDSHAKE_REPLY = 3
    IDENTIFY = 4
    CREATE_PROCESS = 5
    CREATE_PROCESS_REPLY = 6
    INIT_STRUCTURES = 7
    INIT_STRUCTURES_REPLY = 8
    RELEASE_STRUCTURES = 9
    RELEASE_STRUCTURES_REPLY = 10
    EXECUTE_PROCESS = 11
    INTERRUPT = 12
    HANDLE_CPU_INSTRUCTION = 13
    HANDLE_INTERRUPT = 14
    WAIT = 15
    SIGNAL = 16
    QUANTUM_INTERRUPT = 17
    KERNEL_IO_HANDSHAKE = 18
    KERNEL_IO_INSTRUCTION_REPLY = 19
    IO_GENERIC_REPLY = 20
    IO_STDIN_REPLY = 21
    IO_STDOUT_REPLY = 22
    IO_STDIN_WRITE = 23
    IO_STDOUT_READ = 24
    MEMORY_INFO = 25
    INSTRUCTION_REQUEST = 26
    RESIZE_REPLY = 27
    PAGE_LOOKUP = 28
    PAGE_REQUEST = 29
    RESIZE = 30
    READ_BLOCK = 31
    WRITE_BLOCK = 32


class ModuleId(IntEnum):
    """Identifiers a client sends to tell the server which module it is."""

    MEMORY = 0
    IO = 1
    CPU = 2
    KERNEL = 3


class ProtocolError(Exception):
    """Raised when a buffer does not hold what the reader expects."""


@dataclass
class Buffer:
    """A growable stream of length-prefixed items, consumed from the front."""

    data: bytearray = field(default_factory=bytearray)

    def __post_init__(self) -> None:
        self.data = bytearray(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def add_bytes(self, data: bytes) -> None:
        """Append ``data`` preceded by its length."""
        self.data += _INT.pack(len(data))
        self.data += data

    def add_int(self, value: int) -> None:
        self.add_bytes(_INT.pack(value))

    def add_uint32(self, value: int) -> None:
        self.add_bytes(_UINT.pack(value))

    def add_string(self, text: str) -> None:
        """Append ``text`` as UTF-8 with a terminating NUL byte."""
        self.add_bytes(text.encode("utf-8") + b"\0")

    def take_bytes(self) -> bytes:
        """Remove and return the next length-prefixed item."""
        if not self.data:
            raise ProtocolError("tried to take an item from an empty buffer")
        if len(self.data) < _INT.size:
            raise ProtocolError("buffer too short for an item length")
        (length,) = _INT.unpack_from(self.data)
        if length < 0:
            raise ProtocolError("item length is negative")
        end = _INT.size + length
        if end > len(self.data):
            raise ProtocolError("item runs past the end of the buffer")
        item = bytes(self.data[_INT.size:end])
        del self.data[:end]
        return item

    def _take_struct(self, fmt: struct.Struct) -> int:
        item = self.take_bytes()
        if len(item) != fmt.size:
            raise ProtocolError(f"expected {fmt.size} bytes, got {len(item)}")
        return fmt.unpack(item)[0]

    def take_int(self) -> int:
        return self._take_struct(_INT)

    def take_int32(self) -> int:
        return self._take_struct(_INT)

    def take_uint32(self) -> int:
        return self._take_struct(_UINT)

    def take_string(self) -> str:
        """Remove the next item and decode it up to its first NUL byte."""
        return _decode_c_string(self.take_bytes())


@dataclass
class Packet:
    """An operation code together with its payload buffer."""

    op_code: int
    buffer: Buffer = field(default_factory=Buffer)

    def serialize(self) -> bytes:
        return _HEADER.pack(int(self.op_code), len(self.buffer)) + bytes(self.buffer.data)

    def send(self, sock: socket.socket) -> None:
        sock.sendall(self.serialize())


def _decode_c_string(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            raise ConnectionError("connection closed before the data arrived")
        chunks += chunk
    return bytes(chunks)


def _recv_stream(sock: socket.socket) -> bytes:
    (size,) = _INT.unpack(_recv_exact(sock, _INT.size))
    if size < 0:
        raise ProtocolError("received a negative stream size")
    return _recv_exact(sock, size)


def create_connection(host: str, port: str | int) -> socket.socket:
    """Open a TCP connection to ``host:port``."""
    return socket.create_connection((host, int(port)))


def start_server(port: str | int, name: str) -> socket.socket:
    """Bind a listening TCP socket on every interface at ``port``."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("", int(port)))
    server.listen(socket.SOMAXCONN)
    logger.debug("SERVER: %s", name)
    return server


def wait_for_client(server: socket.socket, name: str) -> socket.socket:
    """Block until a client connects and return its socket."""
    logger.info("Waiting for %s", name)
    client, _ = server.accept()
    logger.info("!! %s connected !!", name)
    return client


def receive_operation(sock: socket.socket) -> int | None:
    """Read an operation code; return ``None`` and close ``sock`` on disconnect.

    Known codes come back as :class:`OpCode`, unknown ones as plain ints.
    """
    try:
        raw = _recv_exact(sock, _INT.size)
    except OSError:
        sock.close()
        return None
    (code,) = _INT.unpack(raw)
    try:
        return OpCode(code)
    except ValueError:
        return code


def receive_buffer(sock: socket.socket) -> Buffer:
    """Read a size-prefixed stream into a :class:`Buffer`."""
    return Buffer(bytearray(_recv_stream(sock)))


def receive_message(sock: socket.socket) -> str:
    """Read a plain text message body and log it."""
    text = _decode_c_string(_recv_stream(sock))
    logger.info("Received message %s", text)
    return text


def receive_string_list(sock: socket.socket) -> list[str]:
    """Read a stream of length-prefixed strings."""
    buffer = receive_buffer(sock)
    values = []
    while buffer:
        values.append(buffer.take_string())
    return values


def send_message(text: str, sock: socket.socket) -> None:
    """Send ``text`` as a MESSAGE packet whose body is the NUL-terminated text."""
    body = Buffer(bytearray(text.encode("utf-8") + b"\0"))
    Packet(OpCode.MESSAGE, body).send(sock)