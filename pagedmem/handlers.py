"""Request handlers for the CPU, kernel and I/O connections."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Mapping

from .access import resolve_read_request, resolve_write_request
from .config import MemoryConfig
from .paging import OutOfMemoryError
from .processes import InvalidInstructionError, ProcessNotFoundError, ProcessRegistry
from .protocol import (
    Buffer,
    OpCode,
    Packet,
    ProtocolError,
    receive_buffer,
    receive_message,
    receive_operation,
    receive_string_list,
)
from .user_space import UserSpace

logger = logging.getLogger("pagedmem")

Handler = Callable[["MemoryState", Buffer], "Packet | None"]

_RECOVERABLE = (LookupError, ProtocolError, OutOfMemoryError, ValueError)


@dataclass
class MemoryState:
    """Everything the handlers share: settings, user space and processes."""

    config: MemoryConfig
    space: UserSpace = field(init=False)
    registry: ProcessRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.space = UserSpace(self.config.memory_size, self.config.page_size)
        self.registry = ProcessRegistry(self.space.frames)


def _reply(state: MemoryState, op_code: int) -> Packet:
    """Wait the configured delay and start a reply packet."""
    state.config.delay()
    return Packet(op_code)


def page_size_packet(state: MemoryState) -> Packet:
    """The packet that tells the CPU the page size."""
    packet = Packet(OpCode.MEMORY_INFO)
    packet.buffer.add_int(state.config.page_size)
    return packet


def handle_instruction_request(state: MemoryState, buffer: Buffer) -> Packet | None:
    """Answer (pid, ip) with the instruction; no reply if there is none."""
    pid = buffer.take_int()
    ip = buffer.take_int()
    try:
        process = state.registry.get(pid)
    except ProcessNotFoundError:
        logger.error("No se encontró el proceso con PID: %d", pid)
        return None
    try:
        instruction = state.registry.instruction_at(process, ip)
    except InvalidInstructionError:
        logger.error(
            "No se encontró la instrucción en el IP: %d para el PID: %d", ip, pid
        )
        return None
    logger.info("Proceso [PID: %d, IP: %d]: %s", pid, ip, instruction)
    packet = _reply(state, OpCode.INSTRUCTION_REQUEST)
    packet.buffer.add_string(instruction)
    return packet


def handle_page_request(state: MemoryState, buffer: Buffer) -> Packet:
    """Answer (pid, page) with the number of the frame holding that page."""
    pid = buffer.take_int()
    page_number = buffer.take_int()
    process = state.registry.get(pid)
    frame_number = state.space.frames.frame_of_page(process, page_number)
    packet = _reply(state, OpCode.PAGE_REQUEST)
    packet.buffer.add_int(frame_number)
    return packet


def handle_resize(state: MemoryState, buffer: Buffer) -> Packet:
    """Answer (pid, size) with 1 on success or -1 when memory runs out."""
    pid = buffer.take_int()
    new_size = buffer.take_int()
    process = state.registry.get(pid)
    try:
        state.space.resize(process, new_size)
        result = 1
    except OutOfMemoryError:
        result = -1
    packet = _reply(state, OpCode.RESIZE_REPLY)
    packet.buffer.add_int(result)
    return packet


def handle_read(state: MemoryState, buffer: Buffer, reply_code: int) -> Packet:
    """Answer a block read with the text read, or "ERROR"."""
    text = resolve_read_request(state.space, state.registry, buffer)
    packet = _reply(state, reply_code)
    packet.buffer.add_string(text)
    return packet


def handle_write(state: MemoryState, buffer: Buffer, reply_code: int) -> Packet:
    """Answer a block write with "OK" or "ERROR"."""
    result = resolve_write_request(state.space, state.registry, buffer)
    packet = _reply(state, reply_code)
    packet.buffer.add_string(result)
    return packet


def handle_create_process(state: MemoryState, buffer: Buffer) -> Packet:
    """Create a process from (path, pid) and acknowledge with 1."""
    path = buffer.take_string()
    pid = buffer.take_int()
    state.registry.create(pid, path)
    packet = _reply(state, OpCode.INIT_STRUCTURES_REPLY)
    packet.buffer.add_int(1)
    return packet


def handle_release_process(state: MemoryState, buffer: Buffer) -> Packet:
    """Destroy the process (pid); answer 0, or -1 if it was not found."""
    pid = buffer.take_int()
    try:
        state.registry.remove(pid)
        result = 0
    except ProcessNotFoundError:
        logger.error("Erorr: el proceso con el PID: <%d> no fue encontrado", pid)
        result = -1
    packet = _reply(state, OpCode.RELEASE_STRUCTURES_REPLY)
    packet.buffer.add_int(result)
    return packet


def _serve(
    state: MemoryState,
    sock: socket.socket,
    handlers: Mapping[int, Handler],
    name: str,
) -> None:
    """Dispatch requests on ``sock`` until the peer disconnects."""
    while True:
        code = receive_operation(sock)
        if code is None:
            logger.error("SE DESCONECTO %s", name)
            return
        handler = handlers.get(code)
        if handler is None:
            logger.error("NO ES UNA OPERACION: %s", code)
            continue
        try:
            buffer = receive_buffer(sock)
        except (OSError, ProtocolError) as error:
            logger.error("%s: could not read request: %s", name, error)
            sock.close()
            return
        try:
            reply = handler(state, buffer)
        except _RECOVERABLE as error:
            logger.error("%s: request %s failed: %s", name, code, error)
            continue
        if reply is not None:
            reply.send(sock)


def serve_cpu(state: MemoryState, sock: socket.socket) -> None:
    """Send the page size, then answer CPU requests until it disconnects."""
    page_size_packet(state).send(sock)
    handlers: dict[int, Handler] = {
        OpCode.INSTRUCTION_REQUEST: handle_instruction_request,
        OpCode.PAGE_REQUEST: handle_page_request,
        OpCode.WRITE_BLOCK: partial(handle_write, reply_code=OpCode.WRITE_BLOCK),
        OpCode.READ_BLOCK: partial(handle_read, reply_code=OpCode.READ_BLOCK),
        OpCode.RESIZE: handle_resize,
    }
    _serve(state, sock, handlers, "CPU")


def serve_io(state: MemoryState, sock: socket.socket) -> None:
    """Answer I/O read and write requests until the module disconnects."""
    handlers: dict[int, Handler] = {
        OpCode.IO_STDOUT_READ: partial(handle_read, reply_code=OpCode.IO_STDOUT_READ),
        OpCode.IO_STDIN_WRITE: partial(handle_write, reply_code=OpCode.IO_STDIN_WRITE),
    }
    _serve(state, sock, handlers, "E/S")


def serve_kernel(state: MemoryState, sock: socket.socket) -> None:
    """Create and release processes for the kernel until it disconnects."""
    logger.info("Esperando KERNEL")

    def create(state: MemoryState, buffer: Buffer) -> Packet:
        reply = handle_create_process(state, buffer)
        logger.info("Se solicitó crear proceso")
        return reply

    handlers: dict[int, Handler] = {
        OpCode.INIT_STRUCTURES: create,
        OpCode.RELEASE_STRUCTURES: handle_release_process,
    }
    _serve(state, sock, handlers, "KERNEL")


def listen_messages(sock: socket.socket, name: str) -> list[str]:
    """Log plain messages and string packages until ``name`` disconnects.

    Returns every text received, in order.
    """
    received: list[str] = []
    while True:
        logger.debug("MEMORIA: ESPERANDO MENSAJES DE %s...", name)
        code = receive_operation(sock)
        if code is None:
            logger.error("%s se desconecto. Terminando servidor", name)
            return received
        if code == OpCode.MESSAGE:
            received.append(receive_message(sock))
        elif code == OpCode.PACKAGE:
            values = receive_string_list(sock)
            logger.info("Me llegaron los siguientes mensajes:")
            for value in values:
                logger.info("%s", value)
            received.extend(values)
        else:
            logger.warning("Operacion desconocida")