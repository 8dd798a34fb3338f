import socket
import struct

import pytest

from pagedmem.config import MemoryConfig
from pagedmem.handlers import (
    MemoryState,
    handle_create_process,
    handle_instruction_request,
    handle_page_request,
    handle_read,
    handle_release_process,
    handle_resize,
    handle_write,
    listen_messages,
    page_size_packet,
    serve_cpu,
    serve_io,
    serve_kernel,
)
from pagedmem.processes import ProcessNotFoundError
from pagedmem.protocol import (
    Buffer,
    OpCode,
    Packet,
    receive_buffer,
    receive_operation,
    send_message,
)

PAGE = 16


@pytest.fixture
def state():
    config = MemoryConfig(
        port="0",
        memory_size=64,
        page_size=PAGE,
        instructions_path="",
        response_delay=0,
        ip="127.0.0.1",
    )
    return MemoryState(config)


@pytest.fixture
def program(tmp_path):
    path = tmp_path / "program.txt"
    path.write_text("SET AX 1\nSUM AX BX\nEXIT\n", encoding="utf-8")
    return str(path)


def _buffer(*items):
    buffer = Buffer()
    for item in items:
        if isinstance(item, str):
            buffer.add_string(item)
        elif isinstance(item, bytes):
            buffer.add_bytes(item)
        else:
            buffer.add_int(item)
    return buffer


def _create(state, pid, path):
    return handle_create_process(state, _buffer(path, pid))


def _read_packet(sock):
    code = receive_operation(sock)
    return code, receive_buffer(sock)


def test_page_size_packet_carries_page_size(state):
    packet = page_size_packet(state)
    assert packet.op_code == OpCode.MEMORY_INFO
    assert packet.buffer.take_int() == PAGE


def test_page_size_packet_wire_bytes(state):
    raw = page_size_packet(state).serialize()
    assert raw == struct.pack("<iiii", 25, 8, 4, PAGE)


def test_create_process_acknowledges(state, program):
    reply = _create(state, 7, program)
    assert reply.op_code == OpCode.INIT_STRUCTURES_REPLY
    assert reply.buffer.take_int() == 1
    assert 7 in state.registry


def test_instruction_request_returns_instruction(state, program):
    _create(state, 7, program)
    reply = handle_instruction_request(state, _buffer(7, 1))
    assert reply.op_code == OpCode.INSTRUCTION_REQUEST
    assert reply.buffer.take_string() == "SUM AX BX"


def test_instruction_request_out_of_range_gives_no_reply(state, program):
    _create(state, 7, program)
    assert handle_instruction_request(state, _buffer(7, 3)) is None


def test_instruction_request_unknown_pid_gives_no_reply(state):
    assert handle_instruction_request(state, _buffer(99, 0)) is None


def test_resize_grows_process(state, program):
    _create(state, 7, program)
    reply = handle_resize(state, _buffer(7, PAGE))
    assert reply.op_code == OpCode.RESIZE_REPLY
    assert reply.buffer.take_int() == 1
    assert state.registry.get(7).size == PAGE


def test_resize_out_of_memory(state, program):
    _create(state, 7, program)
    reply = handle_resize(state, _buffer(7, 1000))
    assert reply.buffer.take_int() == -1
    assert state.registry.get(7).size == 0


def test_page_request_returns_frame(state, program):
    _create(state, 7, program)
    handle_resize(state, _buffer(7, PAGE))
    process = state.registry.get(7)
    reply = handle_page_request(state, _buffer(7, 0))
    assert reply.op_code == OpCode.PAGE_REQUEST
    assert reply.buffer.take_int() == process.page_table[0].frame_number


def test_page_request_unknown_pid_raises(state):
    with pytest.raises(ProcessNotFoundError):
        handle_page_request(state, _buffer(42, 0))


def test_write_then_read_round_trip(state, program):
    _create(state, 7, program)
    handle_resize(state, _buffer(7, PAGE))
    address = state.registry.get(7).page_table[0].frame_number * PAGE
    write_reply = handle_write(
        state, _buffer(7, address, 4, b"hola"), OpCode.WRITE_BLOCK
    )
    assert write_reply.op_code == OpCode.WRITE_BLOCK
    assert write_reply.buffer.take_string() == "OK"
    read_reply = handle_read(state, _buffer(7, address, 4), OpCode.READ_BLOCK)
    assert read_reply.op_code == OpCode.READ_BLOCK
    assert read_reply.buffer.take_string() == "hola"


def test_write_outside_own_frames_is_denied(state, program):
    _create(state, 8, program)
    reply = handle_write(state, _buffer(8, 0, 4, b"hola"), OpCode.IO_STDIN_WRITE)
    assert reply.op_code == OpCode.IO_STDIN_WRITE
    assert reply.buffer.take_string() == "ERROR"


def test_release_process(state, program):
    _create(state, 7, program)
    reply = handle_release_process(state, _buffer(7))
    assert reply.op_code == OpCode.RELEASE_STRUCTURES_REPLY
    assert reply.buffer.take_int() == 0
    assert 7 not in state.registry


def test_release_unknown_process(state):
    reply = handle_release_process(state, _buffer(5))
    assert reply.buffer.take_int() == -1


def test_serve_cpu_over_socket(state, program):
    _create(state, 7, program)
    server, client = socket.socketpair()
    try:
        Packet(999).send(client)
        Packet(OpCode.INSTRUCTION_REQUEST, _buffer(7, 2)).send(client)
        client.shutdown(socket.SHUT_WR)
        serve_cpu(state, server)
        code, buffer = _read_packet(client)
        assert code == OpCode.MEMORY_INFO
        assert buffer.take_int() == PAGE
        code, buffer = _read_packet(client)
        assert code == OpCode.INSTRUCTION_REQUEST
        assert buffer.take_string() == "EXIT"
    finally:
        client.close()
        server.close()


def test_serve_kernel_over_socket(state, program):
    server, client = socket.socketpair()
    try:
        Packet(OpCode.INIT_STRUCTURES, _buffer(program, 3)).send(client)
        client.shutdown(socket.SHUT_WR)
        serve_kernel(state, server)
        code, buffer = _read_packet(client)
        assert code == OpCode.INIT_STRUCTURES_REPLY
        assert buffer.take_int() == 1
        assert 3 in state.registry
    finally:
        client.close()
        server.close()


def test_serve_io_over_socket(state, program):
    _create(state, 7, program)
    handle_resize(state, _buffer(7, PAGE))
    address = state.registry.get(7).page_table[0].frame_number * PAGE
    server, client = socket.socketpair()
    try:
        Packet(OpCode.IO_STDIN_WRITE, _buffer(7, address, 3, b"abc")).send(client)
        Packet(OpCode.IO_STDOUT_READ, _buffer(7, address, 3)).send(client)
        client.shutdown(socket.SHUT_WR)
        serve_io(state, server)
        code, buffer = _read_packet(client)
        assert code == OpCode.IO_STDIN_WRITE
        assert buffer.take_string() == "OK"
        code, buffer = _read_packet(client)
        assert code == OpCode.IO_STDOUT_READ
        assert buffer.take_string() == "abc"
    finally:
        client.close()
        server.close()


def test_listen_messages_collects_texts():
    server, client = socket.socketpair()
    try:
        send_message("hola", client)
        Packet(OpCode.PACKAGE, _buffer("a", "b")).send(client)
        client.shutdown(socket.SHUT_WR)
        assert listen_messages(server, "CPU") == ["hola", "a", "b"]
    finally:
        client.close()
        server.close()