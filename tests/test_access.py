import pytest

from pagedmem.access import (
    AccessDeniedError,
    can_access,
    read,
    read_block,
    resolve_read_request,
    resolve_write_request,
    write,
    write_block,
)
from pagedmem.processes import ProcessNotFoundError, ProcessRegistry
from pagedmem.protocol import Buffer, ProtocolError
from pagedmem.user_space import UserSpace

PAGE = 16
MEMORY = 64


@pytest.fixture
def setup(tmp_path):
    space = UserSpace(MEMORY, PAGE)
    registry = ProcessRegistry(space.frames)
    first = registry.create(1, str(tmp_path / "missing1"))
    space.grow(first, 20)
    second = registry.create(2, str(tmp_path / "missing2"))
    space.grow(second, 10)
    return space, registry, first, second


def _request(pid, address, size):
    buffer = Buffer()
    buffer.add_int(pid)
    buffer.add_int(address)
    buffer.add_int(size)
    return buffer


def test_owner_can_access_its_frames(setup):
    space, _, first, second = setup
    first_frames = [e.frame_number for e in first.page_table]
    second_frames = [e.frame_number for e in second.page_table]
    for number in first_frames:
        assert can_access(space, first, number * PAGE, 1) is True
        assert can_access(space, second, number * PAGE, 1) is False
    for number in second_frames:
        assert can_access(space, second, number * PAGE + 3, 1) is True
        assert can_access(space, first, number * PAGE + 3, 1) is False


def test_unassigned_frame_is_denied(setup):
    space, _, first, second = setup
    used = {e.frame_number for e in first.page_table + second.page_table}
    free = next(n for n in range(len(space.frames)) if n not in used)
    assert can_access(space, first, free * PAGE, 1) is False


def test_negative_address_is_denied(setup):
    space, _, first, _ = setup
    assert can_access(space, first, -1, 1) is False


def test_write_then_read_round_trip_across_pages():
    space = UserSpace(MEMORY, PAGE)
    data = b"spans two pages!"
    write(space, data, PAGE - 4)
    assert read(space, PAGE - 4, len(data)) == data
    assert space.memory[PAGE - 4:PAGE - 4 + len(data)] == data


def test_read_of_zero_bytes_is_empty():
    space = UserSpace(MEMORY, PAGE)
    assert read(space, 5, 0) == b""


def test_read_past_end_raises():
    space = UserSpace(MEMORY, PAGE)
    with pytest.raises(IndexError):
        read(space, MEMORY - 2, 10)


def test_write_past_end_leaves_memory_untouched():
    space = UserSpace(MEMORY, PAGE)
    with pytest.raises(IndexError):
        write(space, b"x" * 10, MEMORY - 2)
    assert space.memory == bytearray(MEMORY)


def test_block_round_trip_for_owner(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE + 2
    write_block(space, registry, 1, address, b"data")
    assert read_block(space, registry, 1, address, 4) == b"data"


def test_block_access_denied_for_other_process(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    with pytest.raises(AccessDeniedError):
        write_block(space, registry, 2, address, b"data")
    with pytest.raises(AccessDeniedError):
        read_block(space, registry, 2, address, 4)
    assert read(space, address, 4) == bytes(4)


def test_block_unknown_pid(setup):
    space, registry, _, _ = setup
    with pytest.raises(ProcessNotFoundError):
        read_block(space, registry, 99, 0, 1)


def test_resolve_write_then_read(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    request = _request(1, address, 5)
    request.add_bytes(b"hello")
    assert resolve_write_request(space, registry, request) == "OK"
    assert resolve_read_request(space, registry, _request(1, address, 5)) == "hello"


def test_resolve_read_stops_at_nul(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    write(space, b"ab\0cd", address)
    assert resolve_read_request(space, registry, _request(1, address, 5)) == "ab"


def test_resolve_requests_denied(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    request = _request(2, address, 3)
    request.add_bytes(b"xyz")
    assert resolve_write_request(space, registry, request) == "ERROR"
    assert resolve_read_request(space, registry, _request(2, address, 3)) == "ERROR"
    assert read(space, address, 3) == bytes(3)


def test_resolve_write_with_short_data(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    request = _request(1, address, 8)
    request.add_bytes(b"ab")
    with pytest.raises(ProtocolError):
        resolve_write_request(space, registry, request)


def test_resolve_write_truncates_to_size(setup):
    space, registry, first, _ = setup
    address = first.page_table[0].frame_number * PAGE
    request = _request(1, address, 3)
    request.add_string("abcdef")
    assert resolve_write_request(space, registry, request) == "OK"
    assert read(space, address, 4) == b"abc\0"