# pagedmem

A memory server for a small teaching operating system. It keeps the
instructions of every process, manages a user space split into fixed-size
frames with simple paging, and answers requests from a CPU, a kernel and
I/O modules over TCP.

## Installing

```
pip install .
```

## Configuration

The server reads a `KEY=VALUE` file. Blank lines and lines starting with `#`
are skipped; all six keys are required, and the three size and delay keys
must be integers (`pagedmem.config.parse_config` raises `ValueError`
otherwise).

```
PUERTO_ESCUCHA=8002
IP_MEMORIA=127.0.0.1
TAM_MEMORIA=4096
TAM_PAGINA=32
PATH_INSTRUCCIONES=/path/to/scripts
RETARDO_RESPUESTA=1000
```

- `PUERTO_ESCUCHA` — the port the server listens on, on every interface.
- `TAM_MEMORIA`, `TAM_PAGINA` — user space size and frame size in bytes.
- `RETARDO_RESPUESTA` — delay in milliseconds applied before every reply.
- `IP_MEMORIA`, `PATH_INSTRUCCIONES` — read into `MemoryConfig.ip` and
  `MemoryConfig.instructions_path`; the server does not otherwise use them.
  Instruction files are opened at the path the kernel sends.

## Running

```
pagedmem [CONFIG] [--log FILE] [--extra-log FILE]
```

`CONFIG` defaults to `Memoria.config`; the logs default to `Memoria.log` and
`Memoria_extra_log.log` and are also written to the console. The server
accepts clients until it is stopped, serving each on its own thread.

## Protocol

All integers are 4-byte little-endian. A packet is
`op_code | size | stream`; a stream is a sequence of `length | payload`
items, where integers are 4-byte payloads and strings are UTF-8 with a
terminating NUL.

A client connects, sends the bare `HANDSHAKE` op code and receives the
integer `1`. It then sends an `IDENTIFY` packet holding one integer, a
`ModuleId` (`CPU`, `KERNEL` or `IO`), and is served as that module:

| Module | Request (fields) | Reply |
|---|---|---|
| CPU | on connect | `MEMORY_INFO` (page size) |
| CPU | `INSTRUCTION_REQUEST` (pid, ip) | the instruction string; no reply if the process or instruction is missing |
| CPU | `PAGE_REQUEST` (pid, page) | frame number |
| CPU | `RESIZE` (pid, size) | `RESIZE_REPLY`: `1`, or `-1` when out of memory |
| CPU | `READ_BLOCK` (pid, address, size) | text read up to the first NUL, or `"ERROR"` |
| CPU | `WRITE_BLOCK` (pid, address, size, data) | `"OK"` or `"ERROR"` |
| Kernel | `INIT_STRUCTURES` (path, pid) | `INIT_STRUCTURES_REPLY`: `1` |
| Kernel | `RELEASE_STRUCTURES` (pid) | `RELEASE_STRUCTURES_REPLY`: `0`, or `-1` if not found |
| I/O | `IO_STDOUT_READ` (pid, address, size) | as `READ_BLOCK` |
| I/O | `IO_STDIN_WRITE` (pid, address, size, data) | as `WRITE_BLOCK` |

Unknown op codes are logged and skipped. A request that fails (unknown PID,
bad page number, malformed buffer) is logged and gets no reply.

A read or write is allowed when the frame holding the address is in the
process's page table and owned by it; it may run on into following frames.

## Using it as a library

```python
from pagedmem.protocol import Buffer, Packet, OpCode

packet = Packet(OpCode.INSTRUCTION_REQUEST)
packet.buffer.add_int(1)   # pid
packet.buffer.add_int(0)   # instruction pointer
data = packet.serialize()

reply = Buffer(bytearray(data[8:]))
assert reply.take_int() == 1
```

The pieces:

- `pagedmem.protocol` — `OpCode`, `ModuleId`, `Buffer`, `Packet` and socket
  helpers (`start_server`, `wait_for_client`, `create_connection`,
  `receive_operation`, `receive_buffer`, `send_message`, …).
- `pagedmem.config` — `MemoryConfig`, `parse_config`, `load_config`,
  `configure_logging`.
- `pagedmem.paging` — `Process`, `Frame`, `FrameTable`, `OutOfMemoryError`.
- `pagedmem.processes` — `ProcessRegistry` and `read_instructions`.
- `pagedmem.user_space` — `UserSpace` with `grow`, `shrink` and `resize`.
- `pagedmem.access` — `can_access`, `read`, `write`, `read_block`,
  `write_block` and the request resolvers.
- `pagedmem.handlers` — `MemoryState`, the request handlers and
  `serve_cpu`, `serve_kernel`, `serve_io`, `listen_messages`.
- `pagedmem.server` — `greet_client`, `identify_client`, `serve_forever`,
  `main`.

## What it does not do

This package is the memory server only. It has no CPU, kernel or I/O
clients and no command for sending requests; those modules must be
supplied separately, speaking the protocol above.

## Tests

```
pip install .[test]
pytest
```