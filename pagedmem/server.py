"""The memory server: accepts modules, greets them and serves their requests."""

from __future__ import annotations

import argparse
import logging
import socket
import struct
import sys
import threading
from typing import Callable, Sequence

from .config import configure_logging, load_config
from .handlers import MemoryState, serve_cpu, serve_io, serve_kernel
from .protocol import (
    ModuleId,
    OpCode,
    ProtocolError,
    receive_buffer,
    receive_operation,
    start_server,
    wait_for_client,
)

logger = logging.getLogger("pagedmem")

SERVER_NAME = "Memoria"
HANDSHAKE_OK = 1

_MODULE_SERVERS: dict[ModuleId, tuple[str, Callable[[MemoryState, socket.socket], None]]] = {
    ModuleId.CPU: ("CPU", serve_cpu),
    ModuleId.KERNEL: ("Kernel", serve_kernel),
    ModuleId.IO: ("E/S", serve_io),
}


def identify_client(state: MemoryState, sock: socket.socket) -> ModuleId | None:
    """Read the client's identification and serve it as that module.

    Returns the module that was served, or ``None`` when the client did not
    identify itself as a module this server handles.
    """
    code = receive_operation(sock)
    if code is None:
        logger.error("Error: Se desconceto cliente en  IDENTIFICACION")
        return None
    if code != OpCode.IDENTIFY:
        logger.error("Error: Operacion desconocida en IDENTIFICACION")
        return None
    try:
        module_code = receive_buffer(sock).take_int()
    except (OSError, ProtocolError) as error:
        logger.error("Error: identificacion invalida: %s", error)
        return None
    try:
        module = ModuleId(module_code)
    except ValueError:
        logger.error("Error: modulo desconocido %d", module_code)
        return None
    served = _MODULE_SERVERS.get(module)
    if served is None:
        logger.error("Error: modulo %s no atendido por memoria", module.name)
        return None
    name, serve = served
    logger.info("%s se conecto correctamente", name)
    serve(state, sock)
    return module


def greet_client(state: MemoryState, sock: socket.socket) -> ModuleId | None:
    """Answer the handshake and then serve the client as the module it names.

    Returns the module served, or ``None`` if the handshake or the
    identification failed.
    """
    code = receive_operation(sock)
    if code is None:
        logger.error("Error: Se desconceto cliente en HANDSHAKE")
        return None
    if code != OpCode.HANDSHAKE:
        logger.error("Error: Operacion desconocida en HANDSHAKE")
        return None
    sock.sendall(struct.pack("<i", HANDSHAKE_OK))
    return identify_client(state, sock)


def _attend(state: MemoryState, sock: socket.socket) -> None:
    with sock:
        try:
            greet_client(state, sock)
        except OSError as error:
            logger.error("Conexion perdida: %s", error)


def serve_forever(state: MemoryState, server: socket.socket) -> int:
    """Accept clients, each in its own thread, until ``server`` is closed.

    Returns the number of clients accepted.
    """
    logger.info("%s servidor comenzando", SERVER_NAME)
    accepted = 0
    while True:
        try:
            client = wait_for_client(server, SERVER_NAME)
        except socket.timeout:
            if server.fileno() == -1:
                return accepted
            continue
        except OSError:
            return accepted
        accepted += 1
        worker = threading.Thread(target=_attend, args=(state, client), daemon=True)
        worker.start()
        logger.info("[THREAD] Estableciendo hilo para soporte")


def main(argv: Sequence[str] | None = None) -> int:
    """Start the memory server from a configuration file."""
    parser = argparse.ArgumentParser(prog="pagedmem", description="Paged memory server.")
    parser.add_argument("config", nargs="?", default="Memoria.config",
                        help="configuration file (default: Memoria.config)")
    parser.add_argument("--log", default="Memoria.log", help="main log file")
    parser.add_argument("--extra-log", default="Memoria_extra_log.log",
                        help="extra log file")
    args = parser.parse_args(argv)

    configure_logging(args.log, args.extra_log)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as error:
        print(f"Error: No se pudo crear el config para la memoria: {error}", file=sys.stderr)
        return 1

    state = MemoryState(config)
    try:
        server = start_server(config.port, f"Iniciado servidor: {SERVER_NAME}")
    except OSError as error:
        logger.error("No se pudo iniciar el servidor: %s", error)
        return 1
    with server:
        try:
            serve_forever(state, server)
        except KeyboardInterrupt:
            logger.info("Servidor detenido")
    return 0