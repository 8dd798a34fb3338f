"""Configuration and logging set-up for the memory server."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("pagedmem")

_STRING_KEYS = {
    "PUERTO_ESCUCHA": "port",
    "PATH_INSTRUCCIONES": "instructions_path",
    "IP_MEMORIA": "ip",
}
_INT_KEYS = {
    "TAM_MEMORIA": "memory_size",
    "TAM_PAGINA": "page_size",
    "RETARDO_RESPUESTA": "response_delay",
}


@dataclass(frozen=True)
class MemoryConfig:
    """Settings read from the memory configuration file."""

    port: str
    memory_size: int
    page_size: int
    instructions_path: str
    response_delay: int
    ip: str

    def delay(self) -> None:
        """Sleep for the configured response delay (milliseconds)."""
        time.sleep(self.response_delay / 1000)


def parse_config(text: str) -> MemoryConfig:
    """Parse ``KEY=VALUE`` lines; blank lines and ``#`` comments are skipped."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            raise ValueError(f"malformed configuration line: {line!r}")
        values[key.strip()] = value.strip()

    fields: dict[str, object] = {}
    for key, name in {**_STRING_KEYS, **_INT_KEYS}.items():
        if key not in values:
            raise ValueError(f"missing configuration key {key}")
        fields[name] = values[key]
    for key, name in _INT_KEYS.items():
        try:
            fields[name] = int(values[key])
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {values[key]!r}") from None
    return MemoryConfig(**fields)


def load_config(path: str | Path) -> MemoryConfig:
    """Read and parse the configuration file at ``path``."""
    config = parse_config(Path(path).read_text(encoding="utf-8"))
    logger.info("PUERTO ESCUCHA: %s", config.port)
    return config


def _reset(target: logging.Logger) -> None:
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()


def configure_logging(
    main_log: str | Path, extra_log: str | Path
) -> tuple[logging.Logger, logging.Logger]:
    """Send the main and extra loggers to their files and to the console."""
    formatter = logging.Formatter("[%(levelname)s] %(asctime)s %(name)s: %(message)s")
    loggers = []
    for name, path in (("pagedmem", main_log), ("pagedmem_extra", extra_log)):
        target = logging.getLogger(name)
        _reset(target)
        target.setLevel(logging.DEBUG)
        target.propagate = False
        for handler in (logging.FileHandler(path, encoding="utf-8"), logging.StreamHandler()):
            handler.setFormatter(formatter)
            target.addHandler(handler)
        loggers.append(target)
    return loggers[0], loggers[1]