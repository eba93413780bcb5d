from __future__ import annotations

import re
from typing import Iterable

from sandbox_core.errors import InvalidPortSpecError


PORT_FORMAT_HINT = "Use PORT, HOST:CONTAINER, or IP:HOST:CONTAINER"
_ASCII_DIGITS = re.compile(r"[0-9]+")


def _parse_port(raw_value: str, *, label: str, spec: str) -> int:
    # ASCII digits only; str.isdigit also accepts superscripts and other scripts.
    token = str(raw_value or "")
    if _ASCII_DIGITS.fullmatch(token) is None:
        raise InvalidPortSpecError(f"Invalid {label} in port mapping {spec!r}. {PORT_FORMAT_HINT}")
    value = int(token, 10)
    if value > 65535:
        raise InvalidPortSpecError(f"Invalid {label} in port mapping {spec!r}. {PORT_FORMAT_HINT}")
    return value


def normalize_port_mapping(spec: str) -> str:
    parts = str(spec).split(":")
    if len(parts) == 1:
        port = _parse_port(parts[0], label="port number", spec=spec)
        return f"{port}:{port}"
    if len(parts) == 2:
        _parse_port(parts[0], label="host port", spec=spec)
        _parse_port(parts[1], label="container port", spec=spec)
        return spec
    if len(parts) == 3:
        _parse_port(parts[1], label="host port", spec=spec)
        _parse_port(parts[2], label="container port", spec=spec)
        return spec
    raise InvalidPortSpecError(f"Invalid port format: {spec}. {PORT_FORMAT_HINT}")


def normalize_port_mappings(specs: Iterable[str]) -> list[str]:
    return [normalize_port_mapping(spec) for spec in specs]
