"""Cabal address and network endpoint helpers."""

from __future__ import annotations

import string


def to_hex(addr: bytes) -> str:
    """Render a cabal address as lowercase hex, two digits per byte."""
    return addr.hex()


def from_hex(text: str) -> bytes | None:
    """Parse a hex cabal address.

    An odd trailing digit is read as a single nibble, so ``"abc"`` gives
    ``b"\\xab\\x0c"``.  Returns ``None`` for empty or non-hex input.
    """
    if not text or any(ch not in string.hexdigits for ch in text):
        return None
    result = bytearray()
    for i in range(0, len(text), 2):
        pair = text[i : i + 2]
        result.append(int(pair, 16))
    return bytes(result)


def parse_host_port(text: str, default_host: str | None = None) -> tuple[str, int] | None:
    """Split ``HOST:PORT`` (or bare ``PORT`` when *default_host* is given).

    Returns ``None`` when the text is malformed or the port is out of range.
    """
    host, sep, port_text = text.rpartition(":")
    if not sep:
        if default_host is None:
            return None
        host = default_host
    elif not host:
        if default_host is None:
            return None
        host = default_host
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not port_text.isdigit():
        return None
    port = int(port_text)
    if not 0 <= port < 65536:
        return None
    return host, port
