"""Binary stream helpers shared by the container parsers."""

import io
import os
import struct
import typing

from .errors import StreamIOError

_UINT32_LE = struct.Struct("<I")


def _capability(handle, name: str) -> bool:
    check = getattr(handle, name, None)
    if check is None:
        return False
    try:
        return bool(check())
    except (OSError, ValueError):
        return False


def is_seekable(handle) -> bool:
    return _capability(handle, "seekable")


def is_readable(handle) -> bool:
    return _capability(handle, "readable")


def is_writable(handle) -> bool:
    return _capability(handle, "writable")


def ensure_input(stream) -> None:
    if not is_readable(stream):
        raise StreamIOError("Input stream is not readable")
    if not is_seekable(stream):
        raise StreamIOError("Input stream does not support seeking")


def ensure_output(stream) -> None:
    if not is_writable(stream):
        raise StreamIOError("Output stream is not writable")


def stream_length(stream) -> int:
    current = stream.tell()
    try:
        return stream.seek(0, os.SEEK_END)
    finally:
        stream.seek(current, os.SEEK_SET)


def read_exactly(stream, size: int) -> bytes:
    if size < 0:
        raise StreamIOError(f"Invalid read size {size}")
    parts: "typing.List[bytes]" = []
    remaining = size
    while remaining > 0:
        buf = stream.read(remaining)
        if not buf:
            got = size - remaining
            raise StreamIOError(f"Expected {size} bytes but stream ended after {got}")
        parts.append(buf)
        remaining -= len(buf)
    return b"".join(parts)


def read_uint32(stream) -> int:
    return _UINT32_LE.unpack(read_exactly(stream, 4))[0]


def read_chunk(stream) -> bytes:
    """Read a little-endian uint32 length prefix followed by that many bytes."""
    return read_exactly(stream, read_uint32(stream))


def skip(stream, count: int) -> None:
    stream.seek(count, io.SEEK_CUR)


__all__ = [
    "ensure_input",
    "ensure_output",
    "is_readable",
    "is_seekable",
    "is_writable",
    "read_chunk",
    "read_exactly",
    "read_uint32",
    "skip",
    "stream_length",
]
