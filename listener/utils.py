"""Shared helpers: the fatal error type, config line reading, tokens, timestamps and fd I/O."""

from __future__ import annotations

import os
import re
import time
from typing import IO, Iterator

_FIRST_WORD = re.compile(r"[^ \t]*")


class ListenerError(Exception):
    """A fatal condition that stops the listener."""


def read_lines(stream: IO) -> Iterator[str]:
    """Yield the lines of *stream* with line feeds and carriage returns removed.

    Reading stops at the end of the input or at the first empty line.
    Binary streams are decoded as UTF-8.
    """
    for raw in stream:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="surrogateescape")
        text = raw[:-1] if raw.endswith("\n") else raw
        text = text.replace("\r", "")
        if not text:
            return
        yield text


def get_token(text: str) -> str:
    """Return the first word of *text*, words being separated by spaces or tabs."""
    match = _FIRST_WORD.match(text.lstrip(" \t"))
    return match.group() if match else ""


def get_ts() -> float:
    """Return the current time as seconds since the epoch."""
    return time.time()


def write_all(fd: int, data) -> int:
    """Write all of *data* to *fd*; return the number of bytes written."""
    view = memoryview(data).cast("B")
    written = 0
    while written < len(view):
        try:
            count = os.write(fd, view[written:])
        except InterruptedError:
            continue
        except OSError as exc:
            raise ListenerError("error while write()") from exc
        if count == 0:
            break
        written += count
    return written


def read_exact(fd: int, size: int) -> bytes:
    """Read *size* bytes from *fd*, or fewer if end of input comes first."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        try:
            chunk = os.read(fd, remaining)
        except InterruptedError:
            continue
        except OSError as exc:
            raise ListenerError("error while read()") from exc
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)