"""Sources of 16-bit signed little-endian audio, read one second at a time."""

from __future__ import annotations

import subprocess
import sys
from abc import ABC, abstractmethod
from array import array
from typing import BinaryIO

from .utils import ListenerError

SAMPLE_BYTES = 2


def _decode(data: bytes) -> array:
    samples = array("h")
    samples.frombytes(data)
    if sys.byteorder != "little":
        samples.byteswap()
    return samples


def _read_full(stream: BinaryIO, size: int) -> bytes:
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class AudioSource(ABC):
    """Delivers interleaved 16-bit samples in blocks of one second."""

    rate: int
    channels: int

    def _check_spec(self, rate: int, channels: int) -> None:
        if rate < 1 or channels < 1:
            raise ListenerError(f"invalid sample spec: rate {rate}, channels {channels}")
        self.rate = rate
        self.channels = channels

    @property
    def second_bytes(self) -> int:
        """Number of bytes making up one second of audio."""
        return self.rate * self.channels * SAMPLE_BYTES

    @abstractmethod
    def read_second(self) -> array:
        """Return ``rate * channels`` samples."""

    def close(self) -> None:
        """Release the source."""

    def __enter__(self) -> "AudioSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StreamSource(AudioSource):
    """Reads raw samples from a binary stream such as a pipe."""

    def __init__(self, stream: BinaryIO, rate: int, channels: int) -> None:
        self._check_spec(rate, channels)
        self.stream = stream

    def read_second(self) -> array:
        """Read one second of samples; a short read is a stream error."""
        data = _read_full(self.stream, self.second_bytes)
        if len(data) < self.second_bytes:
            raise ListenerError("Stream error, exiting.")
        return _decode(data)


class PulseSource(AudioSource):
    """Records from the PulseAudio server through the ``parec`` client."""

    def __init__(self, rate: int, channels: int) -> None:
        self._check_spec(rate, channels)
        command = [
            "parec",
            "--format=s16le",
            f"--rate={rate}",
            f"--channels={channels}",
            "--client-name=listener",
            "--stream-name=record",
        ]
        try:
            self._process = subprocess.Popen(
                command, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL
            )
        except OSError as exc:
            raise ListenerError(f"pa_simple_new() failed: {exc}") from exc

    def read_second(self) -> array:
        """Read one second of samples from the recording stream."""
        stdout = self._process.stdout
        if stdout is None:
            raise ListenerError("Stream error, exiting.")
        try:
            data = _read_full(stdout, self.second_bytes)
        except OSError as exc:
            raise ListenerError(f"pa_simple_read() failed: {exc}") from exc
        if len(data) < self.second_bytes:
            raise ListenerError("pa_simple_read() failed: stream ended; Stream error, exiting.")
        return _decode(data)

    def close(self) -> None:
        """Stop the recording client."""
        process = self._process
        if process.stdout is not None:
            process.stdout.close()
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


def open_source(rate: int, channels: int, from_pipe: bool) -> AudioSource:
    """Open standard input when reading from a pipe, otherwise the sound server."""
    if from_pipe:
        return StreamSource(sys.stdin.buffer, rate, channels)
    return PulseSource(rate, channels)