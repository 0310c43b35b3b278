"""Output formats, compression types and writers for recorded audio."""

from __future__ import annotations

import struct
import sys
import time
from array import array
from enum import Enum
from typing import BinaryIO, Iterable

from .utils import ListenerError

SOFTWARE = "Generated with listener v2.0.0"


class OutputFormat(Enum):
    """Container formats accepted by the ``format`` setting."""

    WAV = "wav"
    AIFF = "aiff"
    AU = "au"
    RAW = "raw"
    SVX = "svx"
    NIST = "nist"
    VOC = "voc"
    IRCAM = "ircam"
    W64 = "w64"
    MAT4 = "mat4"
    MAT5 = "mat5"
    PVF = "pvf"
    XI = "xi"
    HTK = "htk"
    SDS = "sds"
    AVR = "avr"
    WAVEX = "wavex"


class Compression(Enum):
    """Sample encodings accepted by the ``compression`` setting."""

    PCM_16 = "pcm-16"
    ULAW = "u-law"
    ALAW = "a-law"
    IMA_ADPCM = "ima-adpcm"
    MS_ADPCM = "ms-adpcm"
    GSM610 = "gsm-6.10"
    G721_32 = "g721_32"
    G723_24 = "g723_24"
    G723_40 = "g723_40"


def get_format_type(name: str) -> OutputFormat:
    """Look up an output format by name, ignoring case."""
    try:
        return OutputFormat(name.lower())
    except ValueError:
        raise ListenerError(f"{name} is an unknown output format") from None


def get_compression_type(name: str) -> Compression:
    """Look up a compression type by name, ignoring case."""
    lowered = name.lower()
    if lowered != Compression.PCM_16.value:
        try:
            return Compression(lowered)
        except ValueError:
            pass
    raise ListenerError(f"{name} is not a known compression type")


def _ulaw(sample: int) -> int:
    sign = 0x80 if sample < 0 else 0
    magnitude = min(-sample if sign else sample, 32635) + 0x84
    exponent = (magnitude >> 7).bit_length() - 1
    mantissa = (magnitude >> (exponent + 3)) & 0x0F
    return ~(sign | (exponent << 4) | mantissa) & 0xFF


_ALAW_SEGMENT_ENDS = (0x1F, 0x3F, 0x7F, 0xFF, 0x1FF, 0x3FF, 0x7FF, 0xFFF)


def _alaw(sample: int) -> int:
    value = sample >> 3
    if value >= 0:
        mask = 0xD5
    else:
        mask = 0x55
        value = -value - 1
    segment = next((i for i, end in enumerate(_ALAW_SEGMENT_ENDS) if value <= end), 8)
    if segment >= 8:
        return 0x7F ^ mask
    shift = 1 if segment < 2 else segment
    return ((segment << 4) | ((value >> shift) & 0x0F)) ^ mask


def _chunk(chunk_id: bytes, payload: bytes, endian: str) -> bytes:
    pad = b"\0" if len(payload) % 2 else b""
    return chunk_id + struct.pack(endian + "I", len(payload)) + payload + pad


def _extended(value: int) -> bytes:
    """Encode a non-negative integer as an 80-bit IEEE extended float."""
    if value <= 0:
        return bytes(10)
    exponent = value.bit_length() - 1
    return struct.pack(">HQ", 16383 + exponent, value << (63 - exponent))


class SoundWriter:
    """Writes interleaved 16-bit samples to a sound file."""

    byteorder = "little"
    encodings: tuple[Compression, ...] = (Compression.PCM_16, Compression.ULAW, Compression.ALAW)

    def __init__(
        self, handle: BinaryIO, path: str, sample_rate: int, channels: int, compression: Compression
    ) -> None:
        self.path = path
        self.sample_rate = sample_rate
        self.channels = channels
        self.compression = compression
        self.date = time.ctime()
        self.data_bytes = 0
        self.samples_written = 0
        self._handle: BinaryIO | None = handle
        handle.write(self._header())

    @property
    def sample_width(self) -> int:
        return 2 if self.compression is Compression.PCM_16 else 1

    @property
    def frames(self) -> int:
        return self.data_bytes // (self.sample_width * self.channels)

    def _header(self) -> bytes:
        return b""

    def _encode(self, values: array) -> bytes:
        if self.compression is Compression.ULAW:
            return bytes(_ulaw(v) for v in values)
        if self.compression is Compression.ALAW:
            return bytes(_alaw(v) for v in values)
        if sys.byteorder != self.byteorder:
            values.byteswap()
        return values.tobytes()

    def write(self, samples: Iterable[int]) -> int:
        """Append *samples* to the file; return how many were written."""
        if self._handle is None:
            raise ListenerError(f"{self.path} is already closed")
        values = array("h", samples)
        payload = self._encode(values)
        try:
            self._handle.write(payload)
        except OSError as exc:
            raise ListenerError(f"failed to write to {self.path}: {exc}") from exc
        self.data_bytes += len(payload)
        self.samples_written += len(values)
        return len(values)

    def close(self) -> None:
        """Finish the header and close the file."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            if self.data_bytes % 2 and self._pads_data():
                handle.write(b"\0")
            header = self._header()
            if header:
                handle.seek(0)
                handle.write(header)
        finally:
            handle.close()

    def _pads_data(self) -> bool:
        return False

    def __enter__(self) -> "SoundWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class _RawWriter(SoundWriter):
    """Headerless little-endian samples."""


class _WavWriter(SoundWriter):
    _TAGS = {Compression.PCM_16: 1, Compression.ALAW: 6, Compression.ULAW: 7}

    def _pads_data(self) -> bool:
        return True

    def _header(self) -> bytes:
        tag = self._TAGS[self.compression]
        bits = self.sample_width * 8
        block = self.channels * self.sample_width
        fmt = struct.pack("<HHIIHH", tag, self.channels, self.sample_rate, self.sample_rate * block, block, bits)
        if tag != 1:
            fmt += struct.pack("<H", 0)
        chunks = _chunk(b"fmt ", fmt, "<")
        if tag != 1:
            chunks += _chunk(b"fact", struct.pack("<I", self.frames), "<")
        info = (
            b"INFO"
            + _chunk(b"ISFT", SOFTWARE.encode() + b"\0", "<")
            + _chunk(b"ICRD", self.date.encode() + b"\0", "<")
        )
        chunks += _chunk(b"LIST", info, "<")
        pad = self.data_bytes % 2
        riff_size = 4 + len(chunks) + 8 + self.data_bytes + pad
        return (
            b"RIFF" + struct.pack("<I", riff_size) + b"WAVE" + chunks
            + b"data" + struct.pack("<I", self.data_bytes)
        )


class _AuWriter(SoundWriter):
    byteorder = "big"
    _ENCODINGS = {Compression.ULAW: 1, Compression.PCM_16: 3, Compression.ALAW: 27}

    def _header(self) -> bytes:
        annotation = SOFTWARE.encode() + b"\0"
        annotation += b"\0" * (-len(annotation) % 8)
        return struct.pack(
            ">4sIIIII",
            b".snd",
            24 + len(annotation),
            self.data_bytes,
            self._ENCODINGS[self.compression],
            self.sample_rate,
            self.channels,
        ) + annotation


class _AiffWriter(SoundWriter):
    byteorder = "big"
    encodings = (Compression.PCM_16,)

    def _pads_data(self) -> bool:
        return True

    def _header(self) -> bytes:
        comm = struct.pack(">hIh", self.channels, self.frames, 16) + _extended(self.sample_rate)
        chunks = _chunk(b"COMM", comm, ">") + _chunk(b"ANNO", SOFTWARE.encode(), ">")
        pad = self.data_bytes % 2
        form_size = 4 + len(chunks) + 16 + self.data_bytes + pad
        return (
            b"FORM" + struct.pack(">I", form_size) + b"AIFF" + chunks
            + b"SSND" + struct.pack(">III", 8 + self.data_bytes, 0, 0)
        )


_WRITERS: dict[OutputFormat, type[SoundWriter]] = {
    OutputFormat.WAV: _WavWriter,
    OutputFormat.AU: _AuWriter,
    OutputFormat.AIFF: _AiffWriter,
    OutputFormat.RAW: _RawWriter,
}


def open_writer(
    path: str, sample_rate: int, channels: int, fmt: OutputFormat, compression: Compression
) -> SoundWriter:
    """Create *path* and return a writer for the given format and compression."""
    writer_class = _WRITERS.get(fmt)
    if (
        writer_class is None
        or compression not in writer_class.encodings
        or channels < 1
        or sample_rate < 1
    ):
        raise ListenerError(f"Could not create file {path}!")
    try:
        handle = open(path, "wb")
    except OSError as exc:
        raise ListenerError(f"Could not create file {path}!") from exc
    return writer_class(handle, str(path), sample_rate, channels, compression)