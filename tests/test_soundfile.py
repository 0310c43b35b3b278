import struct
import sys
import wave
from array import array

import pytest

from listener.soundfile import (
    Compression,
    OutputFormat,
    SoundWriter,
    get_compression_type,
    get_format_type,
    open_writer,
)
from listener.utils import ListenerError


@pytest.mark.parametrize(
    "name, expected",
    [("wav", OutputFormat.WAV), ("AIFF", OutputFormat.AIFF), ("WaveX", OutputFormat.WAVEX)],
)
def test_get_format_type(name, expected):
    assert get_format_type(name) is expected


def test_get_format_type_unknown():
    with pytest.raises(ListenerError):
        get_format_type("mp3")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("u-law", Compression.ULAW),
        ("A-LAW", Compression.ALAW),
        ("GSM-6.10", Compression.GSM610),
        ("g723_40", Compression.G723_40),
    ],
)
def test_get_compression_type(name, expected):
    assert get_compression_type(name) is expected


@pytest.mark.parametrize("name", ["pcm-16", "flac", ""])
def test_get_compression_type_unknown(name):
    with pytest.raises(ListenerError):
        get_compression_type(name)


def test_wav_pcm_round_trip(tmp_path):
    path = tmp_path / "out.wav"
    samples = array("h", [0, 1, -1, 32767, -32768, 1234] * 10)
    with open_writer(str(path), 8000, 2, OutputFormat.WAV, Compression.PCM_16) as writer:
        assert writer.write(samples) == len(samples)
        assert writer.write(samples) == len(samples)
    with wave.open(str(path), "rb") as reader:
        assert reader.getnchannels() == 2
        assert reader.getframerate() == 8000
        assert reader.getsampwidth() == 2
        assert reader.getnframes() == len(samples)
        data = array("h", reader.readframes(reader.getnframes()))
    if sys.byteorder == "big":
        data.byteswap()
    assert list(data) == list(samples) * 2


def test_wav_contains_software_string(tmp_path):
    path = tmp_path / "out.wav"
    with open_writer(str(path), 8000, 1, OutputFormat.WAV, Compression.PCM_16) as writer:
        writer.write([1, 2, 3])
    content = path.read_bytes()
    assert b"Generated with listener v" in content
    assert struct.unpack("<I", content[4:8])[0] == len(content) - 8


def test_wav_ulaw_header_and_silence(tmp_path):
    path = tmp_path / "out.wav"
    with open_writer(str(path), 8000, 1, OutputFormat.WAV, Compression.ULAW) as writer:
        writer.write([0, 0, 0])
    content = path.read_bytes()
    assert content[:4] == b"RIFF"
    assert struct.unpack("<H", content[20:22])[0] == 7
    data_pos = content.index(b"data")
    assert struct.unpack("<I", content[data_pos + 4:data_pos + 8])[0] == 3
    assert content[data_pos + 8:data_pos + 11] == b"\xff\xff\xff"
    assert len(content) % 2 == 0


def test_raw_pcm_is_little_endian(tmp_path):
    path = tmp_path / "out.raw"
    samples = [1, -2, 300]
    with open_writer(str(path), 8000, 1, OutputFormat.RAW, Compression.PCM_16) as writer:
        writer.write(samples)
    assert path.read_bytes() == struct.pack("<3h", *samples)


def test_raw_ulaw_extremes(tmp_path):
    path = tmp_path / "out.raw"
    with open_writer(str(path), 8000, 1, OutputFormat.RAW, Compression.ULAW) as writer:
        writer.write([32767, -32768])
    assert path.read_bytes() == b"\x80\x00"


def test_raw_alaw_silence_and_peak(tmp_path):
    path = tmp_path / "out.raw"
    with open_writer(str(path), 8000, 1, OutputFormat.RAW, Compression.ALAW) as writer:
        writer.write([0, 32767])
    assert path.read_bytes() == b"\xd5\xaa"


def test_au_header_patched_on_close(tmp_path):
    path = tmp_path / "out.au"
    samples = [5, -5, 100, -100]
    with open_writer(str(path), 11025, 1, OutputFormat.AU, Compression.PCM_16) as writer:
        writer.write(samples)
    content = path.read_bytes()
    magic, offset, size, encoding, rate, channels = struct.unpack(">4sIIIII", content[:24])
    assert magic == b".snd"
    assert size == len(samples) * 2
    assert rate == 11025
    assert channels == 1
    assert content[offset:] == struct.pack(">4h", *samples)


def test_aiff_sample_rate_and_frames(tmp_path):
    path = tmp_path / "out.aiff"
    samples = [7, -7] * 5
    with open_writer(str(path), 44100, 2, OutputFormat.AIFF, Compression.PCM_16) as writer:
        writer.write(samples)
    content = path.read_bytes()
    assert content[:4] == b"FORM" and content[8:12] == b"AIFF"
    comm = content.index(b"COMM") + 8
    channels, frames, bits = struct.unpack(">hIh", content[comm:comm + 8])
    assert (channels, frames, bits) == (2, 5, 16)
    assert content[comm + 8:comm + 18] == b"\x40\x0e\xac\x44\x00\x00\x00\x00\x00\x00"
    ssnd = content.index(b"SSND")
    assert content[ssnd + 16:] == struct.pack(">10h", *samples)
    assert struct.unpack(">I", content[4:8])[0] == len(content) - 8


def test_unsupported_format_raises(tmp_path):
    with pytest.raises(ListenerError):
        open_writer(str(tmp_path / "x.voc"), 8000, 1, OutputFormat.VOC, Compression.PCM_16)


def test_unsupported_compression_for_aiff(tmp_path):
    with pytest.raises(ListenerError):
        open_writer(str(tmp_path / "x.aiff"), 8000, 1, OutputFormat.AIFF, Compression.ULAW)


def test_unwritable_path_raises(tmp_path):
    with pytest.raises(ListenerError):
        open_writer(str(tmp_path / "missing" / "x.wav"), 8000, 1, OutputFormat.WAV, Compression.PCM_16)


def test_write_after_close_raises(tmp_path):
    writer = open_writer(str(tmp_path / "x.wav"), 8000, 1, OutputFormat.WAV, Compression.PCM_16)
    assert isinstance(writer, SoundWriter)
    writer.close()
    writer.close()
    with pytest.raises(ListenerError):
        writer.write([1])