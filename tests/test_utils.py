import io
import os
import time

import pytest

from listener.utils import ListenerError, get_token, get_ts, read_exact, read_lines, write_all


def test_read_lines_strips_cr_and_lf():
    stream = io.BytesIO(b"a=1\r\nb = 2\nc=3")
    assert list(read_lines(stream)) == ["a=1", "b = 2", "c=3"]


def test_read_lines_stops_at_empty_line():
    stream = io.BytesIO(b"first\n\nsecond\n")
    assert list(read_lines(stream)) == ["first"]


def test_read_lines_line_of_only_cr_ends_input():
    stream = io.BytesIO(b"one\n\r\ntwo\n")
    assert list(read_lines(stream)) == ["one"]


def test_read_lines_text_stream():
    stream = io.StringIO("x=1\ny=2\n")
    assert list(read_lines(stream)) == ["x=1", "y=2"]


def test_read_lines_empty_input():
    assert list(read_lines(io.BytesIO(b""))) == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("  \tfilter=abc", "filter=abc"),
        ("wav_path ", "wav_path"),
        ("detect_level\tfoo", "detect_level"),
        ("", ""),
        ("   ", ""),
    ],
)
def test_get_token(text, expected):
    assert get_token(text) == expected


def test_get_ts_is_current_time():
    before = time.time()
    stamp = get_ts()
    after = time.time()
    assert before <= stamp <= after


def test_write_all_and_read_exact_round_trip():
    read_fd, write_fd = os.pipe()
    try:
        payload = bytes(range(256)) * 4
        assert write_all(write_fd, payload) == len(payload)
        assert read_exact(read_fd, len(payload)) == payload
    finally:
        os.close(read_fd)
        os.close(write_fd)


def test_read_exact_returns_short_data_at_eof():
    read_fd, write_fd = os.pipe()
    try:
        write_all(write_fd, b"abc")
        os.close(write_fd)
        write_fd = None
        assert read_exact(read_fd, 10) == b"abc"
    finally:
        os.close(read_fd)
        if write_fd is not None:
            os.close(write_fd)


def test_write_all_accepts_array_buffer():
    from array import array

    samples = array("h", [1, -1, 300])
    read_fd, write_fd = os.pipe()
    try:
        assert write_all(write_fd, samples) == len(samples.tobytes())
        assert read_exact(read_fd, len(samples.tobytes())) == samples.tobytes()
    finally:
        os.close(read_fd)
        os.close(write_fd)


def test_write_all_to_bad_fd_raises():
    read_fd, write_fd = os.pipe()
    os.close(read_fd)
    os.close(write_fd)
    with pytest.raises(ListenerError):
        write_all(write_fd, b"data")