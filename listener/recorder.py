"""Sound detection, amplification and the recording loop."""

from __future__ import annotations

import logging
import socket
import subprocess
import time
from array import array
from datetime import datetime
from typing import Iterable, MutableSequence, Sequence

from .audio import AudioSource
from .config import Settings
from .filters import Filter
from .soundfile import SoundWriter, open_writer
from .utils import ListenerError, get_ts, write_all

log = logging.getLogger("listener")

_NO_LIMIT = 9999999.0


def _to_short(value: float) -> int:
    value = int(value)
    if value > 32767:
        return 32767
    if value < -32768:
        return -32768
    return value


def _replace(samples: MutableSequence[int], values: list[int]) -> None:
    if isinstance(samples, array):
        samples[:] = array(samples.typecode, values)
    else:
        samples[:] = values


def check_for_sound(samples: Iterable[int], detect_level: int) -> int:
    """Count the samples whose magnitude is above *detect_level*."""
    return sum(1 for sample in samples if abs(sample) > detect_level)


class Amplifier:
    """Scales samples by a factor that follows the signal's headroom."""

    def __init__(self, start: float = 1.0, max_amplify: float = 2.0, fixed: bool = False) -> None:
        self.factor = start
        self.max_amplify = max_amplify
        self.fixed = fixed

    def apply(self, samples: MutableSequence[int]) -> float:
        """Amplify *samples* in place and return the factor that was used.

        Unless the factor is fixed, it moves halfway towards the largest
        gain that keeps these samples from clipping, capped at the maximum.
        """
        if not self.fixed:
            headroom = min((abs(32767.0 / s) for s in samples if s), default=_NO_LIMIT)
            headroom = min(headroom, _NO_LIMIT)
            self.factor = (self.factor + min(self.max_amplify, headroom)) / 2
        factor = self.factor
        _replace(samples, [_to_short(s * factor) for s in samples])
        return factor


def make_filename(
    template: str | None,
    wav_path: str,
    now: datetime | None = None,
    hostname: str | None = None,
) -> str:
    """Build the name of a new recording.

    Without a template the name is ``<wav_path>/YYYY-MM-DD_HHMMSS.wav``.
    A template is appended directly to *wav_path* and may use %h (host),
    %H, %M, %S, %s (epoch seconds), %y (year), %m, %d and %% (kept as %%).
    """
    if now is None:
        now = datetime.now()
    if template is None:
        return (
            f"{wav_path}/{now.year:04d}-{now.month:02d}-{now.day:02d}_"
            f"{now.hour:02d}{now.minute:02d}{now.second:02d}.wav"
        )

    expanders = {
        "H": lambda: f"{now.hour:02d}",
        "M": lambda: f"{now.minute:02d}",
        "S": lambda: f"{now.second:02d}",
        "s": lambda: str(int(now.timestamp())),
        "y": lambda: f"{now.year:02d}",
        "m": lambda: f"{now.month:02d}",
        "d": lambda: f"{now.day:02d}",
        "%": lambda: "%%",
    }
    parts = [wav_path]
    chars = iter(template)
    for char in chars:
        if char != "%":
            parts.append(char)
            continue
        code = next(chars, "")
        if code == "h":
            if hostname is None:
                try:
                    hostname = socket.gethostname()
                except OSError as exc:
                    raise ListenerError(f"Error finding hostname: {exc}") from exc
            parts.append(hostname)
        elif code in expanders:
            parts.append(expanders[code]())
        else:
            log.error("%%%s is unknown", code)
    return "".join(parts)


class Recorder:
    """Watches an audio source and records whenever sound is heard."""

    def __init__(self, settings: Settings, source: AudioSource, filters: Sequence[Filter] = ()) -> None:
        self.settings = settings
        self.source = source
        self.filters = list(filters)
        self.clock = time.monotonic
        self.ring: list[array | None] = [None] * settings.pr_n_seconds
        self.cur_buffer = 0
        self._stopping = False
        self._children: list[subprocess.Popen] = []

    @property
    def _verbose(self) -> bool:
        return self.settings.do_not_fork

    @property
    def _chatty(self) -> bool:
        return self.settings.do_not_fork and not self.settings.silent

    def stop(self) -> None:
        """Ask the recorder to finish after the second it is working on."""
        self._stopping = True

    def _spawn(self, args: list[str]) -> None:
        self._children = [child for child in self._children if child.poll() is None]
        log.info("Starting childprocess: %s", args[0])
        if self._verbose:
            print(f"Starting childprocess: {args[0]}")
        try:
            self._children.append(subprocess.Popen(args))
        except OSError as exc:
            log.error("Failed to start childprocess %s: %s", args[0], exc)

    def _process_file(self, fname: str) -> None:
        if self.settings.exec_command:
            self._spawn([self.settings.exec_command, fname])

    def _start_file(self) -> tuple[SoundWriter, str]:
        s = self.settings
        fname = make_filename(s.fname_template, s.wav_path, datetime.now())
        writer = open_writer(fname, s.sample_rate, s.channels, s.format, s.compression)
        log.info("Started recording to %s", fname)
        if self._verbose:
            print(f"Started recording to {fname}")
        return writer, fname

    @staticmethod
    def _start_pipe(command: str) -> subprocess.Popen:
        try:
            return subprocess.Popen(["/bin/sh", "-c", command], stdin=subprocess.PIPE)
        except OSError as exc:
            raise ListenerError("error forking") from exc

    def _amplify(self, amplifier: Amplifier, samples: MutableSequence[int]) -> None:
        factor = amplifier.apply(samples)
        if self._verbose and not amplifier.fixed:
            print(f"New factor: {factor:f}", end="\r")

    @staticmethod
    def _store(writer: SoundWriter | None, pipe: subprocess.Popen | None, samples: Sequence[int]) -> None:
        if pipe is not None and pipe.stdin is not None:
            write_all(pipe.stdin.fileno(), array("h", samples).tobytes())
            return
        if writer is not None:
            written = writer.write(samples)
            if written != len(samples):
                raise ListenerError(f"failed to write to wav-file: {writer.path} ({written})")

    def record(self) -> None:
        """Record until it has been quiet long enough, starting with the buffered seconds."""
        s = self.settings
        if s.on_event_start:
            self._spawn([s.on_event_start])
        amplifier = Amplifier(s.start_amplify, s.max_amplify, s.fixed_amplify)
        if self._chatty:
            print("Sound detected")

        pipe: subprocess.Popen | None = None
        writer: SoundWriter | None = None
        fname: str | None = None
        if s.output_pipe:
            pipe = self._start_pipe(s.output_pipe)
        else:
            writer, fname = self._start_file()

        start = file_start = detected = now = self.clock()
        try:
            if self._chatty:
                print("Writing pre-sound data to disk")
            size = len(self.ring)
            for offset in range(size):
                buffered = self.ring[(self.cur_buffer + 1 + offset) % size]
                if buffered is None:
                    continue
                if s.amplify:
                    self._amplify(amplifier, buffered)
                self._store(writer, pipe, buffered)

            if self._chatty:
                print("Started recording...")

            while not self._stopping:
                buffer = self.source.read_second()
                raw = None if s.safe_after_filter else array(buffer.typecode, buffer)
                for sample_filter in self.filters:
                    if self._verbose:
                        print("* filter * ", end="")
                    sample_filter.apply(buffer, s.sample_rate)

                count = check_for_sound(buffer, s.detect_level) // s.channels
                if self._verbose:
                    print("Silence?" if count < s.min_triggers else f"Sound {get_ts():f}")

                out = buffer if raw is None else raw
                if s.amplify:
                    self._amplify(amplifier, out)
                self._store(writer, pipe, out)

                now = self.clock()
                if (
                    count < s.min_triggers
                    and now - start > s.min_duration
                    and now - detected > s.rec_silence
                ):
                    if self._verbose:
                        print(f"Stopped recording: {count} peaks")
                    break
                if count >= s.min_triggers:
                    detected = now
                if s.max_duration != -1 and now - file_start > s.max_duration:
                    if self._verbose:
                        print("Splitting up audio-file")
                    if writer is not None and fname is not None:
                        writer.close()
                        self._process_file(fname)
                        writer, fname = self._start_file()
                    file_start = now
        finally:
            if writer is not None:
                writer.close()
            if pipe is not None and pipe.stdin is not None:
                pipe.stdin.close()
                self._children.append(pipe)
            self.ring = [None] * len(self.ring)

        if fname is not None:
            self._process_file(fname)

        seconds = int(now - start)
        log.info("Stopped recording (%d seconds)", seconds)
        if self._verbose:
            print(f"Stopped recording ({seconds} seconds)")

    def run(self) -> None:
        """Listen second by second and record whenever enough samples are loud."""
        s = self.settings
        log.info("listener started")
        while not self._stopping:
            buffer = self.source.read_second()
            self.ring[self.cur_buffer] = buffer
            for sample_filter in self.filters:
                sample_filter.apply(buffer, s.sample_rate)
            if check_for_sound(buffer, s.detect_level) >= s.min_duration:
                self.record()
                if s.one_shot:
                    self._stopping = True
            self.cur_buffer = (self.cur_buffer + 1) % len(self.ring)