"""Command line entry point of the sound-activated recorder."""

from __future__ import annotations

import logging
import os
import re
import signal
import sys
from typing import Callable, Iterator, Sequence

from .audio import open_source
from .config import Settings, load_config
from .filters import load_filter
from .recorder import Recorder
from .soundfile import get_compression_type, get_format_type
from .utils import ListenerError

VERSION = "2.0.0"

log = logging.getLogger("listener")

_OPTSTRING = "oy:b:c:shS::r:l:m:C:e:w:d:x:t:fpz:Fa:"
_SHORT_BYTES = 2

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _atoi(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def _atof(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else 0.0


class _OptionError(ListenerError):
    """A command line option carries a value that is not accepted."""


# option -> (settings field, converter)
_VALUE_OPTIONS: dict[str, tuple[str, Callable[[str], object]]] = {
    "a": ("pidfile", str),
    "w": ("wav_path", str),
    "b": ("rec_silence", _atof),
    "e": ("exec_command", str),
    "y": ("on_event_start", str),
    "C": ("compression", get_compression_type),
    "t": ("format", get_format_type),
    "m": ("min_duration", _atof),
    "x": ("max_duration", _atof),
    "l": ("detect_level", _atoi),
    "r": ("sample_rate", _atoi),
    "z": ("channels", _atoi),
}

# option -> settings field switched on
_FLAG_OPTIONS = {
    "o": "one_shot",
    "f": "do_not_fork",
    "F": "fixed_amplify",
    "s": "silent",
    "p": "from_pipe",
}


def _option_kinds(spec: str) -> dict[str, int]:
    """Map each option letter to 0 (no value), 1 (required) or 2 (optional)."""
    kinds: dict[str, int] = {}
    for match in re.finditer(r"(\w)(:{0,2})", spec):
        kinds[match.group(1)] = len(match.group(2))
    return kinds


def _getopt(argv: Sequence[str], spec: str) -> Iterator[tuple[str, str | None]]:
    """Yield (option, value) pairs; unknown options and missing values come as "?"."""
    kinds = _option_kinds(spec)
    args = iter(argv)
    for arg in args:
        if arg == "--" or not arg.startswith("-") or arg == "-":
            return
        rest = arg[1:]
        while rest:
            opt, rest = rest[0], rest[1:]
            kind = kinds.get(opt)
            if kind is None:
                yield "?", None
            elif kind == 0:
                yield opt, None
            elif rest:
                yield opt, rest
                break
            elif kind == 1:
                value = next(args, None)
                yield ("?", None) if value is None else (opt, value)
                break
            else:
                yield opt, None
                break


def usage() -> str:
    """Return the usage text."""
    return (
        "\n"
        "Usage: listener [options]\n"
        "-C<compression>  Set WAV compression    -e<command>      Script to call after recording\n"
        "-r<rate>         Sample rate            -m<min_duration> Mini. duration to record (samples)\n"
        "-b<rec_silence>  how many seconds to keep recording after no sound is heard\n"
        "-c<configfile>   Configfile to use      -x<max_duration> Max. duration to record (seconds)\n"
        "-w<wave-dir>     Where to write .WAVs   -d<device>       DSP device to use (hw:0)\n"
        "-z<channels>     Number of channels (1 (default) or 2)\n"
        "-t<format>       Output format (see manual)\n"
        "-y<command>      Script to call as soon as the recording starts\n"
        "-F               use a fixed amplification factor\n"
        "-p               Read from pipe (together with splitaudio)\n"
        "-f               don't fork into the background\n"
        "-l<detect_level> Detect level           -a<pidfile>      file to write the pid in\n"
        "-s               Be silent              -h               This help text\n\n"
        "-o               exit after 1 recording\n"
    )


def parse_args(argv: Sequence[str]) -> tuple[Settings, set[str], bool]:
    """Parse the command line.

    Returns the settings, the names of the fields set explicitly (which the
    configuration file must not override) and whether help was asked for.
    """
    settings = Settings()
    explicit: set[str] = set()
    show_help = False
    for opt, value in _getopt(argv, _OPTSTRING):
        if opt in _VALUE_OPTIONS and value is not None:
            name, convert = _VALUE_OPTIONS[opt]
            try:
                setattr(settings, name, convert(value))
            except ListenerError as exc:
                raise _OptionError(str(exc)) from None
            explicit.add(name)
        elif opt in _FLAG_OPTIONS:
            name = _FLAG_OPTIONS[opt]
            setattr(settings, name, True)
            explicit.add(name)
        elif opt == "c" and value is not None:
            settings.configfile = value
        else:
            show_help = True
    return settings, explicit, show_help


def _daemonize() -> None:
    try:
        if os.fork() > 0:
            os._exit(0)
        os.setsid()
    except OSError as exc:
        raise ListenerError("problem becoming daemon process") from exc


def _show_settings(settings: Settings) -> None:
    print(f"Path:          {settings.wav_path}")
    print(f"Level:         {settings.detect_level}")
    print(f"Min duration:  {settings.min_duration:f}")
    print(f"Max duration:  {settings.max_duration:f}")
    print(f"Channels:      {settings.channels}")
    print(f"Number of seconds record before sound starts: {settings.pr_n_seconds}")
    if settings.amplify:
        if settings.fixed_amplify:
            print("Using fixed amplification")
        print(f"Start amplify: {settings.start_amplify:f}")
        if not settings.fixed_amplify:
            print(f"Max. amplify:  {settings.max_amplify:f}")
    if settings.from_pipe:
        print("Reading from pipe")


def _listen(settings: Settings, explicit: set[str]) -> int:
    load_config(settings, settings.configfile, explicit)
    if not settings.silent:
        _show_settings(settings)

    with open_source(settings.sample_rate, settings.channels, settings.from_pipe) as source:
        if not settings.silent:
            print(f"Samplerate:    {settings.sample_rate}")
        filters = [
            load_filter(spec, _SHORT_BYTES, settings.channels, settings.sample_rate)
            for spec in settings.filters
        ]

        if not settings.do_not_fork:
            _daemonize()
            if settings.pidfile:
                try:
                    with open(settings.pidfile, "w") as handle:
                        handle.write(str(os.getpid()))
                except OSError as exc:
                    raise ListenerError(f"cannot access pid-file {settings.pidfile}") from exc

        recorder = Recorder(settings, source, filters)
        previous = signal.signal(signal.SIGTERM, lambda *_: recorder.stop())
        try:
            recorder.run()
        finally:
            signal.signal(signal.SIGTERM, previous)

    if settings.pidfile:
        try:
            os.unlink(settings.pidfile)
        except OSError as exc:
            raise ListenerError(f"failed to delete pid-file ({settings.pidfile})") from exc
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the listener; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        settings, explicit, show_help = parse_args(args)
    except _OptionError as exc:
        print(exc, file=sys.stderr)
        return 2

    if not settings.silent:
        print(f"listener v{VERSION}")

    if settings.from_pipe and settings.channels > 1:
        print("You can only monitor 1 channel when reading from a pipe!", file=sys.stderr)
        return 1

    if show_help:
        print(usage())
        return 1

    try:
        return _listen(settings, explicit)
    except ListenerError as exc:
        print(exc, file=sys.stderr)
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())