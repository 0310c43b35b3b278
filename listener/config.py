"""Listener settings and the configuration file that fills them in."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Collection, Iterable

from .soundfile import Compression, OutputFormat, get_compression_type, get_format_type
from .utils import ListenerError, get_token, read_lines

SAMPLE_RATE = 44100
WAV_PATH = "listen_wav_out"
CONFIGFILE = "/usr/local/etc/listener.conf"
LOCAL_CONFIGFILE = "listener.conf"
MAX_N_LIBRARIES = 16

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def _float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else 0.0


@dataclass
class Settings:
    """Everything that controls detection, recording and output."""

    wav_path: str = WAV_PATH
    fname_template: str | None = None
    configfile: str | None = None
    detect_level: int = 754
    rec_silence: float = 1.0
    min_duration: float = 1.0
    max_duration: float = -1.0
    min_triggers: int = 2
    compression: Compression = Compression.PCM_16
    format: OutputFormat = OutputFormat.WAV
    exec_command: str | None = None
    on_event_start: str | None = None
    amplify: bool = True
    start_amplify: float = 1.0
    max_amplify: float = 2.0
    do_not_fork: bool = True
    pr_n_seconds: int = 2
    silent: bool = False
    fixed_amplify: bool = False
    pidfile: str | None = None
    one_shot: bool = False
    output_pipe: str | None = None
    filters: list[str] = field(default_factory=list)
    safe_after_filter: bool = False
    sample_rate: int = SAMPLE_RATE
    channels: int = 1
    from_pipe: bool = False


def parse_bool(value: str) -> bool:
    """True for "on", "yes" or "1" in any case, False for anything else."""
    return value.lower() in ("on", "yes", "1")


def split_line(line: str) -> tuple[str, str | None]:
    """Split a configuration line into its keyword and its trimmed value."""
    key, sep, value = line.partition("=")
    if not sep:
        return get_token(line), None
    return get_token(key), value.lstrip(" ").rstrip(" ")


# keyword -> (settings field, converter); the field name is also what "explicit" holds
_OVERRIDABLE = {
    "wav_path": ("wav_path", str),
    "output_pipe": ("output_pipe", str),
    "pidfile": ("pidfile", str),
    "detect_level": ("detect_level", _int),
    "rec_silence": ("rec_silence", _float),
    "min_duration": ("min_duration", _float),
    "max_duration": ("max_duration", _float),
    "sample_rate": ("sample_rate", _int),
    "from_pipe": ("from_pipe", parse_bool),
    "one_shot": ("one_shot", parse_bool),
    "compression": ("compression", get_compression_type),
    "format": ("format", get_format_type),
    "exec": ("exec_command", str),
    "on_event_start": ("on_event_start", str),
    "channels": ("channels", _int),
    "fixed_amplify": ("fixed_amplify", parse_bool),
}

_ALWAYS = {
    "min_triggers": ("min_triggers", _int),
    "fname_template": ("fname_template", str),
    "amplify": ("amplify", parse_bool),
    "start_amplify": ("start_amplify", _float),
    "max_amplify": ("max_amplify", _float),
    "safe_after_filter": ("safe_after_filter", parse_bool),
}


def _apply_line(settings: Settings, line: str, explicit: Collection[str]) -> None:
    cmd, par = split_line(line)
    key = cmd.lower()
    known = key in _OVERRIDABLE or key in _ALWAYS or key in ("filter", "prerecord_n_seconds")
    if not known:
        if cmd.startswith("#"):
            return
        raise ListenerError(
            f"'{cmd or '(none)'}={par if par is not None else '(none)'}' "
            "is not a known configuration-statement"
        )
    if par is None:
        raise ListenerError(f"'{cmd}' needs a value")

    if key in _OVERRIDABLE:
        name, convert = _OVERRIDABLE[key]
        if name not in explicit:
            setattr(settings, name, convert(par))
    elif key in _ALWAYS:
        name, convert = _ALWAYS[key]
        setattr(settings, name, convert(par))
    elif key == "filter":
        if len(settings.filters) >= MAX_N_LIBRARIES:
            raise ListenerError(f"Too many filters defined, only {MAX_N_LIBRARIES} possible.")
        settings.filters.append(par)
    else:
        seconds = _int(par)
        if seconds < 1:
            raise ListenerError(f"prerecord_n_seconds must be 1 or bigger (not {seconds})")
        settings.pr_n_seconds = seconds


def apply_config(settings: Settings, lines: Iterable[str], explicit: Collection[str] = ()) -> Settings:
    """Apply configuration *lines* to *settings*.

    Fields named in *explicit* were given on the command line and keep
    their value where the configuration file would otherwise override them.
    """
    for line in lines:
        _apply_line(settings, line, explicit)
    if settings.min_duration < 1:
        raise ListenerError("min_duration must be at least 1!")
    return settings


def load_config(settings: Settings, path: str | None = None, explicit: Collection[str] = ()) -> Settings:
    """Read the configuration file, falling back to ./listener.conf."""
    path = path or CONFIGFILE
    try:
        handle = open(path, "rb")
    except OSError:
        try:
            handle = open(LOCAL_CONFIGFILE, "rb")
        except OSError:
            raise ListenerError(f"error opening configfile {path}") from None
        print("Using listener.conf from current directory")
    with handle:
        return apply_config(settings, read_lines(handle), explicit)