"""Interactive terminal tool for choosing the detection level."""

from __future__ import annotations

import curses
import sys
from dataclasses import dataclass
from typing import Iterable, Sequence

from .audio import PulseSource
from .config import CONFIGFILE, LOCAL_CONFIGFILE, MAX_N_LIBRARIES, SAMPLE_RATE, split_line
from .filters import Filter, load_filter
from .utils import ListenerError, read_lines

MAX_CHECK_LEVEL = 4096
"""One eighth of the maximum amplitude."""

_POSITIONS = 76
_SHORT_BYTES = 2


@dataclass
class LevelStats:
    """Level figures of one second of audio."""

    n_threshold: int
    average: int
    min_level: int
    max_level: int

    @property
    def sound(self) -> bool:
        """Whether any sample was above the detection level."""
        return self.n_threshold > 0

    @property
    def triggers(self) -> int:
        """Number of triggers shown to the user, at least 1."""
        return max(1, self.n_threshold)


def detect_level_for(position: int) -> int:
    """Map a slider position (0..75) to a detection level."""
    return position * MAX_CHECK_LEVEL // _POSITIONS


def analyse(samples: Iterable[int], detect_level: int) -> LevelStats:
    """Count loud samples and find the average, lowest and highest magnitude."""
    magnitudes = [abs(sample) for sample in samples]
    return LevelStats(
        n_threshold=sum(1 for m in magnitudes if m > detect_level),
        average=sum(magnitudes) // len(magnitudes) if magnitudes else 0,
        min_level=min(magnitudes, default=65535),
        max_level=max(magnitudes, default=0),
    )


def _filter_specs(path: str) -> list[str]:
    try:
        handle = open(path, "rb")
    except OSError:
        try:
            handle = open(LOCAL_CONFIGFILE, "rb")
        except OSError:
            raise ListenerError(f"error opening configfile {path}") from None
        print("Using listener.conf from current directory")
    specs: list[str] = []
    with handle:
        for line in read_lines(handle):
            cmd, par = split_line(line)
            if cmd.lower() != "filter" or par is None:
                continue
            if len(specs) >= MAX_N_LIBRARIES:
                raise ListenerError(f"Too many filters defined, only {MAX_N_LIBRARIES} possible.")
            specs.append(par)
    return specs


def _draw_static(win, n_filters: int) -> None:
    win.border()
    win.addstr(2, 2, "Setup listener", curses.A_REVERSE)
    win.addstr(4, 2, "With this program you can define at what soundlevel")
    win.addstr(5, 2, "the program listener should start recording.")
    win.addstr(8, 1, " ", curses.A_REVERSE)
    win.addstr(8, 78, " ", curses.A_REVERSE)
    win.addstr(13, 2, "What                    | Configurationfile parameter")
    win.addstr(14, 2, "------------------------+----------------------------")
    win.addstr(15, 2, "Current detection level | detect_level")
    win.addstr(16, 2, "Number of triggers      | min_duration")
    win.addstr(18, 2, f"Number of filters loaded: {n_filters}")
    colour = 0
    if curses.has_colors():
        curses.init_pair(1, curses.COLOR_YELLOW, curses.COLOR_BLACK)
        colour = curses.color_pair(1)
    win.addstr(6, 2, "Current detection level:", colour)
    win.addstr(11, 2, "Number of triggers:", colour)
    win.addstr(9, 2, "Current average level:")


def _is_quit(key: int) -> bool:
    if key in (curses.KEY_ENTER, 13, 10):
        return True
    return 0 <= key < 256 and chr(key).upper() in ("Q", "X")


def _interact(stdscr, filters: Sequence[Filter], rate: int, channels: int) -> int:
    curses.nonl()
    stdscr.keypad(True)
    lines, cols = stdscr.getmaxyx()
    if cols < 80 or lines < 24:
        raise ListenerError("Min. terminal size is 80x24!")
    win = stdscr.subwin(24, 80, 0, 0)
    _draw_static(win, len(filters))
    stdscr.nodelay(True)

    level, prevlevel, detect_level = 0, -1, 0
    with PulseSource(rate, channels) as source:
        while True:
            if prevlevel != level:
                if prevlevel != -1:
                    win.addstr(8, 2 + prevlevel, " ")
                prevlevel = level
            win.addstr(8, 2 + level, "|")
            win.noutrefresh()
            curses.doupdate()

            buffer = source.read_second()

            key = stdscr.getch()
            while key != -1:
                if key == curses.KEY_LEFT and level > 0:
                    level -= 1
                elif key == curses.KEY_RIGHT and level < _POSITIONS - 1:
                    level += 1
                elif _is_quit(key):
                    return 0
                else:
                    curses.flash()
                detect_level = detect_level_for(level)
                win.addstr(6, 27, f"{detect_level}     ")
                key = stdscr.getch()

            for sample_filter in filters:
                sample_filter.apply(buffer, rate)

            stats = analyse(buffer, detect_level)
            if stats.sound:
                win.addstr(7, 2, "-SOUND!-", curses.A_REVERSE)
                win.addch(" ")
            else:
                win.addstr(7, 2, "<silence>")
            win.addstr(9, 25, f"{stats.average}     ")
            win.addstr(10, 2, f"Level min: {stats.min_level}, max: {stats.max_level}          ")
            win.addstr(11, 22, f"{stats.triggers}     ")
            win.noutrefresh()
            curses.doupdate()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the level setup screen; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if args:
        print("Usage: setlistener", file=sys.stderr)
        return 1
    rate, channels = SAMPLE_RATE, 1
    try:
        filters = [
            load_filter(spec, _SHORT_BYTES, channels, rate) for spec in _filter_specs(CONFIGFILE)
        ]
        return curses.wrapper(_interact, filters, rate, channels)
    except ListenerError as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())