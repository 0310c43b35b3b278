"""Sample filters applied to recorded audio before level detection."""

from __future__ import annotations

import math
import os
import re
from abc import ABC, abstractmethod
from array import array
from itertools import chain
from typing import Iterable, Iterator, MutableSequence

from .utils import ListenerError

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _atoi(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def _atof(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else 0.0


def _to_short(value: float) -> int:
    if value != value:
        return 0
    if value > 32767:
        return 32767
    if value < -32768:
        return -32768
    return int(value)


class Filter(ABC):
    """A filter working in place on interleaved 16-bit samples."""

    n_channels: int

    @abstractmethod
    def _run(self, values: Iterable[int]) -> Iterator[int]:
        """Filter a stream of samples, one channel after another."""

    def apply(self, samples: MutableSequence[int], n_samples: int) -> None:
        """Filter *n_samples* frames of the interleaved *samples* in place."""
        channels = self.n_channels
        end = n_samples * channels
        sections = [samples[channel:end:channels] for channel in range(channels)]
        filtered = iter(list(self._run(chain.from_iterable(sections))))
        for channel, section in enumerate(sections):
            values = [next(filtered) for _ in section]
            if isinstance(samples, array):
                samples[channel:end:channels] = array(samples.typecode, values)
            else:
                samples[channel:end:channels] = values


class SmoothingLowPass(Filter):
    """Three one-pole low-pass filters combined in parallel (about 18 dB/octave)."""

    SCALE = 100.0
    SMOOTHNESS = 0.999

    def __init__(self, bits_per_sample: int, n_channels: int, sample_rate: int, par: str | None) -> None:
        self.bits_per_sample = bits_per_sample
        self.n_channels = n_channels
        self.sample_rate = sample_rate
        self.par = par

        a = 1.0 - 2.4 / self.SCALE
        b = self.SMOOTHNESS
        la, lab, labb = math.log(a), math.log(a * b), math.log(a * b * b)
        self._acoef = a
        self._bcoef = a * b
        self._ccoef = a * b * b
        master = 1.0 / (-1.0 / (la + 2.0 * math.log(b)) + 2.0 / (la + math.log(b)) - 1.0 / la)
        self._again = master
        self._bgain = master * (labb * (la - lab) / ((labb - lab) * lab) - la / lab)
        self._cgain = master * (-(la - lab) / (labb - lab))

    def _run(self, values: Iterable[int]) -> Iterator[int]:
        areg = breg = creg = 0.0
        for value in values:
            areg = self._acoef * areg + value
            breg = self._bcoef * breg + value
            creg = self._ccoef * creg + value
            yield _to_short(self._again * areg + self._bgain * breg + self._cgain * creg)

    def apply(self, samples: MutableSequence[int], n_samples: int) -> None:
        """Smooth *n_samples* frames in place; the filter state starts from zero on each call."""
        super().apply(samples, n_samples)


class FourPoleFilter(Filter):
    """Four-pole low-pass or high-pass filter with resonance.

    The parameter string holds the type (0 for low-pass, anything else for
    high-pass), the peak frequency in radians per sample and the peak gain.
    The filter state carries over from one call to the next.
    """

    def __init__(self, bits_per_sample: int, n_channels: int, sample_rate: int, par: str | None) -> None:
        self.bits_per_sample = bits_per_sample
        self.n_channels = n_channels
        self.sample_rate = sample_rate
        self.par = par
        if par is None:
            raise ListenerError("parameter 1 missing")

        kind = _atoi(par)
        first = par.find(" ")
        if first < 0:
            raise ListenerError("parameter 2 missing")
        self.omega = _atof(par[first + 1:])
        second = par.find(" ", first + 1)
        if second < 0:
            raise ListenerError("parameter 3 missing")
        self.g = _atof(par[second:])
        self.low_pass = kind % 256 == 0

        try:
            self._coef = self._coefficients(self.omega, self.g, self.low_pass)
        except (ZeroDivisionError, OverflowError) as exc:
            raise ListenerError(f"invalid filter parameters: {par}") from exc
        self._d = [0.0, 0.0, 0.0, 0.0]

    @staticmethod
    def _coefficients(omega: float, g: float, low_pass: bool) -> tuple[float, ...]:
        k = (4.0 * g - 3.0) / (g + 1.0)
        p = (1.0 - 0.25 * k) ** 2
        if low_pass:
            a = 1.0 / (math.tan(0.5 * omega) * (1.0 + p))
            p, q = 1.0 + a, 1.0 - a
            a0 = 1.0 / (k + p * p * p * p)
            a1 = 4.0 * (k + p * p * p * q)
            a2 = 6.0 * (k + p * p * q * q)
            a3 = 4.0 * (k + p * q * q * q)
            a4 = k + q * q * q * q
            gain = a0 * (k + 1.0)
            numerator = (gain, 4.0 * gain, 6.0 * gain, 4.0 * gain, gain)
        else:
            a = math.tan(0.5 * omega) / (1.0 + p)
            p, q = a + 1.0, a - 1.0
            a0 = 1.0 / (p * p * p * p + k)
            a1 = 4.0 * (p * p * p * q - k)
            a2 = 6.0 * (p * p * q * q + k)
            a3 = 4.0 * (p * q * q * q - k)
            a4 = q * q * q * q + k
            gain = a0 * (k + 1.0)
            numerator = (gain, -4.0 * gain, 6.0 * gain, -4.0 * gain, gain)
        return numerator + (-a1 * a0, -a2 * a0, -a3 * a0, -a4 * a0)

    def _run(self, values: Iterable[int]) -> Iterator[int]:
        c = self._coef
        d = self._d
        for value in values:
            inp = value / 32768.0 if value < 0 else value / 32767.0
            out = c[0] * inp + d[0]
            d[0] = c[1] * inp + c[5] * out + d[1]
            d[1] = c[2] * inp + c[6] * out + d[2]
            d[2] = c[3] * inp + c[7] * out + d[3]
            d[3] = c[4] * inp + c[8] * out
            yield _to_short(out * 32768.0 if out < 0 else out * 32767.0)

    def apply(self, samples: MutableSequence[int], n_samples: int) -> None:
        """Filter *n_samples* frames in place, continuing from the previous state."""
        super().apply(samples, n_samples)


_REGISTRY: dict[str, type[Filter]] = {
    "my_filter1": SmoothingLowPass,
    "smoothing": SmoothingLowPass,
    "my_filter2": FourPoleFilter,
    "fourpole": FourPoleFilter,
}


def parse_filter_spec(spec: str) -> tuple[str, str | None]:
    """Split a ``filter=`` value into the filter name and its parameter string."""
    name, sep, rest = spec.partition(" ")
    return name, (rest if sep else None)


def load_filter(spec: str, bits_per_sample: int, n_channels: int, sample_rate: int) -> Filter:
    """Create the filter named by *spec*, passing it the rest of the line as parameters."""
    name, par = parse_filter_spec(spec)
    key = os.path.basename(name).split(".so")[0].lower()
    factory = _REGISTRY.get(key)
    if factory is None:
        raise ListenerError(f"Failed to load filter library {name}, reason: unknown filter")
    return factory(bits_per_sample, n_channels, sample_rate, par)