# listener

`listener` watches an audio input one second at a time and starts recording
to a file once enough samples rise above a detection level. Recording stops
again after a period of quiet. The last few seconds heard before the sound
began are written at the start of the file, so the beginning of what was
heard is kept.

A companion command, `setlistener`, shows the live input level in the
terminal and helps you choose a detection level.

## Installation

```
pip install .
```

Capturing from the sound server runs PulseAudio's `parec` client, which must
be on the `PATH`. With `-p` (or `from_pipe = yes`) audio is read from
standard input instead, as signed 16-bit little-endian mono samples.

## Running the recorder

```
listener [options]
```

| Option | Meaning |
| --- | --- |
| `-c<configfile>` | configuration file to read |
| `-w<wave-dir>` | directory recordings are written into |
| `-l<detect_level>` | sample magnitude above which a sample counts as loud |
| `-m<min_duration>` | minimum recording length in seconds; also the number of loud samples in one second that starts a recording |
| `-x<max_duration>` | start a new file after this many seconds |
| `-b<rec_silence>` | seconds of quiet before recording stops |
| `-r<rate>` | sample rate |
| `-z<channels>` | number of channels |
| `-t<format>` | output format |
| `-C<compression>` | sample compression, `u-law` or `a-law` |
| `-e<command>` | program run with the name of each finished file |
| `-y<command>` | program run when a recording starts |
| `-F` | keep the amplification factor fixed |
| `-p` | read audio from standard input (one channel only) |
| `-f` | stay in the foreground (the default) |
| `-o` | exit after one recording |
| `-s` | be silent |
| `-h` | show help |

Values given on the command line take precedence over the configuration
file. An unknown format or compression name ends the program with exit
status 2. `listener` stops cleanly on `SIGTERM` after the second it is
working on.

## Configuration file

The file is read from the `-c` path, by default
`/usr/local/etc/listener.conf`, falling back to `listener.conf` in the
current directory. It holds `name = value` lines; reading stops at the first
empty line. A line whose first word starts with `#` is a comment; any other
unknown name is an error.

| Setting | Meaning (default) |
| --- | --- |
| `wav_path` | output directory (`listen_wav_out`) |
| `fname_template` | file name template, see below |
| `detect_level` | loud-sample threshold (754) |
| `min_triggers` | loud samples per channel needed to keep recording (2) |
| `min_duration` | as `-m`; must be at least 1 (1) |
| `max_duration` | as `-x`; -1 means no split (-1) |
| `rec_silence` | as `-b` (1) |
| `sample_rate`, `channels` | audio format (44100, 1) |
| `format`, `compression` | output file type |
| `exec`, `on_event_start` | as `-e` and `-y` |
| `output_pipe` | shell command that receives the raw samples on its standard input instead of a file |
| `from_pipe`, `one_shot`, `fixed_amplify` | as `-p`, `-o`, `-F` |
| `amplify` | amplify recorded audio (on) |
| `start_amplify`, `max_amplify` | starting and largest amplification factor (1.0, 2.0) |
| `filter` | a filter name followed by its parameters; up to 16 |
| `safe_after_filter` | store the filtered audio rather than the unfiltered copy (off) |
| `prerecord_n_seconds` | seconds kept from before the sound started, at least 1 (2) |

Yes/no settings accept `on`, `yes` or `1`; anything else means off.

Without `fname_template`, files are named `<wav_path>/YYYY-MM-DD_HHMMSS.wav`.
A template is appended directly to `wav_path` and may use `%y` (year), `%m`,
`%d`, `%H`, `%M`, `%S`, `%s` (seconds since the epoch), `%h` (host name)
and `%%`.

Unless the factor is fixed, amplification moves halfway towards the largest
gain that keeps each second from clipping, capped at `max_amplify`.

### Filters

Filters run over each second of audio before sound detection. A `filter`
line names one of the built-in filters (a leading directory and a `.so…`
suffix are ignored):

- `smoothing` or `my_filter1`: three one-pole low-pass filters in parallel.
- `fourpole` or `my_filter2`: a resonant four-pole filter; its parameters are
  the type (`0` low-pass, otherwise high-pass), the peak frequency in radians
  per sample and the peak gain, e.g. `filter = fourpole 0 0.5 1.0`.

## Choosing a detection level

```
setlistener
```

Needs a terminal of at least 80x24 and takes no arguments. It records mono
audio at 44100 Hz and applies the filters named in the configuration file.
Move the level with the left and right arrow keys and watch whether the
input counts as sound, along with the average, lowest and highest level.
Press Enter, `q` or `x` to quit, then put the level shown into
`detect_level`.

## Using it as a library

- `listener.config`: `Settings`, `load_config`, `apply_config`.
- `listener.audio`: `PulseSource`, `StreamSource`, `open_source`.
- `listener.filters`: `SmoothingLowPass`, `FourPoleFilter`, `load_filter`.
- `listener.recorder`: `Recorder` (`run`, `record`, `stop`), `Amplifier`,
  `check_for_sound`, `make_filename`.
- `listener.soundfile`: `open_writer`, `OutputFormat`, `Compression`.

## Limitations

- Files can be written only as `wav`, `aiff`, `au` and `raw`. The other
  format names (`svx`, `nist`, `voc`, `w64`, …) are recognised but opening
  such a file fails.
- `aiff` takes 16-bit PCM only; `wav`, `au` and `raw` also take `u-law` and
  `a-law`. ADPCM, GSM and G.72x compression names are recognised but cannot
  be written.
- Only the built-in filters are available; filters cannot be loaded from
  shared libraries.
- `listener` always runs in the foreground; it does not detach into the
  background or write a pid file.