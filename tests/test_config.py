import pytest

from listener.config import (
    CONFIGFILE,
    MAX_N_LIBRARIES,
    WAV_PATH,
    Settings,
    apply_config,
    load_config,
    parse_bool,
    split_line,
)
from listener.soundfile import Compression, OutputFormat
from listener.utils import ListenerError


@pytest.mark.parametrize("value", ["on", "ON", "yes", "Yes", "1"])
def test_parse_bool_true(value):
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", ["off", "no", "0", "true", ""])
def test_parse_bool_false(value):
    assert parse_bool(value) is False


def test_split_line_trims_value():
    assert split_line("detect_level =   900  ") == ("detect_level", "900")


def test_split_line_keyword_is_first_token():
    assert split_line("  wav_path extra=/tmp/x") == ("wav_path", "/tmp/x")


def test_split_line_without_equals():
    assert split_line("# a comment") == ("#", None)


def test_defaults_match_source():
    settings = Settings()
    assert settings.detect_level == 754
    assert settings.wav_path == WAV_PATH
    assert settings.max_duration == -1
    assert settings.format is OutputFormat.WAV
    assert settings.compression is Compression.PCM_16
    assert CONFIGFILE == "/usr/local/etc/listener.conf"


def test_apply_config_sets_values():
    settings = apply_config(
        Settings(),
        [
            "wav_path=/tmp/rec",
            "detect_level=1200",
            "rec_silence=2.5",
            "format=AIFF",
            "compression=u-law",
            "exec=/bin/true",
            "amplify=off",
            "one_shot=yes",
            "channels=2",
        ],
    )
    assert settings.wav_path == "/tmp/rec"
    assert settings.detect_level == 1200
    assert settings.rec_silence == 2.5
    assert settings.format is OutputFormat.AIFF
    assert settings.compression is Compression.ULAW
    assert settings.exec_command == "/bin/true"
    assert settings.amplify is False
    assert settings.one_shot is True
    assert settings.channels == 2


def test_keywords_are_case_insensitive():
    settings = apply_config(Settings(), ["Detect_Level=42"])
    assert settings.detect_level == 42


def test_explicit_values_are_kept():
    settings = Settings(detect_level=5, wav_path="/cli")
    apply_config(settings, ["detect_level=900", "wav_path=/conf"], {"detect_level", "wav_path"})
    assert settings.detect_level == 5
    assert settings.wav_path == "/cli"


def test_non_overridable_keywords_always_apply():
    settings = Settings(min_triggers=7)
    apply_config(settings, ["min_triggers=3"], {"min_triggers"})
    assert settings.min_triggers == 3


def test_comments_are_ignored():
    settings = apply_config(Settings(), ["# detect_level=1", "#wav_path=/x"])
    assert settings == Settings()


def test_unknown_statement_is_error():
    with pytest.raises(ListenerError, match="not a known configuration-statement"):
        apply_config(Settings(), ["volume=11"])


def test_unknown_format_is_error():
    with pytest.raises(ListenerError):
        apply_config(Settings(), ["format=mp3"])


def test_prerecord_must_be_positive():
    with pytest.raises(ListenerError, match="prerecord_n_seconds"):
        apply_config(Settings(), ["prerecord_n_seconds=0"])


def test_prerecord_value_applied():
    assert apply_config(Settings(), ["prerecord_n_seconds=4"]).pr_n_seconds == 4


def test_min_duration_below_one_is_error():
    with pytest.raises(ListenerError, match="min_duration"):
        apply_config(Settings(), ["min_duration=0.5"])


def test_filters_are_collected_up_to_limit():
    lines = [f"filter=my_filter2.so 0 0.{i} 1" for i in range(MAX_N_LIBRARIES)]
    settings = apply_config(Settings(), lines)
    assert settings.filters == [line.split("=", 1)[1] for line in lines]
    with pytest.raises(ListenerError, match="Too many filters"):
        apply_config(settings, ["filter=my_filter1.so"])


def test_load_config_reads_file(tmp_path):
    path = tmp_path / "listener.conf"
    path.write_bytes(b"detect_level=321\r\nsample_rate=8000\n\nwav_path=/ignored\n")
    settings = load_config(Settings(), str(path))
    assert settings.detect_level == 321
    assert settings.sample_rate == 8000
    assert settings.wav_path == WAV_PATH


def test_load_config_falls_back_to_current_directory(tmp_path, monkeypatch, capsys):
    (tmp_path / "listener.conf").write_text("detect_level=77\n")
    monkeypatch.chdir(tmp_path)
    settings = load_config(Settings(), str(tmp_path / "missing.conf"))
    assert settings.detect_level == 77
    assert "Using listener.conf from current directory" in capsys.readouterr().out


def test_load_config_missing_everywhere(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ListenerError, match="error opening configfile"):
        load_config(Settings(), str(tmp_path / "missing.conf"))