"""Tests covering config file loading and environment variable overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from audio_splitter import config as config_module
from audio_splitter.resampler import InterpolationType, WindowFunction

_ENV_KEYS = (
    "DEV",
    "SPLITTER_OUTPUT_DIR",
    "SPLITTER_MIN_SILENCE_MS",
    "SPLITTER_MIN_SOUND_MS",
    "SPLITTER_CHUNK_MS",
    "SPLITTER_THRESHOLD_DB",
    "SPLITTER_TARGET_RATE",
    "SPLITTER_WORKERS",
    "SPLITTER_LOG_FILE",
)


def _reset_config_state(monkeypatch) -> None:
    monkeypatch.setattr(config_module, "_cfg_cache", None, raising=False)
    monkeypatch.setattr(config_module, "_search_paths", [], raising=False)
    monkeypatch.setattr(config_module, "_active_config_path", None, raising=False)


@pytest.fixture
def config_file(monkeypatch, tmp_path: Path) -> Path:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("segmenter:\n  min_silence_duration_ms: 300\n")
    monkeypatch.setenv(config_module.CONFIG_ENV, str(config_path))
    _reset_config_state(monkeypatch)
    return config_path


def test_file_values_merge_over_defaults(config_file: Path) -> None:
    cfg = config_module.get_cfg()

    assert cfg["segmenter"]["min_silence_duration_ms"] == 300
    assert cfg["segmenter"]["min_sound_duration_ms"] == 500
    assert cfg["resampler"]["target_sample_rate"] == 16000
    assert config_module.active_config_path() == config_file.resolve()
    assert config_module.search_paths()[0] == config_file.resolve()


def test_segmenter_env_overrides(monkeypatch, config_file: Path) -> None:
    monkeypatch.setenv("SPLITTER_MIN_SILENCE_MS", "250")
    monkeypatch.setenv("SPLITTER_THRESHOLD_DB", "-45.5")
    monkeypatch.setenv("SPLITTER_WORKERS", "3")
    monkeypatch.setenv("SPLITTER_OUTPUT_DIR", "/tmp/splits")

    cfg = config_module.reload_cfg()

    assert cfg["segmenter"]["min_silence_duration_ms"] == 250
    assert cfg["segmenter"]["silence_threshold_db"] == -45.5
    assert cfg["resampler"]["workers"] == 3
    assert config_module.default_output_dir(cfg) == Path("/tmp/splits")


def test_invalid_env_value_is_ignored(monkeypatch, config_file: Path) -> None:
    monkeypatch.setenv("SPLITTER_CHUNK_MS", "twenty")
    monkeypatch.setenv("SPLITTER_TARGET_RATE", "")

    cfg = config_module.reload_cfg()

    assert cfg["segmenter"]["chunk_length_ms"] == 20
    assert cfg["resampler"]["target_sample_rate"] == 16000


def test_dev_env_enables_dev_mode(monkeypatch, config_file: Path) -> None:
    monkeypatch.setenv("DEV", "1")

    cfg = config_module.reload_cfg()
    settings = config_module.SplitterSettings.from_cfg(cfg)

    assert cfg["logging"]["dev_mode"] is True
    assert settings.dev_mode is True


def test_unreadable_yaml_falls_back_to_defaults(config_file: Path) -> None:
    config_file.write_text("segmenter: [unclosed\n")

    cfg = config_module.reload_cfg()

    assert cfg["segmenter"]["min_silence_duration_ms"] == 500


def test_settings_from_cfg_with_overrides(config_file: Path) -> None:
    config_file.write_text(
        "segmenter:\n"
        "  chunk_length_ms: 10\n"
        "resampler:\n"
        "  interpolation: Cubic\n"
        "  window: HANN2\n"
        "paths:\n"
        "  resampled_subdir: low\n"
    )
    cfg = config_module.reload_cfg()

    settings = config_module.SplitterSettings.from_cfg(
        cfg, silence_threshold_db=-30.0, min_sound_duration_ms=None
    )

    assert settings.chunk_length_ms == 10
    assert settings.silence_threshold_db == -30.0
    assert settings.min_sound_duration_ms == 500
    assert settings.sinc.interpolation is InterpolationType.CUBIC
    assert settings.sinc.window is WindowFunction.HANN2
    assert settings.resampled_subdir == "low"


def test_unknown_override_rejected() -> None:
    with pytest.raises(TypeError):
        config_module.SplitterSettings.from_cfg({}, threshold=-20)


@pytest.mark.parametrize(
    "cfg",
    [
        {"segmenter": {"chunk_length_ms": 0}},
        {"segmenter": {"min_silence_duration_ms": "soon"}},
        {"resampler": {"workers": 0}},
        {"resampler": {"window": "kaiser"}},
        {"resampler": {"sinc_len": 255}},
        {"paths": {"original_subdir": "same", "resampled_subdir": "same"}},
    ],
)
def test_invalid_settings_raise_config_error(cfg) -> None:
    with pytest.raises(config_module.ConfigError):
        config_module.SplitterSettings.from_cfg(cfg)
