#!/usr/bin/env python3
"""
Unified configuration loader for audio-splitter.

Load order (first found wins):
  1) AUDIO_SPLITTER_CONFIG (env, absolute or relative to CWD)
  2) /etc/audio-splitter/config.yaml
  3) <project_root>/config.yaml (derived from this file's location)
  4) <script_dir>/config.yaml (directory of the running script)
  5) ./config.yaml (current working directory)

Environment variables override file values when present. Command-line
options override both (see ``SplitterSettings.from_cfg``).
"""
from __future__ import annotations

import copy
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from audio_splitter.energy import DEFAULT_SILENCE_THRESHOLD_DB
from audio_splitter.resampler import InterpolationType, SincParameters, WindowFunction

_LOG = logging.getLogger("audio_splitter.config")

CONFIG_ENV = "AUDIO_SPLITTER_CONFIG"
SYSTEM_CONFIG_PATH = Path("/etc/audio-splitter/config.yaml")

_DEFAULTS: Dict[str, Any] = {
    "segmenter": {
        "min_silence_duration_ms": 500,
        "min_sound_duration_ms": 500,
        "chunk_length_ms": 20,
        "silence_threshold_db": DEFAULT_SILENCE_THRESHOLD_DB,
    },
    "resampler": {
        "target_sample_rate": 16000,
        "sinc_len": 256,
        "f_cutoff": 0.95,
        "oversampling_factor": 256,
        "interpolation": "linear",
        "window": "blackman_harris2",
        "workers": 1,
    },
    "paths": {
        "output_dir": ".",
        "original_subdir": "original",
        "resampled_subdir": "16kHz",
    },
    "logging": {
        "dev_mode": False,  # if True or ENV DEV=1, enable per-block debug output
        "log_file": "",
    },
}

_cfg_cache: Dict[str, Any] | None = None
_search_paths: list[Path] = []
_active_config_path: Path | None = None


class ConfigError(ValueError):
    """Raised when settings are missing or out of range."""


def _load_yaml_if_exists(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        _LOG.warning("ignoring unreadable config %s: %s", path, exc)
        return {}
    if isinstance(data, dict):
        return data
    _LOG.warning("ignoring config %s: top level is not a mapping", path)
    return {}


def _candidate_search_paths(project_root: Path, script_dir: Path) -> list[Path]:
    search: list[Path] = []
    env_cfg = os.getenv(CONFIG_ENV)
    if env_cfg:
        search.append(Path(env_cfg).expanduser())
    search.extend(
        [
            SYSTEM_CONFIG_PATH,
            project_root / "config.yaml",
            script_dir / "config.yaml",
            Path.cwd() / "config.yaml",
        ]
    )
    seen: set[Path] = set()
    ordered: list[Path] = []
    for candidate in search:
        try:
            resolved = candidate.resolve()
        except OSError:
            resolved = candidate
        if resolved in seen:
            continue
        seen.add(resolved)
        ordered.append(resolved)
    return ordered


def _deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> None:
    if os.getenv("DEV") == "1":
        cfg.setdefault("logging", {})["dev_mode"] = True

    env_map = {
        "SPLITTER_OUTPUT_DIR": ("paths", "output_dir", str),
        "SPLITTER_MIN_SILENCE_MS": ("segmenter", "min_silence_duration_ms", int),
        "SPLITTER_MIN_SOUND_MS": ("segmenter", "min_sound_duration_ms", int),
        "SPLITTER_CHUNK_MS": ("segmenter", "chunk_length_ms", int),
        "SPLITTER_THRESHOLD_DB": ("segmenter", "silence_threshold_db", float),
        "SPLITTER_TARGET_RATE": ("resampler", "target_sample_rate", int),
        "SPLITTER_WORKERS": ("resampler", "workers", int),
        "SPLITTER_LOG_FILE": ("logging", "log_file", str),
    }
    for env_key, (section, key, cast) in env_map.items():
        if env_key not in os.environ:
            continue
        raw = os.environ[env_key].strip()
        if not raw:
            continue
        try:
            cfg.setdefault(section, {})[key] = cast(raw)
        except ValueError:
            _LOG.warning("ignoring %s=%r: not a valid %s", env_key, raw, cast.__name__)


def get_cfg() -> Dict[str, Any]:
    global _cfg_cache, _search_paths, _active_config_path
    if _cfg_cache is not None:
        return _cfg_cache

    cfg = copy.deepcopy(_DEFAULTS)

    # <root>/audio_splitter -> <root>
    project_root = Path(__file__).resolve().parent.parent
    try:
        script_dir = Path(sys.argv[0]).resolve().parent
    except (IndexError, OSError):
        script_dir = Path.cwd()

    search = _candidate_search_paths(project_root, script_dir)
    _search_paths = list(search)

    active: Path | None = None
    for candidate in search:
        try:
            if candidate.exists():
                active = candidate
                break
        except OSError:
            pass

    for candidate in reversed(search):
        cfg = _deep_merge(cfg, _load_yaml_if_exists(candidate))

    _active_config_path = active
    _apply_env_overrides(cfg)
    _cfg_cache = cfg
    return cfg


def reload_cfg() -> Dict[str, Any]:
    global _cfg_cache
    _cfg_cache = None
    return get_cfg()


def active_config_path() -> Path | None:
    if _cfg_cache is None:
        get_cfg()
    return _active_config_path


def search_paths() -> list[Path]:
    if not _search_paths:
        get_cfg()
    return list(_search_paths)


def _section(cfg: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = cfg.get(name) if isinstance(cfg, Mapping) else None
    return value if isinstance(value, Mapping) else {}


def _coerce(value: Any, cast, name: str):
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}: expected {cast.__name__}, got {value!r}") from exc


def _parse_choice(value: Any, enum_cls, name: str):
    if isinstance(value, enum_cls):
        return value
    token = str(value or "").strip().lower().replace("-", "_")
    for member in enum_cls:
        if member.value == token:
            return member
    choices = ", ".join(member.value for member in enum_cls)
    raise ConfigError(f"{name}: unknown value {value!r} (choose from {choices})")


@dataclass(frozen=True)
class SplitterSettings:
    """Validated parameters consumed by the split pipeline."""

    min_silence_duration_ms: int = 500
    min_sound_duration_ms: int = 500
    chunk_length_ms: int = 20
    silence_threshold_db: float = DEFAULT_SILENCE_THRESHOLD_DB
    target_sample_rate: int = 16000
    resample_workers: int = 1
    sinc: SincParameters = field(default_factory=SincParameters)
    original_subdir: str = "original"
    resampled_subdir: str = "16kHz"
    dev_mode: bool = False
    log_file: str = ""

    def __post_init__(self) -> None:
        if self.chunk_length_ms <= 0:
            raise ConfigError("chunk_length_ms must be positive")
        if self.min_silence_duration_ms < 0:
            raise ConfigError("min_silence_duration_ms must not be negative")
        if self.min_sound_duration_ms < 0:
            raise ConfigError("min_sound_duration_ms must not be negative")
        if self.target_sample_rate <= 0:
            raise ConfigError("target_sample_rate must be positive")
        if self.resample_workers < 1:
            raise ConfigError("resample workers must be at least 1")
        if not self.original_subdir or not self.resampled_subdir:
            raise ConfigError("output subdirectory names must not be empty")
        if self.original_subdir == self.resampled_subdir:
            raise ConfigError("original and resampled subdirectories must differ")
        try:
            self.sinc.validate()
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any] | None = None, **overrides: Any) -> "SplitterSettings":
        """Build settings from a config mapping; non-None overrides win."""
        if cfg is None:
            cfg = get_cfg()
        seg = _section(cfg, "segmenter")
        res = _section(cfg, "resampler")
        paths = _section(cfg, "paths")
        log_cfg = _section(cfg, "logging")

        values: Dict[str, Any] = {
            "min_silence_duration_ms": seg.get("min_silence_duration_ms", 500),
            "min_sound_duration_ms": seg.get("min_sound_duration_ms", 500),
            "chunk_length_ms": seg.get("chunk_length_ms", 20),
            "silence_threshold_db": seg.get("silence_threshold_db", DEFAULT_SILENCE_THRESHOLD_DB),
            "target_sample_rate": res.get("target_sample_rate", 16000),
            "resample_workers": res.get("workers", 1),
            "original_subdir": paths.get("original_subdir", "original"),
            "resampled_subdir": paths.get("resampled_subdir", "16kHz"),
            "dev_mode": bool(log_cfg.get("dev_mode", False)),
            "log_file": log_cfg.get("log_file") or "",
        }
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"unknown setting override: {key}")
            if value is not None:
                values[key] = value

        sinc = SincParameters(
            sinc_len=_coerce(res.get("sinc_len", 256), int, "resampler.sinc_len"),
            f_cutoff=_coerce(res.get("f_cutoff", 0.95), float, "resampler.f_cutoff"),
            oversampling_factor=_coerce(
                res.get("oversampling_factor", 256), int, "resampler.oversampling_factor"
            ),
            interpolation=_parse_choice(
                res.get("interpolation", "linear"), InterpolationType, "resampler.interpolation"
            ),
            window=_parse_choice(
                res.get("window", "blackman_harris2"), WindowFunction, "resampler.window"
            ),
        )

        return cls(
            min_silence_duration_ms=_coerce(values["min_silence_duration_ms"], int, "min_silence_duration_ms"),
            min_sound_duration_ms=_coerce(values["min_sound_duration_ms"], int, "min_sound_duration_ms"),
            chunk_length_ms=_coerce(values["chunk_length_ms"], int, "chunk_length_ms"),
            silence_threshold_db=_coerce(values["silence_threshold_db"], float, "silence_threshold_db"),
            target_sample_rate=_coerce(values["target_sample_rate"], int, "target_sample_rate"),
            resample_workers=_coerce(values["resample_workers"], int, "resample_workers"),
            sinc=sinc,
            original_subdir=str(values["original_subdir"]),
            resampled_subdir=str(values["resampled_subdir"]),
            dev_mode=bool(values["dev_mode"]),
            log_file=str(values["log_file"]),
        )


def default_output_dir(cfg: Mapping[str, Any] | None = None) -> Path:
    if cfg is None:
        cfg = get_cfg()
    raw = _section(cfg, "paths").get("output_dir") or "."
    return Path(str(raw)).expanduser()


__all__ = [
    "CONFIG_ENV",
    "ConfigError",
    "SplitterSettings",
    "active_config_path",
    "default_output_dir",
    "get_cfg",
    "reload_cfg",
    "search_paths",
]
