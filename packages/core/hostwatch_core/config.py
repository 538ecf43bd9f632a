"""Persistent settings schema and load/save helpers."""

from __future__ import annotations

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 1

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class IntervalsConfig:
    cpu_load_s: float = 1.0
    disks_s: float = 60.0
    gpu_s: float = 1.0
    memory_s: float = 1.0
    network_s: float = 1.0
    host_s: float = 1.0


@dataclass
class GpuConfig:
    enabled: bool = True
    nvidia_smi: str = "nvidia-smi"
    rocm_smi: str = "rocm-smi"
    command_timeout_s: float | None = None


@dataclass
class HistoryConfig:
    cpu_samples: int = 60
    gpu_samples: int = 60


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_files: int = 7
    console: bool = False


@dataclass
class DiagnosticsConfig:
    include_logs: bool = True


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    gpu: GpuConfig = field(default_factory=GpuConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "Hostwatch"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "Hostwatch"
    return Path.home() / ".config" / "hostwatch"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: Any):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _float_or(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _normalize_intervals(cfg: AppConfig) -> None:
    defaults = IntervalsConfig()
    for name in asdict(defaults):
        value = _float_or(getattr(cfg.intervals, name), getattr(defaults, name))
        setattr(cfg.intervals, name, max(0.1, value))


def _normalize_gpu(cfg: AppConfig) -> None:
    cfg.gpu.enabled = bool(cfg.gpu.enabled)
    timeout = cfg.gpu.command_timeout_s
    if timeout is not None:
        timeout = _float_or(timeout, 0.0)
        cfg.gpu.command_timeout_s = timeout if timeout > 0 else None
    defaults = GpuConfig()
    for name in ("nvidia_smi", "rocm_smi"):
        value = getattr(cfg.gpu, name)
        if not isinstance(value, str) or not value.strip() or "\x00" in value:
            setattr(cfg.gpu, name, getattr(defaults, name))


def _normalize_history(cfg: AppConfig) -> None:
    cfg.history.cpu_samples = max(1, min(3600, int(_float_or(cfg.history.cpu_samples, 60))))
    cfg.history.gpu_samples = max(1, min(3600, int(_float_or(cfg.history.gpu_samples, 60))))


def _normalize_logging(cfg: AppConfig) -> None:
    level = str(cfg.logging.level).upper()
    cfg.logging.level = level if level in _LOG_LEVELS else "INFO"
    cfg.logging.keep_files = max(2, int(_float_or(cfg.logging.keep_files, 7)))


def log_level(cfg: AppConfig) -> int:
    return int(getattr(logging, cfg.logging.level, logging.INFO))


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    cfg = AppConfig(
        config_version=int(raw.get("config_version", CONFIG_VERSION)),
        intervals=_merge(IntervalsConfig, raw.get("intervals", {})),
        gpu=_merge(GpuConfig, raw.get("gpu", {})),
        history=_merge(HistoryConfig, raw.get("history", {})),
        logging=_merge(LoggingConfig, raw.get("logging", {})),
        diagnostics=_merge(DiagnosticsConfig, raw.get("diagnostics", {})),
    )

    _normalize_intervals(cfg)
    _normalize_gpu(cfg)
    _normalize_history(cfg)
    _normalize_logging(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
