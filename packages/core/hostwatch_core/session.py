"""Builds a HostTelemetry context from application settings."""

from __future__ import annotations

from hostwatch_telemetry import GpuProbe, HostTelemetry, RefreshIntervals, build_gpu_probe
from hostwatch_telemetry.provider import TelemetrySource

from .config import AppConfig


def refresh_intervals(cfg: AppConfig) -> RefreshIntervals:
    return RefreshIntervals(
        cpu_load=cfg.intervals.cpu_load_s,
        disks=cfg.intervals.disks_s,
        gpu=cfg.intervals.gpu_s,
        memory=cfg.intervals.memory_s,
        network=cfg.intervals.network_s,
        host=cfg.intervals.host_s,
    )


def gpu_probe(cfg: AppConfig) -> GpuProbe:
    if not cfg.gpu.enabled:
        return GpuProbe([])
    return build_gpu_probe(
        nvidia_smi=cfg.gpu.nvidia_smi,
        rocm_smi=cfg.gpu.rocm_smi,
        timeout=cfg.gpu.command_timeout_s,
    )


def build_telemetry(cfg: AppConfig, source: TelemetrySource | None = None) -> HostTelemetry:
    return HostTelemetry(
        source,
        gpu_probe=gpu_probe(cfg),
        intervals=refresh_intervals(cfg),
        cpu_history=cfg.history.cpu_samples,
        gpu_history=cfg.history.gpu_samples,
    )
