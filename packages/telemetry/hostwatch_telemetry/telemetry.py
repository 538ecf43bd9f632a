"""Per-family cached access to host telemetry."""

from __future__ import annotations

import logging
import struct
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Optional

from .cache import CachedMetric
from .disks import DrivePlatform, is_virtual_disk, normalize_fs_type, select_drive_platform
from .gpu import GpuPipeline, GpuProbe, build_gpu_probe
from .models import (
    CpuLoadSample,
    CpuRecord,
    DiskRecord,
    GpuIdentity,
    GpuSample,
    HostRecord,
    MemoryRecord,
    NetworkRecord,
)
from .provider import PsutilProvider, TelemetrySource


_LOG = logging.getLogger("hostwatch.telemetry")


@dataclass(frozen=True)
class RefreshIntervals:
    """Seconds a cached sample stays fresh, per metric family."""

    cpu_load: float = 1.0
    disks: float = 60.0
    gpu: float = 1.0
    memory: float = 1.0
    network: float = 1.0
    host: float = 1.0


def _float_bits(value: float) -> bytes:
    return struct.pack("<d", value)


def keep_if_unchanged(previous: MemoryRecord, fresh: MemoryRecord) -> MemoryRecord:
    """Return ``previous`` when the used percentage is bit-for-bit the same."""
    if _float_bits(previous.used_percent) == _float_bits(fresh.used_percent):
        return previous
    return fresh


def format_cpu_model_name(name: str, vendor: str) -> str:
    if vendor == "GenuineIntel":
        name = name.replace("(R)", "")
        name = name.replace("(TM)", "")
        name = name.replace("CPU @ ", "@")
        name = name.replace("Core ", "")
    return name


class HostTelemetry:
    """Owns one cache slot per metric family plus the GPU identity.

    Every accessor returns the freshest value within its family's interval and
    never raises; a failing source yields the last good value or an empty one.
    """

    def __init__(
        self,
        source: Optional[TelemetrySource] = None,
        *,
        drives: Optional[DrivePlatform] = None,
        gpu_probe: Optional[GpuProbe] = None,
        intervals: RefreshIntervals = RefreshIntervals(),
        cpu_history: int = 60,
        gpu_history: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if source is None:
            source = PsutilProvider()
        self._source = source
        self._drives = drives if drives is not None else select_drive_platform()
        self.gpu_probe = gpu_probe if gpu_probe is not None else build_gpu_probe()
        self._gpu = GpuPipeline(self.gpu_probe)
        self.intervals = intervals
        self._hostname = ""

        self._cpu_history: Deque[CpuLoadSample] = deque(maxlen=max(1, cpu_history))
        self._gpu_history: Deque[tuple[GpuSample, ...]] = deque(maxlen=max(1, gpu_history))

        self._cpu_info: CachedMetric[tuple[CpuRecord, ...]] = CachedMetric(
            "cpu_info", lambda: tuple(source.cpu_info()), None, empty=(), clock=clock
        )
        self._cpu_load: CachedMetric[Optional[CpuLoadSample]] = CachedMetric(
            "cpu_load", self._sample_cpu_load, intervals.cpu_load, on_store=self._cpu_history.append, clock=clock
        )
        self._disks: CachedMetric[tuple[DiskRecord, ...]] = CachedMetric(
            "disks", self._sample_disks, intervals.disks, empty=(), clock=clock
        )
        self._gpu_stats: CachedMetric[tuple[GpuSample, ...]] = CachedMetric(
            "gpu", self._gpu.query, intervals.gpu, empty=(), on_store=self._store_gpu, clock=clock
        )
        self._memory: CachedMetric[Optional[MemoryRecord]] = CachedMetric(
            "memory", source.virtual_memory, intervals.memory, reconcile=keep_if_unchanged, clock=clock
        )
        self._network: CachedMetric[tuple[NetworkRecord, ...]] = CachedMetric(
            "network", lambda: tuple(source.net_io_counters()), intervals.network, empty=(), clock=clock
        )
        self._host: CachedMetric[Optional[HostRecord]] = CachedMetric(
            "host", source.host_info, intervals.host, on_store=self._store_hostname, clock=clock
        )

    # -------- fetchers --------
    def _sample_cpu_load(self) -> CpuLoadSample:
        return CpuLoadSample(usage_percent=self._source.cpu_percent(), timestamp=time.time())

    def _sample_disks(self) -> tuple[DiskRecord, ...]:
        records: list[DiskRecord] = []
        for part in self._source.partitions():
            try:
                usage = self._source.disk_usage(part.mountpoint)
                free, used, total, percent = int(usage.free), int(usage.used), int(usage.total), float(usage.percent)
            except Exception as exc:
                _LOG.error(f"failed to retrieve disk usage for {part.mountpoint}: {exc}")
                free, used, total, percent = 0, 0, 0, 0.0

            records.append(
                DiskRecord(
                    mountpoint=part.mountpoint,
                    device=part.device,
                    fs_type=normalize_fs_type(part.fstype),
                    is_virtual_disk=is_virtual_disk(part.mountpoint, self._drives),
                    free=free,
                    used=used,
                    used_percent=round(percent, 2),
                    total=total,
                )
            )
        return tuple(records)

    def _store_gpu(self, samples: tuple[GpuSample, ...]) -> None:
        if samples:
            self._gpu_history.append(samples)

    def _store_hostname(self, record: Optional[HostRecord]) -> None:
        if record is not None:
            self._hostname = record.hostname

    # -------- cpu --------
    def cpu_info(self) -> list[CpuRecord]:
        return list(self._cpu_info.get())

    def cpu_model_name(self) -> str:
        records = self.cpu_info()
        if not records:
            return ""
        return format_cpu_model_name(records[0].name, records[0].vendor)

    def cpu_load(self) -> Optional[CpuLoadSample]:
        return self._cpu_load.get()

    def cpu_load_history(self) -> list[CpuLoadSample]:
        self._cpu_load.get()
        return list(self._cpu_history)

    # -------- disks / memory / network --------
    def disks(self) -> list[DiskRecord]:
        return list(self._disks.get())

    def memory(self) -> Optional[MemoryRecord]:
        return self._memory.get()

    def network(self) -> list[NetworkRecord]:
        return list(self._network.get())

    # -------- host --------
    def host(self) -> Optional[HostRecord]:
        return self._host.get()

    def hostname(self) -> str:
        if self._hostname:
            return self._hostname
        self.host()
        return self._hostname

    # -------- gpu --------
    def has_gpu(self) -> bool:
        return self.gpu_probe.detect()

    def gpu_identity(self) -> GpuIdentity:
        return self.gpu_probe.identity

    def gpu_name(self) -> str:
        return self.gpu_probe.identity.name

    def gpu(self) -> list[GpuSample]:
        return list(self._gpu_stats.get())

    def gpu_history(self) -> list[list[GpuSample]]:
        self._gpu_stats.get()
        return [list(samples) for samples in self._gpu_history]

    def snapshot(self) -> dict[str, Any]:
        """Every family as plain data, ready for json.dumps()."""
        cpu_load = self.cpu_load()
        memory = self.memory()
        host = self.host()
        return {
            "cpu": {
                "info": [c.as_dict() for c in self.cpu_info()],
                "model_name": self.cpu_model_name(),
                "load": cpu_load.as_dict() if cpu_load is not None else None,
            },
            "memory": memory.as_dict() if memory is not None else None,
            "disks": [d.as_dict() for d in self.disks()],
            "network": [n.as_dict() for n in self.network()],
            "host": host.as_dict() if host is not None else None,
            "gpu": {
                "identity": self.gpu_identity().as_dict(),
                "cards": [g.as_dict() for g in self.gpu()],
            },
        }
