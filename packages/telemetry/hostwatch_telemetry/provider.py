"""psutil-backed operating system telemetry provider."""

from __future__ import annotations

import platform
import socket
import time
from typing import Any, Protocol, Sequence

import cpuinfo
import psutil

from .models import CpuRecord, HostRecord, MemoryRecord, NetworkRecord


class PartitionInfo(Protocol):
    device: str
    mountpoint: str
    fstype: str


class UsageInfo(Protocol):
    total: int
    used: int
    free: int
    percent: float


class TelemetrySource(Protocol):
    """Operations HostTelemetry needs from the OS; each may block or raise."""

    def cpu_info(self) -> list[CpuRecord]: ...

    def cpu_percent(self) -> float: ...

    def partitions(self) -> Sequence[PartitionInfo]: ...

    def disk_usage(self, mountpoint: str) -> UsageInfo: ...

    def virtual_memory(self) -> MemoryRecord: ...

    def net_io_counters(self) -> list[NetworkRecord]: ...

    def host_info(self) -> HostRecord: ...


def _platform_release() -> tuple[str, str]:
    system = platform.system()
    if system == "Linux":
        try:
            release = platform.freedesktop_os_release()
        except OSError:
            return "linux", ""
        return release.get("ID", "linux"), release.get("VERSION_ID", "")
    if system == "Darwin":
        return "darwin", platform.mac_ver()[0]
    if system == "Windows":
        release, version, _csd, _ptype = platform.win32_ver()
        return f"Microsoft Windows {release}".strip(), version
    return system.lower(), platform.version()


class PsutilProvider:
    def __init__(self) -> None:
        # Prime non-blocking CPU measurement.
        psutil.cpu_percent(interval=None)

    def cpu_info(self) -> list[CpuRecord]:
        info: dict[str, Any] = cpuinfo.get_cpu_info()
        return [
            CpuRecord(
                id=0,
                name=str(info.get("brand_raw") or platform.processor()),
                vendor=str(info.get("vendor_id_raw") or ""),
                count_physical=int(psutil.cpu_count(logical=False) or 0),
                count_logical=int(psutil.cpu_count(logical=True) or 0),
            )
        ]

    def cpu_percent(self) -> float:
        return float(psutil.cpu_percent(interval=None))

    def partitions(self) -> Sequence[PartitionInfo]:
        return psutil.disk_partitions(all=False)

    def disk_usage(self, mountpoint: str) -> UsageInfo:
        return psutil.disk_usage(mountpoint)

    def virtual_memory(self) -> MemoryRecord:
        vm = psutil.virtual_memory()
        return MemoryRecord(
            total=int(vm.total),
            available=int(vm.available),
            used=int(vm.used),
            free=int(vm.free),
            used_percent=float(vm.percent),
        )

    def net_io_counters(self) -> list[NetworkRecord]:
        counters = psutil.net_io_counters(pernic=True) or {}
        return [
            NetworkRecord(
                name=name,
                bytes_sent=int(c.bytes_sent),
                bytes_recv=int(c.bytes_recv),
                packets_sent=int(c.packets_sent),
                packets_recv=int(c.packets_recv),
                errin=int(c.errin),
                errout=int(c.errout),
                dropin=int(c.dropin),
                dropout=int(c.dropout),
            )
            for name, c in sorted(counters.items())
        ]

    def host_info(self) -> HostRecord:
        boot = float(psutil.boot_time())
        name, version = _platform_release()
        return HostRecord(
            hostname=socket.gethostname() or platform.node(),
            os=platform.system().lower(),
            platform=name,
            platform_version=version,
            kernel_version=platform.release(),
            kernel_arch=platform.machine(),
            boot_time=boot,
            uptime=max(time.time() - boot, 0.0),
            procs=len(psutil.pids()),
        )
