"""Cached host telemetry: CPU, memory, disks, network, host and GPU."""

from .cache import CachedMetric
from .disks import DriveType, NullDrivePlatform, WindowsDrivePlatform, is_virtual_disk, normalize_fs_type, select_drive_platform
from .gpu import GpuPipeline, GpuProbe, GpuQueryError, NvidiaSmiBackend, RocmSmiBackend, build_gpu_probe
from .models import (
    CpuLoadSample,
    CpuRecord,
    DiskRecord,
    FileSystemType,
    GpuIdentity,
    GpuSample,
    GpuVendor,
    HostRecord,
    MemoryRecord,
    NetworkRecord,
)
from .provider import PsutilProvider
from .telemetry import HostTelemetry, RefreshIntervals
from .units import bytes_to_gb, bytes_to_gib

__all__ = [
    "CachedMetric",
    "CpuLoadSample",
    "CpuRecord",
    "DiskRecord",
    "DriveType",
    "FileSystemType",
    "GpuIdentity",
    "GpuPipeline",
    "GpuProbe",
    "GpuQueryError",
    "GpuSample",
    "GpuVendor",
    "HostRecord",
    "HostTelemetry",
    "MemoryRecord",
    "NetworkRecord",
    "NullDrivePlatform",
    "NvidiaSmiBackend",
    "PsutilProvider",
    "RefreshIntervals",
    "RocmSmiBackend",
    "WindowsDrivePlatform",
    "build_gpu_probe",
    "bytes_to_gb",
    "bytes_to_gib",
    "is_virtual_disk",
    "normalize_fs_type",
    "select_drive_platform",
]
