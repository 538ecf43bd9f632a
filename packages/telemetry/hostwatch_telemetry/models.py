"""Typed telemetry records."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum, IntEnum
from typing import Any


class FileSystemType(IntEnum):
    UNRECOGNIZED = -1
    APFS = 0
    exFAT = 1
    FAT = 2
    FAT32 = 3
    EXT = 4
    EXT2 = 5
    EXT3 = 6
    EXT4 = 7
    NTFS = 8
    JFS = 9
    ZFS = 10


class GpuVendor(str, Enum):
    NONE = ""
    NVIDIA = "nvidia"
    AMD = "amd"


class _Record:
    """JSON and dict rendering shared by every record."""

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    def to_json(self, indent: bool = False) -> str:
        if indent:
            return json.dumps(self.as_dict(), indent=2, ensure_ascii=False)
        return json.dumps(self.as_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class CpuRecord(_Record):
    id: int
    name: str
    vendor: str
    count_physical: int
    count_logical: int

    def __str__(self) -> str:
        return (
            f"socket #{self.id}, name={self.name}, vendor={self.vendor}, "
            f"countPhys={self.count_physical}, countLogical={self.count_logical}"
        )


@dataclass(frozen=True)
class CpuLoadSample(_Record):
    usage_percent: float
    timestamp: float

    def __str__(self) -> str:
        return f"cpu {self.usage_percent:.1f}% @ {self.timestamp:.3f}"


@dataclass(frozen=True)
class DiskRecord(_Record):
    mountpoint: str
    device: str
    fs_type: FileSystemType
    is_virtual_disk: bool
    free: int
    used: int
    used_percent: float
    total: int

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["fs_type"] = int(self.fs_type)
        return data

    def __str__(self) -> str:
        return (
            f"disk {self.mountpoint} ({self.device}), fs={self.fs_type.name}, virtual={self.is_virtual_disk}, "
            f"used={self.used} / {self.total} bytes ({self.used_percent}%), free={self.free}"
        )


@dataclass(frozen=True)
class GpuIdentity(_Record):
    vendor: GpuVendor = GpuVendor.NONE
    name: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"vendor": self.vendor.value, "name": self.name}

    def __str__(self) -> str:
        return f"gpu vendor={self.vendor.value or 'none'}, name={self.name}"


@dataclass(frozen=True)
class GpuSample(_Record):
    card_id: int
    load: float
    memory_used: float
    memory_total: float
    power: float
    temperature: int

    def __str__(self) -> str:
        # Memory is reported in MiB by the vendor tools.
        return (
            f"gfx card #{self.card_id}, {int(self.load * 100)}%, {self.memory_used:.0f} MiB, "
            f"{self.memory_total:.0f} MiB, {self.power}W, {self.temperature}°C"
        )


@dataclass(frozen=True)
class HostRecord(_Record):
    hostname: str
    os: str
    platform: str
    platform_version: str
    kernel_version: str
    kernel_arch: str
    boot_time: float
    uptime: float
    procs: int

    def __str__(self) -> str:
        return (
            f"host {self.hostname}, os={self.os}, platform={self.platform} {self.platform_version}, "
            f"kernel={self.kernel_version} ({self.kernel_arch}), uptime={self.uptime:.0f}s, procs={self.procs}"
        )


@dataclass(frozen=True)
class MemoryRecord(_Record):
    total: int
    available: int
    used: int
    free: int
    used_percent: float

    def __str__(self) -> str:
        return (
            f"memory total={self.total}, available={self.available}, used={self.used}, "
            f"free={self.free}, usedPercent={self.used_percent}%"
        )


@dataclass(frozen=True)
class NetworkRecord(_Record):
    name: str
    bytes_sent: int
    bytes_recv: int
    packets_sent: int
    packets_recv: int
    errin: int
    errout: int
    dropin: int
    dropout: int

    def __str__(self) -> str:
        return (
            f"net {self.name}, sent={self.bytes_sent}B/{self.packets_sent}p, "
            f"recv={self.bytes_recv}B/{self.packets_recv}p, err={self.errin}/{self.errout}, "
            f"drop={self.dropin}/{self.dropout}"
        )
