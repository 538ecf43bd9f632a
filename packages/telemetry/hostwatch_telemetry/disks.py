"""Filesystem name normalisation and virtual (RAM / cloud-sync) disk detection."""

from __future__ import annotations

import logging
import platform
from enum import IntEnum
from typing import Any, Mapping, Protocol

from .models import FileSystemType


_LOG = logging.getLogger("hostwatch.telemetry.disks")

_FS_TYPES = {member.name: member for member in FileSystemType if member is not FileSystemType.UNRECOGNIZED}


def normalize_fs_type(name: str) -> FileSystemType:
    """Map a provider filesystem name onto FileSystemType (exact, case-sensitive)."""
    return _FS_TYPES.get(name, FileSystemType.UNRECOGNIZED)


class DriveType(IntEnum):
    # Values of the Win32 GetDriveType() result.
    UNKNOWN = 0
    NO_ROOT_DIR = 1
    REMOVABLE = 2
    FIXED = 3
    REMOTE = 4
    CDROM = 5
    RAMDISK = 6


class DrivePlatform(Protocol):
    name: str

    def drive_type(self, path: str) -> DriveType: ...

    def io_counters(self, path: str) -> Mapping[str, Any]: ...


class NullDrivePlatform:
    """Used on platforms without drive classification; nothing is reported virtual."""

    name = "null"

    def drive_type(self, path: str) -> DriveType:
        _LOG.debug(f"drive classification unsupported on {platform.system()}, skipping {path}")
        return DriveType.UNKNOWN

    def io_counters(self, path: str) -> Mapping[str, Any]:
        return {}


class WindowsDrivePlatform:
    name = "windows"

    _FILE_SHARE_READ = 0x00000001
    _FILE_SHARE_WRITE = 0x00000002
    _OPEN_EXISTING = 3
    _IOCTL_DISK_PERFORMANCE = 0x00070020

    def __init__(self) -> None:
        import ctypes
        from ctypes import wintypes

        class _DiskPerformance(ctypes.Structure):
            _fields_ = [
                ("BytesRead", ctypes.c_longlong),
                ("BytesWritten", ctypes.c_longlong),
                ("ReadTime", ctypes.c_longlong),
                ("WriteTime", ctypes.c_longlong),
                ("IdleTime", ctypes.c_longlong),
                ("ReadCount", wintypes.DWORD),
                ("WriteCount", wintypes.DWORD),
                ("QueueDepth", wintypes.DWORD),
                ("SplitCount", wintypes.DWORD),
                ("QueryTime", ctypes.c_longlong),
                ("StorageDeviceNumber", wintypes.DWORD),
                ("StorageManagerName", wintypes.WCHAR * 8),
            ]

        kernel32 = ctypes.WinDLL("kernel32.dll", use_last_error=True)
        kernel32.GetDriveTypeW.argtypes = [wintypes.LPCWSTR]
        kernel32.GetDriveTypeW.restype = wintypes.UINT
        kernel32.CreateFileW.argtypes = [
            wintypes.LPCWSTR,
            wintypes.DWORD,
            wintypes.DWORD,
            ctypes.c_void_p,
            wintypes.DWORD,
            wintypes.DWORD,
            wintypes.HANDLE,
        ]
        kernel32.CreateFileW.restype = wintypes.HANDLE
        kernel32.DeviceIoControl.argtypes = [
            wintypes.HANDLE,
            wintypes.DWORD,
            ctypes.c_void_p,
            wintypes.DWORD,
            ctypes.c_void_p,
            wintypes.DWORD,
            ctypes.POINTER(wintypes.DWORD),
            ctypes.c_void_p,
        ]
        kernel32.DeviceIoControl.restype = wintypes.BOOL
        kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
        kernel32.CloseHandle.restype = wintypes.BOOL

        self._ctypes = ctypes
        self._wintypes = wintypes
        self._kernel32 = kernel32
        self._perf_type = _DiskPerformance
        self._invalid_handle = wintypes.HANDLE(-1).value

    def drive_type(self, path: str) -> DriveType:
        raw = int(self._kernel32.GetDriveTypeW(path))
        try:
            return DriveType(raw)
        except ValueError:
            return DriveType.UNKNOWN

    def io_counters(self, path: str) -> Mapping[str, Any]:
        drive = path.rstrip("\\/")
        handle = self._kernel32.CreateFileW(
            f"\\\\.\\{drive}",
            0,
            self._FILE_SHARE_READ | self._FILE_SHARE_WRITE,
            None,
            self._OPEN_EXISTING,
            0,
            None,
        )
        if handle is None or handle == self._invalid_handle:
            _LOG.debug(f"CreateFileW({drive}) failed err={self._ctypes.get_last_error()}")
            return {}

        perf = self._perf_type()
        returned = self._wintypes.DWORD(0)
        try:
            ok = self._kernel32.DeviceIoControl(
                handle,
                self._IOCTL_DISK_PERFORMANCE,
                None,
                0,
                self._ctypes.byref(perf),
                self._ctypes.sizeof(perf),
                self._ctypes.byref(returned),
                None,
            )
        finally:
            self._kernel32.CloseHandle(handle)
        if not ok:
            _LOG.debug(f"IOCTL_DISK_PERFORMANCE({drive}) failed err={self._ctypes.get_last_error()}")
            return {}

        return {
            drive: {
                "read_bytes": int(perf.BytesRead),
                "write_bytes": int(perf.BytesWritten),
                "read_count": int(perf.ReadCount),
                "write_count": int(perf.WriteCount),
            }
        }


def select_drive_platform(system: str | None = None) -> DrivePlatform:
    system = system or platform.system()
    if system == "Windows":
        return WindowsDrivePlatform()
    # TODO: RAM disk detection for macOS (diskutil) and Linux (tmpfs/zram mounts).
    return NullDrivePlatform()


def is_virtual_disk(path: str, drives: DrivePlatform) -> bool:
    """Return True when the volume mounted at ``path`` is RAM-backed or otherwise non-physical.

    Cloud-sync clients (Google Drive among them) register their volumes as fixed
    disks but expose no I/O performance counters, so an empty counter query on a
    fixed drive is taken to mean "virtual".
    """
    try:
        kind = drives.drive_type(path)
    except (ValueError, TypeError, OSError) as exc:
        _LOG.error(f"cannot resolve drive type for {path!r}: {exc}", extra={"event": "drive_type_error"})
        return False

    if kind == DriveType.RAMDISK:
        _LOG.debug(f"{path} is a RAM disk")
        return True

    if kind == DriveType.FIXED:
        try:
            counters = drives.io_counters(path)
        except (ValueError, TypeError, OSError) as exc:
            _LOG.debug(f"io counters query for {path} failed: {exc}")
            counters = {}
        if len(counters) == 0:
            _LOG.debug(f"{path} is fixed but has no io counters, treating as virtual")
            return True
        _LOG.debug(f"io counters for {path}: {dict(counters)}")
        return False

    _LOG.debug(f"{path} is not a RAM disk ({kind.name})")
    return False
