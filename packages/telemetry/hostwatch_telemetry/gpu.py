"""GPU vendor detection and per-card sampling through the vendor SMI tools."""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from .models import GpuIdentity, GpuSample, GpuVendor


_LOG = logging.getLogger("hostwatch.telemetry.gpu")

_MIB = 1024 * 1024

NVIDIA_QUERY_FIELDS = (
    "index",
    "name",
    "utilization.gpu",
    "memory.used",
    "memory.total",
    "power.draw",
    "temperature.gpu",
)
NVIDIA_QUERY_ARGS = (
    "--query-gpu=" + ",".join(NVIDIA_QUERY_FIELDS),
    "--format=csv,noheader,nounits",
)
ROCM_QUERY_ARGS = (
    "--showid",
    "--showproductname",
    "--showuse",
    "--showmeminfo",
    "vram",
    "--showpower",
    "--showtemp",
    "--json",
)

CommandRunner = Callable[[Sequence[str], Optional[float]], subprocess.CompletedProcess]


class GpuQueryError(RuntimeError):
    """Raised when a vendor tool cannot be started or exits unsuccessfully."""


def run_command(args: Sequence[str], timeout: float | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(list(args), capture_output=True, text=True, timeout=timeout, check=False)


@dataclass(frozen=True)
class DecodedCard:
    name: str
    sample: GpuSample


def _parse(raw: Any, cast: Callable[[Any], Any], default: Any, field: str) -> Any:
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        _LOG.error(f"failed to parse GPU {field} from {raw!r}: {exc}", extra={"event": "gpu_field_parse_error"})
        return default


def decode_nvidia_smi(text: str) -> list[DecodedCard]:
    """Decode ``nvidia-smi --format=csv,noheader,nounits`` output, one card per line.

    A field that fails to parse is logged and replaced with zero; the card is
    still reported.
    """
    cards: list[DecodedCard] = []
    for line in text.split("\n"):
        if line == "" or line == "\r":
            continue
        data = line.split(", ")
        if len(data) != len(NVIDIA_QUERY_FIELDS):
            _LOG.error(f"unexpected nvidia-smi row with {len(data)} fields: {line!r}")
            continue

        card_id = _parse(data[0], int, 0, "index")
        load = _parse(data[2], int, 0, "utilization")
        memory_used = _parse(data[3], float, 0.0, "memory.used")
        memory_total = _parse(data[4], float, 0.0, "memory.total")
        power = _parse(data[5], float, 0.0, "power.draw")
        # Windows builds of nvidia-smi leave a carriage return on the last column.
        temperature = _parse(data[6].replace("\r", ""), int, 0, "temperature")

        cards.append(
            DecodedCard(
                name=data[1],
                sample=GpuSample(
                    card_id=card_id,
                    load=load / 100,
                    memory_used=memory_used,
                    memory_total=memory_total,
                    power=power,
                    temperature=temperature,
                ),
            )
        )
    return cards


def _pick(fields: Mapping[str, Any], *needles: str, prefer: str | None = None) -> Any:
    matches = [(k, v) for k, v in fields.items() if all(n in k.lower() for n in needles)]
    if prefer is not None:
        preferred = [item for item in matches if prefer in item[0].lower()]
        matches = preferred or matches
    return matches[0][1] if matches else None


def _card_index(key: str) -> int:
    return _parse(key[len("card"):], int, 0, "card index")


def decode_rocm_smi(text: str) -> list[DecodedCard]:
    """Decode ``rocm-smi --json`` output. VRAM byte counts are reported in MiB."""
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise GpuQueryError(f"rocm-smi returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise GpuQueryError("rocm-smi returned an unexpected JSON document")

    cards: list[DecodedCard] = []
    for key in sorted((k for k in payload if k.lower().startswith("card")), key=_card_index):
        fields = payload[key]
        if not isinstance(fields, dict):
            continue
        name = _pick(fields, "card series") or _pick(fields, "card model") or _pick(fields, "product") or ""
        load = _parse(_pick(fields, "gpu use"), float, 0.0, "utilization")
        memory_used = _parse(_pick(fields, "vram total used memory"), float, 0.0, "memory.used")
        memory_total = _parse(_pick(fields, "vram total memory"), float, 0.0, "memory.total")
        power = _parse(_pick(fields, "power", prefer="average"), float, 0.0, "power")
        temperature = _parse(_pick(fields, "temperature", prefer="edge"), float, 0.0, "temperature")
        cards.append(
            DecodedCard(
                name=str(name),
                sample=GpuSample(
                    card_id=_card_index(key),
                    load=load / 100,
                    memory_used=memory_used / _MIB,
                    memory_total=memory_total / _MIB,
                    power=power,
                    temperature=int(temperature),
                ),
            )
        )
    return cards


class GpuBackend(Protocol):
    vendor: GpuVendor

    def detect(self) -> bool: ...

    def query(self) -> list[DecodedCard]: ...


class _SmiBackend:
    vendor = GpuVendor.NONE

    def __init__(self, executable: str, runner: CommandRunner = run_command, timeout: float | None = None) -> None:
        self.executable = executable
        self._runner = runner
        self._timeout = timeout

    def detect(self) -> bool:
        try:
            result = self._runner([self.executable], self._timeout)
        except (OSError, subprocess.SubprocessError, ValueError, TypeError) as exc:
            _LOG.debug(f"{self.executable} unavailable: {exc}")
            return False
        return result.returncode == 0

    def _invoke(self, args: Sequence[str]) -> str:
        cmd = [self.executable, *args]
        try:
            result = self._runner(cmd, self._timeout)
        except (OSError, subprocess.SubprocessError, ValueError, TypeError) as exc:
            raise GpuQueryError(f"failed to run {self.executable}: {exc}") from exc
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise GpuQueryError(f"{self.executable} exited with {result.returncode}: {stderr}")
        return result.stdout or ""


class NvidiaSmiBackend(_SmiBackend):
    vendor = GpuVendor.NVIDIA

    def __init__(self, executable: str = "nvidia-smi", runner: CommandRunner = run_command, timeout: float | None = None) -> None:
        super().__init__(executable, runner, timeout)

    def query(self) -> list[DecodedCard]:
        return decode_nvidia_smi(self._invoke(NVIDIA_QUERY_ARGS))


class RocmSmiBackend(_SmiBackend):
    vendor = GpuVendor.AMD

    def __init__(self, executable: str = "rocm-smi", runner: CommandRunner = run_command, timeout: float | None = None) -> None:
        super().__init__(executable, runner, timeout)

    def query(self) -> list[DecodedCard]:
        return decode_rocm_smi(self._invoke(ROCM_QUERY_ARGS))


class GpuProbe:
    """Detects the GPU vendor once and owns the GPU identity slot.

    Negative results are not remembered so a GPU that appears later is found
    on the next call.
    """

    def __init__(self, backends: Sequence[GpuBackend]) -> None:
        self._backends = tuple(backends)
        self._lock = threading.Lock()
        self._identity = GpuIdentity()
        self._reported_missing = False

    @property
    def identity(self) -> GpuIdentity:
        return self._identity

    def detect(self) -> bool:
        if self._identity.vendor is not GpuVendor.NONE:
            return True
        with self._lock:
            if self._identity.vendor is not GpuVendor.NONE:
                return True
            for backend in self._backends:
                if backend.detect():
                    self._identity = replace(self._identity, vendor=backend.vendor)
                    _LOG.info(f"detected {backend.vendor.value} GPU", extra={"event": "gpu_detected"})
                    return True

            message = "could not find NVIDIA or AMD GPUs using nvidia-smi / rocm-smi"
            if self._reported_missing:
                _LOG.debug(message)
            else:
                _LOG.error(message, extra={"event": "gpu_not_found"})
                self._reported_missing = True
            return False

    def backend(self) -> GpuBackend | None:
        for backend in self._backends:
            if backend.vendor is self._identity.vendor:
                return backend
        return None

    def remember_name(self, name: str) -> None:
        if self._identity.name or not name:
            return
        with self._lock:
            if not self._identity.name:
                self._identity = replace(self._identity, name=name)


class GpuPipeline:
    def __init__(self, probe: GpuProbe) -> None:
        self._probe = probe

    def query(self) -> tuple[GpuSample, ...]:
        """Sample every card; raises GpuQueryError when the vendor tool fails."""
        if not self._probe.detect():
            return ()
        backend = self._probe.backend()
        if backend is None:
            return ()
        cards = backend.query()
        for card in cards:
            if card.name:
                self._probe.remember_name(card.name)
                break
        return tuple(card.sample for card in cards)

    def sample(self) -> list[GpuSample]:
        try:
            return list(self.query())
        except GpuQueryError as exc:
            _LOG.error(f"failed to retrieve GPU data: {exc}", extra={"event": "gpu_query_failed"})
            return []


def build_gpu_probe(
    nvidia_smi: str = "nvidia-smi",
    rocm_smi: str = "rocm-smi",
    timeout: float | None = None,
    runner: CommandRunner = run_command,
) -> GpuProbe:
    return GpuProbe(
        [
            NvidiaSmiBackend(nvidia_smi, runner=runner, timeout=timeout),
            RocmSmiBackend(rocm_smi, runner=runner, timeout=timeout),
        ]
    )
