"""Diagnostics export helpers for local support bundles."""

from __future__ import annotations

import json
import platform
import tempfile
import zipfile
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import psutil

from hostwatch_telemetry import HostTelemetry, select_drive_platform

from .config import AppConfig, config_path
from .logging_setup import log_dir


def build_doctor_payload(cfg: AppConfig, telemetry: HostTelemetry) -> dict[str, Any]:
    has_gpu = telemetry.has_gpu()
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "psutil": psutil.__version__,
        "drive_platform": select_drive_platform().name,
        "hostname": telemetry.hostname(),
        "cpu_model": telemetry.cpu_model_name(),
        "gpu": {
            "detected": has_gpu,
            **telemetry.gpu_identity().as_dict(),
        },
        "config": asdict(cfg),
    }


class DiagnosticsExporter:
    def __init__(self, app_name: str = "hostwatch") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        snapshot: dict[str, Any] | None = None,
        output_dir: Path | None = None,
        logs_path: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"{self.app_name}-diagnostics-{stamp}.zip"

        logs_path = logs_path or log_dir()
        logs = sorted(logs_path.glob("*.log*")) if cfg.diagnostics.include_logs else []

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(logs_path),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(doctor_payload, indent=2, sort_keys=True, default=str))
            zf.writestr("snapshot.json", json.dumps(snapshot or {}, indent=2, sort_keys=True, default=str))
            zf.writestr("config.json", json.dumps(asdict(cfg), indent=2, sort_keys=True))

            for item in logs:
                zf.write(item, arcname=f"logs/{item.name}")

        return zip_path
