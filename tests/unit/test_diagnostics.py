import json
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import FakeClock, FakeSource
from hostwatch_core.config import AppConfig
from hostwatch_core.diagnostics import DiagnosticsExporter, build_doctor_payload
from hostwatch_telemetry import GpuProbe, HostTelemetry, NullDrivePlatform


def _telemetry() -> HostTelemetry:
    return HostTelemetry(FakeSource(), drives=NullDrivePlatform(), gpu_probe=GpuProbe([]), clock=FakeClock())


class DiagnosticsTests(unittest.TestCase):
    def test_doctor_payload(self):
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR"):
            payload = build_doctor_payload(AppConfig(), _telemetry())
        self.assertEqual(payload["hostname"], "workstation")
        self.assertEqual(payload["cpu_model"], "Intel i7-9700K @3.60GHz")
        self.assertFalse(payload["gpu"]["detected"])
        self.assertEqual(payload["gpu"]["vendor"], "")
        self.assertEqual(payload["config"]["intervals"]["disks_s"], 60.0)
        json.dumps(payload)

    def test_bundle_exports_zip(self):
        cfg = AppConfig()
        telemetry = _telemetry()
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR"):
            doctor = build_doctor_payload(cfg, telemetry)
        snapshot = telemetry.snapshot()

        with tempfile.TemporaryDirectory() as tmp:
            logs = Path(tmp) / "logs"
            logs.mkdir()
            (logs / "hostwatch.log").write_text('{"msg": "hello"}\n', encoding="utf-8")

            bundle = DiagnosticsExporter().bundle(
                cfg=cfg, doctor_payload=doctor, snapshot=snapshot, output_dir=Path(tmp) / "out", logs_path=logs
            )
            self.assertTrue(bundle.exists())
            self.assertTrue(bundle.name.startswith("hostwatch-diagnostics-"))

            with zipfile.ZipFile(bundle, "r") as zf:
                names = set(zf.namelist())
                self.assertEqual(
                    names, {"manifest.json", "doctor.json", "snapshot.json", "config.json", "logs/hostwatch.log"}
                )
                stored = json.loads(zf.read("snapshot.json"))
                self.assertEqual(stored["host"]["hostname"], "workstation")

    def test_bundle_can_leave_out_logs(self):
        cfg = AppConfig()
        cfg.diagnostics.include_logs = False
        with tempfile.TemporaryDirectory() as tmp:
            logs = Path(tmp) / "logs"
            logs.mkdir()
            (logs / "hostwatch.log").write_text("x\n", encoding="utf-8")
            bundle = DiagnosticsExporter().bundle(cfg=cfg, doctor_payload={}, output_dir=Path(tmp), logs_path=logs)
            with zipfile.ZipFile(bundle, "r") as zf:
                self.assertNotIn("logs/hostwatch.log", zf.namelist())
                self.assertEqual(json.loads(zf.read("snapshot.json")), {})


if __name__ == "__main__":
    unittest.main()
