"""CLI entrypoints for hostwatch snapshots, live polling and diagnostics."""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path
from typing import Any

from hostwatch_core import (
    DiagnosticsExporter,
    build_doctor_payload,
    build_telemetry,
    configure_logging,
    load_config,
)
from hostwatch_core.config import log_level
from hostwatch_telemetry import HostTelemetry


def _print_json(data: object, compact: bool = False) -> None:
    if compact:
        print(json.dumps(data, sort_keys=True, default=str))
    else:
        print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _telemetry(args: argparse.Namespace) -> HostTelemetry:
    return build_telemetry(args.cfg)


def cmd_snapshot(args: argparse.Namespace) -> int:
    _print_json(_telemetry(args).snapshot(), args.compact)
    return 0


def cmd_cpu(args: argparse.Namespace) -> int:
    telemetry = _telemetry(args)
    load = telemetry.cpu_load()
    _print_json(
        {
            "model_name": telemetry.cpu_model_name(),
            "info": [c.as_dict() for c in telemetry.cpu_info()],
            "load": load.as_dict() if load is not None else None,
        },
        args.compact,
    )
    return 0


def cmd_memory(args: argparse.Namespace) -> int:
    memory = _telemetry(args).memory()
    _print_json(memory.as_dict() if memory is not None else None, args.compact)
    return 0


def cmd_disks(args: argparse.Namespace) -> int:
    _print_json([d.as_dict() for d in _telemetry(args).disks()], args.compact)
    return 0


def cmd_network(args: argparse.Namespace) -> int:
    _print_json([n.as_dict() for n in _telemetry(args).network()], args.compact)
    return 0


def cmd_host(args: argparse.Namespace) -> int:
    host = _telemetry(args).host()
    _print_json(host.as_dict() if host is not None else None, args.compact)
    return 0


def cmd_gpu(args: argparse.Namespace) -> int:
    telemetry = _telemetry(args)
    cards = telemetry.gpu()
    _print_json(
        {
            "detected": telemetry.has_gpu(),
            "identity": telemetry.gpu_identity().as_dict(),
            "cards": [g.as_dict() for g in cards],
        },
        args.compact,
    )
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    if args.interval <= 0:
        print("--interval must be greater than zero")
        return 2
    telemetry = _telemetry(args)
    deadline = time.monotonic() + args.seconds
    while True:
        row: dict[str, Any] = {"ts": time.time()}
        load = telemetry.cpu_load()
        memory = telemetry.memory()
        row["cpu_percent"] = load.usage_percent if load is not None else None
        row["memory_percent"] = memory.used_percent if memory is not None else None
        row["gpu"] = [str(g) for g in telemetry.gpu()]
        print(json.dumps(row, sort_keys=True))
        if time.monotonic() + args.interval > deadline:
            return 0
        time.sleep(args.interval)


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = args.cfg
    telemetry = build_telemetry(cfg)
    payload = build_doctor_payload(cfg, telemetry)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, snapshot=telemetry.snapshot(), output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload, args.compact)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostwatch", description="Local host telemetry snapshots")
    parser.add_argument("--config", default=None, help="Optional path to a config.json")
    parser.add_argument("--compact", action="store_true", help="Print single-line JSON")
    parser.add_argument("--verbose", action="store_true", help="Echo log records to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("snapshot", help="Print every metric family").set_defaults(func=cmd_snapshot)
    sub.add_parser("cpu", help="CPU identity and current load").set_defaults(func=cmd_cpu)
    sub.add_parser("memory", help="Virtual memory usage").set_defaults(func=cmd_memory)
    sub.add_parser("disks", help="Mounted partitions and usage").set_defaults(func=cmd_disks)
    sub.add_parser("network", help="Per-interface I/O counters").set_defaults(func=cmd_network)
    sub.add_parser("host", help="Host facts").set_defaults(func=cmd_host)
    sub.add_parser("gpu", help="GPU vendor and per-card metrics").set_defaults(func=cmd_gpu)

    watch_cmd = sub.add_parser("watch", help="Poll CPU, memory and GPU periodically")
    watch_cmd.add_argument("--seconds", type=float, default=10.0)
    watch_cmd.add_argument("--interval", type=float, default=1.0)
    watch_cmd.set_defaults(func=cmd_watch)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config(Path(args.config).expanduser() if args.config else None)
    args.cfg = cfg
    configure_logging(
        keep_files=cfg.logging.keep_files,
        console=bool(args.verbose or cfg.logging.console),
        level=log_level(cfg),
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
