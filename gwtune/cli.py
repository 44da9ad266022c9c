from __future__ import annotations

import argparse
import json
import sys

from .bootstrap import Bootstrap
from .events import configure_logging
from .netops import NetOps
from .policy import DEFAULT_POLICY
from .reconciler import Reconciler
from .resolver import NoInterfaceFound, resolve
from .settings import settings
from .units import list_dropins


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _resolve_iface(ops: NetOps, iface: str | None, attempts: int) -> str | None:
    if iface:
        return iface if ops.interface_exists(iface) else None
    try:
        return resolve(ops, attempts=attempts)
    except NoInterfaceFound:
        return None


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Gateway network tuner")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_status = sub.add_parser("status", help="Probe once and show the actions a cycle would take")
    s_status.add_argument("--iface", help="Interface to inspect (default: resolve egress device)")

    s_boot = sub.add_parser("bootstrap", help="One-shot sysctl/limits/conntrack/offload/unit setup")
    s_boot.add_argument("--iface", help="Interface for offload flags (default: resolve egress device)")
    s_boot.add_argument("--no-unit", action="store_true", help="Do not install the watchdog service unit")

    sub.add_parser("drop-ins", help="List drop-in overrides of the watchdog unit")
    sub.add_parser("watchdog", help="Run the reconciliation loop in the foreground")

    args = p.parse_args(argv)
    configure_logging()

    if args.cmd == "watchdog":
        from .watchdog import main as watchdog_main

        return watchdog_main()

    ops = NetOps()

    if args.cmd == "status":
        iface = _resolve_iface(ops, args.iface, attempts=1)
        if not iface:
            _print({"error": "no interface found"})
            return 1
        rec = Reconciler(iface, DEFAULT_POLICY, ops)
        state = rec.prober.probe(iface)
        _print(
            {
                "observed": state.as_dict(),
                "desired": DEFAULT_POLICY.model_dump(mode="json"),
                "selected_congestion_control": rec.congestion_target(state),
                "pending_actions": [a.as_dict() for a in rec.plan(state)],
            }
        )
        return 0

    if args.cmd == "bootstrap":
        iface = _resolve_iface(ops, args.iface, attempts=settings.resolve_attempts)
        results = Bootstrap(ops).run(iface=iface, install_unit=not args.no_unit)
        _print({"iface": iface, "steps": [r.as_dict() for r in results]})
        return 0 if all(r.ok for r in results) else 1

    if args.cmd == "drop-ins":
        _print({"unit_dir": settings.unit_dir, "drop_ins": list_dropins(settings.unit_dir)})
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
