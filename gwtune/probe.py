from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .events import log_event
from .netops import NetOps

CC_CURRENT = "net.ipv4.tcp_congestion_control"
CC_AVAILABLE = "net.ipv4.tcp_available_congestion_control"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class ObservedState:
    """One probe of live kernel state. None / empty set means unknown."""

    iface: str
    qdisc: str | None
    congestion_control: str | None
    available: frozenset[str] = frozenset()
    taken_at: str = field(default_factory=utc_now, compare=False)

    @property
    def availability_known(self) -> bool:
        return bool(self.available)

    def as_dict(self) -> dict[str, Any]:
        return {
            "iface": self.iface,
            "qdisc": self.qdisc,
            "congestion_control": self.congestion_control,
            "available": sorted(self.available),
            "taken_at": self.taken_at,
        }


def parse_root_qdisc(text: str) -> str | None:
    """Kind of the root qdisc from `tc qdisc show dev X root` output.

    e.g. "qdisc fq 8001: root refcnt 2 limit 10000p ..." -> "fq"
    """
    first = None
    for line in text.splitlines():
        tokens = line.split()
        if len(tokens) < 2 or tokens[0] != "qdisc":
            continue
        if "root" in tokens:
            return tokens[1]
        first = first or tokens[1]
    return first


class Prober:
    """Best-effort reads of qdisc and congestion control state. Never raises."""

    def __init__(self, ops: NetOps) -> None:
        self.ops = ops

    def probe(self, iface: str) -> ObservedState:
        return ObservedState(
            iface=iface,
            qdisc=self.root_qdisc(iface),
            congestion_control=self.congestion_control(),
            available=self.available_congestion_control(),
        )

    def root_qdisc(self, iface: str) -> str | None:
        res = self.ops.show_root_qdisc(iface)
        if not res.ok:
            log_event("WARN", "qdisc probe failed", iface=iface, error=res.detail or res.returncode)
            return None
        return parse_root_qdisc(res.stdout)

    def congestion_control(self) -> str | None:
        try:
            value = self.ops.read_sysctl(CC_CURRENT)
        except OSError as e:
            log_event("WARN", "congestion control probe failed", key=CC_CURRENT, error=e.strerror or e)
            return None
        return value or None

    def available_congestion_control(self) -> frozenset[str]:
        try:
            value = self.ops.read_sysctl(CC_AVAILABLE)
        except OSError as e:
            log_event("WARN", "available congestion control probe failed", key=CC_AVAILABLE, error=e.strerror or e)
            return frozenset()
        return frozenset(value.split())
