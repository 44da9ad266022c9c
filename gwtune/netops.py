from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .policy import QdiscPolicy
from .settings import settings
from .shell import CommandResult, Runner, run


class ApplyError(RuntimeError):
    """A corrective write against the kernel failed."""


SYSCTL_KEY_RE = re.compile(r"^[a-z0-9_\-]+(\.[a-z0-9_\-]+)+$")

# What `tc qdisc del ... root` prints when there is nothing to delete.
_NO_QDISC_MARKERS = (
    "no such file or directory",
    "cannot delete qdisc with handle of zero",
    "cannot find specified qdisc",
)


def is_absent_qdisc_error(result: CommandResult) -> bool:
    text = result.detail.lower()
    return any(marker in text for marker in _NO_QDISC_MARKERS)


@dataclass(frozen=True)
class Link:
    index: int
    name: str
    loopback: bool


class NetOps:
    """Read/write access to the kernel networking configuration surface.

    Sysctls go through the /proc/sys tree directly; qdiscs, links and routes
    through iproute2. Every command runs with a timeout (see shell.run).
    """

    def __init__(
        self,
        runner: Runner = run,
        proc_sys: str | None = None,
        ip_bin: str | None = None,
        tc_bin: str | None = None,
    ) -> None:
        self.runner = runner
        self.proc_sys = proc_sys or settings.proc_sys
        self.ip_bin = ip_bin or settings.ip_bin
        self.tc_bin = tc_bin or settings.tc_bin

    # ----- sysctl tree -------------------------------------------------

    def sysctl_path(self, key: str) -> str:
        if not SYSCTL_KEY_RE.match(key):
            raise ValueError(f"Invalid sysctl key: {key!r}")
        return os.path.join(self.proc_sys, *key.split("."))

    def sysctl_exists(self, key: str) -> bool:
        return os.path.exists(self.sysctl_path(key))

    def read_sysctl(self, key: str) -> str:
        """Raises OSError when the tunable is missing or unreadable."""
        with open(self.sysctl_path(key), encoding="ascii", errors="replace") as f:
            return " ".join(f.read().split())

    def write_sysctl(self, key: str, value: str) -> None:
        try:
            with open(self.sysctl_path(key), "w", encoding="ascii") as f:
                f.write(f"{value}\n")
        except OSError as e:
            raise ApplyError(f"write {key}={value} failed: {e.strerror or e}") from e

    # ----- qdisc ---------------------------------------------------------

    def show_root_qdisc(self, iface: str) -> CommandResult:
        return self.runner([self.tc_bin, "qdisc", "show", "dev", iface, "root"])

    def delete_root_qdisc(self, iface: str) -> bool:
        """Delete the root qdisc. Returns False when there was none to delete."""
        res = self.runner([self.tc_bin, "qdisc", "del", "dev", iface, "root"])
        if res.ok:
            return True
        if is_absent_qdisc_error(res):
            return False
        raise ApplyError(f"tc qdisc del dev {iface} root failed: {res.detail or res.returncode}")

    def add_root_qdisc(self, iface: str, policy: QdiscPolicy) -> None:
        res = self.runner([self.tc_bin, "qdisc", "add", "dev", iface, "root", *policy.tc_args()])
        if not res.ok:
            raise ApplyError(f"tc qdisc add dev {iface} root {' '.join(policy.tc_args())} failed: {res.detail or res.returncode}")

    def replace_root_qdisc(self, iface: str, policy: QdiscPolicy) -> None:
        self.delete_root_qdisc(iface)
        self.add_root_qdisc(iface, policy)

    # ----- links and routes --------------------------------------------

    def list_links(self) -> list[Link]:
        """Devices in kernel enumeration (ifindex) order. Empty when unavailable."""
        res = self.runner([self.ip_bin, "-o", "link", "show"])
        if not res.ok:
            return []
        return parse_links(res.stdout)

    def interface_exists(self, iface: str) -> bool:
        res = self.runner([self.ip_bin, "-o", "link", "show", "dev", iface])
        return res.ok and bool(res.stdout.strip())

    def route_interface(self, address: str) -> str | None:
        """Device used to reach `address`, or None if there is no route yet."""
        res = self.runner([self.ip_bin, "-o", "route", "get", address])
        if not res.ok:
            return None
        return parse_route_dev(res.stdout)


_LINK_RE = re.compile(r"^(\d+):\s+([^:\s]+):\s+<([^>]*)>")


def parse_links(text: str) -> list[Link]:
    links: list[Link] = []
    for line in text.splitlines():
        m = _LINK_RE.match(line.strip())
        if not m:
            continue
        # veth/vlan devices show up as name@parent
        name = m.group(2).split("@", 1)[0]
        flags = set(m.group(3).split(","))
        links.append(Link(index=int(m.group(1)), name=name, loopback=("LOOPBACK" in flags or name == "lo")))
    return sorted(links, key=lambda l: l.index)


def parse_route_dev(text: str) -> str | None:
    tokens = text.split()
    for i, tok in enumerate(tokens[:-1]):
        if tok == "dev":
            return tokens[i + 1]
    return None
