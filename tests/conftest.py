import os
import sys

import pytest

# Ensure project root is importable (so `import gwtune` works without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from gwtune.netops import NetOps  # noqa: E402
from gwtune.shell import CommandResult  # noqa: E402


class FakeHost:
    """In-memory stand-in for iproute2/ethtool/modprobe/systemctl plus a /proc/sys tree."""

    def __init__(self, proc_sys):
        self.proc_sys = str(proc_sys)
        self.links = ["lo", "eth0"]
        self.route_dev = "eth0"
        # iface -> (kind, handle, params)
        self.qdiscs = {"eth0": ("pfifo_fast", "0:", [])}
        self.fail_add = False
        self.fail_show = False
        self.unsupported_offloads = set()
        self.modprobe_ok = True
        self.calls = []

    # --- /proc/sys ---------------------------------------------------------

    def set_sysctl(self, key, value):
        path = os.path.join(self.proc_sys, *key.split("."))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(f"{value}\n")

    def get_sysctl(self, key):
        with open(os.path.join(self.proc_sys, *key.split("."))) as f:
            return f.read().strip()

    # --- command emulation ---------------------------------------------------

    @property
    def tc_writes(self):
        return [c for c in self.calls if c[0] == "tc" and c[2] in {"add", "del"}]

    def __call__(self, argv, timeout_s=None):
        argv = tuple(argv)
        self.calls.append(argv)
        tool = argv[0]
        if tool == "ip":
            return self._ip(argv)
        if tool == "tc":
            return self._tc(argv)
        if tool == "ethtool":
            flag = argv[3]
            if flag in self.unsupported_offloads:
                return CommandResult(argv, 1, "", f"Cannot change {flag}\nCould not change any device features\n")
            return CommandResult(argv, 0)
        if tool == "modprobe":
            if self.modprobe_ok:
                return CommandResult(argv, 0)
            return CommandResult(argv, 1, "", f"modprobe: FATAL: Module {argv[1]} not found.\n")
        if tool == "systemctl":
            return CommandResult(argv, 0)
        return CommandResult(argv, 127, "", f"command not found: {tool}")

    def _link_line(self, idx, name):
        flags = "LOOPBACK,UP,LOWER_UP" if name == "lo" else "BROADCAST,MULTICAST,UP,LOWER_UP"
        return f"{idx}: {name}: <{flags}> mtu 1500 qdisc noqueue state UP mode DEFAULT group default qlen 1000\\    link/ether 52:54:00:12:34:56 brd ff:ff:ff:ff:ff:ff"

    def _ip(self, argv):
        if argv[1:4] == ("-o", "route", "get"):
            if not self.route_dev:
                return CommandResult(argv, 2, "", "RTNETLINK answers: Network is unreachable\n")
            return CommandResult(argv, 0, f"{argv[4]} via 10.0.0.1 dev {self.route_dev} src 10.0.0.2 uid 0 \\    cache \n")
        if argv[1:4] == ("-o", "link", "show"):
            lines = [self._link_line(i + 1, n) for i, n in enumerate(self.links)]
            if len(argv) > 5:
                lines = [self._link_line(i + 1, n) for i, n in enumerate(self.links) if n == argv[5]]
                if not lines:
                    return CommandResult(argv, 1, "", f'Device "{argv[5]}" does not exist.\n')
            return CommandResult(argv, 0, "\n".join(lines) + ("\n" if lines else ""))
        return CommandResult(argv, 1, "", "unsupported")

    def _tc(self, argv):
        op, iface = argv[2], argv[4]
        if iface not in self.qdiscs:
            return CommandResult(argv, 1, "", f'Cannot find device "{iface}"\n')
        kind, handle, params = self.qdiscs[iface]
        if op == "show":
            if self.fail_show:
                return CommandResult(argv, 2, "", "RTNETLINK answers: Operation not permitted\n")
            extra = " ".join(f"{params[i]} {params[i + 1]}p" for i in range(0, len(params), 2))
            return CommandResult(argv, 0, f"qdisc {kind} {handle} root refcnt 2 {extra}\n".replace("  ", " "))
        if op == "del":
            if handle == "0:":
                return CommandResult(argv, 2, "", "Error: Cannot delete qdisc with handle of zero.\n")
            self.qdiscs[iface] = ("pfifo_fast", "0:", [])
            return CommandResult(argv, 0)
        if op == "add":
            if self.fail_add:
                return CommandResult(argv, 2, "", "RTNETLINK answers: Device or resource busy\n")
            if handle != "0:":
                return CommandResult(argv, 2, "", "Error: Exclusivity flag on, cannot modify.\n")
            self.qdiscs[iface] = (argv[6], "8001:", list(argv[7:]))
            return CommandResult(argv, 0)
        return CommandResult(argv, 1, "", "unsupported")


@pytest.fixture
def host(tmp_path):
    h = FakeHost(tmp_path / "proc_sys")
    h.set_sysctl("net.ipv4.tcp_congestion_control", "cubic")
    h.set_sysctl("net.ipv4.tcp_available_congestion_control", "reno cubic bbr")
    return h


@pytest.fixture
def ops(host):
    return NetOps(runner=host, proc_sys=host.proc_sys, ip_bin="ip", tc_bin="tc")
