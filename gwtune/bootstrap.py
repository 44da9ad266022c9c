from __future__ import annotations

from dataclasses import asdict, dataclass

from . import units
from .events import log_event
from .netops import ApplyError, NetOps
from .settings import settings
from .shell import Runner, run

# Buffers, window and backlog for a forwarding egress host. Congestion control
# is left to the watchdog.
SYSCTL_BASELINE: dict[str, str] = {
    "net.core.default_qdisc": "fq",
    "net.core.rmem_max": "67108864",
    "net.core.wmem_max": "67108864",
    "net.core.rmem_default": "1048576",
    "net.core.wmem_default": "1048576",
    "net.ipv4.tcp_rmem": "4096 87380 67108864",
    "net.ipv4.tcp_wmem": "4096 65536 67108864",
    "net.ipv4.tcp_window_scaling": "1",
    "net.core.netdev_max_backlog": "16384",
    "net.core.somaxconn": "65535",
    "net.ipv4.tcp_max_syn_backlog": "65535",
    "net.ipv4.tcp_fastopen": "3",
    "net.ipv4.tcp_mtu_probing": "1",
    "net.ipv4.tcp_slow_start_after_idle": "0",
    "net.ipv4.tcp_notsent_lowat": "16384",
    "net.ipv4.ip_local_port_range": "1024 65535",
    "net.ipv4.ip_forward": "1",
    "fs.file-max": "1048576",
}

CONNTRACK_MODULE = "nf_conntrack"
CONNTRACK_SYSCTLS: dict[str, str] = {
    "net.netfilter.nf_conntrack_max": "1048576",
    "net.netfilter.nf_conntrack_tcp_timeout_established": "7200",
}

# LRO breaks forwarding; the segmentation offloads are what fq wants.
OFFLOAD_FLAGS: dict[str, str] = {
    "lro": "off",
    "gro": "on",
    "gso": "on",
    "tso": "on",
}

NOFILE_LIMIT = 1048576
NPROC_LIMIT = 65535


@dataclass(frozen=True)
class StepResult:
    name: str
    ok: bool
    skipped: bool = False
    detail: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


def render_limits(nofile: int = NOFILE_LIMIT, nproc: int = NPROC_LIMIT) -> str:
    lines = ["# Managed by gwtune"]
    for item, value in (("nofile", nofile), ("nproc", nproc)):
        for kind in ("soft", "hard"):
            lines.append(f"*    {kind}    {item}    {value}")
            lines.append(f"root {kind}    {item}    {value}")
    return "\n".join(lines) + "\n"


class Bootstrap:
    """One-shot host preparation. Every step is idempotent and none is fatal."""

    def __init__(
        self,
        ops: NetOps | None = None,
        runner: Runner = run,
        unit_dir: str | None = None,
        limits_file: str | None = None,
        enable_unit: bool | None = None,
    ) -> None:
        self.ops = ops or NetOps(runner=runner)
        self.runner = runner
        self.unit_dir = unit_dir or settings.unit_dir
        self.limits_file = limits_file or settings.limits_file
        self.enable_unit = (not settings.no_enable) if enable_unit is None else enable_unit

    def _record(self, result: StepResult) -> StepResult:
        if result.skipped:
            log_event("INFO", "Bootstrap step skipped", step=result.name, detail=result.detail)
        elif not result.ok:
            log_event("WARN", "Bootstrap step failed", step=result.name, detail=result.detail)
        else:
            log_event("DEBUG", "Bootstrap step done", step=result.name, detail=result.detail)
        return result

    def apply_sysctls(self, params: dict[str, str]) -> list[StepResult]:
        results = []
        for key, value in params.items():
            name = f"sysctl:{key}"
            if not self.ops.sysctl_exists(key):
                results.append(self._record(StepResult(name, ok=True, skipped=True, detail="not supported by this kernel")))
                continue
            want = " ".join(value.split())
            try:
                if self.ops.read_sysctl(key) == want:
                    results.append(self._record(StepResult(name, ok=True, detail="unchanged")))
                    continue
            except OSError:
                pass
            try:
                self.ops.write_sysctl(key, value)
            except ApplyError as e:
                results.append(self._record(StepResult(name, ok=False, detail=str(e))))
                continue
            results.append(self._record(StepResult(name, ok=True, detail=want)))
        return results

    def write_limits(self) -> StepResult:
        try:
            changed = units.ensure_file(self.limits_file, render_limits())
        except OSError as e:
            return self._record(StepResult("limits", ok=False, detail=f"{self.limits_file}: {e}"))
        return self._record(StepResult("limits", ok=True, detail="written" if changed else "unchanged"))

    def load_conntrack(self) -> list[StepResult]:
        res = self.runner([settings.modprobe_bin, CONNTRACK_MODULE])
        if not res.ok:
            return [self._record(StepResult("conntrack", ok=True, skipped=True, detail=res.detail or f"modprobe exited {res.returncode}"))]
        results = [self._record(StepResult("conntrack", ok=True, detail=f"{CONNTRACK_MODULE} loaded"))]
        results.extend(self.apply_sysctls(CONNTRACK_SYSCTLS))
        return results

    def set_offloads(self, iface: str) -> list[StepResult]:
        results = []
        for flag, state in OFFLOAD_FLAGS.items():
            name = f"offload:{iface}:{flag}"
            res = self.runner([settings.ethtool_bin, "-K", iface, flag, state])
            if res.ok:
                results.append(self._record(StepResult(name, ok=True, detail=state)))
            else:
                # Fixed or unsupported features are common on virtual NICs.
                results.append(self._record(StepResult(name, ok=True, skipped=True, detail=res.detail or f"ethtool exited {res.returncode}")))
        return results

    def install_unit(self, exec_start: str | None = None) -> list[StepResult]:
        unit = units.desired_unit(self.unit_dir, exec_start)
        try:
            changed = units.ensure_file(unit.path, unit.content)
        except OSError as e:
            return [self._record(StepResult("unit", ok=False, detail=f"{unit.path}: {e}"))]
        results = [self._record(StepResult("unit", ok=True, detail=f"{unit.path} {'written' if changed else 'unchanged'}"))]

        dropins = units.list_dropins(self.unit_dir)
        results.append(
            self._record(
                StepResult(
                    "unit:drop-ins",
                    ok=True,
                    detail=("flagged for review: " + ", ".join(dropins)) if dropins else "none",
                )
            )
        )

        if not self.enable_unit:
            results.append(self._record(StepResult("unit:enable", ok=True, skipped=True, detail="disabled by GWTUNE_NO_ENABLE")))
            return results

        commands = []
        if changed:
            commands.append(("unit:daemon-reload", ["daemon-reload"]))
        commands.append(("unit:enable", ["enable", "--now", units.UNIT_NAME]))
        if changed:
            commands.append(("unit:restart", ["try-restart", units.UNIT_NAME]))
        for name, args in commands:
            res = self.runner([settings.systemctl_bin, *args])
            if res.returncode == 127:
                results.append(self._record(StepResult(name, ok=True, skipped=True, detail=res.detail)))
                break
            results.append(self._record(StepResult(name, ok=res.ok, detail=res.detail)))
        return results

    def run(self, iface: str | None = None, install_unit: bool = True) -> list[StepResult]:
        results = self.apply_sysctls(SYSCTL_BASELINE)
        results.append(self.write_limits())
        results.extend(self.load_conntrack())
        if iface:
            results.extend(self.set_offloads(iface))
        else:
            results.append(self._record(StepResult("offload", ok=True, skipped=True, detail="no interface")))
        if install_unit:
            results.extend(self.install_unit())
        failed = [r.name for r in results if not r.ok]
        log_event("INFO" if not failed else "WARN", "Bootstrap finished", steps=len(results), failed=failed or "none")
        return results
