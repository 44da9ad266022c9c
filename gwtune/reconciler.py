from __future__ import annotations

import time
from dataclasses import dataclass, field

from .events import log_event
from .netops import ApplyError, NetOps
from .policy import DEFAULT_POLICY, DesiredState, select_candidate
from .probe import CC_CURRENT, ObservedState, Prober
from .settings import settings

QDISC = "qdisc"
CONGESTION_CONTROL = "congestion_control"


@dataclass(frozen=True)
class Action:
    kind: str  # qdisc|congestion_control
    iface: str
    observed: str | None
    desired: str

    def as_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind, "iface": self.iface, "observed": self.observed, "desired": self.desired}


@dataclass
class CycleReport:
    observed: ObservedState
    applied: list[Action] = field(default_factory=list)
    failed: list[tuple[Action, str]] = field(default_factory=list)

    @property
    def writes(self) -> int:
        """Corrective writes attempted this cycle, successful or not."""
        return len(self.applied) + len(self.failed)


class Reconciler:
    """Keeps the root qdisc and TCP congestion control of one interface applied.

    Level-triggered: every cycle probes from scratch and derives the actions
    from that snapshot alone, so a cycle with nothing drifted writes nothing.
    """

    def __init__(
        self,
        iface: str,
        policy: DesiredState = DEFAULT_POLICY,
        ops: NetOps | None = None,
        prober: Prober | None = None,
        interval_s: float | None = None,
        sleep_slice_s: float = 0.5,
    ):
        if not iface:
            raise ValueError("iface must be a non-empty device name")
        self.iface = iface
        self.policy = policy
        self.ops = ops or NetOps()
        self.prober = prober or Prober(self.ops)
        self.interval_s = max(1, settings.interval_s) if interval_s is None else interval_s
        self.sleep_slice_s = max(0.01, sleep_slice_s)
        # plain flag: the signal handler must not take any lock
        self._stop = False

    def stop(self) -> None:
        """Safe to call from a signal handler; the loop exits before the next cycle."""
        self._stop = True

    @property
    def stopped(self) -> bool:
        return self._stop

    def run(self) -> None:
        log_event(
            "INFO",
            "Reconciler started",
            iface=self.iface,
            qdisc=" ".join(self.policy.qdisc.tc_args()),
            congestion=self.policy.congestion.candidates,
            interval_s=self.interval_s,
        )
        while not self._stop:
            try:
                self.reconcile_once()
            except Exception as e:
                log_event("ERROR", "Reconcile cycle failed", iface=self.iface, error=f"{type(e).__name__}: {e}")
            self._sleep()
        log_event("INFO", "Reconciler stopped", iface=self.iface)

    def _sleep(self) -> None:
        """Wait one interval in short slices so stop() takes effect promptly."""
        deadline = time.monotonic() + self.interval_s
        while not self._stop:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(self.sleep_slice_s, remaining))

    def congestion_target(self, state: ObservedState) -> str | None:
        return select_candidate(state.available, self.policy.congestion.candidates)

    def plan(self, state: ObservedState) -> list[Action]:
        """Corrective actions for a snapshot. Pure; no kernel access."""
        actions: list[Action] = []

        desired_qdisc = self.policy.qdisc.algorithm
        # unknown qdisc counts as drift: delete-then-add is safe either way
        if state.qdisc != desired_qdisc:
            actions.append(Action(QDISC, state.iface, state.qdisc, desired_qdisc))

        # unknown availability never leads to a write
        target = self.congestion_target(state)
        if target is not None and state.congestion_control != target:
            actions.append(Action(CONGESTION_CONTROL, state.iface, state.congestion_control, target))
        return actions

    def reconcile_once(self) -> CycleReport:
        state = self.prober.probe(self.iface)
        report = CycleReport(observed=state)
        self._note_degradation(state)

        for action in self.plan(state):
            try:
                self._apply(action)
            except ApplyError as e:
                report.failed.append((action, str(e)))
                log_event(
                    "ERROR",
                    f"Failed to correct {action.kind}; retrying next cycle",
                    iface=action.iface,
                    observed=action.observed,
                    desired=action.desired,
                    error=str(e),
                )
                continue
            report.applied.append(action)
            log_event(
                "INFO",
                f"Corrected {action.kind}",
                iface=action.iface,
                observed=action.observed,
                desired=action.desired,
            )
        return report

    def _apply(self, action: Action) -> None:
        if action.kind == QDISC:
            self.ops.replace_root_qdisc(action.iface, self.policy.qdisc)
        elif action.kind == CONGESTION_CONTROL:
            self.ops.write_sysctl(CC_CURRENT, action.desired)
        else:
            raise ValueError(f"unknown action kind: {action.kind}")

    def _note_degradation(self, state: ObservedState) -> None:
        if not state.availability_known:
            log_event(
                "WARN",
                "Available congestion control unknown; leaving current value",
                iface=state.iface,
                observed=state.congestion_control,
                desired=self.policy.congestion.candidates,
            )
        elif self.congestion_target(state) is None:
            log_event(
                "WARN",
                "No preferred congestion control available; leaving current value",
                iface=state.iface,
                observed=state.congestion_control,
                desired=self.policy.congestion.candidates,
                available=state.available,
            )
