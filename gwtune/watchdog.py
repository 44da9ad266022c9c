from __future__ import annotations

import signal

from .events import configure_logging, log_event
from .netops import NetOps
from .policy import DEFAULT_POLICY
from .reconciler import Reconciler
from .resolver import NoInterfaceFound, resolve


def main() -> int:
    """Watchdog process entry point. Takes no arguments; policy is compiled in.

    Exit status 1 when no interface can be resolved so the service manager
    restarts us and resolution starts over.
    """
    configure_logging()
    ops = NetOps()
    try:
        iface = resolve(ops)
    except NoInterfaceFound as e:
        log_event("ERROR", "Interface resolution failed", error=str(e))
        return 1

    reconciler = Reconciler(iface, DEFAULT_POLICY, ops)

    def _on_signal(signum, _frame) -> None:
        log_event("INFO", "Termination requested", signal=signal.Signals(signum).name)
        reconciler.stop()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)
    reconciler.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
