from __future__ import annotations

from .events import log_event
from .netops import NetOps
from .retry import retry
from .settings import settings


class NoInterfaceFound(RuntimeError):
    pass


def first_non_loopback(ops: NetOps) -> str | None:
    for link in ops.list_links():
        if not link.loopback:
            return link.name
    return None


def resolve(
    ops: NetOps,
    probe_address: str | None = None,
    attempts: int | None = None,
    delay_s: float | None = None,
    sleep=None,
) -> str:
    """Pick the egress interface.

    Strategy:
      1) the device of the route towards `probe_address`, retried a bounded
         number of times since routing may still be coming up at boot
      2) the first non-loopback device in enumeration order

    Raises NoInterfaceFound when both come back empty.
    """
    address = probe_address or settings.probe_address
    kwargs = {"sleep": sleep} if sleep is not None else {}

    def route_dev() -> str | None:
        dev = ops.route_interface(address)
        # a loopback route means the probe address is local, not an egress path
        return None if dev == "lo" else dev

    iface = retry(
        route_dev,
        attempts=settings.resolve_attempts if attempts is None else attempts,
        delay_s=settings.resolve_delay_s if delay_s is None else delay_s,
        describe=f"route lookup towards {address}",
        **kwargs,
    )
    if iface:
        log_event("INFO", "Resolved egress interface from route", iface=iface, probe=address)
        return iface

    iface = first_non_loopback(ops)
    if iface:
        log_event("WARN", "No route found; falling back to first non-loopback device", iface=iface, probe=address)
        return iface
    raise NoInterfaceFound(f"No route towards {address} and no non-loopback device present.")
