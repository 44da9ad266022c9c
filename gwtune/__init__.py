"""Gateway network tuner (gwtune).

Single-host tool that keeps an egress interface tuned:
 - one-shot bootstrap (sysctls, limits, conntrack, offloads, service unit)
 - a watchdog that keeps the root qdisc and TCP congestion control applied
 - graceful fallback when the preferred congestion control is missing

Policy is compiled in; the watchdog takes no arguments and keeps no state
between cycles beyond what the kernel itself holds.
"""
