from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Watchdog
    interval_s: int = _env_int("GWTUNE_INTERVAL_S", 30)
    resolve_attempts: int = _env_int("GWTUNE_RESOLVE_ATTEMPTS", 30)
    resolve_delay_s: float = _env_float("GWTUNE_RESOLVE_DELAY_S", 1.0)
    probe_address: str = os.getenv("GWTUNE_PROBE_ADDRESS", "1.1.1.1")
    command_timeout_s: float = _env_float("GWTUNE_COMMAND_TIMEOUT_S", 10.0)
    log_level: str = os.getenv("GWTUNE_LOG_LEVEL", "INFO")

    # Kernel surface
    proc_sys: str = os.getenv("GWTUNE_PROC_SYS", "/proc/sys")
    ip_bin: str = os.getenv("GWTUNE_IP_BIN", "ip")
    tc_bin: str = os.getenv("GWTUNE_TC_BIN", "tc")
    ethtool_bin: str = os.getenv("GWTUNE_ETHTOOL_BIN", "ethtool")
    modprobe_bin: str = os.getenv("GWTUNE_MODPROBE_BIN", "modprobe")
    systemctl_bin: str = os.getenv("GWTUNE_SYSTEMCTL_BIN", "systemctl")

    # Bootstrap
    unit_dir: str = os.getenv("GWTUNE_UNIT_DIR", "/etc/systemd/system")
    limits_file: str = os.getenv("GWTUNE_LIMITS_FILE", "/etc/security/limits.d/99-gwtune.conf")
    # Skip `systemctl enable --now` after writing the unit (image builds, chroots).
    no_enable: bool = _env_bool("GWTUNE_NO_ENABLE", False)


settings = Settings()
