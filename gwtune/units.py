from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass

from .events import SOURCE, log_event

UNIT_NAME = "gwtune-watchdog.service"
RESTART_SEC = 5


@dataclass(frozen=True)
class UnitFile:
    path: str
    content: str


def default_exec_start() -> str:
    exe = shutil.which("gwtune-watchdog")
    if exe:
        return exe
    return f"{sys.executable} -m gwtune.watchdog"


def render_unit(exec_start: str, restart_sec: int = RESTART_SEC) -> str:
    return "\n".join(
        [
            "[Unit]",
            "Description=Keep egress qdisc and TCP congestion control applied",
            "After=network-online.target",
            "Wants=network-online.target",
            "",
            "[Service]",
            "Type=simple",
            f"ExecStart={exec_start}",
            "Restart=always",
            f"RestartSec={int(restart_sec)}",
            "StandardOutput=journal",
            "StandardError=journal",
            f"SyslogIdentifier={SOURCE}",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
    )


def desired_unit(unit_dir: str, exec_start: str | None = None) -> UnitFile:
    return UnitFile(
        path=os.path.join(unit_dir, UNIT_NAME),
        content=render_unit(exec_start or default_exec_start()),
    )


def ensure_file(path: str, content: str, mode: int = 0o644) -> bool:
    """Write `content` only if the file differs. Returns True when it changed."""
    try:
        with open(path, encoding="utf-8") as f:
            if f.read() == content:
                return False
    except FileNotFoundError:
        pass

    parent = os.path.dirname(path)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(content)
    os.chmod(tmp, mode)
    os.replace(tmp, path)
    return True


def list_dropins(unit_dir: str, unit_name: str = UNIT_NAME) -> list[str]:
    """Drop-in overrides for the unit, sorted. They are reported, never removed."""
    d = os.path.join(unit_dir, f"{unit_name}.d")
    if not os.path.isdir(d):
        return []
    found = sorted(os.path.join(d, n) for n in os.listdir(d) if n.endswith(".conf"))
    for path in found:
        log_event("WARN", "Unit drop-in override present; review it manually", unit=unit_name, path=path)
    return found
