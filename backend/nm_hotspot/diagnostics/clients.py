from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Tuple

ARP_PATH = Path("/proc/net/arp")

# /proc/net/arp flags for an entry that never resolved
_ARP_INCOMPLETE = "0x0"


def _run(cmd: List[str]) -> Tuple[int, str, str]:
    """
    Returns (returncode, stdout, stderr). Never raises.
    """
    try:
        p = subprocess.run(
            cmd,
            text=True,
            capture_output=True,
            env={**os.environ, "LC_ALL": "C", "LANG": "C"},
        )
        return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()
    except Exception as e:
        return 127, "", f"{type(e).__name__}: {e}"


def _parse_ip_neigh(text: str) -> List[str]:
    """
    `ip neigh show dev <if>` lines look like:
      192.168.44.2 lladdr aa:bb:cc:dd:ee:ff REACHABLE
    FAILED entries are stale/unreachable and skipped.
    """
    out: List[str] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 4 or "FAILED" in line:
            continue
        out.append(parts[0])
    return out


def _parse_proc_arp(text: str, ifname: str) -> List[str]:
    """
    /proc/net/arp columns: IP HW-type Flags HW-address Mask Device
    """
    out: List[str] = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6 or parts[5] != ifname:
            continue
        if parts[2] == _ARP_INCOMPLETE:
            continue
        out.append(parts[0])
    return out


def _neigh_clients(ifname: str) -> List[str]:
    rc, stdout, _stderr = _run(["ip", "neigh", "show", "dev", ifname])
    if rc != 0:
        return []
    return _parse_ip_neigh(stdout)


def _arp_clients(ifname: str) -> List[str]:
    try:
        text = ARP_PATH.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    return _parse_proc_arp(text, ifname)


def list_clients(cfg: Dict[str, str]) -> List[str]:
    """
    Addresses of stations currently known on the hotspot interface.

    Prefers the kernel neighbour table via `ip neigh`; falls back to
    /proc/net/arp when that yields nothing. Never raises.
    """
    ifname = cfg.get("hotspot_interface") or ""
    if not ifname:
        return []
    clients = _neigh_clients(ifname)
    if clients:
        return clients
    return _arp_clients(ifname)
