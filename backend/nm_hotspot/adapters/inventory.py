import os
import subprocess
from typing import List, Tuple

# kind -> NetworkManager device types offered for selection
_KIND_TYPES = {
    "wifi": ("wifi",),
    "network": ("wifi", "ethernet"),
}


def _run(cmd: List[str]) -> str:
    return subprocess.check_output(
        cmd,
        text=True,
        stderr=subprocess.STDOUT,
        env={**os.environ, "LC_ALL": "C", "LANG": "C"},
    )


def _parse_nmcli_devices(out: str) -> List[Tuple[str, str]]:
    """
    Parse `nmcli -t -f DEVICE,TYPE device` into (device, type) pairs.
    """
    items: List[Tuple[str, str]] = []
    for line in out.splitlines():
        parts = line.strip().split(":")
        if len(parts) < 2 or not parts[0]:
            continue
        items.append((parts[0], parts[1]))
    return items


def list_interfaces(kind: str = "wifi") -> List[str]:
    """
    Device names for selection lists.

      - "wifi":    wireless devices only (hotspot candidates)
      - "network": wireless + wired (internet uplink candidates)

    Returns [] when nmcli is unavailable.
    """
    wanted = _KIND_TYPES.get(kind)
    if wanted is None:
        raise ValueError(f"unknown interface kind: {kind}")
    try:
        out = _run(["nmcli", "-t", "-f", "DEVICE,TYPE", "device"])
    except Exception:
        return []
    return [dev for dev, typ in _parse_nmcli_devices(out) if typ in wanted]


def list_wifi_interfaces() -> List[str]:
    return list_interfaces("wifi")


def list_network_interfaces() -> List[str]:
    return list_interfaces("network")
