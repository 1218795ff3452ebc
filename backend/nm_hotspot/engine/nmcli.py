import logging
import os
import subprocess
from typing import Dict, List, Tuple

from nm_hotspot.events import CommandResult
from nm_hotspot.engine import nat_helper

log = logging.getLogger("nm_hotspot.engine.nmcli")

NMCLI = "nmcli"

# Same convention as the shell: the binary could not be spawned at all.
SPAWN_FAILED_RC = 127


def _run(cmd: List[str]) -> Tuple[int, str, str]:
    """
    Run a command to completion. Never raises.
    Returns (returncode, stdout, stderr).
    """
    log.debug("exec", extra={"op": " ".join(cmd[:3])})
    try:
        p = subprocess.run(
            cmd,
            text=True,
            capture_output=True,
            check=False,
            env={**os.environ, "LC_ALL": "C", "LANG": "C"},
        )
        return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()
    except Exception as e:
        return SPAWN_FAILED_RC, "", f"{type(e).__name__}: {e}"


def _nmcli(*args: str) -> Tuple[int, str, str]:
    return _run([NMCLI, *args])


def _add_args(cfg: Dict[str, str]) -> List[str]:
    """
    `nmcli connection add` arguments for a WPA2-PSK access point with
    shared IPv4 (NM provides DHCP, ip_forward and MASQUERADE).
    """
    return [
        "connection", "add",
        "type", "wifi",
        "ifname", cfg["hotspot_interface"],
        "con-name", cfg["connection_name"],
        "ssid", cfg["ssid"],
        "--",
        "wifi.mode", "ap",
        "wifi.band", cfg["band"],
        "wifi-sec.key-mgmt", "wpa-psk",
        "wifi-sec.proto", "rsn",
        "wifi-sec.pairwise", "ccmp",
        "wifi-sec.group", "ccmp",
        "wifi-sec.psk", cfg["password"],
        "ipv4.method", "shared",
        "ipv4.addresses", cfg["gateway_ip"],
        "ipv6.method", "disabled",
    ]


def _failure(prefix: str, rc: int, stderr: str) -> CommandResult:
    if rc == SPAWN_FAILED_RC:
        return CommandResult(ok=False, message=f"Failed to run nmcli: {stderr}")
    return CommandResult(ok=False, message=f"{prefix}: {stderr}")


def start_hotspot(cfg: Dict[str, str]) -> CommandResult:
    name = cfg["connection_name"]

    # A stale profile with the same name would make `add` create a duplicate.
    _nmcli("connection", "delete", name)

    rc, _out, err = _nmcli(*_add_args(cfg))
    if rc != 0:
        log.warning("hotspot_create_failed", extra={"connection_name": name, "result_code": rc})
        return _failure("Failed to create hotspot", rc, err)

    rc, _out, err = _nmcli("connection", "up", name)
    if rc != 0:
        log.warning("hotspot_activate_failed", extra={"connection_name": name, "result_code": rc})
        return _failure("Failed to activate hotspot", rc, err)

    _apply_nat(cfg)

    iface = cfg["hotspot_interface"]
    log.info(
        "hotspot_started",
        extra={"op": "start", "connection_name": name, "ssid": cfg["ssid"], "ifname": iface},
    )
    return CommandResult(ok=True, message=f"Hotspot '{cfg['ssid']}' active on {iface}")


def _apply_nat(cfg: Dict[str, str]) -> None:
    """
    Explicit NAT rules on top of NM shared mode. Best-effort only.
    """
    if not nat_helper.is_installed():
        log.info("nat_helper_missing_using_nm_shared_mode")
        return

    ok, out = nat_helper.apply(cfg["hotspot_interface"], cfg["internet_interface"])
    if ok:
        log.info("nat_helper_applied", extra={"ifname": cfg["hotspot_interface"]})
    else:
        log.warning("nat_helper_failed:%s", out[:200])


def stop_hotspot(cfg: Dict[str, str]) -> CommandResult:
    name = cfg["connection_name"]
    _nmcli("connection", "down", name)
    _nmcli("connection", "delete", name)
    log.info("hotspot_stopped", extra={"op": "stop", "connection_name": name})
    return CommandResult(ok=True, message="Hotspot stopped")


def is_hotspot_active(cfg: Dict[str, str]) -> bool:
    rc, out, _err = _nmcli(
        "-t", "-f", "GENERAL.STATE", "connection", "show", cfg["connection_name"]
    )
    if rc != 0:
        return False
    return "activated" in out
