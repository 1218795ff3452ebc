import os
import subprocess
from pathlib import Path
from typing import List, Tuple

# Installed together with a polkit policy (allow_active=yes), so pkexec
# does not prompt for active sessions.
NAT_HELPER = Path("/usr/local/bin/nm-hotspot-nat")


def _run(args: List[str]) -> Tuple[bool, str]:
    """
    Run the helper through pkexec. Returns (ok, combined_output).
    Never raises.
    """
    try:
        p = subprocess.run(
            ["pkexec", str(NAT_HELPER), *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
            env={**os.environ, "LC_ALL": "C", "LANG": "C"},
        )
        out = (p.stdout or "").strip()
        return (p.returncode == 0), out
    except Exception as e:
        return False, f"pkexec spawn failed: {e}"


def is_installed() -> bool:
    return NAT_HELPER.exists()


def apply(hotspot_ifname: str, internet_ifname: str) -> Tuple[bool, str]:
    return _run([hotspot_ifname, internet_ifname])
