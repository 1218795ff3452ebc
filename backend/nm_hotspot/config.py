import json
import os
from pathlib import Path
from typing import Any, Dict, Tuple


def _config_dir() -> Path:
    base = (os.environ.get("XDG_CONFIG_HOME") or "").strip()
    root = Path(base) if base else Path.home() / ".config"
    return root / "nm-hotspot"


CONFIG_PATH = _config_dir() / "config.json"
CONFIG_TMP = _config_dir() / "config.json.tmp"

# "bg" = 2.4 GHz, "a" = 5 GHz (NetworkManager wifi.band values)
BAND_CHOICES: Tuple[str, ...] = ("bg", "a")
BAND_LABELS: Dict[str, str] = {"bg": "2.4 GHz", "a": "5 GHz"}

DEFAULT_CONFIG: Dict[str, str] = {
    # Interfaces
    "hotspot_interface": "wlan0",
    "internet_interface": "wlan1",

    # NetworkManager profile name; deleted and recreated on every start
    "connection_name": "NMHotspot",

    # Wi-Fi identity
    "ssid": "NMHotspot",
    "password": "changeme123",
    "band": "bg",

    # Shared IPv4 gateway (NM runs DHCP + NAT behind it)
    "gateway_ip": "192.168.44.1/24",
}

CONFIG_KEYS = tuple(DEFAULT_CONFIG.keys())


class ConfigError(Exception):
    """Raised when the settings record cannot be persisted."""


def read_config_file() -> Dict[str, Any]:
    """
    Returns the raw JSON content on disk (or {} if missing/invalid).
    """
    if not CONFIG_PATH.exists():
        return {}
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except Exception:
        return {}


def _write_atomic(path: Path, tmp: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        try:
            os.fsync(f.fileno())
        except Exception:
            pass
    os.replace(tmp, path)


def _coerce(raw: Dict[str, Any]) -> Dict[str, str]:
    # Every field is a string; anything else on disk falls back to its default.
    out = DEFAULT_CONFIG.copy()
    for k in CONFIG_KEYS:
        v = raw.get(k)
        if isinstance(v, str):
            out[k] = v
    return out


def load_config() -> Dict[str, str]:
    """
    Returns DEFAULT_CONFIG merged with on-disk config.

    Never throws. Unknown keys on disk are dropped.
    """
    return _coerce(read_config_file())


def save_config(cfg: Dict[str, Any]) -> Dict[str, str]:
    """
    Persist the full settings record atomically.

    Returns the record as written. Raises ConfigError on I/O failure.
    """
    merged = _coerce(cfg if isinstance(cfg, dict) else {})
    payload = json.dumps(merged, indent=2)
    try:
        _write_atomic(CONFIG_PATH, CONFIG_TMP, payload)
    except OSError as e:
        raise ConfigError(f"Failed to write config: {e}") from e

    # Holds the PSK
    try:
        os.chmod(CONFIG_PATH, 0o600)
    except Exception:
        pass
    return merged


def reset_config() -> Dict[str, str]:
    return save_config(DEFAULT_CONFIG.copy())


def ensure_config_file() -> None:
    if CONFIG_PATH.exists():
        return
    save_config(DEFAULT_CONFIG.copy())
