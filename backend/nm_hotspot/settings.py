"""
Settings protocol: describe / set / action.

Every mutating call answers with a {"ok": bool, "message": str} pair and never
raises. Validation failures leave the stored record untouched.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from nm_hotspot.adapters.inventory import list_network_interfaces, list_wifi_interfaces
from nm_hotspot.config import (
    BAND_CHOICES,
    BAND_LABELS,
    DEFAULT_CONFIG,
    ConfigError,
    load_config,
    reset_config,
    save_config,
)
from nm_hotspot.engine.nmcli import is_hotspot_active, start_hotspot, stop_hotspot

log = logging.getLogger("nm_hotspot.settings")


class SettingsError(ValueError):
    pass


_BAND_ALIASES = {
    "2.4ghz": "bg",
    "2.4": "bg",
    "2ghz": "bg",
    "5ghz": "a",
    "5": "a",
}


def response(ok: bool, message: str) -> Dict[str, Any]:
    return {"ok": ok, "message": message}


def _parse_string(raw: str) -> str:
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SettingsError(f"Invalid string: {e}") from e
    if not isinstance(value, str):
        raise SettingsError("Invalid string: expected a JSON string")
    return value


def _normalize_band(value: str) -> str:
    v = value.strip().lower()
    v = _BAND_ALIASES.get(v, v)
    if v not in BAND_CHOICES:
        raise SettingsError("Invalid band: must be 'bg' or 'a'")
    return v


# key -> (success message, optional validator)
_FIELDS: Dict[str, Tuple[str, Optional[Callable[[str], str]]]] = {
    "ssid": ("Updated SSID", None),
    "password": ("Updated password", None),
    "band": ("Updated band", _normalize_band),
    "hotspot_interface": ("Updated hotspot interface", None),
    "internet_interface": ("Updated internet interface", None),
    "connection_name": ("Updated connection name", None),
    "gateway_ip": ("Updated gateway IP", None),
}


def _options(values: List[str]) -> List[Dict[str, str]]:
    return [{"value": v, "label": v} for v in values]


def _text(key: str, label: str, value: str, placeholder: str) -> Dict[str, Any]:
    return {"type": "text", "key": key, "label": label, "value": value, "placeholder": placeholder}


def _select(key: str, label: str, value: str, options: List[Dict[str, str]]) -> Dict[str, Any]:
    return {"type": "select", "key": key, "label": label, "value": value, "options": options}


def describe(cfg: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Current settings plus live interface choices, as a schema a settings
    host can render.
    """
    if cfg is None:
        cfg = load_config()
    band_opts = [{"value": b, "label": BAND_LABELS[b]} for b in BAND_CHOICES]

    return {
        "title": "WiFi Hotspot Settings",
        "description": "Configure and manage a WiFi hotspot using NetworkManager.",
        "sections": [
            {
                "title": "Network",
                "items": [
                    _text("ssid", "SSID", cfg["ssid"], "Network name"),
                    _text("password", "Password", cfg["password"], "WPA2 password"),
                    _select("band", "Band", cfg["band"], band_opts),
                ],
            },
            {
                "title": "Interfaces",
                "items": [
                    _select(
                        "hotspot_interface",
                        "Hotspot Interface",
                        cfg["hotspot_interface"],
                        _options(list_wifi_interfaces()),
                    ),
                    _select(
                        "internet_interface",
                        "Internet Interface",
                        cfg["internet_interface"],
                        _options(list_network_interfaces()),
                    ),
                ],
            },
            {
                "title": "Advanced",
                "items": [
                    _text("connection_name", "Connection Name", cfg["connection_name"], "NM connection name"),
                    _text("gateway_ip", "Gateway IP", cfg["gateway_ip"], DEFAULT_CONFIG["gateway_ip"]),
                ],
            },
        ],
        "actions": [
            {"id": "reset", "label": "Reset to Defaults", "style": "destructive"},
            {"id": "refresh_interfaces", "label": "Refresh Interfaces", "style": "standard"},
        ],
    }


def set_value(
    key: str,
    raw_value: str,
    restart: Optional[Callable[[Dict[str, str]], None]] = None,
) -> Dict[str, Any]:
    """
    Validate and persist one field. `raw_value` is a JSON string literal.

    If the hotspot is up, it is restarted so the change applies immediately.
    Inside the daemon, `restart` receives the pre-change record and hands
    the restart to the worker thread; without it (the standalone CLI) the
    restart runs inline.
    """
    field = _FIELDS.get(key)
    if field is None:
        return response(False, f"Unknown key: {key}")
    msg, validate = field

    try:
        value = _parse_string(raw_value)
        if validate is not None:
            value = validate(value)
    except SettingsError as e:
        log.info("settings_rejected", extra={"key": key})
        return response(False, str(e))

    previous = load_config()
    updated = dict(previous)
    updated[key] = value

    try:
        save_config(updated)
    except ConfigError as e:
        log.warning("settings_save_failed", extra={"key": key})
        return response(False, f"Save failed: {e}")

    log.info("settings_updated", extra={"key": key})

    if restart is not None:
        restart(previous)
        return response(True, msg)

    # Stop using the old record: a renamed profile must not be left running.
    if is_hotspot_active(previous):
        stop_hotspot(previous)
        result = start_hotspot(updated)
        if not result.ok:
            return response(False, f"{msg} (restart failed: {result.message})")
    return response(True, msg)


def _action_save() -> Dict[str, Any]:
    # Every set already persists; kept for hosts that still send it.
    return response(True, "Configuration saved")


def _action_reset() -> Dict[str, Any]:
    try:
        reset_config()
    except ConfigError as e:
        return response(False, f"Reset failed: {e}")
    return response(True, "Reset to defaults")


def _action_refresh_interfaces() -> Dict[str, Any]:
    # Interfaces are enumerated live by describe().
    return response(True, "Interfaces refreshed")


_ACTIONS: Dict[str, Callable[[], Dict[str, Any]]] = {
    "save": _action_save,
    "reset": _action_reset,
    "refresh_interfaces": _action_refresh_interfaces,
}


def run_action(action_id: str) -> Dict[str, Any]:
    handler = _ACTIONS.get(action_id)
    if handler is None:
        return response(False, f"Unknown action: {action_id}")
    log.info("settings_action", extra={"op": action_id})
    return handler()
