import ipaddress
import logging
import os
from http.server import ThreadingHTTPServer

from nm_hotspot.api import APIHandler
from nm_hotspot.presentation import PresentationState

log = logging.getLogger("nm_hotspot.server")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8733


def _is_loopback(h: str) -> bool:
    h = (h or "").strip().lower()
    if h in ("127.0.0.1", "localhost", "::1"):
        return True
    try:
        return ipaddress.ip_address(h).is_loopback
    except Exception:
        return False


def _bind_address():
    host = (os.environ.get("NM_HOTSPOTD_HOST") or DEFAULT_HOST).strip() or DEFAULT_HOST
    port_raw = (os.environ.get("NM_HOTSPOTD_PORT") or str(DEFAULT_PORT)).strip()
    try:
        port = int(port_raw)
    except Exception:
        port = DEFAULT_PORT
    return host, port


def build_server(presentation: PresentationState) -> ThreadingHTTPServer:
    host, port = _bind_address()

    if not _is_loopback(host) and not (os.environ.get("NM_HOTSPOTD_API_TOKEN") or "").strip():
        log.error("refusing to bind non-loopback without NM_HOTSPOTD_API_TOKEN")
        raise SystemExit(1)

    server = ThreadingHTTPServer((host, port), APIHandler)
    server.daemon_threads = True
    server.presentation = presentation  # type: ignore[attr-defined]
    log.info("listening", extra={"bind": f"http://{host}:{port}"})
    return server
