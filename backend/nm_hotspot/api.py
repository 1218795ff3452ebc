import json
import logging
import os
import time
import uuid
from http.server import BaseHTTPRequestHandler
from typing import Any, Dict, Tuple
from urllib.parse import urlsplit

from nm_hotspot import settings

log = logging.getLogger("nm_hotspot.api")

SERVER_VERSION = "nm-hotspotd/0.1"

_ACTIONS_PREFIX = "/v1/settings/actions/"


class APIHandler(BaseHTTPRequestHandler):
    """
    Loopback control surface. `self.server.presentation` is the
    PresentationState owned by the daemon.
    """

    server_version = SERVER_VERSION

    def log_message(self, format, *args):
        return

    @property
    def presentation(self):
        return self.server.presentation  # type: ignore[attr-defined]

    def _path(self) -> str:
        return urlsplit(self.path).path or "/"

    def _env_token(self) -> str:
        return (os.environ.get("NM_HOTSPOTD_API_TOKEN") or "").strip()

    def _get_req_token(self) -> str:
        t = (self.headers.get("X-Api-Token") or "").strip()
        if t:
            return t
        auth = (self.headers.get("Authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            return auth.split(" ", 1)[1].strip()
        return ""

    def _is_authorized(self) -> bool:
        tok = self._env_token()
        if not tok:
            return True
        return self._get_req_token() == tok

    def _require_auth(self, cid: str) -> bool:
        if self._is_authorized():
            return True
        self._respond(
            401,
            self._envelope(
                correlation_id=cid,
                result_code="unauthorized",
                warnings=["missing_or_invalid_token"],
            ),
        )
        return False

    def _respond_raw(self, code: int, raw: bytes, content_type: str = "application/octet-stream"):
        self.send_response(code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(raw)))
        self.send_header("Cache-Control", "no-store")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.end_headers()
        try:
            self.wfile.write(raw)
        except (BrokenPipeError, ConnectionResetError):
            return

    def _respond(self, code: int, payload: dict):
        raw = json.dumps(payload).encode("utf-8")
        self._respond_raw(code, raw, "application/json; charset=utf-8")

    def _envelope(self, *, correlation_id: str, result_code: str = "ok", data=None, warnings=None):
        return {
            "correlation_id": correlation_id,
            "result_code": result_code,
            "warnings": warnings or [],
            "data": data or {},
        }

    def _cid(self) -> str:
        cid = self.headers.get("X-Correlation-Id")
        return cid.strip() if cid and cid.strip() else str(uuid.uuid4())

    def _read_json_body(self) -> Tuple[Dict[str, Any], list]:
        warnings: list = []
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except Exception:
            length = 0

        if length <= 0:
            return {}, warnings

        if length > 64_000:
            warnings.append("body_too_large")
            return {}, warnings

        try:
            raw = self.rfile.read(length)
        except Exception:
            warnings.append("body_read_failed")
            return {}, warnings

        try:
            data = json.loads(raw.decode("utf-8", "replace"))
            if isinstance(data, dict):
                return data, warnings
            warnings.append("body_not_object")
            return {}, warnings
        except Exception:
            warnings.append("body_json_parse_failed")
            return {}, warnings

    def _not_found(self, cid: str):
        self._respond(
            404,
            self._envelope(correlation_id=cid, result_code="not_found", warnings=["unknown_endpoint"]),
        )

    def _settings_reply(self, cid: str, res: Dict[str, Any], warnings: list):
        code = "ok" if res.get("ok") else "rejected"
        self._respond(200, self._envelope(correlation_id=cid, result_code=code, data=res, warnings=warnings))

    def do_GET(self):
        cid = self._cid()
        path = self._path()

        if path != "/healthz":
            log.info("request", extra={"correlation_id": cid, "method": "GET", "path": path})

        if path == "/healthz":
            self._respond_raw(200, b"ok\n", "text/plain; charset=utf-8")
            return

        if not self._require_auth(cid):
            return

        if path == "/v1/status":
            self._respond(200, self._envelope(correlation_id=cid, data=self.presentation.snapshot()))
            return

        if path == "/v1/indicator.svg":
            svg = self.presentation.indicator_svg()
            self._respond_raw(200, svg.encode("utf-8"), "image/svg+xml")
            return

        if path == "/v1/settings":
            self._respond(200, self._envelope(correlation_id=cid, data=settings.describe()))
            return

        if path == "/v1/info":
            data = {
                "server_version": SERVER_VERSION,
                "ts": int(time.time()),
                "pid": os.getpid(),
                "token_configured": bool(self._env_token()),
            }
            self._respond(200, self._envelope(correlation_id=cid, data=data))
            return

        self._not_found(cid)

    def do_POST(self):
        cid = self._cid()
        path = self._path()
        log.info("request", extra={"correlation_id": cid, "method": "POST", "path": path})

        if not self._require_auth(cid):
            return

        body, warnings = self._read_json_body()

        if path == "/v1/toggle":
            self.presentation.toggle()
            self._respond(
                202,
                self._envelope(correlation_id=cid, result_code="queued", data=self.presentation.snapshot()),
            )
            return

        if path == "/v1/settings":
            key = body.get("key")
            value = body.get("value")
            if not isinstance(key, str) or not isinstance(value, str):
                self._respond(
                    400,
                    self._envelope(
                        correlation_id=cid,
                        result_code="bad_request",
                        warnings=warnings + ["expected_string_key_and_value"],
                    ),
                )
                return
            # Body carries the plain value; the protocol takes a JSON literal.
            # Any restart runs on the worker, never on this handler thread.
            res = settings.set_value(key, json.dumps(value), restart=self.presentation.request_restart)
            self._settings_reply(cid, res, warnings)
            return

        if path.startswith(_ACTIONS_PREFIX):
            action_id = path[len(_ACTIONS_PREFIX):]
            self._settings_reply(cid, settings.run_action(action_id), warnings)
            return

        self._not_found(cid)
