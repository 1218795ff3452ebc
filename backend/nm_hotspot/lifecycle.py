import logging
import queue
import threading
from typing import Dict, List, Optional

from nm_hotspot.config import load_config
from nm_hotspot.diagnostics.clients import list_clients
from nm_hotspot.engine.nmcli import is_hotspot_active, start_hotspot, stop_hotspot
from nm_hotspot.events import (
    CommandResult,
    HotspotCommand,
    HotspotEvent,
    RestartCommand,
    StatusUpdate,
    ToggleCommand,
    ToggleCompleted,
    ToggleStarted,
)

log = logging.getLogger("nm_hotspot.lifecycle")

POLL_INTERVAL_S = 2.0

_WORKER: Optional["HotspotWorker"] = None
_WORKER_THREAD: Optional[threading.Thread] = None
_WORKER_LOCK = threading.Lock()


def _query_active(cfg) -> bool:
    try:
        return is_hotspot_active(cfg)
    except Exception:
        log.debug("active_query_failed", exc_info=True)
        return False


def _query_clients(cfg) -> List[str]:
    try:
        return list(list_clients(cfg))
    except Exception:
        log.debug("clients_query_failed", exc_info=True)
        return []


class HotspotWorker:
    """
    Owns the hotspot lifecycle. Each cycle services at most one queued
    command (a toggle or a settings restart), then publishes a fresh status
    snapshot.

    All blocking nmcli/ip calls happen on the thread running this object.
    The presentation side only ever sees copies via the event queue.
    """

    def __init__(
        self,
        commands: Optional["queue.Queue[HotspotCommand]"] = None,
        events: Optional["queue.Queue[HotspotEvent]"] = None,
        interval_s: float = POLL_INTERVAL_S,
    ):
        self.commands: "queue.Queue[HotspotCommand]" = commands if commands is not None else queue.Queue()
        self.events: "queue.Queue[HotspotEvent]" = events if events is not None else queue.Queue()
        self.interval_s = interval_s
        self.stop_event = threading.Event()
        self.active = False
        self.toggling = False
        self.clients: List[str] = []

    def request_toggle(self) -> None:
        self.commands.put(ToggleCommand())

    def request_restart(self, previous: Dict[str, str]) -> None:
        self.commands.put(RestartCommand(previous=dict(previous)))

    def _emit(self, event: HotspotEvent) -> None:
        self.events.put(event)

    def _take_command(self) -> Optional[HotspotCommand]:
        try:
            return self.commands.get_nowait()
        except queue.Empty:
            return None

    def _toggle(self) -> None:
        self.toggling = True
        cfg = load_config()
        was_active = _query_active(cfg)
        self.active = was_active
        op = "stop" if was_active else "start"

        log.info("toggle_started", extra={"op": op, "connection_name": cfg.get("connection_name")})
        self._emit(ToggleStarted(was_active=was_active))

        try:
            result = stop_hotspot(cfg) if was_active else start_hotspot(cfg)
        except Exception as e:
            log.exception("toggle_failed", extra={"op": op})
            result = CommandResult(ok=False, message=f"{type(e).__name__}: {e}")

        self.toggling = False
        log.info("toggle_completed", extra={"op": op, "result_code": "ok" if result.ok else "error"})
        self._emit(ToggleCompleted(result=result))

    def _restart(self, previous: Dict[str, str]) -> None:
        # The running profile was built from `previous`; a renamed
        # connection must be torn down under its old name.
        if not _query_active(previous):
            log.info("restart_skipped", extra={"connection_name": previous.get("connection_name")})
            return

        self.toggling = True
        cfg = load_config()
        log.info("restart_started", extra={"op": "restart", "connection_name": cfg.get("connection_name")})

        try:
            stop_hotspot(previous)
            result = start_hotspot(cfg)
        except Exception as e:
            log.exception("restart_failed", extra={"op": "restart"})
            result = CommandResult(ok=False, message=f"{type(e).__name__}: {e}")
        if not result.ok:
            result = CommandResult(ok=False, message=f"Restart failed: {result.message}")

        self.toggling = False
        log.info("restart_completed", extra={"op": "restart", "result_code": "ok" if result.ok else "error"})
        self._emit(ToggleCompleted(result=result))

    def _publish_status(self) -> None:
        # Re-read every cycle so edits from the settings CLI apply live.
        cfg = load_config()
        active = _query_active(cfg)
        clients = _query_clients(cfg) if active else []
        self.active = active
        self.clients = clients
        self._emit(StatusUpdate(active=active, clients=list(clients)))

    def run_cycle(self) -> None:
        cmd = self._take_command()
        if isinstance(cmd, RestartCommand):
            self._restart(cmd.previous)
        elif cmd is not None:
            self._toggle()
        self._publish_status()

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        if stop_event is None:
            stop_event = self.stop_event
        log.info("worker_started")
        while not stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                log.exception("worker_cycle_failed")
            if stop_event.wait(self.interval_s):
                break
        log.info("worker_stopped")


def ensure_worker_started() -> HotspotWorker:
    """
    Start the process-wide worker thread once; later calls return it.
    """
    global _WORKER, _WORKER_THREAD
    with _WORKER_LOCK:
        if _WORKER is not None:
            return _WORKER
        worker = HotspotWorker()
        _WORKER_THREAD = threading.Thread(
            target=worker.run_forever,
            args=(worker.stop_event,),
            name="nm-hotspot-worker",
            daemon=True,
        )
        _WORKER = worker
        _WORKER_THREAD.start()
        return worker


def stop_worker(timeout_s: float = 5.0) -> None:
    global _WORKER, _WORKER_THREAD
    with _WORKER_LOCK:
        worker = _WORKER
        thread = _WORKER_THREAD
        _WORKER = None
        _WORKER_THREAD = None
    # Each worker owns its Event, so a thread that outlives the join still
    # sees its own stop flag set.
    if worker is not None:
        worker.stop_event.set()
    if thread is not None:
        thread.join(timeout=timeout_s)
