import queue
import threading
import time

import pytest

import nm_hotspot.config as config
import nm_hotspot.lifecycle as lifecycle
import nm_hotspot.settings as settings
from nm_hotspot.config import DEFAULT_CONFIG
from nm_hotspot.events import (
    CommandResult,
    StatusUpdate,
    ToggleCompleted,
    ToggleStarted,
)


class FakeHotspot:
    """Stands in for the nmcli adapter; tracks overlapping start/stop calls."""

    def __init__(self, active=False, clients=None, delay_s=0.0):
        self.active = active
        self.clients = clients or []
        self.delay_s = delay_s
        self.calls = []
        self.stopped = []
        self.client_queries = 0
        self.start_result = None
        self.start_exc = None
        self._in_call = 0
        self.max_in_call = 0
        self._lock = threading.Lock()

    def _enter(self, name):
        with self._lock:
            self._in_call += 1
            self.max_in_call = max(self.max_in_call, self._in_call)
            self.calls.append(name)
        if self.delay_s:
            time.sleep(self.delay_s)

    def _leave(self):
        with self._lock:
            self._in_call -= 1

    def is_active(self, _cfg):
        return self.active

    def list_clients(self, _cfg):
        self.client_queries += 1
        return list(self.clients)

    def start(self, cfg):
        self._enter("start")
        try:
            if self.start_exc is not None:
                raise self.start_exc
            if self.start_result is not None:
                return self.start_result
            self.active = True
            return CommandResult(ok=True, message=f"Hotspot '{cfg['ssid']}' active on {cfg['hotspot_interface']}")
        finally:
            self._leave()

    def stop(self, cfg):
        self._enter("stop")
        try:
            self.stopped.append(cfg["connection_name"])
            self.active = False
            return CommandResult(ok=True, message="Hotspot stopped")
        finally:
            self._leave()


@pytest.fixture
def hotspot(monkeypatch):
    fake = FakeHotspot()
    cfg = dict(DEFAULT_CONFIG, ssid="Lab", hotspot_interface="wlan0")
    monkeypatch.setattr(lifecycle, "load_config", lambda: dict(cfg))
    monkeypatch.setattr(lifecycle, "is_hotspot_active", fake.is_active)
    monkeypatch.setattr(lifecycle, "list_clients", fake.list_clients)
    monkeypatch.setattr(lifecycle, "start_hotspot", fake.start)
    monkeypatch.setattr(lifecycle, "stop_hotspot", fake.stop)
    return fake


def _drain(q):
    out = []
    while True:
        try:
            out.append(q.get_nowait())
        except queue.Empty:
            return out


def test_idle_cycle_publishes_status_only(hotspot):
    worker = lifecycle.HotspotWorker()
    worker.run_cycle()
    assert _drain(worker.events) == [StatusUpdate(active=False, clients=[])]
    assert hotspot.calls == []
    assert hotspot.client_queries == 0


def test_active_cycle_reports_clients(hotspot):
    hotspot.active = True
    hotspot.clients = ["192.168.44.23", "192.168.44.40"]
    worker = lifecycle.HotspotWorker()

    worker.run_cycle()

    assert _drain(worker.events) == [StatusUpdate(active=True, clients=["192.168.44.23", "192.168.44.40"])]


def test_toggle_from_inactive_starts_hotspot(hotspot):
    worker = lifecycle.HotspotWorker()
    worker.request_toggle()

    worker.run_cycle()

    assert _drain(worker.events) == [
        ToggleStarted(was_active=False),
        ToggleCompleted(result=CommandResult(ok=True, message="Hotspot 'Lab' active on wlan0")),
        StatusUpdate(active=True, clients=[]),
    ]
    assert hotspot.calls == ["start"]
    assert worker.toggling is False


def test_toggle_from_active_stops_hotspot(hotspot):
    hotspot.active = True
    worker = lifecycle.HotspotWorker()
    worker.request_toggle()

    worker.run_cycle()

    events = _drain(worker.events)
    assert events[0] == ToggleStarted(was_active=True)
    assert events[1] == ToggleCompleted(result=CommandResult(ok=True, message="Hotspot stopped"))
    assert events[2] == StatusUpdate(active=False, clients=[])
    assert hotspot.calls == ["stop"]


def test_one_command_serviced_per_cycle(hotspot):
    worker = lifecycle.HotspotWorker()
    for _ in range(3):
        worker.request_toggle()

    worker.run_cycle()
    assert hotspot.calls == ["start"]
    assert worker.commands.qsize() == 2

    worker.run_cycle()
    worker.run_cycle()
    worker.run_cycle()

    assert hotspot.calls == ["start", "stop", "start"]
    completions = [e for e in _drain(worker.events) if isinstance(e, ToggleCompleted)]
    assert len(completions) == 3


def test_start_failure_is_reported_once_and_not_retried(hotspot):
    hotspot.start_result = CommandResult(ok=False, message="Failed to create hotspot: Error: invalid wifi.band")
    worker = lifecycle.HotspotWorker()
    worker.request_toggle()

    worker.run_cycle()
    worker.run_cycle()

    events = _drain(worker.events)
    completions = [e for e in events if isinstance(e, ToggleCompleted)]
    assert completions == [ToggleCompleted(result=hotspot.start_result)]
    assert hotspot.calls == ["start"]
    assert events[-1] == StatusUpdate(active=False, clients=[])


def test_adapter_exception_still_completes(hotspot):
    hotspot.start_exc = RuntimeError("nmcli exploded")
    worker = lifecycle.HotspotWorker()
    worker.request_toggle()

    worker.run_cycle()

    events = _drain(worker.events)
    assert isinstance(events[0], ToggleStarted)
    assert isinstance(events[1], ToggleCompleted)
    assert events[1].result.ok is False
    assert "RuntimeError: nmcli exploded" in events[1].result.message
    assert worker.toggling is False


def test_poll_failures_degrade_to_inactive(hotspot, monkeypatch):
    def _boom(_cfg):
        raise OSError("dbus unavailable")

    monkeypatch.setattr(lifecycle, "is_hotspot_active", _boom)
    worker = lifecycle.HotspotWorker()

    worker.run_cycle()

    assert _drain(worker.events) == [StatusUpdate(active=False, clients=[])]


def test_config_is_reread_every_cycle(hotspot, monkeypatch):
    names = iter(["first", "second", "third"])
    seen = []
    monkeypatch.setattr(lifecycle, "load_config", lambda: dict(DEFAULT_CONFIG, connection_name=next(names)))
    monkeypatch.setattr(lifecycle, "is_hotspot_active", lambda cfg: seen.append(cfg["connection_name"]) or False)
    worker = lifecycle.HotspotWorker()

    worker.run_cycle()
    worker.run_cycle()

    assert seen == ["first", "second"]


def test_commands_never_overlap_or_drop(hotspot):
    hotspot.delay_s = 0.01
    worker = lifecycle.HotspotWorker(interval_s=0.005)
    stop = threading.Event()
    thread = threading.Thread(target=worker.run_forever, args=(stop,), daemon=True)
    thread.start()

    n = 6
    for _ in range(n):
        worker.request_toggle()
        time.sleep(0.003)

    events = []
    deadline = time.monotonic() + 10.0
    while time.monotonic() < deadline:
        events.extend(_drain(worker.events))
        if sum(isinstance(e, ToggleCompleted) for e in events) >= n:
            break
        time.sleep(0.01)

    stop.set()
    thread.join(timeout=2)
    events.extend(_drain(worker.events))

    toggles = [e for e in events if isinstance(e, (ToggleStarted, ToggleCompleted))]
    assert len(toggles) == 2 * n
    for started, completed in zip(toggles[0::2], toggles[1::2]):
        assert isinstance(started, ToggleStarted)
        assert isinstance(completed, ToggleCompleted)
    assert hotspot.max_in_call == 1
    assert hotspot.calls == ["start", "stop"] * (n // 2)
    assert not thread.is_alive()


def test_worker_is_a_process_singleton(hotspot):
    try:
        first = lifecycle.ensure_worker_started()
        second = lifecycle.ensure_worker_started()
        assert first is second
        names = [t.name for t in threading.enumerate() if t.is_alive()]
        assert names.count("nm-hotspot-worker") == 1
    finally:
        lifecycle.stop_worker(timeout_s=5)
    assert lifecycle._WORKER is None


def test_restart_replaces_running_profile(hotspot):
    hotspot.active = True
    worker = lifecycle.HotspotWorker()
    worker.request_restart(dict(DEFAULT_CONFIG, connection_name="Old"))

    worker.run_cycle()

    assert hotspot.calls == ["stop", "start"]
    assert hotspot.stopped == ["Old"]
    assert _drain(worker.events) == [
        ToggleCompleted(result=CommandResult(ok=True, message="Hotspot 'Lab' active on wlan0")),
        StatusUpdate(active=True, clients=[]),
    ]
    assert worker.toggling is False


def test_restart_is_skipped_when_hotspot_is_down(hotspot):
    worker = lifecycle.HotspotWorker()
    worker.request_restart(dict(DEFAULT_CONFIG))

    worker.run_cycle()

    assert hotspot.calls == []
    assert _drain(worker.events) == [StatusUpdate(active=False, clients=[])]


def test_restart_failure_is_reported(hotspot):
    hotspot.active = True
    hotspot.start_result = CommandResult(ok=False, message="Failed to activate hotspot: no device")
    worker = lifecycle.HotspotWorker()
    worker.request_restart(dict(DEFAULT_CONFIG))

    worker.run_cycle()

    completed = _drain(worker.events)[0]
    assert completed == ToggleCompleted(
        result=CommandResult(ok=False, message="Restart failed: Failed to activate hotspot: no device")
    )


def test_settings_change_during_toggle_never_overlaps(hotspot, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.setattr(config, "CONFIG_TMP", tmp_path / "config.json.tmp")
    config.save_config(dict(DEFAULT_CONFIG, ssid="Old"))
    monkeypatch.setattr(lifecycle, "load_config", config.load_config)
    monkeypatch.setattr(settings, "is_hotspot_active", hotspot.is_active)
    monkeypatch.setattr(settings, "start_hotspot", hotspot.start)
    monkeypatch.setattr(settings, "stop_hotspot", hotspot.stop)
    hotspot.delay_s = 0.2

    worker = lifecycle.HotspotWorker(interval_s=0.01)
    thread = threading.Thread(target=worker.run_forever, daemon=True)
    thread.start()
    worker.request_toggle()

    deadline = time.monotonic() + 5.0
    while "start" not in hotspot.calls and time.monotonic() < deadline:
        time.sleep(0.005)

    # Start is still sleeping on the worker thread.
    res = settings.set_value("ssid", '"New"', restart=worker.request_restart)
    assert res == {"ok": True, "message": "Updated SSID"}

    events = []
    deadline = time.monotonic() + 10.0
    while time.monotonic() < deadline:
        events.extend(_drain(worker.events))
        if sum(isinstance(e, ToggleCompleted) for e in events) >= 2:
            break
        time.sleep(0.01)

    worker.stop_event.set()
    thread.join(timeout=2)

    completions = [e for e in events if isinstance(e, ToggleCompleted)]
    assert hotspot.max_in_call == 1
    assert hotspot.calls == ["start", "stop", "start"]
    assert completions[-1].result.message == "Hotspot 'New' active on wlan0"


def test_each_worker_owns_its_stop_event(hotspot):
    try:
        first = lifecycle.ensure_worker_started()
        lifecycle.stop_worker(timeout_s=5)
        second = lifecycle.ensure_worker_started()
        assert second is not first
        assert first.stop_event.is_set()
        assert not second.stop_event.is_set()
    finally:
        lifecycle.stop_worker(timeout_s=5)
    assert second.stop_event.is_set()


def test_worker_outliving_its_join_still_stops(hotspot, monkeypatch):
    gate = threading.Event()

    def _slow_active(_cfg):
        gate.wait(2)
        return False

    monkeypatch.setattr(lifecycle, "is_hotspot_active", _slow_active)
    try:
        lifecycle.ensure_worker_started()
        old_thread = lifecycle._WORKER_THREAD
        lifecycle.stop_worker(timeout_s=0.05)
        assert old_thread.is_alive()

        lifecycle.ensure_worker_started()
        gate.set()
        old_thread.join(timeout=5)
        assert not old_thread.is_alive()
    finally:
        gate.set()
        lifecycle.stop_worker(timeout_s=5)
