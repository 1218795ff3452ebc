import logging
import queue
import threading
import time
from typing import Any, Dict, List, Optional

from nm_hotspot.config import load_config
from nm_hotspot.events import (
    HotspotCommand,
    HotspotEvent,
    RestartCommand,
    StatusUpdate,
    ToggleCommand,
    ToggleCompleted,
    ToggleStarted,
)

log = logging.getLogger("nm_hotspot.presentation")

# Poll cycles a toggle result stays on screen (~10 s at a 2 s cadence).
STATUS_HOLD_TICKS = 5

# Frames in one ripple cycle.
ANIM_FRAMES = 12

POLL_STATUS_S = 2.0
ANIMATION_TICK_S = 0.125


def _status_text(active: bool) -> str:
    return "Active" if active else "Inactive"


def _pending_text(active: bool) -> str:
    return "Stopping..." if active else "Starting..."


def ripple_svg(frame: int) -> str:
    """
    Three concentric rings ripple outward, each offset by a third of the
    cycle, fading as they expand.
    """
    rings = []
    for phase in range(3):
        t = ((frame + phase * (ANIM_FRAMES // 3)) % ANIM_FRAMES) / ANIM_FRAMES
        r = 1.5 + t * 6.0
        opacity = 1.0 - t
        rings.append(
            f'<circle cx="8" cy="8" r="{r:.1f}" fill="none" stroke="currentColor" '
            f'stroke-width="1.2" opacity="{opacity:.2f}"/>'
        )
    rings.append('<circle cx="8" cy="8" r="1.2" fill="currentColor"/>')
    return (
        '<svg width="16" height="16" viewBox="0 0 16 16" xmlns="http://www.w3.org/2000/svg">'
        + "".join(rings)
        + "</svg>"
    )


INACTIVE_SVG = (
    '<svg width="16" height="16" viewBox="0 0 16 16" xmlns="http://www.w3.org/2000/svg">'
    '<circle cx="8" cy="8" r="5.5" fill="none" stroke="currentColor" stroke-width="1.2" opacity="0.35"/>'
    '<circle cx="8" cy="8" r="1.2" fill="currentColor" opacity="0.5"/>'
    "</svg>"
)


class PresentationState:
    """
    Indicator/popup model, fed only by worker events.

    Every mutation goes through the methods below under one lock, so HTTP
    handler threads can read snapshots while the ticker applies events.
    """

    def __init__(
        self,
        commands: "queue.Queue[HotspotCommand]",
        events: "queue.Queue[HotspotEvent]",
        *,
        active: bool = False,
        config: Optional[Dict[str, str]] = None,
    ):
        self._commands = commands
        self._events = events
        self._lock = threading.Lock()

        self.active = active
        self.toggling = False
        self.message = _status_text(active)
        self.hold_ticks = 0
        self.clients: List[str] = []
        self.config = config if config is not None else load_config()
        self.anim_frame = 0

    def _apply(self, event: HotspotEvent) -> None:
        if isinstance(event, StatusUpdate):
            self.active = event.active
            self.clients = list(event.clients)
            if self.hold_ticks > 0:
                self.hold_ticks -= 1
            elif not self.toggling:
                self.message = _status_text(event.active)
        elif isinstance(event, ToggleStarted):
            self.toggling = True
            self.message = _pending_text(event.was_active)
        elif isinstance(event, ToggleCompleted):
            self.toggling = False
            self.hold_ticks = STATUS_HOLD_TICKS
            if event.result.ok:
                self.message = event.result.message
            else:
                self.message = f"Error: {event.result.message}"
        else:
            log.warning("unknown_event:%s", type(event).__name__)

    def apply(self, event: HotspotEvent) -> None:
        with self._lock:
            self._apply(event)

    def poll_status(self) -> int:
        """
        Drain every pending worker event without blocking.
        Returns the number of events applied.
        """
        n = 0
        with self._lock:
            while True:
                try:
                    event = self._events.get_nowait()
                except queue.Empty:
                    break
                self._apply(event)
                if isinstance(event, StatusUpdate):
                    # Popup shows the SSID; pick up settings edits.
                    self.config = load_config()
                n += 1
        return n

    def animation_tick(self) -> None:
        with self._lock:
            if self.active:
                self.anim_frame = (self.anim_frame + 1) % ANIM_FRAMES

    def toggle(self) -> None:
        """
        User intent. Queued for the worker; never runs the command here.
        """
        with self._lock:
            self._commands.put(ToggleCommand())
            self.toggling = True
            self.message = _pending_text(self.active)

    def request_restart(self, previous: Dict[str, str]) -> None:
        # Settings changed while the daemon runs; the worker decides whether
        # anything is up to restart.
        self._commands.put(RestartCommand(previous=dict(previous)))

    def tooltip(self) -> str:
        return "Hotspot (ON)" if self.active else "Hotspot (OFF)"

    def indicator_svg(self) -> str:
        with self._lock:
            return ripple_svg(self.anim_frame) if self.active else INACTIVE_SVG

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active": self.active,
                "toggling": self.toggling,
                "message": self.message,
                "hold_ticks": self.hold_ticks,
                "clients": list(self.clients),
                "ssid": self.config.get("ssid"),
                "tooltip": self.tooltip(),
                "anim_frame": self.anim_frame,
            }


def run_ticker(state: PresentationState, stop_event: threading.Event) -> None:
    """
    Presentation clock: drain events every POLL_STATUS_S and advance the
    ripple every ANIMATION_TICK_S while the hotspot is up.
    """
    next_poll = time.monotonic()
    while not stop_event.is_set():
        now = time.monotonic()
        if now >= next_poll:
            try:
                state.poll_status()
            except Exception:
                log.exception("poll_status_failed")
            next_poll = now + POLL_STATUS_S

        if state.active:
            state.animation_tick()
            wait_s = ANIMATION_TICK_S
        else:
            wait_s = max(0.0, next_poll - time.monotonic())

        if stop_event.wait(wait_s):
            break
