import logging
import signal
import sys
import threading

from nm_hotspot.config import ConfigError, ensure_config_file, load_config
from nm_hotspot.engine.nmcli import is_hotspot_active
from nm_hotspot.lifecycle import ensure_worker_started, stop_worker
from nm_hotspot.logging import setup_logging
from nm_hotspot.presentation import PresentationState, run_ticker
from nm_hotspot.server import build_server

log = logging.getLogger("nm_hotspot.main")


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, _frame):
        if stop_event.is_set():
            return
        try:
            sig_name = signal.Signals(signum).name
        except Exception:
            sig_name = str(signum)
        log.info("shutdown_signal:%s", sig_name)
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handler)


def main():
    setup_logging()

    # First run: write defaults so the settings host has something to show.
    try:
        ensure_config_file()
    except ConfigError:
        log.exception("config_write_failed")

    cfg = load_config()
    initial_active = is_hotspot_active(cfg)
    log.info("initial_state:%s", "active" if initial_active else "inactive")

    worker = ensure_worker_started()
    presentation = PresentationState(
        worker.commands, worker.events, active=initial_active, config=cfg
    )

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    ticker_thread = threading.Thread(
        target=run_ticker,
        args=(presentation, stop_event),
        name="nm-hotspot-ticker",
        daemon=True,
    )
    ticker_thread.start()

    server = build_server(presentation)
    server_thread = threading.Thread(
        target=server.serve_forever,
        name="nm-hotspotd-http",
        daemon=True,
    )
    server_thread.start()

    try:
        while server_thread.is_alive() and not stop_event.wait(0.5):
            pass
    finally:
        stop_event.set()
        try:
            server.shutdown()
        except Exception:
            log.exception("server_shutdown_failed")
        try:
            server.server_close()
        except Exception:
            log.exception("server_close_failed")
        # The hotspot outlives the daemon; only our threads stop.
        stop_worker()
        ticker_thread.join(timeout=2)
    return 0


if __name__ == "__main__":
    sys.exit(main())
