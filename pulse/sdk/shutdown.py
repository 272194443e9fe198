"""
Process Shutdown Hooks

Flush every registered Pulse client at interpreter exit and on
SIGINT/SIGTERM. Handlers are installed once per process.
"""

from __future__ import annotations
import atexit
import logging
import signal
import threading
import weakref
from typing import Any, Dict

logger = logging.getLogger("pulse.sdk")

_clients: "weakref.WeakSet[Any]" = weakref.WeakSet()
_handlers_registered = False
_previous_handlers: Dict[int, Any] = {}


def _shutdown_all(reason: str) -> None:
    for client in list(_clients):
        try:
            client.shutdown_sync()
        except Exception as e:
            logger.error(f"Pulse SDK: error during final flush ({reason}): {e}")


def _handle_exit() -> None:
    _shutdown_all("exit")


def _handle_signal(signum: int, frame: Any) -> None:
    name = signal.Signals(signum).name
    logger.info(f"Pulse SDK: {name} received, flushing remaining traces...")
    _shutdown_all(name)

    previous = _previous_handlers.get(signum)
    if callable(previous):
        previous(signum, frame)
    elif previous != signal.SIG_IGN:
        raise SystemExit(0)


def register_shutdown_handlers(client: Any) -> None:
    """
    Track a client for final flush and install process hooks on first use.

    Signal handlers are only installed from the main thread; atexit always is.
    """
    global _handlers_registered
    _clients.add(client)

    if _handlers_registered:
        return
    _handlers_registered = True

    atexit.register(_handle_exit)

    if threading.current_thread() is not threading.main_thread():
        logger.debug("Pulse SDK: not in main thread, skipping signal handlers")
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        _previous_handlers[sig] = signal.getsignal(sig)
        signal.signal(sig, _handle_signal)


def unregister_client(client: Any) -> None:
    _clients.discard(client)
