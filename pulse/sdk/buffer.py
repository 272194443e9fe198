"""
Trace Buffer & Flush Scheduler

The Pulse client object: holds pending traces and sends them to the
collector when the batch fills, on a periodic timer, and once more at
shutdown.

Every flush swaps the pending list for an empty one before awaiting the
send, so racing flushes never send the same trace twice.
"""

from __future__ import annotations
import asyncio
import logging
import threading
from typing import List, Optional, Set

from pulse.sdk.config import PulseConfig, load_config
from pulse.sdk.shutdown import register_shutdown_handlers, unregister_client
from pulse.sdk.tracing import Trace
from pulse.sdk.transport import HTTPTransport

logger = logging.getLogger("pulse.sdk.buffer")


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Pulse:
    """
    Pulse SDK client.

    Usage:
        pulse = init_pulse(api_key="pulse_sk_...")
        client = observe(OpenAI(), pulse)

        async with pulse:
            await client.chat.completions.create(...)
    """

    def __init__(
        self,
        config: PulseConfig,
        transport: Optional[HTTPTransport] = None,
    ):
        self.config = config
        self.transport = transport or HTTPTransport(config)

        self._buffer: List[Trace] = []
        self._flush_task: Optional[asyncio.Task] = None
        self._interval_requested = False
        self._pending: Set[asyncio.Task] = set()
        self._shutting_down = False
        self._shutdown_task: Optional[asyncio.Future] = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> List[Trace]:
        """Snapshot of traces waiting to be flushed."""
        return list(self._buffer)

    # =========================================================================
    # BUFFER
    # =========================================================================

    def add(self, trace: Trace) -> None:
        """Queue a trace. Triggers a flush once the batch is full."""
        if not self.enabled:
            return

        self._buffer.append(trace)
        loop = _running_loop()

        if self._interval_requested and loop is not None and not self._interval_running(loop):
            self._start_interval(loop)

        if len(self._buffer) >= self.config.batch_size:
            self._schedule_send(self._take(), loop)

    def _take(self) -> List[Trace]:
        batch, self._buffer = self._buffer, []
        return batch

    def _schedule_send(self, batch: List[Trace], loop: Optional[asyncio.AbstractEventLoop]) -> None:
        if loop is None:
            # No event loop in this thread: deliver synchronously
            asyncio.run(self._send(batch))
            return

        task = loop.create_task(self._send(batch))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, batch: List[Trace]) -> None:
        if not batch:
            return
        logger.debug(f"Flushing {len(batch)} traces")
        await self.transport.send(batch)

    async def flush(self) -> None:
        """Send everything currently buffered. No-op when disabled or empty."""
        if not self.enabled or not self._buffer:
            return
        await self._send(self._take())

    # =========================================================================
    # PERIODIC FLUSH
    # =========================================================================

    def start_flush_interval(self) -> None:
        """
        Start flushing every flush_interval ms, replacing any running timer.

        Without a running event loop the start is deferred to the first
        add() made inside one.
        """
        self.stop_flush_interval()
        self._interval_requested = True

        loop = _running_loop()
        if loop is None:
            logger.debug("No running event loop, deferring periodic flush")
            return
        self._start_interval(loop)

    def stop_flush_interval(self) -> None:
        task = self._flush_task
        self._flush_task = None
        if task is None or task.done():
            return
        if task.get_loop().is_closed():
            return
        task.cancel()

    def _interval_running(self, loop: asyncio.AbstractEventLoop) -> bool:
        task = self._flush_task
        return task is not None and not task.done() and task.get_loop() is loop

    def _start_interval(self, loop: asyncio.AbstractEventLoop) -> None:
        self._flush_task = loop.create_task(self._flush_loop())
        logger.debug(f"Periodic flush started (interval={self.config.flush_interval}ms)")

    async def _flush_loop(self) -> None:
        interval = self.config.flush_interval / 1000
        while True:
            await asyncio.sleep(interval)
            await self.flush()

    @property
    def flush_interval_running(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    async def shutdown(self) -> None:
        """
        Final flush and stop the periodic timer.

        Runs once; concurrent or repeated calls wait for the same shutdown
        (when on the same loop) and never flush again.
        """
        if self._shutdown_task is not None:
            if self._shutdown_task.get_loop() is _running_loop():
                await self._shutdown_task
            return

        self._shutting_down = True
        self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await self._shutdown_task

    async def _shutdown(self) -> None:
        self.stop_flush_interval()
        self._interval_requested = False
        unregister_client(self)

        if not self.enabled:
            return

        loop = _running_loop()
        in_flight = [t for t in self._pending if not t.done() and t.get_loop() is loop]
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        logger.info(f"Pulse SDK: flushing {len(self._buffer)} remaining traces")
        await self.flush()
        logger.info("Pulse SDK: final flush complete")

    def shutdown_sync(self) -> None:
        """Blocking shutdown for atexit and signal handlers."""
        if self._shutting_down:
            return

        if _running_loop() is None:
            asyncio.run(self.shutdown())
            return

        # Called from inside a running loop: stop the timer here, flush on a worker thread
        self.stop_flush_interval()
        worker = threading.Thread(
            target=asyncio.run,
            args=(self.shutdown(),),
            name="pulse-shutdown",
        )
        worker.start()
        worker.join()

    async def aclose(self) -> None:
        await self.shutdown()

    async def __aenter__(self) -> "Pulse":
        self.start_flush_interval()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()


def init_pulse(
    config: Optional[PulseConfig] = None,
    *,
    transport: Optional[HTTPTransport] = None,
    register_handlers: bool = True,
    **options,
) -> Pulse:
    """
    Create a Pulse client.

    Pass a PulseConfig, or keyword options (api_key, api_url, batch_size,
    flush_interval, enabled, timeout) that fall back to PULSE_* env vars.

    Raises:
        ConfigurationError: on invalid configuration.
    """
    config = config.validate() if config is not None else load_config(**options)
    pulse = Pulse(config, transport=transport)

    if config.enabled:
        pulse.start_flush_interval()
        if register_handlers:
            register_shutdown_handlers(pulse)
        logger.debug(f"Pulse SDK initialized (api_url={config.api_url}, batch_size={config.batch_size})")

    return pulse
