#  Copyright 2024 Red Hat, Inc.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Protocol

logger = logging.getLogger(__name__)

FLUSH_INTERVAL = 30.0


class EventSink(Protocol):
    """The analytics backend: buffers events and ships them on flush."""

    def enqueue_event(self, event: dict[str, Any]) -> None: ...

    async def flush(self) -> None: ...


class DispatchLoop:
    """Flush the event sink periodically until stopped."""

    def __init__(self, sink: EventSink, interval: float = FLUSH_INTERVAL) -> None:
        self.sink = sink
        self.interval = interval
        self.ticks = 0
        self._stop = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Shutdown requested")
        self._stop.set()

    async def tick(self) -> None:
        """Flush once; a failure is logged and retried on the next tick."""
        self.ticks += 1
        try:
            await self.sink.flush()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to flush events: %s", exc)

    async def run(self) -> None:
        """Wait on the timer or the stop signal, whichever fires first."""
        logger.info("Dispatch loop started, flushing every %.0f seconds", self.interval)
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.tick()
        logger.info("Dispatch loop stopped")


def install_signal_handlers(dispatch_loop: DispatchLoop) -> None:
    """Stop ``dispatch_loop`` on SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, dispatch_loop.stop)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(dispatch_loop.stop))
