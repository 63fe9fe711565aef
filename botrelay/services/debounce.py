"""In-memory debounce for bursty chat input.

Fragments for the same key are joined with newlines until the key has been
quiet for ``debounce_seconds``; then the joined text is flushed once. Buffers
live only in this process and are lost on restart.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Hashable, Optional

from botrelay.logging_config import get_logger

logger = get_logger("debounce")

FlushCallback = Callable[[str], Awaitable[None]]


@dataclass
class _Buffer:
    text: str
    on_flush: FlushCallback
    timer: Optional[asyncio.Task] = None


class DebounceCoalescer:
    def __init__(self, sleep_func=asyncio.sleep):
        self._sleep = sleep_func
        self._buffers: dict[Hashable, _Buffer] = {}
        self._tasks: set[asyncio.Task] = set()

    def pending(self, key: Hashable) -> Optional[str]:
        buffer = self._buffers.get(key)
        return buffer.text if buffer else None

    async def on_fragment(
        self,
        key: Hashable,
        text: str,
        debounce_seconds: float,
        on_flush: FlushCallback,
    ) -> None:
        if not debounce_seconds or debounce_seconds <= 0:
            await on_flush(text)
            return

        buffer = self._buffers.get(key)
        if buffer is not None:
            buffer.text = f"{buffer.text}\n{text}"
            buffer.on_flush = on_flush
            if buffer.timer is not None:
                buffer.timer.cancel()
            logger.debug(f"Debounced fragment for {key}: {buffer.text!r}")
        else:
            buffer = _Buffer(text=text, on_flush=on_flush)
            self._buffers[key] = buffer

        timer = asyncio.create_task(self._flush_after(key, buffer, debounce_seconds))
        buffer.timer = timer
        self._tasks.add(timer)
        timer.add_done_callback(self._tasks.discard)

    async def _flush_after(self, key: Hashable, buffer: _Buffer, delay: float) -> None:
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            return

        # A newer fragment may have replaced this buffer's timer.
        if self._buffers.get(key) is not buffer or buffer.timer is not asyncio.current_task():
            return
        del self._buffers[key]

        logger.info(f"Debounce complete for {key}, flushing {len(buffer.text)} chars")
        try:
            await buffer.on_flush(buffer.text)
        except Exception as e:
            logger.error(f"Debounced turn failed for {key}: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every scheduled timer and flush currently in progress."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        """Drop all pending buffers without flushing (shutdown)."""
        for buffer in self._buffers.values():
            if buffer.timer is not None:
                buffer.timer.cancel()
        self._buffers.clear()
