"""Coalescing buffer for capability changes, keyed by device id."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)


@dataclass
class _PendingChanges:
    """Changes collected for one device during the current window."""

    changes: dict[str, Any] = field(default_factory=dict)
    futures: list[asyncio.Future[None]] = field(default_factory=list)
    task: asyncio.Task[None] | None = None


class CapabilityDebouncer:
    """Merge rapid capability changes into one handler call per device.

    Every change restarts the device's window. When the window elapses the
    handler receives all changes collected so far (later values for the same
    capability win) and every future handed out for that window resolves
    with the handler's outcome.
    """

    def __init__(
        self,
        handler: Callable[[str, dict[str, Any]], Awaitable[None]],
        delay: float,
    ) -> None:
        self._handler = handler
        self.delay = delay
        self._pending: dict[str, _PendingChanges] = {}

    def pending(self, device_id: str) -> dict[str, Any]:
        """Return a copy of the changes waiting for a device."""
        entry = self._pending.get(device_id)
        return dict(entry.changes) if entry else {}

    def schedule(self, device_id: str, changes: dict[str, Any]) -> asyncio.Future[None]:
        """Add changes for a device and (re)start its window.

        Returns:
            A future that resolves once the merged changes were handled, or
            carries the handler's exception.

        """
        loop = asyncio.get_running_loop()
        entry = self._pending.setdefault(device_id, _PendingChanges())
        entry.changes.update(changes)
        future: asyncio.Future[None] = loop.create_future()
        entry.futures.append(future)

        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        entry.task = asyncio.create_task(self._async_wait_and_flush(device_id, entry))
        return future

    async def _async_wait_and_flush(self, device_id: str, entry: _PendingChanges) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return
        if self._pending.get(device_id) is entry:
            await self._async_run(device_id)

    async def _async_run(self, device_id: str) -> None:
        entry = self._pending.pop(device_id, None)
        if entry is None:
            return

        _LOGGER.debug("Flushing changes for device %s: %s", device_id, entry.changes)
        try:
            await self._handler(device_id, entry.changes)
        except Exception as err:  # noqa: BLE001
            for future in entry.futures:
                if not future.done():
                    future.set_exception(err)
        else:
            for future in entry.futures:
                if not future.done():
                    future.set_result(None)

    async def async_flush(self, device_id: str | None = None) -> None:
        """Handle pending changes now, for one device or all of them."""
        device_ids = [device_id] if device_id is not None else list(self._pending)
        for pending_id in device_ids:
            entry = self._pending.get(pending_id)
            if entry is None:
                continue
            if entry.task is not None and not entry.task.done():
                entry.task.cancel()
            await self._async_run(pending_id)

    async def async_cancel(self) -> None:
        """Drop all pending changes without handling them."""
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if entry.task is not None:
                entry.task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await entry.task
            for future in entry.futures:
                future.cancel()
