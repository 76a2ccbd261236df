"""Binding of one Tuya device to its translator, store and gateway."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from .capabilities import CapabilitySet
from .const import CAP_ALARM_DEVICE_OFFLINE, CAP_METER_POWER
from .translators import create_translator

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .capabilities import CapabilityStore
    from .gateway import TuyaCommandGateway
    from .models import DataPoint, TuyaDeviceRecord
    from .translators import CapabilityTranslator

_LOGGER = logging.getLogger(__name__)


class TuyaDevice:
    """Keep one device's capability store in sync with the Tuya cloud.

    Inbound records and status reports go through the translator into the
    store. Local capability changes go through the gateway's debounce
    buffer, then the translator, then out as commands.
    """

    def __init__(
        self,
        record: TuyaDeviceRecord,
        device_class: str,
        store: CapabilityStore,
        gateway: TuyaCommandGateway,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize the device binding.

        Args:
            record: Device record from discovery.
            device_class: Translator variant to use.
            store: Hub-side capability store of the device.
            gateway: Gateway used to send commands.
            options: Per-device settings such as scale or initial_meter_power.

        """
        self.id = record.id
        self.name = record.name
        self.device_class = device_class
        self.record = record
        self._store = store
        self._gateway = gateway
        self.translator: CapabilityTranslator = create_translator(
            device_class, store, options
        )
        self.capabilities = CapabilitySet()
        self._online: bool | None = None
        self._reset_tasks: dict[str, asyncio.Task[None]] = {}
        self._unregister: Callable[[], None] = gateway.register_capability_listener(
            self.id, self._async_on_capabilities
        )

    @property
    def online(self) -> bool | None:
        """Return the last known online state."""
        return self._online

    async def async_apply_record(self, record: TuyaDeviceRecord) -> None:
        """Apply a full device record from discovery."""
        self.record = record
        if record.online is not None:
            await self._async_update_online(record.online)
        base = self.translator.configure(record)
        await self._async_materialize({CAP_ALARM_DEVICE_OFFLINE, *base})
        await self._async_apply(record.status, implicit_online=record.online is None)

    async def async_apply_status(self, status: tuple[DataPoint, ...]) -> None:
        """Apply a status report without reconfiguring the translator."""
        await self._async_apply(status, implicit_online=True)

    async def _async_apply(
        self, status: tuple[DataPoint, ...], *, implicit_online: bool
    ) -> None:
        if implicit_online and self.translator.implies_online:
            await self._async_update_online(True)
        writes = self.translator.apply_inbound(status)
        _LOGGER.debug("Update %s capabilities from Tuya: %s", self.id, writes)
        await self._async_write(writes)

    async def _async_materialize(self, capabilities: set[str] | list[str]) -> None:
        for capability in sorted(capabilities):
            if capability in self.capabilities:
                continue
            try:
                await self._store.async_add_capability(capability)
            except Exception:
                _LOGGER.exception("Failed to add capability %s to %s", capability, self.id)
                continue
            self.capabilities.add(capability)
            _LOGGER.debug("Added capability %s to %s", capability, self.id)

    async def _async_write(self, writes: Mapping[str, Any]) -> None:
        await self._async_materialize([name for name in writes if name not in self.capabilities])
        for capability, value in writes.items():
            if capability not in self.capabilities:
                continue
            try:
                await self._store.async_set_value(capability, value)
            except Exception:
                _LOGGER.exception(
                    "Failed to set %s on %s to %s", capability, self.id, value
                )

    async def _async_update_online(self, online: bool) -> None:
        """Write the availability only when it changes."""
        if online == self._online:
            return
        self._online = online
        _LOGGER.info("Device %s is %s", self.id, "online" if online else "offline")

        await self._async_materialize({CAP_ALARM_DEVICE_OFFLINE})
        await self._async_write({CAP_ALARM_DEVICE_OFFLINE: not online})
        try:
            await self._store.async_set_available(
                online, None if online else "Device is offline"
            )
        except Exception:
            _LOGGER.exception("Failed to update availability of %s", self.id)

    async def async_mark_offline(self) -> None:
        """Mark the device offline."""
        await self._async_update_online(False)

    async def async_mark_online(self) -> None:
        """Mark the device online."""
        await self._async_update_online(True)

    async def async_set_capability_values(self, changes: dict[str, Any]) -> None:
        """Handle capability values changed on the hub.

        Changes are coalesced with other changes for this device arriving
        within the debounce window, unless the translator sends at once.

        Raises:
            TuyaCommandError: If sending the resulting commands fails.

        """
        if not self.translator.debounced:
            await self._async_on_capabilities(changes)
            return
        await self._gateway.async_capability_changed(self.id, changes)

    async def _async_on_capabilities(self, changes: dict[str, Any]) -> None:
        _LOGGER.debug("%s capabilities changed by hub: %s", self.id, changes)
        commands = self.translator.build_outbound(changes)
        if not commands:
            _LOGGER.debug("No commands for %s", self.id)
            return
        await self._gateway.async_send(self.id, commands)

        for capability, delay in self.translator.momentary.items():
            if changes.get(capability):
                self._schedule_reset(capability, delay)

    def _schedule_reset(self, capability: str, delay: float) -> None:
        previous = self._reset_tasks.pop(capability, None)
        if previous is not None and not previous.done():
            previous.cancel()
        self._reset_tasks[capability] = asyncio.create_task(
            self._async_reset_later(capability, delay)
        )

    async def _async_reset_later(self, capability: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reset_tasks.pop(capability, None)
        await self._async_write({capability: False})
        _LOGGER.debug("Reset %s of %s", capability, self.id)

    async def async_reset_meter(self, value: float) -> None:
        """Reset the cumulative meter to an explicit value."""
        await self._async_write({CAP_METER_POWER: float(value)})
        _LOGGER.info("meter_power of %s reset to %s kWh", self.id, value)

    async def async_remove(self) -> None:
        """Send pending changes, then stop receiving capability changes."""
        await self._gateway.async_flush(self.id)
        self._unregister()
        tasks = list(self._reset_tasks.values())
        self._reset_tasks.clear()
        for task in tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
