"""Coordinator for Tuya Cloud device discovery."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from . import api
from .const import DOMAIN, RESYNC_INTERVAL

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .models import TuyaDeviceRecord
    from .session import TuyaSessionManager

_LOGGER = logging.getLogger(__name__)


class TuyaDiscoveryCoordinator(DataUpdateCoordinator[list["TuyaDeviceRecord"]]):
    """Coordinator that discovers Tuya devices and caches the last good list.

    ``data`` always holds the most recent successful discovery. A failed
    discovery leaves it untouched, so callers keep getting the cached list.
    Resync runs on its own timer, started by async_connect().
    """

    def __init__(
        self,
        hass: HomeAssistant,
        session_manager: TuyaSessionManager,
        config_entry: ConfigEntry | None = None,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN}_devices",
            update_interval=None,
        )
        self._session_manager = session_manager
        self._device_update_callbacks: list[Callable[[TuyaDeviceRecord], None]] = []
        self._unsub_resync: Callable[[], None] | None = None
        self.data = []

    def register_device_update_callback(
        self,
        callback: Callable[[TuyaDeviceRecord], None],
    ) -> Callable[[], None]:
        """Register a callback called once per device after each discovery.

        Returns:
            A function to unregister the callback.

        """
        self._device_update_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._device_update_callbacks:
                self._device_update_callbacks.remove(callback)

        return unregister

    async def _async_fetch_devices(self) -> list[TuyaDeviceRecord]:
        """Fetch the device list from the cloud.

        Raises:
            TuyaDiscoveryError: If the session, the transport or the response
                fails.

        """
        try:
            access_token = await self._session_manager.async_ensure_valid_token()
            return await api.async_discover_devices(
                self._session_manager.http,
                self._session_manager.base_url,
                access_token,
            )
        except api.TuyaSessionError as err:
            raise api.TuyaDiscoveryError(f"Session error during discovery: {err}") from err
        except api.TuyaApiClientError as err:
            raise api.TuyaDiscoveryError(f"API error during discovery: {err}") from err
        except httpx.RequestError as err:
            raise api.TuyaDiscoveryError(f"Connection error during discovery: {err}") from err

    async def async_discover(self) -> list[TuyaDeviceRecord]:
        """Discover devices, falling back to the cache on any failure.

        Never raises. On success the cache is replaced and every device is
        announced to the device update callbacks.
        """
        try:
            devices = await self._async_fetch_devices()
        except api.TuyaDiscoveryError as err:
            _LOGGER.warning(
                "Discovery failed, serving %d cached devices: %s", len(self.data), err
            )
            return self.data

        self.async_set_updated_data(devices)
        for device in devices:
            for callback in list(self._device_update_callbacks):
                try:
                    callback(device)
                except Exception:
                    _LOGGER.exception("Error in device update callback for %s", device.id)
        _LOGGER.debug("Discovered %d devices", len(devices))
        return devices

    async def _async_update_data(self) -> list[TuyaDeviceRecord]:
        """Fetch devices for a coordinator refresh."""
        try:
            return await self._async_fetch_devices()
        except api.TuyaDiscoveryError as err:
            raise UpdateFailed(str(err)) from err

    async def async_list_all(self) -> list[TuyaDeviceRecord]:
        """Return all devices, refreshing from the cloud first."""
        return await self.async_discover()

    async def async_list_by_type(self, device_type: str) -> list[TuyaDeviceRecord]:
        """Return the devices of one type, refreshing from the cloud first."""
        devices = await self.async_discover()
        return [device for device in devices if device.device_type == device_type]

    async def async_get_by_id(self, device_id: str) -> TuyaDeviceRecord | None:
        """Return one device, refreshing from the cloud first."""
        devices = await self.async_discover()
        return next((device for device in devices if device.id == device_id), None)

    async def async_connect(self) -> list[TuyaDeviceRecord]:
        """Run a discovery and (re)start the periodic resync."""
        self._cancel_resync()
        devices = await self.async_discover()
        self._unsub_resync = async_track_time_interval(
            self.hass, self._async_resync, RESYNC_INTERVAL
        )
        _LOGGER.info("Connected, resyncing every %s", RESYNC_INTERVAL)
        return devices

    async def _async_resync(self, _now: datetime | None = None) -> None:
        if not self._session_manager.has_credentials:
            _LOGGER.debug("Skipping resync, no credentials")
            return
        await self.async_discover()

    def _cancel_resync(self) -> None:
        if self._unsub_resync is not None:
            self._unsub_resync()
            self._unsub_resync = None

    async def async_disconnect(self) -> None:
        """Stop the periodic resync."""
        self._cancel_resync()
