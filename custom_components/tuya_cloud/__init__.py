from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant, callback

from . import api
from .api import create_session_client
from .capabilities import MemoryCapabilityStore
from .const import CONF_BIZ_TYPE, CONF_COUNTRY_CODE, DOMAIN
from .coordinator import TuyaDiscoveryCoordinator
from .device import TuyaDevice
from .gateway import TuyaCommandGateway
from .models import TuyaCredentials, TuyaDeviceRecord
from .session import TuyaSessionManager
from .translators import resolve_device_class

_LOGGER = logging.getLogger(__name__)


def credentials_from_entry(entry: ConfigEntry) -> TuyaCredentials:
    """Build credentials from config entry data."""
    return TuyaCredentials(
        username=entry.data.get(CONF_USERNAME, ""),
        password=entry.data.get(CONF_PASSWORD, ""),
        country_code=str(entry.data.get(CONF_COUNTRY_CODE, "")),
        biz_type=entry.data.get(CONF_BIZ_TYPE, ""),
    )


def device_options(entry: ConfigEntry, device_id: str) -> dict[str, Any]:
    """Return the per-device settings stored in the entry options."""
    options = entry.options.get(device_id) or {}
    return dict(options) if isinstance(options, dict) else {}


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Tuya Cloud integration for entry %s", entry.entry_id)

    session = create_session_client(hass)
    session_manager = TuyaSessionManager(session)
    try:
        session_manager.initialize(credentials_from_entry(entry))
    except api.TuyaConfigError as err:
        _LOGGER.error("Invalid configuration for entry %s: %s", entry.entry_id, err)
        return False

    coordinator = TuyaDiscoveryCoordinator(hass, session_manager, entry)
    gateway = TuyaCommandGateway(session_manager)
    devices: dict[str, TuyaDevice] = {}

    @callback
    def _async_device_updated(record: TuyaDeviceRecord) -> None:
        device = devices.get(record.id)
        if device is None:
            device_class = resolve_device_class(record)
            if device_class is None:
                _LOGGER.debug(
                    "Skipping unsupported device %s (category %s, type %s)",
                    record.id,
                    record.category,
                    record.device_type,
                )
                return
            device = TuyaDevice(
                record,
                device_class,
                MemoryCapabilityStore(),
                gateway,
                device_options(entry, record.id),
            )
            devices[record.id] = device
            _LOGGER.info("Added %s device %s (%s)", device_class, record.name, record.id)
        hass.async_create_task(device.async_apply_record(record))

    unregister = coordinator.register_device_update_callback(_async_device_updated)
    entry.async_on_unload(unregister)

    await coordinator.async_connect()
    if not coordinator.data:
        _LOGGER.warning(
            "No devices discovered for entry %s: %s",
            entry.entry_id,
            session_manager.last_message,
        )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "session_manager": session_manager,
        "coordinator": coordinator,
        "gateway": gateway,
        "devices": devices,
    }
    _LOGGER.debug("Stored data for entry %s: %d devices", entry.entry_id, len(devices))
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Tuya Cloud integration for entry %s", entry.entry_id)

    entry_data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if entry_data is None:
        return True

    await entry_data["coordinator"].async_disconnect()
    for device in entry_data["devices"].values():
        await device.async_remove()
    await entry_data["gateway"].async_shutdown()
    entry_data["session_manager"].reset()
    _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
