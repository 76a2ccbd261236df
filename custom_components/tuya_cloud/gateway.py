"""Command delivery for Tuya devices."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from . import api
from .const import CAPABILITIES_SET_DEBOUNCE
from .debounce import CapabilityDebouncer

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from .models import TuyaCommand
    from .session import TuyaSessionManager

_LOGGER = logging.getLogger(__name__)


class TuyaCommandGateway:
    """Send control commands and coalesce local capability changes.

    Capability changes are buffered per device for a fixed window; the
    device's registered listener then gets all of them in one call and
    decides which commands to send.
    """

    def __init__(
        self,
        session_manager: TuyaSessionManager,
        debounce_window: float = CAPABILITIES_SET_DEBOUNCE,
    ) -> None:
        """Initialize the gateway.

        Args:
            session_manager: Session used to authenticate requests.
            debounce_window: Coalescing window in seconds.

        """
        self._session_manager = session_manager
        self._listeners: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {}
        self._debouncer = CapabilityDebouncer(self._async_dispatch, debounce_window)

    async def async_send(self, device_id: str, commands: list[TuyaCommand]) -> bool:
        """Send commands to a device.

        Returns:
            True if the cloud accepted the commands.

        Raises:
            TuyaCommandError: If the session, the transport or the cloud fails.

        """
        try:
            access_token = await self._session_manager.async_ensure_valid_token()
            if not access_token:
                no_token = "No valid access token"
                raise api.TuyaSessionError(no_token, transient=True)
            return await api.async_send_commands(
                self._session_manager.http,
                self._session_manager.base_url,
                access_token,
                device_id,
                commands,
            )
        except (api.TuyaCloudError, httpx.RequestError) as err:
            _LOGGER.exception(
                "[SET][%s] Error sending commands %s",
                device_id,
                [command.as_dict() for command in commands],
            )
            error_msg = f"Error sending command: {err}"
            raise api.TuyaCommandError(error_msg) from err

    def register_capability_listener(
        self,
        device_id: str,
        listener: Callable[[dict[str, Any]], Awaitable[None]],
    ) -> Callable[[], None]:
        """Register the listener receiving coalesced changes for a device.

        Returns:
            A function to unregister the listener.

        """
        self._listeners[device_id] = listener

        def unregister() -> None:
            if self._listeners.get(device_id) is listener:
                self._listeners.pop(device_id)

        return unregister

    def async_capability_changed(
        self, device_id: str, changes: dict[str, Any]
    ) -> asyncio.Future[None]:
        """Queue capability changes made locally on a device."""
        return self._debouncer.schedule(device_id, changes)

    async def async_flush(self, device_id: str | None = None) -> None:
        """Dispatch queued changes immediately."""
        await self._debouncer.async_flush(device_id)

    async def async_shutdown(self) -> None:
        """Drop queued changes and listeners."""
        await self._debouncer.async_cancel()
        self._listeners.clear()

    async def _async_dispatch(self, device_id: str, changes: dict[str, Any]) -> None:
        listener = self._listeners.get(device_id)
        if listener is None:
            _LOGGER.warning("No capability listener for device %s, dropping %s", device_id, changes)
            return
        await listener(changes)
