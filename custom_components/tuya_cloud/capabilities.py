"""Capability store interface and per-device capability bookkeeping."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_LOGGER = logging.getLogger(__name__)


class CapabilityStore(Protocol):
    """Hub-side store holding the capability values of one device."""

    def get_value(self, capability: str) -> Any:
        """Return the current value of a capability, or None."""

    def has_capability(self, capability: str) -> bool:
        """Return True if the capability exists."""

    async def async_set_value(self, capability: str, value: Any) -> None:
        """Write a capability value."""

    async def async_add_capability(self, capability: str) -> None:
        """Add a capability. Adding an existing capability is a no-op."""

    async def async_set_available(self, available: bool, reason: str | None = None) -> None:
        """Mark the device available or unavailable."""


class CapabilitySet:
    """Capabilities materialized for one device; it only ever grows."""

    def __init__(self, capabilities: Iterable[str] = ()) -> None:
        self._capabilities: list[str] = []
        self.update(capabilities)

    def __contains__(self, capability: object) -> bool:
        return capability in self._capabilities

    def __iter__(self) -> Iterator[str]:
        return iter(self._capabilities)

    def __len__(self) -> int:
        return len(self._capabilities)

    def add(self, capability: str) -> bool:
        """Add a capability; return True if it was not present yet."""
        if capability in self._capabilities:
            return False
        self._capabilities.append(capability)
        return True

    def update(self, capabilities: Iterable[str]) -> list[str]:
        """Add several capabilities; return the ones that were new."""
        return [capability for capability in capabilities if self.add(capability)]


class MemoryCapabilityStore:
    """In-memory CapabilityStore, used when the hub keeps no store of its own."""

    def __init__(self, capabilities: Iterable[str] = ()) -> None:
        self.values: dict[str, Any] = {}
        self.capabilities = CapabilitySet(capabilities)
        self.available = True
        self.unavailable_reason: str | None = None

    def get_value(self, capability: str) -> Any:
        return self.values.get(capability)

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    async def async_set_value(self, capability: str, value: Any) -> None:
        if capability not in self.capabilities:
            error_msg = f"Unknown capability: {capability}"
            raise KeyError(error_msg)
        self.values[capability] = value

    async def async_add_capability(self, capability: str) -> None:
        if self.capabilities.add(capability):
            _LOGGER.debug("Added capability %s", capability)

    async def async_set_available(self, available: bool, reason: str | None = None) -> None:
        self.available = available
        self.unavailable_reason = None if available else reason
