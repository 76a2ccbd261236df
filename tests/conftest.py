"""Pytest configuration and fixtures for Tuya Cloud tests."""

from typing import Any
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from custom_components.tuya_cloud.capabilities import MemoryCapabilityStore
from custom_components.tuya_cloud.models import DataPoint, TuyaDeviceRecord

EU_BASE_URL = "https://px1.tuyaeu.com/homeassistant"
US_BASE_URL = "https://px1.tuyaus.com/homeassistant"


class FakeClock:
    """Controllable epoch clock in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_record(
    status: list[tuple[str, Any]] | None = None,
    *,
    device_id: str = "device1",
    category: str = "",
    device_type: str = "",
    online: bool | None = True,
) -> TuyaDeviceRecord:
    """Create a device record from (code, value) pairs."""
    return TuyaDeviceRecord(
        id=device_id,
        name=f"Device {device_id}",
        device_type=device_type,
        category=category,
        online=online,
        status=tuple(DataPoint(code, value) for code, value in status or []),
    )


def make_status(*pairs: tuple[str, Any]) -> tuple[DataPoint, ...]:
    """Create a status array from (code, value) pairs."""
    return tuple(DataPoint(code, value) for code, value in pairs)


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a controllable clock."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryCapabilityStore:
    """Fixture providing an empty in-memory capability store."""
    return MemoryCapabilityStore()


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    hass = Mock()
    hass.config_entries = Mock()
    return hass


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def mock_session_manager(mock_session: Mock) -> Mock:
    """Create a mock session manager holding a valid EU token."""
    manager = Mock()
    manager.http = mock_session
    manager.base_url = EU_BASE_URL
    manager.has_credentials = True
    manager.async_ensure_valid_token = AsyncMock(return_value="EUaccess_token")
    return manager


@pytest.fixture
def sample_auth_response() -> dict[str, Any]:
    """Fixture providing a sample auth.do response for the US region."""
    return {
        "access_token": "USaccess_token",
        "refresh_token": "USrefresh_token",
        "token_type": "bearer",
        "expires_in": 864000,
    }


@pytest.fixture
def sample_discovery_response() -> dict[str, Any]:
    """Fixture providing a sample discovery skill response."""
    return {
        "header": {"code": "SUCCESS", "payloadVersion": 1},
        "payload": {
            "devices": [
                {
                    "id": "socket1",
                    "name": "Power Strip",
                    "dev_type": "switch",
                    "category": "pc",
                    "online": True,
                    "status": [
                        {"code": "switch_1", "value": True},
                        {"code": "switch_2", "value": False},
                    ],
                },
                {
                    "id": "light1",
                    "name": "Desk Lamp",
                    "dev_type": "light",
                    "data": {"online": False},
                    "status": [{"code": "switch_led", "value": True}],
                },
            ],
        },
    }


@pytest.fixture
def sample_control_response() -> dict[str, Any]:
    """Fixture providing a sample control skill response."""
    return {
        "header": {"code": "SUCCESS", "payloadVersion": 1},
        "payload": {"success": True},
    }
