"""API client for the Tuya cloud.

This module provides functions to interact with the Tuya "homeassistant"
skill API, including authentication, device discovery and command
sending, together with the exception taxonomy used by the integration.
"""

import json
import logging
from typing import Any

import httpx
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    ACTION_COMMANDS,
    ACTION_DISCOVERY,
    AUTH_FROM,
    BASE_URL_TEMPLATE,
    NAMESPACE_CONTROL,
    NAMESPACE_DISCOVERY,
    PAYLOAD_VERSION,
    REGION_US,
    RESPONSE_CODE_SUCCESS,
    TOKEN_REGION_PREFIXES,
    TRANSIENT_AUTH_ERROR_PREFIX,
    USER_AGENT,
)
from .models import DataPoint, TuyaCommand, TuyaCredentials, TuyaDeviceRecord

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400


class TuyaCloudError(Exception):
    """Base exception for Tuya cloud errors."""


class TuyaApiClientError(TuyaCloudError):
    """Exception raised for transport and response errors."""


class TuyaApiAuthError(TuyaApiClientError):
    """Exception raised when the cloud rejects an authentication request."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        """Initialize the error.

        Args:
            message: Error message provided by the cloud.
            transient: True if the rejection is a rate limit rather than a
                credential failure.

        """
        super().__init__(message)
        self.transient = transient


class TuyaConfigError(TuyaCloudError):
    """Exception raised when required credentials are missing."""


class TuyaSessionError(TuyaCloudError):
    """Exception raised when no usable session could be obtained."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class TuyaDiscoveryError(TuyaCloudError):
    """Exception raised when device discovery fails."""


class TuyaCommandError(TuyaCloudError):
    """Exception raised when a command could not be delivered."""


def resolve_region(access_token: str) -> str:
    """Return the cloud region encoded in the first two token characters."""
    return TOKEN_REGION_PREFIXES.get(access_token[:2], REGION_US)


def base_url_for_region(region: str) -> str:
    """Return the API base URL for a region."""
    return BASE_URL_TEMPLATE.format(region=region)


def create_headers() -> dict[str, str]:
    """Create HTTP headers for Tuya API requests.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    return {
        "accept": "application/json, text/plain, */*",
        "user-agent": USER_AGENT,
    }


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_transient_auth_error(message: str) -> bool:
    """Check if an auth error message is the cloud's rate-limit rejection."""
    return message.startswith(TRANSIENT_AUTH_ERROR_PREFIX)


def _validate_http_status(response: httpx.Response) -> None:
    if not is_http_error(response.status_code):
        return

    client_error = f"Request failed: {response.status_code}"
    raise TuyaApiClientError(client_error)


def _parse_json(response: httpx.Response) -> dict[str, Any]:
    if not response.text:
        no_data = "No data returned"
        raise TuyaApiClientError(no_data)
    try:
        data = json.loads(response.text)
    except json.JSONDecodeError as err:
        invalid = f"Invalid JSON response: {err}"
        raise TuyaApiClientError(invalid) from err
    if not isinstance(data, dict):
        unexpected = "Unexpected response format"
        raise TuyaApiClientError(unexpected)
    return data


def validate_auth_response(response: httpx.Response) -> dict[str, Any]:
    """Validate an auth.do response and return the parsed token data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        TuyaApiAuthError: If the cloud reports an authentication error. The
            error is flagged transient for the "auth exceed once" message.
        TuyaApiClientError: If the HTTP request or the payload is invalid.

    """
    _validate_http_status(response)
    data = _parse_json(response)

    if data.get("responseStatus") == "error":
        error_message = data.get("errorMsg") or "Unknown authentication error"
        raise TuyaApiAuthError(
            error_message, transient=is_transient_auth_error(error_message)
        )

    if not data.get("access_token"):
        missing = "Authentication response missing access_token"
        raise TuyaApiAuthError(missing)

    return data


def validate_skill_response(response: httpx.Response) -> dict[str, Any]:
    """Validate a skill response and return its payload.

    Raises:
        TuyaApiClientError: If the HTTP request failed or the cloud reports an
            error code.

    """
    _validate_http_status(response)
    data = _parse_json(response)

    header = data.get("header") or {}
    payload = data.get("payload") or {}
    if not isinstance(header, dict) or not isinstance(payload, dict):
        unexpected = "Unexpected response format"
        raise TuyaApiClientError(unexpected)
    code = header.get("code", RESPONSE_CODE_SUCCESS)
    if code != RESPONSE_CODE_SUCCESS or payload.get("success") is False:
        error_message = payload.get("errorMsg") or header.get("msg") or code
        raise TuyaApiClientError(error_message)

    return payload


def build_skill_request(
    name: str,
    namespace: str,
    access_token: str,
    device_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON body of a skill request.

    The device id is only attached outside the discovery namespace.
    """
    body = dict(payload or {})
    body["accessToken"] = access_token
    if namespace != NAMESPACE_DISCOVERY:
        body["devId"] = device_id
    return {
        "header": {
            "name": name,
            "namespace": namespace,
            "payloadVersion": PAYLOAD_VERSION,
        },
        "payload": body,
    }


def _parse_status(raw_status: Any) -> tuple[DataPoint, ...]:
    if not isinstance(raw_status, list):
        return ()
    return tuple(
        DataPoint(code=item["code"], value=item.get("value"))
        for item in raw_status
        if isinstance(item, dict) and item.get("code")
    )


def _parse_online(device: dict[str, Any]) -> bool | None:
    online = device.get("online")
    if online is None:
        online = (device.get("data") or {}).get("online")
    return None if online is None else bool(online)


def parse_device(device: dict[str, Any]) -> TuyaDeviceRecord:
    """Convert one raw discovery entry into a TuyaDeviceRecord."""
    device_type = str(device.get("dev_type", ""))
    return TuyaDeviceRecord(
        id=str(device["id"]),
        name=str(device.get("name", "")),
        device_type=device_type,
        category=str(device.get("category") or device_type),
        online=_parse_online(device),
        status=_parse_status(device.get("status")),
        raw=device,
    )


def extract_devices(payload: dict[str, Any]) -> list[TuyaDeviceRecord]:
    """Extract device list from a discovery payload.

    Raises:
        TuyaApiClientError: If the payload carries no device list.

    """
    devices = payload.get("devices")
    if devices is None:
        missing = "Discovery response missing devices"
        raise TuyaApiClientError(missing)
    if not isinstance(devices, list):
        unexpected = "Unexpected devices format"
        raise TuyaApiClientError(unexpected)
    return [parse_device(d) for d in devices if isinstance(d, dict) and "id" in d]


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for Tuya API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=5.0)
    retry = Retry(total=3, backoff_factor=0.5)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


async def async_authenticate(
    session: httpx.AsyncClient,
    base_url: str,
    credentials: TuyaCredentials,
) -> dict[str, Any]:
    """Authenticate with the Tuya cloud using the account credentials.

    Args:
        session: HTTP client session.
        base_url: Region specific API base URL.
        credentials: Account credentials.

    Returns:
        Token data with access_token, refresh_token and expires_in.

    Raises:
        TuyaApiAuthError: If authentication fails.
        TuyaApiClientError: If API request fails.

    """
    url = f"{base_url}/auth.do"
    form = {**credentials.as_form(), "from": AUTH_FROM}

    _LOGGER.debug("Authenticating with Tuya cloud at %s", base_url)
    response = await session.post(url, headers=create_headers(), data=form)
    data = validate_auth_response(response)
    _LOGGER.debug("Successfully authenticated with Tuya cloud")
    return data


async def async_skill_request(
    session: httpx.AsyncClient,
    base_url: str,
    request: dict[str, Any],
) -> dict[str, Any]:
    """Send a skill request and return the validated response payload."""
    url = f"{base_url}/skill"
    _LOGGER.debug(
        "Skill request %s/%s",
        request["header"]["namespace"],
        request["header"]["name"],
    )
    response = await session.post(url, headers=create_headers(), json=request)
    return validate_skill_response(response)


async def async_discover_devices(
    session: httpx.AsyncClient,
    base_url: str,
    access_token: str,
) -> list[TuyaDeviceRecord]:
    """Fetch the full device list from the Tuya cloud.

    Raises:
        TuyaApiClientError: If API request fails.

    """
    request = build_skill_request(ACTION_DISCOVERY, NAMESPACE_DISCOVERY, access_token)
    payload = await async_skill_request(session, base_url, request)
    devices = extract_devices(payload)
    _LOGGER.debug("Retrieved %d devices from Tuya cloud", len(devices))
    return devices


async def async_send_commands(
    session: httpx.AsyncClient,
    base_url: str,
    access_token: str,
    device_id: str,
    commands: list[TuyaCommand],
) -> bool:
    """Send an ordered list of commands to a device.

    Returns:
        True if the cloud accepted the commands.

    Raises:
        TuyaApiClientError: If API request fails.

    """
    request = build_skill_request(
        ACTION_COMMANDS,
        NAMESPACE_CONTROL,
        access_token,
        device_id,
        {"commands": [command.as_dict() for command in commands]},
    )
    _LOGGER.debug("Sending commands to device %s: %s", device_id, request["payload"])
    payload = await async_skill_request(session, base_url, request)
    result = payload.get("success", True)
    _LOGGER.debug("Command result for device %s: %s", device_id, result)
    return bool(result)
