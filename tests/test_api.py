"""Tests for the Tuya Cloud API client."""

import json
from typing import Any
from unittest.mock import Mock, patch
from urllib.parse import parse_qs

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.tuya_cloud import api
from custom_components.tuya_cloud.api import (
    TuyaApiAuthError,
    TuyaApiClientError,
    TuyaCloudError,
    TuyaCommandError,
    TuyaConfigError,
    TuyaDiscoveryError,
    TuyaSessionError,
)
from custom_components.tuya_cloud.const import USER_AGENT
from custom_components.tuya_cloud.models import TuyaCommand, TuyaCredentials

from .conftest import EU_BASE_URL

CREDENTIALS = TuyaCredentials(
    username="user@example.com",
    password="secret",
    country_code="49",
    biz_type="smart_life",
)


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "error_class",
        [
            TuyaApiClientError,
            TuyaConfigError,
            TuyaSessionError,
            TuyaDiscoveryError,
            TuyaCommandError,
        ],
    )
    def test_errors_share_base_class(self, error_class: type[Exception]) -> None:
        """Test that every integration error is a TuyaCloudError."""
        assert issubclass(error_class, TuyaCloudError)

    def test_auth_error_is_client_error(self) -> None:
        """Test that TuyaApiAuthError is a TuyaApiClientError."""
        error = TuyaApiAuthError("Auth error")
        assert isinstance(error, TuyaApiClientError)
        assert error.transient is False

    def test_session_error_carries_transient_flag(self) -> None:
        """Test that TuyaSessionError keeps the transient flag."""
        error_message = "rate limited"
        with pytest.raises(TuyaSessionError, match=error_message) as exc_info:
            raise TuyaSessionError(error_message, transient=True)
        assert exc_info.value.transient is True


class TestRegion:
    """Tests for region resolution."""

    @pytest.mark.parametrize(
        ("token", "region"),
        [
            ("AYabc123", "cn"),
            ("EUabc123", "eu"),
            ("USabc123", "us"),
            ("xyz", "us"),
            ("", "us"),
        ],
    )
    def test_resolve_region_uses_token_prefix(self, token: str, region: str) -> None:
        """Test that the region follows the first two token characters."""
        assert api.resolve_region(token) == region

    def test_base_url_for_region(self) -> None:
        """Test that the base URL embeds the region."""
        assert api.base_url_for_region("eu") == EU_BASE_URL
        assert api.base_url_for_region("cn") == "https://px1.tuyacn.com/homeassistant"


class TestCreateHeaders:
    """Tests for create_headers function."""

    def test_create_headers_returns_base_headers(self) -> None:
        """Test that create_headers returns the JSON accept header and user agent."""
        headers = api.create_headers()
        assert headers["user-agent"] == USER_AGENT
        assert "application/json" in headers["accept"]


class TestIsHttpError:
    """Tests for is_http_error function."""

    def test_is_http_error_returns_false_for_success_codes(self) -> None:
        """Test that is_http_error returns False for success codes."""
        assert api.is_http_error(200) is False
        assert api.is_http_error(302) is False

    def test_is_http_error_returns_true_for_error_codes(self) -> None:
        """Test that is_http_error returns True for error codes."""
        assert api.is_http_error(400) is True
        assert api.is_http_error(503) is True


class TestIsTransientAuthError:
    """Tests for is_transient_auth_error function."""

    def test_rate_limit_message_is_transient(self) -> None:
        """Test that the auth rate limit message is transient."""
        assert api.is_transient_auth_error("you cannot auth exceed once in 60 seconds")

    def test_other_messages_are_not_transient(self) -> None:
        """Test that credential errors are not transient."""
        assert not api.is_transient_auth_error("Get accesstoken failed")


class TestValidateAuthResponse:
    """Tests for validate_auth_response function."""

    def test_returns_token_data(self, sample_auth_response: dict[str, Any]) -> None:
        """Test that valid token data is returned unchanged."""
        response = httpx.Response(200, json=sample_auth_response)
        assert api.validate_auth_response(response) == sample_auth_response

    def test_raises_client_error_on_http_500(self) -> None:
        """Test that an HTTP error raises a client error."""
        response = httpx.Response(500, text="oops")
        with pytest.raises(TuyaApiClientError, match="Request failed: 500"):
            api.validate_auth_response(response)

    def test_raises_client_error_on_empty_body(self) -> None:
        """Test that an empty body raises a client error."""
        response = httpx.Response(200, text="")
        with pytest.raises(TuyaApiClientError, match="No data returned"):
            api.validate_auth_response(response)

    def test_raises_client_error_on_invalid_json(self) -> None:
        """Test that a non-JSON body raises a client error."""
        response = httpx.Response(200, text="<html>")
        with pytest.raises(TuyaApiClientError, match="Invalid JSON response"):
            api.validate_auth_response(response)

    def test_raises_fatal_auth_error(self) -> None:
        """Test that a credential error is not flagged transient."""
        response = httpx.Response(
            200,
            json={"responseStatus": "error", "errorMsg": "Get accesstoken failed"},
        )
        with pytest.raises(TuyaApiAuthError, match="Get accesstoken failed") as exc_info:
            api.validate_auth_response(response)
        assert exc_info.value.transient is False

    def test_raises_transient_auth_error(self) -> None:
        """Test that the rate limit error is flagged transient."""
        response = httpx.Response(
            200,
            json={
                "responseStatus": "error",
                "errorMsg": "you cannot auth exceed once in 60 seconds",
            },
        )
        with pytest.raises(TuyaApiAuthError) as exc_info:
            api.validate_auth_response(response)
        assert exc_info.value.transient is True

    def test_raises_auth_error_without_access_token(self) -> None:
        """Test that a response without access_token is an auth error."""
        response = httpx.Response(200, json={"refresh_token": "abc"})
        with pytest.raises(TuyaApiAuthError, match="missing access_token"):
            api.validate_auth_response(response)


class TestValidateSkillResponse:
    """Tests for validate_skill_response function."""

    def test_returns_payload(self, sample_control_response: dict[str, Any]) -> None:
        """Test that the payload of a successful response is returned."""
        response = httpx.Response(200, json=sample_control_response)
        assert api.validate_skill_response(response) == {"success": True}

    def test_raises_on_error_code(self) -> None:
        """Test that a non-success header code raises a client error."""
        response = httpx.Response(
            200,
            json={
                "header": {"code": "FrequentlyInvoke", "msg": "frequently invoke"},
                "payload": {},
            },
        )
        with pytest.raises(TuyaApiClientError, match="frequently invoke"):
            api.validate_skill_response(response)

    def test_raises_on_unsuccessful_payload(self) -> None:
        """Test that payload.success False raises with the payload message."""
        response = httpx.Response(
            200,
            json={
                "header": {"code": "SUCCESS"},
                "payload": {"success": False, "errorMsg": "device offline"},
            },
        )
        with pytest.raises(TuyaApiClientError, match="device offline"):
            api.validate_skill_response(response)

    @pytest.mark.parametrize(
        "body",
        [
            {"header": {"code": "SUCCESS"}, "payload": [{"devices": []}]},
            {"header": {"code": "SUCCESS"}, "payload": "devices"},
            {"header": ["SUCCESS"], "payload": {"devices": []}},
        ],
    )
    def test_raises_on_malformed_envelope(self, body: dict[str, Any]) -> None:
        """Test that a non-object header or payload raises a client error."""
        response = httpx.Response(200, json=body)
        with pytest.raises(TuyaApiClientError, match="Unexpected response format"):
            api.validate_skill_response(response)


class TestBuildSkillRequest:
    """Tests for build_skill_request function."""

    def test_discovery_request_has_no_device_id(self) -> None:
        """Test that discovery requests carry only the access token."""
        request = api.build_skill_request("Discovery", "discovery", "EUtoken")
        assert request == {
            "header": {"name": "Discovery", "namespace": "discovery", "payloadVersion": 1},
            "payload": {"accessToken": "EUtoken"},
        }

    def test_control_request_includes_device_id(self) -> None:
        """Test that control requests carry the device id and extra payload."""
        request = api.build_skill_request(
            "commands",
            "control",
            "EUtoken",
            "device1",
            {"commands": [{"code": "switch_1", "value": True}]},
        )
        assert request["header"]["namespace"] == "control"
        assert request["payload"] == {
            "accessToken": "EUtoken",
            "devId": "device1",
            "commands": [{"code": "switch_1", "value": True}],
        }


class TestParseDevice:
    """Tests for parse_device and extract_devices functions."""

    def test_parse_device_reads_status(self) -> None:
        """Test that a raw device becomes a record with data points."""
        record = api.parse_device(
            {
                "id": "socket1",
                "name": "Plug",
                "dev_type": "switch",
                "category": "cz",
                "online": True,
                "status": [{"code": "switch_1", "value": True}, {"value": 3}],
            }
        )
        assert record.id == "socket1"
        assert record.category == "cz"
        assert record.online is True
        assert len(record.status) == 1
        assert record.find("switch_1").value is True

    def test_parse_device_falls_back_to_dev_type_and_nested_online(self) -> None:
        """Test that category defaults to dev_type and online may be nested."""
        record = api.parse_device(
            {"id": "light1", "dev_type": "light", "data": {"online": False}}
        )
        assert record.category == "light"
        assert record.online is False
        assert record.status == ()

    def test_parse_device_without_online_flag(self) -> None:
        """Test that a missing online flag stays unknown."""
        record = api.parse_device({"id": "feeder1", "dev_type": "feeder"})
        assert record.online is None

    def test_extract_devices_skips_entries_without_id(self) -> None:
        """Test that entries without an id are ignored."""
        devices = api.extract_devices({"devices": [{"id": "a"}, {"name": "no id"}]})
        assert [device.id for device in devices] == ["a"]

    def test_extract_devices_raises_without_device_list(self) -> None:
        """Test that a payload without devices raises a client error."""
        with pytest.raises(TuyaApiClientError, match="missing devices"):
            api.extract_devices({})

    def test_extract_devices_raises_on_non_list(self) -> None:
        """Test that a devices value that is not a list raises a client error."""
        with pytest.raises(TuyaApiClientError, match="Unexpected devices format"):
            api.extract_devices({"devices": {"id": "a"}})


class TestCreateSessionClient:
    """Tests for create_session_client function."""

    def test_create_session_client_wraps_transport_with_retries(self) -> None:
        """Test that the client transport is wrapped in a RetryTransport."""
        mock_hass = Mock()
        mock_client = Mock()
        original_transport = Mock()
        mock_client._transport = original_transport

        with (
            patch.object(api, "create_async_httpx_client", return_value=mock_client),
            patch.object(api, "RetryTransport") as mock_retry_transport,
        ):
            result = api.create_session_client(mock_hass)

        assert result == mock_client
        mock_retry_transport.assert_called_once()
        assert mock_retry_transport.call_args.kwargs["transport"] is original_transport
        assert mock_client._transport is mock_retry_transport.return_value


class TestAsyncAuthenticate:
    """Tests for async_authenticate function."""

    @pytest.mark.asyncio
    async def test_async_authenticate_posts_form(
        self,
        httpx_mock: HTTPXMock,
        sample_auth_response: dict[str, Any],
    ) -> None:
        """Test that async_authenticate posts the credentials as a form."""
        httpx_mock.add_response(
            url=f"{EU_BASE_URL}/auth.do",
            method="POST",
            json=sample_auth_response,
        )
        async with httpx.AsyncClient() as session:
            data = await api.async_authenticate(session, EU_BASE_URL, CREDENTIALS)

        assert data["access_token"] == "USaccess_token"
        request = httpx_mock.get_request()
        form = parse_qs(request.content.decode())
        assert form == {
            "userName": ["user@example.com"],
            "password": ["secret"],
            "countryCode": ["49"],
            "bizType": ["smart_life"],
            "from": ["tuya"],
        }

    @pytest.mark.asyncio
    async def test_async_authenticate_raises_auth_error(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a rejected login raises an auth error."""
        httpx_mock.add_response(
            url=f"{EU_BASE_URL}/auth.do",
            method="POST",
            json={"responseStatus": "error", "errorMsg": "Get accesstoken failed"},
        )
        async with httpx.AsyncClient() as session:
            with pytest.raises(TuyaApiAuthError, match="Get accesstoken failed"):
                await api.async_authenticate(session, EU_BASE_URL, CREDENTIALS)


class TestAsyncDiscoverDevices:
    """Tests for async_discover_devices function."""

    @pytest.mark.asyncio
    async def test_async_discover_devices_returns_records(
        self,
        httpx_mock: HTTPXMock,
        sample_discovery_response: dict[str, Any],
    ) -> None:
        """Test that discovery returns one record per device."""
        httpx_mock.add_response(
            url=f"{EU_BASE_URL}/skill",
            method="POST",
            json=sample_discovery_response,
        )
        async with httpx.AsyncClient() as session:
            devices = await api.async_discover_devices(session, EU_BASE_URL, "EUtoken")

        assert [device.id for device in devices] == ["socket1", "light1"]
        body = json.loads(httpx_mock.get_request().content)
        assert body["header"]["namespace"] == "discovery"
        assert body["header"]["name"] == "Discovery"
        assert body["payload"] == {"accessToken": "EUtoken"}

    @pytest.mark.asyncio
    async def test_async_discover_devices_raises_on_error_code(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that an error header raises a client error."""
        httpx_mock.add_response(
            url=f"{EU_BASE_URL}/skill",
            method="POST",
            json={"header": {"code": "InvalidAccessToken"}, "payload": {}},
        )
        async with httpx.AsyncClient() as session:
            with pytest.raises(TuyaApiClientError, match="InvalidAccessToken"):
                await api.async_discover_devices(session, EU_BASE_URL, "EUtoken")


class TestAsyncSendCommands:
    """Tests for async_send_commands function."""

    @pytest.mark.asyncio
    async def test_async_send_commands_posts_control_request(
        self,
        httpx_mock: HTTPXMock,
        sample_control_response: dict[str, Any],
    ) -> None:
        """Test that commands are sent in the control namespace."""
        httpx_mock.add_response(
            url=f"{EU_BASE_URL}/skill",
            method="POST",
            json=sample_control_response,
        )
        commands = [TuyaCommand("switch_led", True), TuyaCommand("bright_value", 505)]
        async with httpx.AsyncClient() as session:
            result = await api.async_send_commands(
                session, EU_BASE_URL, "EUtoken", "light1", commands
            )

        assert result is True
        body = json.loads(httpx_mock.get_request().content)
        assert body["header"] == {
            "name": "commands",
            "namespace": "control",
            "payloadVersion": 1,
        }
        assert body["payload"] == {
            "accessToken": "EUtoken",
            "devId": "light1",
            "commands": [
                {"code": "switch_led", "value": True},
                {"code": "bright_value", "value": 505},
            ],
        }

    @pytest.mark.asyncio
    async def test_async_send_commands_raises_on_http_error(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that an HTTP error raises a client error."""
        httpx_mock.add_response(url=f"{EU_BASE_URL}/skill", method="POST", status_code=502)
        async with httpx.AsyncClient() as session:
            with pytest.raises(TuyaApiClientError, match="Request failed: 502"):
                await api.async_send_commands(
                    session, EU_BASE_URL, "EUtoken", "light1", [TuyaCommand("switch_led", False)]
                )
