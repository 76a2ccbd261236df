"""Session management for the Tuya cloud."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import httpx

from . import api
from .const import AUTH_GUARD_INTERVAL, DEFAULT_REGION, TOKEN_REFRESH_MARGIN
from .models import SessionState, TuyaCredentials, TuyaSession

if TYPE_CHECKING:
    from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class TuyaSessionManager:
    """Own the credentials and tokens of one Tuya cloud account.

    Authentication is lazy: nothing is sent until a caller asks for a valid
    token. Attempts are rate limited to one per guard interval, and
    concurrent callers share a single in-flight authentication.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the session manager.

        Args:
            session: HTTP client session.
            clock: Returns the current epoch time in seconds.

        """
        self._http = session
        self._clock = clock
        self._lock = asyncio.Lock()
        self._credentials: TuyaCredentials | None = None
        self._session = TuyaSession()
        self._state = SessionState.UNINITIALIZED
        self._last_message = "Not initialized"

    @property
    def http(self) -> httpx.AsyncClient:
        """Return the HTTP client used for cloud requests."""
        return self._http

    @property
    def session(self) -> TuyaSession:
        """Return the current session."""
        return self._session

    @property
    def state(self) -> SessionState:
        """Return the lifecycle state."""
        return self._state

    @property
    def last_message(self) -> str:
        """Return the last error message reported by the cloud."""
        return self._last_message

    @property
    def has_credentials(self) -> bool:
        """Return True if credentials are set."""
        return self._credentials is not None

    @property
    def region(self) -> str:
        """Return the region of the current session."""
        return self._session.region

    @property
    def base_url(self) -> str:
        """Return the API base URL for the current region."""
        return api.base_url_for_region(self._session.region)

    def initialize(self, credentials: TuyaCredentials) -> None:
        """Set new credentials and reset the session.

        Raises:
            TuyaConfigError: If any credential field is missing.

        """
        self._session = TuyaSession()
        if not all(
            (
                credentials.username,
                credentials.password,
                credentials.country_code,
                credentials.biz_type,
            )
        ):
            self._credentials = None
            self._state = SessionState.ERROR
            self._last_message = (
                "Missing login name, password, country code and/or application"
            )
            raise api.TuyaConfigError(self._last_message)

        self._credentials = credentials
        self._state = SessionState.UNINITIALIZED
        self._last_message = "Initialized"
        _LOGGER.debug("Session initialized for user %s", credentials.username)

    def reset(self) -> None:
        """Drop credentials and tokens."""
        self._credentials = None
        self._session = TuyaSession()
        self._state = SessionState.UNINITIALIZED
        self._last_message = "Not initialized"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _needs_authentication(self) -> bool:
        if not self._session.has_tokens:
            return True
        return self._now_ms() >= self._session.expire_time - TOKEN_REFRESH_MARGIN * 1000

    def _within_guard_interval(self) -> bool:
        last_call = self._session.last_call
        return last_call is not None and self._clock() - last_call <= AUTH_GUARD_INTERVAL

    async def async_ensure_valid_token(self) -> str:
        """Return an access token, authenticating first when required.

        Within the guard interval after an authentication attempt this is a
        no-op, so the returned token can be empty after a transient failure.

        Raises:
            TuyaSessionError: If no credentials are set, the session is in the
                error state, or authentication fails.

        """
        async with self._lock:
            if self._credentials is None:
                raise api.TuyaSessionError(self._last_message)
            if self._state is SessionState.ERROR:
                raise api.TuyaSessionError(self._last_message)
            if self._within_guard_interval():
                return self._session.access_token
            if self._needs_authentication():
                await self._async_authenticate()
            return self._session.access_token

    async def _async_authenticate(self) -> None:
        """Perform a full authentication and store the new session."""
        credentials = self._credentials
        if credentials is None:
            raise api.TuyaSessionError(self._last_message)

        previous_state = self._state
        self._state = SessionState.AUTHENTICATING
        try:
            data = await api.async_authenticate(self._http, self.base_url, credentials)
        except api.TuyaApiAuthError as err:
            self._set_session_error(str(err), transient=err.transient)
            if err.transient:
                self._state = previous_state
                _LOGGER.warning("Authentication rate limited by Tuya cloud: %s", err)
            else:
                self._state = SessionState.ERROR
                _LOGGER.error("Authentication rejected by Tuya cloud: %s", err)
            raise api.TuyaSessionError(str(err), transient=err.transient) from err
        except (api.TuyaApiClientError, httpx.RequestError) as err:
            self._set_session_error(str(err), transient=True)
            self._state = previous_state
            _LOGGER.exception("Error during authentication")
            error_msg = f"Authentication request failed: {err}"
            raise api.TuyaSessionError(error_msg, transient=True) from err

        self._set_session_data(data)

    def _set_session_error(self, message: str, *, transient: bool) -> None:
        self._session.last_call = self._clock()
        self._last_message = message
        _LOGGER.debug("Session error (transient=%s): %s", transient, message)

    def _set_session_data(self, data: dict) -> None:
        now = self._clock()
        access_token = str(data.get("access_token", ""))
        region = api.resolve_region(access_token) if access_token else DEFAULT_REGION
        self._session = TuyaSession(
            access_token=access_token,
            refresh_token=str(data.get("refresh_token", "")),
            expire_time=int((now + float(data.get("expires_in", 0))) * 1000),
            region=region,
            last_call=now,
        )
        self._state = SessionState.AUTHENTICATED
        self._last_message = "Authenticated"
        _LOGGER.info(
            "Authenticated with Tuya cloud, region %s, token valid until %s",
            region,
            self._session.expire_time,
        )
