"""Data models for Tuya Cloud integration."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .const import DEFAULT_REGION


class SessionState(StrEnum):
    """Lifecycle states of the cloud session."""

    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass(frozen=True)
class TuyaCredentials:
    """Account credentials used to obtain a session."""

    username: str
    password: str
    country_code: str
    biz_type: str

    def as_form(self) -> dict[str, str]:
        """Return the credentials as the auth.do form fields."""
        return {
            "userName": self.username,
            "password": self.password,
            "countryCode": self.country_code,
            "bizType": self.biz_type,
        }


@dataclass
class TuyaSession:
    """Represents the tokens obtained from the Tuya cloud.

    Attributes:
        access_token: Token sent with every skill request.
        refresh_token: Token returned alongside the access token.
        expire_time: Expiry as epoch milliseconds.
        region: Cloud region derived from the access token prefix.
        last_call: Epoch seconds of the last authentication attempt.

    """

    access_token: str = ""
    refresh_token: str = ""
    expire_time: int = 0
    region: str = DEFAULT_REGION
    last_call: float | None = None

    @property
    def has_tokens(self) -> bool:
        """Return True if both tokens are present."""
        return bool(self.access_token and self.refresh_token)

    def is_valid(self, now_ms: int) -> bool:
        """Return True if the session can be used for requests at now_ms."""
        return self.has_tokens and now_ms < self.expire_time


@dataclass(frozen=True)
class DataPoint:
    """A vendor data point reported by or sent to a device."""

    code: str
    value: Any


@dataclass(frozen=True)
class TuyaDeviceRecord:
    """A device as returned by one discovery call."""

    id: str
    name: str
    device_type: str
    category: str
    online: bool | None
    status: tuple[DataPoint, ...] = field(default_factory=tuple)
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def find(self, code: str) -> DataPoint | None:
        """Return the first data point with the given code."""
        return next((dp for dp in self.status if dp.code == code), None)


@dataclass(frozen=True)
class ValueRange:
    """Raw DP range for a normalized value."""

    min: int
    max: int


@dataclass(frozen=True)
class RangeConfig:
    """Raw DP ranges of a light, derived from its category and DP codes."""

    bright: ValueRange
    temp: ValueRange
    saturation: ValueRange


@dataclass(frozen=True)
class TuyaCommand:
    """A single command sent to a device."""

    code: str
    value: Any

    def as_dict(self) -> dict[str, Any]:
        """Return the command in the wire format."""
        return {"code": self.code, "value": self.value}
