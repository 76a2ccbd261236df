"""Numeric and payload conversions between Tuya DPs and capability values.

Light values are mapped through the device's RangeConfig. The mapping
floors to whole percent, so converting a raw value to a fraction and back
can land up to one percent step (``(max - min) / 100`` raw units) below the
original value. Hue goes through a fixed 0-359 domain with the same
flooring and is not an exact round trip either.
"""

import json
import logging
import math
from typing import Any

from .const import LIGHT_CATEGORIES_8BIT
from .models import DataPoint, RangeConfig, ValueRange

_LOGGER = logging.getLogger(__name__)

HUE_MAX = 359
DEFAULT_COLOUR = {"h": 100.0, "s": 100.0, "v": 100.0}

RANGE_8BIT_BRIGHT = ValueRange(min=25, max=255)
RANGE_8BIT = ValueRange(min=0, max=255)
RANGE_BRIGHT = ValueRange(min=10, max=1000)
RANGE_FULL = ValueRange(min=0, max=1000)


def scaled_to_display(raw: float, scale: int) -> float:
    """Convert a scaled integer DP to its physical value."""
    return raw / math.pow(10, scale)


def display_to_scaled(display: float, scale: int) -> int:
    """Convert a physical value to a scaled integer DP."""
    return round(display * math.pow(10, scale))


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def raw_to_fraction(raw: float, value_range: ValueRange) -> float:
    """Normalize a raw DP into a 0-1 fraction using whole percent steps."""
    span = value_range.max - value_range.min
    percentage = math.floor((raw - value_range.min) * 100 / span)
    return clamp(percentage, 0, 100) / 100


def fraction_to_raw(fraction: float, value_range: ValueRange) -> int:
    """Convert a 0-1 fraction back into a raw DP."""
    span = value_range.max - value_range.min
    return math.floor(span * fraction + value_range.min)


def hue_to_fraction(hue: float) -> float:
    """Map a 0-359 hue to a 0-1 fraction (lossy)."""
    return clamp(math.floor(hue / HUE_MAX * 100), 0, 100) / 100


def fraction_to_hue(fraction: float) -> int:
    """Map a 0-1 fraction to a 0-359 hue."""
    return round(fraction * HUE_MAX)


def decode_colour(value: Any) -> dict[str, float]:
    """Decode a colour DP into an {h, s, v} dict.

    An empty string is the cloud's sentinel for the default white colour.
    Structured values are accepted as they are.
    """
    if value == "" or value is None:
        return dict(DEFAULT_COLOUR)
    if isinstance(value, dict):
        colour = value
    else:
        try:
            colour = json.loads(value)
        except (TypeError, json.JSONDecodeError):
            _LOGGER.warning("Invalid colour payload %r, using default", value)
            return dict(DEFAULT_COLOUR)
    if not isinstance(colour, dict):
        _LOGGER.warning("Colour payload %r is not an object, using default", value)
        return dict(DEFAULT_COLOUR)
    try:
        return {
            "h": float(colour.get("h", DEFAULT_COLOUR["h"])),
            "s": float(colour.get("s", DEFAULT_COLOUR["s"])),
            "v": float(colour.get("v", DEFAULT_COLOUR["v"])),
        }
    except (TypeError, ValueError):
        _LOGGER.warning("Non-numeric colour payload %r, using default", value)
        return dict(DEFAULT_COLOUR)


def derive_range_config(category: str, status: tuple[DataPoint, ...]) -> RangeConfig:
    """Derive the raw DP ranges of a light from its category and DP codes."""
    eight_bit = category in LIGHT_CATEGORIES_8BIT
    bright = RANGE_BRIGHT
    temp = RANGE_FULL
    saturation = RANGE_FULL

    for data_point in status:
        match data_point.code:
            case "bright_value":
                bright = RANGE_8BIT_BRIGHT if eight_bit else RANGE_BRIGHT
            case "bright_value_1" | "bright_value_v2":
                bright = RANGE_BRIGHT
            case "temp_value":
                temp = RANGE_8BIT if eight_bit else RANGE_FULL
            case "temp_value_v2":
                temp = RANGE_FULL
            case "colour_data":
                saturation = RANGE_8BIT if eight_bit else RANGE_FULL
                bright = RANGE_8BIT_BRIGHT if eight_bit else RANGE_BRIGHT
            case "colour_data_v2":
                saturation = RANGE_FULL
                bright = RANGE_BRIGHT

    return RangeConfig(bright=bright, temp=temp, saturation=saturation)
