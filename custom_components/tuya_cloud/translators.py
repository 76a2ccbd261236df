"""Translators between Tuya data points and capability values.

Each supported device class has its own translator. They share one
contract (CapabilityTranslator) and are picked by device category when a
device is set up:

- configure() derives the per-device state from a full device record
  and returns the capabilities the device should expose,
- apply_inbound() turns a status array into capability writes; later data
  points in the same array overwrite earlier writes,
- build_outbound() turns a batch of capability changes into commands,
  one per vendor code.

Translators with ``debounced`` unset send each change at once. Capabilities
listed in ``momentary`` spring back to False after the given delay once
their command was sent.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Protocol

from homeassistant.util import dt as dt_util

from .const import (
    BATTERY_STATE_LEVELS,
    CAP_ALARM_FEEDING,
    CAP_BATTERY_CHARGING,
    CAP_DIM,
    CAP_FEED_NOW,
    CAP_FEEDING_STATE,
    CAP_LIGHT_HUE,
    CAP_LIGHT_MODE,
    CAP_LIGHT_SATURATION,
    CAP_LIGHT_TEMPERATURE,
    CAP_MANUAL_FEED_ACTION,
    CAP_MEASURE_BATTERY,
    CAP_MEASURE_CHARGE_CURRENT,
    CAP_MEASURE_CHARGE_VOLTAGE,
    CAP_MEASURE_CURRENT,
    CAP_MEASURE_FEED_PORTIONS,
    CAP_MEASURE_POWER,
    CAP_MEASURE_TEMPERATURE,
    CAP_MEASURE_VOLTAGE,
    CAP_METER_POWER,
    CAP_ONOFF,
    CAP_STORAGE_BUTTON,
    CAP_TARGET_HUMIDITY,
    CAP_TARGET_TEMPERATURE,
    CAP_TEXT_LAST_FEED_TIME,
    CATEGORY_DEVICE_CLASS,
    CONF_INITIAL_METER_POWER,
    CONF_SCALE,
    DEFAULT_FEED_PORTIONS,
    DEFAULT_THERMOSTAT_SCALE,
    DEVICE_CLASS_CHARGER,
    DEVICE_CLASS_DEHUMIDIFIER,
    DEVICE_CLASS_FEEDER,
    DEVICE_CLASS_LIGHT,
    DEVICE_CLASS_SOCKET,
    DEVICE_CLASS_THERMOSTAT,
    DEVICE_TYPE_DEVICE_CLASS,
    FEED_NOW_RESET_DELAY,
    FEED_PORTIONS_MAX,
    FEED_PORTIONS_MIN,
)
from .conversion import (
    decode_colour,
    derive_range_config,
    display_to_scaled,
    fraction_to_hue,
    fraction_to_raw,
    hue_to_fraction,
    raw_to_fraction,
    scaled_to_display,
)
from .models import DataPoint, RangeConfig, TuyaCommand, TuyaDeviceRecord

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .capabilities import CapabilityStore

_LOGGER = logging.getLogger(__name__)

SWITCH_CODE_PATTERN = re.compile(r"^switch(_\d+|_usb\d+)?$")
SWITCH_LED_CODES = ("switch_led", "switch_led_1")
BRIGHT_CODES = ("bright_value", "bright_value_v2", "bright_value_1")
TEMP_CODES = ("temp_value", "temp_value_v2")
COLOUR_CODES = ("colour_data", "colour_data_v2")
WHITE_WORK_MODES = ("white", "light_white")


class CapabilityTranslator(Protocol):
    """Shared contract of all device class translators."""

    device_class: str
    implies_online: bool
    debounced: bool
    momentary: Mapping[str, float]

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        """Apply a full device record and return the base capabilities."""

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        """Translate a status array into capability writes."""

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        """Translate capability changes into commands."""


def _number(value: Any) -> float:
    """Coerce a DP value to a number, treating garbage as 0."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _first_present(codes: tuple[str, ...], present: set[str]) -> str | None:
    return next((code for code in codes if code in present), None)


def switch_codes(status: tuple[DataPoint, ...]) -> list[str]:
    """Return the distinct switch family codes in DP order."""
    codes: list[str] = []
    for data_point in status:
        if SWITCH_CODE_PATTERN.match(data_point.code) and data_point.code not in codes:
            codes.append(data_point.code)
    return codes


class SocketTranslator:
    """Smart plugs and power strips, optionally with energy metering.

    A single switch code maps to plain ``onoff``; several map to one
    ``onoff.<code>`` capability each. The cardinality is fixed by
    configure() and only changes when a new record is applied.

    ``add_ele`` reports consumption deltas. They are added to the stored
    ``meter_power`` total, except for the first delta after startup which
    is dropped because it usually repeats consumption that was already
    counted before the restart.
    """

    device_class = DEVICE_CLASS_SOCKET
    implies_online = False
    debounced = True
    momentary: Mapping[str, float] = {}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store
        self._options = dict(options or {})
        self._switch_codes: list[str] = []
        self._multiswitch = False
        self._meter_primed = False

    @property
    def multiswitch(self) -> bool:
        """Return True if the device exposes one capability per switch code."""
        return self._multiswitch

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        self._switch_codes = switch_codes(record.status)
        self._multiswitch = len(self._switch_codes) > 1
        _LOGGER.debug(
            "Socket %s switch codes %s (multiswitch=%s)",
            record.id,
            self._switch_codes,
            self._multiswitch,
        )
        return {self._switch_capability(code) for code in self._switch_codes}

    def _switch_capability(self, code: str) -> str:
        return f"{CAP_ONOFF}.{code}" if self._multiswitch else CAP_ONOFF

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            code = data_point.code
            if code in self._switch_codes:
                writes[self._switch_capability(code)] = bool(data_point.value)
            elif code == "cur_power":
                writes[CAP_MEASURE_POWER] = scaled_to_display(_number(data_point.value), 1)
            elif code == "cur_voltage":
                writes[CAP_MEASURE_VOLTAGE] = scaled_to_display(
                    _number(data_point.value), 1
                )
            elif code == "cur_current":
                writes[CAP_MEASURE_CURRENT] = scaled_to_display(
                    _number(data_point.value), 3
                )
            elif code == "add_ele":
                self._accumulate(_number(data_point.value), writes)
        return writes

    def _accumulate(self, raw: float, writes: dict[str, Any]) -> None:
        delta = scaled_to_display(raw, 3)
        if not self._meter_primed:
            self._meter_primed = True
            _LOGGER.debug("Ignoring initial add_ele report (%s kWh)", delta)
            return
        if delta < 0:
            _LOGGER.warning("Ignoring negative add_ele report (%s kWh)", delta)
            return

        total = writes.get(CAP_METER_POWER)
        if total is None:
            total = self._store.get_value(CAP_METER_POWER)
        if total is None:
            total = _number(self._options.get(CONF_INITIAL_METER_POWER))
        writes[CAP_METER_POWER] = total + delta
        _LOGGER.debug("Increment meter_power by %s kWh to %s kWh", delta, total + delta)

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        commands: list[TuyaCommand] = []
        for name, value in changes.items():
            if name == CAP_ONOFF:
                code = self._switch_codes[0] if self._switch_codes else "switch_1"
            elif name.startswith(f"{CAP_ONOFF}."):
                code = name.split(".", 1)[1]
            else:
                _LOGGER.debug("Socket capability %s has no command", name)
                continue
            commands.append(TuyaCommand(code=code, value=bool(value)))
        return commands


class LightTranslator:
    """Bulbs, strips and dimmers.

    Raw DP ranges come from a RangeConfig derived in configure() and are
    used for both directions. Colour is one DP carrying an {h, s, v} object,
    so any colour edit re-sends the whole triple, filling in unchanged parts
    from the store.
    """

    device_class = DEVICE_CLASS_LIGHT
    implies_online = False
    debounced = True
    momentary: Mapping[str, float] = {}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store
        self._ranges = derive_range_config("", ())
        self._switch_code = SWITCH_LED_CODES[0]
        self._bright_code: str | None = None
        self._temp_code: str | None = None
        self._colour_code: str | None = None
        self._work_mode: str | None = None

    @property
    def ranges(self) -> RangeConfig:
        """Return the RangeConfig in use."""
        return self._ranges

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        present = {data_point.code for data_point in record.status}
        self._ranges = derive_range_config(record.category, record.status)
        self._switch_code = _first_present(SWITCH_LED_CODES, present) or SWITCH_LED_CODES[0]
        self._bright_code = _first_present(BRIGHT_CODES, present)
        self._temp_code = _first_present(TEMP_CODES, present)
        self._colour_code = _first_present(COLOUR_CODES, present)
        _LOGGER.debug("Light %s ranges %s", record.id, self._ranges)

        capabilities = {CAP_ONOFF}
        if self._bright_code:
            capabilities.add(CAP_DIM)
        if self._temp_code:
            capabilities.add(CAP_LIGHT_TEMPERATURE)
        if self._colour_code:
            capabilities.update((CAP_LIGHT_HUE, CAP_LIGHT_SATURATION))
        return capabilities

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            code, value = data_point.code, data_point.value
            if code == "work_mode":
                self._work_mode = value
            elif code in SWITCH_LED_CODES:
                self._switch_code = code
                writes[CAP_ONOFF] = bool(value)
            elif code in BRIGHT_CODES:
                self._bright_code = code
                writes[CAP_DIM] = raw_to_fraction(_number(value), self._ranges.bright)
            elif code in TEMP_CODES:
                self._temp_code = code
                fraction = raw_to_fraction(_number(value), self._ranges.temp)
                writes[CAP_LIGHT_TEMPERATURE] = (100 - round(fraction * 100)) / 100
            elif code in COLOUR_CODES:
                self._colour_code = code
                colour = decode_colour(value)
                writes[CAP_DIM] = raw_to_fraction(colour["v"], self._ranges.bright)
                writes[CAP_LIGHT_HUE] = hue_to_fraction(colour["h"])
                writes[CAP_LIGHT_SATURATION] = raw_to_fraction(
                    colour["s"], self._ranges.saturation
                )
                writes[CAP_LIGHT_MODE] = "color"
        return writes

    def _white_mode(self) -> bool:
        return self._work_mode is None or self._work_mode in WHITE_WORK_MODES

    def _current(self, changes: Mapping[str, Any], capability: str) -> float:
        value = changes.get(capability)
        if value is None:
            value = self._store.get_value(capability)
        return _number(value)

    def _encode_colour(self, changes: Mapping[str, Any]) -> dict[str, int]:
        return {
            "h": fraction_to_hue(self._current(changes, CAP_LIGHT_HUE)),
            "s": fraction_to_raw(
                self._current(changes, CAP_LIGHT_SATURATION), self._ranges.saturation
            ),
            "v": fraction_to_raw(self._current(changes, CAP_DIM), self._ranges.bright),
        }

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        commands: dict[str, TuyaCommand] = {}

        if changes.get(CAP_ONOFF) is not None:
            commands[self._switch_code] = TuyaCommand(
                code=self._switch_code, value=bool(changes[CAP_ONOFF])
            )

        if changes.get(CAP_LIGHT_TEMPERATURE) is not None:
            code = self._temp_code or TEMP_CODES[0]
            warmth = 1 - _number(changes[CAP_LIGHT_TEMPERATURE])
            commands[code] = TuyaCommand(
                code=code, value=fraction_to_raw(warmth, self._ranges.temp)
            )

        colour_changed = (
            changes.get(CAP_LIGHT_HUE) is not None
            or changes.get(CAP_LIGHT_SATURATION) is not None
        )
        if changes.get(CAP_DIM) is not None:
            if self._white_mode() and self._bright_code:
                commands[self._bright_code] = TuyaCommand(
                    code=self._bright_code,
                    value=fraction_to_raw(_number(changes[CAP_DIM]), self._ranges.bright),
                )
            else:
                colour_changed = True

        if colour_changed:
            code = self._colour_code or COLOUR_CODES[0]
            commands[code] = TuyaCommand(code=code, value=self._encode_colour(changes))

        return list(commands.values())


class ThermostatTranslator:
    """Thermostats reporting scaled integer temperatures."""

    device_class = DEVICE_CLASS_THERMOSTAT
    implies_online = False
    debounced = True
    momentary: Mapping[str, float] = {}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store
        scale = (options or {}).get(CONF_SCALE)
        self.scale = DEFAULT_THERMOSTAT_SCALE if scale is None else int(scale)

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        return {CAP_ONOFF, CAP_TARGET_TEMPERATURE, CAP_MEASURE_TEMPERATURE}

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            match data_point.code:
                case "switch":
                    writes[CAP_ONOFF] = bool(data_point.value)
                case "temp_set":
                    writes[CAP_TARGET_TEMPERATURE] = scaled_to_display(
                        _number(data_point.value), self.scale
                    )
                case "temp_current":
                    writes[CAP_MEASURE_TEMPERATURE] = scaled_to_display(
                        _number(data_point.value), self.scale
                    )
                case "battery_percentage":
                    writes[CAP_MEASURE_BATTERY] = _number(data_point.value)
                case "battery_state":
                    level = str(data_point.value or "").lower()
                    writes[CAP_MEASURE_BATTERY] = BATTERY_STATE_LEVELS.get(level, 0)
        return writes

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        commands: list[TuyaCommand] = []
        if changes.get(CAP_TARGET_TEMPERATURE) is not None:
            commands.append(
                TuyaCommand(
                    code="temp_set",
                    value=display_to_scaled(
                        _number(changes[CAP_TARGET_TEMPERATURE]), self.scale
                    ),
                )
            )
        if changes.get(CAP_ONOFF) is not None:
            commands.append(TuyaCommand(code="switch", value=bool(changes[CAP_ONOFF])))
        return commands


class DehumidifierTranslator:
    """Dehumidifiers with an enumerated humidity set point."""

    device_class = DEVICE_CLASS_DEHUMIDIFIER
    implies_online = False
    debounced = True
    momentary: Mapping[str, float] = {}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store
        self._enum_as_text = False

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        return {CAP_ONOFF, CAP_TARGET_HUMIDITY}

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            if data_point.code == "switch":
                writes[CAP_ONOFF] = bool(data_point.value)
            elif data_point.code == "dehumidify_set_enum":
                # Enum DPs arrive as text on some firmware
                self._enum_as_text = isinstance(data_point.value, str)
                writes[CAP_TARGET_HUMIDITY] = _number(data_point.value)
        return writes

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        commands: list[TuyaCommand] = []
        if changes.get(CAP_TARGET_HUMIDITY) is not None:
            humidity = round(_number(changes[CAP_TARGET_HUMIDITY]))
            value = str(humidity) if self._enum_as_text else humidity
            commands.append(TuyaCommand(code="dehumidify_set_enum", value=value))
        if changes.get(CAP_ONOFF) is not None:
            commands.append(TuyaCommand(code="switch", value=bool(changes[CAP_ONOFF])))
        return commands


class FeederTranslator:
    """Pet feeders with a manual feed button and portion selector."""

    device_class = DEVICE_CLASS_FEEDER
    implies_online = True
    debounced = False
    momentary: Mapping[str, float] = {CAP_FEED_NOW: FEED_NOW_RESET_DELAY}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store
        self.portions = DEFAULT_FEED_PORTIONS

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        return {
            CAP_FEED_NOW,
            CAP_FEEDING_STATE,
            CAP_MEASURE_FEED_PORTIONS,
            CAP_MANUAL_FEED_ACTION,
            CAP_TEXT_LAST_FEED_TIME,
            CAP_ALARM_FEEDING,
        }

    @staticmethod
    def _last_feed_time() -> str:
        return dt_util.now().strftime("%Y-%m-%d %H:%M:%S")

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            match data_point.code:
                case "feed_state":
                    feeding = data_point.value == "feeding"
                    writes[CAP_FEEDING_STATE] = data_point.value
                    writes[CAP_ALARM_FEEDING] = feeding
                    writes[CAP_FEED_NOW] = feeding
                    if feeding:
                        writes[CAP_TEXT_LAST_FEED_TIME] = self._last_feed_time()
                case "feed_report":
                    writes[CAP_MEASURE_FEED_PORTIONS] = _number(data_point.value)
                    writes[CAP_TEXT_LAST_FEED_TIME] = self._last_feed_time()
                case "meal_plan":
                    _LOGGER.debug("Feeder meal_plan (raw): %s", data_point.value)
        return writes

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        if changes.get(CAP_MANUAL_FEED_ACTION) is not None:
            portions = int(_number(changes[CAP_MANUAL_FEED_ACTION]))
            if FEED_PORTIONS_MIN <= portions <= FEED_PORTIONS_MAX:
                self.portions = portions
            else:
                _LOGGER.warning(
                    "Invalid feed portion %s, defaulting to %d",
                    portions,
                    DEFAULT_FEED_PORTIONS,
                )
                self.portions = DEFAULT_FEED_PORTIONS

        if changes.get(CAP_FEED_NOW):
            return [TuyaCommand(code="manual_feed", value=self.portions)]
        return []


class ChargerTranslator:
    """Parkside battery chargers."""

    device_class = DEVICE_CLASS_CHARGER
    implies_online = True
    debounced = False
    momentary: Mapping[str, float] = {}

    def __init__(
        self, store: CapabilityStore, options: Mapping[str, Any] | None = None
    ) -> None:
        self._store = store

    def configure(self, record: TuyaDeviceRecord) -> set[str]:
        return {
            CAP_MEASURE_BATTERY,
            CAP_BATTERY_CHARGING,
            CAP_MEASURE_CHARGE_CURRENT,
            CAP_MEASURE_CHARGE_VOLTAGE,
            CAP_STORAGE_BUTTON,
            CAP_MEASURE_TEMPERATURE,
            CAP_ONOFF,
        }

    def apply_inbound(self, status: tuple[DataPoint, ...]) -> dict[str, Any]:
        writes: dict[str, Any] = {}
        for data_point in status:
            code, value = data_point.code, data_point.value
            match code:
                case "charge_switch":
                    writes[CAP_ONOFF] = bool(value)
                case "battery_percentage":
                    writes[CAP_MEASURE_BATTERY] = _number(value)
                case "charge_current":
                    milliamps = _number(value)
                    writes[CAP_MEASURE_CHARGE_CURRENT] = milliamps
                    writes[CAP_BATTERY_CHARGING] = milliamps > 0
                case "charge_voltage":
                    writes[CAP_MEASURE_CHARGE_VOLTAGE] = scaled_to_display(_number(value), 3)
                case "temp_current":
                    temperature = _number(value)
                    # 0 means the charger has no reading yet
                    if temperature == 0:
                        _LOGGER.debug("measure_temperature update skipped, reported 0")
                        continue
                    writes[CAP_MEASURE_TEMPERATURE] = temperature
                case "storage_switch":
                    writes[CAP_STORAGE_BUTTON] = bool(value)
                case _:
                    _LOGGER.debug("Unhandled charger code %s: %s", code, value)
        return writes

    def build_outbound(self, changes: Mapping[str, Any]) -> list[TuyaCommand]:
        commands: list[TuyaCommand] = []
        if changes.get(CAP_ONOFF) is not None:
            commands.append(TuyaCommand(code="charge_switch", value=bool(changes[CAP_ONOFF])))
        if changes.get(CAP_STORAGE_BUTTON) is not None:
            commands.append(
                TuyaCommand(code="storage_switch", value=bool(changes[CAP_STORAGE_BUTTON]))
            )
        return commands


TRANSLATORS: dict[str, type[CapabilityTranslator]] = {
    DEVICE_CLASS_SOCKET: SocketTranslator,
    DEVICE_CLASS_LIGHT: LightTranslator,
    DEVICE_CLASS_THERMOSTAT: ThermostatTranslator,
    DEVICE_CLASS_DEHUMIDIFIER: DehumidifierTranslator,
    DEVICE_CLASS_FEEDER: FeederTranslator,
    DEVICE_CLASS_CHARGER: ChargerTranslator,
}


def resolve_device_class(record: TuyaDeviceRecord) -> str | None:
    """Return the device class of a record, by category then device type."""
    return CATEGORY_DEVICE_CLASS.get(record.category) or DEVICE_TYPE_DEVICE_CLASS.get(
        record.device_type
    )


def create_translator(
    device_class: str,
    store: CapabilityStore,
    options: Mapping[str, Any] | None = None,
) -> CapabilityTranslator:
    """Create the translator variant for a device class.

    Raises:
        KeyError: If the device class is not supported.

    """
    return TRANSLATORS[device_class](store, options)
