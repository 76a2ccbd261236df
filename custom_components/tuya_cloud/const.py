"""Constants for the Tuya Cloud integration.

This module contains all the constants used throughout the integration,
including API endpoints, timing parameters, configuration keys and the
device class lookup tables.
"""

from datetime import timedelta

DOMAIN = "tuya_cloud"

BASE_URL_TEMPLATE = "https://px1.tuya{region}.com/homeassistant"
DEFAULT_REGION = "eu"
USER_AGENT = "TuyaCloudBridge/1.0"

REGION_CN = "cn"
REGION_EU = "eu"
REGION_US = "us"
TOKEN_REGION_PREFIXES = {
    "AY": REGION_CN,
    "EU": REGION_EU,
}

AUTH_FROM = "tuya"
AUTH_GUARD_INTERVAL = 65  # seconds between authentication attempts
TOKEN_REFRESH_MARGIN = 60  # re-authenticate this many seconds before expiry
TRANSIENT_AUTH_ERROR_PREFIX = "you cannot auth exceed once"

RESYNC_INTERVAL = timedelta(seconds=905)
CAPABILITIES_SET_DEBOUNCE = 1.0  # seconds

NAMESPACE_DISCOVERY = "discovery"
NAMESPACE_CONTROL = "control"
ACTION_DISCOVERY = "Discovery"
ACTION_COMMANDS = "commands"
PAYLOAD_VERSION = 1
RESPONSE_CODE_SUCCESS = "SUCCESS"

CONF_COUNTRY_CODE = "country_code"
CONF_BIZ_TYPE = "biz_type"
CONF_SCALE = "scale"
CONF_INITIAL_METER_POWER = "initial_meter_power"

DEVICE_CLASS_SOCKET = "socket"
DEVICE_CLASS_LIGHT = "light"
DEVICE_CLASS_THERMOSTAT = "thermostat"
DEVICE_CLASS_DEHUMIDIFIER = "dehumidifier"
DEVICE_CLASS_FEEDER = "feeder"
DEVICE_CLASS_CHARGER = "parksidecharger"

# Tuya category tags
CATEGORY_DEVICE_CLASS = {
    "cz": DEVICE_CLASS_SOCKET,
    "pc": DEVICE_CLASS_SOCKET,
    "kg": DEVICE_CLASS_SOCKET,
    "dj": DEVICE_CLASS_LIGHT,
    "dc": DEVICE_CLASS_LIGHT,
    "dd": DEVICE_CLASS_LIGHT,
    "xdd": DEVICE_CLASS_LIGHT,
    "fwd": DEVICE_CLASS_LIGHT,
    "wk": DEVICE_CLASS_THERMOSTAT,
    "cs": DEVICE_CLASS_DEHUMIDIFIER,
    "cwwsq": DEVICE_CLASS_FEEDER,
}

# Device types reported by the skill API
DEVICE_TYPE_DEVICE_CLASS = {
    "switch": DEVICE_CLASS_SOCKET,
    "light": DEVICE_CLASS_LIGHT,
    "climate": DEVICE_CLASS_THERMOSTAT,
    "dehumidifier": DEVICE_CLASS_DEHUMIDIFIER,
    "feeder": DEVICE_CLASS_FEEDER,
    "parksidecharger": DEVICE_CLASS_CHARGER,
}

# Light categories using the 8 bit (0-255) DP ranges
LIGHT_CATEGORIES_8BIT = ("dj", "dc")

DEFAULT_THERMOSTAT_SCALE = 1

FEED_PORTIONS_MIN = 1
FEED_PORTIONS_MAX = 12
DEFAULT_FEED_PORTIONS = 1
FEED_NOW_RESET_DELAY = 2.0  # seconds until feed_now springs back

BATTERY_STATE_LEVELS = {
    "low": 10,
    "middle": 50,
    "high": 100,
}

CAP_ONOFF = "onoff"
CAP_DIM = "dim"
CAP_LIGHT_HUE = "light_hue"
CAP_LIGHT_SATURATION = "light_saturation"
CAP_LIGHT_TEMPERATURE = "light_temperature"
CAP_LIGHT_MODE = "light_mode"
CAP_ALARM_DEVICE_OFFLINE = "alarm_device_offline"
CAP_MEASURE_POWER = "measure_power"
CAP_MEASURE_VOLTAGE = "measure_voltage"
CAP_MEASURE_CURRENT = "measure_current"
CAP_METER_POWER = "meter_power"
CAP_TARGET_TEMPERATURE = "target_temperature"
CAP_MEASURE_TEMPERATURE = "measure_temperature"
CAP_MEASURE_BATTERY = "measure_battery"
CAP_TARGET_HUMIDITY = "target_humidity"
CAP_FEED_NOW = "feed_now"
CAP_FEEDING_STATE = "feeding_state"
CAP_ALARM_FEEDING = "alarm_feeding"
CAP_MEASURE_FEED_PORTIONS = "measure_feed_portions"
CAP_MANUAL_FEED_ACTION = "manual_feed_action"
CAP_TEXT_LAST_FEED_TIME = "text_last_feed_time"
CAP_BATTERY_CHARGING = "battery_charging"
CAP_MEASURE_CHARGE_CURRENT = "measure_charge_current"
CAP_MEASURE_CHARGE_VOLTAGE = "measure_charge_voltage"
CAP_STORAGE_BUTTON = "storage_button"
