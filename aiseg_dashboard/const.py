"""Constants for the AiSEG2 dashboard.

This module contains all the constants used throughout the dashboard,
including appliance endpoints, cache lifetimes and the static device
topology of the installation.
"""

from .models import DeviceDescriptor, EnefarmDescriptor

DEFAULT_BASE_URL = "http://192.168.0.216"
DEFAULT_USERNAME = "aiseg"
DEFAULT_PASSWORD = "0123456789"
DEFAULT_REALM = "AiSEG"
DEFAULT_TIMEOUT = 10.0

# Upstream endpoints
PATH_REALTIME = "/data/electricflow/111/update"
PATH_GRAPH_PAGE = "/page/graph/{page_id}"
PATH_CIRCUIT_LIST = "/page/setting/installation/734"
PATH_CIRCUIT_KWH = "/page/graph/584?data={data}"
PATH_DEVICE_PAGE = "/page/devices/device/32"
PATH_AC_GROUP = "/data/devices/device/321/auto_update"
PATH_FH_GROUP = "/data/devices/device/32b/auto_update"
PATH_ALL_GROUP = "/data/devices/device/32/auto_update"
PATH_AC_DETAIL = "/data/devices/device/3211/update"
PATH_AC_SETTING = "/action/devices/device/3211/change"
PATH_AC_CHANGE = "/action/devices/device/321/change"
PATH_FH_CHANGE = "/action/devices/device/32b/change"
PATH_BATH_TOGGLE = "/action/devices/device/301"
PATH_GENERATE_TOGGLE = "/action/devices/device/32/ctrl_lanEnefirm_generate"

TOTALS_PAGES = {
    "solar": 51111,
    "consumption": 52111,
    "purchase": 53111,
    "sold": 54111,
}

CIRCUIT_LIST_MARKER = "arrayCircuitNameList"
CIRCUIT_ENABLED_BUTTON_TYPE = "1"
CIRCUIT_KWH_CONCURRENCY = 10

TOKEN_MAX_AGE = 3600
DEFAULT_SESSION_TOKEN = "32140"

AC_DEVICE_TYPE = "0x33"
FH_DEVICE_TYPE = "0x34"
STATE_RUNNING = "0x30"
AC_FAN_ITEM_ID = "s_img_ac"
FH_LEVEL_MIN = 1
FH_LEVEL_MAX = 9

# Cache lifetimes in seconds; the circuit identity list never expires
CATEGORY_REALTIME = "realtime"
CATEGORY_TOTALS = "totals"
CATEGORY_CIRCUITS = "circuits"
CATEGORY_DEVICES = "devices"

CACHE_TTLS = {
    CATEGORY_REALTIME: 5.0,
    CATEGORY_TOTALS: 60.0,
    CATEGORY_CIRCUITS: 300.0,
    CATEGORY_DEVICES: 10.0,
}

PUSH_CATEGORIES = (CATEGORY_REALTIME, CATEGORY_TOTALS, CATEGORY_DEVICES)
SNAPSHOT_ORDER = (
    CATEGORY_REALTIME,
    CATEGORY_TOTALS,
    CATEGORY_CIRCUITS,
    CATEGORY_DEVICES,
)

CONTROL_SETTLE_DELAY = 2.5

MESSAGE_TYPE_ERROR = "error"
WS_ACTION_LOAD_CIRCUITS = "loadCircuits"

AC_DEVICES = (
    DeviceDescriptor("1073741827", "0x013001", AC_DEVICE_TYPE, "エアコンA"),
    DeviceDescriptor("1073741828", "0x013001", AC_DEVICE_TYPE, "エアコンB"),
    DeviceDescriptor("1073741829", "0x013001", AC_DEVICE_TYPE, "エアコンC"),
)

FH_DEVICES = (
    DeviceDescriptor("1073741826", "0x0f7001", FH_DEVICE_TYPE, "床暖房A"),
    DeviceDescriptor("1073741826", "0x0f7002", FH_DEVICE_TYPE, "床暖房B"),
)

ENEFARM = EnefarmDescriptor(
    unit=DeviceDescriptor("1073741826", "0x027c01", "0x32", "エネファーム"),
    bath=DeviceDescriptor("1073741826", "0x027201", "0x37", "ふろ"),
    bath_command="0x41",
    generate_command="0x42",
)

# Group auto_update order must match the appliance's group page
ALL_DEVICES = (*AC_DEVICES, ENEFARM.unit, *FH_DEVICES, ENEFARM.bath)

DEFAULT_BATH_BUTTON = "ふろ自動"
EMPTY_LABEL = "—"
