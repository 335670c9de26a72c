"""Internal constants shared across the library."""

#: Seconds between subscription batches when ``sendInterval`` is not set.
DEFAULT_SEND_INTERVAL = 60

#: Fixed broker reconnect backoff in seconds.
DEFAULT_RECONNECT_PERIOD = 60

DEFAULT_REMOTE_HOST = "mqtt://iot.example.com"

# Structured Signal K paths and the sub-fields they decompose into.
POSITION_PATH = "navigation.position"
ATTITUDE_PATH = "navigation.attitude"
COMPOSITE_FIELDS: dict[str, tuple[str, ...]] = {
    POSITION_PATH: ("latitude", "longitude"),
    ATTITUDE_PATH: ("roll", "pitch", "yaw"),
}

# ------------------------------------------------------------------
# Topic layout
# ------------------------------------------------------------------

CONTEXT_PREFIX = "vessels."
DELTA_TOPIC_SUFFIX = "/signalk/delta"
KEYS_TOPIC_SEGMENT = "/signalk/keys/"

#: Literal sent in place of an explicit null value.
NULL_VALUE = "null"

# ------------------------------------------------------------------
# Signal K host
# ------------------------------------------------------------------

SELF_CONTEXT = "vessels.self"
STREAM_PATH = "/signalk/v1/stream"
SELF_API_PATH = "/signalk/v1/api/vessels/self"
MMSI_URN_PREFIX = "urn:mrn:imo:mmsi:"

STORE_FILENAME = "outgoing.sqlite3"
