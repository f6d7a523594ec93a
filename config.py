"""
UPnP Event Proxy - Global Configuration
"""
import os


def _get_int_env(name: str, default: int) -> int:
    """Read an int from the environment, falling back to default"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """Read a float from the environment, falling back to default"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ================= Application Info =================
APP_NAME = "upnp-event-proxy"
APP_VERSION = "0.3.0"

# API version reported by GET /version.
# 1: initial, 2: locking, 3: locking replaced with random retries
API_VERSION = "3"

DEBUG = _get_bool_env("UPNP_PROXY_DEBUG", False)

# ================= Network Configuration =================
LISTEN_HOST = os.getenv("UPNP_PROXY_HOST", "0.0.0.0")
LISTEN_PORT = _get_int_env("UPNP_PROXY_PORT", 2529)
LISTEN_BACKLOG = 5

# Upper bound (seconds) on how long the loop waits for a connection before
# processing the notification queue and purging expired subscriptions
LISTEN_TIMEOUT = 10

# Maximum time (seconds) to read one request from a connected client
REQUEST_TIMEOUT = _get_float_env("UPNP_PROXY_REQUEST_TIMEOUT", 10.0)

# ================= Subscription Configuration =================
# Lifetime of a subscription that nobody has given an expiry for yet
DEFAULT_SUBSCRIPTION_TTL = 60

# ================= Notification Configuration =================
# Port of the action-invocation API on the consumer host
ACTION_PORT = 3480

# Retries after the first failed delivery, so at most 4 attempts per task
NOTIFY_RETRIES = 3

# Random delay range (seconds, inclusive) before a retry
RETRY_DELAY_MIN = 1
RETRY_DELAY_MAX = 5

# Timeout (seconds) for one outbound action call
DELIVERY_TIMEOUT = _get_float_env("UPNP_PROXY_DELIVERY_TIMEOUT", 5.0)

# The action API answers "200 OK" with this text when the target device is busy
DEVICE_NOT_READY_MARKER = "ERROR: Device not ready"
