"""
LanWatch Configuration Module

Contains all configuration constants and default values for the application.
"""

import os
from pathlib import Path
from typing import List

# Project Paths
PROJECT_ROOT = Path(__file__).parent
LOGS_DIR = PROJECT_ROOT / "logs"

# Ensure directories exist
LOGS_DIR.mkdir(exist_ok=True)

APP_NAME = "LanWatch"
APP_VERSION = "1.0.0"

# Web Server Configuration
DEFAULT_WEB_PORT = 3000
DEFAULT_HOST = "127.0.0.1"

# Sweep Configuration
SWEEP_FIRST_HOST = 1
SWEEP_LAST_HOST = 254
SWEEP_PREFIX_LENGTH = 24
DEFAULT_PROBE_TIMEOUT = 1.0  # seconds, per-address reachability check
DEFAULT_HOSTNAME_TIMEOUT = 2.0  # seconds, reverse lookup
DEFAULT_ARP_TIMEOUT = 1.0  # seconds, layer-2 who-has when the ARP cache misses
UNKNOWN_LINK_ADDRESS = "Unknown"
DEFAULT_RESOLVER_WORKERS = SWEEP_LAST_HOST  # one name/ARP lookup thread per sweepable host

# Liveness Reconciliation
DEFAULT_RECHECK_INTERVAL = 30  # seconds
DEFAULT_RECHECK_TIMEOUT = 1.0  # seconds

# On-demand Ping
DEFAULT_PING_COUNT = 4
DEFAULT_PING_TIMEOUT = 2  # seconds per packet

# Change Notification
DEFAULT_SUBSCRIBER_QUEUE_SIZE = 100

# Event kinds pushed to subscribers
EVENT_INITIAL = "initial"
EVENT_SCAN_COMPLETE = "scan-complete"
EVENT_STATUS_CHANGE = "status-change"

# Device status values
STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"

# Logging Configuration
LOG_FILE = LOGS_DIR / "lanwatch.log"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# Environment Variable Overrides
def get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with fallback to default."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default

def get_env_float(key: str, default: float) -> float:
    """Get float from environment variable with fallback to default."""
    try:
        return float(os.getenv(key, default))
    except (ValueError, TypeError):
        return default

def get_env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable with fallback to default."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")

def get_env_str(key: str, default: str) -> str:
    """Get string from environment variable with fallback to default."""
    value = os.getenv(key)
    return value.strip() if value else default

def get_env_list(key: str, default: List[str]) -> List[str]:
    """Get list from comma-separated environment variable."""
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]

# Apply environment overrides
WEB_HOST = get_env_str("LANWATCH_HOST", DEFAULT_HOST)
WEB_PORT = get_env_int("LANWATCH_PORT", DEFAULT_WEB_PORT)
INTERFACE = get_env_str("LANWATCH_INTERFACE", "")
RECHECK_INTERVAL = get_env_int("LANWATCH_RECHECK_INTERVAL", DEFAULT_RECHECK_INTERVAL)
PROBE_TIMEOUT = get_env_float("LANWATCH_PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT)
RECHECK_TIMEOUT = get_env_float("LANWATCH_RECHECK_TIMEOUT", DEFAULT_RECHECK_TIMEOUT)
HOSTNAME_TIMEOUT = get_env_float("LANWATCH_HOSTNAME_TIMEOUT", DEFAULT_HOSTNAME_TIMEOUT)
RESOLVER_WORKERS = get_env_int("LANWATCH_RESOLVER_WORKERS", DEFAULT_RESOLVER_WORKERS)
PING_COUNT = get_env_int("LANWATCH_PING_COUNT", DEFAULT_PING_COUNT)
PING_TIMEOUT = get_env_int("LANWATCH_PING_TIMEOUT", DEFAULT_PING_TIMEOUT)
FORCE_SLASH24 = get_env_bool("LANWATCH_FORCE_SLASH24", False)
ENABLE_VENDOR_LOOKUP = get_env_bool("LANWATCH_VENDOR_LOOKUP", True)
SUBSCRIBER_QUEUE_SIZE = get_env_int("LANWATCH_SUBSCRIBER_QUEUE", DEFAULT_SUBSCRIBER_QUEUE_SIZE)
DEBUG_MODE = get_env_bool("LANWATCH_DEBUG", False)
ALLOWED_ORIGINS = get_env_list("LANWATCH_ALLOWED_ORIGINS", ["*"])
