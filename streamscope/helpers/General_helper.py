############################################################################################################################################
# General Support Functions
#
#  parse_float, is_number
#  Formatting: format_bytes, format_hex, format_time
#  Time: now_ms, integer milliseconds since epoch
#  Logging: setup_logger, log_prefix
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import logging
import re
import time
from math import isfinite
from datetime import datetime, timezone
#
from streamscope.config import DEBUG_LEVEL, LOG_FORMAT, EXPORT_TIME_FORMAT
#

# ==============================================================================
# General Helper Functions
# ==============================================================================

# Leading number of a token, the remainder of the token is ignored: "25.5C" -> 25.5
LEADING_FLOAT_RE = re.compile(
    r'\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)'
)

def parse_float(token):
    """
    Parse the leading number of a token.

    Device consoles print values with units or trailing punctuation, "25.5C" or "12," are
    accepted the way a lenient console parser does. Returns None if the token does not start
    with a number or the number is not finite.
    """
    if token is None:
        return None
    match = LEADING_FLOAT_RE.match(token)
    if match is None:
        return None
    value = float(match.group(1))
    if not isfinite(value):
        return None
    return value

def is_number(value) -> bool:
    """
    True for int and float values that are finite, bool is not a number here.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        try:
            return isfinite(value)
        except OverflowError:                                                  # int beyond float range
            return False
    return False

# ==============================================================================
# Formatting
# ==============================================================================

def format_bytes(num_bytes: int) -> str:
    """
    Human readable byte count: 0 B, 512 B, 1.5 KB, 2.25 MB
    """
    if num_bytes <= 0:
        return "0 B"
    sizes = ("B", "KB", "MB", "GB")
    value = float(num_bytes)
    for unit in sizes:
        if value < 1024 or unit == sizes[-1]:
            break
        value /= 1024
    return f"{round(value, 2):g} {unit}"

def format_hex(data, fallback_text: str = "", encoding: str = "utf-8") -> str:
    """
    Hex view of raw bytes: "48 65 6C 6C 6F".
    If no raw bytes are available the text is encoded instead.
    """
    if not data:
        data = fallback_text.encode(encoding, errors="replace")
    return " ".join(f"{byte:02X}" for byte in data)

def now_ms() -> int:
    ''' Wall clock in whole milliseconds, the resolution of the exported time stamps '''
    return int(time.time() * 1000)

def format_time(timestamp_ms: float, with_date: bool = True) -> str:
    """
    UTC time stamp with millisecond resolution.
    with_date=True  -> 2025-01-31T12:00:01.123
    with_date=False -> 12:00:01.123
    """
    ts = int(timestamp_ms)
    dt = datetime.fromtimestamp(ts // 1000, tz=timezone.utc)
    ms = ts % 1000
    if with_date:
        return f"{dt.strftime(EXPORT_TIME_FORMAT)}.{ms:03d}"
    return f"{dt.strftime('%H:%M:%S')}.{ms:03d}"

def parse_time(text: str) -> int:
    """
    Inverse of format_time(with_date=True), returns milliseconds since epoch
    """
    base, _, ms = text.partition(".")
    dt = datetime.strptime(base, EXPORT_TIME_FORMAT).replace(tzinfo=timezone.utc)
    return int(dt.timestamp()) * 1000 + (int(ms) if ms else 0)

# ==============================================================================
# Logging
# ==============================================================================

def setup_logger(name: str, level: int = DEBUG_LEVEL, logger: logging.Logger = None) -> logging.Logger:
    """
    Return the logger to use for an instance.

    If a logger is handed in it is used as is, otherwise a logger named after the instance
    (first 10 characters) is created with its own stream handler.
    """
    if logger is not None:
        return logger
    logger = logging.getLogger(name[:10])
    logger.setLevel(level)
    if not logger.handlers:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(sh)
    logger.propagate = False
    return logger

def log_prefix(instance_name: str) -> str:
    """ Fixed width prefix used in all log messages: [Name           ]: """
    return f"[{instance_name[:15]:<15}]:"
