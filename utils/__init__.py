"""
Utilities Package for UptimeKit

Logging setup, time/text helpers and input validators shared by every
other package.
"""

from utils.logger import setup_logging, get_logger, log_execution_time
from utils.helpers import TimeHelper, Stopwatch, StringHelper
from utils.validators import URLValidator, MonitorValidator

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "log_execution_time",

    # Helpers
    "TimeHelper",
    "Stopwatch",
    "StringHelper",

    # Validators
    "URLValidator",
    "MonitorValidator",
]
