"""
Utility functions for common operations across the toolkit.
"""

import datetime
from typing import Optional, Union
import pytz


def format_timestamp(timestamp: Union[int, float], timezone: Optional[str] = None) -> str:
    """
    Format a Unix timestamp as "YYYY-MM-DD HH:MM:SS TZ".

    Args:
        timestamp: Unix timestamp
        timezone: Optional timezone name (default is UTC)

    Returns:
        Formatted timestamp string
    """
    dt = datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc)

    # Convert to the specified timezone if provided
    if timezone:
        try:
            dt = dt.astimezone(pytz.timezone(timezone))
        except pytz.exceptions.UnknownTimeZoneError:
            # If timezone is invalid, keep UTC
            pass

    return dt.strftime("%Y-%m-%d %H:%M:%S %Z")


def format_age(seconds: float) -> str:
    """Format an age in seconds as a short "2d 3h 4m" string."""
    total = max(int(seconds), 0)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
