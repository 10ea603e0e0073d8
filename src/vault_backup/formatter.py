"""Commit message and date rendering.

Everything here is a pure function of its arguments so the output can be
checked without a repository or a clock.
"""

import datetime
import re
from collections.abc import Callable

NUM_FILES_PLACEHOLDER = "{{numFiles}}"
DATE_PLACEHOLDER = "{{date}}"

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
DAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

# Longest tokens first so "YYYY" wins over "YY" and "MMMM" over "MM".
_TOKEN_RE = re.compile(
    r"\[[^\]]*\]|YYYY|YY|MMMM|MMM|MM|M|Do|DD|D|dddd|ddd|HH|H|hh|h|mm|m|ss|s|A|a"
)


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


_RENDERERS: dict[str, Callable[[datetime.datetime], str]] = {
    "YYYY": lambda dt: f"{dt.year:04d}",
    "YY": lambda dt: f"{dt.year % 100:02d}",
    "MMMM": lambda dt: MONTH_NAMES[dt.month - 1],
    "MMM": lambda dt: MONTH_NAMES[dt.month - 1][:3],
    "MM": lambda dt: f"{dt.month:02d}",
    "M": lambda dt: str(dt.month),
    "Do": lambda dt: _ordinal(dt.day),
    "DD": lambda dt: f"{dt.day:02d}",
    "D": lambda dt: str(dt.day),
    "dddd": lambda dt: DAY_NAMES[dt.weekday()],
    "ddd": lambda dt: DAY_NAMES[dt.weekday()][:3],
    "HH": lambda dt: f"{dt.hour:02d}",
    "H": lambda dt: str(dt.hour),
    "hh": lambda dt: f"{dt.hour % 12 or 12:02d}",
    "h": lambda dt: str(dt.hour % 12 or 12),
    "mm": lambda dt: f"{dt.minute:02d}",
    "m": lambda dt: str(dt.minute),
    "ss": lambda dt: f"{dt.second:02d}",
    "s": lambda dt: str(dt.second),
    "A": lambda dt: "AM" if dt.hour < 12 else "PM",
    "a": lambda dt: "am" if dt.hour < 12 else "pm",
}


def _render_token(token: str, dt: datetime.datetime) -> str:
    renderer = _RENDERERS.get(token)
    if renderer is None:
        # [escaped literal]
        return token[1:-1]
    return renderer(dt)


def format_date(dt: datetime.datetime, date_format: str) -> str:
    """Renders a timestamp with a moment-style format string.

    Supported tokens: YYYY YY MMMM MMM MM M Do DD D dddd ddd HH H hh h mm m ss s A a.
    Text in square brackets is copied verbatim, as is anything that is not a token.

    Args:
        dt (datetime.datetime): The timestamp to render.
        date_format (str): The format, e.g. 'YYYY-MM-DD HH:mm:ss'.

    Returns:
        str: The rendered date.
    """
    return _TOKEN_RE.sub(lambda m: _render_token(m.group(0), dt), date_format)


def format_commit_message(
    template: str,
    now: datetime.datetime,
    date_format: str,
    num_files: int | None = None,
) -> str:
    """Renders a commit message template.

    Each placeholder is replaced at its first occurrence only. `{{numFiles}}` is
    left untouched when no count is given; unknown placeholders always pass through.

    Args:
        template (str): The template, e.g. 'vault backup: {{date}}'.
        now (datetime.datetime): The timestamp substituted for `{{date}}`.
        date_format (str): The moment-style format used for `{{date}}`.
        num_files (int | None, optional): The changed-file count. Defaults to None.

    Returns:
        str: The commit message.
    """
    message = template
    if num_files is not None and NUM_FILES_PLACEHOLDER in message:
        message = message.replace(NUM_FILES_PLACEHOLDER, str(num_files), 1)
    if DATE_PLACEHOLDER in message:
        message = message.replace(DATE_PLACEHOLDER, format_date(now, date_format), 1)
    return message


def needs_file_count(template: str) -> bool:
    """Whether rendering the template requires a changed-file count."""
    return NUM_FILES_PLACEHOLDER in template


def from_now(then: float, now: float) -> str:
    """Describes how long ago a timestamp was, e.g. '5 minutes ago'.

    Args:
        then (float): The past Unix timestamp.
        now (float): The current Unix timestamp.

    Returns:
        str: A human-readable relative time.
    """
    seconds = max(0.0, now - then)
    minutes = round(seconds / 60)
    hours = round(seconds / 3600)
    days = round(seconds / 86400)

    if seconds < 45:
        return "a few seconds ago"
    if seconds < 90:
        return "a minute ago"
    if minutes < 45:
        return f"{minutes} minutes ago"
    if minutes < 90:
        return "an hour ago"
    if hours < 22:
        return f"{hours} hours ago"
    if hours < 36:
        return "a day ago"
    if days < 26:
        return f"{days} days ago"
    if days < 45:
        return "a month ago"
    if days < 320:
        return f"{round(days / 30.4)} months ago"
    if days < 548:
        return "a year ago"
    return f"{round(days / 365)} years ago"
