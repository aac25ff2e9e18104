"""Parser for netfilter kernel log lines as written by syslog.

Expected shape:

    May 23 12:31:53 vyos kernel: [213370.255870] [OUTSIDE-LOCAL-default-D]IN=pppoe0 OUT= MAC= SRC=...

The kernel uptime bracket is optional and discarded. Syslog omits the year,
so the current UTC year is substituted; lines logged just before New Year
and parsed after it get the wrong year.
"""

import logging
import re
from datetime import datetime, timezone

from iptables_loki.models import ParsedLine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

_LINE_RE = re.compile(
    r'^(?P<month>.{3}) '
    r'(?P<day>.{2}) '
    r'(?P<hour>.{2}):(?P<minute>.{2}):(?P<second>.{2}) '
    r'(?P<hostname>[^ ]+) kernel: '
    r'(?:\[[0-9.]+\] ?)?+'
    r'\[(?P<rule>[^\]]+)\]'
    r'(?P<values>.*)$',
    re.DOTALL,
)

_MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}


class LineParseError(ValueError):
    """Raised internally when a line does not follow the kernel log grammar."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _two_digits(value: str, name: str) -> int:
    """Convert a fixed-width field; syslog pads single digits with a space."""
    digits = value.lstrip(" ")
    if not digits or not digits.isascii() or not digits.isdigit():
        raise LineParseError(f"{name} {value!r} is not numeric")
    return int(digits)


def parse_timestamp(month: str, day: str, hour: str, minute: str, second: str,
                    year: int | None = None) -> datetime:
    """Build a UTC datetime from the syslog date fields."""
    try:
        month_num = _MONTHS[month]
    except KeyError:
        raise LineParseError(f"unknown month {month!r}") from None

    day_num = _two_digits(day, "day")
    hour_num = _two_digits(hour, "hour")
    minute_num = _two_digits(minute, "minute")
    second_num = _two_digits(second, "second")

    if year is None:
        year = datetime.now(timezone.utc).year

    try:
        return datetime(year, month_num, day_num, hour_num, minute_num, second_num,
                        tzinfo=timezone.utc)
    except ValueError as exc:
        raise LineParseError(f"invalid date: {exc}") from exc


def parse_values(section: str) -> dict[str, str]:
    """Split ``KEY=VALUE KEY2=VALUE2`` into a dict; later keys win.

    Tokens without ``=`` (TCP flags such as ``SYN``) map to an empty value.
    """
    values: dict[str, str] = {}
    for token in section.split(" "):
        if not token:
            continue
        key, _, value = token.partition("=")
        values[key] = value
    return values


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_line_strict(line: str, year: int | None = None) -> ParsedLine:
    """Parse a kernel log line, raising LineParseError on any mismatch."""
    m = _LINE_RE.match(line)
    if not m:
        raise LineParseError("line does not match the kernel log layout")

    time = parse_timestamp(
        m.group("month"),
        m.group("day"),
        m.group("hour"),
        m.group("minute"),
        m.group("second"),
        year=year,
    )
    return ParsedLine(
        hostname=m.group("hostname"),
        time=time,
        rule=m.group("rule"),
        fields=parse_values(m.group("values")),
    )


def parse_log_line(line: str, year: int | None = None) -> ParsedLine | None:
    """Parse a single kernel log line.

    Returns None if the line is not a netfilter log entry.
    """
    try:
        return parse_line_strict(line.rstrip("\r\n"), year=year)
    except LineParseError as e:
        logger.debug("Non-matching log line (%s): %s", e, line[:200])
        return None
