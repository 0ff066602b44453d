import datetime
import re

# Strict calendar date, no time part: 2025-02-28
DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_only(value):
    """Return a date for a real YYYY-MM-DD string, None for anything else"""
    if not isinstance(value, str) or not DATE_ONLY_RE.match(value):
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:  # 2025-02-30 and friends
        return None


def is_strict_int(value):
    # JSON true/false arrive as bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)


def is_non_negative_int(value):
    return is_strict_int(value) and value >= 0


def is_positive_int(value):
    return is_strict_int(value) and value >= 1


def parse_positive_int(value):
    """Parse a path/query id, return None when it is not a positive integer"""
    if is_strict_int(value):
        return value if value >= 1 else None
    if isinstance(value, str) and value.isascii() and value.isdigit():
        parsed = int(value)
        return parsed if parsed >= 1 else None
    return None
