#
import re
from typing import Any, List, Optional

INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Parse the leading integer of a query string value, "10abc" gives 10
    :param value: value to parse
    :param default: returned when the value can't be parsed or when it is 0
    :return: integer or default
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value or default
    if value is None:
        return default
    match = INT_PREFIX.match(str(value))
    if not match:
        return default
    return int(match.group(1)) or default


def parse_list(values: List[str]) -> List[str]:
    """
    Flatten repeated and comma separated query string values:
    ["a,b", "c"] => ["a", "b", "c"]
    """
    result = []
    for value in values:
        result += [item.strip() for item in str(value).split(",") if item.strip()]
    return result
