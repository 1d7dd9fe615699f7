import math
import re

from bson import ObjectId

USERNAME_RE = re.compile(r"[A-Za-z0-9._-]+")
USERNAME_MAX = 64
PASSWORD_MIN = 8
PASSWORD_MAX = 256

# BSON integers are 8 bytes; anything wider has to be stored as a double
INT64_MAX = 2 ** 63 - 1
INT64_MIN = -(2 ** 63)


def is_valid_username(value) -> bool:
    return (
        isinstance(value, str)
        and 1 <= len(value) <= USERNAME_MAX
        and USERNAME_RE.fullmatch(value) is not None
    )


def is_valid_password(value) -> bool:
    return isinstance(value, str) and PASSWORD_MIN <= len(value) <= PASSWORD_MAX


def is_valid_object_id(value) -> bool:
    # bson also accepts raw 12-byte values; path ids must be the 24-char hex form
    return isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)


def clamp_int64(value: int) -> int:
    return max(INT64_MIN, min(INT64_MAX, value))


def to_number_or_zero(value):
    """Coerce a loosely typed counter to a finite, non-negative number.

    Anything that does not parse as such (None, garbage strings, lists,
    negatives, inf, nan) becomes 0. Integral results are returned as int
    when they fit in 64 bits and as float otherwise.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        if value < 0:
            return 0
        if value <= INT64_MAX:
            return value
        try:
            number = float(value)
        except OverflowError:
            return 0
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        # float() also takes "1_000", which is not a number on the wire
        if not text or "_" in text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
    else:
        return 0

    if not math.isfinite(number) or number < 0:
        return 0
    if number.is_integer() and number <= INT64_MAX:
        return int(number)
    return number
