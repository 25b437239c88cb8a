"""Log levels and the level filter."""

from enum import IntEnum


class Level(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_ALIASES = {"WARNING": Level.WARN}


def parse_level(value) -> Level:
    """Coerce a Level, ordinal, or case-insensitive level name into a Level."""
    if isinstance(value, Level):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Level(value)
    if isinstance(value, str):
        name = value.strip().upper()
        if name in _ALIASES:
            return _ALIASES[name]
        try:
            return Level[name]
        except KeyError:
            pass
    raise ValueError(f"Unknown log level: {value!r}")


def should_log(requested: Level, threshold: Level) -> bool:
    """Accept iff the requested level is at or above the threshold."""
    return int(requested) >= int(threshold)
