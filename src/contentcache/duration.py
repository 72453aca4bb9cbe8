"""TTL parsing for configuration values.

Accepts milliseconds as an int, or a string of one or more ``<n><unit>``
parts: ``"300ms"``, ``"5m"``, ``"1h30m"``. Units: ms, s, m, h, d.
"""

import re

from contentcache.types import Duration

_PART = re.compile(r"(\d+)(ms|s|m|h|d)")
_UNIT_MS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> int:
    """Return the duration in milliseconds."""
    # bool is an int subclass; True is never a meaningful TTL
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")
    if isinstance(duration, int):
        if duration < 0:
            raise ValueError(f"Duration must not be negative: {duration!r}")
        return duration

    text = duration.strip().lower()
    parts = _PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"Invalid duration: {duration!r}")

    units = [u for _, u in parts]
    if len(set(units)) != len(units):
        raise ValueError(f"Invalid duration (repeated unit): {duration!r}")
    return sum(int(n) * _UNIT_MS[u] for n, u in parts)


def to_seconds(duration: Duration) -> int:
    """Whole seconds, rounded up and at least 1 (KV ``EX`` rejects 0)."""
    ms = parse_duration(duration)
    return max(1, -(-ms // 1000))
