from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re
import time


NANOS_PER_SECOND = 1_000_000_000
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MIN_SECONDS = -62135596800  # 0001-01-01T00:00:00Z
MAX_SECONDS = 253402300799  # 9999-12-31T23:59:59Z

_RFC3339_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True, order=True)
class Timestamp:
    seconds: int
    nanoseconds: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.seconds, bool) or not isinstance(self.seconds, int):
            raise ValueError(f"Timestamp seconds must be integer: {self.seconds!r}")
        if isinstance(self.nanoseconds, bool) or not isinstance(self.nanoseconds, int):
            raise ValueError(f"Timestamp nanoseconds must be integer: {self.nanoseconds!r}")
        if not 0 <= self.nanoseconds < NANOS_PER_SECOND:
            raise ValueError(f"Timestamp nanoseconds out of range: {self.nanoseconds}")
        if not MIN_SECONDS <= self.seconds <= MAX_SECONDS:
            raise ValueError(f"Timestamp seconds out of range: {self.seconds}")

    @classmethod
    def now(cls) -> "Timestamp":
        seconds, nanoseconds = divmod(time.time_ns(), NANOS_PER_SECOND)
        return cls(seconds, nanoseconds)

    @classmethod
    def from_millis(cls, millis: int) -> "Timestamp":
        seconds, remainder = divmod(int(millis), 1000)
        return cls(seconds, remainder * 1_000_000)

    @classmethod
    def from_datetime(cls, value: datetime) -> "Timestamp":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - EPOCH
        seconds = delta.days * 86400 + delta.seconds
        # google-api-core's DatetimeWithNanoseconds keeps sub-microsecond precision.
        nanoseconds = getattr(value, "nanosecond", None)
        if not nanoseconds:
            nanoseconds = delta.microseconds * 1000
        return cls(seconds, int(nanoseconds))

    @classmethod
    def from_rfc3339(cls, value: str) -> "Timestamp":
        match = _RFC3339_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f"Invalid RFC 3339 timestamp: {value}")
        offset = match.group("offset")
        base = datetime.fromisoformat(match.group("base") + ("+00:00" if offset == "Z" else offset))
        fraction = match.group("fraction") or ""
        nanoseconds = int(fraction.ljust(9, "0")) if fraction else 0
        return cls(int(base.timestamp()), nanoseconds)

    def to_datetime(self) -> datetime:
        base = EPOCH + timedelta(seconds=self.seconds)
        return base.replace(microsecond=self.nanoseconds // 1000)

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanoseconds // 1_000_000

    def to_rfc3339(self) -> str:
        base = (EPOCH + timedelta(seconds=self.seconds)).replace(tzinfo=None).isoformat(timespec="seconds")
        if self.nanoseconds == 0:
            return f"{base}Z"
        fraction = f"{self.nanoseconds:09d}".rstrip("0")
        return f"{base}.{fraction}Z"

    def __str__(self) -> str:
        return self.to_rfc3339()


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= float(self.latitude) <= 90.0:
            raise ValueError(f"Latitude must be in [-90, 90]: {self.latitude}")
        if not -180.0 <= float(self.longitude) <= 180.0:
            raise ValueError(f"Longitude must be in [-180, 180]: {self.longitude}")
