from datetime import datetime, timedelta, timezone


class Clock:
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, current: datetime):
        self._current = as_utc(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime):
        self._current = as_utc(current)

    def advance(self, **kwargs):
        self._current = self._current + timedelta(**kwargs)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock
