from datetime import datetime, timedelta, timezone


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, hour: int, minute: int = 0) -> None:
        self.current = self.current.replace(hour=hour, minute=minute, second=0, microsecond=0)

    def advance(self, minutes: int) -> None:
        self.current += timedelta(minutes=minutes)


def at(hour: int, minute: int = 0) -> datetime:
    """A UTC timestamp on the test day."""
    return datetime(2025, 11, 5, hour, minute, tzinfo=timezone.utc)
