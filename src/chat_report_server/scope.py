"""Time scope handling: one calendar year, or the whole archive."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from .models import Message

ALL_TIME_KEY = "all"


def local_year(timestamp: int) -> int:
    """Calendar year of an epoch timestamp in local time."""
    return datetime.fromtimestamp(timestamp).year


def local_date(timestamp: int) -> date:
    return datetime.fromtimestamp(timestamp).date()


def filter_messages_by_year(year: Optional[int], messages: Iterable[Message]) -> List[Message]:
    """Keep messages from the given local calendar year (all of them if year is None)."""
    if year is None:
        return messages if isinstance(messages, list) else list(messages)
    return [m for m in messages if local_year(m.timestamp) == year]


@dataclass(frozen=True)
class Scope:
    """Analysis scope passed explicitly to every aggregator and analyzer."""

    year: Optional[int] = None

    @classmethod
    def all_time(cls) -> "Scope":
        return cls(None)

    @classmethod
    def from_key(cls, key: str) -> "Scope":
        if key == ALL_TIME_KEY:
            return cls(None)
        return cls(int(key))

    @property
    def key(self) -> str:
        """Cache slot name."""
        return ALL_TIME_KEY if self.year is None else str(self.year)

    @property
    def is_all_time(self) -> bool:
        return self.year is None

    def contains(self, timestamp: int) -> bool:
        return self.year is None or local_year(timestamp) == self.year

    def filter(self, messages: Iterable[Message]) -> List[Message]:
        return filter_messages_by_year(self.year, messages)

    def __str__(self) -> str:
        return self.key
