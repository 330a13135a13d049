"""
Pydantic models for messages, rankings and report results.

Every analyzer returns one of these immutable models so results can be
handed to the presentation layer as-is and persisted in the result cache
through ``model_dump(mode="json")`` / ``model_validate``.
"""

from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .text_patterns import MODERATE_BELOW, TERSE_BELOW

# Message type codes
TEXT_MESSAGE = 1
SYSTEM_MESSAGE = 10000

RECALL_MARKERS = ("撤回", "recalled")


class FrozenModel(BaseModel):
    """Base class for immutable result models."""

    model_config = ConfigDict(frozen=True)


# Source records


class Message(FrozenModel):
    """A single message exchanged with one contact."""

    sender_is_self: bool
    timestamp: int = Field(description="Epoch seconds")
    content: str = ""
    type_code: int = TEXT_MESSAGE
    is_text: bool = True

    @property
    def is_recalled(self) -> bool:
        """System entry left behind when a message was recalled."""
        return self.type_code == SYSTEM_MESSAGE and any(
            marker in self.content for marker in RECALL_MARKERS
        )

    @property
    def sent_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp)


class Session(FrozenModel):
    """One conversation (one contact) in the archive."""

    id: str
    is_group: bool = False
    display_name: Optional[str] = None


class DayBucket(FrozenModel):
    """Messages exchanged with one contact on one calendar day."""

    count: int
    first_is_self: bool


class TextLengthStats(FrozenModel):
    """Aggregate length statistics over self-sent text messages."""

    average_length: float = 0.0
    text_message_count: int = 0
    longest_length: int = 0
    longest_content: Optional[str] = None
    longest_contact_id: Optional[str] = None
    longest_timestamp: Optional[int] = None


# Rankings


class RankingEntry(FrozenModel):
    """One contact's position in a ranking."""

    contact_id: str
    display_name: str
    primary_count: int
    score: float
    details: Dict[str, float] = Field(default_factory=dict)


class ContactFailure(FrozenModel):
    """A contact skipped because its statistics could not be computed."""

    contact_id: str
    error: str


class Ranking(FrozenModel):
    """Ordered ranking plus the contacts that failed during the scan."""

    kind: str
    entries: List[RankingEntry] = Field(default_factory=list)
    failures: List[ContactFailure] = Field(default_factory=list)

    @property
    def contact_ids(self) -> List[str]:
        return [entry.contact_id for entry in self.entries]


class SegmentSummary(FrozenModel):
    """Conversation segments for one contact (20 minute gap rule)."""

    total_segments: int = 0
    initiated_by_self: int = 0
    initiated_by_other: int = 0


class ConversationBalance(FrozenModel):
    """Who talks more, and who starts the conversations."""

    contact_id: str
    sent_count: int = 0
    received_count: int = 0
    sent_chars: int = 0
    received_chars: int = 0
    segments: SegmentSummary = Field(default_factory=SegmentSummary)

    @property
    def message_ratio(self) -> float:
        if self.received_count == 0:
            return float("inf")
        return self.sent_count / self.received_count

    @property
    def char_ratio(self) -> float:
        if self.received_chars == 0:
            return float("inf")
        return self.sent_chars / self.received_chars

    @property
    def initiative_ratio(self) -> float:
        if self.segments.initiated_by_other == 0:
            return float("inf")
        return self.segments.initiated_by_self / self.segments.initiated_by_other

    @property
    def more_active(self) -> str:
        ratio = self.initiative_ratio
        if ratio > 1.2:
            return "me"
        if ratio < 0.8:
            return "other"
        return "balanced"


# Patterns


class ActivityHeatmap(FrozenModel):
    """Message counts by hour of day (rows) and weekday (columns, Monday=0)."""

    counts: List[List[int]] = Field(default_factory=lambda: [[0] * 7 for _ in range(24)])
    max_count: int = 0

    def get_count(self, hour: int, weekday: int) -> int:
        return self.counts[hour][weekday]

    def normalized(self) -> List[List[float]]:
        """Counts scaled to 0-1 by the busiest cell."""
        matrix = np.asarray(self.counts, dtype=float)
        if self.max_count == 0:
            return np.zeros_like(matrix).tolist()
        return (matrix / self.max_count).tolist()

    def most_active(self) -> Tuple[int, int, int]:
        """(hour, weekday, count) of the busiest cell; first cell wins ties."""
        best = (0, 0, 0)
        for hour, row in enumerate(self.counts):
            for weekday, count in enumerate(row):
                if count > best[2]:
                    best = (hour, weekday, count)
        return best


class LinguisticStyle(FrozenModel):
    """Length and punctuation habits of self-sent text."""

    avg_message_length: float = 0.0
    message_count: int = 0
    punctuation_usage: Dict[str, int] = Field(default_factory=dict)
    revoked_message_count: int = 0

    @property
    def most_used_punctuation(self) -> str:
        if not self.punctuation_usage:
            return ""
        best, best_count = "", -1
        for mark, count in self.punctuation_usage.items():
            if count > best_count:
                best, best_count = mark, count
        return best

    @property
    def style(self) -> str:
        if self.avg_message_length < TERSE_BELOW:
            return "terse"
        if self.avg_message_length < MODERATE_BELOW:
            return "moderate"
        return "verbose"


class LaughterReport(FrozenModel):
    total_count: int = 0
    longest_length: int = 0
    longest_text: str = ""


class EmojiCount(FrozenModel):
    emoji: str
    count: int


class EmojiPersonality(FrozenModel):
    top_emojis: List[EmojiCount] = Field(default_factory=list)
    personality_tag: str
    category_scores: Dict[str, int] = Field(default_factory=dict)


class MidnightKing(FrozenModel):
    """Contact with the most late-night messages."""

    contact_id: Optional[str] = None
    display_name: Optional[str] = None
    count: int = 0
    total_midnight_messages: int = 0
    percentage: float = 0.0
    most_active_hour: int = 0


class Streak(FrozenModel):
    """Longest run of consecutive calendar days with messages."""

    days: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    contact_id: Optional[str] = None
    display_name: Optional[str] = None


class PeakDay(FrozenModel):
    peak_date: Optional[date] = None
    message_count: int = 0
    top_contact_id: Optional[str] = None
    top_display_name: Optional[str] = None
    top_contact_count: int = 0
    top_contact_percentage: float = 0.0

    @property
    def formatted_date(self) -> str:
        return self.peak_date.isoformat() if self.peak_date else ""


class SocialBattery(FrozenModel):
    """Active days per calendar month."""

    monthly_counts: List[int] = Field(default_factory=lambda: [0] * 12)
    peak_month: int = 1
    low_month: int = 1


class BoundaryMessage(FrozenModel):
    contact_id: str
    display_name: str
    content: str
    timestamp: int
    is_sent_by_me: bool


class YearBoundaries(FrozenModel):
    first_message: Optional[BoundaryMessage] = None
    last_message: Optional[BoundaryMessage] = None


class MessageTypeStat(FrozenModel):
    type_code: Optional[int] = None  # None for the catch-all bucket
    type_name: str
    count: int
    percentage: float


class MessageLengthData(FrozenModel):
    average_length: float = 0.0
    longest_length: int = 0
    longest_content: str = ""
    longest_contact_id: Optional[str] = None
    longest_display_name: Optional[str] = None
    longest_timestamp: Optional[int] = None
    total_text_messages: int = 0


class IntimacyCalendar(FrozenModel):
    """Per-day message counts with one contact."""

    contact_id: str
    daily_messages: Dict[date, int] = Field(default_factory=dict)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    max_daily_count: int = 0

    def intensity(self, day: date) -> float:
        if self.max_daily_count == 0:
            return 0.0
        return self.daily_messages.get(day, 0) / self.max_daily_count


class FirstTimeRecord(FrozenModel):
    keyword: str
    timestamp: int
    content: str
    is_sent_by_me: bool


# Report bundle


class AnnualReport(FrozenModel):
    """Complete set of results computed for one scope."""

    scope: str
    generated_at: datetime
    contact_count: int = 0
    core_friends: Ranking
    confidants: Ranking
    listeners: Ranking
    mutual_friends: Ranking
    initiative: Ranking
    heatmap: ActivityHeatmap
    linguistic_style: LinguisticStyle
    laughter: LaughterReport
    emoji: EmojiPersonality
    midnight_king: MidnightKing
    longest_check_in: Streak
    peak_day: PeakDay
    social_battery: SocialBattery
    boundaries: YearBoundaries
    message_types: List[MessageTypeStat] = Field(default_factory=list)
    message_length: MessageLengthData


class CachedReport(FrozenModel):
    """Result cache payload: a report tagged with the source freshness token."""

    scope: str
    freshness_token: int
    saved_at: datetime
    report: AnnualReport
