"""
Time-based analyzers: late-night chats, streaks, peak day, monthly activity,
first/last messages of the scope, per-contact calendars and "first times".
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .db import MessageSource
from .models import (
    BoundaryMessage,
    DayBucket,
    FirstTimeRecord,
    IntimacyCalendar,
    Message,
    MidnightKing,
    PeakDay,
    SocialBattery,
    Streak,
    YearBoundaries,
)
from .scanning import (
    DEFAULT_YIELD_EVERY,
    ContactSet,
    resolve_contacts,
    scan_contacts,
    successes_of,
)
from .scope import Scope
from .text_patterns import NON_TEXT_PLACEHOLDER

logger = logging.getLogger(__name__)

MIDNIGHT_HOURS = range(0, 6)


async def find_midnight_king(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    hours: range = MIDNIGHT_HOURS,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> MidnightKing:
    """Contact with the most messages inside the late-night window.

    Also reports that contact's share of all late-night messages and their
    busiest hour within the window.
    """
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Dict[int, int]:
        return await source.get_midnight_histogram(contact_id, scope.year, hours)

    histograms = {
        r.contact_id: r.value
        for r in successes_of(await scan_contacts(contacts, fetch, yield_every))
        if sum(r.value.values()) > 0
    }
    if not histograms:
        return MidnightKing()

    grand_total = sum(sum(h.values()) for h in histograms.values())
    king_id = min(histograms, key=lambda cid: (-sum(histograms[cid].values()), cid))
    king_hist = histograms[king_id]
    king_count = sum(king_hist.values())
    busiest_hour = min(king_hist, key=lambda hour: (-king_hist[hour], hour))

    return MidnightKing(
        contact_id=king_id,
        display_name=contacts.display_name(king_id),
        count=king_count,
        total_midnight_messages=grand_total,
        percentage=king_count / grand_total * 100,
        most_active_hour=busiest_hour,
    )


def longest_streak(dates: Iterable[date]) -> Streak:
    """Longest run of consecutive calendar days.

    A later run replaces the current best only when it is strictly longer.
    """
    days = sorted(set(dates))
    if not days:
        return Streak()

    best_len, best_start, best_end = 1, days[0], days[0]
    run_len, run_start = 1, days[0]
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run_len += 1
        else:
            run_len, run_start = 1, current
        if run_len > best_len:
            best_len, best_start, best_end = run_len, run_start, current

    return Streak(days=best_len, start_date=best_start, end_date=best_end)


async def find_longest_streak(source: MessageSource, contact_id: str, scope: Scope) -> Streak:
    """Longest daily streak with one contact."""
    messages = scope.filter(await source.get_messages(contact_id))
    streak = longest_streak(msg.sent_at.date() for msg in messages)
    if streak.days == 0:
        return streak
    names = await source.get_display_names([contact_id])
    return streak.model_copy(
        update={"contact_id": contact_id, "display_name": names.get(contact_id, contact_id)}
    )


async def find_longest_check_in(
    source: MessageSource, scope: Scope, contacts: Optional[ContactSet] = None
) -> Streak:
    """Best daily streak over all contacts; the first contact wins ties."""
    contacts = await resolve_contacts(source, contacts)
    all_dates = await source.get_all_message_dates(contacts.ids, scope.year)

    best = Streak()
    for contact_id in contacts.ids:
        dates = all_dates.get(contact_id)
        if not dates:
            continue
        streak = longest_streak(dates)
        if streak.days > best.days:
            best = streak.model_copy(
                update={"contact_id": contact_id, "display_name": contacts.display_name(contact_id)}
            )

    return best


async def analyze_peak_day(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> PeakDay:
    """Busiest calendar day over all contacts, and who carried it."""
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Dict[date, DayBucket]:
        return await source.get_messages_by_date(contact_id, scope.year)

    daily_totals: Dict[date, int] = defaultdict(int)
    per_contact: Dict[date, Dict[str, int]] = defaultdict(dict)
    for result in successes_of(await scan_contacts(contacts, fetch, yield_every)):
        for day, bucket in result.value.items():
            daily_totals[day] += bucket.count
            per_contact[day][result.contact_id] = bucket.count

    if not daily_totals:
        return PeakDay()

    # Earliest date wins ties
    peak = min(daily_totals, key=lambda day: (-daily_totals[day], day))
    day_counts = per_contact[peak]
    top_id = min(day_counts, key=lambda cid: (-day_counts[cid], cid))

    return PeakDay(
        peak_date=peak,
        message_count=daily_totals[peak],
        top_contact_id=top_id,
        top_display_name=contacts.display_name(top_id),
        top_contact_count=day_counts[top_id],
        top_contact_percentage=day_counts[top_id] / daily_totals[peak] * 100,
    )


def monthly_active_days(dates: Iterable[date]) -> List[int]:
    """Distinct active days per calendar month (index 0 = January)."""
    counts = [0] * 12
    for day in set(dates):
        counts[day.month - 1] += 1
    return counts


def battery_from_counts(monthly_counts: Sequence[int]) -> SocialBattery:
    peak_month = 1
    for month, count in enumerate(monthly_counts, start=1):
        if count > monthly_counts[peak_month - 1]:
            peak_month = month

    active = [(count, month) for month, count in enumerate(monthly_counts, start=1) if count > 0]
    low_month = min(active)[1] if active else 1

    return SocialBattery(
        monthly_counts=list(monthly_counts), peak_month=peak_month, low_month=low_month
    )


async def analyze_social_battery(
    source: MessageSource, scope: Scope, contacts: Optional[ContactSet] = None
) -> SocialBattery:
    """Monthly curve of days with any conversation."""
    contacts = await resolve_contacts(source, contacts)
    all_dates = await source.get_all_message_dates(contacts.ids, scope.year)

    active_days: Set[date] = set()
    for dates in all_dates.values():
        active_days.update(dates)

    return battery_from_counts(monthly_active_days(active_days))


def _boundary(contacts: ContactSet, contact_id: str, msg: Message) -> BoundaryMessage:
    return BoundaryMessage(
        contact_id=contact_id,
        display_name=contacts.display_name(contact_id),
        content=msg.content if msg.is_text else NON_TEXT_PLACEHOLDER,
        timestamp=msg.timestamp,
        is_sent_by_me=msg.sender_is_self,
    )


async def analyze_year_boundaries(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> YearBoundaries:
    """The very first and very last message of the scope."""
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Optional[Tuple[Message, Message]]:
        messages = scope.filter(await source.get_messages(contact_id))
        if not messages:
            return None
        first = min(messages, key=lambda m: m.timestamp)
        last = max(messages, key=lambda m: m.timestamp)
        return first, last

    first: Optional[Tuple[str, Message]] = None
    last: Optional[Tuple[str, Message]] = None
    for result in successes_of(await scan_contacts(contacts, fetch, yield_every)):
        if result.value is None:
            continue
        contact_first, contact_last = result.value
        if first is None or contact_first.timestamp < first[1].timestamp:
            first = (result.contact_id, contact_first)
        if last is None or contact_last.timestamp > last[1].timestamp:
            last = (result.contact_id, contact_last)

    return YearBoundaries(
        first_message=_boundary(contacts, *first) if first else None,
        last_message=_boundary(contacts, *last) if last else None,
    )


async def generate_intimacy_calendar(
    source: MessageSource, contact_id: str, scope: Scope
) -> IntimacyCalendar:
    """Day-by-day message counts with one contact."""
    buckets = await source.get_messages_by_date(contact_id, scope.year)
    if not buckets:
        return IntimacyCalendar(contact_id=contact_id)

    daily = {day: bucket.count for day, bucket in sorted(buckets.items())}
    return IntimacyCalendar(
        contact_id=contact_id,
        daily_messages=daily,
        start_date=min(daily),
        end_date=max(daily),
        max_daily_count=max(daily.values()),
    )


async def find_first_times(
    source: MessageSource, contact_id: str, keywords: Sequence[str], scope: Scope
) -> List[FirstTimeRecord]:
    """First text message mentioning each keyword (case-insensitive).

    Records come back in chronological order; keywords that never appear are
    omitted.
    """
    pending = list(dict.fromkeys(k for k in keywords if k))
    if not pending:
        return []

    messages = sorted(scope.filter(await source.get_messages(contact_id)), key=lambda m: m.timestamp)
    records: List[FirstTimeRecord] = []
    for msg in messages:
        if not msg.is_text:
            continue
        content = msg.content.lower()
        for keyword in [k for k in pending if k.lower() in content]:
            records.append(
                FirstTimeRecord(
                    keyword=keyword,
                    timestamp=msg.timestamp,
                    content=msg.content,
                    is_sent_by_me=msg.sender_is_self,
                )
            )
            pending.remove(keyword)
        if not pending:
            break

    return records
