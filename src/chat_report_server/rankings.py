"""
Metric aggregators: contact rankings and conversation balance.

All rankings are built over the same classified contact set from the same
per-contact ``(sent, received)`` primitive. Ratio-based rankings ignore
sparse conversations (fewer than 50 or 100 messages).
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .db import MessageSource
from .models import (
    ConversationBalance,
    DayBucket,
    Message,
    Ranking,
    RankingEntry,
    SegmentSummary,
)
from .scanning import (
    DEFAULT_YIELD_EVERY,
    ContactSet,
    failures_of,
    resolve_contacts,
    scan_contacts,
    successes_of,
)
from .scope import Scope

logger = logging.getLogger(__name__)

RATIO_MIN_MESSAGES = 50
BALANCE_MIN_MESSAGES = 100
INITIATIVE_MIN_MESSAGES = 100

SEGMENT_GAP_SECONDS = 1200

CORE = "absolute_core"
CONFIDANT = "confidant"
LISTENER = "listener"
MUTUAL = "mutual_balance"
INITIATIVE = "initiative"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def ratio_display_score(index: float) -> float:
    """Confidant/listener index shown as 0-100."""
    return clamp(index * 10, 0, 100)


def balance_score(sent: int, received: int) -> float:
    """1.0 for a perfectly even conversation, 0 once the ratio is off by 10 or more."""
    ratio = sent / received
    return 1 - clamp(abs(ratio - 1), 0, 10) / 10


def rank_entries(
    candidates: Sequence[Tuple[float, RankingEntry]], limit: Optional[int] = None
) -> List[RankingEntry]:
    """Order by key descending, then contact id ascending, and apply the limit."""
    ordered = sorted(candidates, key=lambda item: (-item[0], item[1].contact_id))
    entries = [entry for _, entry in ordered]
    if limit is not None and limit > 0:
        return entries[:limit]
    return entries


async def _count_ranking(
    kind: str,
    source: MessageSource,
    scope: Scope,
    build: Callable[[ContactSet, str, int, int], Optional[Tuple[float, RankingEntry]]],
    limit: Optional[int],
    contacts: Optional[ContactSet],
    yield_every: int,
) -> Ranking:
    """Shared driver for rankings derived from (sent, received) counts."""
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Tuple[int, int]:
        return await source.get_message_counts(contact_id, scope.year)

    results = await scan_contacts(contacts, fetch, yield_every)

    candidates = []
    for result in successes_of(results):
        sent, received = result.value
        candidate = build(contacts, result.contact_id, sent, received)
        if candidate is not None:
            candidates.append(candidate)

    logger.debug(f"{kind} ranking for scope {scope}: {len(candidates)} candidates")
    return Ranking(
        kind=kind,
        entries=rank_entries(candidates, limit),
        failures=failures_of(results),
    )


async def get_absolute_core_ranking(
    source: MessageSource,
    scope: Scope,
    limit: Optional[int] = None,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> Ranking:
    """Contacts by total interaction volume, with their share of the grand total.

    No minimum activity is required; contacts with no messages in scope are
    left out.
    """
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Tuple[int, int]:
        return await source.get_message_counts(contact_id, scope.year)

    results = await scan_contacts(contacts, fetch, yield_every)
    totals: Dict[str, Tuple[int, int]] = {
        r.contact_id: r.value for r in successes_of(results) if sum(r.value) > 0
    }
    grand_total = sum(sent + received for sent, received in totals.values())

    candidates = []
    for contact_id, (sent, received) in totals.items():
        total = sent + received
        entry = RankingEntry(
            contact_id=contact_id,
            display_name=contacts.display_name(contact_id),
            primary_count=total,
            score=total / grand_total * 100,
            details={"sent": sent, "received": received},
        )
        candidates.append((total, entry))

    return Ranking(
        kind=CORE,
        entries=rank_entries(candidates, limit),
        failures=failures_of(results),
    )


async def get_confidant_ranking(
    source: MessageSource,
    scope: Scope,
    limit: Optional[int] = None,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> Ranking:
    """Contacts I talk to more than they talk to me (index = sent / received)."""

    def build(contacts: ContactSet, contact_id: str, sent: int, received: int):
        if sent + received < RATIO_MIN_MESSAGES or received == 0:
            return None
        index = sent / received
        return index, RankingEntry(
            contact_id=contact_id,
            display_name=contacts.display_name(contact_id),
            primary_count=sent,
            score=ratio_display_score(index),
            details={"received": received, "index": index},
        )

    return await _count_ranking(CONFIDANT, source, scope, build, limit, contacts, yield_every)


async def get_listener_ranking(
    source: MessageSource,
    scope: Scope,
    limit: Optional[int] = None,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> Ranking:
    """Contacts who talk to me more than I talk to them (index = received / sent)."""

    def build(contacts: ContactSet, contact_id: str, sent: int, received: int):
        if sent + received < RATIO_MIN_MESSAGES or sent == 0:
            return None
        index = received / sent
        return index, RankingEntry(
            contact_id=contact_id,
            display_name=contacts.display_name(contact_id),
            primary_count=received,
            score=ratio_display_score(index),
            details={"sent": sent, "index": index},
        )

    return await _count_ranking(LISTENER, source, scope, build, limit, contacts, yield_every)


async def get_mutual_balance_ranking(
    source: MessageSource,
    scope: Scope,
    limit: Optional[int] = None,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> Ranking:
    """Contacts with the most even back-and-forth."""

    def build(contacts: ContactSet, contact_id: str, sent: int, received: int):
        if sent + received < BALANCE_MIN_MESSAGES or sent == 0 or received == 0:
            return None
        score = balance_score(sent, received)
        return score, RankingEntry(
            contact_id=contact_id,
            display_name=contacts.display_name(contact_id),
            primary_count=sent + received,
            score=score,
            details={"ratio": sent / received, "sent": sent, "received": received},
        )

    return await _count_ranking(MUTUAL, source, scope, build, limit, contacts, yield_every)


async def get_initiative_ranking(
    source: MessageSource,
    scope: Scope,
    limit: Optional[int] = None,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> Ranking:
    """Share of active days on which I sent the first message, per contact."""
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Dict:
        return await source.get_messages_by_date(contact_id, scope.year)

    results = await scan_contacts(contacts, fetch, yield_every)

    candidates = []
    for result in successes_of(results):
        buckets: Dict[object, DayBucket] = result.value
        total = sum(bucket.count for bucket in buckets.values())
        if total < INITIATIVE_MIN_MESSAGES or not buckets:
            continue

        initiated = sum(1 for bucket in buckets.values() if bucket.first_is_self)
        rate = initiated / len(buckets) * 100
        candidates.append(
            (
                rate,
                RankingEntry(
                    contact_id=result.contact_id,
                    display_name=contacts.display_name(result.contact_id),
                    primary_count=initiated,
                    score=rate,
                    details={"total_days": len(buckets)},
                ),
            )
        )

    return Ranking(
        kind=INITIATIVE,
        entries=rank_entries(candidates, limit),
        failures=failures_of(results),
    )


def segment_conversation(
    messages: Sequence[Message], gap_seconds: int = SEGMENT_GAP_SECONDS
) -> SegmentSummary:
    """Split a conversation wherever the silence exceeds ``gap_seconds``.

    The sender of a segment's first message is its initiator.
    """
    total = by_self = by_other = 0
    previous: Optional[Message] = None

    for msg in sorted(messages, key=lambda m: m.timestamp):
        if previous is None or msg.timestamp - previous.timestamp > gap_seconds:
            total += 1
            if msg.sender_is_self:
                by_self += 1
            else:
                by_other += 1
        previous = msg

    return SegmentSummary(
        total_segments=total, initiated_by_self=by_self, initiated_by_other=by_other
    )


async def analyze_conversation_balance(
    source: MessageSource, contact_id: str, scope: Scope
) -> ConversationBalance:
    """Message and character volume on each side, plus who opens conversations."""
    messages = scope.filter(await source.get_messages(contact_id))

    sent = received = sent_chars = received_chars = 0
    for msg in messages:
        if msg.sender_is_self:
            sent += 1
            sent_chars += len(msg.content)
        else:
            received += 1
            received_chars += len(msg.content)

    return ConversationBalance(
        contact_id=contact_id,
        sent_count=sent,
        received_count=received,
        sent_chars=sent_chars,
        received_chars=received_chars,
        segments=segment_conversation(messages),
    )
