"""
Pattern analyzers over the user's own messages.

Heatmap, type distribution and message length come from source aggregates.
Linguistic style, laughter and emoji personality scan self-sent text; the
text heuristics live in ``text_patterns`` and are applied by the pure
``detect_laughter`` / ``classify_emoji`` functions.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from .db import MessageSource
from .models import (
    ActivityHeatmap,
    EmojiCount,
    EmojiPersonality,
    LaughterReport,
    LinguisticStyle,
    Message,
    MessageLengthData,
    MessageTypeStat,
)
from .scanning import DEFAULT_YIELD_EVERY, ContactSet, resolve_contacts, scan_contacts, successes_of
from .scope import Scope
from .text_patterns import (
    EMOJI_PATTERN,
    LAUGHTER_PATTERNS,
    MAX_DISPLAY_LENGTH,
    MESSAGE_TYPE_NAMES,
    NO_EMOJI_TAG,
    OTHER_TYPE_NAME,
    PERSONALITY_CATEGORIES,
    PUNCTUATION_MARKS,
    TIED_TAG,
    TRUNCATION_MARKER,
    UNCATEGORIZED_TAG,
)

logger = logging.getLogger(__name__)

TOP_EMOJI_COUNT = 5


def is_self_text(msg: Message) -> bool:
    return msg.sender_is_self and msg.is_text


def truncate_for_display(content: str, max_length: int = MAX_DISPLAY_LENGTH) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length] + TRUNCATION_MARKER


async def collect_self_texts(
    source: MessageSource,
    scope: Scope,
    contacts: ContactSet,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> List[str]:
    """Contents of every self-sent text message in scope, contact by contact."""

    async def fetch(contact_id: str) -> List[str]:
        messages = scope.filter(await source.get_messages(contact_id))
        return [msg.content for msg in messages if is_self_text(msg)]

    texts: List[str] = []
    for result in successes_of(await scan_contacts(contacts, fetch, yield_every)):
        texts.extend(result.value)
    return texts


async def analyze_activity_heatmap(
    source: MessageSource, scope: Scope, contacts: Optional[ContactSet] = None
) -> ActivityHeatmap:
    """Hour x weekday message counts across all classified contacts."""
    contacts = await resolve_contacts(source, contacts)
    counts = await source.get_activity_histogram(contacts.ids, scope.year)
    max_count = max((max(row) for row in counts), default=0)
    return ActivityHeatmap(counts=counts, max_count=max_count)


async def analyze_linguistic_style(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> LinguisticStyle:
    """Average length and punctuation habits of self-sent text.

    Recall notices are tallied separately and never count as text. Empty
    messages and sticker-only messages (starting with "[") are skipped.
    """
    contacts = await resolve_contacts(source, contacts)

    async def fetch(contact_id: str) -> Tuple[int, List[str]]:
        revoked = 0
        texts = []
        for msg in scope.filter(await source.get_messages(contact_id)):
            if msg.is_recalled:
                revoked += 1
                continue
            if not is_self_text(msg):
                continue
            if not msg.content or msg.content.startswith("["):
                continue
            texts.append(msg.content)
        return revoked, texts

    results = successes_of(await scan_contacts(contacts, fetch, yield_every))

    revoked_total = total_length = message_count = 0
    punctuation: Dict[str, int] = {mark: 0 for mark in PUNCTUATION_MARKS}
    for result in results:
        revoked, texts = result.value
        revoked_total += revoked
        for content in texts:
            total_length += len(content)
            message_count += 1
            for mark in PUNCTUATION_MARKS:
                punctuation[mark] += content.count(mark)

    return LinguisticStyle(
        avg_message_length=total_length / message_count if message_count else 0.0,
        message_count=message_count,
        punctuation_usage={mark: count for mark, count in punctuation.items() if count},
        revoked_message_count=revoked_total,
    )


def detect_laughter(texts: Iterable[str]) -> LaughterReport:
    """Count laughter characters and find the longest laughter run."""
    total = 0
    longest = ""
    for content in texts:
        for pattern in LAUGHTER_PATTERNS:
            for match in pattern.finditer(content):
                run = match.group(0)
                total += len(run)
                if len(run) > len(longest):
                    longest = run

    return LaughterReport(total_count=total, longest_length=len(longest), longest_text=longest)


async def analyze_laughter(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> LaughterReport:
    contacts = await resolve_contacts(source, contacts)
    return detect_laughter(await collect_self_texts(source, scope, contacts, yield_every))


def classify_emoji(texts: Iterable[str]) -> EmojiPersonality:
    """Tally emoji and stickers and derive a personality tag from the category table."""
    emoji_counts: Counter = Counter()
    for content in texts:
        for match in EMOJI_PATTERN.finditer(content):
            emoji_counts[match.group(0)] += 1

    if not emoji_counts:
        return EmojiPersonality(personality_tag=NO_EMOJI_TAG)

    scores: Dict[str, int] = {}
    for category, tokens in PERSONALITY_CATEGORIES.items():
        hits = sum(count for emoji, count in emoji_counts.items() if emoji in tokens)
        if hits:
            scores[category] = hits

    if not scores:
        tag = UNCATEGORIZED_TAG
    else:
        best = max(scores.values())
        leaders = [category for category, hits in scores.items() if hits == best]
        tag = leaders[0] if len(leaders) == 1 else TIED_TAG

    ranked = sorted(emoji_counts.items(), key=lambda item: (-item[1], item[0]))
    return EmojiPersonality(
        top_emojis=[EmojiCount(emoji=e, count=c) for e, c in ranked[:TOP_EMOJI_COUNT]],
        personality_tag=tag,
        category_scores=scores,
    )


async def analyze_emoji_personality(
    source: MessageSource,
    scope: Scope,
    contacts: Optional[ContactSet] = None,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> EmojiPersonality:
    contacts = await resolve_contacts(source, contacts)
    return classify_emoji(await collect_self_texts(source, scope, contacts, yield_every))


async def analyze_message_types(
    source: MessageSource, scope: Scope, contacts: Optional[ContactSet] = None
) -> List[MessageTypeStat]:
    """Share of each known message type; unknown codes are pooled as "Other"."""
    contacts = await resolve_contacts(source, contacts)
    distribution = await source.get_type_distribution(contacts.ids, scope.year)
    total = sum(distribution.values())
    if total == 0:
        return []

    stats = []
    other = 0
    for code, count in distribution.items():
        if code in MESSAGE_TYPE_NAMES:
            stats.append(
                MessageTypeStat(
                    type_code=code,
                    type_name=MESSAGE_TYPE_NAMES[code],
                    count=count,
                    percentage=count / total * 100,
                )
            )
        else:
            other += count

    if other:
        stats.append(
            MessageTypeStat(
                type_code=None,
                type_name=OTHER_TYPE_NAME,
                count=other,
                percentage=other / total * 100,
            )
        )

    return sorted(stats, key=lambda s: (-s.count, s.type_name))


async def analyze_message_length(
    source: MessageSource, scope: Scope, contacts: Optional[ContactSet] = None
) -> MessageLengthData:
    """Average self-sent text length and the single longest message."""
    contacts = await resolve_contacts(source, contacts)
    stats = await source.get_text_length_stats(contacts.ids, scope.year)
    if stats.text_message_count == 0:
        return MessageLengthData()

    longest_contact = stats.longest_contact_id
    return MessageLengthData(
        average_length=stats.average_length,
        longest_length=stats.longest_length,
        longest_content=truncate_for_display(stats.longest_content or ""),
        longest_contact_id=longest_contact,
        longest_display_name=contacts.display_name(longest_contact) if longest_contact else None,
        longest_timestamp=stats.longest_timestamp,
        total_text_messages=stats.text_message_count,
    )
