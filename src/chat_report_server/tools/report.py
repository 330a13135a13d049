"""
Annual report tools for the Chat Annual Report server.

Each tool returns a plain JSON-ready dict. Contact identifiers are hashed by
default; quoted message text is redacted when requested.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from chat_report_server.cache import ResultCache
from chat_report_server.config import get_config
from chat_report_server.db import DatabaseError, MessageSource, SourceUnavailableError
from chat_report_server.engine import AnalysisCancelled
from chat_report_server.privacy import sanitize_report, unhash_contact_id
from chat_report_server.patterns import analyze_activity_heatmap
from chat_report_server.rankings import (
    CONFIDANT,
    CORE,
    INITIATIVE,
    LISTENER,
    MUTUAL,
    analyze_conversation_balance,
    get_absolute_core_ranking,
    get_confidant_ranking,
    get_initiative_ranking,
    get_listener_ranking,
    get_mutual_balance_ranking,
)
from chat_report_server.scanning import load_contacts
from chat_report_server.scope import Scope
from chat_report_server.timeline import (
    find_first_times,
    find_longest_streak,
    generate_intimacy_calendar,
)
from chat_report_server.tools import FirstTimesQuery
from chat_report_server.tools.base import (
    build_engine,
    create_error_response,
    create_validation_error,
    open_source,
    parse_scope,
)

logger = logging.getLogger(__name__)

RANKING_FUNCTIONS = {
    CORE: get_absolute_core_ranking,
    CONFIDANT: get_confidant_ranking,
    LISTENER: get_listener_ranking,
    MUTUAL: get_mutual_balance_ranking,
    INITIATIVE: get_initiative_ranking,
}

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class UnknownContactError(ValueError):
    """The requested contact is not a classified one-to-one contact."""

    pass


def _error_response(error: Exception) -> Dict[str, Any]:
    """Map an exception raised inside a tool to an error response."""
    if isinstance(error, ValidationError):
        return create_validation_error(error)
    if isinstance(error, ValueError):
        return create_error_response(error, "validation_error")
    if isinstance(error, SourceUnavailableError):
        return create_error_response(error, "database_unavailable")
    if isinstance(error, DatabaseError):
        return create_error_response(error, "database_error")
    if isinstance(error, AnalysisCancelled):
        return create_error_response(error, "cancelled")
    logger.error(f"Analysis failed: {error}", exc_info=True)
    return create_error_response(error, "analysis_error")


async def _resolve_contact(source: MessageSource, contact_id: str) -> str:
    """Accept a raw or hashed identifier of a classified contact."""
    contacts = await load_contacts(source)
    resolved = unhash_contact_id(contact_id, contacts.ids)
    if resolved is None or resolved not in contacts.ids:
        raise UnknownContactError(f"Unknown contact: {contact_id}")
    return resolved


async def annual_summary_tool(
    year: Optional[int] = None,
    refresh: bool = False,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Build (or load from cache) the complete annual report.

    Args:
        year: Calendar year to analyze, or None for all time
        refresh: Ignore any cached report and recompute
        db_path: Archive path (configured path if omitted)
        redact: Redact quoted message text and display names

    Returns:
        Dict containing every ranking and pattern result plus highlights
    """
    try:
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            engine = build_engine(source)
            if refresh and engine.cache is not None:
                engine.cache.invalidate(scope)
            report = await engine.build_report(scope)

        hour, weekday, count = report.heatmap.most_active()
        result = report.model_dump(mode="json")
        result["highlights"] = {
            "most_active_slot": {
                "hour": hour,
                "weekday": WEEKDAY_NAMES[weekday],
                "count": count,
            },
            "style": report.linguistic_style.style,
            "most_used_punctuation": report.linguistic_style.most_used_punctuation,
            "peak_day": report.peak_day.formatted_date,
        }
        return sanitize_report(result, redact)

    except Exception as e:
        return _error_response(e)


async def rankings_tool(
    kind: str = "all",
    year: Optional[int] = None,
    limit: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Compute one ranking, or all of them.

    Args:
        kind: One of absolute_core, confidant, listener, mutual_balance,
            initiative, or "all"
        year: Calendar year, or None for all time
        limit: Maximum entries per ranking (configured default if omitted)
        db_path: Archive path
        redact: Drop display names from the output
    """
    try:
        scope = parse_scope(year)
        if kind != "all" and kind not in RANKING_FUNCTIONS:
            raise ValueError(
                f"Unknown ranking '{kind}'; expected one of {sorted(RANKING_FUNCTIONS)} or 'all'"
            )
        kinds = list(RANKING_FUNCTIONS) if kind == "all" else [kind]

        config = get_config()
        limit = limit if limit is not None else config.analysis.ranking_limit

        rankings = {}
        async with open_source(db_path) as source:
            contacts = await load_contacts(source)
            for name in kinds:
                ranking = await RANKING_FUNCTIONS[name](
                    source, scope, limit, contacts, config.analysis.yield_every
                )
                rankings[name] = ranking.model_dump(mode="json")

        return sanitize_report({"scope": scope.key, "rankings": rankings}, redact)

    except Exception as e:
        return _error_response(e)


async def activity_heatmap_tool(
    year: Optional[int] = None, normalize: bool = False, db_path: Optional[str] = None
) -> Dict[str, Any]:
    """Hour x weekday activity grid (weekday 0 = Monday)."""
    try:
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            heatmap = await analyze_activity_heatmap(source, scope)

        hour, weekday, count = heatmap.most_active()
        return {
            "scope": scope.key,
            "counts": heatmap.normalized() if normalize else heatmap.counts,
            "max_count": heatmap.max_count,
            "most_active": {"hour": hour, "weekday": WEEKDAY_NAMES[weekday], "count": count},
        }

    except Exception as e:
        return _error_response(e)


async def contact_balance_tool(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """Who talks more and who starts conversations with one contact."""
    try:
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            resolved = await _resolve_contact(source, contact_id)
            balance = await analyze_conversation_balance(source, resolved, scope)

        result = balance.model_dump(mode="json")
        result.update(
            {
                "scope": scope.key,
                "message_ratio": _finite(balance.message_ratio),
                "char_ratio": _finite(balance.char_ratio),
                "initiative_ratio": _finite(balance.initiative_ratio),
                "more_active": balance.more_active,
            }
        )
        return sanitize_report(result, redact)

    except Exception as e:
        return _error_response(e)


def _finite(value: float) -> Optional[float]:
    """JSON has no infinity; one-sided ratios are reported as null."""
    return None if value == float("inf") else round(value, 3)


async def contact_streak_tool(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """Longest run of consecutive days chatting with one contact."""
    try:
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            resolved = await _resolve_contact(source, contact_id)
            streak = await find_longest_streak(source, resolved, scope)

        result = streak.model_dump(mode="json")
        result["scope"] = scope.key
        return sanitize_report(result, redact)

    except Exception as e:
        return _error_response(e)


async def intimacy_calendar_tool(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """Day-by-day message counts with one contact, with 0-1 intensity."""
    try:
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            resolved = await _resolve_contact(source, contact_id)
            calendar = await generate_intimacy_calendar(source, resolved, scope)

        result = calendar.model_dump(mode="json")
        result["scope"] = scope.key
        result["intensity"] = {
            day.isoformat(): round(calendar.intensity(day), 3) for day in calendar.daily_messages
        }
        return sanitize_report(result, redact)

    except Exception as e:
        return _error_response(e)


async def first_times_tool(
    contact_id: str,
    keywords: List[str],
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
) -> Dict[str, Any]:
    """First message mentioning each keyword, in chronological order."""
    try:
        query = FirstTimesQuery(contact_id=contact_id, keywords=keywords)
        scope = parse_scope(year)
        async with open_source(db_path) as source:
            resolved = await _resolve_contact(source, query.contact_id)
            records = await find_first_times(source, resolved, query.keywords, scope)

        found = {record.keyword for record in records}
        return sanitize_report(
            {
                "scope": scope.key,
                "records": [record.model_dump(mode="json") for record in records],
                "not_found": [k for k in query.keywords if k not in found],
            },
            redact,
        )

    except Exception as e:
        return _error_response(e)


async def clear_cache_tool(year: Optional[int] = None, all_scopes: bool = False) -> Dict[str, Any]:
    """Drop cached reports for one scope, or for every scope."""
    try:
        config = get_config()
        cache = ResultCache(config.get_cache_dir())
        if all_scopes:
            removed = cache.invalidate()
            return {"cleared": "all", "removed": removed}

        scope: Scope = parse_scope(year)
        return {"cleared": scope.key, "removed": cache.invalidate(scope)}

    except Exception as e:
        return _error_response(e)
