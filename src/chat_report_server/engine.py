"""
Report engine: runs every aggregator and analyzer for one scope.

Analyses run one after another on the event loop. Between analyses the
engine checks the caller's cancel event; a cancelled or failed computation
never reaches the result cache.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from .cache import ResultCache
from .db import MessageSource
from .models import AnnualReport
from .patterns import (
    analyze_activity_heatmap,
    analyze_emoji_personality,
    analyze_laughter,
    analyze_linguistic_style,
    analyze_message_length,
    analyze_message_types,
)
from .rankings import (
    get_absolute_core_ranking,
    get_confidant_ranking,
    get_initiative_ranking,
    get_listener_ranking,
    get_mutual_balance_ranking,
)
from .scanning import DEFAULT_YIELD_EVERY, load_contacts
from .scope import Scope
from .timeline import (
    MIDNIGHT_HOURS,
    analyze_peak_day,
    analyze_social_battery,
    analyze_year_boundaries,
    find_longest_check_in,
    find_midnight_king,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalysisCancelled(Exception):
    """The caller abandoned the computation; nothing was cached."""

    pass


class ReportEngine:
    """Builds (or serves from cache) the annual report for a scope."""

    def __init__(
        self,
        source: MessageSource,
        cache: Optional[ResultCache] = None,
        yield_every: int = DEFAULT_YIELD_EVERY,
        ranking_limit: Optional[int] = 10,
        midnight_hours: range = MIDNIGHT_HOURS,
    ):
        self.source = source
        self.cache = cache
        self.yield_every = yield_every
        self.ranking_limit = ranking_limit
        self.midnight_hours = midnight_hours

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Report computation cancelled before {stage}")
            raise AnalysisCancelled(f"Cancelled before {stage}")

    async def build_report(
        self,
        scope: Scope,
        cancel_event: Optional[asyncio.Event] = None,
        use_cache: bool = True,
    ) -> AnnualReport:
        """
        Compute the full report for a scope.

        Args:
            scope: Year or all-time scope
            cancel_event: Set by the caller to abandon the computation
            use_cache: Serve and store results through the result cache

        Returns:
            AnnualReport for the scope

        Raises:
            SourceUnavailableError: The message source cannot be reached
            AnalysisCancelled: cancel_event was set before completion
        """
        # Fails fast when the source is gone, before any computation
        token = await self.source.last_modified()

        if use_cache and self.cache is not None:
            cached = self.cache.get(scope, token)
            if cached is not None:
                return cached

        started = time.perf_counter()
        self._check_cancelled(cancel_event, "loading contacts")
        contacts = await load_contacts(self.source)
        limit = self.ranking_limit
        every = self.yield_every

        async def step(stage: str, compute: Callable[[], Awaitable[T]]) -> T:
            self._check_cancelled(cancel_event, stage)
            result = await compute()
            await asyncio.sleep(0)
            return result

        core = await step(
            "core ranking",
            lambda: get_absolute_core_ranking(self.source, scope, limit, contacts, every),
        )
        confidants = await step(
            "confidant ranking",
            lambda: get_confidant_ranking(self.source, scope, limit, contacts, every),
        )
        listeners = await step(
            "listener ranking",
            lambda: get_listener_ranking(self.source, scope, limit, contacts, every),
        )
        mutual = await step(
            "mutual balance ranking",
            lambda: get_mutual_balance_ranking(self.source, scope, limit, contacts, every),
        )
        initiative = await step(
            "initiative ranking",
            lambda: get_initiative_ranking(self.source, scope, limit, contacts, every),
        )
        heatmap = await step(
            "activity heatmap", lambda: analyze_activity_heatmap(self.source, scope, contacts)
        )
        style = await step(
            "linguistic style",
            lambda: analyze_linguistic_style(self.source, scope, contacts, every),
        )
        laughter = await step(
            "laughter", lambda: analyze_laughter(self.source, scope, contacts, every)
        )
        emoji = await step(
            "emoji personality",
            lambda: analyze_emoji_personality(self.source, scope, contacts, every),
        )
        midnight = await step(
            "midnight king",
            lambda: find_midnight_king(self.source, scope, contacts, self.midnight_hours, every),
        )
        check_in = await step(
            "longest check-in", lambda: find_longest_check_in(self.source, scope, contacts)
        )
        peak = await step(
            "peak day", lambda: analyze_peak_day(self.source, scope, contacts, every)
        )
        battery = await step(
            "social battery", lambda: analyze_social_battery(self.source, scope, contacts)
        )
        boundaries = await step(
            "year boundaries",
            lambda: analyze_year_boundaries(self.source, scope, contacts, every),
        )
        types = await step(
            "message types", lambda: analyze_message_types(self.source, scope, contacts)
        )
        length = await step(
            "message length", lambda: analyze_message_length(self.source, scope, contacts)
        )

        report = AnnualReport(
            scope=scope.key,
            generated_at=datetime.now(),
            contact_count=len(contacts),
            core_friends=core,
            confidants=confidants,
            listeners=listeners,
            mutual_friends=mutual,
            initiative=initiative,
            heatmap=heatmap,
            linguistic_style=style,
            laughter=laughter,
            emoji=emoji,
            midnight_king=midnight,
            longest_check_in=check_in,
            peak_day=peak,
            social_battery=battery,
            boundaries=boundaries,
            message_types=types,
            message_length=length,
        )

        # Results of an abandoned computation are discarded
        self._check_cancelled(cancel_event, "caching")

        elapsed = time.perf_counter() - started
        logger.info(
            f"Built report for scope {scope} over {len(contacts)} contacts in {elapsed:.2f}s"
        )

        if use_cache and self.cache is not None:
            self.cache.put(scope, report, token)

        return report
