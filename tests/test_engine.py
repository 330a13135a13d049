"""Tests for the report engine: caching, cancellation and source failures."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chat_report_server.cache import ResultCache
from chat_report_server.db import SourceUnavailableError
from chat_report_server.engine import AnalysisCancelled, ReportEngine
from chat_report_server.scope import Scope

YEAR = Scope(2024)


@pytest.fixture
def cache(tmp_path):
    return ResultCache(tmp_path / "cache")


class TestReportEngine:
    """Test report assembly around the result cache."""

    @pytest.mark.asyncio
    async def test_builds_full_report(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)

        report = await engine.build_report(YEAR)

        assert report.scope == "2024"
        assert report.contact_count == 5
        assert report.core_friends.contact_ids == ["carol", "dave", "alice", "bob"]
        assert report.mutual_friends.contact_ids == ["carol", "dave"]
        assert report.social_battery.peak_month in range(1, 13)
        assert report.boundaries.first_message.contact_id == "alice"
        assert report.message_types[0].type_name == "Text"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_scan(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)
        first = await engine.build_report(YEAR)
        calls = ranking_source.message_calls

        second = await engine.build_report(YEAR)

        assert second == first
        assert ranking_source.message_calls == calls

    @pytest.mark.asyncio
    async def test_changed_source_recomputes(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)
        await engine.build_report(YEAR)
        calls = ranking_source.message_calls

        ranking_source.modified += 1
        await engine.build_report(YEAR)

        assert ranking_source.message_calls > calls
        assert cache.get(YEAR, ranking_source.modified) is not None

    @pytest.mark.asyncio
    async def test_scopes_are_cached_separately(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)

        year_report = await engine.build_report(YEAR)
        all_report = await engine.build_report(Scope.all_time())

        assert year_report.core_friends.contact_ids[0] == "carol"
        assert all_report.core_friends.contact_ids[0] == "erin"
        assert cache.get(YEAR, 1000) == year_report

    @pytest.mark.asyncio
    async def test_without_cache_is_idempotent(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)

        first = await engine.build_report(YEAR, use_cache=False)
        second = await engine.build_report(YEAR, use_cache=False)

        assert first.model_dump(exclude={"generated_at"}) == second.model_dump(
            exclude={"generated_at"}
        )
        assert cache.get(YEAR, 1000) is None

    @pytest.mark.asyncio
    async def test_no_cache_configured(self, ranking_source):
        report = await ReportEngine(ranking_source).build_report(YEAR)

        assert report.core_friends.entries

    @pytest.mark.asyncio
    async def test_ranking_limit(self, ranking_source):
        report = await ReportEngine(ranking_source, ranking_limit=1).build_report(YEAR)

        assert report.core_friends.contact_ids == ["carol"]
        assert report.confidants.contact_ids == ["alice"]


class TestCancellationAndFailures:
    """Abandoned or failed computations never reach the cache."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, ranking_source, cache):
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(AnalysisCancelled):
            await ReportEngine(ranking_source, cache=cache).build_report(YEAR, cancel)

        assert ranking_source.message_calls == 0
        assert cache.get(YEAR, 1000) is None

    @pytest.mark.asyncio
    async def test_cancelled_mid_run(self, ranking_source, cache):
        cancel = asyncio.Event()
        ranking_source.on_get_messages = lambda contact_id: cancel.set()

        with pytest.raises(AnalysisCancelled):
            await ReportEngine(ranking_source, cache=cache).build_report(YEAR, cancel)

        assert cache.invalidate() == 0

    @pytest.mark.asyncio
    async def test_cancelled_run_keeps_previous_slot(self, ranking_source, cache):
        engine = ReportEngine(ranking_source, cache=cache)
        previous = await engine.build_report(YEAR)
        ranking_source.modified += 1
        cancel = asyncio.Event()
        ranking_source.on_get_messages = lambda contact_id: cancel.set()

        with pytest.raises(AnalysisCancelled):
            await engine.build_report(YEAR, cancel)

        assert cache.get(YEAR, 1000) == previous
        assert cache.get(YEAR, ranking_source.modified) is None

    @pytest.mark.asyncio
    async def test_unavailable_source(self, ranking_source, cache):
        ranking_source.unavailable = True

        with pytest.raises(SourceUnavailableError):
            await ReportEngine(ranking_source, cache=cache).build_report(YEAR)

        assert cache.invalidate() == 0

    @pytest.mark.asyncio
    async def test_source_lost_mid_run(self, ranking_source, cache):
        def disconnect(contact_id):
            ranking_source.unavailable = True

        ranking_source.on_get_messages = disconnect

        with pytest.raises(SourceUnavailableError):
            await ReportEngine(ranking_source, cache=cache).build_report(YEAR)

        assert cache.invalidate() == 0

    @pytest.mark.asyncio
    async def test_malformed_contact_is_skipped(self, ranking_source, cache):
        ranking_source.failing.add("alice")

        report = await ReportEngine(ranking_source, cache=cache).build_report(YEAR)

        assert report.core_friends.contact_ids == ["carol", "dave", "bob"]
        assert [f.contact_id for f in report.core_friends.failures] == ["alice"]
        assert report.boundaries.first_message.contact_id == "bob"
        assert sum(map(sum, report.heatmap.counts)) == 300
        assert report.message_types[0].count == 300
        assert report.message_length.total_text_messages == 150
        assert cache.get(YEAR, 1000) == report
