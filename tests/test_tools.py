"""Tests for the MCP tool layer over a synthetic archive."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chat_report_server.privacy import hash_contact_id
from chat_report_server.text_patterns import NON_TEXT_PLACEHOLDER, TRUNCATION_MARKER
from chat_report_server.tools.health import health_check_tool
from chat_report_server.tools.report import (
    activity_heatmap_tool,
    annual_summary_tool,
    clear_cache_tool,
    contact_balance_tool,
    contact_streak_tool,
    first_times_tool,
    intimacy_calendar_tool,
    rankings_tool,
)


class TestAnnualSummary:
    """Test the full report tool."""

    @pytest.mark.asyncio
    async def test_summary(self, isolated_config, populated_db):
        result = await annual_summary_tool(year=2024, db_path=populated_db)

        assert "error" not in result
        assert result["scope"] == "2024"
        assert result["contact_count"] == 3

        core = result["core_friends"]["entries"]
        assert [e["contact_id"] for e in core] == [
            hash_contact_id("wxid_alice"),
            hash_contact_id("wxid_bob"),
            hash_contact_id("wxid_carol"),
        ]
        assert core[0]["display_name"] == "Alice"
        assert core[1]["display_name"] == "Bobby"
        assert core[0]["primary_count"] == 122

        assert result["midnight_king"]["contact_id"] == hash_contact_id("wxid_alice")
        assert result["midnight_king"]["count"] == 2
        assert result["message_length"]["longest_content"] == "x" * 2000 + TRUNCATION_MARKER
        assert result["message_length"]["longest_contact_id"] == hash_contact_id("wxid_carol")
        assert result["linguistic_style"]["revoked_message_count"] == 1
        assert result["boundaries"]["last_message"]["content"] == NON_TEXT_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_highlights(self, isolated_config, populated_db):
        result = await annual_summary_tool(year=2024, db_path=populated_db)

        highlights = result["highlights"]
        # 2024-02-10 was a Saturday; 40 messages from Bob between 20:00 and 20:39
        assert highlights["most_active_slot"] == {"hour": 20, "weekday": "Saturday", "count": 40}
        assert highlights["peak_day"] == "2024-02-10"
        assert highlights["style"] in {"terse", "moderate", "verbose"}

    @pytest.mark.asyncio
    async def test_summary_is_cached(self, isolated_config, populated_db):
        first = await annual_summary_tool(year=2024, db_path=populated_db)

        assert (isolated_config.get_cache_dir() / "report_2024.json").exists()
        second = await annual_summary_tool(year=2024, db_path=populated_db)
        assert second["generated_at"] == first["generated_at"]

        refreshed = await annual_summary_tool(year=2024, refresh=True, db_path=populated_db)
        assert refreshed["generated_at"] != first["generated_at"]

    @pytest.mark.asyncio
    async def test_unreadable_cache_slot_is_rebuilt(self, isolated_config, populated_db):
        cache_dir = isolated_config.get_cache_dir()
        cache_dir.mkdir(parents=True)
        (cache_dir / "report_2024.json").write_bytes(b"\xff\xfe")

        result = await annual_summary_tool(year=2024, db_path=populated_db)

        assert "error" not in result
        assert result["contact_count"] == 3

    @pytest.mark.asyncio
    async def test_redacted_summary(self, isolated_config, populated_db):
        result = await annual_summary_tool(year=2024, db_path=populated_db, redact=True)

        assert result["core_friends"]["entries"][0]["display_name"] is None
        assert result["peak_day"]["top_display_name"] is None

    @pytest.mark.asyncio
    async def test_all_time_scope(self, isolated_config, populated_db):
        result = await annual_summary_tool(db_path=populated_db)

        assert result["scope"] == "all"
        assert result["boundaries"]["first_message"]["content"] == "Happy new year!"

    @pytest.mark.asyncio
    async def test_invalid_year(self, isolated_config, populated_db):
        result = await annual_summary_tool(year=10, db_path=populated_db)

        assert result["success"] is False
        assert result["error_type"] == "validation_error"
        assert set(result) == {"success", "error", "error_type"}

    @pytest.mark.asyncio
    async def test_missing_database(self, isolated_config):
        result = await annual_summary_tool(year=2024)

        assert result["success"] is False
        assert result["error_type"] == "database_unavailable"
        assert not isolated_config.get_cache_dir().exists()


class TestRankingsAndHeatmap:
    """Test the ranking and heatmap tools."""

    @pytest.mark.asyncio
    async def test_single_ranking(self, isolated_config, populated_db):
        result = await rankings_tool(kind="confidant", year=2024, db_path=populated_db)

        assert list(result["rankings"]) == ["confidant"]
        entries = result["rankings"]["confidant"]["entries"]
        assert [e["contact_id"] for e in entries] == [
            hash_contact_id("wxid_alice"),
            hash_contact_id("wxid_bob"),
        ]

    @pytest.mark.asyncio
    async def test_all_rankings(self, isolated_config, populated_db):
        result = await rankings_tool(year=2024, limit=1, db_path=populated_db)

        assert set(result["rankings"]) == {
            "absolute_core",
            "confidant",
            "listener",
            "mutual_balance",
            "initiative",
        }
        assert all(len(r["entries"]) <= 1 for r in result["rankings"].values())

    @pytest.mark.asyncio
    async def test_unknown_ranking(self, isolated_config, populated_db):
        result = await rankings_tool(kind="bestest", db_path=populated_db)

        assert result["success"] is False
        assert result["error_type"] == "validation_error"
        assert "bestest" in result["error"]

    @pytest.mark.asyncio
    async def test_heatmap(self, isolated_config, populated_db):
        result = await activity_heatmap_tool(year=2024, normalize=True, db_path=populated_db)

        assert result["max_count"] == 40
        assert result["counts"][20][5] == 1.0
        assert result["most_active"] == {"hour": 20, "weekday": "Saturday", "count": 40}


class TestContactTools:
    """Test per-contact tools with raw and hashed identifiers."""

    @pytest.mark.asyncio
    async def test_streak_with_hashed_id(self, isolated_config, populated_db):
        result = await contact_streak_tool(hash_contact_id("wxid_alice"), 2024, populated_db)

        assert result["days"] == 5
        assert result["start_date"] == "2024-01-01"
        assert result["end_date"] == "2024-01-05"
        assert result["contact_id"] == hash_contact_id("wxid_alice")
        assert result["display_name"] == "Alice"

    @pytest.mark.asyncio
    async def test_unknown_contact(self, isolated_config, populated_db):
        for contact_id in ("filehelper", "family@chatroom", "hash:00000000"):
            result = await contact_streak_tool(contact_id, 2024, populated_db)

            assert result["success"] is False
            assert result["error_type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_balance(self, isolated_config, populated_db):
        result = await contact_balance_tool("wxid_bob", 2024, populated_db)

        assert result["sent_count"] == 10
        assert result["received_count"] == 41
        assert result["message_ratio"] == round(10 / 41, 3)
        # 20:39 -> 21:00 is a 21 minute gap, so the 21:00 reply opens a new segment
        assert result["segments"] == {
            "total_segments": 3,
            "initiated_by_self": 1,
            "initiated_by_other": 2,
        }
        assert result["initiative_ratio"] == 0.5
        assert result["more_active"] == "other"

    @pytest.mark.asyncio
    async def test_one_sided_ratio_is_null(self, isolated_config, populated_db):
        result = await contact_balance_tool("wxid_carol", 2024, populated_db)

        assert result["sent_count"] == 1
        assert result["received_count"] == 1
        assert result["initiative_ratio"] is None
        assert result["more_active"] == "me"

    @pytest.mark.asyncio
    async def test_intimacy_calendar(self, isolated_config, populated_db):
        result = await intimacy_calendar_tool("wxid_alice", 2024, populated_db)

        assert result["daily_messages"]["2024-01-01"] == 30
        assert result["daily_messages"]["2024-01-05"] == 2
        assert result["max_daily_count"] == 30
        assert result["intensity"]["2024-01-01"] == 1.0
        assert result["intensity"]["2024-01-05"] == round(2 / 30, 3)

    @pytest.mark.asyncio
    async def test_first_times(self, isolated_config, populated_db):
        result = await first_times_tool(
            "wxid_alice", ["哈哈", "睡不着", "never said"], 2024, populated_db
        )

        assert [r["keyword"] for r in result["records"]] == ["哈哈", "睡不着"]
        assert result["records"][0]["is_sent_by_me"] is True
        assert result["not_found"] == ["never said"]

    @pytest.mark.asyncio
    async def test_first_times_needs_keywords(self, isolated_config, populated_db):
        result = await first_times_tool("wxid_alice", [], 2024, populated_db)

        assert result["success"] is False
        assert result["error_type"] == "validation_error"


class TestCacheAndHealth:
    """Test cache clearing and the health check."""

    @pytest.mark.asyncio
    async def test_clear_cache(self, isolated_config, populated_db):
        await annual_summary_tool(year=2024, db_path=populated_db)
        await annual_summary_tool(db_path=populated_db)

        assert await clear_cache_tool(year=2024) == {"cleared": "2024", "removed": 1}
        assert await clear_cache_tool(year=2024) == {"cleared": "2024", "removed": 0}
        assert await clear_cache_tool(all_scopes=True) == {"cleared": "all", "removed": 1}

    @pytest.mark.asyncio
    async def test_health_check(self, isolated_config, populated_db):
        await annual_summary_tool(year=2024, db_path=populated_db)

        health = await health_check_tool(populated_db)

        assert health["healthy"] is True
        assert health["schema_valid"] is True
        assert health["stats"]["message_count"] == 976
        assert health["cache"]["entries"] == 1

    @pytest.mark.asyncio
    async def test_health_check_missing_database(self, isolated_config):
        health = await health_check_tool()

        assert health["status"] == "unhealthy"
        assert health["db_accessible"] is False
        assert health["errors"]
