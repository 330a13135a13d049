#!/usr/bin/env python3
"""
Chat Annual Report MCP Server.

Exposes the annual report engine over MCP: rankings, activity patterns,
per-contact calendars and the cached full report.
"""

import asyncio
import logging
import sys
from typing import List, Optional

# MCP SDK imports
from mcp.server.fastmcp import FastMCP

# Local imports
from chat_report_server.config import Config, get_config
from chat_report_server.db import close_source, get_source
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

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("Chat Annual Report")

# Global instances
config: Optional[Config] = None


# ===== CORE TOOLS =====


@mcp.tool()
async def report_health_check(db_path: Optional[str] = None):
    """Validate archive access, schema presence and cache status."""
    return await health_check_tool(db_path)


@mcp.tool()
async def report_annual_summary(
    year: Optional[int] = None,
    refresh: bool = False,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """
    Full annual report for a year (or all time when year is omitted).

    Includes every ranking, the activity heatmap, linguistic style, laughter,
    emoji personality, late-night chats, streaks, peak day, monthly activity,
    first/last messages, message types and message length. Served from the
    result cache while the archive is unchanged.
    """
    return await annual_summary_tool(year, refresh, db_path, redact)


@mcp.tool()
async def report_rankings(
    kind: str = "all",
    year: Optional[int] = None,
    limit: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """
    Contact rankings.

    Kinds: "absolute_core", "confidant", "listener", "mutual_balance",
    "initiative" or "all".
    """
    return await rankings_tool(kind, year, limit, db_path, redact)


@mcp.tool()
async def report_activity_heatmap(
    year: Optional[int] = None, normalize: bool = False, db_path: Optional[str] = None
):
    """Hour x weekday message counts across all one-to-one contacts."""
    return await activity_heatmap_tool(year, normalize, db_path)


# ===== PER-CONTACT TOOLS =====


@mcp.tool()
async def report_contact_balance(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """Message volume on each side and who starts conversations (20 minute gap rule)."""
    return await contact_balance_tool(contact_id, year, db_path, redact)


@mcp.tool()
async def report_contact_streak(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """Longest run of consecutive days with messages for one contact."""
    return await contact_streak_tool(contact_id, year, db_path, redact)


@mcp.tool()
async def report_intimacy_calendar(
    contact_id: str,
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """Daily message counts with one contact."""
    return await intimacy_calendar_tool(contact_id, year, db_path, redact)


@mcp.tool()
async def report_first_times(
    contact_id: str,
    keywords: List[str],
    year: Optional[int] = None,
    db_path: Optional[str] = None,
    redact: Optional[bool] = None,
):
    """First message with one contact that mentions each keyword."""
    return await first_times_tool(contact_id, keywords, year, db_path, redact)


# ===== CACHE =====


@mcp.tool()
async def report_clear_cache(year: Optional[int] = None, all_scopes: bool = False):
    """Drop the cached report for one scope, or for every scope."""
    return await clear_cache_tool(year, all_scopes)


# ===== SERVER LIFECYCLE =====


async def startup():
    """Initialize server resources on startup."""
    global config

    logger.info("Starting Chat Annual Report MCP Server...")

    config = get_config()
    logger.info(f"Archive: {config.get_db_path()}, cache: {config.get_cache_dir()}")

    try:
        await get_source()
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        # Continue anyway - tools will handle the error

    logger.info("Server startup complete")


async def shutdown():
    """Clean up resources on shutdown."""
    logger.info("Shutting down Chat Annual Report MCP Server...")

    await close_source()

    logger.info("Server shutdown complete")


def main():
    """Main entry point for the server."""
    try:
        asyncio.run(startup())

        logger.info("Starting MCP server on stdio transport...")
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
    finally:
        asyncio.run(shutdown())


if __name__ == "__main__":
    main()
