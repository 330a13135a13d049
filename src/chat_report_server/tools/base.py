"""
Base functionality for MCP tools.

This module provides common utilities shared by tool implementations:
scope parsing, message source and engine setup, and error responses.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from pydantic import ValidationError

from chat_report_server.cache import ResultCache
from chat_report_server.config import get_config
from chat_report_server.db import SQLiteMessageSource, get_source
from chat_report_server.engine import ReportEngine
from chat_report_server.scope import Scope
from chat_report_server.tools import ScopeQuery, ToolResponse

logger = logging.getLogger(__name__)


def parse_scope(year: Optional[int] = None) -> Scope:
    """
    Validate a year parameter and turn it into a Scope.

    Raises:
        ValidationError: If the year is out of range
    """
    query = ScopeQuery(year=year)
    return Scope(query.year)


@asynccontextmanager
async def open_source(db_path: Optional[str] = None) -> AsyncGenerator[SQLiteMessageSource, None]:
    """Use the shared source, or a dedicated one for an explicit path."""
    source = await get_source(db_path)
    try:
        yield source
    finally:
        if db_path:
            await source.close()


def build_engine(source: SQLiteMessageSource) -> ReportEngine:
    """Create a report engine wired to the configured result cache."""
    config = get_config()
    cache = ResultCache(config.get_cache_dir()) if config.cache.enabled else None
    return ReportEngine(
        source,
        cache=cache,
        yield_every=config.analysis.yield_every,
        ranking_limit=config.analysis.ranking_limit,
        midnight_hours=config.midnight_hours,
    )


def create_error_response(error: Exception, error_type: str = "unknown_error") -> Dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        error: The exception that occurred
        error_type: Type of error for categorization

    Returns:
        Dict containing error information
    """
    response = ToolResponse(success=False, error=str(error), error_type=error_type)
    return response.model_dump(exclude_none=True)


def create_validation_error(error: ValidationError) -> Dict[str, Any]:
    """Create an error response from a parameter validation failure."""
    messages = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )
    return create_error_response(ValueError(messages), "validation_error")
