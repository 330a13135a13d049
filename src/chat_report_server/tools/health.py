"""
Health check tool for the Chat Annual Report server.

Validates archive access, schema presence and cache readiness.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from chat_report_server.config import get_config
from chat_report_server.db import DatabaseError, SQLiteMessageSource


async def health_check_tool(db_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate archive access, schema presence and read-only mode.

    Args:
        db_path: Path to the archive database (configured path if omitted)

    Returns:
        Dict containing health check results including:
        - Database accessibility
        - Schema validation
        - Archive statistics
        - Cache directory status

    Privacy:
        No message content is accessed, only metadata and statistics.
    """
    config = get_config()
    expanded_path = Path(db_path).expanduser() if db_path else config.get_db_path()

    health: Dict[str, Any] = {
        "db_path": str(expanded_path),
        "db_accessible": False,
        "schema_valid": False,
        "read_only": True,
        "stats": {},
        "errors": [],
    }

    if not expanded_path.exists():
        health["errors"].append(f"Database not found at {expanded_path}")
    elif not os.access(expanded_path, os.R_OK):
        health["errors"].append("No read permission for database")
    else:
        source = SQLiteMessageSource(expanded_path, timeout=config.database.timeout_seconds)
        try:
            await source.initialize()
            health["db_accessible"] = True

            schema = await source.check_schema()
            health["schema"] = schema
            health["schema_valid"] = schema["schema_valid"]
            if schema["missing_required"]:
                health["errors"].append(f"Missing tables: {schema['missing_required']}")
            else:
                health["stats"] = await source.get_db_stats()
        except DatabaseError as e:
            health["errors"].append(f"Database error: {e}")
        finally:
            await source.close()

    cache_dir = config.get_cache_dir()
    health["cache"] = {
        "enabled": config.cache.enabled,
        "directory": str(cache_dir),
        "entries": len(list(cache_dir.glob("report_*.json"))) if cache_dir.exists() else 0,
    }

    health["status"] = (
        "healthy"
        if (health["db_accessible"] and health["schema_valid"] and not health["errors"])
        else "unhealthy"
    )
    health["healthy"] = health["status"] == "healthy"

    return health
