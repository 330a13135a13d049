"""
Result cache for computed annual reports.

One JSON document per scope slot ("all" or a year) under the cache
directory. A stored report is served only when its freshness token equals
the current token of the message source. Cache read and write failures are
logged and degrade to recomputation.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .models import AnnualReport, CachedReport
from .scope import Scope

logger = logging.getLogger(__name__)


class ResultCache:
    """Scope-keyed store of report bundles tagged with a freshness token."""

    def __init__(self, cache_dir: Union[str, Path]):
        """Initialize the cache directory."""
        self.cache_dir = Path(cache_dir).expanduser()

    def _slot_path(self, scope: Scope) -> Path:
        return self.cache_dir / f"report_{scope.key}.json"

    def _load(self, scope: Scope) -> Optional[CachedReport]:
        """Read a slot from disk."""
        path = self._slot_path(scope)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return CachedReport.model_validate(json.load(f))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error loading cached report {path}: {e}")
            return None

    def get(self, scope: Scope, freshness_token: int) -> Optional[AnnualReport]:
        """Return the cached report for a scope, or None on a miss."""
        cached = self._load(scope)
        if cached is None:
            logger.debug(f"Cache miss for scope {scope}")
            return None

        if cached.scope != scope.key or cached.freshness_token != freshness_token:
            logger.info(
                f"Cached report for scope {scope} is stale "
                f"(stored token {cached.freshness_token}, current {freshness_token})"
            )
            return None

        logger.info(f"Cache hit for scope {scope}")
        return cached.report

    def put(self, scope: Scope, report: AnnualReport, freshness_token: int) -> bool:
        """Store a report for a scope, replacing the slot atomically."""
        payload = CachedReport(
            scope=scope.key,
            freshness_token=freshness_token,
            saved_at=datetime.now(),
            report=report,
        )
        path = self._slot_path(scope)

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=self.cache_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload.model_dump(mode="json"), f, ensure_ascii=False)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            logger.info(f"Cached report for scope {scope}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving cached report {path}: {e}")
            return False

    def invalidate(self, scope: Optional[Scope] = None) -> int:
        """Drop one slot, or every slot when no scope is given.

        Returns the number of slots removed.
        """
        if scope is not None:
            paths = [self._slot_path(scope)]
        elif self.cache_dir.exists():
            paths = list(self.cache_dir.glob("report_*.json"))
        else:
            paths = []

        removed = 0
        for path in paths:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Error removing cached report {path}: {e}")

        if removed:
            logger.info(f"Removed {removed} cached report(s)")
        return removed
