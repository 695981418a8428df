"""
Analysis Cache
==============
Persistent, never-expiring cache of classifier and narrative results,
stored in Supabase so every dashboard instance shares it.

Keys are structured records, normalised and then hashed (SHA-256 over
canonical JSON). Free-text fields like weight and height are
lower-cased with whitespace removed, so "70 kg" and "70kg" share an
entry.

Rows:
    health_analysis_cache  (user_id, cache_key, is_typical, timestamp)
    session_analysis_cache (user_id, cache_key, profile, stats, analysis, timestamp)

Both tables carry UNIQUE(user_id, cache_key). Read and write failures
are logged and swallowed; a broken cache only costs a recomputation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from baymax.db.supabase import get_supabase_client
from baymax.models.health_check import HealthCheckRequest, HealthProfile, SessionStats

logger = logging.getLogger(__name__)

HEALTH_CACHE_TABLE = "health_analysis_cache"
SESSION_CACHE_TABLE = "session_analysis_cache"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def _normalise_text(value: str) -> str:
    return "".join(str(value).lower().split())


def _normalise_number(value: Optional[float]) -> Optional[str]:
    # 72, 72.0 and 72.00 are the same reading. Other values keep full precision.
    if value is None:
        return None
    return repr(float(value))


@dataclass(frozen=True)
class HealthCheckKey:
    sex: str
    age: int
    weight: str
    height: str
    stat_name: str
    stat_value: str

    @classmethod
    def from_request(cls, request: HealthCheckRequest) -> "HealthCheckKey":
        return cls(
            sex=_normalise_text(request.sex),
            age=request.age,
            weight=_normalise_text(request.weight),
            height=_normalise_text(request.height),
            stat_name=request.stat_name,
            stat_value=_normalise_number(request.stat_value),
        )

    def digest(self) -> str:
        return _digest(asdict(self))


@dataclass(frozen=True)
class SessionAnalysisKey:
    """Profile plus *rounded* stats: near-identical sessions share a narrative."""

    sex: str
    age: int
    weight: str
    height: str
    conditions: str
    stats: tuple

    @classmethod
    def from_inputs(cls, profile: HealthProfile, stats: SessionStats) -> "SessionAnalysisKey":
        rounded = []
        for block in (stats.pulse, stats.breathing):
            rounded.extend(
                None if v is None else round(v)
                for v in (block.average, block.min, block.max)
            )
        rounded.append(None if stats.mood is None else round(stats.mood))
        return cls(
            sex=_normalise_text(profile.sex),
            age=profile.age,
            weight=_normalise_text(profile.weight),
            height=_normalise_text(profile.height),
            conditions=_normalise_text(profile.conditions),
            stats=tuple(rounded),
        )

    def digest(self) -> str:
        return _digest(asdict(self))


def _digest(fields: dict) -> str:
    canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class AnalysisCache:
    """Supabase-backed store for classifier and narrative results."""

    def __init__(self) -> None:
        self._db = get_supabase_client()

    async def get_health_check(self, user_id: str, key: HealthCheckKey) -> Optional[bool]:
        row = self._fetch(HEALTH_CACHE_TABLE, "is_typical", user_id, key.digest())
        if row is None:
            return None
        is_typical = bool(row["is_typical"])
        logger.info(
            "Health cache hit: %s is %s",
            key.stat_name, "TYPICAL" if is_typical else "ATYPICAL",
        )
        return is_typical

    async def set_health_check(self, user_id: str, key: HealthCheckKey, is_typical: bool) -> None:
        self._store(HEALTH_CACHE_TABLE, {
            "user_id": user_id,
            "cache_key": key.digest(),
            "is_typical": is_typical,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def get_session_analysis(self, user_id: str, key: SessionAnalysisKey) -> Optional[str]:
        row = self._fetch(SESSION_CACHE_TABLE, "analysis", user_id, key.digest())
        return row["analysis"] if row else None

    async def set_session_analysis(
        self,
        user_id: str,
        key: SessionAnalysisKey,
        profile: HealthProfile,
        stats: SessionStats,
        analysis: str,
    ) -> None:
        self._store(SESSION_CACHE_TABLE, {
            "user_id": user_id,
            "cache_key": key.digest(),
            "profile": profile.model_dump(mode="json"),
            "stats": stats.model_dump(mode="json"),
            "analysis": analysis,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # ---- helpers ---------------------------------------------------------

    def _fetch(self, table: str, column: str, user_id: str, cache_key: str) -> Optional[dict]:
        try:
            result = (
                self._db.table(table)
                .select(column)
                .eq("user_id", user_id)
                .eq("cache_key", cache_key)
                .maybe_single()
                .execute()
            )
        except Exception:
            logger.exception("Error reading %s for user %s", table, user_id)
            return None
        # maybe_single() returns None rather than an empty response on some client versions
        if result is None or not result.data:
            return None
        return result.data

    def _store(self, table: str, row: dict) -> None:
        try:
            self._db.table(table).upsert(row, on_conflict="user_id,cache_key").execute()
        except Exception:
            logger.exception("Error saving to %s for user %s", table, row["user_id"])
