"""
Profile Service
===============
Reads and upserts the patient profile (one row per user in ``profiles``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from baymax.db.supabase import get_supabase_client
from baymax.models.profile import Profile, ProfileUpdate

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


def _to_profile(row: dict) -> Profile:
    # Nullable columns fall back to the model defaults
    return Profile(**{k: v for k, v in row.items() if v is not None and k in Profile.model_fields})


class ProfileService:

    def __init__(self) -> None:
        self._db = get_supabase_client()

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        result = (
            self._db.table(PROFILES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        if result is None or not result.data:
            return None
        return _to_profile(result.data)

    async def update_profile(self, user_id: str, updates: ProfileUpdate) -> Profile:
        """Upsert only the fields present in *updates*."""
        row = updates.model_dump(exclude_unset=True)
        row["user_id"] = user_id
        row["updated_at"] = datetime.now(timezone.utc).isoformat()

        result = self._db.table(PROFILES_TABLE).upsert(row, on_conflict="user_id").execute()
        if not result.data:
            raise RuntimeError(f"Failed to update profile for user {user_id}")

        logger.info("Profile updated for user %s: %s", user_id, sorted(row.keys() - {"user_id", "updated_at"}))
        return _to_profile(result.data[0])


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: ProfileService | None = None


def get_profile_service() -> ProfileService:
    global _default_service
    if _default_service is None:
        _default_service = ProfileService()
    return _default_service
