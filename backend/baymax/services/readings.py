"""
Readings Service
================
Stores individual sensor samples and builds the dashboard's weekly and
monthly trend series from them.

Weekly view: one point per calendar day for the last 7 days, labelled
by weekday ("Mon").
Monthly view: four 7-day buckets over the last 28 days ("Week 1" is
the oldest).

Each point carries the rounded mean, min and max of its bucket and is
marked atypical when the mean falls outside the threshold range for the
patient's age. Buckets without readings are omitted.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, time, timedelta, timezone
from typing import Literal, Optional

import pandas as pd

from baymax.db.supabase import get_supabase_client
from baymax.models.reading import DataPoint, ReadingCreate, TrendsResponse
from baymax.services import thresholds
from baymax.services.aggregator import round_half_up

logger = logging.getLogger(__name__)

READINGS_TABLE = "readings"

View = Literal["weekly", "monthly"]

_VIEW_DAYS = {"weekly": 7, "monthly": 28}

# (reading column, threshold stat name, label shown in the warning dialog)
_METRICS = (
    ("heart_rate", "heartbeat", "Heart Rate"),
    ("breathing", "respiration rate", "Respiration Rate"),
)

# Baselines for generated sample data
_SAMPLE_HEART_RATE = 75
_SAMPLE_BREATHING = 18
_SAMPLE_MOOD = 7


# ---------------------------------------------------------------------------
# Trend building (pure)
# ---------------------------------------------------------------------------

def build_trends(
    readings: list[dict],
    view: View,
    age: int,
    now: Optional[datetime] = None,
) -> TrendsResponse:
    """Bucket *readings* into chart points for *view*."""
    now = now or datetime.now(timezone.utc)
    if not readings:
        return TrendsResponse(view=view, heart_rate=[], breathing=[])

    df = pd.DataFrame(readings)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)

    today = now.date()
    first_day = today - timedelta(days=_VIEW_DAYS[view] - 1)
    df["day"] = df["timestamp"].dt.date
    df = df[(df["day"] >= first_day) & (df["day"] <= today)].copy()
    if df.empty:
        return TrendsResponse(view=view, heart_rate=[], breathing=[])

    if view == "weekly":
        df["bucket"] = df["day"].apply(lambda d: (d - first_day).days)
    else:
        df["bucket"] = df["day"].apply(lambda d: (d - first_day).days // 7)

    series: dict[str, list[DataPoint]] = {}
    atypical_metrics: list[str] = []

    for column, stat_name, label in _METRICS:
        points: list[DataPoint] = []
        grouped = df.groupby("bucket")[column].agg(["mean", "min", "max"])
        for bucket, row in grouped.iterrows():
            if pd.isna(row["mean"]):
                continue
            value = round_half_up(float(row["mean"]))
            if view == "weekly":
                time_label = (first_day + timedelta(days=int(bucket))).strftime("%a")
            else:
                time_label = f"Week {int(bucket) + 1}"
            typical = thresholds.is_typical(stat_name, value, age)
            points.append(DataPoint(
                time=time_label,
                value=value,
                min=int(row["min"]),
                max=int(row["max"]),
                status="typical" if typical else "atypical",
            ))
        if any(p.status == "atypical" for p in points):
            atypical_metrics.append(label)
        series[column] = points

    return TrendsResponse(
        view=view,
        heart_rate=series["heart_rate"],
        breathing=series["breathing"],
        atypical_metrics=atypical_metrics,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ReadingsService:
    """CRUD over the readings table."""

    def __init__(self) -> None:
        self._db = get_supabase_client()

    async def save_reading(self, user_id: str, reading: ReadingCreate) -> dict:
        row = {
            "user_id": user_id,
            "timestamp": reading.timestamp.isoformat(),
            "heart_rate": reading.heart_rate,
            "breathing": reading.breathing,
            "mood": reading.mood,
        }
        result = self._db.table(READINGS_TABLE).insert(row).execute()
        if not result.data:
            raise RuntimeError(f"Failed to save reading for user {user_id}")
        return result.data[0]

    async def get_readings(self, user_id: str, days: int = 7) -> list[dict]:
        """Readings from the last *days* days, oldest first."""
        start = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            result = (
                self._db.table(READINGS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .gte("timestamp", start.isoformat())
                .order("timestamp", desc=False)
                .execute()
            )
        except Exception:
            logger.exception("Error fetching readings for user %s", user_id)
            return []
        return result.data or []

    async def get_today_session(self, user_id: str) -> Optional[dict]:
        """Most recent reading since midnight UTC, or None."""
        midnight = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)
        try:
            result = (
                self._db.table(READINGS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .gte("timestamp", midnight.isoformat())
                .order("timestamp", desc=True)
                .limit(1)
                .execute()
            )
        except Exception:
            logger.exception("Error fetching today's session for user %s", user_id)
            return None
        return result.data[0] if result.data else None

    async def get_trends(self, user_id: str, view: View, age: int) -> TrendsResponse:
        readings = await self.get_readings(user_id, days=_VIEW_DAYS[view])
        return build_trends(readings, view, age)

    async def seed_sample_readings(self, user_id: str) -> list[dict]:
        """Insert one plausible reading per day for the last 7 days."""
        logger.info("Seeding 7 days of sample readings for user %s", user_id)
        now = datetime.now(timezone.utc)
        rows = [
            {
                "user_id": user_id,
                "timestamp": (now - timedelta(days=i)).isoformat(),
                "heart_rate": round(_SAMPLE_HEART_RATE + (random.random() - 0.5) * 15),
                "breathing": round(_SAMPLE_BREATHING + (random.random() - 0.5) * 4),
                "mood": round(_SAMPLE_MOOD + (random.random() - 0.5) * 2),
            }
            for i in range(6, -1, -1)
        ]
        result = self._db.table(READINGS_TABLE).insert(rows).execute()
        return result.data or []


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: ReadingsService | None = None


def get_readings_service() -> ReadingsService:
    global _default_service
    if _default_service is None:
        _default_service = ReadingsService()
    return _default_service
