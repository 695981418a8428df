"""
Medication Service
==================
Medication palette, weekly schedule and taken records.

Tables:
    medications          (id, user_id, name, frequency, time, reminder)
    medication_schedule  (user_id, day, medications[])  UNIQUE(user_id, day)
    medication_taken     (user_id, record_id, taken)    UNIQUE(user_id, record_id)

A medication may appear in a day's list more than once (taken twice a
day); removal from the schedule is by index for that reason. Duplicate
names in the palette are skipped, best effort, without a DB constraint.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from baymax.db.supabase import get_supabase_client
from baymax.models.medication import WEEKDAYS, MedicationCreate

logger = logging.getLogger(__name__)

MEDICATIONS_TABLE = "medications"
SCHEDULE_TABLE = "medication_schedule"
TAKEN_TABLE = "medication_taken"


class MedicationError(ValueError):
    """Invalid schedule operation (unknown day, index out of range)."""


def taken_record_id(on: date, day: str, index: int, medication: str) -> str:
    """Stable id for one scheduled dose on one date."""
    return f"{on.isoformat()}_{day}_{index}_{medication}"


def _check_day(day: str) -> str:
    normalised = day.strip().capitalize()
    if normalised not in WEEKDAYS:
        raise MedicationError(f"Unknown day: {day}")
    return normalised


class MedicationService:

    def __init__(self) -> None:
        self._db = get_supabase_client()

    # ---- Palette ---------------------------------------------------------

    async def list_medications(self, user_id: str) -> list[dict]:
        result = (
            self._db.table(MEDICATIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("name")
            .execute()
        )
        return result.data or []

    async def add_medication(self, user_id: str, medication: MedicationCreate) -> Optional[dict]:
        """Add to the palette. Returns None if the name is already there."""
        name = medication.name.strip()
        existing = await self.list_medications(user_id)
        if any(m["name"].lower() == name.lower() for m in existing):
            logger.debug("Medication %s already in palette for user %s", name, user_id)
            return None

        row = medication.model_dump()
        row["name"] = name
        row["user_id"] = user_id
        result = self._db.table(MEDICATIONS_TABLE).insert(row).execute()
        if not result.data:
            raise RuntimeError(f"Failed to add medication for user {user_id}")
        return result.data[0]

    async def remove_medication(self, user_id: str, name: str) -> dict[str, list[str]]:
        """Drop *name* from the palette and from every day of the schedule."""
        (
            self._db.table(MEDICATIONS_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("name", name)
            .execute()
        )

        schedule = await self.get_schedule(user_id)
        for day, meds in schedule.items():
            if name in meds:
                schedule[day] = [m for m in meds if m != name]
                self._save_day(user_id, day, schedule[day])
        return schedule

    # ---- Schedule --------------------------------------------------------

    async def get_schedule(self, user_id: str) -> dict[str, list[str]]:
        result = (
            self._db.table(SCHEDULE_TABLE)
            .select("day, medications")
            .eq("user_id", user_id)
            .execute()
        )
        schedule: dict[str, list[str]] = {day: [] for day in WEEKDAYS}
        for row in result.data or []:
            if row["day"] in schedule:
                schedule[row["day"]] = list(row.get("medications") or [])
        return schedule

    async def add_to_schedule(self, user_id: str, day: str, medication: str) -> dict[str, list[str]]:
        day = _check_day(day)
        schedule = await self.get_schedule(user_id)
        schedule[day].append(medication)
        self._save_day(user_id, day, schedule[day])
        return schedule

    async def remove_from_schedule(self, user_id: str, day: str, index: int) -> dict[str, list[str]]:
        day = _check_day(day)
        schedule = await self.get_schedule(user_id)
        if not 0 <= index < len(schedule[day]):
            raise MedicationError(f"No medication at index {index} on {day}")
        del schedule[day][index]
        self._save_day(user_id, day, schedule[day])
        return schedule

    # ---- Taken records ---------------------------------------------------

    async def get_taken(self, user_id: str) -> dict[str, bool]:
        result = (
            self._db.table(TAKEN_TABLE)
            .select("record_id, taken")
            .eq("user_id", user_id)
            .execute()
        )
        return {row["record_id"]: bool(row["taken"]) for row in result.data or []}

    async def toggle_taken(self, user_id: str, record_id: str) -> bool:
        taken = await self.get_taken(user_id)
        new_value = not taken.get(record_id, False)
        self._db.table(TAKEN_TABLE).upsert(
            {"user_id": user_id, "record_id": record_id, "taken": new_value},
            on_conflict="user_id,record_id",
        ).execute()
        return new_value

    async def todays_doses(self, user_id: str, on: Optional[date] = None) -> list[dict]:
        """Doses scheduled for *on*'s weekday with their taken state."""
        on = on or date.today()
        day = WEEKDAYS[on.weekday()]
        schedule = await self.get_schedule(user_id)
        taken = await self.get_taken(user_id)
        doses = []
        for index, medication in enumerate(schedule[day]):
            record_id = taken_record_id(on, day, index, medication)
            doses.append({
                "record_id": record_id,
                "medication": medication,
                "taken": taken.get(record_id, False),
            })
        return doses

    def _save_day(self, user_id: str, day: str, medications: list[str]) -> None:
        self._db.table(SCHEDULE_TABLE).upsert(
            {"user_id": user_id, "day": day, "medications": medications},
            on_conflict="user_id,day",
        ).execute()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: MedicationService | None = None


def get_medication_service() -> MedicationService:
    global _default_service
    if _default_service is None:
        _default_service = MedicationService()
    return _default_service
