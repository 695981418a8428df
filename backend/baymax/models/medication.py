"""
Medication Schemas
==================
Medication palette, weekly schedule and "taken" records behind the
calendar and the daily medication widget.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class MedicationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    frequency: Optional[str] = Field(default=None, max_length=60)
    time: Optional[str] = Field(default=None, max_length=20, description="HH:MM")
    reminder: bool = False


class Medication(MedicationCreate):
    id: Union[int, str]


class ScheduleEntryCreate(BaseModel):
    day: str
    medication: str = Field(..., min_length=1, max_length=120)


class ScheduleResponse(BaseModel):
    """Day name → medication names, in insertion order. Repeats are allowed."""

    schedule: dict[str, list[str]]


class Dose(BaseModel):
    record_id: str
    medication: str
    taken: bool


class TodayResponse(BaseModel):
    day: str
    doses: list[Dose]


class TakenToggleResponse(BaseModel):
    record_id: str
    taken: bool
