"""
Health Check Schemas
====================
Pydantic models for the typical/atypical classifier and the session
narrative generator.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from baymax.models.session import StatBlock

StatName = Literal["heartbeat", "respiration rate", "mood"]

STAT_UNITS: dict[str, str] = {
    "heartbeat": "bpm",
    "respiration rate": "breaths/min",
    "mood": "score (1-10)",
}


class HealthProfile(BaseModel):
    """The demographic slice of a profile the classifier looks at."""

    sex: str = ""
    age: int = Field(..., ge=0, le=130)
    weight: str = ""
    height: str = ""
    conditions: str = "None"


class HealthCheckRequest(HealthProfile):
    """One vital-sign value to classify for a profile."""

    stat_value: float
    stat_name: StatName
    unit: str = ""


class HealthCheckResponse(BaseModel):
    is_typical: bool
    stat_name: str


class HealthCheckBatchRequest(BaseModel):
    """The three per-session stats checked together on the dashboard."""

    profile: HealthProfile
    heart_rate_avg: float
    respiration_rate_avg: float
    mood_score: float


class HealthCheckBatchResponse(BaseModel):
    results: list[HealthCheckResponse]
    atypical_stats: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------

class SessionStats(BaseModel):
    """Per-session statistics the narrative is written about."""

    pulse: StatBlock
    breathing: StatBlock
    mood: Optional[float] = None


class NarrativeRequest(BaseModel):
    profile: HealthProfile
    stats: SessionStats


class NarrativeResponse(BaseModel):
    analysis: str
    source: Literal["cache", "gemini", "template"]


# ---------------------------------------------------------------------------
# Caretaker notification
# ---------------------------------------------------------------------------

class CaretakerNotificationRequest(BaseModel):
    atypical_stats: list[str] = Field(..., min_length=1)
    message: Optional[str] = Field(default=None, max_length=500)


class CaretakerNotificationResponse(BaseModel):
    id: Union[int, str]
    notified: bool
    caretaker_name: Optional[str] = None
    caretaker_phone: Optional[str] = None
