"""
Reading Schemas
===============
Pydantic models for individual sensor samples and the dashboard trend
series built from them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class ReadingCreate(BaseModel):
    """One sample pushed by the sensor client."""

    timestamp: datetime
    heart_rate: int = Field(..., ge=0, le=300, description="Beats per minute.")
    breathing: int = Field(..., ge=0, le=120, description="Breaths per minute.")
    mood: Optional[int] = Field(default=None, ge=1, le=10)


class ReadingResponse(BaseModel):
    id: Union[int, str]
    user_id: str
    timestamp: datetime
    heart_rate: int
    breathing: int
    mood: Optional[int] = None


class DataPoint(BaseModel):
    """A single chart point: one day (weekly view) or one week (monthly view)."""

    time: str
    value: int
    min: Optional[int] = None
    max: Optional[int] = None
    status: Literal["typical", "atypical"] = "typical"


class TrendsResponse(BaseModel):
    view: Literal["weekly", "monthly"]
    heart_rate: list[DataPoint]
    breathing: list[DataPoint]
    atypical_metrics: list[str] = Field(default_factory=list)
