"""
Profile Schemas
===============
Patient profile filled in during onboarding and edited from settings.
The classifier reads sex/age/weight/height/conditions from here.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from baymax.models.health_check import HealthProfile


class ProfileUpdate(BaseModel):
    """Partial update. Only fields that are set are written."""

    name: Optional[str] = Field(default=None, max_length=120)
    age: Optional[int] = Field(default=None, ge=0, le=130)
    height: Optional[str] = Field(default=None, max_length=30)
    weight: Optional[str] = Field(default=None, max_length=30)
    sex: Optional[str] = Field(default=None, max_length=30)
    conditions: Optional[str] = Field(default=None, max_length=1000)
    caretaker_name: Optional[str] = Field(default=None, max_length=120)
    caretaker_phone: Optional[str] = Field(default=None, max_length=40)
    email: Optional[str] = Field(default=None, max_length=254)


class Profile(BaseModel):
    user_id: str
    name: str = ""
    age: Optional[int] = None
    height: str = ""
    weight: str = ""
    sex: str = ""
    conditions: str = "None"
    caretaker_name: str = ""
    caretaker_phone: str = ""
    email: str = ""

    @property
    def has_caretaker(self) -> bool:
        return bool(self.caretaker_name or self.caretaker_phone)

    def health_profile(self) -> HealthProfile:
        return HealthProfile(
            sex=self.sex,
            age=self.age or 0,
            weight=self.weight,
            height=self.height,
            conditions=self.conditions or "None",
        )
