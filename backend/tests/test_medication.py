"""
Tests for MedicationService
===========================
Covers:
- Schedule read fills every weekday
- Add to schedule appends (repeats allowed) and upserts the day row
- Remove from schedule by index; bad index and unknown day rejected
- Add medication skips duplicate names (case-insensitive)
- Remove medication also clears it from every scheduled day
- Toggle taken flips the stored value
- Today's doses carry stable record ids and taken state

Run: pytest tests/test_medication.py -v
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from baymax.models.medication import WEEKDAYS, MedicationCreate
from baymax.services.medication import (
    MEDICATIONS_TABLE,
    SCHEDULE_TABLE,
    TAKEN_TABLE,
    MedicationError,
    MedicationService,
    taken_record_id,
)

USER_ID = "user-1"


class _FakeDB:
    """In-memory tables keyed the way the service reads them."""

    def __init__(self, medications=None, schedule=None, taken=None) -> None:
        self.medications: list[dict] = list(medications or [])
        self.schedule: dict[str, list[str]] = dict(schedule or {})
        self.taken: dict[str, bool] = dict(taken or {})
        self.schedule_upserts: list[dict] = []
        self.deleted: list[str] = []

    def table(self, name: str) -> MagicMock:
        mock = MagicMock()
        select_chain = MagicMock()
        select_chain.eq.return_value = select_chain
        select_chain.order.return_value = select_chain
        mock.select.return_value = select_chain

        if name == MEDICATIONS_TABLE:
            select_chain.execute.side_effect = lambda: MagicMock(data=list(self.medications))

            def insert(row):
                chain = MagicMock()

                def execute():
                    stored = {**row, "id": len(self.medications) + 1}
                    self.medications.append(stored)
                    return MagicMock(data=[stored])

                chain.execute.side_effect = execute
                return chain

            mock.insert.side_effect = insert

            delete_chain = MagicMock()

            def delete_eq(column, value):
                if column == "name":
                    self.deleted.append(value)
                    self.medications = [m for m in self.medications if m["name"] != value]
                return delete_chain

            delete_chain.eq.side_effect = delete_eq
            mock.delete.return_value = delete_chain

        elif name == SCHEDULE_TABLE:
            select_chain.execute.side_effect = lambda: MagicMock(data=[
                {"day": day, "medications": list(meds)} for day, meds in self.schedule.items()
            ])

            def upsert(row, on_conflict=None):
                self.schedule_upserts.append(row)
                self.schedule[row["day"]] = list(row["medications"])
                return MagicMock()

            mock.upsert.side_effect = upsert

        elif name == TAKEN_TABLE:
            select_chain.execute.side_effect = lambda: MagicMock(data=[
                {"record_id": rid, "taken": value} for rid, value in self.taken.items()
            ])

            def upsert(row, on_conflict=None):
                self.taken[row["record_id"]] = row["taken"]
                return MagicMock()

            mock.upsert.side_effect = upsert

        return mock


def _build_service(fake: _FakeDB) -> MedicationService:
    with patch("baymax.services.medication.get_supabase_client") as mock_get:
        mock_db = MagicMock()
        mock_db.table = fake.table
        mock_get.return_value = mock_db
        return MedicationService()


class TestSchedule:

    @pytest.mark.asyncio
    async def test_schedule_has_every_day(self):
        svc = _build_service(_FakeDB(schedule={"Monday": ["Ibuprofen"]}))

        schedule = await svc.get_schedule(USER_ID)

        assert list(schedule) == list(WEEKDAYS)
        assert schedule["Monday"] == ["Ibuprofen"]
        assert schedule["Tuesday"] == []

    @pytest.mark.asyncio
    async def test_add_allows_repeats(self):
        fake = _FakeDB(schedule={"Monday": ["Ibuprofen"]})
        svc = _build_service(fake)

        schedule = await svc.add_to_schedule(USER_ID, "monday", "Ibuprofen")

        assert schedule["Monday"] == ["Ibuprofen", "Ibuprofen"]
        assert fake.schedule_upserts[-1] == {
            "user_id": USER_ID, "day": "Monday", "medications": ["Ibuprofen", "Ibuprofen"],
        }

    @pytest.mark.asyncio
    async def test_remove_by_index(self):
        fake = _FakeDB(schedule={"Friday": ["Amoxicillin", "Ibuprofen", "Amoxicillin"]})
        svc = _build_service(fake)

        schedule = await svc.remove_from_schedule(USER_ID, "Friday", 2)

        assert schedule["Friday"] == ["Amoxicillin", "Ibuprofen"]

    @pytest.mark.asyncio
    async def test_remove_bad_index(self):
        svc = _build_service(_FakeDB(schedule={"Friday": ["Amoxicillin"]}))

        with pytest.raises(MedicationError):
            await svc.remove_from_schedule(USER_ID, "Friday", 3)

    @pytest.mark.asyncio
    async def test_unknown_day(self):
        svc = _build_service(_FakeDB())

        with pytest.raises(MedicationError):
            await svc.add_to_schedule(USER_ID, "Funday", "Ibuprofen")


class TestPalette:

    @pytest.mark.asyncio
    async def test_add_new_medication(self):
        fake = _FakeDB()
        svc = _build_service(fake)

        row = await svc.add_medication(USER_ID, MedicationCreate(name="  Ibuprofen ", time="08:00"))

        assert row["name"] == "Ibuprofen"
        assert row["user_id"] == USER_ID
        assert row["time"] == "08:00"

    @pytest.mark.asyncio
    async def test_duplicate_skipped(self):
        fake = _FakeDB(medications=[{"id": 1, "name": "Ibuprofen"}])
        svc = _build_service(fake)

        assert await svc.add_medication(USER_ID, MedicationCreate(name="ibuprofen")) is None
        assert len(fake.medications) == 1

    @pytest.mark.asyncio
    async def test_remove_clears_schedule(self):
        fake = _FakeDB(
            medications=[{"id": 1, "name": "Ibuprofen"}, {"id": 2, "name": "Amoxicillin"}],
            schedule={"Monday": ["Ibuprofen"], "Wednesday": ["Ibuprofen", "Amoxicillin"], "Friday": ["Amoxicillin"]},
        )
        svc = _build_service(fake)

        schedule = await svc.remove_medication(USER_ID, "Ibuprofen")

        assert fake.deleted == ["Ibuprofen"]
        assert schedule["Monday"] == []
        assert schedule["Wednesday"] == ["Amoxicillin"]
        assert schedule["Friday"] == ["Amoxicillin"]
        # Only days that changed are written
        assert {row["day"] for row in fake.schedule_upserts} == {"Monday", "Wednesday"}


class TestTaken:

    @pytest.mark.asyncio
    async def test_toggle_flips(self):
        fake = _FakeDB()
        svc = _build_service(fake)

        assert await svc.toggle_taken(USER_ID, "rec-1") is True
        assert await svc.toggle_taken(USER_ID, "rec-1") is False

    @pytest.mark.asyncio
    async def test_todays_doses(self):
        monday = date(2026, 3, 2)
        record_id = taken_record_id(monday, "Monday", 1, "Amoxicillin")
        fake = _FakeDB(
            schedule={"Monday": ["Ibuprofen", "Amoxicillin"]},
            taken={record_id: True},
        )
        svc = _build_service(fake)

        doses = await svc.todays_doses(USER_ID, monday)

        assert [d["medication"] for d in doses] == ["Ibuprofen", "Amoxicillin"]
        assert doses[0]["taken"] is False
        assert doses[1]["taken"] is True
        assert doses[1]["record_id"] == "2026-03-02_Monday_1_Amoxicillin"
