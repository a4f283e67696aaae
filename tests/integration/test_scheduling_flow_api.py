"""End-to-end flows through the HTTP surface backed by the in-memory store."""

from __future__ import annotations

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from tutorslots.api.deps import get_scheduling_services
from tutorslots.main import app

TUTOR = {"x-actor-id": "tutor-1", "x-actor-role": "tutor"}
OPERATOR = {"x-actor-id": "ops-1", "x-actor-role": "operator"}


def _student(student_id: str) -> dict[str, str]:
  return {"x-actor-id": student_id, "x-actor-role": "student"}


@pytest.fixture
async def api(services):
  app.dependency_overrides[get_scheduling_services] = lambda: services
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
      yield client
  finally:
    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_open_book_mark_and_complete(api, store):
  opened = await api.post("/v1/schedule/slots/open", json={"slots": [{"date": "2026-03-02", "time": "3:00 PM"}]}, headers=TUTOR)
  assert opened.status_code == 201
  slot_id = opened.json()["slots"][0]["slotId"]

  available = await api.get("/v1/bookings/available/tutor-1", headers=_student("student-0"))
  assert [slot["slotId"] for slot in available.json()["slots"]] == [slot_id]

  attempts = await asyncio.gather(*(api.post("/v1/bookings", json={"slotId": slot_id}, headers=_student(f"student-{index}")) for index in range(5)))
  statuses = sorted(response.status_code for response in attempts)
  assert statuses == [201, 409, 409, 409, 409]
  booking = next(response.json() for response in attempts if response.status_code == 201)

  after = await api.get("/v1/bookings/available/tutor-1", headers=_student("student-0"))
  assert after.json()["slots"] == []

  marked = await api.post("/v1/schedule/attendance", json={"bookingId": booking["bookingId"], "role": "student", "status": "absent"}, headers=OPERATOR)
  assert marked.json()["penaltyCode"] == "502"

  completed = await api.post(f"/v1/bookings/{booking['bookingId']}/complete", headers=TUTOR)
  assert completed.status_code == 200
  assert completed.json()["status"] == "no_show"
  assert store.slots[slot_id].status == "completed"

  summary = (await api.get("/v1/compliance/tutors/tutor-1/summary", headers=OPERATOR)).json()
  assert summary["thisMonth"]["total"] == 0
  assert [entry["code"] for entry in summary["recentPenalties"]] == ["502"]


@pytest.mark.anyio
async def test_repeated_tutor_absence_blocks_until_released(api, booked_session, clock, publisher):
  for hours_ahead in (1, 2, 3):
    booking = booked_session(student_id=f"student-{hours_ahead}", hours_ahead=hours_ahead)
    response = await api.post("/v1/schedule/attendance", json={"bookingId": booking.booking_id, "status": "absent"}, headers=TUTOR)
    assert response.json()["penaltyCode"] == "301"

  summary = (await api.get("/v1/compliance/tutors/tutor-1/summary", headers=TUTOR)).json()
  assert summary["activeBlock"] is True
  assert summary["last30Days"]["ta301"] == 3

  blocked = await api.post("/v1/schedule/slots/open", json={"slots": [{"date": "2026-03-03", "time": "09:00"}]}, headers=TUTOR)
  assert blocked.status_code == 403
  assert blocked.json()["detail"]["code"] == "tutor_blocked"

  clock.advance(days=7, seconds=1)
  released = await api.post("/internal/tasks/release-expired-blocks", headers={"x-tutorslots-task-secret": "test-task-secret"})
  assert released.json() == {"released": 1}
  assert len(publisher.named("compliance.block_released")) == 1

  reopened = await api.post("/v1/schedule/slots/open", json={"slots": [{"date": "2026-03-10", "time": "09:00"}]}, headers=TUTOR)
  assert reopened.status_code == 201


@pytest.mark.anyio
async def test_template_round_trip_and_apply(api):
  saved = await api.put("/v1/schedule/template", json={"entries": [{"dayOfWeek": 2, "time": "18:00"}, {"dayOfWeek": 4, "time": "6:30 PM"}]}, headers=TUTOR)
  assert saved.status_code == 200
  assert [entry["dayOfWeek"] for entry in saved.json()["entries"]] == [2, 4]

  applied = await api.post("/v1/schedule/template/apply", json={"startDate": "2026-03-02", "endDate": "2026-03-15"}, headers=TUTOR)
  assert applied.status_code == 201
  assert applied.json()["count"] == 4

  week = await api.get("/v1/schedule/week", headers=TUTOR)
  assert [slot["date"] for slot in week.json()["slots"]] == ["2026-03-03", "2026-03-05"]
