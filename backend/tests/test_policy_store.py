"""
Tests for branch rule validation: party size, advance windows, blackouts and hours.
"""

from datetime import date, time

import pytest

from reservation_engine.core.errors import InternalError, NotFoundError
from reservation_engine.models import BlackoutWindow, Branch, TimeSlotDefinition
from reservation_engine.schemas.policy import BranchReservationPolicy, DayHours

from conftest import TOMORROW


async def validate(services, session_factory, branch_id, day, at, party_size=2):
    async with session_factory() as db:
        branch = await services.policy_store.get_branch(db, branch_id)
        return await services.policy_store.validate_request(db, branch, day, at, party_size)


@pytest.mark.asyncio
async def test_valid_request_passes(services, session_factory, make_branch):
    branch_id = await make_branch()
    assert await validate(services, session_factory, branch_id, TOMORROW, time(19, 0)) is None


@pytest.mark.asyncio
async def test_unknown_branch_raises_not_found(services, session_factory):
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await services.policy_store.get_branch(db, 999)


@pytest.mark.asyncio
async def test_disabled_branch_rejected(services, session_factory, make_branch):
    branch_id = await make_branch(enabled=False)
    rejection = await validate(services, session_factory, branch_id, TOMORROW, time(19, 0))
    assert rejection is not None
    assert "does not accept reservations" in rejection.reason


@pytest.mark.asyncio
async def test_party_size_bounds(services, session_factory, make_branch):
    branch_id = await make_branch(min_party_size=2, max_party_size=8)
    too_small = await validate(services, session_factory, branch_id, TOMORROW, time(19, 0), party_size=1)
    too_large = await validate(services, session_factory, branch_id, TOMORROW, time(19, 0), party_size=9)
    fits = await validate(services, session_factory, branch_id, TOMORROW, time(19, 0), party_size=8)

    assert "at least 2" in too_small.reason
    assert "cannot exceed 8" in too_large.reason
    assert fits is None


@pytest.mark.asyncio
async def test_advance_booking_windows(services, session_factory, make_branch):
    # Clock is 2030-06-03 10:00 in the branch's zone (UTC)
    branch_id = await make_branch()
    today = date(2030, 6, 3)

    past = await validate(services, session_factory, branch_id, today, time(9, 0))
    too_soon = await validate(services, session_factory, branch_id, today, time(10, 30))
    too_far = await validate(services, session_factory, branch_id, date(2030, 7, 10), time(19, 0))
    just_enough = await validate(services, session_factory, branch_id, today, time(11, 0))

    assert "future" in past.reason
    assert "at least 1 hour" in too_soon.reason
    assert "30 days" in too_far.reason
    assert just_enough is None


@pytest.mark.asyncio
async def test_branch_timezone_applied_to_clock(services, session_factory, make_branch):
    # 10:00 UTC is 15:30 in Kolkata
    branch_id = await make_branch(timezone_name="Asia/Kolkata")
    today = date(2030, 6, 3)

    assert await validate(services, session_factory, branch_id, today, time(15, 0)) is not None
    assert await validate(services, session_factory, branch_id, today, time(16, 0)) is not None
    assert await validate(services, session_factory, branch_id, today, time(17, 0)) is None


@pytest.mark.asyncio
async def test_full_day_blackout(services, session_factory, make_branch):
    branch_id = await make_branch()
    async with session_factory() as db:
        db.add(BlackoutWindow(branch_id=branch_id, blackout_date=TOMORROW, reason="private event"))
        await db.commit()

    rejection = await validate(services, session_factory, branch_id, TOMORROW, time(12, 0))
    assert "private event" in rejection.reason


@pytest.mark.asyncio
async def test_partial_blackout_bounds_are_inclusive(services, session_factory, make_branch):
    branch_id = await make_branch()
    async with session_factory() as db:
        db.add(
            BlackoutWindow(
                branch_id=branch_id,
                blackout_date=TOMORROW,
                start_time=time(18, 0),
                end_time=time(20, 0),
                reason="kitchen maintenance",
            )
        )
        await db.commit()

    assert await validate(services, session_factory, branch_id, TOMORROW, time(18, 0)) is not None
    assert await validate(services, session_factory, branch_id, TOMORROW, time(20, 0)) is not None
    assert await validate(services, session_factory, branch_id, TOMORROW, time(20, 15)) is None


@pytest.mark.asyncio
async def test_operating_hours(services, session_factory, make_branch):
    branch_id = await make_branch()
    assert await validate(services, session_factory, branch_id, TOMORROW, time(22, 0)) is None
    rejection = await validate(services, session_factory, branch_id, TOMORROW, time(22, 30))
    assert "outside operating hours" in rejection.reason


@pytest.mark.asyncio
async def test_closed_day(services, session_factory, make_branch):
    hours = {"tuesday": {"is_closed": True}}
    branch_id = await make_branch(operating_hours=hours)
    rejection = await validate(services, session_factory, branch_id, TOMORROW, time(19, 0))
    assert "outside operating hours" in rejection.reason


@pytest.mark.asyncio
async def test_time_slots_take_precedence_over_hours(services, session_factory, make_branch):
    branch_id = await make_branch()
    async with session_factory() as db:
        db.add(
            TimeSlotDefinition(
                branch_id=branch_id,
                day_of_week=TOMORROW.weekday(),
                start_time=time(12, 0),
                end_time=time(14, 0),
                booking_interval_minutes=30,
                slot_name="Lunch",
            )
        )
        await db.commit()

    assert await validate(services, session_factory, branch_id, TOMORROW, time(13, 0)) is None
    assert await validate(services, session_factory, branch_id, TOMORROW, time(19, 0)) is not None


@pytest.mark.asyncio
async def test_invalid_stored_settings_raise_internal(services, session_factory):
    async with session_factory() as db:
        branch = Branch(
            merchant_id=1,
            name="Broken",
            operating_hours={},
            reservation_settings={"enabled": True, "min_party_size": 10, "max_party_size": 4},
        )
        db.add(branch)
        await db.commit()
        branch_id = branch.id

    async with session_factory() as db:
        with pytest.raises(InternalError):
            await services.policy_store.get_branch(db, branch_id)


def test_policy_defaults_and_unknown_keys():
    policy = BranchReservationPolicy.model_validate({"legacy_flag": True})
    assert policy.enabled is False
    assert policy.requires_approval is True
    assert policy.max_party_size == 12
    assert policy.waitlist_max_size == 20
    assert policy.cancellation_deadline_hours == 2


def test_incomplete_hours_are_closed():
    assert DayHours(open=time(11, 0)).is_closed is True
    with pytest.raises(ValueError):
        DayHours(open=time(22, 0), close=time(11, 0))


@pytest.mark.asyncio
async def test_late_cancellation_window(services, session_factory, make_branch):
    branch_id = await make_branch(cancellation_deadline_hours=2)
    async with session_factory() as db:
        branch = await services.policy_store.get_branch(db, branch_id)

    today = date(2030, 6, 3)
    assert services.policy_store.is_late_cancellation(branch, today, time(11, 30)) is True
    assert services.policy_store.is_late_cancellation(branch, today, time(12, 30)) is False
