from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from src.core.exceptions import ScheduleValidationError, ScheduleNotFoundError, ScheduleStateError
from src.models.phone_number import PhoneNumber
from src.models.scheduled_topup import ScheduledTopUp
from src.schemas.scheduled_topup import ScheduledTopUpCreate, ScheduledTopUpUpdate
from src.services.scheduled_topup_service import ScheduledTopUpService
from src.utils.dates import ensure_utc

UTC = timezone.utc
NOW = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)  # Monday


def daily(**overrides):
    data = dict(
        type="airtime",
        network="MTN",
        amount=Decimal("500"),
        phone_number="08031234567",
        schedule_type="daily",
        recurring_time=time(9, 0),
    )
    data.update(overrides)
    return ScheduledTopUpCreate(**data)


@pytest.fixture
def create(db_session, fake_vtu, user_id):
    def _create(data=None, owner=None, now=NOW):
        return ScheduledTopUpService.create_schedule(
            db_session, owner or user_id, data or daily(), client=fake_vtu, now=now
        )
    return _create


def assert_next_matches_status(schedule):
    assert (schedule.next_execution_at is not None) == (schedule.status == "active")


class TestCreate:
    def test_daily_before_time_runs_today(self, create):
        schedule = create()
        assert schedule.status == "active"
        assert schedule.total_executions == 0
        assert ensure_utc(schedule.next_execution_at) == datetime(2025, 1, 6, 9, 0, tzinfo=UTC)

    def test_daily_after_time_runs_tomorrow(self, create):
        schedule = create(now=NOW.replace(hour=10))
        assert ensure_utc(schedule.next_execution_at) == datetime(2025, 1, 7, 9, 0, tzinfo=UTC)

    def test_one_time_in_past_is_rejected(self, create, db_session):
        data = daily(schedule_type="one_time", recurring_time=None, scheduled_at=NOW - timedelta(minutes=1))
        with pytest.raises(ScheduleValidationError):
            create(data)
        assert db_session.query(ScheduledTopUp).count() == 0

    def test_one_time_in_future(self, create):
        scheduled_at = NOW + timedelta(hours=2)
        schedule = create(daily(schedule_type="one_time", recurring_time=None, scheduled_at=scheduled_at))
        assert ensure_utc(schedule.next_execution_at) == scheduled_at
        assert schedule.recurring_time is None

    def test_recurring_requires_time_of_day(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(recurring_time=None))

    def test_weekly_requires_day_of_week(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(schedule_type="weekly"))

    def test_monthly_requires_day_of_month(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(schedule_type="monthly"))

    def test_irrelevant_recurrence_fields_are_dropped(self, create):
        schedule = create(daily(day_of_week=3, day_of_month=10))
        assert schedule.day_of_week is None
        assert schedule.day_of_month is None

    @pytest.mark.parametrize("phone", ["0803123456", "18031234567", "08001234567", "abc"])
    def test_invalid_phone_is_rejected(self, create, phone):
        with pytest.raises(ScheduleValidationError):
            create(daily(phone_number=phone))

    def test_international_phone_is_normalised(self, create):
        schedule = create(daily(phone_number="+234 803 123 4567"))
        assert schedule.phone_number == "08031234567"

    def test_network_is_canonicalised(self, create):
        assert create(daily(network="9MOBILE")).network == "9mobile"

    def test_unknown_network_is_rejected(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(network="Vodafone"))

    @pytest.mark.parametrize("amount", ["49", "50001"])
    def test_airtime_amount_bounds(self, create, amount):
        with pytest.raises(ScheduleValidationError):
            create(daily(amount=Decimal(amount)))

    def test_data_amount_comes_from_plan(self, create):
        schedule = create(daily(type="data", amount=None, plan_id="1gb"))
        # 300 + 5% margin
        assert schedule.amount == Decimal("315")
        assert schedule.plan_id == "1gb"

    def test_unknown_data_plan_is_rejected(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(type="data", amount=None, plan_id="999gb"))

    def test_linked_phone_number_must_belong_to_user(self, create, db_session):
        phone = PhoneNumber(user_id="someone-else", phone_number="08031234567")
        db_session.add(phone)
        db_session.commit()
        with pytest.raises(ScheduleValidationError):
            create(daily(phone_number=None, phone_number_id=phone.id))

    def test_linked_phone_number(self, create, db_session, user_id):
        phone = PhoneNumber(user_id=user_id, phone_number="08031234567", network_provider="MTN")
        db_session.add(phone)
        db_session.commit()
        schedule = create(daily(phone_number=None, phone_number_id=phone.id))
        assert schedule.phone_number_id == phone.id
        assert schedule.phone_number is None

    def test_needs_exactly_one_target(self, create):
        with pytest.raises(ScheduleValidationError):
            create(daily(phone_number=None))


class TestQueries:
    def test_list_is_owner_scoped_newest_first(self, create, db_session, user_id):
        first = create()
        second = create()
        create(owner="user-2")

        schedules = ScheduledTopUpService.list_schedules(db_session, user_id)
        assert [s.id for s in schedules] == [second.id, first.id]

    def test_other_users_schedule_is_not_found(self, create, db_session):
        schedule = create(owner="user-2")
        with pytest.raises(ScheduleNotFoundError):
            ScheduledTopUpService.get_schedule(db_session, "user-1", schedule.id)
        with pytest.raises(ScheduleNotFoundError):
            ScheduledTopUpService.cancel_schedule(db_session, "user-1", schedule.id)


class TestLifecycle:
    def test_pause_and_resume(self, create, db_session, user_id):
        schedule = create()

        paused = ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)
        assert paused.status == "paused"
        assert_next_matches_status(paused)

        resumed = ScheduledTopUpService.resume_schedule(
            db_session, user_id, schedule.id, now=NOW + timedelta(days=2, hours=3)
        )
        assert resumed.status == "active"
        # missed fires while paused are not replayed
        assert ensure_utc(resumed.next_execution_at) == datetime(2025, 1, 9, 9, 0, tzinfo=UTC)

    def test_pause_requires_active(self, create, db_session, user_id):
        schedule = create()
        ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)
        with pytest.raises(ScheduleStateError, match="Can only pause active schedules"):
            ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)

    def test_resume_requires_paused(self, create, db_session, user_id):
        schedule = create()
        with pytest.raises(ScheduleStateError, match="Can only resume paused schedules"):
            ScheduledTopUpService.resume_schedule(db_session, user_id, schedule.id)

    def test_expired_one_time_cannot_resume(self, create, db_session, user_id):
        scheduled_at = NOW + timedelta(hours=1)
        schedule = create(daily(schedule_type="one_time", recurring_time=None, scheduled_at=scheduled_at))
        ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)
        with pytest.raises(ScheduleStateError):
            ScheduledTopUpService.resume_schedule(db_session, user_id, schedule.id, now=NOW + timedelta(hours=2))

    def test_cancel_paused_schedule(self, create, db_session, user_id):
        schedule = create()
        ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)
        cancelled = ScheduledTopUpService.cancel_schedule(db_session, user_id, schedule.id)
        assert cancelled.status == "cancelled"
        assert_next_matches_status(cancelled)

    def test_cancelling_twice_is_a_conflict(self, create, db_session, user_id):
        schedule = create()
        ScheduledTopUpService.cancel_schedule(db_session, user_id, schedule.id)

        with pytest.raises(ScheduleStateError, match="Cannot cancel a cancelled schedule"):
            ScheduledTopUpService.cancel_schedule(db_session, user_id, schedule.id)

        db_session.refresh(schedule)
        assert schedule.status == "cancelled"
        assert schedule.next_execution_at is None


class TestUpdate:
    def test_terminal_schedule_cannot_be_updated(self, create, db_session, user_id):
        schedule = create()
        ScheduledTopUpService.cancel_schedule(db_session, user_id, schedule.id)
        with pytest.raises(ScheduleStateError, match="Cannot update a completed or cancelled schedule"):
            ScheduledTopUpService.update_schedule(
                db_session, user_id, schedule.id, ScheduledTopUpUpdate(amount=Decimal("700")), now=NOW
            )

    def test_amount_change_keeps_next_run(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        before = schedule.next_execution_at
        updated = ScheduledTopUpService.update_schedule(
            db_session, user_id, schedule.id, ScheduledTopUpUpdate(amount=Decimal("700")),
            client=fake_vtu, now=NOW
        )
        assert updated.amount == Decimal("700")
        assert updated.next_execution_at == before

    def test_recurrence_change_recomputes_next_run(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        updated = ScheduledTopUpService.update_schedule(
            db_session, user_id, schedule.id,
            ScheduledTopUpUpdate(schedule_type="weekly", day_of_week=3, recurring_time=time(18, 30)),
            client=fake_vtu, now=NOW
        )
        assert updated.schedule_type == "weekly"
        assert ensure_utc(updated.next_execution_at) == datetime(2025, 1, 8, 18, 30, tzinfo=UTC)

    def test_paused_schedule_stays_without_next_run(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        ScheduledTopUpService.pause_schedule(db_session, user_id, schedule.id)
        updated = ScheduledTopUpService.update_schedule(
            db_session, user_id, schedule.id, ScheduledTopUpUpdate(recurring_time=time(20, 0)),
            client=fake_vtu, now=NOW
        )
        assert updated.status == "paused"
        assert updated.next_execution_at is None

    def test_invalid_update_changes_nothing(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        with pytest.raises(ScheduleValidationError):
            ScheduledTopUpService.update_schedule(
                db_session, user_id, schedule.id, ScheduledTopUpUpdate(phone_number="123"),
                client=fake_vtu, now=NOW
            )
        db_session.refresh(schedule)
        assert schedule.phone_number == "08031234567"

    def test_max_executions_must_exceed_runs_so_far(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        schedule.total_executions = 3
        db_session.commit()
        with pytest.raises(ScheduleValidationError):
            ScheduledTopUpService.update_schedule(
                db_session, user_id, schedule.id, ScheduledTopUpUpdate(max_executions=3),
                client=fake_vtu, now=NOW
            )

    def test_switch_to_data_derives_amount(self, create, db_session, user_id, fake_vtu):
        schedule = create()
        updated = ScheduledTopUpService.update_schedule(
            db_session, user_id, schedule.id, ScheduledTopUpUpdate(type="data", plan_id="2gb"),
            client=fake_vtu, now=NOW
        )
        assert updated.type == "data"
        assert updated.amount == Decimal("630")
