"""
Tests for the Direct Reminder Scanner
"""
from datetime import timedelta

import pytest

from conftest import NOW, TODAY, TZ, reload
from database import Appointment, AppointmentStatusEnum
from direct_reminder_scanner import (
    NOT_APPROVED,
    TIME_NOT_IN_RANGE,
    evaluate_candidate,
    in_reminder_window,
    scan_direct_reminders,
)


class TestWindow:
    """0 < minutes_remaining <= 60"""

    @pytest.mark.parametrize("minutes,eligible", [
        (61.0, False),
        (60.0, True),
        (30.0, True),
        (0.01, True),
        (0.0, False),
        (-5.0, False),
    ])
    def test_boundaries(self, minutes, eligible):
        assert in_reminder_window(minutes) is eligible

    def test_not_approved_is_rejected_on_recheck(self):
        appointment = Appointment(
            id="a1", status=AppointmentStatusEnum.CANCELLED, date=TODAY, time="12:30"
        )
        assert evaluate_candidate(appointment, NOW, TZ) == (NOT_APPROVED, None)

    def test_reports_minutes_remaining(self):
        appointment = Appointment(
            id="a1", status=AppointmentStatusEnum.APPROVED, date=TODAY, time="12:45"
        )
        assert evaluate_candidate(appointment, NOW, TZ) == (None, 45.0)


@pytest.mark.asyncio
class TestScan:
    """Cycles against the store"""

    async def test_sixty_minutes_is_sent_and_latched(self, session_factory, make_appointment, gateway):
        appointment = make_appointment(minutes_ahead=60)

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["sent"] == 1
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is True
        user_id, title, message, buttons, data = gateway.send.await_args.args
        assert user_id == appointment.customer_id
        assert buttons[0]["id"] == "confirm"
        assert data == {"appointmentId": appointment.id, "type": "one_hour_reminder"}

    async def test_sixty_one_minutes_is_skipped(self, session_factory, make_appointment, gateway):
        appointment = make_appointment(minutes_ahead=61)

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["skipped"] == 1
        assert summary["skip_reasons"] == {TIME_NOT_IN_RANGE: 1}
        gateway.send.assert_not_awaited()
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is False

    async def test_starting_now_is_skipped(self, session_factory, make_appointment, gateway):
        make_appointment(minutes_ahead=0)

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["skip_reasons"] == {TIME_NOT_IN_RANGE: 1}
        gateway.send.assert_not_awaited()

    async def test_fraction_of_a_minute_left_is_sent(self, session_factory, make_appointment, gateway):
        appointment = make_appointment(minutes_ahead=0)
        now = NOW - timedelta(milliseconds=600)  # 0.01 minutes before the slot

        summary = await scan_direct_reminders(session_factory, gateway, now=now, tz=TZ)

        assert summary["sent"] == 1
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is True

    async def test_second_run_sends_nothing(self, session_factory, make_appointment, gateway):
        make_appointment(minutes_ahead=30)

        await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)
        summary = await scan_direct_reminders(session_factory, gateway, now=NOW + timedelta(minutes=1), tz=TZ)

        assert summary["checked"] == 0
        assert gateway.send.await_count == 1

    async def test_gateway_failure_leaves_latch_for_retry(
        self, session_factory, make_appointment, failing_gateway, gateway
    ):
        appointment = make_appointment(minutes_ahead=30)

        summary = await scan_direct_reminders(session_factory, failing_gateway, now=NOW, tz=TZ)
        assert summary["failed"] == 1
        assert summary["sent"] == 0
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is False

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW + timedelta(minutes=1), tz=TZ)
        assert summary["checked"] == 1
        assert summary["sent"] == 1
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is True

    async def test_other_days_and_statuses_are_not_candidates(self, session_factory, make_appointment, gateway):
        make_appointment(minutes_ahead=24 * 60)
        make_appointment(minutes_ahead=30, status="pending")

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["checked"] == 0
        gateway.send.assert_not_awaited()

    async def test_bad_time_values_are_skipped_with_reason(self, session_factory, make_appointment, gateway):
        make_appointment(minutes_ahead=30, time="25:99")
        make_appointment(minutes_ahead=30, time=None)
        good = make_appointment(minutes_ahead=30)

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["skip_reasons"] == {"invalid_date_parse": 1, "invalid_date_time": 1}
        assert summary["sent"] == 1
        assert summary == {
            "checked": 3, "sent": 1, "skipped": 2, "failed": 0,
            "skip_reasons": {"invalid_date_parse": 1, "invalid_date_time": 1},
        }
        assert reload(session_factory, Appointment, good.id).one_hour_reminder_sent is True

    async def test_store_unavailable_skips_cycle(self, gateway):
        assert await scan_direct_reminders(None, gateway, now=NOW, tz=TZ) is None

    async def test_failed_commit_leaves_latch_for_next_cycle(
        self, session_factory, make_appointment, gateway, fail_next_commit
    ):
        appointment = make_appointment(minutes_ahead=30)

        await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is False

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW + timedelta(minutes=1), tz=TZ)

        assert summary["checked"] == 1
        assert summary["sent"] == 1
        assert gateway.send.await_count == 2
        assert reload(session_factory, Appointment, appointment.id).one_hour_reminder_sent is True

    async def test_status_change_during_cycle_is_seen(self, session_factory, make_appointment, gateway):
        first = make_appointment(minutes_ahead=30)
        second = make_appointment(minutes_ahead=40)
        by_customer = {first.customer_id: second.id, second.customer_id: first.id}

        async def cancel_other(user_id, *args):
            session = session_factory()
            try:
                other = session.get(Appointment, by_customer[user_id])
                other.status = AppointmentStatusEnum.CANCELLED
                session.commit()
            finally:
                session.close()
            return True

        gateway.send.side_effect = cancel_other

        summary = await scan_direct_reminders(session_factory, gateway, now=NOW, tz=TZ)

        assert summary["sent"] == 1
        assert summary["skip_reasons"] == {NOT_APPROVED: 1}
        assert gateway.send.await_count == 1
