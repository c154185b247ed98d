"""Tests for fire-and-forget notification dispatch."""

import pytest
from unittest.mock import AsyncMock

from clinic_booking.core.booking.dispatch import NotificationDispatcher
from clinic_booking.infra.notifications import NotificationResult, Notifier


class TestNotificationDispatcher:
    """Test NotificationDispatcher."""

    @pytest.fixture
    def notifier(self):
        notifier = AsyncMock(spec=Notifier)
        notifier.notify.return_value = NotificationResult(success=True, sent_count=1, total=1)
        return notifier

    @pytest.fixture
    def dispatcher(self, notifier, store):
        return NotificationDispatcher(notifier, store)

    @pytest.mark.asyncio
    async def test_dispatch_does_not_wait(self, dispatcher, notifier):
        """dispatch returns before the notifier runs."""
        task = dispatcher.dispatch({"id": "appt-1"}, "doc-1")

        assert dispatcher.pending == 1
        notifier.notify.assert_not_called()

        result = await task

        assert result.success
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_passes_doctor_row(self, dispatcher, notifier):
        dispatcher.dispatch({"id": "appt-1"}, "doc-1")
        await dispatcher.drain()

        appointment, doctor = notifier.notify.call_args.args
        assert appointment == {"id": "appt-1"}
        assert doctor["first_name"] == "Jane"

    @pytest.mark.asyncio
    async def test_unknown_doctor_skips_notification(self, dispatcher, notifier):
        result = await dispatcher.dispatch({"id": "appt-1"}, "doc-missing")

        assert result is None
        notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_notifier_crash_is_contained(self, dispatcher, notifier):
        notifier.notify.side_effect = RuntimeError("smtp exploded")

        result = await dispatcher.dispatch({"id": "appt-1"}, "doc-1")

        assert result is None

    @pytest.mark.asyncio
    async def test_undelivered_result_is_returned(self, dispatcher, notifier):
        notifier.notify.return_value = NotificationResult(success=False, error="No admin emails found")

        result = await dispatcher.dispatch({}, "doc-1")

        assert not result.success

    @pytest.mark.asyncio
    async def test_drain_waits_for_all(self, dispatcher, notifier):
        for n in range(3):
            dispatcher.dispatch({"id": f"appt-{n}"}, "doc-1")

        await dispatcher.drain()

        assert notifier.notify.await_count == 3
        assert dispatcher.pending == 0
