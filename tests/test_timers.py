"""Tests for ScheduledWake."""

import asyncio
from unittest.mock import Mock

import pytest

from live_assist.timers import ScheduledWake


@pytest.mark.unit
@pytest.mark.asyncio
class TestScheduledWake:
    """Test cases for the single-slot timer."""

    async def test_fires_after_delay(self) -> None:
        """Test the callback runs with its arguments after the delay."""
        callback = Mock()
        wake = ScheduledWake("test")

        wake.schedule(0.01, callback, "other_party")
        assert wake.pending
        await asyncio.sleep(0.05)

        callback.assert_called_once_with("other_party")
        assert not wake.pending

    async def test_reschedule_replaces_pending(self) -> None:
        """Test scheduling again leaves only the newest timer."""
        first = Mock()
        second = Mock()
        wake = ScheduledWake("test")

        wake.schedule(0.01, first)
        wake.schedule(0.02, second)
        await asyncio.sleep(0.06)

        first.assert_not_called()
        second.assert_called_once()

    async def test_cancel_is_idempotent(self) -> None:
        """Test cancel reports whether a wake was pending."""
        callback = Mock()
        wake = ScheduledWake("test")
        wake.schedule(0.01, callback)

        assert wake.cancel() is True
        assert wake.cancel() is False
        await asyncio.sleep(0.03)

        callback.assert_not_called()

    async def test_callback_error_is_contained(self) -> None:
        """Test a failing callback does not break the wake."""
        wake = ScheduledWake("test")
        wake.schedule(0.0, Mock(side_effect=RuntimeError("boom")))
        await asyncio.sleep(0.01)

        callback = Mock()
        wake.schedule(0.0, callback)
        await asyncio.sleep(0.01)

        callback.assert_called_once()
