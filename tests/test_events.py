"""Tests for taskflow.core.events — the in-process event bus."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from taskflow.core.events import DataUpdated, EventBus, ReminderFired


class TestEventBus:
    def test_delivers_by_event_type(self, bus):
        data_handler = MagicMock()
        reminder_handler = MagicMock()
        bus.subscribe(DataUpdated, data_handler)
        bus.subscribe(ReminderFired, reminder_handler)

        event = DataUpdated(entity_type="task", items=[])
        bus.publish(event)

        data_handler.assert_called_once_with(event)
        reminder_handler.assert_not_called()

    def test_unsubscribe(self, bus):
        handler = MagicMock()
        unsubscribe = bus.subscribe(DataUpdated, handler)
        unsubscribe()
        unsubscribe()
        bus.publish(DataUpdated(entity_type="task"))
        handler.assert_not_called()

    def test_failing_handler_does_not_block_others(self, bus):
        healthy = MagicMock()
        bus.subscribe(DataUpdated, MagicMock(side_effect=RuntimeError("boom")))
        bus.subscribe(DataUpdated, healthy)
        bus.publish(DataUpdated(entity_type="task"))
        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_handlers_are_scheduled(self, bus):
        received = []

        async def handler(event):
            received.append(event.task_id)

        bus.subscribe(ReminderFired, handler)
        bus.publish(ReminderFired(task_id="task_1", title="t", message="m"))
        await asyncio.sleep(0)

        assert received == ["task_1"]

    def test_async_handler_without_loop_is_dropped(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(DataUpdated, handler)
        bus.publish(DataUpdated(entity_type="task"))
        assert received == []

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_logged(self, bus, caplog):
        async def handler(event):
            raise RuntimeError("boom")

        bus.subscribe(DataUpdated, handler)
        with caplog.at_level(logging.ERROR, logger="taskflow.core.events"):
            bus.publish(DataUpdated(entity_type="task"))
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        assert "Async event handler failed" in caplog.text
        assert "boom" in caplog.text
