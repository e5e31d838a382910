"""
Tests for StripeEventPoller — background loop lifecycle and cycle isolation.
"""

import asyncio
import logging

import pytest

from billsync.core.errors import StripeNotConfigured
from billsync.core.structured_logging import poll_cycle_id_var
from billsync.services.event_fetcher import PollSummary
from billsync.services.event_poller import (
    IDLE,
    POLLING,
    StripeEventPoller,
    build_stripe_event_fetcher,
)


class FakeFetcher:
    """Stands in for StripeEventFetcher; each cycle pops the next outcome."""

    def __init__(self, outcomes=None, on_cycle=None):
        self.outcomes = list(outcomes or [])
        self.on_cycle = on_cycle
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def fetch_and_process(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_cycle:
                await self.on_cycle()
            await asyncio.sleep(0)
            outcome = self.outcomes.pop(0) if self.outcomes else PollSummary(pages=1)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class TestStart:
    @pytest.mark.asyncio
    async def test_not_configured_does_not_start(self, caplog):
        poller = StripeEventPoller(fetcher_factory=lambda: None, interval_s=0.001)

        with caplog.at_level(logging.WARNING, logger="billsync.services.event_poller"):
            assert poller.start() is False

        assert not poller.running
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "not configured" in warnings[0].getMessage()

    def test_default_factory_returns_none_without_key(self):
        assert build_stripe_event_fetcher() is None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        fetcher = FakeFetcher()
        factory_calls = []

        def factory():
            factory_calls.append(1)
            return fetcher

        poller = StripeEventPoller(fetcher_factory=factory, interval_s=10)
        try:
            assert poller.start() is True
            assert poller.start() is True
            assert len(factory_calls) == 1
        finally:
            await poller.stop()
        assert not poller.running


class TestLoop:
    @pytest.mark.asyncio
    async def test_failed_cycle_does_not_stop_the_loop(self):
        fetcher = FakeFetcher(outcomes=[RuntimeError("stripe down"), PollSummary(pages=2)])
        poller = StripeEventPoller(fetcher_factory=lambda: fetcher, interval_s=0.001)

        poller.start()
        try:
            await _wait_for(lambda: fetcher.calls >= 3)
        finally:
            await poller.stop()

        assert poller.cycles_run >= 3
        assert poller.last_error is None
        assert poller.state == IDLE

    @pytest.mark.asyncio
    async def test_cycles_never_overlap(self):
        fetcher = FakeFetcher(on_cycle=lambda: asyncio.sleep(0.005))
        poller = StripeEventPoller(fetcher_factory=lambda: fetcher, interval_s=0)

        poller.start()
        try:
            await _wait_for(lambda: fetcher.calls >= 3)
        finally:
            await poller.stop()

        assert fetcher.max_active == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_sleeping_loop(self):
        fetcher = FakeFetcher()
        poller = StripeEventPoller(fetcher_factory=lambda: fetcher, interval_s=3600)

        poller.start()
        await _wait_for(lambda: fetcher.calls == 1 and poller.state == IDLE)
        await poller.stop()

        assert not poller.running
        assert fetcher.calls == 1


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_state_is_polling_during_cycle(self):
        seen = {}

        async def capture():
            seen["state"] = poller.state
            seen["cycle_id"] = poll_cycle_id_var.get()

        fetcher = FakeFetcher(on_cycle=capture)
        poller = StripeEventPoller(fetcher_factory=lambda: fetcher, interval_s=1)

        await poller.poll_once()

        assert seen["state"] == POLLING
        assert seen["cycle_id"]
        assert poller.state == IDLE
        assert poll_cycle_id_var.get() is None

    @pytest.mark.asyncio
    async def test_records_summary(self):
        summary = PollSummary(pages=2, events_seen=5, events_handled=4, events_failed=1)
        poller = StripeEventPoller(fetcher_factory=lambda: FakeFetcher([summary]), interval_s=1)

        assert await poller.poll_once() is summary

        status = poller.status()
        assert status["cycles_run"] == 1
        assert status["last_summary"] == summary.as_dict()
        assert status["last_error"] is None
        assert status["last_completed_at"] is not None
        assert status["running"] is False

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_recorded(self):
        poller = StripeEventPoller(
            fetcher_factory=lambda: FakeFetcher([ValueError("bad page")]), interval_s=1
        )

        with pytest.raises(ValueError):
            await poller.poll_once()

        assert poller.last_error == "ValueError: bad page"
        assert poller.last_completed_at is None
        assert poller.state == IDLE

    @pytest.mark.asyncio
    async def test_not_configured_raises(self):
        poller = StripeEventPoller(fetcher_factory=lambda: None, interval_s=1)

        with pytest.raises(StripeNotConfigured):
            await poller.poll_once()
        assert poller.cycles_run == 0
