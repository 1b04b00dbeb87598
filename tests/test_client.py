"""Tests for LedgerClient."""

import pytest

from chainlog.availability import AvailabilityTracker
from chainlog.client import LedgerClient, client_from_config
from chainlog.config import Config
from chainlog.errors import (
    AppendRejected,
    ConnectivityFailure,
    CostEstimationFailed,
    MalformedInput,
)
from chainlog.ledger import estimate_cost
from chainlog.tcp_ledger import TcpLedger

from fakes import FakeClock, FlakyLedger, make_ledger, unreachable


class RecordingLedger(FlakyLedger):
    def __init__(self, size=0):
        super().__init__(size)
        self.budgets = []

    async def append(self, message, cost):
        self.budgets.append(cost)
        return await super().append(message, cost)


class TestBudget:
    def test_minimum_applies_to_small_estimates(self):
        client = LedgerClient(make_ledger())
        assert client.budget_for(21_500) == 200_000

    def test_buffer_added_to_large_estimates(self):
        client = LedgerClient(make_ledger())
        assert client.budget_for(150_000) == 250_000

    @pytest.mark.asyncio
    async def test_append_uses_buffered_budget(self):
        ledger = RecordingLedger()
        client = LedgerClient(ledger)
        message = "x" * 20_000
        await client.append(message)
        assert ledger.budgets == [estimate_cost(message) + 100_000]

    @pytest.mark.asyncio
    async def test_append_returns_receipt(self):
        client = LedgerClient(make_ledger(3))
        receipt = await client.append("hello")
        assert receipt.index == 3
        assert receipt.confirmation_id


class TestValidation:
    @pytest.mark.asyncio
    async def test_blank_message_rejected_before_estimate(self):
        ledger = make_ledger()
        client = LedgerClient(ledger)
        with pytest.raises(MalformedInput):
            await client.append("   ")
        assert ledger.estimates == 0

    @pytest.mark.asyncio
    async def test_non_string_rejected(self):
        with pytest.raises(MalformedInput):
            await LedgerClient(make_ledger()).append(None)


class TestErrorClassification:
    @pytest.mark.asyncio
    async def test_timeout_is_connectivity_failure(self):
        ledger = FlakyLedger(5)
        ledger.delay = 0.2
        client = LedgerClient(ledger, call_timeout=0.05)
        with pytest.raises(ConnectivityFailure, match="timed out"):
            await client.read(0)

    @pytest.mark.asyncio
    async def test_os_error_is_connectivity_failure(self):
        ledger = FlakyLedger(5)
        ledger.read_error = ConnectionRefusedError("refused")
        with pytest.raises(ConnectivityFailure):
            await LedgerClient(ledger).read(0)

    @pytest.mark.asyncio
    async def test_estimate_rejection_becomes_estimation_failure(self):
        ledger = FlakyLedger()
        ledger.estimate_error = AppendRejected("node refused")
        with pytest.raises(CostEstimationFailed):
            await LedgerClient(ledger).append("hello")
        assert ledger.appends == 0

    @pytest.mark.asyncio
    async def test_estimate_connectivity_failure_kept(self):
        ledger = FlakyLedger()
        ledger.estimate_error = unreachable()
        with pytest.raises(ConnectivityFailure):
            await LedgerClient(ledger).append("hello")

    @pytest.mark.asyncio
    async def test_read_all_over_budget_rejected(self):
        client = LedgerClient(make_ledger(10), bulk_read_budget=10_000)
        with pytest.raises(AppendRejected):
            await client.read_all()


class TestTracking:
    @pytest.mark.asyncio
    async def test_failure_and_recovery_reported(self):
        tracker = AvailabilityTracker(5.0, FakeClock())
        ledger = FlakyLedger(5)
        ledger.read_error = unreachable()
        client = LedgerClient(ledger, tracker=tracker)

        with pytest.raises(ConnectivityFailure):
            await client.read(0)
        assert tracker.reachable is False

        ledger.read_error = None
        await client.read(0)
        assert tracker.reachable is True
        assert tracker.recovery_notifications == 1

    def test_client_from_config_defaults_to_tcp(self):
        config = Config(ledger_port=9999, call_timeout=2.0)
        client = client_from_config(config)
        assert isinstance(client.ledger, TcpLedger)
        assert client.tracker is not None

    def test_client_from_config_with_given_ledger(self):
        ledger = make_ledger()
        client = client_from_config(Config(min_cost=300_000), ledger)
        assert client.ledger is ledger
        assert client.budget_for(1) == 300_000
