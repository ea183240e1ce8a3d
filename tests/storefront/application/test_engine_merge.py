"""Merge protocol tests for the cart reconciliation engine."""

import asyncio
from decimal import Decimal

import pytest
from storefront.cart.errors import ErrorKind
from storefront.reconciliation.engine import TickOutcome
from storefront.reconciliation.state import ReconciliationState


async def _let_merge_start():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture()
def clear_counter(guest_store, monkeypatch):
    counter = {"calls": 0}
    original = guest_store.clear

    def counting_clear():
        counter["calls"] += 1
        original()

    monkeypatch.setattr(guest_store, "clear", counting_clear)
    return counter


class TestSignIn:
    @pytest.mark.asyncio
    async def test_sign_in_with_guest_items_goes_pending(self, engine, guest_store, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        assert engine.observe() is ReconciliationState.PENDING

    @pytest.mark.asyncio
    async def test_sign_in_with_empty_guest_cart_needs_no_merge(self, engine, remote, auth):
        auth.login("cust-1")
        assert await engine.tick() is TickOutcome.SETTLED
        assert engine.reconciliation_state() is ReconciliationState.NOT_NEEDED
        assert remote.calls_to("merge_in") == []

    @pytest.mark.asyncio
    async def test_merge_commits_and_clears_guest(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")

        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert engine.reconciliation_state() is ReconciliationState.COMMITTED
        assert guest_store.snapshot().is_empty
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}
        assert engine.last_error() is None

    @pytest.mark.asyncio
    async def test_no_tick_while_auth_unknown(self, engine, guest_store, auth):
        guest_store.add("ring-001")
        auth.mark_loading()
        assert await engine.tick() is TickOutcome.AWAITING_AUTH
        assert engine.is_loading() is True

    @pytest.mark.asyncio
    async def test_anonymous_tick_does_nothing(self, engine, remote):
        assert await engine.tick() is TickOutcome.ANONYMOUS
        assert remote.calls == []


class TestExactlyOnce:
    @pytest.mark.asyncio
    async def test_repeated_ticks_merge_once(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        await engine.tick()
        await engine.tick()
        await engine.tick()
        assert len(remote.calls_to("merge_in")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_ticks_start_one_merge(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")

        outcomes = await asyncio.gather(engine.tick(), engine.tick())
        assert sorted(o.value for o in outcomes) == sorted(
            [TickOutcome.MERGE_COMMITTED.value, TickOutcome.REENTRANT_MERGE_IGNORED.value]
        )
        assert len(remote.calls_to("merge_in")) == 1

    @pytest.mark.asyncio
    async def test_merging_state_reports_loading(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        assert engine.reconciliation_state() is ReconciliationState.MERGING
        assert engine.is_loading() is True
        assert await engine.tick() is TickOutcome.REENTRANT_MERGE_IGNORED

        remote.merge_gate.set()
        assert await task is TickOutcome.MERGE_COMMITTED
        assert engine.is_loading() is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failures_then_success(self, engine, guest_store, remote, auth, clear_counter):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.fail_next("merge_in", times=2)

        assert await engine.tick() is TickOutcome.MERGE_FAILED
        assert engine.last_error() is ErrorKind.REMOTE_UNAVAILABLE
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}
        assert await engine.tick() is TickOutcome.MERGE_FAILED
        assert clear_counter["calls"] == 0

        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert clear_counter["calls"] == 1
        assert engine.last_error() is None
        assert len(remote.calls_to("merge_in")) == 3

        await engine.tick()
        assert clear_counter["calls"] == 1

    @pytest.mark.asyncio
    async def test_empty_refetch_keeps_guest_cart(self, engine, guest_store, remote, auth, clear_counter):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.configure(visibility_lag=1)

        assert await engine.tick() is TickOutcome.MERGE_INCOMPLETE
        assert engine.reconciliation_state() is ReconciliationState.FAILED
        assert engine.last_error() is ErrorKind.MERGE_INCOMPLETE
        assert clear_counter["calls"] == 0
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}

    @pytest.mark.asyncio
    async def test_retry_after_lag_does_not_double_count(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.configure(visibility_lag=1)

        await engine.tick()
        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}

    @pytest.mark.asyncio
    async def test_rejected_merge_counts_as_unavailable(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.configure(merge_reports_failure=True)

        assert await engine.tick() is TickOutcome.MERGE_FAILED
        assert engine.last_error() is ErrorKind.REMOTE_UNAVAILABLE
        assert not guest_store.snapshot().is_empty

    @pytest.mark.asyncio
    async def test_refetch_failure_fails_merge(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.fail_next("snapshot")

        assert await engine.tick() is TickOutcome.MERGE_FAILED
        assert engine.reconciliation_state() is ReconciliationState.FAILED

    @pytest.mark.asyncio
    async def test_failed_session_with_emptied_guest_cart_settles(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.fail_next("merge_in")
        await engine.tick()

        guest_store.remove("ring-001")
        assert await engine.tick() is TickOutcome.MERGE_NOT_NEEDED
        assert engine.reconciliation_state() is ReconciliationState.NOT_NEEDED

    @pytest.mark.asyncio
    async def test_clear_error(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.fail_next("merge_in")
        await engine.tick()
        engine.clear_error()
        assert engine.last_error() is None


class TestConflicts:
    @pytest.mark.asyncio
    async def test_quantities_summed_on_shared_products(self, engine, guest_store, remote, auth):
        remote.seed("ring-001", 1)
        remote.seed("chain-001", 1)
        guest_store.add("ring-001", 2)
        auth.login("cust-1")

        await engine.tick()
        assert engine.unified_snapshot().quantities() == {"ring-001": 3, "chain-001": 1}

    @pytest.mark.asyncio
    async def test_account_price_kept_on_conflict(self, engine, guest_store, remote, auth):
        remote.seed("ring-001", 1, unit_price=Decimal("20.00"))
        guest_store.add("ring-001", 1)
        auth.login("cust-1")

        await engine.tick()
        assert engine.unified_snapshot().find("ring-001").unit_price == Decimal("20.00")


class TestSessionReset:
    @pytest.mark.asyncio
    async def test_logout_then_login_starts_new_merge(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        await engine.tick()
        assert engine.reconciliation_state() is ReconciliationState.COMMITTED

        auth.logout()
        assert await engine.tick() is TickOutcome.ANONYMOUS
        assert engine.reconciliation_state() is ReconciliationState.IDLE
        assert engine.unified_snapshot().is_empty

        guest_store.add("pearl-001", 1)
        auth.login("cust-1")
        assert engine.observe() is ReconciliationState.PENDING
        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert len(remote.calls_to("merge_in")) == 2
        assert engine.unified_snapshot().quantities() == {"ring-001": 1, "pearl-001": 1}

    @pytest.mark.asyncio
    async def test_logout_during_merge_discards_result(self, engine, guest_store, remote, auth, clear_counter):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        auth.logout()
        engine.observe()
        remote.merge_gate.set()

        assert await task is TickOutcome.SUPERSEDED
        assert engine.reconciliation_state() is ReconciliationState.IDLE
        assert clear_counter["calls"] == 0
        assert engine.unified_snapshot().quantities() == {"ring-001": 1}

    @pytest.mark.asyncio
    async def test_principal_change_opens_new_session(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001")
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        auth.login("cust-2")
        assert engine.observe() is ReconciliationState.PENDING
        remote.merge_gate.set()

        assert await task is TickOutcome.SUPERSEDED
        assert await engine.tick() is TickOutcome.MERGE_COMMITTED


class TestInterruptedMerge:
    @pytest.mark.asyncio
    async def test_cancelled_merge_can_be_retried(self, engine, guest_store, remote, auth, clear_counter):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.reconciliation_state() is ReconciliationState.FAILED
        assert engine.is_loading() is False
        assert clear_counter["calls"] == 0

        remote.merge_gate.set()
        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_releases_latch(self, engine, guest_store, remote, auth, monkeypatch):
        guest_store.add("ring-001")
        auth.login("cust-1")

        async def broken_merge_in(lines, merge_key):
            raise RuntimeError("adapter bug")

        monkeypatch.setattr(remote, "merge_in", broken_merge_in)
        with pytest.raises(RuntimeError):
            await engine.tick()
        assert engine.reconciliation_state() is ReconciliationState.FAILED

        monkeypatch.undo()
        assert await engine.tick() is TickOutcome.MERGE_COMMITTED


class TestGuestLinesAddedDuringMerge:
    @pytest.mark.asyncio
    async def test_lines_added_while_auth_unknown_survive_commit(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        auth.mark_loading()
        await engine.add("chain-001", 1)
        auth.login("cust-1")
        remote.merge_gate.set()

        assert await task is TickOutcome.MERGE_COMMITTED
        assert guest_store.snapshot().quantities() == {"chain-001": 1}
        assert engine.unified_snapshot().quantities() == {"ring-001": 2}

        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert guest_store.snapshot().is_empty
        assert engine.unified_snapshot().quantities() == {"ring-001": 2, "chain-001": 1}
        assert len(remote.calls_to("merge_in")) == 2

    @pytest.mark.asyncio
    async def test_extra_quantity_of_merged_product_is_kept(self, engine, guest_store, remote, auth):
        guest_store.add("ring-001", 2)
        auth.login("cust-1")
        remote.merge_gate = asyncio.Event()

        task = asyncio.create_task(engine.tick())
        await _let_merge_start()
        auth.mark_loading()
        await engine.add("ring-001", 1)
        auth.login("cust-1")
        remote.merge_gate.set()
        await task

        assert guest_store.snapshot().quantities() == {"ring-001": 1}
        await engine.tick()
        assert engine.unified_snapshot().quantities() == {"ring-001": 3}

    @pytest.mark.asyncio
    async def test_settled_session_picks_up_later_guest_lines(self, engine, guest_store, remote, auth):
        auth.login("cust-1")
        assert await engine.tick() is TickOutcome.SETTLED

        auth.mark_loading()
        await engine.add("pearl-001", 1)
        auth.login("cust-1")

        assert await engine.tick() is TickOutcome.MERGE_COMMITTED
        assert guest_store.snapshot().is_empty
        assert engine.unified_snapshot().quantities() == {"pearl-001": 1}
