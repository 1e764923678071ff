from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from services.portal.app.services.cart_base import (
    CartErrorKind,
    RemoteRejectedError,
    RemoteUnavailableError,
)
from services.portal.app.services.checkout import (
    CheckoutOrchestrator,
    CheckoutState,
    IllegalCheckoutTransition,
)


def _fill(operations, session, *lines: tuple[str, int]) -> None:
    for product_id, quantity in lines:
        outcome = asyncio.run(operations.add_item(session, product_id, quantity))
        assert outcome.ok


def test_checkout_clears_snapshot_without_refetch(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 2), ("P2", 2))
    assert operations.store.snapshot.total_price == Decimal("50.00")
    service.reset_calls()

    outcome = asyncio.run(orchestrator.checkout(customer))

    assert outcome.ok
    assert outcome.state is CheckoutState.CLEARED
    assert outcome.order is not None
    assert outcome.order.total == Decimal("50.00")
    assert outcome.snapshot.items == ()
    assert outcome.snapshot.total_item_count == 0
    assert service.methods() == ["get_cart", "checkout"]
    assert operations.store.snapshot.is_loading is False


def test_second_checkout_while_submitting_is_rejected(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 1))
    service.reset_calls()

    async def scenario():
        release = asyncio.Event()
        service.holds["checkout"] = release
        first = asyncio.create_task(orchestrator.checkout(customer))
        await asyncio.sleep(0.01)
        assert orchestrator.state is CheckoutState.SUBMITTING

        calls_before = len(service.calls)
        second = await orchestrator.checkout(customer)
        assert len(service.calls) == calls_before

        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second.error is not None
    assert second.error.kind == CartErrorKind.CHECKOUT_IN_PROGRESS
    assert first.ok
    assert service.count("checkout") == 1


def test_second_checkout_while_syncing_is_rejected(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 1))
    service.reset_calls()

    async def scenario():
        release = asyncio.Event()
        service.holds["get_cart"] = release
        first = asyncio.create_task(orchestrator.checkout(customer))
        await asyncio.sleep(0.01)
        assert orchestrator.state is CheckoutState.SYNCING

        second = await orchestrator.checkout(customer)
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second.error is not None
    assert second.error.kind == CartErrorKind.CHECKOUT_IN_PROGRESS
    assert first.ok


def test_empty_cart_fails_before_remote_call(orchestrator, service, customer) -> None:
    outcome = asyncio.run(orchestrator.checkout(customer))

    assert outcome.error is not None
    assert outcome.error.kind == CartErrorKind.EMPTY_CART
    assert outcome.state is CheckoutState.FAILED
    assert service.calls == []


def test_admin_checkout_is_forbidden(orchestrator, service, admin) -> None:
    outcome = asyncio.run(orchestrator.checkout(admin))

    assert outcome.error is not None
    assert outcome.error.kind == CartErrorKind.FORBIDDEN
    assert service.calls == []


def test_drift_is_repaired_by_pushing_local_lines(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 2), ("P2", 1))
    # The server cart was emptied by something outside this session.
    asyncio.run(service.inner.clear_cart(customer.token))
    service.reset_calls()

    outcome = asyncio.run(orchestrator.checkout(customer))

    assert service.methods() == ["get_cart", "add_item", "add_item", "checkout"]
    assert service.calls[1] == ("add_item", (customer.token, "P1", 2))
    assert outcome.ok
    assert outcome.order is not None
    assert outcome.order.total == Decimal("35.00")
    assert len(outcome.order.items) == 2


def test_failed_push_does_not_abort_checkout(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 1), ("P2", 1))
    asyncio.run(service.inner.clear_cart(customer.token))
    service.fail_next("add_item", RemoteRejectedError("product not found"))

    outcome = asyncio.run(orchestrator.checkout(customer))

    assert outcome.ok
    assert outcome.order is not None
    assert [i.product_id for i in outcome.order.items] == ["P2"]


def test_submit_failure_keeps_snapshot_and_allows_retry(operations, orchestrator, service, customer) -> None:
    _fill(operations, customer, ("P1", 1), ("P2", 1))
    before = operations.store.snapshot.items
    service.reset_calls()
    service.fail_next("checkout", RemoteUnavailableError())

    failed = asyncio.run(orchestrator.checkout(customer))

    assert failed.error is not None
    assert failed.error.kind == CartErrorKind.REMOTE_UNAVAILABLE
    assert failed.state is CheckoutState.FAILED
    assert failed.snapshot.items == before
    # No resynchronizing fetch after an ambiguous submit.
    assert service.methods() == ["get_cart", "checkout"]

    retried = asyncio.run(orchestrator.checkout(customer))
    assert retried.ok
    assert retried.state is CheckoutState.CLEARED


def test_server_rejection_message_is_surfaced(operations, orchestrator, customer) -> None:
    _fill(operations, customer, ("P3", 6))

    outcome = asyncio.run(orchestrator.checkout(customer))

    assert outcome.error is not None
    assert outcome.error.kind == CartErrorKind.UNCLASSIFIED
    assert "out of stock" in outcome.error.message
    assert outcome.snapshot.total_item_count == 6


def test_illegal_transition_raises(operations) -> None:
    orchestrator = CheckoutOrchestrator(operations)
    with pytest.raises(IllegalCheckoutTransition):
        orchestrator._advance(CheckoutState.CLEARED)


@pytest.mark.parametrize(
    ("held", "interrupted"),
    [("checkout", CheckoutState.SUBMITTING), ("get_cart", CheckoutState.SYNCING)],
)
def test_cancelled_checkout_can_be_retried(
    operations, orchestrator, service, customer, held, interrupted
) -> None:
    _fill(operations, customer, ("P1", 1))

    async def scenario():
        service.holds[held] = asyncio.Event()
        task = asyncio.create_task(orchestrator.checkout(customer))
        await asyncio.sleep(0.01)
        assert orchestrator.state is interrupted

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert orchestrator.state is CheckoutState.FAILED
        assert operations.store.snapshot.is_loading is False

        del service.holds[held]
        return await orchestrator.checkout(customer)

    retried = asyncio.run(scenario())

    assert retried.ok
    assert retried.state is CheckoutState.CLEARED
    assert retried.snapshot.pending == ()
