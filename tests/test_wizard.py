"""ステップゲート"""

import pytest

from pos_order.aggregate import OrderDraft
from pos_order.errors import AuthenticationError, StepBlockedError
from pos_order.models import Paybox, PersistedCustomer, Warehouse
from pos_order.queries import ReferenceData
from pos_order.wizard import (
    LAST_STEP_MESSAGE,
    NO_CUSTOMER_MESSAGE,
    NO_ITEMS_MESSAGE,
    NO_PARAMETERS_MESSAGE,
    TOKEN_INVALID_MESSAGE,
    Step,
    StepGate,
)


@pytest.fixture
async def references(client):
    refs = ReferenceData(client)
    await refs.load()
    return refs


class TestCustomerStep:
    async def test_blocked_without_customer(self, references):
        gate = StepGate(OrderDraft(), references)
        with pytest.raises(StepBlockedError) as exc:
            gate.next()
        assert exc.value.missing == ["customer"]
        assert exc.value.message == NO_CUSTOMER_MESSAGE
        assert gate.step is Step.CUSTOMER

    async def test_advances_with_customer(self, references):
        draft = OrderDraft()
        draft.set_customer(PersistedCustomer(id=1, name="Иван"))
        gate = StepGate(draft, references)
        assert gate.next() is Step.PARAMETERS

    async def test_invalid_token_is_a_dead_end(self, backend):
        bad = backend.client("wrong")
        refs = ReferenceData(bad)
        with pytest.raises(AuthenticationError):
            await refs.load()
        draft = OrderDraft()
        draft.set_customer(PersistedCustomer(id=1, name="Иван"))
        gate = StepGate(draft, refs)

        assert gate.dead_end is True
        assert gate.blocking_reason() == (["token"], TOKEN_INVALID_MESSAGE)
        with pytest.raises(StepBlockedError):
            gate.next()
        await bad.aclose()

    async def test_not_loaded_references_block(self, client):
        draft = OrderDraft()
        draft.set_customer(PersistedCustomer(id=1, name="Иван"))
        gate = StepGate(draft, ReferenceData(client))
        assert gate.can_advance() is False
        assert gate.dead_end is False


class TestParametersStep:
    async def test_blocked_until_all_four_selected(self, references):
        draft = OrderDraft()
        draft.set_customer(PersistedCustomer(id=1, name="Иван"))
        gate = StepGate(draft, references)
        gate.next()

        draft.select("warehouse", Warehouse(id=1, name="Склад"))
        draft.select("paybox", Paybox(id=2, name="Касса"))
        with pytest.raises(StepBlockedError) as exc:
            gate.next()
        assert exc.value.missing == ["organization", "price_type"]
        assert exc.value.message == NO_PARAMETERS_MESSAGE
        assert gate.step is Step.PARAMETERS


class TestItemsAndConfirmation:
    async def test_full_walk(self, references, complete_draft):
        gate = StepGate(complete_draft, references)
        gate.next()
        gate.next()
        assert gate.next() is Step.CONFIRMATION
        assert gate.can_submit is True
        assert gate.blocking_reason() == ([], LAST_STEP_MESSAGE)
        with pytest.raises(StepBlockedError):
            gate.next()

    async def test_empty_cart_blocks(self, references, complete_draft):
        gate = StepGate(complete_draft, references)
        gate.next()
        gate.next()
        complete_draft.cart.clear()
        with pytest.raises(StepBlockedError) as exc:
            gate.next()
        assert exc.value.message == NO_ITEMS_MESSAGE


class TestBack:
    async def test_back_is_unconditional(self, references, complete_draft):
        gate = StepGate(complete_draft, references)
        gate.next()
        gate.next()
        complete_draft.clear()
        assert gate.back() is Step.PARAMETERS
        assert gate.back() is Step.CUSTOMER

    async def test_back_at_first_step_stays(self, references):
        gate = StepGate(OrderDraft(), references)
        assert gate.back() is Step.CUSTOMER

    async def test_reset(self, references, complete_draft):
        gate = StepGate(complete_draft, references)
        gate.next()
        gate.reset()
        assert gate.step is Step.CUSTOMER
