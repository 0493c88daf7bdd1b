"""
InvoiceService.create_from_order: derivation, idempotency and snapshots.

Concurrent creation is covered in tests/concurrency/test_invoice_race.py.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from invoice_kernel.domain.dtos import CreateInvoiceStatus
from invoice_kernel.domain.lifecycle import InvoiceStatus
from invoice_kernel.exceptions import (
    ClientNotFoundError,
    OrderNotEligibleError,
    OrderNotFoundError,
    PersistenceConflictError,
)
from invoice_kernel.models.commerce import Client, Order
from invoice_kernel.models.invoice import Invoice, InvoiceItem
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.services.invoice_service import InvoiceService, InvoicingPolicy
from invoice_kernel.services.sequence_service import SequenceService
from tests.conftest import T0, make_client, make_order


@pytest.fixture
def invoice_service(counter, clock):
    return InvoiceService(counter, clock=clock)


def _invoice_count(session) -> int:
    return session.execute(select(func.count(Invoice.id))).scalar_one()


class TestCreateFromOrder:

    def test_creates_draft_invoice(self, invoice_service, delivered_order, client_id):
        result = invoice_service.create_from_order(delivered_order)

        assert result.status is CreateInvoiceStatus.CREATED
        assert result.created
        assert result.warning is None

        invoice = result.invoice
        assert invoice.order_id == delivered_order
        assert invoice.client_id == client_id
        assert invoice.invoice_number == 1
        assert invoice.display_number == "FAC-1"
        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.currency == "EUR"
        assert invoice.created_at == T0

    def test_total_is_sum_of_items(self, invoice_service, delivered_order):
        invoice = invoice_service.create_from_order(delivered_order).invoice

        assert invoice.total_cents == 6000
        assert invoice.total_cents == sum(i.price_cents * i.qty for i in invoice.items)

    def test_items_snapshot_order_lines(self, invoice_service, delivered_order):
        invoice = invoice_service.create_from_order(delivered_order).invoice

        assert [(i.variant_id, i.qty, i.price_cents) for i in invoice.items] == [
            ("VAR-1", 2, 1500),
            ("VAR-2", 1, 3000),
        ]
        assert all(i.invoice_id == invoice.id for i in invoice.items)

    def test_billing_snapshot(self, invoice_service, delivered_order):
        invoice = invoice_service.create_from_order(delivered_order).invoice

        assert invoice.billing_name == "Lucía Martín"
        assert invoice.billing_tax_id == "12345678Z"
        assert invoice.billing_address == "Calle Mayor 1, 28013 Madrid"
        assert invoice.billing_email == "lucia@example.com"

    def test_default_due_date_uses_payment_terms(self, invoice_service, delivered_order):
        invoice = invoice_service.create_from_order(delivered_order).invoice
        assert invoice.due_date == T0 + timedelta(days=30)

    def test_explicit_due_date_and_notes(self, invoice_service, delivered_order):
        due = datetime(2024, 2, 15, tzinfo=timezone.utc)
        invoice = invoice_service.create_from_order(
            delivered_order, due_date=due, notes="Pedido urgente"
        ).invoice
        assert invoice.due_date == due
        assert invoice.notes == "Pedido urgente"

    def test_no_payment_terms_means_no_due_date(self, counter, clock, delivered_order):
        service = InvoiceService(
            counter, clock=clock, policy=InvoicingPolicy(payment_terms_days=None)
        )
        assert service.create_from_order(delivered_order).invoice.due_date is None

    def test_configured_currency(self, counter, clock, delivered_order):
        service = InvoiceService(counter, clock=clock, policy=InvoicingPolicy(currency="USD"))
        assert service.create_from_order(delivered_order).invoice.currency == "USD"

    def test_consecutive_orders_get_consecutive_numbers(self, invoice_service, counter, client_id):
        first = make_order(counter, client_id=client_id)
        second = make_order(counter, client_id=client_id)

        a = invoice_service.create_from_order(first).invoice
        b = invoice_service.create_from_order(second).invoice

        assert (a.display_number, b.display_number) == ("FAC-1", "FAC-2")
        assert SequenceService(counter).peek().number == 3

    def test_persisted(self, invoice_service, delivered_order, counter):
        created = invoice_service.create_from_order(delivered_order).invoice
        loaded = InvoiceSelector(counter).get_by_id(created.id)
        assert loaded == created

    def test_logs_creation(self, invoice_service, delivered_order, captured_logs):
        invoice_service.create_from_order(delivered_order)
        records = [r for r in captured_logs() if r["message"] == "invoice_created"]
        assert len(records) == 1
        assert records[0]["invoice_number"] == "FAC-1"
        assert records[0]["order_id"] == str(delivered_order)


class TestClientSelection:

    def test_explicit_client_overrides_order_client(self, invoice_service, counter, delivered_order):
        other = make_client(counter, first_name="Ana", last_name="", company_name="Acme S.L.")
        invoice = invoice_service.create_from_order(delivered_order, client_id=other).invoice
        assert invoice.client_id == other
        assert invoice.billing_name == "Acme S.L."

    def test_guest_order_has_no_client(self, invoice_service, counter):
        order_id = make_order(counter, client_id=None)
        invoice = invoice_service.create_from_order(order_id).invoice
        assert invoice.client_id is None
        assert invoice.billing_name is None
        assert invoice.billing_address is None

    def test_unknown_client(self, invoice_service, delivered_order):
        from uuid import uuid4

        with pytest.raises(ClientNotFoundError):
            invoice_service.create_from_order(delivered_order, client_id=uuid4())


class TestEligibility:

    @pytest.mark.parametrize("status", ["pending", "paid", "shipped", "cancelled"])
    def test_ineligible_order_is_rejected_without_allocation(
        self, invoice_service, counter, client_id, status
    ):
        order_id = make_order(counter, status=status, client_id=client_id)

        with pytest.raises(OrderNotEligibleError) as exc_info:
            invoice_service.create_from_order(order_id)

        assert exc_info.value.code == "ORDER_NOT_ELIGIBLE"
        assert exc_info.value.status == status
        assert SequenceService(counter).peek().number == 1
        assert _invoice_count(counter) == 0

    def test_eligible_statuses_are_configurable(self, counter, clock, client_id):
        order_id = make_order(counter, status="shipped", client_id=client_id)
        service = InvoiceService(
            counter,
            clock=clock,
            policy=InvoicingPolicy(eligible_order_statuses=frozenset({"shipped", "delivered"})),
        )
        assert service.create_from_order(order_id).created

    def test_unknown_order(self, invoice_service):
        from uuid import uuid4

        missing = uuid4()
        with pytest.raises(OrderNotFoundError) as exc_info:
            invoice_service.create_from_order(missing)
        assert exc_info.value.order_id == str(missing)


class TestIdempotency:

    def test_second_call_returns_existing_invoice(self, invoice_service, counter, delivered_order):
        first = invoice_service.create_from_order(delivered_order)
        second = invoice_service.create_from_order(delivered_order)

        assert second.status is CreateInvoiceStatus.EXISTING
        assert not second.created
        assert second.invoice.id == first.invoice.id
        assert _invoice_count(counter) == 1
        assert SequenceService(counter).peek().number == 2

    def test_constraint_violation_resolves_to_existing_invoice(
        self, invoice_service, counter, delivered_order, monkeypatch, captured_logs
    ):
        first = invoice_service.create_from_order(delivered_order).invoice

        # Simulate losing the race: the lookup before insert misses the
        # invoice that another transaction has just written.
        real_find = invoice_service._invoices.find_by_order
        calls = []

        def miss_once(order_id):
            calls.append(order_id)
            return None if len(calls) == 1 else real_find(order_id)

        monkeypatch.setattr(invoice_service._invoices, "find_by_order", miss_once)

        result = invoice_service.create_from_order(delivered_order)

        assert result.status is CreateInvoiceStatus.EXISTING
        assert result.invoice.id == first.id
        assert _invoice_count(counter) == 1
        # The allocation made for the rejected insert was rolled back
        assert SequenceService(counter).peek().number == 2

        messages = [r["message"] for r in captured_logs()]
        assert "invoice_insert_conflict" in messages
        assert "invoice_already_exists" in messages

    def test_unresolvable_conflict_raises(
        self, invoice_service, counter, delivered_order, monkeypatch
    ):
        invoice_service.create_from_order(delivered_order)
        monkeypatch.setattr(invoice_service._invoices, "find_by_order", lambda order_id: None)

        with pytest.raises(PersistenceConflictError) as exc_info:
            invoice_service.create_from_order(delivered_order)

        assert exc_info.value.order_id == str(delivered_order)
        assert SequenceService(counter).peek().number == 2


class TestDisplayedNumberUniqueness:

    def test_same_display_under_new_affixes_is_refused(self, session, clock, client_id):
        sequence = SequenceService(session)
        sequence.initialize(prefix="A", suffix="B12C")
        service = InvoiceService(session, clock=clock)

        first = service.create_from_order(make_order(session, client_id=client_id)).invoice
        assert first.display_number == "A1B12C"

        # "A1B" + 12 + "C" spells the number already issued
        sequence.reconfigure(prefix="A1B", suffix="C")
        for _ in range(10):
            sequence.allocate()
        assert sequence.peek().number == 12

        with pytest.raises(PersistenceConflictError):
            service.create_from_order(make_order(session, client_id=client_id))

        assert _invoice_count(session) == 1
        assert sequence.peek().number == 12
        assert InvoiceSelector(session).get_by_number("A1B12C").id == first.id


class TestIntegrityMismatch:

    def test_mismatch_is_a_warning_not_an_error(self, invoice_service, counter, client_id, captured_logs):
        order_id = make_order(counter, client_id=client_id, total_cents=9999)

        result = invoice_service.create_from_order(order_id)

        assert result.created
        assert result.invoice.total_cents == 6000
        assert result.warning is not None
        assert result.warning.code == "INTEGRITY_MISMATCH"
        assert result.warning.order_total_cents == 9999
        assert result.warning.computed_total_cents == 6000
        assert result.warning.difference_cents == -3999

        mismatch = [r for r in captured_logs() if r["message"] == "order_total_mismatch"]
        assert mismatch[0]["order_total_cents"] == 9999

    def test_existing_invoice_carries_no_warning(self, invoice_service, counter, client_id):
        order_id = make_order(counter, client_id=client_id, total_cents=1)
        invoice_service.create_from_order(order_id)
        assert invoice_service.create_from_order(order_id).warning is None


class TestSnapshotIsolation:

    def test_catalog_and_profile_changes_do_not_reach_invoice(
        self, invoice_service, counter, delivered_order, client_id
    ):
        created = invoice_service.create_from_order(delivered_order).invoice

        order = counter.get(Order, delivered_order)
        order.lines[0].price_cents = 1
        client = counter.get(Client, client_id)
        client.first_name = "Renamed"
        counter.flush()

        loaded = InvoiceSelector(counter).get_by_id(created.id)
        assert loaded.items[0].price_cents == 1500
        assert loaded.total_cents == 6000
        assert loaded.billing_name == "Lucía Martín"

    def test_items_are_stored_rows(self, invoice_service, counter, delivered_order):
        created = invoice_service.create_from_order(delivered_order).invoice
        rows = counter.execute(
            select(InvoiceItem).where(InvoiceItem.invoice_id == created.id)
        ).scalars().all()
        assert len(rows) == 2
