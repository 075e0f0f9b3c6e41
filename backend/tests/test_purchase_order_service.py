# Overview: Pytest coverage for purchase order workflows (creation, transitions, credit, atomicity).

"""
Purchase Order Workflow Tests

Covers:
1. End-to-end: create (priced, taxed) -> submit -> approve
2. Credit consumption at approval, all-or-nothing with the status change
3. Atomic creation: a failure mid-way leaves no order, line or sequence row
4. Optimistic concurrency: expected_version and lost version races
5. Lookups and listings
"""

from datetime import datetime

import pytest
from sqlalchemy.orm.exc import StaleDataError

from procure.errors import BusinessRuleError, ConcurrencyError, NotFoundError, ValidationError
from procure.extensions import db
from procure.models import (
    Buyer,
    CreditLedgerEntry,
    CreditTerm,
    DocumentSequence,
    PurchaseOrder,
    PurchaseOrderLine,
    VolumeDiscount,
    WholesalePrice,
)
from procure.models.orders import (
    PO_STATUS_APPROVED,
    PO_STATUS_CANCELLED,
    PO_STATUS_DRAFT,
    PO_STATUS_REJECTED,
    PO_STATUS_SUBMITTED,
)
from procure.models.pricing import SCOPE_PRODUCT
from procure.models.tenancy import BUYER_STATUS_PENDING
from procure.services import concurrency, pricing_service, purchase_order_service as po_service


ORDER_DAY = datetime(2026, 10, 19, 9, 30)


def _create(org, buyer, lines, **kwargs):
    kwargs.setdefault("now", ORDER_DAY)
    return po_service.create_purchase_order(org_id=org.id, buyer_id=buyer.id, lines=lines, **kwargs)


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)


class TestEndToEnd:

    def test_create_submit_approve_without_credit(self, db_session, org, buyer, product):
        """12 x 50.00, no rules, 20% tax -> 600 / 120 / 720."""
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 12}])

        assert po.status == PO_STATUS_DRAFT
        assert po.po_number == "PO-20261019-000001"
        assert po.subtotal_cents == 60000
        assert po.tax_rate_bps == 2000
        assert po.tax_cents == 12000
        assert po.total_cents == 72000
        [line] = po.lines
        assert line.unit_price_cents == 5000
        assert line.line_total_cents == 60000

        assert po_service.submit_purchase_order(po.id) is True
        assert po_service.approve_purchase_order(po.id, approver_id=99) is True

        po = po_service.get_purchase_order(po.id)
        assert po.status == PO_STATUS_APPROVED
        assert po.approved_by_user_id == 99
        assert po.total_cents == 72000

    def test_lines_priced_with_tiers_and_discounts(self, db_session, org, buyer, make_product):
        a = make_product("A-1", 1000)
        b = make_product("B-1", 2000)
        db_session.add_all([
            WholesalePrice(product_id=a.id, org_id=org.id, min_quantity=10, price_cents=800),
            VolumeDiscount(scope_type=SCOPE_PRODUCT, scope_id=b.id, min_quantity=5, discount_bps=1000),
        ])
        db_session.commit()

        po = _create(org, buyer, [
            {"product_id": b.id, "quantity": 5, "notes": "rush"},
            {"product_id": a.id, "quantity": 10},
        ])

        assert [(l.line_number, l.product_id) for l in po.lines] == [(1, b.id), (2, a.id)]
        assert po.lines[0].unit_price_cents == 1800
        assert po.lines[0].discount_bps == 1000
        assert po.lines[0].notes == "rush"
        assert po.lines[1].unit_price_cents == 800
        assert po.subtotal_cents == 5 * 1800 + 10 * 800

    def test_price_snapshot_survives_catalog_change(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        product.price_cents = 9999
        db_session.commit()

        reloaded = po_service.get_purchase_order(po.id)
        assert reloaded.lines[0].unit_price_cents == 5000

    def test_optional_header_fields(self, db_session, org, buyer, product, make_credit_term):
        term = make_credit_term(org.id, limit_cents=100000)
        po = _create(
            org, buyer, [{"product_id": product.id, "quantity": 1}],
            credit_term_id=term.id,
            notes="Deliver to dock 4",
            expected_delivery_date="2026-11-01T00:00:00Z",
        )
        assert po.credit_term_id == term.id
        assert po.notes == "Deliver to dock 4"
        assert po.expected_delivery_date == datetime(2026, 11, 1)


class TestCreationValidation:

    def test_empty_lines(self, db_session, org, buyer):
        with pytest.raises(ValidationError):
            _create(org, buyer, [])

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, db_session, org, buyer, product, quantity):
        with pytest.raises(ValidationError):
            _create(org, buyer, [{"product_id": product.id, "quantity": quantity}])

    def test_missing_product(self, db_session, org, buyer, product):
        with pytest.raises(NotFoundError):
            _create(org, buyer, [
                {"product_id": product.id, "quantity": 1},
                {"product_id": 424242, "quantity": 1},
            ])
        assert db_session.query(PurchaseOrder).count() == 0

    def test_missing_organization(self, db_session, buyer, product):
        with pytest.raises(NotFoundError):
            po_service.create_purchase_order(
                org_id=424242, buyer_id=buyer.id, lines=[{"product_id": product.id, "quantity": 1}]
            )

    def test_missing_or_foreign_buyer(self, db_session, org, other_org, product):
        foreign = Buyer(org_id=other_org.id, full_name="Bob", email="bob@beta.example", status="ACTIVE")
        db_session.add(foreign)
        db_session.commit()

        for buyer_id in (424242, foreign.id):
            with pytest.raises(NotFoundError):
                po_service.create_purchase_order(
                    org_id=org.id, buyer_id=buyer_id, lines=[{"product_id": product.id, "quantity": 1}]
                )

    def test_unapproved_buyer(self, db_session, org, product):
        pending = Buyer(org_id=org.id, full_name="Pat", email="pat@acme.example", status=BUYER_STATUS_PENDING)
        db_session.add(pending)
        db_session.commit()
        with pytest.raises(BusinessRuleError):
            _create(org, pending, [{"product_id": product.id, "quantity": 1}])

    def test_credit_term_of_other_org(self, db_session, org, other_org, buyer, product, make_credit_term):
        term = make_credit_term(other_org.id, limit_cents=1000)
        with pytest.raises(NotFoundError):
            _create(org, buyer, [{"product_id": product.id, "quantity": 1}], credit_term_id=term.id)

    def test_inactive_credit_term(self, db_session, org, buyer, product, make_credit_term):
        term = make_credit_term(org.id, limit_cents=1000, is_active=False)
        with pytest.raises(BusinessRuleError):
            _create(org, buyer, [{"product_id": product.id, "quantity": 1}], credit_term_id=term.id)


class TestAtomicity:

    def test_failure_on_third_line_persists_nothing(self, db_session, org, buyer, make_product, monkeypatch):
        products = [make_product(f"SKU-{i}", 100 * (i + 1)) for i in range(5)]
        real_price_line = pricing_service.price_line
        calls = {"n": 0}

        def flaky_price_line(snapshot, org_id, line):
            calls["n"] += 1
            if calls["n"] == 3:
                raise RuntimeError("pricing backend unavailable")
            return real_price_line(snapshot, org_id, line)

        monkeypatch.setattr(po_service, "price_line", flaky_price_line)

        with pytest.raises(RuntimeError):
            _create(org, buyer, [{"product_id": p.id, "quantity": 1} for p in products])

        assert calls["n"] == 3
        assert db_session.query(PurchaseOrder).count() == 0
        assert db_session.query(PurchaseOrderLine).count() == 0
        assert db_session.query(DocumentSequence).count() == 0

        monkeypatch.setattr(po_service, "price_line", real_price_line)
        po = _create(org, buyer, [{"product_id": p.id, "quantity": 1} for p in products])
        assert po.po_number == "PO-20261019-000001"
        assert len(po.lines) == 5


class TestApprovalCredit:

    def _submitted(self, org, buyer, product, term, quantity=1):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": quantity}], credit_term_id=term.id)
        po_service.submit_purchase_order(po.id)
        return po

    def test_approval_consumes_credit(self, db_session, org, buyer, product, make_credit_term):
        term = make_credit_term(org.id, limit_cents=100000)
        po = self._submitted(org, buyer, product, term)  # 5000 + 1000 tax

        po_service.approve_purchase_order(po.id, approver_id=5)

        assert db.session.get(CreditTerm, term.id).used_credit_cents == 6000
        [entry] = db_session.query(CreditLedgerEntry).all()
        assert entry.purchase_order_id == po.id
        assert entry.amount_cents == 6000

    def test_credit_breach_keeps_order_submitted(self, db_session, org, buyer, product, make_credit_term):
        term = make_credit_term(org.id, limit_cents=10000, used_cents=8000)
        po = self._submitted(org, buyer, product, term)  # needs 6000, 2000 available

        with pytest.raises(BusinessRuleError):
            po_service.approve_purchase_order(po.id, approver_id=5)

        db_session.expire_all()
        assert po_service.get_purchase_order(po.id).status == PO_STATUS_SUBMITTED
        assert db.session.get(CreditTerm, term.id).used_credit_cents == 8000
        assert db_session.query(CreditLedgerEntry).count() == 0

    def test_second_approval_fails_and_credit_used_once(self, db_session, org, buyer, product, make_credit_term):
        term = make_credit_term(org.id, limit_cents=100000)
        po = self._submitted(org, buyer, product, term)

        po_service.approve_purchase_order(po.id, approver_id=5)
        with pytest.raises(BusinessRuleError):
            po_service.approve_purchase_order(po.id, approver_id=6)

        assert db.session.get(CreditTerm, term.id).used_credit_cents == 6000

    def test_approve_draft_fails(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(BusinessRuleError):
            po_service.approve_purchase_order(po.id, approver_id=1)
        assert po_service.get_purchase_order(po.id).status == PO_STATUS_DRAFT

    def test_approve_requires_approver(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        po_service.submit_purchase_order(po.id)
        with pytest.raises(ValidationError):
            po_service.approve_purchase_order(po.id, approver_id=None)


class TestConcurrency:

    def test_expected_version_mismatch(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        stale_version = po.version_id
        po_service.submit_purchase_order(po.id, expected_version=stale_version)

        with pytest.raises(ConcurrencyError) as exc:
            po_service.approve_purchase_order(po.id, approver_id=1, expected_version=stale_version)
        assert exc.value.details["expected_version"] == stale_version
        assert po_service.get_purchase_order(po.id).status == PO_STATUS_SUBMITTED

    def test_lost_version_race_surfaces_as_concurrency_error(
        self, app, db_session, org, buyer, product, make_credit_term, monkeypatch, no_sleep
    ):
        term = make_credit_term(org.id, limit_cents=100000)
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}], credit_term_id=term.id)
        po_service.submit_purchase_order(po.id)

        attempts = {"n": 0}

        def racing_use_credit(*args, **kwargs):
            attempts["n"] += 1
            raise StaleDataError("credit_terms row changed underneath us")

        monkeypatch.setattr(po_service, "use_credit", racing_use_credit)
        monkeypatch.setitem(app.config, "WORKFLOW_RETRY_ATTEMPTS", 2)

        with pytest.raises(ConcurrencyError):
            po_service.approve_purchase_order(po.id, approver_id=1)

        assert attempts["n"] == 2
        assert po_service.get_purchase_order(po.id).status == PO_STATUS_SUBMITTED
        assert db.session.get(CreditTerm, term.id).used_credit_cents == 0

    def test_transient_race_is_retried(self, db_session, org, buyer, product, make_credit_term, monkeypatch, no_sleep):
        term = make_credit_term(org.id, limit_cents=100000)
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}], credit_term_id=term.id)
        po_service.submit_purchase_order(po.id)

        real_use_credit = po_service.use_credit
        attempts = {"n": 0}

        def flaky_use_credit(*args, **kwargs):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise StaleDataError("lost the first race")
            return real_use_credit(*args, **kwargs)

        monkeypatch.setattr(po_service, "use_credit", flaky_use_credit)
        assert po_service.approve_purchase_order(po.id, approver_id=1) is True
        assert db.session.get(CreditTerm, term.id).used_credit_cents == 6000

    def test_duplicate_po_number_surfaces_as_concurrency_error(
        self, app, db_session, org, buyer, product, monkeypatch, no_sleep
    ):
        first = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        taken = first.po_number
        monkeypatch.setattr(po_service, "next_purchase_order_number", lambda **kwargs: taken)
        monkeypatch.setitem(app.config, "WORKFLOW_RETRY_ATTEMPTS", 2)

        with pytest.raises(ConcurrencyError) as exc:
            _create(org, buyer, [{"product_id": product.id, "quantity": 1}])

        assert exc.value.http_status == 409
        assert exc.value.details["po_number"] == taken
        assert db_session.query(PurchaseOrder).count() == 1
        assert db_session.query(PurchaseOrderLine).count() == 1

    def test_duplicate_po_number_is_retried(self, db_session, org, buyer, product, monkeypatch, no_sleep):
        first = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        real_next_number = po_service.next_purchase_order_number
        calls = {"n": 0}

        def colliding_next_number(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                return first.po_number
            return real_next_number(**kwargs)

        monkeypatch.setattr(po_service, "next_purchase_order_number", colliding_next_number)
        second = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])

        assert calls["n"] == 2
        assert second.po_number != first.po_number
        assert db_session.query(PurchaseOrder).count() == 2


class TestRejectAndCancel:

    def test_reject_records_reason(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        po_service.submit_purchase_order(po.id)
        assert po_service.reject_purchase_order(po.id, "Over budget") is True

        po = po_service.get_purchase_order(po.id)
        assert po.status == PO_STATUS_REJECTED
        assert po.rejection_reason == "Over budget"

    def test_reject_requires_reason(self, db_session, org, buyer, product):
        po = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        po_service.submit_purchase_order(po.id)
        with pytest.raises(ValidationError):
            po_service.reject_purchase_order(po.id, "")

    def test_cancel_draft_and_not_approved(self, db_session, org, buyer, product):
        draft = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        assert po_service.cancel_purchase_order(draft.id) is True
        assert po_service.get_purchase_order(draft.id).status == PO_STATUS_CANCELLED

        approved = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        po_service.submit_purchase_order(approved.id)
        po_service.approve_purchase_order(approved.id, approver_id=1)
        with pytest.raises(BusinessRuleError):
            po_service.cancel_purchase_order(approved.id)
        assert po_service.get_purchase_order(approved.id).status == PO_STATUS_APPROVED

    def test_missing_order(self, db_session):
        for op in (
            lambda: po_service.submit_purchase_order(424242),
            lambda: po_service.approve_purchase_order(424242, approver_id=1),
            lambda: po_service.reject_purchase_order(424242, "x"),
            lambda: po_service.cancel_purchase_order(424242),
        ):
            with pytest.raises(NotFoundError):
                op()


class TestQueries:

    def test_lookup_and_listing(self, db_session, org, other_org, buyer, product):
        first = _create(org, buyer, [{"product_id": product.id, "quantity": 1}])
        second = _create(org, buyer, [{"product_id": product.id, "quantity": 2}])
        po_service.submit_purchase_order(second.id)

        assert po_service.get_purchase_order_by_number(first.po_number).id == first.id
        with pytest.raises(NotFoundError):
            po_service.get_purchase_order_by_number("PO-19990101-000001")

        listed = po_service.list_organization_purchase_orders(org.id)
        assert {po.id for po in listed} == {first.id, second.id}
        assert [po.id for po in po_service.list_organization_purchase_orders(org.id, status=PO_STATUS_SUBMITTED)] == [second.id]
        assert po_service.list_organization_purchase_orders(other_org.id) == []
        assert len(po_service.list_buyer_purchase_orders(buyer.id)) == 2

    def test_invalid_status_filter(self, db_session, org):
        with pytest.raises(ValidationError):
            po_service.list_organization_purchase_orders(org.id, status="SHIPPED")
