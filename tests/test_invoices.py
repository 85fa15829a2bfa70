from decimal import Decimal
from types import SimpleNamespace

import pytest

from clinic_billing.core.errors import InvalidArgument, InvalidState, NotFound
from clinic_billing.models import InvoiceItem, InvoiceStatus
from clinic_billing.schemas.billing import InvoiceUpdate
from clinic_billing.services import invoice_service as svc
from clinic_billing.services.billing_numbers import next_invoice_code
from clinic_billing.utils.timezone import utcnow


class TestCreateInvoice:

    def test_worked_example(self, make_invoice):
        inv = make_invoice()
        assert inv.total_amount == Decimal("170.00")
        assert inv.paid_amount == Decimal("0")
        assert inv.is_paid is False
        assert inv.status == InvoiceStatus.PENDING
        assert len(inv.active_items) == 2
        assert inv.currency == "USD"

    def test_codes_are_sequential_per_year(self, make_invoice):
        year = utcnow().year
        first = make_invoice()
        second = make_invoice()
        assert first.code == f"FAC-{year}-00001"
        assert second.code == f"FAC-{year}-00002"

    def test_taken_code_falls_back_to_timestamp_digits(self, db,
                                                       make_invoice):
        year = utcnow().year
        inv = make_invoice()
        inv.code = f"FAC-{year}-00002"
        db.commit()

        code = next_invoice_code(db)
        assert code.startswith(f"FAC-{year}-")
        assert len(code.rsplit("-", 1)[1]) == 5
        assert code != f"FAC-{year}-00002"

    def test_negative_total_rejected(self, make_invoice):
        with pytest.raises(InvalidArgument):
            make_invoice(items=[{"name": "Cleaning", "price": "10"}],
                         discount="15")

    def test_unknown_patient(self, make_invoice):
        with pytest.raises(NotFound):
            make_invoice(patient=SimpleNamespace(id=9999))

    def test_inactive_patient(self, make_invoice, directory):
        with pytest.raises(NotFound):
            make_invoice(patient=directory.inactive)

    def test_deleted_treatment(self, make_invoice, directory):
        with pytest.raises(NotFound):
            make_invoice(treatment_id=directory.removed.id)

    def test_references_are_stored(self, make_invoice, directory):
        inv = make_invoice(treatment_id=directory.ortho.id,
                           treatment_step_id=directory.step.id,
                           doctor_id=directory.doctor.id,
                           branch_id=directory.branch.id)
        assert inv.doctor.full_name == "Dr. Elena Vidal"
        assert inv.branch.name == "Centro"
        assert inv.treatment_step_id == directory.step.id


class TestUpdateInvoice:

    def test_replacing_items_soft_deletes_old_rows(self, db, make_invoice):
        inv = make_invoice()
        updated = svc.update_invoice(
            db, inv.id,
            InvoiceUpdate(items=[{
                "name": "Filling",
                "price": "80",
                "quantity": 2
            }]))

        assert updated.total_amount == Decimal("140.00")
        assert [it.name for it in updated.active_items] == ["Filling"]
        deleted = (db.query(InvoiceItem).filter(
            InvoiceItem.invoice_id == inv.id,
            InvoiceItem.is_deleted.is_(True)).count())
        assert deleted == 2

    def test_new_items_with_new_discount(self, db, make_invoice):
        inv = make_invoice()
        updated = svc.update_invoice(
            db, inv.id,
            InvoiceUpdate(items=[{
                "name": "Filling",
                "price": "80"
            }],
                          discount="30"))
        assert updated.total_amount == Decimal("50.00")

    def test_discount_only_recomputes_active_items(self, db, make_invoice):
        inv = make_invoice()
        updated = svc.update_invoice(db, inv.id, InvoiceUpdate(discount="0"))
        assert updated.total_amount == Decimal("190.00")
        assert len(updated.active_items) == 2

    def test_negative_total_rejected(self, db, make_invoice):
        inv = make_invoice()
        with pytest.raises(InvalidArgument):
            svc.update_invoice(db, inv.id, InvoiceUpdate(discount="500"))

    def test_total_below_paid_rejected(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "100")
        with pytest.raises(InvalidArgument) as exc:
            svc.update_invoice(
                db, inv.id,
                InvoiceUpdate(items=[{
                    "name": "Check-up",
                    "price": "60"
                }],
                              discount="0"))
        assert exc.value.details["paid_amount"] == "100.00"

    def test_total_equal_to_paid_settles_invoice(self, db, make_invoice,
                                                 pay):
        inv = make_invoice()
        pay(inv, "100", method="TRANSFER")
        updated = svc.update_invoice(
            db, inv.id,
            InvoiceUpdate(items=[{
                "name": "Check-up",
                "price": "100"
            }],
                          discount="0"))
        assert updated.status == InvoiceStatus.PAID
        assert updated.is_paid is True
        assert updated.payment_method.value == "TRANSFER"

    def test_canceled_invoice_does_not_settle(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "100")
        svc.change_status(db, inv.id, InvoiceStatus.CANCELED)
        updated = svc.update_invoice(
            db, inv.id,
            InvoiceUpdate(items=[{
                "name": "Check-up",
                "price": "100"
            }],
                          discount="0"))
        assert updated.total_amount == Decimal("100.00")
        assert updated.status == InvoiceStatus.CANCELED
        assert updated.is_paid is False
        assert updated.paid_at is None

    def test_expired_invoice_settles(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "100")
        svc.change_status(db, inv.id, InvoiceStatus.EXPIRED)
        updated = svc.update_invoice(
            db, inv.id,
            InvoiceUpdate(items=[{
                "name": "Check-up",
                "price": "100"
            }],
                          discount="0"))
        assert updated.status == InvoiceStatus.PAID

    def test_paid_invoice_is_frozen(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "170")
        with pytest.raises(InvalidState):
            svc.update_invoice(db, inv.id, InvoiceUpdate(discount="0"))

    def test_deleted_invoice_is_frozen(self, db, make_invoice):
        inv = make_invoice()
        svc.change_status(db, inv.id, InvoiceStatus.DELETED)
        with pytest.raises(InvalidState):
            svc.update_invoice(db, inv.id, InvoiceUpdate(discount="0"))

    def test_missing_invoice(self, db, directory):
        with pytest.raises(NotFound):
            svc.update_invoice(db, 4242, InvoiceUpdate(discount="0"))


class TestChangeStatus:

    def test_cancel_and_reopen(self, db, make_invoice):
        inv = make_invoice()
        assert svc.change_status(
            db, inv.id, InvoiceStatus.CANCELED).status == InvoiceStatus.CANCELED
        assert svc.change_status(
            db, inv.id, InvoiceStatus.PENDING).status == InvoiceStatus.PENDING

    def test_paid_cannot_be_set_directly(self, db, make_invoice):
        inv = make_invoice()
        with pytest.raises(InvalidState):
            svc.change_status(db, inv.id, InvoiceStatus.PAID)

    def test_paid_is_terminal(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "170")
        with pytest.raises(InvalidState):
            svc.change_status(db, inv.id, InvoiceStatus.CANCELED)

    def test_paid_to_paid_is_a_no_op(self, db, make_invoice, pay):
        inv = make_invoice()
        pay(inv, "170")
        again = svc.change_status(db, inv.id, InvoiceStatus.PAID)
        assert again.status == InvoiceStatus.PAID
        assert again.paid_amount == Decimal("170.00")

    def test_deleted_is_terminal(self, db, make_invoice):
        inv = make_invoice()
        svc.change_status(db, inv.id, InvoiceStatus.DELETED)
        with pytest.raises(InvalidState):
            svc.change_status(db, inv.id, InvoiceStatus.PENDING)


class TestListInvoices:

    def test_deleted_hidden_unless_requested(self, db, make_invoice):
        keep = make_invoice()
        gone = make_invoice()
        svc.change_status(db, gone.id, InvoiceStatus.DELETED)

        rows, meta = svc.list_invoices(db, svc.InvoiceFilters(), 1, 10)
        assert [r.id for r in rows] == [keep.id]
        assert meta.total == 1

        rows, _ = svc.list_invoices(
            db, svc.InvoiceFilters(status=InvoiceStatus.DELETED), 1, 10)
        assert [r.id for r in rows] == [gone.id]

    def test_search_by_patient_name_is_case_insensitive(
            self, db, make_invoice, directory):
        make_invoice(patient=directory.ana)
        bruno_inv = make_invoice(patient=directory.bruno)

        rows, _ = svc.list_invoices(db, svc.InvoiceFilters(search="BRUNO"),
                                    1, 10)
        assert [r.id for r in rows] == [bruno_inv.id]

    def test_search_by_code(self, db, make_invoice):
        make_invoice()
        second = make_invoice()
        rows, _ = svc.list_invoices(db,
                                    svc.InvoiceFilters(search="00002"), 1,
                                    10)
        assert [r.id for r in rows] == [second.id]

    def test_sort_and_paginate(self, db, make_invoice):
        small = make_invoice(items=[{"name": "A", "price": "10"}],
                             discount="0")
        big = make_invoice(items=[{"name": "B", "price": "500"}],
                           discount="0")
        mid = make_invoice(items=[{"name": "C", "price": "90"}],
                           discount="0")

        f = svc.InvoiceFilters(sort_by="total_amount", sort_order="asc")
        rows, meta = svc.list_invoices(db, f, 1, 2)
        assert [r.id for r in rows] == [small.id, mid.id]
        assert meta.total_pages == 2
        assert meta.has_next_page is True
        assert meta.has_previous_page is False

        rows, meta = svc.list_invoices(db, f, 2, 2)
        assert [r.id for r in rows] == [big.id]
        assert meta.has_next_page is False

    def test_unknown_sort_field_falls_back(self, db, make_invoice):
        make_invoice()
        rows, _ = svc.list_invoices(db, svc.InvoiceFilters(sort_by="nope"), 1,
                                    10)
        assert len(rows) == 1

    def test_reads_are_idempotent(self, db, make_invoice):
        inv = make_invoice()
        a = svc.get_invoice(db, inv.id)
        b = svc.get_invoice(db, inv.id)
        assert (a.total_amount, a.paid_amount, a.status) == (b.total_amount,
                                                             b.paid_amount,
                                                             b.status)
