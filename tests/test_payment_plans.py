from datetime import datetime
from decimal import Decimal

import pytest

from clinic_billing.core.errors import InvalidArgument, InvalidState, NotFound
from clinic_billing.models import PaymentInstallment, PaymentPlan
from clinic_billing.models.billing import PaymentMethod
from clinic_billing.schemas.payment_plan import (
    PayInstallmentIn,
    PaymentPlanCreate,
    PaymentPlanUpdate,
)
from clinic_billing.services import payment_plan_service as svc

START = datetime(2025, 1, 31, 9, 0)


@pytest.fixture()
def make_plan(db, directory):

    def _make(treatment=None, count=3, amount="100", initial="0",
              start=START):
        return svc.create_plan(
            db,
            PaymentPlanCreate(
                treatment_id=(treatment or directory.ortho).id,
                number_of_installments=count,
                installment_amount=amount,
                initial_payment=initial,
                start_date=start,
            ))

    return _make


def _pay(db, plan, number, **kw):
    inst = next(i for i in plan.installments
                if i.installment_number == number)
    return svc.mark_installment_paid(db, plan.id, inst.id,
                                     PayInstallmentIn(**kw))


class TestCreatePlan:

    def test_three_by_hundred_against_300(self, make_plan):
        plan = make_plan()
        assert plan.number_of_installments == 3
        assert [i.installment_number for i in plan.installments] == [1, 2, 3]
        assert all(i.amount == Decimal("100.00") for i in plan.installments)
        assert all(i.is_paid is False for i in plan.installments)
        assert [i.due_date for i in plan.installments] == [
            datetime(2025, 2, 28, 9, 0),
            datetime(2025, 3, 31, 9, 0),
            datetime(2025, 4, 30, 9, 0),
        ]

    def test_same_plan_against_305_rejected(self, db, make_plan, directory):
        with pytest.raises(InvalidArgument):
            make_plan(treatment=directory.implant)
        assert db.query(PaymentPlan).count() == 0

    def test_initial_payment_counts_toward_price(self, make_plan,
                                                 directory):
        plan = make_plan(treatment=directory.implant, initial="5")
        assert plan.initial_payment == Decimal("5.00")
        assert len(plan.installments) == 3

    def test_one_cent_difference_is_tolerated(self, make_plan):
        plan = make_plan(count=3, amount="99.99", initial="0.02")
        assert plan.installment_amount == Decimal("99.99")

    def test_one_plan_per_treatment(self, make_plan):
        make_plan()
        with pytest.raises(InvalidState):
            make_plan()

    def test_deleted_treatment(self, make_plan, directory):
        with pytest.raises(NotFound):
            make_plan(treatment=directory.removed)

    def test_defaults_start_to_now(self, db, directory):
        plan = svc.create_plan(
            db,
            PaymentPlanCreate(treatment_id=directory.ortho.id,
                              number_of_installments=1,
                              installment_amount="300"))
        assert plan.installments[0].due_date > plan.start_date


class TestUpdatePlan:

    def test_structural_change_regenerates_schedule(self, db, make_plan):
        plan = make_plan()
        updated = svc.update_plan(
            db, plan.id,
            PaymentPlanUpdate(number_of_installments=6,
                              installment_amount="50",
                              start_date=datetime(2025, 6, 1)))

        assert updated.number_of_installments == 6
        assert [i.installment_number
                for i in updated.installments] == [1, 2, 3, 4, 5, 6]
        assert updated.installments[0].due_date == datetime(2025, 7, 1)
        assert updated.installments[-1].due_date == datetime(2025, 12, 1)
        assert db.query(PaymentInstallment).count() == 6
        assert all(i.amount == Decimal("50.00") for i in updated.installments)

    def test_structural_change_revalidates_price(self, db, make_plan):
        plan = make_plan()
        with pytest.raises(InvalidArgument):
            svc.update_plan(db, plan.id,
                            PaymentPlanUpdate(installment_amount="90"))
        db.rollback()
        assert len(svc.get_plan(db, plan.id).installments) == 3

    def test_start_date_alone_moves_schedule(self, db, make_plan):
        plan = make_plan()
        updated = svc.update_plan(
            db, plan.id, PaymentPlanUpdate(start_date=datetime(2025, 6, 10)))
        assert updated.start_date == datetime(2025, 6, 10)
        assert updated.number_of_installments == 3
        assert [i.due_date for i in updated.installments] == [
            datetime(2025, 7, 10),
            datetime(2025, 8, 10),
            datetime(2025, 9, 10),
        ]
        assert db.query(PaymentInstallment).count() == 3

    def test_empty_patch_changes_nothing(self, db, make_plan):
        plan = make_plan()
        dues = [i.due_date for i in plan.installments]
        updated = svc.update_plan(db, plan.id, PaymentPlanUpdate())
        assert updated.start_date == START
        assert [i.due_date for i in updated.installments] == dues

    def test_paid_installment_blocks_update(self, db, make_plan):
        plan = make_plan()
        _pay(db, plan, 1)
        with pytest.raises(InvalidState):
            svc.update_plan(db, plan.id,
                            PaymentPlanUpdate(number_of_installments=2,
                                              installment_amount="150"))


class TestDeletePlan:

    def test_delete_removes_installments(self, db, make_plan):
        plan = make_plan()
        svc.delete_plan(db, plan.id)
        assert db.query(PaymentPlan).count() == 0
        assert db.query(PaymentInstallment).count() == 0
        with pytest.raises(NotFound):
            svc.get_plan(db, plan.id)

    def test_paid_installment_blocks_delete(self, db, make_plan):
        plan = make_plan()
        _pay(db, plan, 2)
        with pytest.raises(InvalidState):
            svc.delete_plan(db, plan.id)


class TestInstallments:

    def test_mark_paid(self, db, make_plan):
        plan = make_plan()
        when = datetime(2025, 2, 20, 11, 0)
        inst = _pay(db, plan, 1, payment_method="CASH", payment_date=when)
        assert inst.is_paid is True
        assert inst.paid_date == when
        assert inst.payment_method == PaymentMethod.CASH

    def test_second_payment_rejected(self, db, make_plan):
        plan = make_plan()
        _pay(db, plan, 1)
        with pytest.raises(InvalidState):
            _pay(db, svc.get_plan(db, plan.id), 1)

    def test_installment_of_another_plan(self, db, make_plan, directory):
        mine = make_plan()
        other = make_plan(treatment=directory.implant, initial="5")
        with pytest.raises(NotFound):
            svc.mark_installment_paid(db, mine.id,
                                      other.installments[0].id,
                                      PayInstallmentIn())

    def test_missing_plan(self, db, directory):
        with pytest.raises(NotFound):
            svc.mark_installment_paid(db, 99, 1, PayInstallmentIn())


class TestSummary:

    def test_summary_counts_paid_and_pending(self, db, make_plan):
        plan = make_plan()
        _pay(db, plan, 1)
        summary = svc.get_summary(db, plan.id)
        assert summary.total_installments == 3
        assert summary.paid_installments == 1
        assert summary.pending_installments == 2
        assert summary.total_amount == Decimal("300.00")
        assert summary.paid_amount == Decimal("100.00")
        assert summary.pending_amount == Decimal("200.00")
        assert summary.paid_percentage == Decimal("33.33")

    def test_initial_payment_is_collected_up_front(self, db, make_plan,
                                                   directory):
        plan = make_plan(treatment=directory.implant, initial="5")
        summary = svc.get_summary(db, plan.id)
        assert summary.total_amount == Decimal("305.00")
        assert summary.paid_amount == Decimal("5.00")
        assert summary.paid_percentage == Decimal("1.64")

    def test_zero_total_plan(self, db, make_plan, directory):
        directory.ortho.price = Decimal("0")
        db.commit()
        plan = make_plan(count=2, amount="0")
        assert svc.get_summary(db, plan.id).paid_percentage == Decimal("0")


class TestListPlans:

    def test_filter_by_treatment(self, db, make_plan, directory):
        ortho_plan = make_plan()
        make_plan(treatment=directory.implant, initial="5")
        assert len(svc.list_plans(db)) == 2
        assert [p.id for p in svc.list_plans(db, directory.ortho.id)
                ] == [ortho_plan.id]


class TestPlanLocking:

    @pytest.fixture()
    def calls(self, monkeypatch):
        seen = []
        lock, paid_count = svc._lock_plan, svc._paid_count

        def _lock(db, plan_id):
            seen.append("lock")
            return lock(db, plan_id)

        def _count(db, plan_id):
            seen.append("paid_count")
            return paid_count(db, plan_id)

        monkeypatch.setattr(svc, "_lock_plan", _lock)
        monkeypatch.setattr(svc, "_paid_count", _count)
        return seen

    def test_update_locks_before_paid_check(self, db, make_plan, calls):
        plan = make_plan()
        svc.update_plan(db, plan.id,
                        PaymentPlanUpdate(number_of_installments=2,
                                          installment_amount="150"))
        assert calls == ["lock", "paid_count"]

    def test_delete_locks_before_paid_check(self, db, make_plan, calls):
        plan = make_plan()
        svc.delete_plan(db, plan.id)
        assert calls == ["lock", "paid_count"]

    def test_mark_paid_takes_the_same_lock(self, db, make_plan, calls):
        plan = make_plan()
        _pay(db, plan, 1)
        assert calls == ["lock"]

    def test_installment_of_deleted_plan(self, db, make_plan):
        plan = make_plan()
        inst_id = plan.installments[0].id
        svc.delete_plan(db, plan.id)
        with pytest.raises(NotFound):
            svc.mark_installment_paid(db, plan.id, inst_id,
                                      PayInstallmentIn())
