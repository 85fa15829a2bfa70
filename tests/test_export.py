import csv
from datetime import datetime, timedelta
from io import StringIO

import pytest

from clinic_billing.models import InvoiceStatus
from clinic_billing.services import invoice_service
from clinic_billing.services.invoice_service import InvoiceFilters
from clinic_billing.services.ledger_export import (
    INVOICE_HEADERS,
    PAYMENT_HEADERS,
    RECEIVABLE_HEADERS,
    csv_line,
    iter_invoices_csv,
    iter_payments_csv,
    iter_receivables_csv,
)
from clinic_billing.services.payment_service import PaymentFilters
from clinic_billing.services.receivables import ReceivableFilters

NOW = datetime(2030, 6, 1, 12, 0)


def _parse(lines):
    return list(csv.reader(StringIO("".join(lines))))


class TestCsvLine:

    def test_plain_values_are_not_quoted(self):
        assert csv_line(["FAC-2025-00001", "170.00"]) == "FAC-2025-00001,170.00\n"

    def test_comma_quote_and_newline_are_quoted(self):
        line = csv_line(['Ruiz, Carla', 'say "hi"', "two\nlines"])
        assert line == '"Ruiz, Carla","say ""hi""","two\nlines"\n'


class TestInvoiceExport:

    def test_header_then_one_line_per_invoice(self, db, make_invoice,
                                              directory):
        directory.carla.full_name = "Ruiz, Carla"
        db.commit()
        first = make_invoice(patient=directory.carla,
                             expires_at=datetime(2025, 7, 1))
        make_invoice()

        lines = list(iter_invoices_csv(db, InvoiceFilters(sort_order="asc")))
        assert len(lines) == 3
        rows = _parse(lines)
        assert rows[0] == INVOICE_HEADERS
        assert rows[1][0] == first.code
        assert rows[1][1] == "Ruiz, Carla"
        assert rows[1][3] == "2025-07-01"
        assert rows[1][4:] == ["170.00", "0.00", "170.00", "Issued"]
        assert lines[1].count('"') == 2

    def test_filters_are_applied(self, db, make_invoice):
        make_invoice()
        canceled = make_invoice()
        invoice_service.change_status(db, canceled.id, InvoiceStatus.CANCELED)

        rows = _parse(
            iter_invoices_csv(db,
                              InvoiceFilters(status=InvoiceStatus.CANCELED)))
        assert [r[0] for r in rows[1:]] == [canceled.code]
        assert rows[1][-1] == "Canceled"

    @pytest.mark.parametrize("batch_size", [1, 2, 20])
    def test_batch_size_does_not_change_output(self, db, make_invoice,
                                               batch_size):
        for _ in range(5):
            make_invoice()
        f = InvoiceFilters(sort_by="code", sort_order="asc")
        assert list(iter_invoices_csv(db, f, batch_size=batch_size)) == list(
            iter_invoices_csv(db, f, batch_size=1000))

    def test_empty_export_is_header_only(self, db, directory):
        assert list(iter_invoices_csv(db, InvoiceFilters())) == [
            csv_line(INVOICE_HEADERS)
        ]


class TestPaymentExport:

    def test_rows(self, db, make_invoice, pay):
        inv = make_invoice()
        p = pay(inv,
                "50.50",
                method="CREDIT_CARD",
                payment_date=datetime(2025, 4, 2, 16, 30))
        pay(inv, "10", method="CASH", reference="R,1")

        rows = _parse(
            iter_payments_csv(db, PaymentFilters(sort_order="asc")))
        assert rows[0] == PAYMENT_HEADERS
        assert rows[1] == [
            p.code, "2025-04-02", "Ana Torres", inv.code, "Credit card", "-",
            "50.50", "Completed"
        ]
        assert rows[2][5] == "R,1"
        assert len(rows) == 3


class TestReceivableExport:

    def test_accounts_span_batches(self, db, make_invoice, pay, directory):
        a1 = make_invoice(patient=directory.ana,
                          expires_at=NOW - timedelta(days=45))
        make_invoice(patient=directory.bruno)
        a2 = make_invoice(patient=directory.ana)
        pay(a2, "70")

        f = ReceivableFilters(sort_by="total_debt", sort_order="desc")
        lines = list(iter_receivables_csv(db, f, batch_size=1, now=NOW))
        rows = _parse(lines)

        assert rows[0] == RECEIVABLE_HEADERS
        assert rows[1] == [
            "Ana Torres", "555-0101", f"{a1.code}; {a2.code}", "45",
            "270.00", "High"
        ]
        assert rows[2] == [
            "Bruno Diaz", "bruno@example.com", rows[2][2], "0", "170.00",
            "Low"
        ]
        assert lines == list(iter_receivables_csv(db, f, batch_size=20,
                                                  now=NOW))
