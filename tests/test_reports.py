import json
import os
import shutil
import sys
import tempfile
import unittest
from datetime import date
from unittest.mock import MagicMock, patch

import pandas as pd

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from jama.database import DatabaseManager
from jama.data_structures import ReportConfig, StatementConfig
from jama.forms import parse_loan_form, parse_payment_form
from jama.reports import ReportGenerator, REPORT_COLUMNS, write_pdf, money, html_document
from jama.services import LoanService, CollectionService
from jama.statement_generator import StatementGenerator

TODAY = date(2025, 3, 15)


def weasyprint_stub(fail=False):
    """A fake weasyprint module whose HTML(...).write_pdf touches the output file."""
    module = MagicMock()

    def write(path):
        if fail:
            raise OSError("cairo missing")
        with open(path, "wb") as f:
            f.write(b"%PDF-1.7")

    module.HTML.return_value.write_pdf.side_effect = write
    return module


class ReportTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.db = DatabaseManager(":memory:")
        self.db.add_profile("op1", full_name="Operator: One", mobile_number="9000000001",
                            company_name="Sri Finance")
        loans = LoanService(self.db)
        collections = CollectionService(self.db, loans)

        self.loan = loans.add_loan("op1", parse_loan_form({
            'customer_name': 'Ravi', 'customer_mobile': '9876543210', 'amount': '5000',
            'installment_amount': '200', 'duration_count': '30', 'start_date': '2025-03-01',
        }, today=TODAY))
        loans.add_loan("op1", parse_loan_form({
            'customer_name': 'Lakshmi', 'amount': '3000', 'installment_amount': '120',
            'duration_count': '30', 'start_date': '2025-03-10',
        }, today=TODAY))
        collections.record_payment("op1", parse_payment_form(
            {'loan_id': self.loan.id, 'amount': '1200', 'collection_date': '2025-03-14'}))
        collections.record_payment("op1", parse_payment_form(
            {'loan_id': self.loan.id, 'amount': '800', 'collection_date': '2025-03-15', 'notes': 'cash'}))

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.tmp, name)


class TestReportGenerator(ReportTestCase):

    def setUp(self):
        super().setUp()
        self.reports = ReportGenerator(self.db)

    def test_money(self):
        self.assertEqual(money(1234.5), "Rs.1,234.50")

    def test_daily_frame(self):
        df, summary = self.reports.build_frame('daily', "op1", selected_date=TODAY)
        self.assertEqual(list(df.columns), REPORT_COLUMNS['daily'])
        self.assertEqual(len(df), 1)
        self.assertEqual(df.iloc[0]["Pending Amount"], 3000)
        self.assertEqual(df.iloc[0]["Date"], "15/03/2025")
        self.assertIn("Total Collections: Rs.800.00", summary)

    def test_customer_frame_search(self):
        df, _ = self.reports.build_frame('customers', "op1", search="laks")
        self.assertEqual(df["Customer Name"].tolist(), ["Lakshmi"])
        self.assertEqual(df.iloc[0]["Outstanding Amount"], 3000)

    def test_csv_export(self):
        out = self.path("loans.csv")
        success, _ = self.reports.export_report('loans', "op1", out)
        self.assertTrue(success)
        df = pd.read_csv(out)
        self.assertEqual(list(df.columns), REPORT_COLUMNS['loans'])
        self.assertEqual(sorted(df["Customer Name"]), ["Lakshmi", "Ravi"])

    def test_excel_export(self):
        out = self.path("customers.xlsx")
        success, msg = self.reports.export_report('customers', "op1", out)
        self.assertTrue(success, msg)
        self.assertTrue(os.path.exists(out))

    def test_unknown_report_type(self):
        success, msg = self.reports.export_report('weekly', "op1", self.path("x.csv"))
        self.assertFalse(success)
        self.assertIn("weekly", msg)

    def test_pdf_export(self):
        out = self.path("daily.pdf")
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub()}):
            success, _ = self.reports.export_report('daily', "op1", out, selected_date=TODAY)
        self.assertTrue(success)
        self.assertTrue(os.path.exists(out))

    def test_pdf_falls_back_to_html(self):
        out = self.path("daily.pdf")
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub(fail=True)}):
            with self.assertLogs('jama.reports', level='WARNING'):
                success, msg = self.reports.export_report('daily', "op1", out, selected_date=TODAY)
        self.assertTrue(success)
        self.assertIn("HTML", msg)
        with open(self.path("daily.html"), encoding="utf-8") as f:
            self.assertIn("Daily Collections", f.read())

    def test_pdf_failure_without_fallback(self):
        reports = ReportGenerator(self.db, ReportConfig(allow_html_fallback=False))
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub(fail=True)}):
            success, msg = reports.export_report('loans', "op1", self.path("loans.pdf"))
        self.assertFalse(success)
        self.assertTrue(msg.startswith("PDF Export Failed"))

    def test_period_report_stores_snapshot(self):
        summary = self.reports.generate_period_report("op1", "monthly", today=TODAY)
        self.assertEqual(summary.start_date, date(2025, 3, 1))
        self.assertEqual(summary.total_loans, 8000)
        self.assertEqual(summary.total_collections, 2000)
        self.assertEqual(summary.pending_amount, 6000)

        stored = self.db.get_reports("op1")
        self.assertEqual(len(stored), 1)
        data = json.loads(stored[0]['report_data'])
        self.assertEqual(data['loansCount'], 2)
        self.assertEqual(data['collectionsCount'], 2)
        self.assertEqual(data['loans'][0]['start_date'][:4], "2025")

    def test_period_report_export_default_name(self):
        summary = self.reports.generate_period_report("op1", "daily", today=TODAY)
        cwd = os.getcwd()
        os.chdir(self.tmp)
        try:
            with patch.dict(sys.modules, {'weasyprint': weasyprint_stub()}):
                success, _ = self.reports.export_period_report(summary)
        finally:
            os.chdir(cwd)
        self.assertTrue(success)
        self.assertTrue(os.path.exists(self.path("jama-report-daily-2025-03-15-2025-03-15.pdf")))

    def test_html_document_escapes_text(self):
        page = html_document("Daily <Report>", ["Total: 5 < 6"], "<table></table>", company_name="A&B <Finance>")
        self.assertIn("A&amp;B &lt;Finance&gt;", page)
        self.assertIn("Daily &lt;Report&gt;", page)
        self.assertIn("Total: 5 &lt; 6", page)
        self.assertNotIn("<Finance>", page)
        self.assertIn("<table></table>", page)

    def test_pdf_export_escapes_company_setting(self):
        self.db.set_setting("company_name", "<script>alert(1)</script>")
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub(fail=True)}):
            self.reports.export_report('loans', "op1", self.path("loans.pdf"))
        with open(self.path("loans.html"), encoding="utf-8") as f:
            page = f.read()
        self.assertNotIn("<script>", page)
        self.assertIn("&lt;script&gt;", page)

    def test_write_pdf_reports_written_path(self):
        out = self.path("x.pdf")
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub(fail=True)}):
            success, _, written = write_pdf("<p>hi</p>", out)
        self.assertTrue(success)
        self.assertEqual(written, self.path("x.html"))


class TestStatementGenerator(ReportTestCase):

    def setUp(self):
        super().setUp()
        self.generator = StatementGenerator(self.db)

    def test_sanitize_filename(self):
        self.assertEqual(StatementGenerator._sanitize_filename("Operator: One"), "Operator One")
        self.assertEqual(StatementGenerator._sanitize_filename("???"), "Statement")
        self.assertEqual(StatementGenerator._sanitize_filename(None), "Unknown")

    def test_invalid_inputs(self):
        self.assertEqual(self.generator.generate_pdf_statement("ghost", self.tmp), (False, None, "error"))
        self.assertEqual(
            self.generator.generate_pdf_statement("op1", self.tmp, "2025-03-20", "2025-03-01"),
            (False, None, "error"))

    def test_empty_statement(self):
        self.db.add_profile("op2")
        self.assertEqual(self.generator.generate_pdf_statement("op2", self.tmp), (False, None, "empty"))
        self.assertEqual(self.generator.generate_excel_statement("op2", self.tmp), (False, None))

    def test_presentation_totals(self):
        start, end = date(2025, 3, 15), date(2025, 3, 15)
        data = self.generator.get_statement_data("op1", start, end)
        presentation = self.generator._prepare_presentation(data, start, end)
        self.assertEqual(presentation.operator_name, "Operator: One")
        self.assertEqual(presentation.company_name, "Sri Finance")
        self.assertEqual(presentation.total_lent, 8000)
        self.assertEqual(presentation.total_pending, 6000)
        # Only the payment inside the period counts as collected
        self.assertEqual(presentation.total_collected, 800)
        self.assertEqual(len(presentation.collection_rows), 1)

    def test_hidden_sections(self):
        start, end = date(2025, 3, 1), date(2025, 3, 15)
        data = self.generator.get_statement_data("op1", start, end)
        config = StatementConfig(show_collections=False)
        presentation = self.generator._prepare_presentation(data, start, end, config)
        html = self.generator._generate_pdf_html(presentation, config)
        self.assertIn("LOANS", html)
        self.assertNotIn("COLLECTIONS", html)

    def test_statement_html_escapes_profile_text(self):
        self.db.add_profile("op3", full_name="<i>Op</i>", company_name="A&B")
        loans = LoanService(self.db)
        loans.add_loan("op3", parse_loan_form({
            'customer_name': '<b>Ravi</b>', 'amount': '1000', 'installment_amount': '50',
            'duration_count': '20', 'start_date': '2025-03-01',
        }, today=TODAY))
        start, end = date(2025, 3, 1), date(2025, 3, 15)
        data = self.generator.get_statement_data("op3", start, end)
        config = StatementConfig()
        html = self.generator._generate_pdf_html(self.generator._prepare_presentation(data, start, end, config), config)
        self.assertIn("A&amp;B", html)
        self.assertIn("&lt;i&gt;Op&lt;/i&gt;", html)
        self.assertIn("&lt;b&gt;Ravi&lt;/b&gt;", html)
        self.assertNotIn("<b>Ravi</b>", html)

    def test_pdf_statement(self):
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub()}):
            success, path, kind = self.generator.generate_pdf_statement("op1", self.tmp, to_date="2025-03-15")
        self.assertTrue(success)
        self.assertEqual(kind, "pdf")
        self.assertTrue(os.path.basename(path).startswith("Operator One_statement_"))
        self.assertTrue(os.path.exists(path))

    def test_pdf_statement_html_fallback(self):
        with patch.dict(sys.modules, {'weasyprint': weasyprint_stub(fail=True)}):
            success, path, kind = self.generator.generate_pdf_statement("op1", self.tmp, to_date="2025-03-15")
        self.assertTrue(success)
        self.assertEqual(kind, "html")
        self.assertTrue(path.endswith(".html"))

    def test_excel_statement(self):
        success, path = self.generator.generate_excel_statement("op1", self.tmp, "2025-03-01", "2025-03-15")
        self.assertTrue(success)
        self.assertEqual(os.path.basename(path), "Statement_Operator One_2025-03-01_to_2025-03-15.xlsx")
        self.assertTrue(os.path.exists(path))


if __name__ == '__main__':
    unittest.main()
