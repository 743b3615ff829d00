"""Statement generator for JAMA.

Exports one operator's loans and collections as a PDF or Excel
statement for the super admin.
"""
import logging
import os
import re
from datetime import date, datetime
from html import escape

import pandas as pd

from jama.data_structures import (
    Loan, Collection, Profile, StatementConfig, StatementData, StatementLoanRow,
    StatementPresentation, RecentCollectionRow,
)
from jama.exceptions import ValidationError, ProfileNotFoundError
from jama.reports import write_pdf, money
from jama.services.ledger_aggregator import aggregate_ledger
from jama.validation import parse_date

logger = logging.getLogger(__name__)

COLLECTION_COLUMNS = ["Date", "Customer", "Mobile", "Amount", "Notes"]


class StatementGenerator:
    """Generates PDF and Excel statements for operators."""

    def __init__(self, db_manager):
        """Initialize StatementGenerator.

        Args:
            db_manager: DatabaseManager instance for data access.
        """
        self.db = db_manager

    def _validate_inputs(self, user_id, from_date, to_date):
        """Validate input parameters.

        Args:
            user_id: Operator user id.
            from_date: Start date string (YYYY-MM-DD).
            to_date: End date string (YYYY-MM-DD).

        Returns:
            Tuple of parsed (start, end) dates.

        Raises:
            ProfileNotFoundError: If the operator does not exist.
            ValidationError: If the dates are invalid.
        """
        if not self.db.get_profile(user_id):
            raise ProfileNotFoundError(user_id)

        start = parse_date(from_date, "from_date")
        end = parse_date(to_date, "to_date")
        if start > end:
            raise ValidationError("from_date", "Start date cannot be after end date.")
        return start, end

    @staticmethod
    def _sanitize_filename(name):
        """Sanitize filename to prevent OS issues.

        Args:
            name: Input name string.

        Returns:
            Sanitized safe filename string.
        """
        if not name:
            name = "Unknown"

        safe = "".join(c for c in name if c.isalnum() or c in (' ', '-', '_'))
        safe = safe.strip()

        if not safe:
            safe = "Statement"

        return safe[:100]

    def get_statement_data(self, user_id, start, end) -> StatementData:
        """Operator profile, loans started up to ``end`` and their collections up to ``end``."""
        profile = Profile.from_row(self.db.get_profile(user_id))
        loans = [Loan.from_row(r) for r in self.db.get_loans(user_id, start_to=end.isoformat())]
        collections = [Collection.from_row(r)
                       for r in self.db.get_collections(user_id, end_date=end.isoformat())]
        return StatementData(profile=profile, loans=loans, collections=collections)

    def _prepare_presentation(self, data: StatementData, start, end,
                              config: StatementConfig = None) -> StatementPresentation:
        """Prepare presentation data model from raw data."""
        if config is None:
            config = StatementConfig()

        history = {}
        for collection in data.collections:
            history.setdefault(collection.loan_id, []).append(collection)

        loan_rows = []
        if config.show_loans:
            for loan in sorted(data.loans, key=lambda l: (l.start_date, l.id or 0)):
                ledger = aggregate_ledger(loan.amount, history.get(loan.id, []), loan_id=loan.id)
                loan_rows.append(StatementLoanRow(loan=loan, ledger=ledger))

        loans_by_id = {l.id: l for l in data.loans}
        period_collections = [c for c in data.collections if start <= c.collection_date <= end]
        collection_rows = []
        if config.show_collections:
            for c in sorted(period_collections, key=lambda c: (c.collection_date, c.id or 0)):
                loan = loans_by_id.get(c.loan_id)
                collection_rows.append(RecentCollectionRow(
                    collection=c,
                    customer_name=loan.customer_name if loan else "Unknown Customer",
                    customer_mobile=loan.customer_mobile if loan else "",
                ))

        profile = data.profile
        return StatementPresentation(
            operator_name=profile.full_name or profile.user_id,
            operator_mobile=profile.mobile_number,
            company_name=config.company_name or profile.company_name,
            status_str="Active" if profile.is_active else "Inactive",
            status_color="#28a745" if profile.is_active else "#dc3545",
            period_display=f"{start.strftime(config.date_format)} to {end.strftime(config.date_format)}",
            loan_rows=loan_rows,
            collection_rows=collection_rows,
            total_lent=sum(r.loan.amount for r in loan_rows),
            total_pending=sum(r.ledger.pending_amount for r in loan_rows),
            total_collected=sum(c.amount for c in period_collections),
        )

    @staticmethod
    def _loan_value(row: StatementLoanRow, col, config):
        loan, ledger = row.loan, row.ledger
        if col == "Loan ID": return loan.id
        if col == "Customer": return loan.customer_name
        if col == "Mobile": return loan.customer_mobile
        if col == "Amount": return loan.amount
        if col == "Paid": return ledger.paid_amount
        if col == "Pending": return ledger.pending_amount
        if col == "Rate": return f"{loan.interest_rate:.2f}%"
        if col == "Status": return ledger.derived_status
        if col == "Start Date": return loan.start_date.strftime(config.date_format)
        return ""

    @staticmethod
    def _collection_values(row: RecentCollectionRow, config):
        c = row.collection
        return [c.collection_date.strftime(config.date_format), row.customer_name,
                row.customer_mobile, c.amount, c.notes]

    def _generate_pdf_html(self, presentation: StatementPresentation, config: StatementConfig = None):
        """Generate HTML content for PDF statement.

        Returns:
            HTML content string.
        """
        if config is None:
            config = StatementConfig()

        def cell(value):
            return f"{value:,.2f}" if isinstance(value, float) else ("" if value is None else escape(str(value)))

        html = """<!DOCTYPE html>
<html><head>
<meta charset="utf-8">
<style>
    @page { size: A4 landscape; margin: 15mm; }
    body { font-family: Arial, sans-serif; margin: 0; padding: 10px; font-size: 9px; }
    .header { text-align: center; border-bottom: 3px solid #2b5797; padding-bottom: 10px; margin-bottom: 15px; }
    .header h1 { color: #2b5797; margin: 0; font-size: 22px; }
    .header h2 { color: #333; margin: 5px 0 0 0; font-size: 16px; font-weight: normal; }
    .header .period { color: #666; font-size: 11px; margin-top: 5px; }
    .operator-info { background: #f5f5f5; padding: 8px; margin-bottom: 15px; border-radius: 5px; }
    .operator-info p { margin: 2px 0; }
    .section-title { background: #2b5797; color: white; padding: 6px 10px; font-size: 11px; font-weight: bold; }
    .collections-title { background: #28a745; }
    table { width: 100%; border-collapse: collapse; font-size: 8px; margin-bottom: 10px; }
    th { background: #e0e0e0; padding: 4px; text-align: left; border: 1px solid #ccc; }
    td { padding: 3px 4px; border: 1px solid #ddd; }
    .summary-row { margin-top: 15px; padding: 10px; background: #f9f9f9; border-radius: 5px; }
    .footer { margin-top: 15px; text-align: center; font-size: 8px; color: #999; }
</style>
</head><body>"""

        html += f"""<div class="header">
    <h1>{escape(config.custom_title)}</h1>
    <h2>{escape(presentation.company_name or presentation.operator_name)}</h2>
    <div class="period">For the period: {presentation.period_display}</div>
</div>
<div class="operator-info">
    <p><strong>Operator:</strong> {escape(presentation.operator_name)}</p>
    <p><strong>Contact:</strong> {escape(presentation.operator_mobile)}</p>
    <p><strong>Statement Date:</strong> {datetime.now().strftime(config.date_format)}</p>
    <p><strong>Account Status:</strong> <span style="color:{presentation.status_color};font-weight:bold;">{presentation.status_str}</span></p>
</div>"""

        if config.show_loans:
            html += '<div class="section-title">LOANS</div>'
            if presentation.loan_rows:
                html += "<table><thead><tr>" + "".join(f"<th>{c}</th>" for c in config.loan_columns) + "</tr></thead><tbody>"
                for row in presentation.loan_rows:
                    html += "<tr>" + "".join(
                        f"<td>{cell(self._loan_value(row, c, config))}</td>" for c in config.loan_columns) + "</tr>"
                html += "</tbody></table>"
            else:
                html += "<p style='padding:10px;color:#666;'>No loans in this period</p>"

        if config.show_collections:
            html += '<div class="section-title collections-title">COLLECTIONS</div>'
            if presentation.collection_rows:
                html += "<table><thead><tr>" + "".join(f"<th>{c}</th>" for c in COLLECTION_COLUMNS) + "</tr></thead><tbody>"
                for row in presentation.collection_rows:
                    html += "<tr>" + "".join(
                        f"<td>{cell(v)}</td>" for v in self._collection_values(row, config)) + "</tr>"
                html += "</tbody></table>"
            else:
                html += "<p style='padding:10px;color:#666;'>No collections in this period</p>"

        html += f"""<div class="summary-row">
    <div>Total Lent: {money(presentation.total_lent)}</div>
    <div>Total Pending: {money(presentation.total_pending)}</div>
    <div>Collected in Period: {money(presentation.total_collected)}</div>
</div>"""

        html += f"""<div class="footer">{escape(config.custom_footer)} | Statement generated on {datetime.now().strftime('%Y-%m-%d at %H:%M')} | Period: {presentation.period_display}</div>
</body></html>"""
        return html

    def _prepare(self, user_id, from_date, to_date, config):
        if not from_date:
            from_date = "2000-01-01"
        if not to_date:
            to_date = date.today().isoformat()

        start, end = self._validate_inputs(user_id, from_date, to_date)
        data = self.get_statement_data(user_id, start, end)
        return self._prepare_presentation(data, start, end, config), start, end

    def generate_pdf_statement(self, user_id, folder, from_date=None, to_date=None, config: StatementConfig = None):
        """Generate and save an operator statement as a PDF file.

        Args:
            user_id: Operator user id.
            folder: Output folder path.
            from_date: Start date (YYYY-MM-DD). Defaults to "2000-01-01".
            to_date: End date (YYYY-MM-DD). Defaults to today.
            config: Optional StatementConfig.

        Returns:
            Tuple of (success, filepath, kind) where kind is "pdf", "html",
            "empty", "failed" or "error".
        """
        if config is None:
            config = StatementConfig()

        try:
            presentation, _, _ = self._prepare(user_id, from_date, to_date, config)
        except (ValidationError, ProfileNotFoundError) as e:
            logger.error("Statement validation failed for %s: %s", user_id, e)
            return False, None, "error"

        if not presentation.loan_rows and not presentation.collection_rows:
            return False, None, "empty"

        html = self._generate_pdf_html(presentation, config)
        safe_name = self._sanitize_filename(presentation.operator_name)
        filepath = os.path.join(folder, f"{safe_name}_statement_{datetime.now().strftime('%Y%m%d')}.pdf")

        success, _, written = write_pdf(html, filepath, config.allow_html_fallback)
        if not success:
            return False, None, "failed"
        if written != filepath:
            return True, written, "html"
        logger.info("Statement for %s saved to %s", user_id, filepath)
        return True, filepath, "pdf"

    def generate_excel_statement(self, user_id, folder, from_date=None, to_date=None, config: StatementConfig = None):
        """Generate and save an operator statement as an Excel file.

        Returns:
            Tuple of (success, filepath).
        """
        if config is None:
            config = StatementConfig()

        try:
            presentation, start, end = self._prepare(user_id, from_date, to_date, config)
        except (ValidationError, ProfileNotFoundError) as e:
            logger.error("Statement validation failed for %s: %s", user_id, e)
            return False, None

        if not presentation.loan_rows and not presentation.collection_rows:
            return False, None

        safe_name = self._sanitize_filename(presentation.operator_name)
        filename = f"Statement_{safe_name}_{start.isoformat()}_to_{end.isoformat()}.xlsx"
        filename = re.sub(r'[\\/*?:"<>|]', "", filename)
        path = os.path.join(folder, filename)

        try:
            with pd.ExcelWriter(path, engine='xlsxwriter') as writer:
                workbook = writer.book
                worksheet = workbook.add_worksheet("Statement")

                header_fmt = workbook.add_format({
                    'bold': True, 'font_size': 14, 'align': 'center',
                    'bg_color': '#2b5797', 'font_color': 'white'
                })
                status_fmt = workbook.add_format({
                    'bold': True, 'font_size': 12, 'align': 'center',
                    'font_color': presentation.status_color
                })
                sub_header_fmt = workbook.add_format({
                    'bold': True, 'font_size': 12, 'bg_color': '#e0e0e0', 'border': 1
                })
                col_header_fmt = workbook.add_format({
                    'bold': True, 'bg_color': '#f0f0f0', 'border': 1
                })
                cell_fmt = workbook.add_format({'border': 1})
                currency_fmt = workbook.add_format({'border': 1, 'num_format': '#,##0.00'})
                period_fmt = workbook.add_format({'italic': True, 'font_size': 10, 'align': 'center'})

                width = max(len(config.loan_columns), len(COLLECTION_COLUMNS))
                worksheet.merge_range(0, 0, 0, width - 1,
                                      f"{config.custom_title} - {presentation.operator_name}", header_fmt)
                worksheet.merge_range(1, 0, 1, width - 2, f"For the period: {presentation.period_display}", period_fmt)
                worksheet.write(1, width - 1, presentation.status_str, status_fmt)
                worksheet.set_column(0, width - 1, 15)

                def write_row(row_idx, values):
                    for col, val in enumerate(values):
                        fmt = currency_fmt if isinstance(val, float) else cell_fmt
                        worksheet.write(row_idx, col, val, fmt)

                row_idx = 3
                if config.show_loans and presentation.loan_rows:
                    worksheet.merge_range(row_idx, 0, row_idx, len(config.loan_columns) - 1, "LOANS", sub_header_fmt)
                    row_idx += 1
                    for col, header in enumerate(config.loan_columns):
                        worksheet.write(row_idx, col, header, col_header_fmt)
                    row_idx += 1
                    for row in presentation.loan_rows:
                        write_row(row_idx, [self._loan_value(row, c, config) for c in config.loan_columns])
                        row_idx += 1
                    row_idx += 1

                if config.show_collections and presentation.collection_rows:
                    worksheet.merge_range(row_idx, 0, row_idx, len(COLLECTION_COLUMNS) - 1, "COLLECTIONS", sub_header_fmt)
                    row_idx += 1
                    for col, header in enumerate(COLLECTION_COLUMNS):
                        worksheet.write(row_idx, col, header, col_header_fmt)
                    row_idx += 1
                    for row in presentation.collection_rows:
                        write_row(row_idx, self._collection_values(row, config))
                        row_idx += 1
                    row_idx += 1

                worksheet.write(row_idx, 0, "Total Lent", col_header_fmt)
                worksheet.write(row_idx, 1, presentation.total_lent, currency_fmt)
                worksheet.write(row_idx + 1, 0, "Total Pending", col_header_fmt)
                worksheet.write(row_idx + 1, 1, presentation.total_pending, currency_fmt)
                worksheet.write(row_idx + 2, 0, "Collected", col_header_fmt)
                worksheet.write(row_idx + 2, 1, presentation.total_collected, currency_fmt)

            logger.info("Excel statement for %s saved to %s", user_id, path)
            return True, path

        except Exception as e:
            logger.error("Excel statement failed for %s: %s", user_id, e)
            return False, None
