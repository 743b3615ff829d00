"""
Report generation module for JAMA.
Builds the daily collection, loan database, customer-wise and period
reports and exports them to CSV, Excel or PDF.
"""
import logging
import os
from dataclasses import asdict
from datetime import date, datetime
from html import escape

import pandas as pd

from jama.config import CURRENCY_SYMBOL, EXCEL_HEADER_BG, EXCEL_TOTAL_BG, PDF_MARGIN_MM
from jama.data_structures import ReportConfig
from jama.exceptions import JamaError, ValidationError
from jama.services.collection_service import CollectionService
from jama.services.loan_service import LoanService
from jama.services.report_aggregator import (
    build_daily_collections, build_loan_database, build_customer_report,
    search_customer_rows, default_period, build_period_summary,
)
from jama.validation import parse_date

logger = logging.getLogger(__name__)

REPORT_COLUMNS = {
    'daily': ["Date", "Customer Name", "Mobile", "Amount", "Pending Amount", "Notes"],
    'loans': ["Customer Name", "Mobile", "Amount", "Interest Rate", "Duration", "Status", "Start Date"],
    'customers': ["Loan ID", "Customer Name", "Mobile", "Principle Amount", "Outstanding Amount",
                  "Total Collections", "Avg Daily Payment", "Time Frame", "Status"],
}

PERIOD_LOAN_COLUMNS = ["Customer Name", "Mobile", "Amount", "Status", "Date"]

SHEET_NAMES = {
    'daily': 'Daily Collections',
    'loans': 'Loan Database',
    'customers': 'Customer Report',
    'period': 'Period Report',
}

# Numeric columns that get a total in the Excel totals row
TOTAL_COLUMNS = {
    'daily': ["Amount"],
    'loans': ["Amount"],
    'customers': ["Principle Amount", "Outstanding Amount", "Total Collections"],
    'period': ["Amount"],
}


def money(amount):
    return f"{CURRENCY_SYMBOL}{amount:,.2f}"


def write_pdf(html_content, output_path, allow_html_fallback=True):
    """Render an HTML document to PDF with WeasyPrint.

    When rendering fails and the fallback is allowed, the HTML itself is
    written next to the requested path (``.html`` extension) instead.

    Returns:
        tuple: (bool, str, str) - (Success status, message, path written or None).
    """
    try:
        from weasyprint import HTML
        HTML(string=html_content).write_pdf(output_path)
        return True, f"PDF saved to {output_path}", output_path
    except Exception as e:
        if not allow_html_fallback:
            logger.error("PDF export failed for %s: %s", output_path, e)
            return False, f"PDF Export Failed: {e}", None

        html_path = os.path.splitext(output_path)[0] + ".html"
        logger.warning("PDF rendering unavailable (%s); writing HTML to %s", e, html_path)
        try:
            with open(html_path, "w", encoding="utf-8") as f:
                f.write(html_content)
        except OSError as write_error:
            logger.error("HTML fallback failed for %s: %s", html_path, write_error)
            return False, f"PDF Export Failed: {e}; HTML fallback failed: {write_error}", None
        return True, f"PDF rendering unavailable, HTML saved to {html_path}", html_path


def html_document(title, summary_lines, table_html, company_name=None, orientation="landscape"):
    """Wrap a report table in a printable HTML page."""
    company = f'<div class="company">{escape(company_name)}</div>' if company_name else ""
    summary = "".join(f"<div>{escape(line)}</div>" for line in summary_lines)
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            @page {{ size: A4 {orientation}; margin: {PDF_MARGIN_MM}mm; }}
            body {{ font-family: Arial, sans-serif; padding: 20px; }}
            h1 {{ color: #2b5797; text-align: center; }}
            .company {{ text-align: center; color: #444; margin-bottom: 10px; }}
            .summary {{ color: #333; margin-bottom: 20px; line-height: 1.6; }}
            table.report-table {{
                width: 100%; border-collapse: collapse; font-size: 10px;
            }}
            table.report-table th {{
                background-color: {EXCEL_HEADER_BG}; border: 1px solid #ccc; padding: 5px; text-align: left;
            }}
            table.report-table td {{
                border: 1px solid #ddd; padding: 4px;
            }}
        </style>
    </head>
    <body>
        <h1>{escape(title)}</h1>
        {company}
        <div class="summary">{summary}</div>
        {table_html}
        <div style="margin-top:20px; font-size: 9px; color: #999;">Generated on {datetime.now().strftime('%Y-%m-%d %H:%M')}</div>
    </body>
    </html>
    """


class ReportGenerator:
    def __init__(self, db_manager, config: ReportConfig = None):
        self.db = db_manager
        self.config = config or ReportConfig()
        self.loan_service = LoanService(db_manager)
        self.collection_service = CollectionService(db_manager, self.loan_service)

    def _fmt(self, d):
        return d.strftime(self.config.date_format) if d else ""

    def _company_name(self):
        return self.config.company_name or self.db.get_setting("company_name")

    # ------------------------------------------------------------------
    # Report frames
    # ------------------------------------------------------------------

    def build_frame(self, report_type, user_id, selected_date=None, search=None):
        """Build the DataFrame and summary lines for a report.

        Args:
            report_type: 'daily', 'loans' or 'customers'.
            user_id: Operator whose data is reported.
            selected_date: Day for the daily report (defaults to today).
            search: Optional customer search term for the customer report.

        Returns:
            tuple: (DataFrame, list of summary lines).
        """
        if report_type not in REPORT_COLUMNS:
            raise ValidationError("report_type", f"Unknown report '{report_type}'", report_type)

        loans = self.loan_service.get_loans(user_id)
        collections_by_loan = self.collection_service.get_collections_by_loan(user_id)

        if report_type == 'daily':
            selected_date = selected_date or date.today()
            rows = build_daily_collections(loans, collections_by_loan, selected_date)
            data = [[self._fmt(r.collection_date), r.customer_name, r.customer_mobile,
                     r.amount, r.pending_amount, r.notes] for r in rows]
            total = sum(r.amount for r in rows)
            summary = [f"Date: {self._fmt(selected_date)}",
                       f"Total Collections: {money(total)}",
                       f"Entries: {len(rows)}"]

        elif report_type == 'loans':
            report = build_loan_database(loans)
            data = [[r.customer_name, r.customer_mobile, r.amount, r.interest_rate,
                     f"{r.duration_count} {r.duration_unit}", r.status, self._fmt(r.start_date)]
                    for r in report.rows]
            summary = [f"Total Loans: {report.total_count}",
                       f"Total Amount: {money(report.total_principal)}",
                       f"Active Loans: {report.active_count}"]

        else:
            rows = build_customer_report(loans, collections_by_loan)
            if search:
                rows = search_customer_rows(rows, search)
            data = [[r.loan_id, r.customer_name, r.customer_mobile, r.principal_amount,
                     r.outstanding_amount, r.paid_amount, r.average_payment, r.time_frame, r.status]
                    for r in rows]
            summary = [f"Customers: {len(rows)}",
                       f"Total Outstanding: {money(sum(r.outstanding_amount for r in rows))}",
                       f"Total Collections: {money(sum(r.paid_amount for r in rows))}"]

        df = pd.DataFrame(data, columns=REPORT_COLUMNS[report_type])
        return df, summary

    def export_report(self, report_type, user_id, output_path, selected_date=None, search=None):
        """
        Export a report; the format follows the output path's extension.

        Returns:
            tuple: (bool, str) - (Success status, Result message or Error details).
        """
        try:
            df, summary = self.build_frame(report_type, user_id, selected_date, search)
        except JamaError as e:
            logger.error("Report '%s' failed for %s: %s", report_type, user_id, e)
            return False, str(e)

        title = f"{self.config.title} - {SHEET_NAMES[report_type]}"
        return self._export(df, output_path, report_type, title, summary)

    def _export(self, df, output_path, report_type, title, summary):
        if output_path.endswith('.csv'):
            success, msg = self._export_to_csv(df, output_path)
        elif output_path.endswith('.pdf'):
            success, msg = self._export_to_pdf(df, output_path, title, summary)
        else:
            success, msg = self._export_to_excel(df, output_path, report_type)

        if success:
            logger.info("Exported %s report (%d rows) to %s", report_type, len(df), output_path)
        return success, msg

    # ------------------------------------------------------------------
    # Period reports
    # ------------------------------------------------------------------

    def generate_period_report(self, user_id, report_type, start_date=None, end_date=None, today=None):
        """Summarize loans and collections in a period and store a snapshot.

        For 'daily', 'monthly' and 'annual' the period defaults to today,
        month-to-date and year-to-date. 'custom' requires both dates.

        Raises:
            ValidationError: On an unknown report type or invalid period.
        """
        start_date = parse_date(start_date, "start_date", allow_empty=True)
        end_date = parse_date(end_date, "end_date", allow_empty=True)
        default_start, default_end = default_period(report_type, today)
        start_date = start_date or default_start
        end_date = end_date or default_end

        loans = self.loan_service.get_loans(user_id)
        collections = self.collection_service.get_collections(user_id)
        summary = build_period_summary(loans, collections, start_date, end_date, report_type)

        report_data = {
            'totalLoans': summary.total_loans,
            'totalCollections': summary.total_collections,
            'pendingAmount': summary.pending_amount,
            'loansCount': summary.loans_count,
            'collectionsCount': summary.collections_count,
            'loans': [self._jsonable(asdict(l)) for l in summary.loans],
            'collections': [self._jsonable(asdict(c)) for c in summary.collections],
        }
        self.db.add_report(user_id, report_type, start_date.isoformat(), end_date.isoformat(),
                           summary.total_loans, summary.total_collections, summary.pending_amount,
                           report_data)
        logger.info("Generated %s report for %s: %s to %s", report_type, user_id, start_date, end_date)
        return summary

    @staticmethod
    def _jsonable(record):
        return {k: v.isoformat() if isinstance(v, date) else v for k, v in record.items()}

    def export_period_report(self, summary, output_path=None):
        """Export a PeriodSummary: summary lines plus the period's loans.

        Returns:
            tuple: (bool, str) - (Success status, Result message or Error details).
        """
        if output_path is None:
            output_path = (f"jama-report-{summary.report_type}-{summary.start_date.isoformat()}"
                           f"-{summary.end_date.isoformat()}.pdf")

        data = [[l.customer_name or 'N/A', l.customer_mobile or 'N/A', l.amount,
                 l.status or 'active', self._fmt(l.start_date)] for l in summary.loans]
        df = pd.DataFrame(data, columns=PERIOD_LOAN_COLUMNS)
        lines = [
            f"Report Type: {summary.report_type}",
            f"Date: {self._fmt(summary.start_date)} to {self._fmt(summary.end_date)}",
            f"Total Loans: {money(summary.total_loans)}",
            f"Total Collections: {money(summary.total_collections)}",
            f"Pending Amount: {money(summary.pending_amount)}",
            f"Number of Loans: {summary.loans_count}",
            f"Number of Collections: {summary.collections_count}",
        ]
        return self._export(df, output_path, 'period', self.config.title, lines)

    # ------------------------------------------------------------------
    # Exporters
    # ------------------------------------------------------------------

    def _export_to_excel(self, df, output_path, report_type):
        """Export DataFrame to Excel with formatting and a totals row."""
        try:
            header_bg = self.db.get_setting("excel_header_bg", EXCEL_HEADER_BG)
            total_bg = self.db.get_setting("excel_total_bg", EXCEL_TOTAL_BG)
            sheet_name = SHEET_NAMES[report_type]

            with pd.ExcelWriter(output_path, engine='xlsxwriter') as writer:
                df.to_excel(writer, index=False, sheet_name=sheet_name)
                workbook = writer.book
                worksheet = writer.sheets[sheet_name]

                header_fmt = workbook.add_format({'bold': True, 'border': 1, 'bg_color': header_bg})
                num_fmt = workbook.add_format({'num_format': '#,##0.00'})
                total_fmt = workbook.add_format({'bold': True, 'border': 1, 'num_format': '#,##0.00',
                                                 'bg_color': total_bg})

                for col_num, value in enumerate(df.columns.values):
                    worksheet.write(0, col_num, value, header_fmt)
                    width = 25 if value in ("Customer Name", "Notes", "Time Frame") else 15
                    if value in TOTAL_COLUMNS[report_type]:
                        worksheet.set_column(col_num, col_num, width, num_fmt)
                    else:
                        worksheet.set_column(col_num, col_num, width)

                if not df.empty:
                    total_row_idx = len(df) + 1
                    worksheet.write(total_row_idx, 0, "TOTAL", total_fmt)
                    for col_num, col_name in enumerate(df.columns):
                        if col_name in TOTAL_COLUMNS[report_type]:
                            worksheet.write(total_row_idx, col_num, float(df[col_name].sum()), total_fmt)

            return True, "Report generated successfully."
        except Exception as e:
            logger.error("Excel export failed for %s: %s", output_path, e)
            return False, f"Excel Export Failed: {e}"

    def _export_to_csv(self, df, output_path):
        """Export DataFrame to CSV."""
        try:
            df.to_csv(output_path, index=False)
            return True, "Report generated successfully (CSV)."
        except Exception as e:
            logger.error("CSV export failed for %s: %s", output_path, e)
            return False, f"CSV Export Failed: {e}"

    def _export_to_pdf(self, df, output_path, title, summary_lines):
        """Export DataFrame to PDF via HTML."""
        html_table = df.to_html(index=False, classes='report-table', na_rep="",
                                float_format=lambda x: "{:,.2f}".format(x))
        html_content = html_document(title, summary_lines, html_table, self._company_name())
        success, msg, _ = write_pdf(html_content, output_path, self.config.allow_html_fallback)
        return success, msg
