import unittest
import sys
import os
import copy
from datetime import date, timedelta

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from jama.data_structures import Collection, LedgerSummary, LoanStatus, PriorityBand
from jama.services.ledger_aggregator import aggregate_ledger, round_half_up
from jama.services.overdue_calculator import compute_overdue, priority_band, classify_loan_status


def make_collections(amounts, start=date(2025, 1, 1)):
    return [Collection(id=i + 1, loan_id=1, amount=a, collection_date=start + timedelta(days=i))
            for i, a in enumerate(amounts)]


class TestLedgerAggregator(unittest.TestCase):

    def test_partial_payments(self):
        ledger = aggregate_ledger(5000, make_collections([1200, 800]))
        self.assertEqual(ledger.paid_amount, 2000)
        self.assertEqual(ledger.pending_amount, 3000)
        self.assertEqual(ledger.progress_percent, 40)
        self.assertEqual(ledger.derived_status, LoanStatus.ACTIVE)
        self.assertEqual(ledger.payment_count, 2)
        self.assertEqual(ledger.average_payment, 1000)
        self.assertEqual(ledger.last_payment_date, date(2025, 1, 2))

    def test_overpayment_is_clamped(self):
        with self.assertLogs('jama.services.ledger_aggregator', level='WARNING'):
            ledger = aggregate_ledger(5000, make_collections([3000, 2500]))
        self.assertEqual(ledger.paid_amount, 5500)
        self.assertEqual(ledger.pending_amount, 0)
        self.assertEqual(ledger.overpaid_amount, 500)
        self.assertEqual(ledger.derived_status, LoanStatus.COMPLETED)

    def test_empty_collections(self):
        for collections in ([], None):
            ledger = aggregate_ledger(5000, collections)
            self.assertEqual(ledger.paid_amount, 0)
            self.assertEqual(ledger.pending_amount, 5000)
            self.assertEqual(ledger.progress_percent, 0)
            self.assertIsNone(ledger.last_payment_date)

    def test_exact_payoff_completes(self):
        ledger = aggregate_ledger(1000, make_collections([500, 500]))
        self.assertEqual(ledger.pending_amount, 0)
        self.assertEqual(ledger.progress_percent, 100)
        self.assertEqual(ledger.derived_status, LoanStatus.COMPLETED)

    def test_adding_collection_is_monotonic(self):
        history = make_collections([100, 250])
        before = aggregate_ledger(1000, history)
        after = aggregate_ledger(1000, history + make_collections([50], start=date(2025, 2, 1)))
        self.assertGreaterEqual(after.paid_amount, before.paid_amount)
        self.assertLessEqual(after.pending_amount, before.pending_amount)

    def test_idempotent_and_does_not_mutate(self):
        history = make_collections([100, 250, 75])
        snapshot = copy.deepcopy(history)
        first = aggregate_ledger(1000, history)
        second = aggregate_ledger(1000, history)
        self.assertEqual(first, second)
        self.assertEqual(history, snapshot)

    def test_progress_rounds_half_up(self):
        self.assertEqual(round_half_up(12.5), 13)
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.49), 2)
        # 125 of 1000 is 12.5%
        self.assertEqual(aggregate_ledger(1000, make_collections([125])).progress_percent, 13)


class TestOverdueCalculator(unittest.TestCase):

    def setUp(self):
        self.today = date(2025, 3, 15)

    def test_forty_days_on_thirty_day_loan(self):
        start = self.today - timedelta(days=40)
        status = compute_overdue(start, 30, "days", today=self.today)
        self.assertEqual(status.days_since_start, 40)
        self.assertEqual(status.days_overdue, 10)
        self.assertEqual(status.priority_band, PriorityBand.HIGH)
        self.assertEqual(status.expected_end_date, start + timedelta(days=30))
        self.assertEqual(status.last_payment_date, start)
        self.assertEqual(status.days_since_last_payment, 40)

    def test_within_tenor_is_not_overdue(self):
        status = compute_overdue(self.today - timedelta(days=10), 30, "days", today=self.today)
        self.assertEqual(status.days_overdue, 0)
        self.assertEqual(status.priority_band, PriorityBand.NORMAL)

    def test_months_are_thirty_days(self):
        status = compute_overdue(self.today - timedelta(days=65), 2, "months", today=self.today)
        self.assertEqual(status.days_overdue, 5)
        self.assertEqual(status.priority_band, PriorityBand.MEDIUM)

    def test_last_payment_date_used(self):
        start = self.today - timedelta(days=20)
        status = compute_overdue(start, 30, "days", last_payment_date=self.today - timedelta(days=3),
                                 today=self.today)
        self.assertEqual(status.days_since_last_payment, 3)

    def test_priority_band_thresholds(self):
        self.assertEqual(priority_band(0), PriorityBand.NORMAL)
        self.assertEqual(priority_band(3), PriorityBand.NORMAL)
        self.assertEqual(priority_band(4), PriorityBand.MEDIUM)
        self.assertEqual(priority_band(6), PriorityBand.MEDIUM)
        self.assertEqual(priority_band(7), PriorityBand.HIGH)

    def test_classify_loan_status(self):
        start = self.today - timedelta(days=40)
        overdue = compute_overdue(start, 30, "days", today=self.today)
        owing = LedgerSummary(paid_amount=100, pending_amount=900, progress_percent=10,
                              derived_status=LoanStatus.ACTIVE)
        paid = LedgerSummary(paid_amount=1000, pending_amount=0, progress_percent=100,
                             derived_status=LoanStatus.COMPLETED)
        self.assertEqual(classify_loan_status(owing, overdue), LoanStatus.OVERDUE)
        self.assertEqual(classify_loan_status(paid, overdue), LoanStatus.COMPLETED)

        on_time = compute_overdue(self.today, 30, "days", today=self.today)
        self.assertEqual(classify_loan_status(owing, on_time), LoanStatus.ACTIVE)


if __name__ == '__main__':
    unittest.main()
