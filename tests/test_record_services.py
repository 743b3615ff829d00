import unittest
import sys
import os
import json
from datetime import date

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from jama.database import DatabaseManager
from jama.data_structures import LoanStatus
from jama.exceptions import LoanNotFoundError, CollectionNotFoundError, ValidationError, TransactionError
from jama.forms import parse_loan_form, parse_payment_form
from jama.services import LoanService, CollectionService
from jama.services.report_aggregator import group_collections_by_loan

TODAY = date(2025, 3, 15)


class ServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.db.add_profile("op1", full_name="Operator One")
        self.db.add_profile("op2", full_name="Operator Two")
        self.loans = LoanService(self.db)
        self.collections = CollectionService(self.db, self.loans)

    def tearDown(self):
        self.db.close()

    def add_loan(self, user_id="op1", **overrides):
        data = {
            'customer_name': 'Ravi',
            'customer_mobile': '9876543210',
            'amount': '5000',
            'installment_amount': '200',
            'duration_count': '30',
            'start_date': '2025-03-01',
        }
        data.update(overrides)
        return self.loans.add_loan(user_id, parse_loan_form(data, today=TODAY))

    def pay(self, loan_id, amount, user_id="op1", day="2025-03-10"):
        form = parse_payment_form({'loan_id': loan_id, 'amount': amount, 'collection_date': day})
        return self.collections.record_payment(user_id, form)


class TestDatabaseManager(ServiceTestCase):

    def test_transaction_rolls_back(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.db.add_loan(user_id="op1", customer_name="Ghost", amount=100, start_date="2025-01-01")
                raise RuntimeError("boom")
        self.assertEqual(self.db.get_loans("op1"), [])

    def test_sqlite_errors_become_transaction_errors(self):
        with self.assertRaises(TransactionError):
            with self.db.transaction():
                self.db.add_collection(9999, "op1", 100, "2025-01-01")

    def test_settings_round_trip(self):
        self.assertEqual(self.db.get_setting("monthly_fee", "1000"), "1000")
        self.db.set_setting("monthly_fee", 1500)
        self.assertEqual(self.db.get_setting("monthly_fee"), "1500")


class TestLoanService(ServiceTestCase):

    def test_add_loan_stores_derived_economics(self):
        loan = self.add_loan(amount='10000', installment_amount='400',
                             disbursement_type='cutting', cutting_amount='1000')
        self.assertEqual(loan.disbursed_amount, 9000)
        self.assertEqual(loan.total_collection, 12000)
        self.assertEqual(loan.profit_interest, 3000)
        self.assertAlmostEqual(loan.interest_rate, 405.56, places=2)
        self.assertEqual(loan.status, LoanStatus.ACTIVE)

        logs = self.db.get_audit_logs("loans", loan.id)
        self.assertEqual([l['action'] for l in logs], ["INSERT"])

    def test_operator_cannot_read_another_operators_loan(self):
        loan = self.add_loan()
        with self.assertRaises(LoanNotFoundError):
            self.loans.get_loan(loan.id, "op2")
        self.assertEqual(self.loans.get_loans("op2"), [])

    def test_update_rederives_economics(self):
        loan = self.add_loan(amount='10000', installment_amount='400')
        updated = self.loans.update_loan(loan.id, "op1", installment_amount='450')
        self.assertEqual(updated.total_collection, 13500)
        self.assertEqual(updated.profit_interest, 3500)
        self.assertAlmostEqual(updated.interest_rate, round(0.35 * (365 / 30) * 100, 2), places=2)

        logs = self.db.get_audit_logs("loans", loan.id)
        self.assertEqual(logs[-1]['action'], "UPDATE")
        self.assertEqual(json.loads(logs[-1]['old_values'])['installment_amount'], 400)

    def test_explicit_interest_rate_wins(self):
        loan = self.add_loan()
        updated = self.loans.update_loan(loan.id, "op1", amount='6000', interest_rate='24')
        self.assertEqual(updated.interest_rate, 24.0)
        self.assertEqual(updated.amount, 6000)

    def test_update_rejects_unknown_fields(self):
        loan = self.add_loan()
        with self.assertRaises(ValidationError):
            self.loans.update_loan(loan.id, "op1", status="completed")

    def test_reducing_principal_below_paid_completes_loan(self):
        loan = self.add_loan()
        self.pay(loan.id, 3000)
        updated = self.loans.update_loan(loan.id, "op1", amount='3000')
        self.assertEqual(updated.status, LoanStatus.COMPLETED)

    def test_delete_loan_removes_collections(self):
        loan = self.add_loan()
        payment = self.pay(loan.id, 500)
        self.loans.delete_loan(loan.id, "op1")
        with self.assertRaises(LoanNotFoundError):
            self.loans.get_loan(loan.id)
        self.assertIsNone(self.db.get_collection(payment.id))


class TestCollectionService(ServiceTestCase):

    def test_payment_completes_loan(self):
        loan = self.add_loan()
        self.pay(loan.id, 3000)
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.ACTIVE)
        self.pay(loan.id, 2500, day="2025-03-11")
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.COMPLETED)

    def test_payment_on_completed_loan_allowed(self):
        loan = self.add_loan(amount='1000')
        self.pay(loan.id, 1000)
        extra = self.pay(loan.id, 100, day="2025-03-12")
        self.assertEqual(extra.amount, 100)
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.COMPLETED)

    def test_payment_on_another_operators_loan(self):
        loan = self.add_loan()
        with self.assertRaises(LoanNotFoundError):
            self.pay(loan.id, 100, user_id="op2")
        self.assertEqual(self.collections.get_collections(loan_id=loan.id), [])

    def test_deleting_payment_reopens_loan(self):
        loan = self.add_loan(amount='1000')
        payment = self.pay(loan.id, 1000)
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.COMPLETED)
        self.collections.delete_collection(payment.id, "op1")
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.ACTIVE)
        with self.assertRaises(CollectionNotFoundError):
            self.collections.get_collection(payment.id)

    def test_editing_payment(self):
        loan = self.add_loan(amount='1000')
        payment = self.pay(loan.id, 400)
        updated = self.collections.update_collection(payment.id, "op1", "1000", "2025-03-11", "fixed")
        self.assertEqual(updated.amount, 1000)
        self.assertEqual(updated.collection_date, date(2025, 3, 11))
        self.assertEqual(updated.notes, "fixed")
        self.assertEqual(self.loans.get_loan(loan.id).status, LoanStatus.COMPLETED)

        with self.assertRaises(ValidationError):
            self.collections.update_collection(payment.id, "op1", "0", "2025-03-11")
        with self.assertRaises(CollectionNotFoundError):
            self.collections.update_collection(payment.id, "op2", "10", "2025-03-11")

    def test_recent_collections_newest_first(self):
        loan = self.add_loan()
        other = self.add_loan(customer_name="Lakshmi")
        self.pay(loan.id, 100, day="2025-03-02")
        self.pay(other.id, 200, day="2025-03-05")
        self.pay(loan.id, 300, day="2025-03-03")

        recent = self.collections.get_recent_collections("op1", limit=2)
        self.assertEqual([r.collection.amount for r in recent], [200, 300])
        self.assertEqual(recent[0].customer_name, "Lakshmi")

    def test_collections_by_loan(self):
        loan = self.add_loan()
        self.pay(loan.id, 100)
        self.pay(loan.id, 200, day="2025-03-11")
        grouped = self.collections.get_collections_by_loan("op1")
        self.assertEqual(sum(c.amount for c in grouped[loan.id]), 300)
        self.assertEqual(self.collections.get_collections_by_loan("op2"), {})
        self.assertEqual(grouped, group_collections_by_loan(self.collections.get_collections("op1")))


if __name__ == '__main__':
    unittest.main()
