"""Database management module for JAMA.

A local sqlite stand-in for the hosted relational store. It exposes the
same tables the hosted store does (profiles, loans, collections, ads,
ad_analytics, reports, audit_logs) plus a settings table, and returns
plain dict rows; turning rows into records is left to the services.
"""
import json
import logging
import sqlite3
from datetime import datetime
from contextlib import contextmanager

from jama.exceptions import DatabaseError, TransactionError

logger = logging.getLogger(__name__)

LOAN_COLUMNS = (
    "user_id", "customer_name", "customer_mobile", "amount", "disbursement_type",
    "cutting_amount", "disbursed_amount", "repayment_type", "installment_amount",
    "duration_count", "duration_unit", "start_date", "status", "interest_rate",
    "total_collection", "profit_interest",
)

AD_COLUMNS = (
    "user_id", "title", "description", "image_url", "video_url", "start_date",
    "end_date", "is_active", "is_recurring", "recurring_type", "target_audience",
)


def _now():
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class DatabaseManager:
    """Handles all SQLite database operations."""

    def __init__(self, db_name="jama.db"):
        self.db_name = db_name
        try:
            self.conn = sqlite3.connect(db_name)
        except sqlite3.Error as e:
            raise DatabaseError(f"Could not open database: {e}", {'db_name': db_name})
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._closed = False
        self._in_transaction = False
        self.create_tables()

    def close(self):
        """Close the database connection."""
        if self.conn and not self._closed:
            self.conn.close()
            self._closed = True

    def __del__(self):
        """Ensure connection is closed on garbage collection."""
        if hasattr(self, "_closed"):
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback on failure.

        Usage:
            with db.transaction():
                loan_id = db.add_loan(...)
                db.add_audit_log(...)

        Writes inside the block are committed together. If any exception
        occurs, the transaction is rolled back; sqlite errors are re-raised
        as TransactionError.
        """
        if self._in_transaction:
            yield
            return

        self._in_transaction = True
        try:
            yield
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise TransactionError(f"Transaction failed: {str(e)}")
        except Exception:
            self.conn.rollback()
            raise
        finally:
            self._in_transaction = False

    def _commit(self):
        if not self._in_transaction:
            self.conn.commit()

    def _fetch_one(self, query, params=()):
        cursor = self.conn.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        if row:
            cols = [description[0] for description in cursor.description]
            return dict(zip(cols, row))
        return None

    def _fetch_all(self, query, params=()):
        cursor = self.conn.cursor()
        cursor.execute(query, params)
        cols = [description[0] for description in cursor.description]
        return [dict(zip(cols, row)) for row in cursor.fetchall()]

    def create_tables(self):
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL DEFAULT 'jama_user',
                full_name TEXT,
                mobile_number TEXT,
                company_name TEXT,
                is_active INTEGER DEFAULT 1,
                monthly_fee REAL DEFAULT 0,
                subscription_status TEXT,
                subscription_start_date TEXT,
                referral_id TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                customer_name TEXT NOT NULL,
                customer_mobile TEXT,
                amount REAL NOT NULL,
                disbursement_type TEXT DEFAULT 'full',
                cutting_amount REAL DEFAULT 0,
                disbursed_amount REAL,
                repayment_type TEXT DEFAULT 'daily',
                installment_amount REAL DEFAULT 0,
                duration_count INTEGER DEFAULT 0,
                duration_unit TEXT DEFAULT 'days',
                start_date TEXT NOT NULL,
                status TEXT DEFAULT 'active',
                interest_rate REAL DEFAULT 0,
                total_collection REAL DEFAULT 0,
                profit_interest REAL DEFAULT 0,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                loan_id INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                amount REAL NOT NULL,
                collection_date TEXT NOT NULL,
                notes TEXT,
                created_at TEXT,
                FOREIGN KEY(loan_id) REFERENCES loans(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ads (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                image_url TEXT,
                video_url TEXT,
                start_date TEXT NOT NULL,
                end_date TEXT,
                is_active INTEGER DEFAULT 1,
                is_recurring INTEGER DEFAULT 0,
                recurring_type TEXT,
                target_audience TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ad_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ad_id INTEGER NOT NULL,
                event_type TEXT NOT NULL,
                user_id TEXT,
                village TEXT,
                created_at TEXT,
                FOREIGN KEY(ad_id) REFERENCES ads(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                report_type TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                total_loans REAL,
                total_collections REAL,
                pending_amount REAL,
                report_data TEXT,
                generated_at TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                table_name TEXT NOT NULL,
                record_id TEXT,
                action TEXT NOT NULL,
                old_values TEXT,
                new_values TEXT,
                created_at TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        self.conn.commit()

    # Profile operations
    def add_profile(self, user_id, role="jama_user", full_name=None, mobile_number=None,
                    company_name=None, is_active=True, monthly_fee=0, subscription_status=None,
                    subscription_start_date=None, referral_id=None):
        cursor = self.conn.cursor()
        now = _now()
        cursor.execute("""
            INSERT INTO profiles (
                user_id, role, full_name, mobile_number, company_name, is_active, monthly_fee,
                subscription_status, subscription_start_date, referral_id, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (user_id, role, full_name, mobile_number, company_name, int(bool(is_active)), monthly_fee,
              subscription_status, subscription_start_date, referral_id, now, now))
        self._commit()
        return cursor.lastrowid

    def get_profile(self, user_id):
        return self._fetch_one("SELECT * FROM profiles WHERE user_id=?", (user_id,))

    def get_profiles(self, exclude_role=None):
        """Get profiles, newest first, optionally excluding one role."""
        query = "SELECT * FROM profiles"
        params = []
        if exclude_role:
            query += " WHERE role != ?"
            params.append(exclude_role)
        query += " ORDER BY created_at DESC, id DESC"
        return self._fetch_all(query, tuple(params))

    def update_profile_active(self, user_id, is_active):
        cursor = self.conn.cursor()
        cursor.execute("UPDATE profiles SET is_active=?, updated_at=? WHERE user_id=?",
                       (int(bool(is_active)), _now(), user_id))
        self._commit()
        return cursor.rowcount

    # Loan operations
    def add_loan(self, **fields):
        """Insert a loan. Keyword names must be columns from LOAN_COLUMNS."""
        unknown = set(fields) - set(LOAN_COLUMNS)
        if unknown:
            raise DatabaseError("Unknown loan columns", {'columns': sorted(unknown)})

        now = _now()
        columns = list(fields) + ["created_at", "updated_at"]
        values = list(fields.values()) + [now, now]
        placeholders = ", ".join("?" for _ in columns)
        cursor = self.conn.cursor()
        cursor.execute(f"INSERT INTO loans ({', '.join(columns)}) VALUES ({placeholders})", tuple(values))
        self._commit()
        return cursor.lastrowid

    def get_loan(self, loan_id, user_id=None):
        query = "SELECT * FROM loans WHERE id=?"
        params = [loan_id]
        if user_id is not None:
            query += " AND user_id=?"
            params.append(user_id)
        return self._fetch_one(query, tuple(params))

    def get_loans(self, user_id=None, start_from=None, start_to=None, status=None):
        """Get loans, newest first, optionally scoped to an operator and start-date range."""
        query = "SELECT * FROM loans WHERE 1=1"
        params = []
        if user_id is not None:
            query += " AND user_id=?"
            params.append(user_id)
        if start_from:
            query += " AND start_date >= ?"
            params.append(start_from)
        if start_to:
            query += " AND start_date <= ?"
            params.append(start_to)
        if status:
            query += " AND status=?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC"
        return self._fetch_all(query, tuple(params))

    def update_loan(self, loan_id, **fields):
        unknown = set(fields) - set(LOAN_COLUMNS)
        if unknown:
            raise DatabaseError("Unknown loan columns", {'columns': sorted(unknown)})
        if not fields:
            return 0

        assignments = ", ".join(f"{col}=?" for col in fields)
        params = list(fields.values()) + [_now(), loan_id]
        cursor = self.conn.cursor()
        cursor.execute(f"UPDATE loans SET {assignments}, updated_at=? WHERE id=?", tuple(params))
        self._commit()
        return cursor.rowcount

    def update_loan_status(self, loan_id, status):
        cursor = self.conn.cursor()
        cursor.execute("UPDATE loans SET status=?, updated_at=? WHERE id=?", (status, _now(), loan_id))
        self._commit()

    def delete_loan(self, loan_id):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM collections WHERE loan_id=?", (loan_id,))
        cursor.execute("DELETE FROM loans WHERE id=?", (loan_id,))
        self._commit()
        return cursor.rowcount

    # Collection operations
    def add_collection(self, loan_id, user_id, amount, collection_date, notes=""):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO collections (loan_id, user_id, amount, collection_date, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (loan_id, user_id, amount, collection_date, notes, _now()))
        self._commit()
        return cursor.lastrowid

    def get_collection(self, collection_id, user_id=None):
        query = "SELECT * FROM collections WHERE id=?"
        params = [collection_id]
        if user_id is not None:
            query += " AND user_id=?"
            params.append(user_id)
        return self._fetch_one(query, tuple(params))

    def get_collections(self, user_id=None, loan_id=None, start_date=None, end_date=None, limit=None):
        """Get collections, latest collection date first."""
        query = "SELECT * FROM collections WHERE 1=1"
        params = []
        if user_id is not None:
            query += " AND user_id=?"
            params.append(user_id)
        if loan_id is not None:
            query += " AND loan_id=?"
            params.append(loan_id)
        if start_date:
            query += " AND collection_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND collection_date <= ?"
            params.append(end_date)
        query += " ORDER BY collection_date DESC, created_at DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))
        return self._fetch_all(query, tuple(params))

    def update_collection(self, collection_id, amount, collection_date, notes):
        cursor = self.conn.cursor()
        cursor.execute("UPDATE collections SET amount=?, collection_date=?, notes=? WHERE id=?",
                       (amount, collection_date, notes, collection_id))
        self._commit()
        return cursor.rowcount

    def delete_collection(self, collection_id):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM collections WHERE id=?", (collection_id,))
        self._commit()
        return cursor.rowcount

    # Ad operations
    def add_ad(self, **fields):
        unknown = set(fields) - set(AD_COLUMNS)
        if unknown:
            raise DatabaseError("Unknown ad columns", {'columns': sorted(unknown)})

        now = _now()
        columns = list(fields) + ["created_at", "updated_at"]
        values = list(fields.values()) + [now, now]
        placeholders = ", ".join("?" for _ in columns)
        cursor = self.conn.cursor()
        cursor.execute(f"INSERT INTO ads ({', '.join(columns)}) VALUES ({placeholders})", tuple(values))
        self._commit()
        return cursor.lastrowid

    def get_ad(self, ad_id):
        return self._fetch_one("SELECT * FROM ads WHERE id=?", (ad_id,))

    def get_ads(self, active_only=False):
        query = "SELECT * FROM ads"
        if active_only:
            query += " WHERE is_active=1"
        query += " ORDER BY created_at DESC, id DESC"
        return self._fetch_all(query)

    def update_ad(self, ad_id, **fields):
        unknown = set(fields) - set(AD_COLUMNS)
        if unknown:
            raise DatabaseError("Unknown ad columns", {'columns': sorted(unknown)})
        if not fields:
            return 0

        assignments = ", ".join(f"{col}=?" for col in fields)
        params = list(fields.values()) + [_now(), ad_id]
        cursor = self.conn.cursor()
        cursor.execute(f"UPDATE ads SET {assignments}, updated_at=? WHERE id=?", tuple(params))
        self._commit()
        return cursor.rowcount

    def delete_ad(self, ad_id):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM ad_analytics WHERE ad_id=?", (ad_id,))
        cursor.execute("DELETE FROM ads WHERE id=?", (ad_id,))
        self._commit()
        return cursor.rowcount

    def add_ad_event(self, ad_id, event_type, user_id=None, village=None, created_at=None):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO ad_analytics (ad_id, event_type, user_id, village, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (ad_id, event_type, user_id, village, created_at or _now()))
        self._commit()
        return cursor.lastrowid

    def get_ad_events(self, ad_id, since=None):
        query = "SELECT * FROM ad_analytics WHERE ad_id=?"
        params = [ad_id]
        if since:
            query += " AND created_at >= ?"
            params.append(since)
        query += " ORDER BY created_at, id"
        return self._fetch_all(query, tuple(params))

    # Report snapshots
    def add_report(self, user_id, report_type, start_date, end_date, total_loans,
                   total_collections, pending_amount, report_data=None):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO reports (
                user_id, report_type, start_date, end_date, total_loans,
                total_collections, pending_amount, report_data, generated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (user_id, report_type, start_date, end_date, total_loans, total_collections,
              pending_amount, json.dumps(report_data) if report_data is not None else None, _now()))
        self._commit()
        return cursor.lastrowid

    def get_reports(self, user_id):
        return self._fetch_all("SELECT * FROM reports WHERE user_id=? ORDER BY generated_at DESC, id DESC",
                               (user_id,))

    # Audit log
    def add_audit_log(self, user_id, table_name, record_id, action, old_values=None, new_values=None):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO audit_logs (user_id, table_name, record_id, action, old_values, new_values, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (user_id, table_name, str(record_id) if record_id is not None else None, action,
              json.dumps(old_values, default=str) if old_values is not None else None,
              json.dumps(new_values, default=str) if new_values is not None else None,
              _now()))
        self._commit()
        return cursor.lastrowid

    def get_audit_logs(self, table_name=None, record_id=None):
        query = "SELECT * FROM audit_logs WHERE 1=1"
        params = []
        if table_name:
            query += " AND table_name=?"
            params.append(table_name)
        if record_id is not None:
            query += " AND record_id=?"
            params.append(str(record_id))
        query += " ORDER BY id"
        return self._fetch_all(query, tuple(params))

    # Settings
    def get_setting(self, key, default=None):
        """Get a setting value."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM settings WHERE key=?", (key,))
        res = cursor.fetchone()
        return res[0] if res else default

    def set_setting(self, key, value):
        """Set a setting value."""
        cursor = self.conn.cursor()
        cursor.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))
        self._commit()
