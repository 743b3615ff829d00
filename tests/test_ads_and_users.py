import unittest
import sys
import os
from datetime import date

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from jama.database import DatabaseManager
from jama.data_structures import Role
from jama.exceptions import (
    AdNotFoundError, ValidationError, PermissionDeniedError, AccountDeactivatedError, ProfileNotFoundError,
)
from jama.services import AdService, UserService
from jama.services.ad_service import occurs_on


class TestAdService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.ads = AdService(self.db)
        self.today = date(2025, 3, 15)

    def tearDown(self):
        self.db.close()

    def create(self, **fields):
        base = {'title': 'Seed sale', 'start_date': '2025-03-01', 'end_date': '2025-03-31'}
        base.update(fields)
        return self.ads.create_ad("admin", **base)

    def test_create_ad_defaults(self):
        ad = self.create()
        self.assertTrue(ad.is_active)
        self.assertFalse(ad.is_recurring)
        self.assertIsNone(ad.recurring_type)
        self.assertEqual(ad.target_audience['type'], 'all')

    def test_create_ad_validation(self):
        with self.assertRaises(ValidationError):
            self.create(title='')
        with self.assertRaises(ValidationError):
            self.create(end_date='2025-02-01')
        with self.assertRaises(ValidationError):
            self.create(is_recurring=True)
        with self.assertRaises(ValidationError):
            self.create(target_audience={'type': 'everyone'})

    def test_active_ads_respect_window_and_flag(self):
        current = self.create()
        self.create(title='Expired', start_date='2025-01-01', end_date='2025-02-01')
        self.create(title='Future', start_date='2025-04-01', end_date=None)
        paused = self.create(title='Paused')
        self.ads.set_active(paused.id, False)

        shown = self.ads.get_active_ads(self.today, max_ads=10)
        self.assertEqual([a.id for a in shown], [current.id])

    def test_dismissed_and_max_ads(self):
        first = self.create(title='One')
        second = self.create(title='Two')
        self.assertEqual(len(self.ads.get_active_ads(self.today)), 1)
        shown = self.ads.get_active_ads(self.today, dismissed={second.id}, max_ads=5)
        self.assertEqual([a.id for a in shown], [first.id])

    def test_targeting(self):
        village_ad = self.create(target_audience={'type': 'specific_villages', 'villages': ['Guntur']})
        user_ad = self.create(target_audience={'type': 'specific_users', 'users': ['op7']})

        self.assertEqual([a.id for a in self.ads.get_active_ads(self.today, village='guntur', max_ads=5)],
                         [village_ad.id])
        self.assertEqual([a.id for a in self.ads.get_active_ads(self.today, user_id='op7', max_ads=5)],
                         [user_ad.id])
        self.assertEqual(self.ads.get_active_ads(self.today, village='Tenali', user_id='op1', max_ads=5), [])

    def test_recurrence(self):
        weekly = self.create(is_recurring=True, recurring_type='weekly', end_date=None)
        self.assertTrue(occurs_on(weekly, date(2025, 3, 8)))
        self.assertFalse(occurs_on(weekly, date(2025, 3, 9)))

        monthly = self.create(start_date='2025-01-31', end_date=None, is_recurring=True,
                              recurring_type='monthly')
        self.assertTrue(occurs_on(monthly, date(2025, 2, 28)))
        self.assertTrue(occurs_on(monthly, date(2025, 3, 31)))
        self.assertFalse(occurs_on(monthly, date(2025, 3, 15)))

        yearly = self.create(start_date='2024-03-15', end_date=None, is_recurring=True,
                             recurring_type='yearly')
        self.assertTrue(occurs_on(yearly, self.today))

    def test_update_and_delete(self):
        ad = self.create()
        updated = self.ads.update_ad(ad.id, title='Fertilizer sale', is_recurring=True, recurring_type='daily')
        self.assertEqual(updated.title, 'Fertilizer sale')
        self.assertEqual(updated.recurring_type, 'daily')

        self.ads.record_event(ad.id, 'view')
        self.ads.delete_ad(ad.id)
        with self.assertRaises(AdNotFoundError):
            self.ads.get_ad(ad.id)
        self.assertEqual(self.db.get_ad_events(ad.id), [])

    def test_analytics(self):
        ad = self.create()
        for _ in range(4):
            self.ads.record_event(ad.id, 'view', user_id='op1', village='Guntur',
                                  created_at='2025-03-10 09:00:00')
        self.ads.record_event(ad.id, 'click', user_id='op1', village='Guntur', created_at='2025-03-10 09:05:00')
        self.ads.record_event(ad.id, 'view', user_id='op2', created_at='2025-03-12 10:00:00')
        self.ads.record_event(ad.id, 'dismiss', user_id='op2', created_at='2025-03-12 10:01:00')
        # Outside a 7 day window
        self.ads.record_event(ad.id, 'click', user_id='op3', created_at='2025-03-01 10:00:00')

        stats = self.ads.get_analytics(ad.id, days=7, today=self.today)
        self.assertEqual(stats.views, 5)
        self.assertEqual(stats.clicks, 1)
        self.assertEqual(stats.dismissals, 1)
        self.assertEqual(stats.click_through_rate, 20.0)
        self.assertEqual(stats.villages, {'Guntur': 5, 'default': 2})
        self.assertEqual(stats.users, {'op1': 5, 'op2': 2})
        self.assertEqual(stats.daily_stats['2025-03-10'], {'views': 4, 'clicks': 1})

    def test_analytics_without_views(self):
        ad = self.create()
        self.assertEqual(self.ads.get_analytics(ad.id, today=self.today).click_through_rate, 0.0)

    def test_unknown_event_rejected(self):
        ad = self.create()
        with self.assertRaises(ValidationError):
            self.ads.record_event(ad.id, 'share')


class TestUserService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.users = UserService(self.db)
        self.users.create_profile("admin", role=Role.SUPER_ADMIN, full_name="Admin")
        self.users.create_profile("op1", full_name="First")
        self.users.create_profile("op2", full_name="Second")

    def tearDown(self):
        self.db.close()

    def test_duplicate_profile_rejected(self):
        with self.assertRaises(ValidationError):
            self.users.create_profile("op1")

    def test_require_role(self):
        self.assertEqual(self.users.require_role("admin", Role.SUPER_ADMIN).user_id, "admin")
        with self.assertRaises(PermissionDeniedError):
            self.users.require_role("op1", Role.SUPER_ADMIN)
        with self.assertRaises(ProfileNotFoundError):
            self.users.require_role("ghost", Role.SUPER_ADMIN)

    def test_deactivation(self):
        self.users.set_active("op1", False)
        with self.assertRaises(AccountDeactivatedError):
            self.users.require_active("op1")
        self.users.set_active("op1", True)
        self.assertTrue(self.users.require_active("op1").is_active)

    def test_super_admin_cannot_be_deactivated(self):
        with self.assertRaises(ValidationError):
            self.users.set_active("admin", False)

    def test_list_operators_excludes_super_admin(self):
        operators = self.users.list_operators()
        self.assertEqual({p.user_id for p in operators}, {"op1", "op2"})
        self.assertEqual(operators[0].user_id, "op2")

    def test_null_active_flag_counts_as_inactive(self):
        self.db.conn.execute("UPDATE profiles SET is_active=NULL WHERE user_id='op2'")
        with self.assertRaises(AccountDeactivatedError):
            self.users.require_active("op2")


if __name__ == '__main__':
    unittest.main()
