"""Sponsored ad service for JAMA.

Super admins create and schedule ads; operators' screens ask for the ads
to show today. View, click and dismiss events feed the analytics view.
"""
import json
import logging
from collections import Counter
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from jama.config import AD_EVENT_TYPES, AD_RECURRING_TYPES, DEFAULT_ANALYTICS_RANGE_DAYS
from jama.data_structures import Ad, AdEvent, AdAnalytics
from jama.exceptions import AdNotFoundError, ValidationError
from jama.validation import parse_choice, parse_date, parse_text, format_date

logger = logging.getLogger(__name__)

TARGET_TYPES = ("all", "specific_villages", "specific_users")

AD_FIELDS = ("title", "description", "image_url", "video_url", "start_date", "end_date",
             "is_active", "is_recurring", "recurring_type", "target_audience")

RECURRENCE_STEPS = {
    'monthly': lambda n: relativedelta(months=n),
    'yearly': lambda n: relativedelta(years=n),
}


def _parse_target_audience(value):
    if value is None or value == "":
        return {'type': 'all', 'villages': [], 'users': []}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError("target_audience", "Target audience must be valid JSON", value)
    if not isinstance(value, dict):
        raise ValidationError("target_audience", "Target audience must be an object", value)

    target_type = parse_choice(value.get('type'), TARGET_TYPES, "target_audience", default="all")
    return {
        'type': target_type,
        'villages': [str(v).strip() for v in value.get('villages') or [] if str(v).strip()],
        'users': [str(u).strip() for u in value.get('users') or [] if str(u).strip()],
    }


def occurs_on(ad: Ad, day: date) -> bool:
    """Whether a recurring ad's schedule lands on ``day``.

    Recurrences are anchored on the start date: weekly ads show on the
    same weekday, monthly ads on the same day of the month (clamped to
    the month's last day), yearly ads on the same calendar date.
    """
    if not ad.is_recurring or ad.recurring_type in (None, 'daily'):
        return True
    if day < ad.start_date:
        return False

    if ad.recurring_type == 'weekly':
        return (day - ad.start_date).days % 7 == 0

    step = RECURRENCE_STEPS[ad.recurring_type]
    n = 0
    while True:
        occurrence = ad.start_date + step(n)
        if occurrence == day:
            return True
        if occurrence > day:
            return False
        n += 1


def targets(ad: Ad, village=None, user_id=None) -> bool:
    """Whether the ad's audience includes this viewer."""
    audience = ad.target_audience
    if not isinstance(audience, dict):
        return True
    target_type = audience.get('type', 'all')
    if target_type == 'specific_villages':
        wanted = {v.lower() for v in audience.get('villages', [])}
        return bool(village) and village.lower() in wanted
    if target_type == 'specific_users':
        return bool(user_id) and user_id in audience.get('users', [])
    return True


class AdService:
    """Ad scheduling, targeting and analytics."""

    def __init__(self, db_manager):
        self.db = db_manager

    def _parse_fields(self, fields, existing=None):
        unknown = set(fields) - set(AD_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], f"Unknown ad field(s): {', '.join(sorted(unknown))}")

        parsed = {}
        if 'title' in fields:
            parsed['title'] = parse_text(fields['title'], "title")
        for key in ('description', 'image_url', 'video_url'):
            if key in fields:
                parsed[key] = parse_text(fields[key], key, required=False)
        if 'start_date' in fields:
            parsed['start_date'] = parse_date(fields['start_date'], "start_date")
        if 'end_date' in fields:
            parsed['end_date'] = parse_date(fields['end_date'], "end_date", allow_empty=True)
        if 'is_active' in fields:
            parsed['is_active'] = bool(fields['is_active'])
        if 'is_recurring' in fields:
            parsed['is_recurring'] = bool(fields['is_recurring'])
        if 'recurring_type' in fields:
            value = fields['recurring_type']
            parsed['recurring_type'] = (parse_choice(value, AD_RECURRING_TYPES, "recurring_type")
                                        if value else None)
        if 'target_audience' in fields:
            parsed['target_audience'] = _parse_target_audience(fields['target_audience'])

        start = parsed.get('start_date', existing.start_date if existing else None)
        end = parsed.get('end_date', existing.end_date if existing else None)
        if start and end and end < start:
            raise ValidationError("end_date", "End date cannot be before start date", format_date(end))

        is_recurring = parsed.get('is_recurring', existing.is_recurring if existing else False)
        recurring_type = parsed.get('recurring_type', existing.recurring_type if existing else None)
        if is_recurring and not recurring_type:
            raise ValidationError("recurring_type", "Recurring ads need a recurrence type")
        return parsed

    @staticmethod
    def _to_columns(parsed):
        columns = dict(parsed)
        for key in ('start_date', 'end_date'):
            if key in columns:
                columns[key] = format_date(columns[key])
        for key in ('is_active', 'is_recurring'):
            if key in columns:
                columns[key] = int(columns[key])
        if 'target_audience' in columns:
            columns['target_audience'] = json.dumps(columns['target_audience'])
        return columns

    def create_ad(self, user_id, **fields) -> Ad:
        """Create an ad.

        Args:
            user_id: The super admin creating the ad.
            **fields: title and start_date are required; see AD_FIELDS.
        """
        fields.setdefault('is_active', True)
        fields.setdefault('is_recurring', False)
        fields.setdefault('target_audience', None)
        if 'start_date' not in fields:
            raise ValidationError("start_date", "Start date is required")
        parsed = self._parse_fields(fields)
        if 'title' not in parsed:
            raise ValidationError("title", "Title is required")
        if not parsed['is_recurring']:
            parsed['recurring_type'] = None

        ad_id = self.db.add_ad(user_id=user_id, **self._to_columns(parsed))
        logger.info("Ad %s '%s' created", ad_id, parsed['title'])
        return self.get_ad(ad_id)

    def get_ad(self, ad_id) -> Ad:
        row = self.db.get_ad(ad_id)
        if not row:
            raise AdNotFoundError(ad_id)
        return Ad.from_row(row)

    def get_ads(self, active_only=False):
        return [Ad.from_row(row) for row in self.db.get_ads(active_only)]

    def update_ad(self, ad_id, **fields) -> Ad:
        existing = self.get_ad(ad_id)
        parsed = self._parse_fields(fields, existing)
        if parsed.get('is_recurring') is False:
            parsed['recurring_type'] = None
        self.db.update_ad(ad_id, **self._to_columns(parsed))
        logger.info("Ad %s updated: %s", ad_id, ", ".join(sorted(parsed)))
        return self.get_ad(ad_id)

    def set_active(self, ad_id, is_active) -> Ad:
        return self.update_ad(ad_id, is_active=is_active)

    def delete_ad(self, ad_id):
        self.get_ad(ad_id)
        self.db.delete_ad(ad_id)
        logger.info("Ad %s deleted", ad_id)

    def get_active_ads(self, today=None, village=None, user_id=None, dismissed=(), max_ads=1):
        """Ads to show a viewer today, newest first.

        An ad is shown when it is active, today falls inside its date
        window, its recurrence lands on today, the viewer is in its
        audience and the viewer has not dismissed it.
        """
        today = today or date.today()
        dismissed = set(dismissed or ())
        shown = []
        for ad in self.get_ads(active_only=True):
            if ad.id in dismissed:
                continue
            if ad.start_date > today or (ad.end_date and ad.end_date < today):
                continue
            if not occurs_on(ad, today) or not targets(ad, village, user_id):
                continue
            shown.append(ad)
            if max_ads and len(shown) >= max_ads:
                break
        return shown

    def record_event(self, ad_id, event_type, user_id=None, village=None, created_at=None):
        """Record a view, click or dismiss on an ad."""
        self.get_ad(ad_id)
        event_type = parse_choice(event_type, AD_EVENT_TYPES, "event_type")
        return self.db.add_ad_event(ad_id, event_type, user_id, village or "default", created_at)

    def get_analytics(self, ad_id, days=DEFAULT_ANALYTICS_RANGE_DAYS, today=None) -> AdAnalytics:
        """Event counts for the last ``days`` days.

        Click-through rate is clicks / views as a percentage with two
        decimals, 0 when there are no views.
        """
        ad = self.get_ad(ad_id)
        today = today or date.today()
        since = today - timedelta(days=days)
        events = [AdEvent.from_row(row) for row in self.db.get_ad_events(ad_id, format_date(since))]

        counts = Counter(e.event_type for e in events)
        villages = Counter(e.village for e in events if e.village)
        users = Counter(e.user_id for e in events if e.user_id)
        daily_stats = {}
        for event in events:
            day = daily_stats.setdefault(format_date(event.created_at), {'views': 0, 'clicks': 0})
            if event.event_type == 'view':
                day['views'] += 1
            elif event.event_type == 'click':
                day['clicks'] += 1

        views, clicks = counts['view'], counts['click']
        ctr = round(clicks / views * 100, 2) if views else 0.0
        return AdAnalytics(
            ad_id=ad.id,
            ad_title=ad.title,
            views=views,
            clicks=clicks,
            dismissals=counts['dismiss'],
            click_through_rate=ctr,
            villages=dict(villages),
            users=dict(users),
            daily_stats=daily_stats,
        )
