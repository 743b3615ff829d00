"""Profile and role service for JAMA."""
import logging

from jama.data_structures import Profile, Role
from jama.exceptions import (
    ProfileNotFoundError, PermissionDeniedError, AccountDeactivatedError, ValidationError,
)
from jama.validation import parse_amount, parse_choice, parse_date, parse_text, format_date

logger = logging.getLogger(__name__)


class UserService:
    """Operator and super admin profiles.

    Operators (``jama_user``) own loans and collections. The single
    ``super_admin`` role manages operators, subscriptions and ads.
    """

    def __init__(self, db_manager):
        self.db = db_manager

    def create_profile(self, user_id, role=Role.JAMA_USER, full_name="", mobile_number="",
                       company_name="", is_active=True, monthly_fee=0, subscription_status="trial",
                       subscription_start_date=None, referral_id="") -> Profile:
        """Create a profile for a signed-up user.

        Raises:
            ValidationError: If the user id is blank, the role is unknown or
                the profile already exists.
        """
        user_id = parse_text(user_id, "user_id")
        role = parse_choice(role, Role.ALL, "role")
        if self.db.get_profile(user_id):
            raise ValidationError("user_id", f"Profile for '{user_id}' already exists", user_id)

        self.db.add_profile(
            user_id,
            role=role,
            full_name=parse_text(full_name, "full_name", required=False),
            mobile_number=parse_text(mobile_number, "mobile_number", required=False),
            company_name=parse_text(company_name, "company_name", required=False),
            is_active=is_active,
            monthly_fee=parse_amount(monthly_fee, "monthly_fee", allow_zero=True),
            subscription_status=subscription_status,
            subscription_start_date=format_date(
                parse_date(subscription_start_date, "subscription_start_date", allow_empty=True)),
            referral_id=referral_id,
        )
        logger.info("Profile created for %s (%s)", user_id, role)
        return self.get_profile(user_id)

    def get_profile(self, user_id) -> Profile:
        row = self.db.get_profile(user_id)
        if not row:
            raise ProfileNotFoundError(user_id)
        return Profile.from_row(row)

    def get_role(self, user_id):
        return self.get_profile(user_id).role

    def require_role(self, user_id, role) -> Profile:
        """Return the profile if it has ``role``.

        Raises:
            ProfileNotFoundError: If the user has no profile.
            PermissionDeniedError: If the role does not match.
        """
        profile = self.get_profile(user_id)
        if profile.role != role:
            logger.warning("User %s (%s) denied action requiring %s", user_id, profile.role, role)
            raise PermissionDeniedError(user_id, role)
        return profile

    def require_active(self, user_id) -> Profile:
        """Return the profile if the account is active.

        Raises:
            AccountDeactivatedError: If a super admin deactivated the account.
        """
        profile = self.get_profile(user_id)
        if not profile.is_active:
            raise AccountDeactivatedError(user_id)
        return profile

    def list_operators(self):
        """All non-super-admin profiles, newest first."""
        return [Profile.from_row(row) for row in self.db.get_profiles(exclude_role=Role.SUPER_ADMIN)]

    def set_active(self, user_id, is_active) -> Profile:
        profile = self.get_profile(user_id)
        if profile.is_super_admin:
            raise ValidationError("user_id", "Super admin accounts cannot be deactivated", user_id)
        self.db.update_profile_active(user_id, is_active)
        logger.info("Operator %s %s", user_id, "activated" if is_active else "deactivated")
        return self.get_profile(user_id)
