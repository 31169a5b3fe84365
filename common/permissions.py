import logging

from rest_framework.permissions import BasePermission

from common.exceptions import TenancyViolation
from core.models import User

logger = logging.getLogger("security.authorization")


def is_same_company(user, company_id):
    """True iff the acting user belongs to the company owning the resource."""
    if user is None or company_id is None:
        return False
    return getattr(user, "company_id", None) == company_id


def is_admin_or_system_admin(user, company_id):
    if getattr(user, "is_system_admin", False):
        return True
    return getattr(user, "profile", None) == User.Profile.ADMIN and is_same_company(user, company_id)


def ensure_same_company(user, company_id, message=None, **context):
    if is_same_company(user, company_id):
        return

    logger.warning(
        "tenant_access_denied user=%s company=%s resource_company=%s context=%s",
        getattr(user, "id", None),
        getattr(user, "company_id", None),
        company_id,
        context,
    )
    raise TenancyViolation(message or TenancyViolation.default_detail)


def scoped_queryset_for_user(queryset, user, field="company_id"):
    if not user or not user.is_authenticated:
        return queryset.none()

    company_id = getattr(user, "company_id", None)
    if company_id is None:
        return queryset.none()

    return queryset.filter(**{field: company_id})


def is_company_member(user):
    if not user or not user.is_authenticated or not user.is_active:
        return False
    if getattr(user, "profile", None) == User.Profile.INACTIVE:
        return False
    return getattr(user, "company_id", None) is not None


class IsCompanyMember(BasePermission):
    """Active users attached to a company; everything they touch is scoped to it."""

    message = "Your account is not attached to an active company."

    def has_permission(self, request, view):
        allowed = is_company_member(request.user)
        if not allowed and request.user and request.user.is_authenticated:
            logger.warning(
                "permission_denied reason=no_company user=%s profile=%s method=%s path=%s view=%s",
                getattr(request.user, "username", "anonymous"),
                getattr(request.user, "profile", None),
                request.method,
                request.path,
                view.__class__.__name__,
            )
        return allowed


class IsCompanyAdmin(BasePermission):
    """Admins of the acting user's own company, or system admins.

    Views can restrict the check to some actions with `admin_actions`; actions
    outside that set only require company membership.
    """

    message = "Only administrators can perform this action."

    def has_permission(self, request, view):
        admin_actions = getattr(view, "admin_actions", None)
        action_key = getattr(view, "action", None) or request.method.lower()
        if admin_actions is not None and action_key not in admin_actions:
            return True

        user = request.user
        allowed = is_company_member(user) and is_admin_or_system_admin(user, user.company_id)
        if not allowed:
            logger.warning(
                "permission_denied reason=not_admin user=%s profile=%s method=%s path=%s view=%s action=%s",
                getattr(user, "username", "anonymous"),
                getattr(user, "profile", None),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
        return allowed
