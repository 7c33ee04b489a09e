# accounts/authz.py
"""
Authorization utilities for StitchCraft.

Provides:
- resolve_identity / resolve_request_identity: who is asking
- resolve_organization: which organization the request is scoped to
- check_permission: allow/deny with a reason
- ActorContext / resolve_actor / require: the view-level composition

Every organization-scoped request runs identity -> tenancy -> permission,
in that order. The evaluator and the tenancy resolver never raise for a
denial; only the view seam (resolve_actor / require) turns a denial into a
DRF exception.

CRITICAL: Permissions are checked in this order (first match wins):
1. Platform ADMIN on an admin-eligible route: allow
2. Not the owner and no membership in this organization: deny (not_a_member)
3. Organization owner: implicit allow, no membership row needed
4. Manager-equivalent membership role: allow
5. Everyone else: only codes explicitly granted on the membership

All denials look identical to the caller ("Forbidden."); the reason is only
logged and counted.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from rest_framework.exceptions import NotAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.tokens import AccessToken

from accounts.errors import Forbidden, NoOrganizationContext
from accounts.models import Organization, OrganizationMembership, User
from ops.metrics import record_authz_decision

logger = logging.getLogger(__name__)


class Reasons:
    PLATFORM_ADMIN = "platform_admin"
    OWNER = "owner"
    MANAGER = "manager"
    GRANTED = "granted"
    NOT_A_MEMBER = "not_a_member"
    MISSING_PERMISSION = "missing_permission"


# =============================================================================
# Identity
# =============================================================================

def resolve_identity(session_token: str) -> User:
    """
    Resolve the user behind a session (JWT access) token.

    Raises:
        NotAuthenticated: token missing or invalid, user gone, or the user
            is not allowed to sign in (pending, suspended, rejected).
    """
    if not session_token:
        raise NotAuthenticated("Authentication required.")

    try:
        token = AccessToken(session_token)
    except TokenError:
        raise NotAuthenticated("Authentication required.")

    user_id = token.get(jwt_settings.USER_ID_CLAIM)
    try:
        user = User.objects.get(**{jwt_settings.USER_ID_FIELD: user_id})
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotAuthenticated("Authentication required.")

    if not user.can_sign_in:
        raise NotAuthenticated("Authentication required.")
    return user


def resolve_request_identity(request) -> User:
    """Trust the user DRF's JWT authentication attached to the request."""
    user = getattr(request, "user", None)
    if not user or not user.is_authenticated or not user.can_sign_in:
        raise NotAuthenticated("Authentication required.")
    return user


# =============================================================================
# Tenancy
# =============================================================================

@dataclass(frozen=True)
class OrganizationScope:
    """
    The organization a request is scoped to.

    ``organization_id`` is the only id downstream queries may filter by;
    client-supplied ids are never trusted past this point.
    """
    organization: Organization
    membership: Optional[OrganizationMembership]
    is_owner: bool

    @property
    def organization_id(self) -> int:
        return self.organization.pk


def parse_organization_id(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def resolve_organization(user, requested_org_id=None) -> Optional[OrganizationScope]:
    """
    Resolve the organization scope for ``user``.

    Returns None when the user has no relationship with the requested
    organization (or with any organization, when none was requested).
    A malformed id behaves like an unknown one.
    """
    if user is None or not getattr(user, "pk", None):
        return None

    requested = requested_org_id is not None and requested_org_id != ""
    org_id = parse_organization_id(requested_org_id) if requested else None
    if requested and org_id is None:
        return None

    if org_id is not None:
        owned = Organization.objects.filter(pk=org_id, owner=user).first()
        if owned is not None:
            return OrganizationScope(organization=owned, membership=None, is_owner=True)
    else:
        owned = Organization.objects.filter(owner=user).order_by("created_at", "id").first()
        if owned is not None:
            return OrganizationScope(organization=owned, membership=None, is_owner=True)

    memberships = OrganizationMembership.objects.select_related("organization").filter(user=user)
    if org_id is not None:
        membership = memberships.filter(organization_id=org_id).first()
    else:
        candidates = list(memberships[:2])
        membership = candidates[0] if len(candidates) == 1 else None

    if membership is None:
        return None
    return OrganizationScope(
        organization=membership.organization,
        membership=membership,
        is_owner=False,
    )


# =============================================================================
# Permission evaluation
# =============================================================================

@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


def _decide(allowed: bool, reason: str, user, organization, permission) -> Decision:
    logger.debug(
        "authz %s: user=%s org=%s permission=%s reason=%s",
        "allow" if allowed else "deny",
        getattr(user, "pk", None),
        getattr(organization, "pk", None),
        permission,
        reason,
    )
    record_authz_decision(allowed, reason)
    return Decision(allowed=allowed, reason=reason)


def check_permission(user, organization, membership, permission: str, *, admin_eligible: bool = False) -> Decision:
    """
    Decide whether ``user`` may exercise ``permission`` in ``organization``.

    ``membership`` is whatever the tenancy resolver returned; a row that
    belongs to a different user or organization counts as no membership.
    The permission string is opaque here: only set membership is checked.
    """
    if admin_eligible and user is not None and user.is_platform_admin:
        return _decide(True, Reasons.PLATFORM_ADMIN, user, organization, permission)

    is_owner = organization is not None and organization.is_owned_by(user)

    if not is_owner:
        if (
            membership is None
            or organization is None
            or membership.organization_id != organization.pk
            or membership.user_id != getattr(user, "pk", None)
        ):
            return _decide(False, Reasons.NOT_A_MEMBER, user, organization, permission)

    if is_owner:
        return _decide(True, Reasons.OWNER, user, organization, permission)

    if membership.is_manager:
        return _decide(True, Reasons.MANAGER, user, organization, permission)

    if permission in membership.permission_set:
        return _decide(True, Reasons.GRANTED, user, organization, permission)

    return _decide(False, Reasons.MISSING_PERMISSION, user, organization, permission)


def authorize(user, organization_id, permission: str) -> Optional[OrganizationScope]:
    """
    Tenancy + permission in one step for commands.

    Returns the resolved scope when allowed, otherwise None. Callers map
    None to a single FORBIDDEN failure.
    """
    scope = resolve_organization(user, organization_id)
    if scope is None:
        record_authz_decision(False, Reasons.NOT_A_MEMBER)
        return None
    if not check_permission(user, scope.organization, scope.membership, permission):
        return None
    return scope


# =============================================================================
# View-level context
# =============================================================================

@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor (user + organization).

    Built fresh for every request by ``resolve_actor``; nothing is cached
    between requests, so grant changes take effect immediately.
    """
    user: User
    organization: Organization
    membership: Optional[OrganizationMembership]
    is_owner: bool
    is_platform_admin: bool = False

    def has(self, code: str) -> bool:
        return bool(check_permission(
            self.user,
            self.organization,
            self.membership,
            code,
            admin_eligible=self.is_platform_admin,
        ))

    @property
    def organization_id(self) -> int:
        return self.organization.pk

    @property
    def is_manager(self) -> bool:
        return self.is_owner or (self.membership is not None and self.membership.is_manager)

    @property
    def scope(self) -> OrganizationScope:
        return OrganizationScope(
            organization=self.organization,
            membership=self.membership,
            is_owner=self.is_owner,
        )


def resolve_actor(request, organization_id=None, admin_eligible: bool = False) -> ActorContext:
    """
    Extract ActorContext from the current request.

    Args:
        request: DRF request object
        organization_id: organization named in the URL or query, if any
        admin_eligible: route accepts the platform-admin escape hatch

    Raises:
        NotAuthenticated: no usable identity
        Forbidden: an organization was named and the user has no relationship
            with it (same body as a missing permission)
        NoOrganizationContext: no organization named and none to fall back on
    """
    user = resolve_request_identity(request)

    if admin_eligible and user.is_platform_admin:
        org_id = parse_organization_id(organization_id)
        organization = Organization.objects.filter(pk=org_id).first() if org_id else None
        if organization is not None:
            return ActorContext(
                user=user,
                organization=organization,
                membership=None,
                is_owner=organization.is_owned_by(user),
                is_platform_admin=True,
            )

    scope = resolve_organization(user, organization_id)
    if scope is None:
        if organization_id not in (None, ""):
            raise Forbidden()
        raise NoOrganizationContext()

    return ActorContext(
        user=user,
        organization=scope.organization,
        membership=scope.membership,
        is_owner=scope.is_owner,
    )


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Raises Forbidden with the same body for every denial reason.

    Example:
        require(actor, "orders:write")
        # If we get here, permission is granted
    """
    if not actor.has(code):
        raise Forbidden()


def require_platform_admin(user) -> None:
    """The separate, simpler check used by platform-operator routes."""
    if user is None or not getattr(user, "is_platform_admin", False):
        raise Forbidden()
