# conftest.py
"""
Pytest fixtures for StitchCraft tests.

Shape of the default world:
- ``owner`` owns ``organization`` (no membership row)
- ``manager_user`` is a MANAGER member with no explicit grants
- ``worker`` is a WORKER member holding only "orders:read"
- ``outsider`` owns ``other_organization`` and nothing else
- ``client_user`` is a plain CLIENT with no organization at all
- ``platform_admin`` has the global ADMIN role
"""

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from accounts.authz import ActorContext, resolve_organization
from accounts.models import Organization, OrganizationMembership
from stitchcraft_backend.celery import app as celery_app

User = get_user_model()

PASSWORD = "testpass123"


@pytest.fixture(autouse=True)
def _eager_celery():
    """Run notifier tasks inline so mail.outbox can be asserted."""
    celery_app.conf.update(task_always_eager=True, task_eager_propagates=False)
    yield


@pytest.fixture(autouse=True)
def _reset_throttles():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def _test_settings(settings):
    settings.FRONTEND_URL = "https://app.stitchcraft.test"
    settings.INVITATION_EXPIRY_DAYS = 7
    settings.INVITATION_RESEND_COOLDOWN_SECONDS = 60
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


# =============================================================================
# Users
# =============================================================================

def _make_user(email, role=User.Role.CLIENT, status=None, name=""):
    extra = {"role": role, "name": name}
    if status is not None:
        extra["status"] = status
    return User.objects.create_user(email=email, password=PASSWORD, **extra)


@pytest.fixture
def make_user(db):
    """Factory: make_user(email, role=CLIENT, status=None, name="")."""
    return _make_user


@pytest.fixture
def owner(db):
    return _make_user("ama@stitchcraft.test", User.Role.OWNER, User.Status.APPROVED, name="Ama")


@pytest.fixture
def outsider(db):
    return _make_user("kofi@otherworkshop.test", User.Role.OWNER, User.Status.APPROVED, name="Kofi")


@pytest.fixture
def manager_user(db):
    return _make_user("manager@stitchcraft.test", User.Role.WORKER, name="Efua")


@pytest.fixture
def worker(db):
    return _make_user("worker@x.com", User.Role.WORKER, name="Yaw")


@pytest.fixture
def client_user(db):
    return _make_user("client@example.test", User.Role.CLIENT, name="Abena")


@pytest.fixture
def platform_admin(db):
    return _make_user("admin@stitchcraft.app", User.Role.ADMIN, name="Ops")


# =============================================================================
# Organizations & Memberships
# =============================================================================

@pytest.fixture
def organization(owner):
    return Organization.objects.create(name="Ama Couture", slug="ama-couture", owner=owner)


@pytest.fixture
def other_organization(outsider):
    return Organization.objects.create(name="Kofi Tailors", slug="kofi-tailors", owner=outsider)


@pytest.fixture
def manager_membership(organization, manager_user):
    return OrganizationMembership.objects.create(
        organization=organization,
        user=manager_user,
        role=OrganizationMembership.Role.MANAGER,
        permissions=[],
    )


@pytest.fixture
def worker_membership(organization, worker):
    return OrganizationMembership.objects.create(
        organization=organization,
        user=worker,
        role=OrganizationMembership.Role.WORKER,
        permissions=["orders:read"],
    )


# =============================================================================
# API clients
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    """Return an APIClient authenticated as the given user."""
    def _client_for(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client_for


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def actor_for():
    """Build the ActorContext a view would hand to a command."""
    def _actor_for(user, organization):
        scope = resolve_organization(user, organization.pk)
        assert scope is not None, f"{user} has no access to {organization}"
        return ActorContext(
            user=user,
            organization=scope.organization,
            membership=scope.membership,
            is_owner=scope.is_owner,
        )
    return _actor_for
