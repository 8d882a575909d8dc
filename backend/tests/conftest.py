# tests/conftest.py
"""
Pytest fixtures for Mizan tests.

- Users are created per role; actors come from accounts.authz.actor_for
- The admin pool is funded through deposit_admin_funds so balance replay
  sees the deposit event
- Event payload validation stays on
"""

import pytest
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model

from accounts.authz import actor_for
from ledger.commands import (
    deposit_admin_funds,
    create_project,
    create_expense_type,
)


User = get_user_model()


@pytest.fixture(autouse=True, scope="session")
def _testing_settings():
    """Lift the write barrier; tests that exercise it switch TESTING off."""
    settings.TESTING = True
    settings.DISABLE_EVENT_VALIDATION = False
    settings.STORE_RETRY_BASE_DELAY = 0
    settings.INITIAL_ADMIN_BALANCE = Decimal("0")


# =============================================================================
# User Fixtures
# =============================================================================

@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        username="admin",
        email="admin@mizan.test",
        password="adminpass123",
        name="مدير النظام",
        role=User.Role.ADMIN,
    )


@pytest.fixture
def manager_user(db):
    return User.objects.create_user(
        username="manager",
        email="manager@mizan.test",
        password="managerpass123",
        name="مدير المشاريع",
        role=User.Role.MANAGER,
    )


@pytest.fixture
def regular_user(db):
    return User.objects.create_user(
        username="user",
        email="user@mizan.test",
        password="userpass123",
        name="محاسب",
        role=User.Role.USER,
    )


# =============================================================================
# Actor Context Fixtures
# =============================================================================

@pytest.fixture
def admin_actor(admin_user):
    return actor_for(admin_user)


@pytest.fixture
def manager_actor(manager_user):
    return actor_for(manager_user)


@pytest.fixture
def user_actor(regular_user):
    return actor_for(regular_user)


# =============================================================================
# Ledger Fixtures
# =============================================================================

@pytest.fixture
def funded_pool(admin_actor):
    """Admin pool holding 1,000,000."""
    result = deposit_admin_funds(admin_actor, Decimal("1000000"), description="رأس المال")
    assert result.success, result.error
    return result.data


@pytest.fixture
def project(admin_actor):
    result = create_project(admin_actor, "مشروع أ")
    assert result.success, result.error
    return result.data


@pytest.fixture
def second_project(admin_actor):
    result = create_project(admin_actor, "مشروع ب")
    assert result.success, result.error
    return result.data


@pytest.fixture
def materials_type(admin_actor):
    result = create_expense_type(admin_actor, "مواد بناء", description="حديد وإسمنت")
    assert result.success, result.error
    return result.data


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def api_client():
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def admin_client(api_client, admin_user):
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def user_client(regular_user):
    from rest_framework.test import APIClient
    client = APIClient()
    client.force_authenticate(user=regular_user)
    return client
