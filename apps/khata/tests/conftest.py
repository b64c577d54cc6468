import pytest
from datetime import timedelta
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.khata.models import KhataCustomer


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def shopkeeper(db):
    """Owner of the khata book."""
    return User.objects.create_user(
        email='shopkeeper@example.com',
        password='TestPass123!',
        display_name='Shopkeeper',
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        display_name='Other',
    )


@pytest.fixture
def authenticated_client(api_client, shopkeeper):
    """Return an API client authenticated as the shopkeeper."""
    refresh = RefreshToken.for_user(shopkeeper)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def other_client(other_user):
    client = APIClient()
    refresh = RefreshToken.for_user(other_user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def customer(db, shopkeeper):
    return KhataCustomer.objects.create(
        owner=shopkeeper,
        name='Ravi Kumar',
        email='ravi@example.com',
        phone='9876543210',
    )


@pytest.fixture
def days_ago():
    """Return a helper producing a timestamp ``n`` days in the past."""
    now = timezone.now()

    def _days_ago(n):
        return now - timedelta(days=n)

    return _days_ago
