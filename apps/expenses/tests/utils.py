from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.expenses.models import Balance


def make_client(user):
    """Return an API client authenticated as ``user``."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


def balances_of(group):
    """Stored balances of a group as {user_id: Decimal}."""
    return dict(
        Balance.objects.filter(group=group).values_list('user_id', 'balance')
    )


def balance_of(group, user):
    return balances_of(group).get(user.id, Decimal('0.00'))


def balance_total(group):
    return sum(balances_of(group).values(), Decimal('0.00'))
