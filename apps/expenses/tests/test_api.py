import pytest
from decimal import Decimal
from unittest.mock import patch
from django.urls import reverse
from rest_framework import status

from apps.expenses.models import Balance, Expense, Payment, PaymentStatus
from apps.expenses.services import (
    ConcurrencyConflictError,
    UnsettleableBalancesError,
    create_expense,
    create_payment,
)
from apps.expenses.views import RETRY_MESSAGE

from .utils import balance_of, balance_total, make_client


def expense_payload(group, **overrides):
    payload = {
        'group': str(group.id),
        'title': 'Dinner',
        'total_amount': '90.00',
    }
    payload.update(overrides)
    return payload


def record_dinner(group, payer, amount='90.00'):
    return create_expense(
        group_id=group.id,
        user=payer,
        title='Dinner',
        total_amount=Decimal(amount),
    )


# =============================================================================
# Expenses
# =============================================================================

@pytest.mark.django_db
class TestExpenseCreate:
    """Tests for POST /api/ledger/expenses/"""

    def test_create_equal_split(self, alice_client, ledger_group, alice, bob):
        url = reverse('expenses:expense-list')

        response = alice_client.post(url, expense_payload(ledger_group), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert str(response.data['group']) == str(ledger_group.id)
        assert response.data['total_amount'] == '90.00'
        assert response.data['split_type'] == 'equal'
        assert len(response.data['splits']) == 3
        assert balance_of(ledger_group, alice) == Decimal('60.00')
        assert balance_of(ledger_group, bob) == Decimal('-30.00')

    def test_create_percentage_split(self, alice_client, ledger_group, alice, bob):
        url = reverse('expenses:expense-list')
        payload = expense_payload(
            ledger_group,
            total_amount='200.00',
            split_type='percentage',
            participants=[
                {'user_id': str(alice.id), 'percentage': '25'},
                {'user_id': str(bob.id), 'percentage': '75'},
            ],
        )

        response = alice_client.post(url, payload, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert balance_of(ledger_group, bob) == Decimal('-150.00')

    def test_split_error_reports_field_and_rule(self, alice_client, ledger_group, alice, bob):
        url = reverse('expenses:expense-list')
        payload = expense_payload(
            ledger_group,
            split_type='exact',
            participants=[
                {'user_id': str(alice.id), 'amount': '50.00'},
                {'user_id': str(bob.id), 'amount': '30.00'},
            ],
        )

        response = alice_client.post(url, payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'amount'
        assert response.data['rule'] == 'exact_sum'
        assert Expense.objects.count() == 0

    def test_currency_mismatch(self, alice_client, ledger_group):
        url = reverse('expenses:expense-list')

        response = alice_client.post(
            url, expense_payload(ledger_group, currency='USD'), format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['rule'] == 'currency_mismatch'

    def test_float_like_precision_rejected(self, alice_client, ledger_group):
        url = reverse('expenses:expense-list')

        response = alice_client.post(
            url, expense_payload(ledger_group, total_amount='10.005'), format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_outsider_participant(self, alice_client, ledger_group, alice, outsider):
        url = reverse('expenses:expense-list')
        payload = expense_payload(
            ledger_group,
            split_type='equal',
            participants=[{'user_id': str(alice.id)}, {'user_id': str(outsider.id)}],
        )

        response = alice_client.post(url, payload, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['field'] == 'participants'

    def test_non_member_cannot_create(self, outsider_client, ledger_group):
        url = reverse('expenses:expense-list')

        response = outsider_client.post(url, expense_payload(ledger_group), format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unauthenticated(self, api_client, ledger_group):
        url = reverse('expenses:expense-list')

        response = api_client.post(url, expense_payload(ledger_group), format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_conflict_returns_retry_message(self, alice_client, ledger_group):
        url = reverse('expenses:expense-list')

        with patch(
            'apps.expenses.views.create_expense',
            side_effect=ConcurrencyConflictError('busy'),
        ):
            response = alice_client.post(url, expense_payload(ledger_group), format='json')

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data['error'] == RETRY_MESSAGE


@pytest.mark.django_db
class TestExpenseReadAndEdit:

    def test_list_only_my_groups(self, alice_client, outsider_client, ledger_group, alice):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-list')

        mine = alice_client.get(url)
        theirs = outsider_client.get(url)

        assert mine.status_code == status.HTTP_200_OK
        assert mine.data['count'] == 1
        assert theirs.data['count'] == 0

    def test_list_filter_by_category(self, alice_client, ledger_group, alice):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-list')

        response = alice_client.get(url, {'group': str(ledger_group.id), 'category': 'Food'})

        assert response.data['count'] == 0

    def test_retrieve_with_splits(self, bob_client, ledger_group, alice):
        expense = record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-detail', kwargs={'pk': expense.id})

        response = bob_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert {s['amount'] for s in response.data['splits']} == {'30.00'}

    def test_patch_amount_rebalances(self, alice_client, ledger_group, alice, bob):
        expense = record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-detail', kwargs={'pk': expense.id})

        response = alice_client.patch(url, {'total_amount': '120.00'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_amount'] == '120.00'
        assert balance_of(ledger_group, bob) == Decimal('-40.00')
        assert balance_total(ledger_group) == Decimal('0.00')

    def test_member_cannot_edit_others_expense(self, bob_client, ledger_group, alice):
        expense = record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-detail', kwargs={'pk': expense.id})

        response = bob_client.patch(url, {'title': 'Hijacked'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_delete_reverses(self, alice_client, ledger_group, alice, bob):
        expense = record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-detail', kwargs={'pk': expense.id})

        response = alice_client.delete(url)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert balance_of(ledger_group, bob) == Decimal('0.00')

    def test_outsider_cannot_see_expense(self, outsider_client, ledger_group, alice):
        expense = record_dinner(ledger_group, alice)
        url = reverse('expenses:expense-detail', kwargs={'pk': expense.id})

        response = outsider_client.get(url)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_categories(self, alice_client):
        response = alice_client.get(reverse('expenses:categories'))

        assert response.status_code == status.HTTP_200_OK
        assert {'value': 'Food', 'label': 'Food'} in response.data


# =============================================================================
# Payments
# =============================================================================

@pytest.mark.django_db
class TestPaymentAPI:

    def test_record_and_complete(self, bob_client, ledger_group, alice, bob):
        record_dinner(ledger_group, alice)

        response = bob_client.post(reverse('expenses:payment-list'), {
            'group': str(ledger_group.id),
            'from_user': str(bob.id),
            'to_user': str(alice.id),
            'amount': '30.00',
            'payment_method': 'UPI',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert balance_of(ledger_group, bob) == Decimal('-30.00')

        url = reverse('expenses:payment-update-status', kwargs={'pk': response.data['id']})
        response = bob_client.post(url, {'status': 'completed'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['completed_at'] is not None
        assert balance_of(ledger_group, bob) == Decimal('0.00')

    def test_patch_changes_status(self, alice_client, ledger_group, alice, bob):
        payment = create_payment(
            group_id=ledger_group.id, user=bob, from_user_id=bob.id,
            to_user_id=alice.id, amount=Decimal('5.00'),
        )
        url = reverse('expenses:payment-detail', kwargs={'pk': payment.id})

        response = alice_client.patch(url, {'status': 'cancelled'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'cancelled'

    def test_invalid_transition(self, bob_client, ledger_group, alice, bob):
        payment = create_payment(
            group_id=ledger_group.id, user=bob, from_user_id=bob.id,
            to_user_id=alice.id, amount=Decimal('5.00'),
            status=PaymentStatus.COMPLETED,
        )
        url = reverse('expenses:payment-update-status', kwargs={'pk': payment.id})

        response = bob_client.post(url, {'status': 'pending'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_completed_refused(self, bob_client, ledger_group, alice, bob):
        payment = create_payment(
            group_id=ledger_group.id, user=bob, from_user_id=bob.id,
            to_user_id=alice.id, amount=Decimal('5.00'),
            status=PaymentStatus.COMPLETED,
        )
        url = reverse('expenses:payment-detail', kwargs={'pk': payment.id})

        response = bob_client.delete(url)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert Payment.objects.filter(id=payment.id).exists()

    def test_same_party_rejected(self, alice_client, ledger_group, alice):
        response = alice_client.post(reverse('expenses:payment-list'), {
            'group': str(ledger_group.id),
            'from_user': str(alice.id),
            'to_user': str(alice.id),
            'amount': '5.00',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_put_not_allowed(self, alice_client, ledger_group, alice, bob):
        payment = create_payment(
            group_id=ledger_group.id, user=bob, from_user_id=bob.id,
            to_user_id=alice.id, amount=Decimal('5.00'),
        )
        url = reverse('expenses:payment-detail', kwargs={'pk': payment.id})

        response = alice_client.put(url, {'status': 'completed'}, format='json')

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED

    def test_list_filtered_by_status(self, alice_client, ledger_group, alice, bob):
        create_payment(
            group_id=ledger_group.id, user=bob, from_user_id=bob.id,
            to_user_id=alice.id, amount=Decimal('5.00'),
        )

        response = alice_client.get(reverse('expenses:payment-list'), {'status': 'completed'})

        assert response.data['count'] == 0


# =============================================================================
# Balances
# =============================================================================

@pytest.mark.django_db
class TestBalanceEndpoints:

    def test_group_balances(self, bob_client, ledger_group, alice):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:group-balances', kwargs={'group_id': ledger_group.id})

        response = bob_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data[0]['balance'] == '60.00'
        assert response.data[0]['user']['email'] == alice.email

    def test_group_balances_outsider(self, outsider_client, ledger_group):
        url = reverse('expenses:group-balances', kwargs={'group_id': ledger_group.id})

        response = outsider_client.get(url)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_debts(self, alice_client, ledger_group, alice):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:group-debts', kwargs={'group_id': ledger_group.id})

        response = alice_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 2
        assert all(d['to_user']['id'] == str(alice.id) for d in response.data)

    def test_unsettleable_debts_return_conflict(self, alice_client, ledger_group):
        url = reverse('expenses:group-debts', kwargs={'group_id': ledger_group.id})

        with patch(
            'apps.expenses.views.get_simplified_debts',
            side_effect=UnsettleableBalancesError('off by one'),
        ):
            response = alice_client.get(url)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == RETRY_MESSAGE

    def test_summary(self, alice_client, ledger_group, alice):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:group-summary', kwargs={'group_id': ledger_group.id})

        response = alice_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_expenses'] == '90.00'
        assert response.data['total_owed'] == '60.00'
        assert response.data['total_owing'] == '60.00'

    def test_payment_stats(self, alice_client, ledger_group):
        url = reverse('expenses:group-payment-stats', kwargs={'group_id': ledger_group.id})

        response = alice_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_payments'] == 0

    def test_my_net_balance(self, bob_client, ledger_group, alice):
        record_dinner(ledger_group, alice)

        response = bob_client.get(reverse('expenses:my-net-balance'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['net_balance'] == '-30.00'
        assert response.data['total_owing'] == '30.00'

    def test_unknown_group(self, alice_client):
        import uuid
        url = reverse('expenses:group-balances', kwargs={'group_id': uuid.uuid4()})

        response = alice_client.get(url)

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestConsistencyEndpoints:

    def test_validate_reports_drift(self, bob_client, ledger_group, alice, bob):
        record_dinner(ledger_group, alice)
        Balance.objects.filter(group=ledger_group, user=bob).update(balance=Decimal('-10.00'))
        url = reverse('expenses:group-validate', kwargs={'group_id': ledger_group.id})

        response = bob_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['consistent'] is False
        assert response.data['discrepancies'][0]['recomputed_balance'] == '-30.00'

    def test_recalculate_as_admin(self, alice_client, ledger_group, alice, bob):
        record_dinner(ledger_group, alice)
        Balance.objects.filter(group=ledger_group, user=bob).update(balance=Decimal('-10.00'))
        url = reverse('expenses:group-recalculate', kwargs={'group_id': ledger_group.id})

        response = alice_client.post(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['repaired'] is True
        assert balance_of(ledger_group, bob) == Decimal('-30.00')

    def test_recalculate_requires_admin(self, bob_client, ledger_group, alice, bob):
        record_dinner(ledger_group, alice)
        url = reverse('expenses:group-recalculate', kwargs={'group_id': ledger_group.id})

        response = bob_client.post(url)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_new_member_can_validate(self, ledger_group, outsider):
        from apps.groups.models import GroupMembership
        GroupMembership.objects.create(user=outsider, group=ledger_group)
        client = make_client(outsider)
        url = reverse('expenses:group-validate', kwargs={'group_id': ledger_group.id})

        response = client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['consistent'] is True
