import logging
import pytest
import uuid
from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError

from apps.expenses.services import ConcurrencyConflictError
from apps.khata.models import KhataCustomer, KhataTransaction, TransactionType
from apps.khata.services import (
    balance_direction,
    current_balance,
    recompute_running_balances,
    create_customer,
    update_customer,
    delete_customer,
    get_customer,
    get_customers,
    get_financial_summary,
    create_transaction,
    update_transaction,
    delete_transaction,
    get_transaction,
    get_customer_transactions,
    # Exceptions
    CustomerNotFoundError,
    TransactionNotFoundError,
    InvalidKhataTransactionError,
    InvalidCustomerQueryError,
)


def record(customer, type, amount, when):
    return create_transaction(
        customer_id=customer.id,
        owner=customer.owner,
        type=type,
        amount=Decimal(amount),
        transaction_date=when,
    )


def running_balances(customer):
    """Stored running balances in chronological order."""
    return [
        txn.balance for txn in
        KhataTransaction.objects
        .filter(customer=customer)
        .order_by('transaction_date', 'created_at', 'id')
    ]


# =============================================================================
# Running Balances
# =============================================================================

@pytest.mark.django_db
class TestRunningBalances:
    """Tests for the chronological running balance."""

    def test_give_raises_and_get_lowers(self, customer, days_ago):
        first = record(customer, TransactionType.GIVE, '100.00', days_ago(3))
        second = record(customer, TransactionType.GET, '40.00', days_ago(2))

        assert first.balance == Decimal('100.00')
        assert second.balance == Decimal('60.00')
        assert current_balance(customer_id=customer.id) == Decimal('60.00')

    def test_back_dated_insert(self, customer, days_ago):
        """Only the inserted entry and later ones move."""
        oldest = record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        latest = record(customer, TransactionType.GET, '30.00', days_ago(2))

        inserted = record(customer, TransactionType.GIVE, '50.00', days_ago(5))

        oldest.refresh_from_db()
        latest.refresh_from_db()
        assert oldest.balance == Decimal('100.00')
        assert inserted.balance == Decimal('150.00')
        assert latest.balance == Decimal('120.00')

    def test_recompute_leaves_earlier_entries_alone(self, customer, days_ago):
        oldest = record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        record(customer, TransactionType.GET, '30.00', days_ago(2))
        KhataTransaction.objects.filter(id=oldest.id).update(balance=Decimal('999.00'))

        changed = recompute_running_balances(customer_id=customer.id, from_date=days_ago(5))

        oldest.refresh_from_db()
        assert oldest.balance == Decimal('999.00')
        assert changed == 1
        assert running_balances(customer) == [Decimal('999.00'), Decimal('969.00')]

    def test_full_recompute_from_start(self, customer, days_ago):
        record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        record(customer, TransactionType.GET, '30.00', days_ago(2))
        KhataTransaction.objects.filter(customer=customer).update(balance=Decimal('0.00'))

        changed = recompute_running_balances(customer_id=customer.id)

        assert changed == 2
        assert running_balances(customer) == [Decimal('100.00'), Decimal('70.00')]

    def test_same_date_entries_follow_creation_order(self, customer, days_ago):
        when = days_ago(1)
        record(customer, TransactionType.GIVE, '10.00', when)
        record(customer, TransactionType.GIVE, '5.00', when)

        assert running_balances(customer) == [Decimal('10.00'), Decimal('15.00')]

    def test_edit_amount_shifts_later_entries(self, customer, days_ago):
        record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        middle = record(customer, TransactionType.GET, '20.00', days_ago(5))
        record(customer, TransactionType.GIVE, '10.00', days_ago(1))

        update_transaction(transaction_id=middle.id, owner=customer.owner, amount=Decimal('50.00'))

        assert running_balances(customer) == [
            Decimal('100.00'), Decimal('50.00'), Decimal('60.00'),
        ]

    def test_edit_type_flips_sign(self, customer, days_ago):
        txn = record(customer, TransactionType.GET, '25.00', days_ago(1))

        txn = update_transaction(
            transaction_id=txn.id, owner=customer.owner, type=TransactionType.GIVE
        )

        assert txn.balance == Decimal('25.00')

    def test_moving_entry_earlier(self, customer, days_ago):
        record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        record(customer, TransactionType.GIVE, '20.00', days_ago(5))
        late = record(customer, TransactionType.GET, '50.00', days_ago(1))

        update_transaction(
            transaction_id=late.id, owner=customer.owner, transaction_date=days_ago(20)
        )

        assert running_balances(customer) == [
            Decimal('-50.00'), Decimal('50.00'), Decimal('70.00'),
        ]

    def test_moving_entry_later(self, customer, days_ago):
        early = record(customer, TransactionType.GET, '50.00', days_ago(20))
        record(customer, TransactionType.GIVE, '100.00', days_ago(10))

        update_transaction(
            transaction_id=early.id, owner=customer.owner, transaction_date=days_ago(1)
        )

        assert running_balances(customer) == [Decimal('100.00'), Decimal('50.00')]

    def test_description_edit_keeps_balances(self, customer, days_ago):
        txn = record(customer, TransactionType.GIVE, '10.00', days_ago(1))

        updated = update_transaction(
            transaction_id=txn.id, owner=customer.owner, description='Rice and dal'
        )

        assert updated.description == 'Rice and dal'
        assert updated.balance == Decimal('10.00')

    def test_delete_shifts_later_entries(self, customer, days_ago):
        record(customer, TransactionType.GIVE, '100.00', days_ago(10))
        middle = record(customer, TransactionType.GIVE, '20.00', days_ago(5))
        record(customer, TransactionType.GET, '30.00', days_ago(1))

        delete_transaction(transaction_id=middle.id, owner=customer.owner)

        assert running_balances(customer) == [Decimal('100.00'), Decimal('70.00')]

    def test_deleting_only_entry_settles(self, customer, days_ago):
        txn = record(customer, TransactionType.GIVE, '10.00', days_ago(1))

        delete_transaction(transaction_id=txn.id, owner=customer.owner)

        assert current_balance(customer_id=customer.id) == Decimal('0.00')

    def test_mutation_is_logged(self, customer, days_ago, caplog):
        with caplog.at_level(logging.INFO, logger='apps.khata'):
            record(customer, TransactionType.GIVE, '10.00', days_ago(1))

        assert 'Created khata give' in caplog.text


@pytest.mark.django_db
class TestTransactionValidation:

    def test_unknown_type(self, customer):
        with pytest.raises(InvalidKhataTransactionError) as exc_info:
            create_transaction(
                customer_id=customer.id, owner=customer.owner,
                type='lend', amount=Decimal('10.00'),
            )
        assert exc_info.value.field == 'type'

    @pytest.mark.parametrize('amount', [Decimal('0.00'), Decimal('-5.00'), 5.0, '1.234', '1e30'])
    def test_bad_amount(self, customer, amount):
        with pytest.raises(InvalidKhataTransactionError) as exc_info:
            create_transaction(
                customer_id=customer.id, owner=customer.owner,
                type=TransactionType.GIVE, amount=amount,
            )
        assert exc_info.value.field == 'amount'
        assert KhataTransaction.objects.count() == 0

    def test_unsupported_currency(self, customer):
        with pytest.raises(InvalidKhataTransactionError) as exc_info:
            create_transaction(
                customer_id=customer.id, owner=customer.owner,
                type=TransactionType.GIVE, amount=Decimal('1.00'), currency='XYZ',
            )
        assert exc_info.value.field == 'currency'

    def test_default_currency(self, customer, settings):
        settings.KHATA_DEFAULT_CURRENCY = 'USD'

        txn = create_transaction(
            customer_id=customer.id, owner=customer.owner,
            type=TransactionType.GIVE, amount='3.50',
        )

        assert txn.currency == 'USD'

    def test_other_users_customer(self, customer, other_user):
        with pytest.raises(CustomerNotFoundError):
            create_transaction(
                customer_id=customer.id, owner=other_user,
                type=TransactionType.GIVE, amount=Decimal('1.00'),
            )

    def test_other_users_transaction(self, customer, other_user, days_ago):
        txn = record(customer, TransactionType.GIVE, '1.00', days_ago(1))

        with pytest.raises(TransactionNotFoundError):
            update_transaction(transaction_id=txn.id, owner=other_user, amount=Decimal('2.00'))
        with pytest.raises(TransactionNotFoundError):
            delete_transaction(transaction_id=txn.id, owner=other_user)
        with pytest.raises(TransactionNotFoundError):
            get_transaction(transaction_id=txn.id, owner=other_user)

    def test_unknown_transaction(self, shopkeeper):
        with pytest.raises(TransactionNotFoundError):
            delete_transaction(transaction_id=uuid.uuid4(), owner=shopkeeper)


# =============================================================================
# Customers
# =============================================================================

@pytest.mark.django_db
class TestCustomers:

    def test_create_and_get(self, shopkeeper):
        created = create_customer(owner=shopkeeper, name='Meena', phone='12345')

        customer = get_customer(customer_id=created.id, owner=shopkeeper)

        assert customer.name == 'Meena'
        assert customer.current_balance == Decimal('0.00')

    def test_update_ignores_none(self, customer):
        updated = update_customer(
            customer_id=customer.id, owner=customer.owner, name='Ravi K', phone=None
        )

        assert updated.name == 'Ravi K'
        assert updated.phone == '9876543210'

    def test_update_rejects_unknown_field(self, customer):
        with pytest.raises(InvalidCustomerQueryError) as exc_info:
            update_customer(customer_id=customer.id, owner=customer.owner, owner_id=None)
        assert exc_info.value.field == 'owner_id'

    def test_delete_removes_transactions(self, customer, days_ago):
        record(customer, TransactionType.GIVE, '1.00', days_ago(1))

        delete_customer(customer_id=customer.id, owner=customer.owner)

        assert not KhataCustomer.objects.filter(id=customer.id).exists()
        assert KhataTransaction.objects.count() == 0

    def test_private_to_owner(self, customer, other_user):
        with pytest.raises(CustomerNotFoundError):
            get_customer(customer_id=customer.id, owner=other_user)
        with pytest.raises(CustomerNotFoundError):
            delete_customer(customer_id=customer.id, owner=other_user)

    def test_transactions_latest_first(self, customer, days_ago):
        old = record(customer, TransactionType.GIVE, '1.00', days_ago(5))
        new = record(customer, TransactionType.GIVE, '2.00', days_ago(1))

        transactions = list(get_customer_transactions(customer_id=customer.id, owner=customer.owner))

        assert transactions == [new, old]

    def test_balance_direction(self):
        assert balance_direction(Decimal('5.00')) == 'get'
        assert balance_direction(Decimal('-5.00')) == 'give'
        assert balance_direction(Decimal('0.00')) == 'settled'


@pytest.mark.django_db
class TestCustomerListing:
    """Tests for search, filter and sort of the customer list."""

    @pytest.fixture
    def book(self, shopkeeper, days_ago):
        """Three customers: one owes 300, one is owed 50, one settled."""
        owes = create_customer(owner=shopkeeper, name='Zoya', phone='111')
        owed = create_customer(owner=shopkeeper, name='arjun', email='arjun@example.com')
        settled = create_customer(owner=shopkeeper, name='Meena')

        record(owes, TransactionType.GIVE, '300.00', days_ago(3))
        record(owed, TransactionType.GET, '50.00', days_ago(2))
        record(settled, TransactionType.GIVE, '20.00', days_ago(4))
        record(settled, TransactionType.GET, '20.00', days_ago(1))
        return {'owes': owes, 'owed': owed, 'settled': settled}

    def names(self, queryset):
        return [c.name for c in queryset]

    def test_filters(self, shopkeeper, book):
        assert self.names(get_customers(owner=shopkeeper, filter_type='get')) == ['Zoya']
        assert self.names(get_customers(owner=shopkeeper, filter_type='give')) == ['arjun']
        assert self.names(get_customers(owner=shopkeeper, filter_type='settled')) == ['Meena']
        assert len(get_customers(owner=shopkeeper)) == 3

    def test_sorts(self, shopkeeper, book):
        assert self.names(get_customers(owner=shopkeeper, sort_type='name-az')) == [
            'arjun', 'Meena', 'Zoya',
        ]
        assert self.names(get_customers(owner=shopkeeper, sort_type='highest-amount')) == [
            'Zoya', 'arjun', 'Meena',
        ]
        assert self.names(get_customers(owner=shopkeeper, sort_type='least-amount')) == [
            'Meena', 'arjun', 'Zoya',
        ]
        assert self.names(get_customers(owner=shopkeeper, sort_type='oldest')) == [
            'Zoya', 'arjun', 'Meena',
        ]

    def test_most_recent_follows_latest_activity(self, shopkeeper, book):
        assert self.names(get_customers(owner=shopkeeper))[0] == 'Meena'

    def test_search(self, shopkeeper, book):
        assert self.names(get_customers(owner=shopkeeper, search='ARJ')) == ['arjun']
        assert self.names(get_customers(owner=shopkeeper, search='111')) == ['Zoya']

    def test_listing_is_private(self, other_user, book):
        assert len(get_customers(owner=other_user)) == 0

    def test_unknown_filter(self, shopkeeper):
        with pytest.raises(InvalidCustomerQueryError) as exc_info:
            get_customers(owner=shopkeeper, filter_type='owing')
        assert exc_info.value.field == 'filter'

    def test_unknown_sort(self, shopkeeper):
        with pytest.raises(InvalidCustomerQueryError) as exc_info:
            get_customers(owner=shopkeeper, sort_type='richest')
        assert exc_info.value.field == 'sort'

    def test_financial_summary(self, shopkeeper, book):
        summary = get_financial_summary(owner=shopkeeper)

        assert summary == {
            'total_give': Decimal('50.00'),
            'total_get': Decimal('300.00'),
            'customer_count': 3,
        }

    def test_empty_summary(self, other_user):
        summary = get_financial_summary(owner=other_user)

        assert summary['total_give'] == Decimal('0.00')
        assert summary['total_get'] == Decimal('0.00')


@pytest.mark.django_db
class TestConflictRetry:
    """A storage write conflict is retried once, then surfaced."""

    RECOMPUTE = 'apps.khata.services.transaction_management.recompute_running_balances'

    def test_single_conflict_is_retried(self, customer, caplog):
        real_recompute = recompute_running_balances
        calls = {'count': 0}

        def flaky_recompute(**kwargs):
            calls['count'] += 1
            if calls['count'] == 1:
                raise OperationalError('database is locked')
            return real_recompute(**kwargs)

        with patch(self.RECOMPUTE, side_effect=flaky_recompute):
            with caplog.at_level(logging.WARNING, logger='apps.expenses'):
                txn = create_transaction(
                    customer_id=customer.id, owner=customer.owner,
                    type=TransactionType.GIVE, amount='10.00',
                )

        assert calls['count'] == 2
        assert KhataTransaction.objects.count() == 1
        assert txn.balance == Decimal('10.00')
        assert 'khata transaction creation' in caplog.text

    def test_second_conflict_is_surfaced(self, customer, caplog):
        with patch(self.RECOMPUTE, side_effect=OperationalError('database is locked')) as mocked:
            with caplog.at_level(logging.WARNING, logger='apps.expenses'):
                with pytest.raises(ConcurrencyConflictError):
                    create_transaction(
                        customer_id=customer.id, owner=customer.owner,
                        type=TransactionType.GIVE, amount='10.00',
                    )

        assert mocked.call_count == 2
        assert KhataTransaction.objects.count() == 0
        assert any(record.levelno == logging.ERROR for record in caplog.records)

    def test_update_conflict_rolls_back(self, customer, days_ago):
        txn = record(customer, TransactionType.GIVE, '10.00', days_ago(1))

        with patch(self.RECOMPUTE, side_effect=OperationalError('deadlock detected')):
            with pytest.raises(ConcurrencyConflictError):
                update_transaction(
                    transaction_id=txn.id, owner=customer.owner, amount=Decimal('25.00'),
                )

        txn.refresh_from_db()
        assert txn.amount == Decimal('10.00')
        assert txn.balance == Decimal('10.00')

    def test_delete_retried_after_conflict(self, customer, days_ago):
        first = record(customer, TransactionType.GIVE, '10.00', days_ago(2))
        second = record(customer, TransactionType.GET, '4.00', days_ago(1))
        real_recompute = recompute_running_balances
        calls = {'count': 0}

        def flaky_recompute(**kwargs):
            calls['count'] += 1
            if calls['count'] == 1:
                raise OperationalError('database is locked')
            return real_recompute(**kwargs)

        with patch(self.RECOMPUTE, side_effect=flaky_recompute):
            delete_transaction(transaction_id=first.id, owner=customer.owner)

        second.refresh_from_db()
        assert not KhataTransaction.objects.filter(id=first.id).exists()
        assert second.balance == Decimal('-4.00')

    def test_retry_count_is_configurable(self, customer, settings):
        settings.LEDGER_CONFLICT_RETRIES = 0

        with patch(self.RECOMPUTE, side_effect=OperationalError('database is locked')) as mocked:
            with pytest.raises(ConcurrencyConflictError):
                create_transaction(
                    customer_id=customer.id, owner=customer.owner,
                    type=TransactionType.GET, amount='1.00',
                )

        assert mocked.call_count == 1
