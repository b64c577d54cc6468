import pytest
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError

from apps.expenses.models import Balance, ExpenseSplit
from apps.expenses.services import create_expense

from .utils import balance_of


def audit(*args):
    out = StringIO()
    call_command('audit_group_balances', *args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestAuditGroupBalances:

    def test_no_groups(self):
        assert 'No groups to audit.' in audit()

    def test_consistent_group(self, ledger_group, alice):
        create_expense(
            group_id=ledger_group.id, user=alice, title='Dinner',
            total_amount=Decimal('90.00'),
        )

        output = audit()

        assert f'ok      {ledger_group.id}' in output
        assert 'All 1 group(s) consistent.' in output

    def test_drift_reported_without_repair(self, ledger_group, alice, bob):
        create_expense(
            group_id=ledger_group.id, user=alice, title='Dinner',
            total_amount=Decimal('90.00'),
        )
        Balance.objects.filter(group=ledger_group, user=bob).update(balance=Decimal('0.00'))

        output = audit('--group', str(ledger_group.id))

        assert 'DRIFT' in output
        assert '--repair' in output
        assert balance_of(ledger_group, bob) == Decimal('0.00')

    def test_repair(self, ledger_group, alice, bob):
        create_expense(
            group_id=ledger_group.id, user=alice, title='Dinner',
            total_amount=Decimal('90.00'),
        )
        Balance.objects.filter(group=ledger_group, user=bob).update(balance=Decimal('0.00'))

        output = audit('--group', str(ledger_group.id), '--repair')

        assert 'repaired 1 balance(s)' in output
        assert balance_of(ledger_group, bob) == Decimal('-30.00')

    def test_repair_refused_for_unbalanced_history(self, ledger_group, alice, bob):
        expense = create_expense(
            group_id=ledger_group.id, user=alice, title='Dinner',
            total_amount=Decimal('90.00'),
        )
        ExpenseSplit.objects.filter(expense=expense, user=bob).update(amount=Decimal('1.00'))

        output = audit('--repair')

        assert 'repair refused' in output
        assert balance_of(ledger_group, bob) == Decimal('-30.00')

    def test_unknown_group(self, db):
        with pytest.raises(CommandError):
            audit('--group', '00000000-0000-0000-0000-000000000000')

    def test_malformed_group_id(self, db):
        with pytest.raises(CommandError, match='Invalid group ID'):
            audit('--group', 'not-a-uuid')
