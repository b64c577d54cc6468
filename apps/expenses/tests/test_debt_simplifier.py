import pytest
from decimal import Decimal

from apps.expenses.services import (
    ConsistencyError,
    Transfer,
    UnsettleableBalancesError,
    simplify_debts,
)


def settle(balances, transfers):
    """Apply transfers to a copy of the balances."""
    remaining = dict(balances)
    for transfer in transfers:
        remaining[transfer.from_user_id] += transfer.amount
        remaining[transfer.to_user_id] -= transfer.amount
    return remaining


class TestSimplifyDebts:
    """Tests for greedy max-pair settlement."""

    def test_largest_creditor_served_first(self):
        transfers = simplify_debts({
            'A': Decimal('50.00'),
            'B': Decimal('30.00'),
            'C': Decimal('-80.00'),
        })

        assert transfers == [
            Transfer(from_user_id='C', to_user_id='A', amount=Decimal('50.00')),
            Transfer(from_user_id='C', to_user_id='B', amount=Decimal('30.00')),
        ]

    def test_single_pair_yields_one_transfer(self):
        transfers = simplify_debts({'A': Decimal('12.34'), 'B': Decimal('-12.34')})

        assert transfers == [Transfer('B', 'A', Decimal('12.34'))]

    def test_settled_group_yields_nothing(self):
        assert simplify_debts({'A': Decimal('0.00'), 'B': Decimal('0.00')}) == []

    def test_empty_input(self):
        assert simplify_debts({}) == []

    def test_ties_resolved_by_user_id(self):
        transfers = simplify_debts({
            'B': Decimal('50.00'),
            'A': Decimal('50.00'),
            'D': Decimal('-50.00'),
            'C': Decimal('-50.00'),
        })

        assert transfers == [
            Transfer('C', 'A', Decimal('50.00')),
            Transfer('D', 'B', Decimal('50.00')),
        ]

    def test_partial_match_keeps_remaining_debt_in_play(self):
        """After a partial match the larger remaining debtor is chosen next."""
        transfers = simplify_debts({
            'A': Decimal('100.00'),
            'B': Decimal('-60.00'),
            'C': Decimal('-40.00'),
        })

        assert transfers == [
            Transfer('B', 'A', Decimal('60.00')),
            Transfer('C', 'A', Decimal('40.00')),
        ]

    def test_accepts_pairs(self):
        transfers = simplify_debts([('A', Decimal('5.00')), ('B', Decimal('-5.00'))])
        assert transfers == [Transfer('B', 'A', Decimal('5.00'))]

    def test_non_zero_sum_is_rejected(self):
        with pytest.raises(UnsettleableBalancesError):
            simplify_debts({'A': Decimal('10.00'), 'B': Decimal('-9.99')})

    def test_unsettleable_is_a_consistency_error(self):
        with pytest.raises(ConsistencyError):
            simplify_debts({'A': Decimal('0.01')})

    @pytest.mark.parametrize('balances', [
        {'A': Decimal('10.00'), 'B': Decimal('-3.33'), 'C': Decimal('-3.33'), 'D': Decimal('-3.34')},
        {'A': Decimal('70.01'), 'B': Decimal('29.99'), 'C': Decimal('-45.00'), 'D': Decimal('-55.00')},
        {
            'A': Decimal('1.00'), 'B': Decimal('2.00'), 'C': Decimal('3.00'),
            'D': Decimal('-0.50'), 'E': Decimal('-4.50'), 'F': Decimal('-1.00'),
            'G': Decimal('0.00'),
        },
    ])
    def test_transfers_settle_everyone(self, balances):
        """Positive amounts, everyone zeroed, at most n - 1 transfers."""
        transfers = simplify_debts(balances)
        non_zero = [b for b in balances.values() if b != 0]

        assert all(t.amount > 0 for t in transfers)
        assert all(b == 0 for b in settle(balances, transfers).values())
        assert len(transfers) <= len(non_zero) - 1
        assert sum(t.amount for t in transfers) == sum(b for b in balances.values() if b > 0)

    def test_as_dict(self):
        transfer = Transfer('B', 'A', Decimal('1.00'))
        assert transfer.as_dict() == {
            'from_user_id': 'B',
            'to_user_id': 'A',
            'amount': Decimal('1.00'),
        }
