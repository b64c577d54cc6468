"""
Management command to audit stored group balances against their history.

Replays every expense and completed payment of a group and compares the
result with the stored Balance rows. With --repair, drifted rows are
overwritten with the replayed values; every overwrite is logged.

Usage:
    python manage.py audit_group_balances
    python manage.py audit_group_balances --group <uuid>
    python manage.py audit_group_balances --group <uuid> --repair
"""

import uuid

from django.core.management.base import BaseCommand, CommandError

from apps.groups.models import Group
from apps.expenses.services import (
    ConsistencyError,
    GroupNotFoundError,
    repair_group_balances,
    validate_group_balance_consistency,
)


class Command(BaseCommand):
    help = 'Compare stored group balances with a full replay of expenses and payments'

    def add_arguments(self, parser):
        parser.add_argument(
            '--group',
            help='Only audit the group with this ID',
        )
        parser.add_argument(
            '--repair',
            action='store_true',
            help='Overwrite drifted balances with the replayed values',
        )

    def handle(self, *args, **options):
        repair = options['repair']

        if options['group']:
            try:
                group_ids = [uuid.UUID(options['group'])]
            except ValueError:
                raise CommandError(f"Invalid group ID: {options['group']}")
        else:
            group_ids = list(Group.objects.order_by('created_at').values_list('id', flat=True))

        if not group_ids:
            self.stdout.write(self.style.SUCCESS('No groups to audit.'))
            return

        drifted = 0
        for group_id in group_ids:
            try:
                report = validate_group_balance_consistency(group_id=group_id)
            except GroupNotFoundError as e:
                raise CommandError(str(e))

            if report.consistent:
                self.stdout.write(f'  ok      {group_id}')
                continue

            drifted += 1
            self.stdout.write(self.style.WARNING(
                f'  DRIFT   {group_id} (replayed total {report.recomputed_total})'
            ))
            for discrepancy in report.discrepancies:
                self.stdout.write(
                    f'          user {discrepancy.user_id}: '
                    f'stored {discrepancy.stored_balance}, '
                    f'replayed {discrepancy.recomputed_balance}'
                )

            if repair:
                try:
                    repaired = repair_group_balances(group_id=group_id)
                except ConsistencyError as e:
                    self.stdout.write(self.style.ERROR(f'          repair refused: {e}'))
                    continue
                self.stdout.write(self.style.SUCCESS(
                    f'          repaired {len(repaired.discrepancies)} balance(s)'
                ))

        if drifted == 0:
            self.stdout.write(self.style.SUCCESS(f'\nAll {len(group_ids)} group(s) consistent.'))
        elif not repair:
            self.stdout.write(self.style.WARNING(
                f'\n{drifted} group(s) drifted. Run again with --repair to fix them.'
            ))
