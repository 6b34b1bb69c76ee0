"""
Management command to rebuild settlements from the expense ledger.

Runs a full recomputation per group, which also rebuilds the cached
member balances used by incremental updates.

Usage:
    python manage.py recalculate_settlements
    python manage.py recalculate_settlements --group <uuid> --group <uuid>
    python manage.py recalculate_settlements --dry-run
"""

import uuid

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.db.models import Q

from apps.groups.models import Group
from apps.settlements.services import SettlementEngine, SettlementsServiceError


class DryRunRollback(Exception):
    """Raised to roll back a dry-run recomputation."""


class Command(BaseCommand):
    help = 'Recalculate pending settlements from the expense ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--group',
            action='append',
            dest='groups',
            default=[],
            help='Group UUID to recalculate (repeatable, default: every group with activity)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would change without making changes',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        engine = SettlementEngine()

        if options['groups']:
            group_ids = self._parse_group_ids(options['groups'])
            groups = Group.objects.filter(id__in=group_ids)
            missing = {str(g) for g in group_ids} - {str(g.id) for g in groups}
            if missing:
                raise CommandError(f"Unknown group(s): {', '.join(sorted(missing))}")
        else:
            groups = Group.objects.filter(
                Q(expenses__isnull=False) | Q(settlements__isnull=False)
            ).distinct()

        total = 0
        for group in groups:
            try:
                plan = self._recalculate(engine, group, dry_run)
            except SettlementsServiceError as e:
                self.stdout.write(self.style.ERROR(f'  - {group.name} ({group.id}): {e}'))
                continue

            summary = plan.summary()
            total += plan.write_count
            self.stdout.write(
                f"  - {group.name} ({group.id}): "
                f"{summary['inserted']} inserted, {summary['updated']} updated, {summary['deleted']} deleted"
            )

        if dry_run:
            self.stdout.write(self.style.WARNING(f'\n--dry-run mode: {total} change(s) not saved.'))
            return

        self.stdout.write(self.style.SUCCESS(f'\nApplied {total} settlement change(s).'))

    def _parse_group_ids(self, values):
        group_ids = []
        for value in values:
            try:
                group_ids.append(uuid.UUID(str(value)))
            except ValueError:
                raise CommandError(f"Invalid group id: {value!r}")
        return group_ids

    def _recalculate(self, engine, group, dry_run):
        if not dry_run:
            return engine.recalculate_settlements(group.id)

        plan = None
        try:
            with transaction.atomic():
                plan = engine.recalculate_settlements(group.id)
                raise DryRunRollback()
        except DryRunRollback:
            pass
        return plan
