# projections/management/commands/rebuild_balances.py
"""
Management command to rebuild cached balances from events.

Events are the audit trail; the admin pool and project balances can
always be recomputed from them.

Usage:
    python manage.py rebuild_balances

    # Show what would change without writing
    python manage.py rebuild_balances --dry-run
"""

import logging

from django.core.management.base import BaseCommand

from projections.balances import BalanceProjection


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Rebuild admin pool and project balances from the event store"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report mismatches without writing",
        )

    def handle(self, *args, **options):
        projection = BalanceProjection()

        report = projection.verify_all_balances()
        self.stdout.write(
            f"Replayed {report['events_processed']} events, "
            f"{len(report['mismatches'])} mismatches."
        )
        for mismatch in report["mismatches"]:
            self.stdout.write(f"  {mismatch}")

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("\n[DRY RUN] No changes made."))
            return

        result = projection.rebuild()
        self.stdout.write(
            self.style.SUCCESS(f"Rebuilt balances: {result['updated']} rows updated.")
        )
