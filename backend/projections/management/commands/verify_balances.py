# projections/management/commands/verify_balances.py
"""
Management command to verify cached balances against the event stream.

Usage:
    python manage.py verify_balances

Exits with an error when any balance diverges.
"""

from django.core.management.base import BaseCommand, CommandError

from projections.balances import BalanceProjection


class Command(BaseCommand):
    help = "Verify admin pool and project balances by replaying events"

    def handle(self, *args, **options):
        report = BalanceProjection().verify_all_balances()

        self.stdout.write(
            f"Checked {report['total']} balances from {report['events_processed']} events."
        )
        if report["mismatches"]:
            for mismatch in report["mismatches"]:
                self.stdout.write(self.style.ERROR(f"  {mismatch}"))
            raise CommandError(f"{len(report['mismatches'])} balance mismatches found.")

        self.stdout.write(self.style.SUCCESS("All balances verified."))
