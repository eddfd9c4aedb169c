# revenue/management/commands/reconcile_revenue.py
#
#   python manage.py reconcile_revenue [--clinic ID] [--dry-run]
#
# Posts missing ledger entries, compensates invoices that are no longer
# counted and repairs monthly totals that drifted from their entry log.

from django.core.management.base import BaseCommand, CommandError

from clinic.actors import get_clinic
from clinic.errors import NotFound
from revenue.reconcile import reconcile


class Command(BaseCommand):
    help = "Reconcile the monthly revenue ledger with invoice statuses"

    def add_arguments(self, parser):
        parser.add_argument("--clinic", type=int, help="Only reconcile this clinic id")
        parser.add_argument("--dry-run", action="store_true", help="Report without writing")

    def handle(self, *args, **options):
        clinic = None
        if options["clinic"] is not None:
            try:
                clinic = get_clinic(options["clinic"])
            except NotFound as exc:
                raise CommandError(exc.message)

        report = reconcile(clinic=clinic, dry_run=options["dry_run"])

        for label, items in (("Added", report.added),
                             ("Compensated", report.compensated),
                             ("Repaired", report.repaired)):
            for item in items:
                self.stdout.write(f"  {label:<12} {item}")

        summary = (f"{len(report.added)} added, {len(report.compensated)} compensated, "
                   f"{len(report.repaired)} repaired")
        if report.dry_run:
            self.stdout.write(self.style.WARNING(f"Dry run: {summary}"))
        elif report.changes:
            self.stdout.write(self.style.SUCCESS(f"Ledger reconciled: {summary}"))
        else:
            self.stdout.write(self.style.SUCCESS("Ledger already consistent"))
