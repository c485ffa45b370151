from django.core.management.base import BaseCommand

from alerts.services.expiry_scan import notify_expiring_medications, scan_expiring_medications


class Command(BaseCommand):
    help = "Scan stocked medications for upcoming expiry and notify the pharmacy."

    def add_arguments(self, parser):
        parser.add_argument("--days", type=int, default=None, help="Horizon in days")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List expiring medications without sending notifications",
        )

    def handle(self, *args, **options):
        horizon = options["days"]

        if options["dry_run"]:
            alerts = scan_expiring_medications(horizon_days=horizon)
        else:
            alerts = notify_expiring_medications(horizon_days=horizon)

        for alert in alerts:
            self.stdout.write(
                f"{alert.urgency:<6} {alert.expiration_date} "
                f"{alert.medication.name} ({alert.days_remaining}d, stock {alert.medication.current_stock})"
            )

        self.stdout.write(self.style.SUCCESS(f"{len(alerts)} medication(s) flagged"))
