from django.core.management.base import BaseCommand, CommandError

from medications.services.ledger_projection import find_inconsistencies


class Command(BaseCommand):
    help = "Replay the stock ledger and report medications whose stored stock or status drifted."

    def handle(self, *args, **options):
        mismatches = find_inconsistencies()

        for check in mismatches:
            self.stdout.write(
                self.style.WARNING(
                    f"{check.medication.name} ({check.medication.pk}): "
                    f"stored={check.stored_stock} ledger={check.ledger_balance} "
                    f"status={check.stored_status} expected={check.derived_status}"
                )
            )

        if mismatches:
            raise CommandError(f"{len(mismatches)} medication(s) out of sync with the ledger")

        self.stdout.write(self.style.SUCCESS("Stock ledger is consistent"))
