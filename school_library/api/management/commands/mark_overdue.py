from django.core.management.base import BaseCommand

from api.circulation import refresh_overdue


class Command(BaseCommand):
    help = "Sync stored overdue statuses with each open borrowing record's due date."

    def handle(self, *args, **options):
        changed = refresh_overdue()
        self.stdout.write(self.style.SUCCESS(f'{changed} borrowing record status(es) updated'))
