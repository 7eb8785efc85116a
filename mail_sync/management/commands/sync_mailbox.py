from django.core.management.base import BaseCommand, CommandError

from mail_sync.container import get_container
from mail_sync.enums import Collection
from mail_sync.exceptions import MailSyncError
from mail_sync.tasks.polling import sync_all_accounts


class Command(BaseCommand):
    help = "Synchronize the inbox of one mail account, or schedule every account"

    def add_arguments(self, parser):
        parser.add_argument("--account-id", type=str, help="Account document ID to sync")
        parser.add_argument(
            "--all",
            action="store_true",
            help="Schedule a sync task for every account that is due",
        )

    def handle(self, *args, **options):
        if options["all"]:
            summary = sync_all_accounts.delay()
            self.stdout.write(self.style.SUCCESS(f"Scheduled batch sync: {summary.id}"))
            return

        account_id = options["account_id"]
        if not account_id:
            raise CommandError("Either --account-id or --all is required")

        container = get_container()
        document = container.store.get(Collection.ACCOUNTS, account_id)
        if document is None:
            raise CommandError(f"Email account {account_id} not found")

        self.stdout.write(f"Synchronizing {document.get('email', account_id)}...")
        try:
            result = container.sync_service.sync(document.get("userId"), account_id)
        except MailSyncError as e:
            raise CommandError(f"Sync failed: {e}") from e

        self.stdout.write(
            self.style.SUCCESS(
                f"Fetched {result.total_fetched} messages, "
                f"inserted {result.inserted_count}, "
                f"skipped {result.parse_failures} unparseable"
            )
        )
