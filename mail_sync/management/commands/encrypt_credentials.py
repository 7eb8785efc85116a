"""
Management command to migrate account passwords to the current encrypted format.

Accounts may still carry a plaintext ``password`` field or an
``encryptedPassword`` written by the previous web frontend. Both are rewritten
as current-format ``encryptedPassword`` values.
"""

import time

from django.core.management.base import BaseCommand, CommandError

from mail_sync.channels.utils import chunked
from mail_sync.config import get_config
from mail_sync.container import get_container
from mail_sync.enums import Collection
from mail_sync.exceptions import CryptoError
from mail_sync.store import BatchOp
from webmail_core.utils.logging import ContextLogger

logger = ContextLogger(__name__)


class Command(BaseCommand):
    """
    Re-encrypt plaintext and legacy account passwords.
    """

    help = "Migrate plaintext and legacy credentials to the current encrypted format"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "--batch-size",
            type=int,
            default=50,
            help="Number of accounts to write in each batch",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Perform a dry run without saving changes",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Re-encrypt credentials even if they are already in the current format",
        )

    def handle(self, *args, **options):
        """Execute the command."""
        if not get_config("ENCRYPTION_KEY"):
            raise CommandError(
                "ENCRYPTION_KEY is not configured. Encryption cannot proceed."
            )

        dry_run = options["dry_run"]
        if dry_run:
            self.stdout.write(
                self.style.WARNING("DRY RUN MODE: No changes will be saved")
            )

        container = get_container()
        cipher = container.cipher
        start_time = time.time()

        documents = container.store.query(Collection.ACCOUNTS)
        ops = []
        errored = 0

        for doc_id, data in documents:
            try:
                migrated = self._migrate(cipher, data, options["force"])
            except CryptoError as e:
                errored += 1
                logger.error(
                    "Could not migrate account credentials",
                    extra={"account_id": doc_id, "error": str(e)},
                )
                self.stdout.write(self.style.ERROR(f"{doc_id}: {e}"))
                continue
            if migrated is not None:
                ops.append(BatchOp.set(Collection.ACCOUNTS, doc_id, migrated))

        if not ops:
            self.stdout.write(
                self.style.SUCCESS("No accounts found that need credential encryption")
            )
        elif not dry_run:
            for batch in chunked(ops, options["batch_size"]):
                container.store.batch_write(batch)

        self.stdout.write(
            self.style.SUCCESS(
                f"Migration completed in {time.time() - start_time:.2f} seconds\n"
                f"Accounts processed: {len(documents)}\n"
                f"Accounts updated: {0 if dry_run else len(ops)}\n"
                f"Accounts with errors: {errored}"
            )
        )

        if dry_run and ops:
            self.stdout.write(
                self.style.WARNING(
                    f"{len(ops)} accounts would be updated. "
                    "To perform actual migration, run without --dry-run flag"
                )
            )

        if errored:
            raise CommandError(f"{errored} accounts could not be migrated")

    def _migrate(self, cipher, data, force):
        """
        Return the rewritten document, or None when nothing needs to change.
        """
        plaintext = data.get("password")
        encrypted = data.get("encryptedPassword")

        if not plaintext:
            if not encrypted:
                return None
            if not force and not cipher.is_legacy(encrypted):
                return None
            plaintext = cipher.decrypt(encrypted)

        migrated = {key: value for key, value in data.items() if key != "password"}
        migrated["encryptedPassword"] = cipher.encrypt(plaintext)
        return migrated
