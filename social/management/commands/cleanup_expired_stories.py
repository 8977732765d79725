from django.core.management.base import BaseCommand
from django.utils import timezone

from social.models import Story
from social.services.stories import CLEANUP_BATCH_SIZE, cleanup_expired_stories


class Command(BaseCommand):
    help = "Delete expired stories and their media. Use --dry-run to preview only."

    def add_arguments(self, parser):
        parser.add_argument("--batch-size", type=int, default=CLEANUP_BATCH_SIZE, help="Stories deleted per transaction")
        parser.add_argument("--dry-run", action="store_true", help="Count expired stories; delete nothing")

    def handle(self, *args, **opts):
        if opts["dry_run"]:
            expired = Story.objects.filter(expires_at__lt=timezone.now()).count()
            self.stdout.write(f"[DRY RUN] would delete {expired} expired stories")
            return

        result = cleanup_expired_stories(batch_size=opts["batch_size"])
        self.stdout.write(self.style.SUCCESS(
            f"Deleted {result['storiesDeleted']} expired stories, "
            f"processed {result['mediaFilesProcessed']} media files"
        ))
