from django.core.management.base import BaseCommand, CommandError

from social.identity import JWTBackend
from social.models import User


class Command(BaseCommand):
    help = "Print a development bearer token for a user id (JWT identity backend)."

    def add_arguments(self, parser):
        parser.add_argument("user_id", help="Principal id to issue the token for")
        parser.add_argument(
            "--allow-missing", action="store_true",
            help="Issue the token even if no profile exists yet (for POST /api/auth/profile)",
        )

    def handle(self, *args, **opts):
        user_id = opts["user_id"]
        if not opts["allow_missing"] and not User.objects.filter(pk=user_id).exists():
            raise CommandError(f"No user with id {user_id!r}. Use --allow-missing to issue anyway.")
        self.stdout.write(JWTBackend().issue(user_id))
