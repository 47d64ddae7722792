import logging

from django.conf import settings
from django.core.management import call_command
from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError

from tasks.store import TaskStore

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Apply migrations, then serve the task API on SERVER_PORT."

    def add_arguments(self, parser):
        parser.add_argument("--port", type=int, default=None, help="Override SERVER_PORT.")
        parser.add_argument("--host", default="0.0.0.0")

    def handle(self, *args, **options):
        port = options["port"] or settings.SERVER_PORT

        try:
            TaskStore().migrate()
        except DatabaseError as exc:
            logger.exception("Failed to run migrations")
            raise CommandError(f"Failed to run migrations: {exc}")

        logger.info("Server starting on port %s...", port)
        call_command("runserver", f"{options['host']}:{port}", use_reloader=False)
