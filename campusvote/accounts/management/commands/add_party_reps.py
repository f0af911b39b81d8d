"""
Register party representatives by email.

Usage:
    python manage.py add_party_reps rep1@example.com rep2@example.com
"""

import logging

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.core.validators import validate_email

from accounts.models import PartyRep

logger = logging.getLogger("accounts")


class Command(BaseCommand):
    help = "Create party representatives (existing emails are left untouched)."

    def add_arguments(self, parser):
        parser.add_argument("emails", nargs="+", help="Representative email addresses")

    def handle(self, *args, **options):
        created_count = 0
        for raw in options["emails"]:
            email = raw.strip().lower()
            try:
                validate_email(email)
            except ValidationError:
                raise CommandError(f"Invalid email address: {raw}")

            rep, created = PartyRep.objects.get_or_create(email=email)
            if created:
                created_count += 1
                logger.info(f"Party representative added: {rep.email}")
                self.stdout.write(self.style.SUCCESS(f"Added {rep.email}"))
            else:
                self.stdout.write(f"Already registered: {rep.email}")

        self.stdout.write(f"{created_count} party representative(s) created.")
