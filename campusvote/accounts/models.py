import logging
from uuid import uuid4

from django.contrib.auth.models import AbstractUser
from django.db import models

logger = logging.getLogger("accounts")


class User(AbstractUser):
    """
    Staff account used for the admin dashboard and the Django admin site.
    Voters and party representatives are not Django users.
    """

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        if self.pk and User.objects.filter(pk=self.pk).exists():
            logger.info(f"Login updated for user -> {self.username}")
        else:
            logger.info(f"Saving user: {self.username}")
        super().save(*args, **kwargs)


class Voter(models.Model):
    """
    A registered student. The ballot guard only trusts voters whose
    `is_verified` flag has been set.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    full_name = models.CharField(max_length=255)
    university_id = models.CharField(max_length=64, unique=True)
    email = models.EmailField()
    course = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=32, blank=True)
    photo_url = models.TextField(blank=True, default="")
    date_of_birth = models.DateField()
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["full_name"]

    def __str__(self):
        return f"{self.full_name} ({self.university_id})"

    # DRF treats whatever an authenticator returns as `request.user`
    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False


class PartyRep(models.Model):
    """
    Party representative allowed to watch the live tally.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["email"]

    def __str__(self):
        return self.email

    def save(self, *args, **kwargs):
        self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False
