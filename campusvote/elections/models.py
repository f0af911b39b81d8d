from uuid import uuid4
from django.db import models
from django.core.exceptions import ValidationError
from django.core.validators import MinLengthValidator
from django.utils import timezone


class ElectionQuerySet(models.QuerySet):
    def current(self):
        """The active election, or None."""
        return self.filter(is_active=True).order_by('-start_time').first()


class Election(models.Model):
    """
    Election day: the window during which ballots are accepted.
    Only one election is active at a time.
    """
    UPCOMING = 'upcoming'
    OPEN = 'open'
    CLOSED = 'closed'

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    title = models.CharField(max_length=255, validators=[MinLengthValidator(10)])
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ElectionQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    def window_state(self, now=None):
        now = now or timezone.now()
        if now < self.start_time:
            return self.UPCOMING
        if now > self.end_time:
            return self.CLOSED
        return self.OPEN

    def is_open(self, now=None):
        return self.is_active and self.window_state(now) == self.OPEN


class Position(models.Model):
    """
    An electable office, e.g. "President".
    """
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    title = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title


class Candidate(models.Model):
    """
    Candidate model - stands for exactly one position.
    """
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    position = models.ForeignKey(Position, on_delete=models.CASCADE, related_name='candidates')
    name = models.CharField(max_length=255)
    party = models.CharField(max_length=255, null=True, blank=True)
    # either a URL/path or a data: URI
    photo_url = models.TextField(blank=True, default='')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} - {self.party or 'Independent'}"

    def position_locked(self):
        """True when the candidate has votes and its position is being changed."""
        if self._state.adding:
            return False
        stored = type(self).objects.filter(pk=self.pk).values_list('position_id', flat=True).first()
        return stored is not None and stored != self.position_id and self.votes.exists()

    def clean(self):
        super().clean()
        if self.position_locked():
            raise ValidationError(
                {'position': "A candidate who has received votes cannot change position."}
            )

    def save(self, *args, **kwargs):
        if self.position_locked():
            raise ValueError("A candidate who has received votes cannot change position.")
        super().save(*args, **kwargs)
