from uuid import uuid4
from django.db import models


class Vote(models.Model):
    """
    One voter's choice for one position. Votes are never edited; the
    position is copied from the candidate so the database can enforce a
    single vote per voter and position.
    """
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    voter = models.ForeignKey('accounts.Voter', on_delete=models.CASCADE, related_name='votes')
    candidate = models.ForeignKey('elections.Candidate', on_delete=models.CASCADE, related_name='votes')
    position = models.ForeignKey('elections.Position', on_delete=models.CASCADE, related_name='votes')
    voted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """
        Metadata options for the Vote model
        """
        constraints = [
            models.UniqueConstraint(
                fields=['voter', 'position'], name='unique_vote_per_voter_position'
            ),
        ]
        ordering = ['voted_at']

    def __str__(self):
        """
        Returns a string representation of the Vote instance, useful for the Django Admin."""
        return f"Vote by {self.voter} for {self.candidate}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Votes cannot be changed once cast.")
        if self.position_id is None:
            self.position_id = self.candidate.position_id
        elif self.position_id != self.candidate.position_id:
            raise ValueError("A vote must be for the position its candidate stands for.")
        super().save(*args, **kwargs)
