import logging
import uuid
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from accounts.models import Voter
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone
from elections.models import Candidate, Election

from .models import Vote

logger = logging.getLogger(__name__)

LIVE_RESULTS_CACHE_KEY = "voting:live_results"


class BallotError(Exception):
    """Base exception for ballot submission"""

    pass


class UnauthenticatedVoterError(BallotError):
    """Raised when no verified voter is behind the submission"""

    pass


class MalformedBallotError(BallotError):
    """Raised when the selections are empty or not position-id -> candidate-id"""

    pass


class ElectionClosedError(BallotError):
    """Raised when a ballot arrives outside the voting window"""

    pass


class InvalidSelectionError(BallotError):
    """Raised when a candidate is unknown or stands for another position"""

    pass


class DuplicateVoteError(BallotError):
    """Raised when the voter already holds a vote for a submitted position"""

    def __init__(self, message, position_id=None):
        super().__init__(message)
        self.position_id = position_id


class PersistenceError(BallotError):
    """Raised when storage fails while committing; nothing was recorded"""

    pass


def invalidate_results_cache() -> None:
    """Clear the cached live tally"""
    cache.delete(LIVE_RESULTS_CACHE_KEY)
    logger.debug("Live results cache invalidated")


def _as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{value!r} is not an id")
    return uuid.UUID(value)


class VotingService:
    """
    Centralized service for all voting operations.
    Handles ballot validation, atomic persistence and the live tally.
    """

    def cast_ballot(self, voter, selections: Mapping) -> None:
        """
        Record a voter's whole ballot, or nothing at all.

        Args:
            voter: The authenticated, verified voter
            selections: Mapping of position id -> candidate id

        Raises:
            UnauthenticatedVoterError: no verified voter
            MalformedBallotError: empty or structurally invalid selections
            ElectionClosedError: voting window is not open
            InvalidSelectionError: candidate missing or from another position
            DuplicateVoteError: voter already voted for one of the positions
            PersistenceError: storage failure while committing
        """
        # Using request IDs for Tracing logs
        request_id = str(uuid.uuid4())[:8]

        if not isinstance(voter, Voter):
            raise UnauthenticatedVoterError("Authentication required to vote.")

        ballot = self._parse_selections(selections)
        self._ensure_voting_open()

        try:
            with transaction.atomic():
                # serialises concurrent ballots of the same voter
                self._lock_voter(voter)
                candidates = self._resolve_candidates(ballot)
                self._ensure_not_voted(voter, ballot)

                Vote.objects.bulk_create(
                    [
                        Vote(voter=voter, candidate=candidate, position_id=candidate.position_id)
                        for candidate in candidates
                    ]
                )
        except IntegrityError as e:
            # usually the unique (voter, position) constraint catching a ballot
            # that committed between our check and our insert
            logger.warning(f"[{request_id}] Ballot for voter {voter.pk} hit an integrity error: {e}")
            position_id = self._first_voted_position(voter, ballot)
            if position_id is None:
                # not a vote clash, e.g. a candidate deleted mid-ballot
                raise PersistenceError(
                    "Failed to record votes due to a server error. Please try again."
                ) from e
            raise DuplicateVoteError(
                "You have already voted for one of these positions.", position_id
            ) from e
        except DatabaseError as e:
            logger.exception(f"[{request_id}] Ballot persistence failed for voter {voter.pk}")
            raise PersistenceError(
                "Failed to record votes due to a server error. Please try again."
            ) from e

        # an enclosing transaction may still roll back
        transaction.on_commit(invalidate_results_cache)

        logger.info(
            f"[{request_id}] Ballot recorded.",
            extra={"voter_id": str(voter.pk), "positions": len(ballot)},
        )

    def _parse_selections(self, selections) -> Dict[uuid.UUID, uuid.UUID]:
        if not isinstance(selections, Mapping) or not selections:
            raise MalformedBallotError("Missing or invalid selections.")

        ballot = {}
        for position_id, candidate_id in selections.items():
            try:
                position_uuid = _as_uuid(position_id)
                candidate_uuid = _as_uuid(candidate_id)
            except ValueError:
                raise MalformedBallotError(
                    f"Selection '{position_id}': '{candidate_id}' is not a valid position/candidate id."
                )
            if position_uuid in ballot:
                raise MalformedBallotError(f"Position {position_uuid} is listed more than once.")
            ballot[position_uuid] = candidate_uuid
        return ballot

    def _ensure_voting_open(self) -> None:
        election = Election.objects.current()
        if election is None:
            raise ElectionClosedError("No election is currently running.")

        state = election.window_state(timezone.now())
        if state == Election.UPCOMING:
            raise ElectionClosedError("Voting has not started yet.")
        if state == Election.CLOSED:
            raise ElectionClosedError("Voting has closed.")

    def _lock_voter(self, voter) -> None:
        try:
            locked = Voter.objects.select_for_update().get(pk=voter.pk)
        except Voter.DoesNotExist:
            raise UnauthenticatedVoterError("Voter not found.")
        if not locked.is_verified:
            raise UnauthenticatedVoterError("Voter is not verified.")

    def _resolve_candidates(self, ballot) -> List[Candidate]:
        """Rule 1: every candidate exists and stands for the position it is filed under"""
        found = Candidate.objects.in_bulk(list(ballot.values()))
        candidates = []
        for position_id, candidate_id in ballot.items():
            candidate = found.get(candidate_id)
            if candidate is None or candidate.position_id != position_id:
                logger.warning(
                    f"Invalid candidate {candidate_id} or position mismatch for position {position_id}."
                )
                raise InvalidSelectionError("Invalid candidate or position mismatch for selection.")
            candidates.append(candidate)
        return candidates

    def _ensure_not_voted(self, voter, ballot) -> None:
        """Rule 2: no earlier vote for any of the submitted positions"""
        voted = dict(
            Vote.objects.filter(voter=voter, position_id__in=list(ballot)).values_list(
                "position_id", "position__title"
            )
        )
        for position_id in ballot:
            if position_id in voted:
                logger.info(f"Voter {voter.pk} already voted for position {position_id}.")
                raise DuplicateVoteError(
                    f"You have already voted for the position: {voted[position_id]}.",
                    position_id,
                )

    def _first_voted_position(self, voter, ballot) -> Optional[uuid.UUID]:
        return (
            Vote.objects.filter(voter=voter, position_id__in=list(ballot))
            .values_list("position_id", flat=True)
            .first()
        )

    def get_voter_votes(self, voter) -> List[Dict[str, Any]]:
        """The voter's own ballot, position by position"""
        votes = Vote.objects.filter(voter=voter).select_related("candidate", "position")
        return [
            {
                "position": {"id": str(vote.position_id), "title": vote.position.title},
                "candidate": {
                    "id": str(vote.candidate_id),
                    "name": vote.candidate.name,
                    "party": vote.candidate.party,
                },
                "voted_at": vote.voted_at.isoformat(),
            }
            for vote in votes.order_by("position__title")
        ]

    def get_live_results(self, use_cache: bool = True) -> List[Dict[str, Any]]:
        """
        Per-candidate tally, cached briefly.

        Args:
            use_cache: whether to use cached results (default: True)
        """
        if use_cache:
            cached_results = cache.get(LIVE_RESULTS_CACHE_KEY)
            if cached_results is not None:
                logger.debug("Returning cached live results")
                return cached_results

        candidates = (
            Candidate.objects.select_related("position")
            .annotate(vote_count=Count("votes"))
            .order_by("position__title", "name")
        )
        results = [
            {
                "id": str(c.id),
                "name": c.name,
                "party": c.party,
                "photo_url": c.photo_url,
                "position": {"id": str(c.position_id), "title": c.position.title},
                "votes": c.vote_count,
            }
            for c in candidates
        ]

        cache.set(LIVE_RESULTS_CACHE_KEY, results, timeout=settings.LIVE_RESULTS_CACHE_SECONDS)
        return results

    def get_stats(self) -> Dict[str, int]:
        """Headline numbers for the admin dashboard"""
        return {
            "total_voters": Voter.objects.count(),
            "total_verified": Voter.objects.filter(is_verified=True).count(),
            "total_votes": Vote.objects.count(),
            "voters_voted": Vote.objects.values("voter").distinct().count(),
        }


# Singleton instance
_voting_service: Optional[VotingService] = None


def get_voting_service() -> VotingService:
    """Get or create the voting service singleton"""
    global _voting_service
    if _voting_service is None:
        _voting_service = VotingService()
    return _voting_service
