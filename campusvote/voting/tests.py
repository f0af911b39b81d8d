from datetime import date, timedelta
from unittest.mock import patch
from uuid import uuid4

from accounts.models import PartyRep, User, Voter
from accounts.tokens import PARTY_TOKEN, VOTER_TOKEN, issue_token
from django.contrib import admin
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.test import RequestFactory, TestCase
from django.urls import reverse
from django.utils import timezone
from elections.admin import CandidateAdmin
from elections.models import Candidate, Election, Position
from rest_framework import status
from rest_framework.test import APITestCase

from .models import Vote
from .services import (
    LIVE_RESULTS_CACHE_KEY,
    DuplicateVoteError,
    ElectionClosedError,
    InvalidSelectionError,
    MalformedBallotError,
    PersistenceError,
    UnauthenticatedVoterError,
    VotingService,
)


class BallotFixtureMixin:
    """
    An open election with two positions and two candidates each.
    """

    def setUp(self):
        super().setUp()
        cache.clear()
        now = timezone.now()
        self.election = Election.objects.create(
            title="Student Union Election",
            start_time=now - timedelta(hours=1),
            end_time=now + timedelta(hours=1),
            is_active=True,
        )
        self.president = Position.objects.create(title="President")
        self.treasurer = Position.objects.create(title="Treasurer")
        self.alice = Candidate.objects.create(position=self.president, name="Alice", party="Blue")
        self.bob = Candidate.objects.create(position=self.president, name="Bob", party="Green")
        self.carol = Candidate.objects.create(position=self.treasurer, name="Carol")
        self.dave = Candidate.objects.create(position=self.treasurer, name="Dave", party="Blue")
        self.voter = Voter.objects.create(
            full_name="Vera Voter",
            university_id="U1001",
            email="vera@example.edu",
            date_of_birth=date(2002, 5, 17),
            is_verified=True,
        )

    def full_ballot(self):
        return {
            str(self.president.id): str(self.alice.id),
            str(self.treasurer.id): str(self.carol.id),
        }


class CastBallotServiceTest(BallotFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.service = VotingService()

    # a valid ballot creates exactly one vote per selection
    def test_valid_ballot_records_one_vote_per_selection(self):
        self.service.cast_ballot(self.voter, self.full_ballot())

        votes = Vote.objects.filter(voter=self.voter)
        self.assertEqual(votes.count(), 2)
        self.assertEqual(
            set(votes.values_list("position_id", "candidate_id")),
            {(self.president.id, self.alice.id), (self.treasurer.id, self.carol.id)},
        )

    def test_partial_ballot_is_accepted(self):
        self.service.cast_ballot(self.voter, {str(self.president.id): str(self.bob.id)})

        self.assertEqual(Vote.objects.get(voter=self.voter).candidate, self.bob)

    def test_candidate_from_another_position_rejects_whole_ballot(self):
        ballot = {
            str(self.president.id): str(self.alice.id),
            str(self.treasurer.id): str(self.bob.id),  # Bob runs for president
        }

        with self.assertRaises(InvalidSelectionError):
            self.service.cast_ballot(self.voter, ballot)

        self.assertEqual(Vote.objects.count(), 0)

    def test_unknown_candidate_is_invalid_selection(self):
        with self.assertRaises(InvalidSelectionError):
            self.service.cast_ballot(self.voter, {str(self.president.id): str(uuid4())})

        self.assertEqual(Vote.objects.count(), 0)

    def test_unknown_position_is_invalid_selection(self):
        with self.assertRaises(InvalidSelectionError):
            self.service.cast_ballot(self.voter, {str(uuid4()): str(self.alice.id)})

    def test_second_vote_for_same_position_is_duplicate(self):
        self.service.cast_ballot(self.voter, {str(self.president.id): str(self.alice.id)})

        with self.assertRaises(DuplicateVoteError) as ctx:
            self.service.cast_ballot(self.voter, {str(self.president.id): str(self.bob.id)})

        self.assertEqual(ctx.exception.position_id, self.president.id)
        self.assertIn("President", str(ctx.exception))
        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 1)
        self.assertEqual(Vote.objects.get(voter=self.voter).candidate, self.alice)

    # the otherwise valid treasurer selection must not be recorded either
    def test_duplicate_position_rejects_rest_of_ballot(self):
        self.service.cast_ballot(self.voter, {str(self.president.id): str(self.alice.id)})

        with self.assertRaises(DuplicateVoteError):
            self.service.cast_ballot(self.voter, self.full_ballot())

        self.assertFalse(Vote.objects.filter(position=self.treasurer).exists())

    def test_invalid_selection_is_checked_before_duplicates(self):
        self.service.cast_ballot(self.voter, {str(self.president.id): str(self.alice.id)})
        ballot = {
            str(self.president.id): str(self.bob.id),
            str(self.treasurer.id): str(self.alice.id),
        }

        with self.assertRaises(InvalidSelectionError):
            self.service.cast_ballot(self.voter, ballot)

    def test_rejected_ballot_is_rejected_again_without_changes(self):
        ballot = {str(self.treasurer.id): str(self.alice.id)}

        for _ in range(2):
            with self.assertRaises(InvalidSelectionError):
                self.service.cast_ballot(self.voter, ballot)
            self.assertEqual(Vote.objects.count(), 0)

    def test_other_voters_are_independent(self):
        other = Voter.objects.create(
            full_name="Otto Other",
            university_id="U1002",
            email="otto@example.edu",
            date_of_birth=date(2001, 1, 1),
            is_verified=True,
        )
        self.service.cast_ballot(self.voter, self.full_ballot())
        self.service.cast_ballot(other, self.full_ballot())

        self.assertEqual(Vote.objects.filter(candidate=self.alice).count(), 2)

    def test_empty_ballot_is_malformed(self):
        with self.assertRaises(MalformedBallotError):
            self.service.cast_ballot(self.voter, {})

    def test_non_uuid_ids_are_malformed(self):
        with self.assertRaises(MalformedBallotError):
            self.service.cast_ballot(self.voter, {"pos-president": "cand-A"})
        with self.assertRaises(MalformedBallotError):
            self.service.cast_ballot(self.voter, {str(self.president.id): 42})

    def test_same_position_spelled_twice_is_malformed(self):
        ballot = {
            str(self.president.id): str(self.alice.id),
            str(self.president.id).upper(): str(self.bob.id),
        }

        with self.assertRaises(MalformedBallotError):
            self.service.cast_ballot(self.voter, ballot)

    def test_missing_voter_is_unauthenticated(self):
        with self.assertRaises(UnauthenticatedVoterError):
            self.service.cast_ballot(None, self.full_ballot())

    def test_unverified_voter_is_unauthenticated(self):
        Voter.objects.filter(pk=self.voter.pk).update(is_verified=False)

        with self.assertRaises(UnauthenticatedVoterError):
            self.service.cast_ballot(self.voter, self.full_ballot())

    def test_ballot_before_window_opens(self):
        self.election.start_time = timezone.now() + timedelta(minutes=30)
        self.election.save()

        with self.assertRaises(ElectionClosedError):
            self.service.cast_ballot(self.voter, self.full_ballot())

    def test_ballot_after_window_closes(self):
        self.election.start_time = timezone.now() - timedelta(hours=3)
        self.election.end_time = timezone.now() - timedelta(hours=2)
        self.election.save()

        with self.assertRaises(ElectionClosedError):
            self.service.cast_ballot(self.voter, self.full_ballot())
        self.assertEqual(Vote.objects.count(), 0)

    def test_no_active_election(self):
        Election.objects.update(is_active=False)

        with self.assertRaises(ElectionClosedError):
            self.service.cast_ballot(self.voter, self.full_ballot())

    # a competing ballot that commits between the check and the insert
    def test_constraint_violation_maps_to_duplicate_vote(self):
        Vote.objects.create(voter=self.voter, candidate=self.alice)

        with patch.object(VotingService, "_ensure_not_voted", return_value=None):
            with self.assertRaises(DuplicateVoteError) as ctx:
                self.service.cast_ballot(self.voter, self.full_ballot())

        self.assertEqual(ctx.exception.position_id, self.president.id)
        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 1)
        self.assertFalse(Vote.objects.filter(position=self.treasurer).exists())

    def test_storage_failure_is_persistence_error(self):
        with patch.object(Vote.objects, "bulk_create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PersistenceError):
                self.service.cast_ballot(self.voter, self.full_ballot())

        self.assertEqual(Vote.objects.count(), 0)
        # retrying the same ballot afterwards succeeds
        self.service.cast_ballot(self.voter, self.full_ballot())
        self.assertEqual(Vote.objects.count(), 2)

    # e.g. a candidate deleted between lookup and insert
    def test_integrity_error_without_earlier_vote_is_persistence_error(self):
        with patch.object(
            Vote.objects, "bulk_create", side_effect=IntegrityError("FOREIGN KEY constraint failed")
        ):
            with self.assertRaises(PersistenceError):
                self.service.cast_ballot(self.voter, self.full_ballot())

        self.assertEqual(Vote.objects.count(), 0)


class VoteModelTest(BallotFixtureMixin, TestCase):
    def test_one_vote_per_voter_and_position_in_database(self):
        Vote.objects.create(voter=self.voter, candidate=self.alice)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Vote.objects.create(voter=self.voter, candidate=self.bob)

    def test_position_is_taken_from_candidate(self):
        vote = Vote.objects.create(voter=self.voter, candidate=self.carol)

        self.assertEqual(vote.position, self.treasurer)

    def test_votes_cannot_be_changed(self):
        vote = Vote.objects.create(voter=self.voter, candidate=self.alice)
        vote.candidate = self.bob

        with self.assertRaises(ValueError):
            vote.save()

    def test_position_must_match_candidate(self):
        with self.assertRaises(ValueError):
            Vote.objects.create(voter=self.voter, candidate=self.alice, position=self.treasurer)

        self.assertEqual(Vote.objects.count(), 0)


class CandidatePositionLockTest(BallotFixtureMixin, TestCase):
    """
    A candidate who has votes stays on the position those votes were cast for.
    """

    def setUp(self):
        super().setUp()
        Vote.objects.create(voter=self.voter, candidate=self.alice)

    def test_save_refuses_to_move_voted_candidate(self):
        self.alice.position = self.treasurer

        with self.assertRaises(ValueError):
            self.alice.save()

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.position, self.president)

    def test_clean_reports_position_error(self):
        self.alice.position = self.treasurer

        with self.assertRaises(ValidationError) as ctx:
            self.alice.full_clean()

        self.assertIn("position", ctx.exception.message_dict)

    def test_other_fields_can_still_change(self):
        self.alice.party = "Purple"
        self.alice.save()

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.party, "Purple")

    def test_candidate_without_votes_can_move(self):
        self.bob.position = self.treasurer
        self.bob.save()

        self.bob.refresh_from_db()
        self.assertEqual(self.bob.position, self.treasurer)

    # voter keeps exactly one vote per office after the refused move
    def test_voter_still_holds_one_vote_per_office(self):
        self.alice.position = self.treasurer
        with self.assertRaises(ValueError):
            self.alice.save()

        VotingService().cast_ballot(self.voter, {str(self.treasurer.id): str(self.carol.id)})

        self.assertEqual(
            Vote.objects.filter(voter=self.voter, candidate__position=self.treasurer).count(), 1
        )
        self.assertEqual(
            Vote.objects.filter(voter=self.voter, candidate__position=self.president).count(), 1
        )

    def test_admin_makes_position_read_only_once_voted(self):
        candidate_admin = CandidateAdmin(Candidate, admin.site)
        request = RequestFactory().get("/admin/elections/candidate/")

        self.assertIn("position", candidate_admin.get_readonly_fields(request, self.alice))
        self.assertNotIn("position", candidate_admin.get_readonly_fields(request, self.bob))
        self.assertNotIn("position", candidate_admin.get_readonly_fields(request))


class ResultsServiceTest(BallotFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.service = VotingService()

    def test_live_results_count_votes_per_candidate(self):
        self.service.cast_ballot(self.voter, self.full_ballot())

        results = {r["name"]: r for r in self.service.get_live_results(use_cache=False)}

        self.assertEqual(results["Alice"]["votes"], 1)
        self.assertEqual(results["Bob"]["votes"], 0)
        self.assertEqual(results["Carol"]["position"]["title"], "Treasurer")

    def test_cast_ballot_invalidates_cached_results(self):
        before = self.service.get_live_results()
        self.assertTrue(all(r["votes"] == 0 for r in before))

        with self.captureOnCommitCallbacks(execute=True):
            self.service.cast_ballot(self.voter, self.full_ballot())

        after = {r["name"]: r["votes"] for r in self.service.get_live_results()}
        self.assertEqual(after["Alice"], 1)

    # the cached tally survives until the ballot's transaction commits
    def test_cache_is_cleared_only_on_commit(self):
        self.service.get_live_results()

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.service.cast_ballot(self.voter, self.full_ballot())
            self.assertIsNotNone(cache.get(LIVE_RESULTS_CACHE_KEY))

        self.assertEqual(len(callbacks), 1)
        self.assertIsNone(cache.get(LIVE_RESULTS_CACHE_KEY))

    def test_rejected_ballot_leaves_cache_alone(self):
        self.service.get_live_results()

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(InvalidSelectionError):
                self.service.cast_ballot(self.voter, {str(self.treasurer.id): str(self.alice.id)})

        self.assertEqual(callbacks, [])
        self.assertIsNotNone(cache.get(LIVE_RESULTS_CACHE_KEY))

    def test_stats(self):
        Voter.objects.create(
            full_name="Una Unverified",
            university_id="U2000",
            email="una@example.edu",
            date_of_birth=date(2003, 3, 3),
        )
        self.service.cast_ballot(self.voter, self.full_ballot())

        self.assertEqual(
            self.service.get_stats(),
            {"total_voters": 2, "total_verified": 1, "total_votes": 2, "voters_voted": 1},
        )


class BallotApiTest(BallotFixtureMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse("voting:cast_ballot")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.voter.pk, VOTER_TOKEN)}")

    def test_cast_ballot(self):
        response = self.client.post(self.url, {"selections": self.full_ballot()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "success")
        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 2)

    def test_second_ballot_for_same_position_is_forbidden(self):
        self.client.post(
            self.url, {"selections": {str(self.president.id): str(self.alice.id)}}, format="json"
        )

        response = self.client.post(
            self.url, {"selections": {str(self.president.id): str(self.bob.id)}}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 1)

    def test_position_mismatch_is_bad_request(self):
        response = self.client.post(
            self.url, {"selections": {str(self.treasurer.id): str(self.alice.id)}}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Vote.objects.count(), 0)

    def test_empty_selections_is_bad_request(self):
        response = self.client.post(self.url, {"selections": {}}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("selections", response.data["errors"])

    def test_missing_selections_is_bad_request(self):
        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_closed_window_is_forbidden(self):
        Election.objects.update(is_active=False)

        response = self.client.post(self.url, {"selections": self.full_ballot()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_storage_failure_is_server_error(self):
        with patch.object(Vote.objects, "bulk_create", side_effect=DatabaseError("boom")):
            response = self.client.post(self.url, {"selections": self.full_ballot()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertTrue(response.data["retryable"])

    def test_no_token_is_unauthorized(self):
        self.client.credentials()

        response = self.client.post(self.url, {"selections": self.full_ballot()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_party_token_cannot_vote(self):
        rep = PartyRep.objects.create(email="rep@party.org")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(rep.pk, PARTY_TOKEN)}")

        response = self.client.post(self.url, {"selections": self.full_ballot()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(Vote.objects.count(), 0)

    def test_my_votes(self):
        url = reverse("voting:my_votes")
        self.assertFalse(self.client.get(url).data["data"]["voted"])

        self.client.post(self.url, {"selections": self.full_ballot()}, format="json")
        response = self.client.get(url)

        self.assertTrue(response.data["data"]["voted"])
        self.assertEqual(
            [v["candidate"]["name"] for v in response.data["data"]["votes"]], ["Alice", "Carol"]
        )


class ResultsApiTest(BallotFixtureMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(username="admin", password="s3cret-pass", is_staff=True)
        Vote.objects.create(voter=self.voter, candidate=self.bob)

    def test_party_rep_sees_live_results(self):
        rep = PartyRep.objects.create(email="rep@party.org")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(rep.pk, PARTY_TOKEN)}")

        response = self.client.get(reverse("voting:live_results"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        bob = next(r for r in response.data["data"] if r["name"] == "Bob")
        self.assertEqual(bob["votes"], 1)
        self.assertEqual(bob["position"]["title"], "President")

    def test_admin_sees_live_results(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse("voting:live_results"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["data"]), 4)

    def test_voter_cannot_see_live_results(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.voter.pk, VOTER_TOKEN)}")

        response = self.client.get(reverse("voting:live_results"))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_anonymous_cannot_see_live_results(self):
        response = self.client.get(reverse("voting:live_results"))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_stats_for_admin(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse("voting:stats"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["total_votes"], 1)
        self.assertEqual(response.data["data"]["voters_voted"], 1)

    def test_stats_need_staff(self):
        plain = User.objects.create_user(username="student", password="s3cret-pass")
        self.client.force_authenticate(user=plain)

        response = self.client.get(reverse("voting:stats"))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
