from datetime import date, timedelta
from io import StringIO

import jwt
from django.conf import settings
from django.core.management import CommandError, call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from elections.models import Candidate, Position
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase
from voting.models import Vote

from .models import PartyRep, User, Voter
from .tokens import PARTY_TOKEN, VOTER_TOKEN, InvalidSessionToken, decode_token, issue_token


def make_voter(**overrides):
    data = {
        "full_name": "Vera Voter",
        "university_id": "U1001",
        "email": "vera@example.edu",
        "date_of_birth": date(2002, 5, 17),
        "is_verified": True,
    }
    data.update(overrides)
    return Voter.objects.create(**data)


class SessionTokenTest(TestCase):
    def test_voter_token_carries_voter_id(self):
        voter = make_voter()

        payload = decode_token(issue_token(voter.pk, VOTER_TOKEN), VOTER_TOKEN)

        self.assertEqual(payload["sub"], str(voter.pk))
        self.assertEqual(payload["typ"], VOTER_TOKEN)

    def test_party_token_is_not_a_voter_token(self):
        token = issue_token("some-rep", PARTY_TOKEN)

        with self.assertRaises(InvalidSessionToken):
            decode_token(token, VOTER_TOKEN)

    def test_expired_token_is_rejected(self):
        past = timezone.now() - timedelta(hours=9)
        token = jwt.encode(
            {"sub": "abc", "typ": VOTER_TOKEN, "iat": past, "exp": past + timedelta(hours=8)},
            settings.VOTER_JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )

        with self.assertRaises(InvalidSessionToken):
            decode_token(token, VOTER_TOKEN)

    def test_token_signed_with_another_secret_is_rejected(self):
        now = timezone.now()
        token = jwt.encode(
            {"sub": "abc", "typ": VOTER_TOKEN, "iat": now, "exp": now + timedelta(hours=1)},
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm=settings.JWT_ALGORITHM,
        )

        with self.assertRaises(InvalidSessionToken):
            decode_token(token, VOTER_TOKEN)


class VoterAuthenticationTest(APITestCase):
    """
    Bearer token handling, exercised through the voter's own-votes endpoint.
    """

    def setUp(self):
        self.voter = make_voter()
        self.url = reverse("voting:my_votes")

    def test_valid_token(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.voter.pk, VOTER_TOKEN)}")

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"], {"voted": False, "votes": []})

    def test_missing_token(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response["WWW-Authenticate"], "Bearer")

    def test_garbage_token(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-jwt")

        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_token_for_deleted_voter(self):
        token = issue_token(self.voter.pk, VOTER_TOKEN)
        self.voter.delete()
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_token_for_unverified_voter(self):
        token = issue_token(self.voter.pk, VOTER_TOKEN)
        Voter.objects.filter(pk=self.voter.pk).update(is_verified=False)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_401_UNAUTHORIZED)


class VoterLoginTest(APITestCase):
    def setUp(self):
        self.voter = make_voter()
        self.url = reverse("voter_login")

    def test_login_returns_usable_token(self):
        response = self.client.post(
            self.url, {"voter_id": str(self.voter.pk), "date_of_birth": "2002-05-17"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        payload = decode_token(response.data["token"], VOTER_TOKEN)
        self.assertEqual(payload["sub"], str(self.voter.pk))

    def test_missing_fields(self):
        response = self.client.post(self.url, {"voter_id": str(self.voter.pk)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_voter(self):
        response = self.client.post(
            self.url,
            {"voter_id": "8a0c1a7e-9d55-4b61-9d64-1f3c1c3f0b11", "date_of_birth": "2002-05-17"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unverified_voter(self):
        Voter.objects.filter(pk=self.voter.pk).update(is_verified=False)

        response = self.client.post(
            self.url, {"voter_id": str(self.voter.pk), "date_of_birth": "2002-05-17"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_wrong_date_of_birth(self):
        response = self.client.post(
            self.url, {"voter_id": str(self.voter.pk), "date_of_birth": "2002-05-18"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertNotIn("token", response.data)

    def test_voter_who_already_voted(self):
        position = Position.objects.create(title="President")
        candidate = Candidate.objects.create(position=position, name="Alice")
        Vote.objects.create(voter=self.voter, candidate=candidate)

        response = self.client.post(
            self.url, {"voter_id": str(self.voter.pk), "date_of_birth": "2002-05-17"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["message"], "You have already voted.")


class PartyLoginTest(APITestCase):
    def setUp(self):
        self.rep = PartyRep.objects.create(email="Rep@Party.org")
        self.url = reverse("party_login")

    def test_email_is_stored_lower_case(self):
        self.assertEqual(self.rep.email, "rep@party.org")

    def test_login_is_case_insensitive(self):
        response = self.client.post(self.url, {"email": "REP@party.org"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        payload = decode_token(response.data["token"], PARTY_TOKEN)
        self.assertEqual(payload["sub"], str(self.rep.pk))
        self.assertEqual(payload["email"], "rep@party.org")

    def test_unknown_email(self):
        response = self.client.post(self.url, {"email": "someone@else.org"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_missing_email(self):
        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AdminLoginTest(APITestCase):
    def setUp(self):
        self.url = reverse("api_token_auth")
        self.admin = User.objects.create_user(username="admin", password="s3cret-pass", is_staff=True)

    def test_staff_gets_token(self):
        response = self.client.post(self.url, {"username": "admin", "password": "s3cret-pass"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["token"], Token.objects.get(user=self.admin).key)
        self.admin.refresh_from_db()
        self.assertIsNotNone(self.admin.last_login)

    def test_wrong_password(self):
        response = self.client.post(self.url, {"username": "admin", "password": "nope"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_staff_is_refused(self):
        User.objects.create_user(username="student", password="s3cret-pass")

        response = self.client.post(self.url, {"username": "student", "password": "s3cret-pass"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Token.objects.filter(user__username="student").exists())


class VoterRollTest(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="s3cret-pass", is_staff=True)
        self.zoe = make_voter(full_name="Zoe Zimmer", university_id="U3", email="zoe@example.edu")
        self.adam = make_voter(
            full_name="Adam Abbott", university_id="U1", email="adam@example.edu", is_verified=False
        )

    def test_list_is_ordered_by_name(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse("voter_list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([v["full_name"] for v in response.data], ["Adam Abbott", "Zoe Zimmer"])
        self.assertFalse(response.data[0]["is_verified"])

    def test_filter_verified(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse("voter_list"), {"is_verified": "true"})

        self.assertEqual([v["university_id"] for v in response.data], ["U3"])

    def test_list_requires_staff(self):
        response = self.client.get(reverse("voter_list"))

        self.assertIn(
            response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)
        )

    def test_delete_removes_voter_and_votes(self):
        position = Position.objects.create(title="President")
        candidate = Candidate.objects.create(position=position, name="Alice")
        Vote.objects.create(voter=self.zoe, candidate=candidate)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(reverse("voter_delete", args=[self.zoe.pk]))

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Voter.objects.filter(pk=self.zoe.pk).exists())
        self.assertEqual(Vote.objects.count(), 0)


class AddPartyRepsCommandTest(TestCase):
    def test_creates_new_and_skips_existing(self):
        PartyRep.objects.create(email="first@party.org")
        out = StringIO()

        call_command("add_party_reps", "FIRST@party.org", "second@party.org", stdout=out)

        self.assertEqual(
            list(PartyRep.objects.values_list("email", flat=True)),
            ["first@party.org", "second@party.org"],
        )
        self.assertIn("1 party representative(s) created.", out.getvalue())

    def test_invalid_email(self):
        with self.assertRaises(CommandError):
            call_command("add_party_reps", "not-an-email", stdout=StringIO())
