from datetime import timedelta

from accounts.models import User
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .models import Candidate, Election, Position
from .serializers import ElectionCreationSerializer


class ElectionCreationSerializerTest(TestCase):
    # method that test the serializer with valid election data
    def test_valid_election_data(self):
        data = {
            "title": "Student Council Election",
            "start_time": timezone.now(),
            "end_time": timezone.now() + timedelta(days=1),
            "is_active": True,
        }

        serializer = ElectionCreationSerializer(data=data)

        self.assertTrue(serializer.is_valid(), serializer.errors)

    # method to test .save() work or not and confirm the DB interaction
    def test_serializer_creates_election(self):
        data = {
            "title": "Class Representative Election",
            "start_time": timezone.now(),
            "end_time": timezone.now() + timedelta(days=2),
            "is_active": False,
        }

        serializer = ElectionCreationSerializer(data=data)
        serializer.is_valid(raise_exception=True)

        election = serializer.save()

        self.assertEqual(Election.objects.count(), 1)
        self.assertEqual(election.title, data["title"])

    # method  to test if title is not provided or too less
    def test_invalid_title_too_short(self):
        data = {
            "title": "Hi",
            "start_time": timezone.now(),
            "end_time": timezone.now() + timedelta(days=1),
            "is_active": False,
        }

        serializer = ElectionCreationSerializer(data=data)

        self.assertFalse(serializer.is_valid())
        self.assertIn("title", serializer.errors)

    # method to test the dattime fields
    def test_end_time_before_start_time(self):
        data = {
            "title": "Invalid Election",
            "start_time": timezone.now(),
            "end_time": timezone.now() - timedelta(hours=1),
            "is_active": False,
        }

        serializer = ElectionCreationSerializer(data=data)

        self.assertFalse(serializer.is_valid())
        self.assertIn("non_field_errors", serializer.errors)

    # method to test the business logic not fields
    def test_only_one_active_election_allowed(self):
        Election.objects.create(
            title="Existing Active Election",
            start_time=timezone.now(),
            end_time=timezone.now() + timedelta(days=1),
            is_active=True,
        )

        data = {
            "title": "Another Active Election",
            "start_time": timezone.now(),
            "end_time": timezone.now() + timedelta(days=2),
            "is_active": True,
        }

        serializer = ElectionCreationSerializer(data=data)

        self.assertFalse(serializer.is_valid())
        self.assertIn("non_field_errors", serializer.errors)

    # re-saving the active election itself must not trip the rule above
    def test_active_election_can_be_updated(self):
        election = Election.objects.create(
            title="Existing Active Election",
            start_time=timezone.now(),
            end_time=timezone.now() + timedelta(days=1),
            is_active=True,
        )

        serializer = ElectionCreationSerializer(
            election, data={"title": "Renamed Active Election", "is_active": True}, partial=True
        )

        self.assertTrue(serializer.is_valid(), serializer.errors)


class ElectionWindowTest(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.election = Election.objects.create(
            title="Student Union Election",
            start_time=self.now,
            end_time=self.now + timedelta(hours=2),
            is_active=True,
        )

    def test_window_state(self):
        self.assertEqual(self.election.window_state(self.now - timedelta(seconds=1)), Election.UPCOMING)
        self.assertEqual(self.election.window_state(self.now), Election.OPEN)
        self.assertEqual(self.election.window_state(self.now + timedelta(hours=2)), Election.OPEN)
        self.assertEqual(self.election.window_state(self.now + timedelta(hours=3)), Election.CLOSED)

    def test_inactive_election_is_never_open(self):
        self.election.is_active = False

        self.assertFalse(self.election.is_open(self.now + timedelta(minutes=5)))

    def test_current_returns_active_election(self):
        Election.objects.create(
            title="Last Year's Election",
            start_time=self.now - timedelta(days=365),
            end_time=self.now - timedelta(days=364),
        )

        self.assertEqual(Election.objects.current(), self.election)

    def test_current_without_active_election(self):
        Election.objects.update(is_active=False)

        self.assertIsNone(Election.objects.current())


class ElectionApiTest(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="s3cret-pass", is_staff=True)
        self.payload = {
            "title": "Student Union Election",
            "start_time": timezone.now().isoformat(),
            "end_time": (timezone.now() + timedelta(hours=4)).isoformat(),
            "is_active": True,
        }

    def test_admin_creates_election(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(reverse("elections:election-list"), self.payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Election.objects.get().title, "Student Union Election")

    def test_non_staff_cannot_create_election(self):
        student = User.objects.create_user(username="student", password="s3cret-pass")
        self.client.force_authenticate(user=student)

        response = self.client.post(reverse("elections:election-list"), self.payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Election.objects.exists())

    def test_anyone_can_list_and_filter_elections(self):
        Election.objects.create(
            title="Student Union Election",
            start_time=timezone.now(),
            end_time=timezone.now() + timedelta(hours=1),
            is_active=True,
        )
        Election.objects.create(
            title="Old Student Union Election",
            start_time=timezone.now() - timedelta(days=30),
            end_time=timezone.now() - timedelta(days=29),
        )

        response = self.client.get(reverse("elections:election-list"), {"is_active": "true"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e["title"] for e in response.data], ["Student Union Election"])

    def test_current_election_reports_open_window(self):
        Election.objects.create(
            title="Student Union Election",
            start_time=timezone.now() - timedelta(minutes=10),
            end_time=timezone.now() + timedelta(minutes=50),
            is_active=True,
        )

        response = self.client.get(reverse("elections:current-election"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data["data"]
        self.assertEqual(data["state"], Election.OPEN)
        self.assertEqual(data["seconds_until_open"], 0)
        self.assertGreater(data["seconds_until_close"], 0)

    def test_current_election_reports_upcoming_window(self):
        Election.objects.create(
            title="Student Union Election",
            start_time=timezone.now() + timedelta(hours=1),
            end_time=timezone.now() + timedelta(hours=2),
            is_active=True,
        )

        data = self.client.get(reverse("elections:current-election")).data["data"]

        self.assertEqual(data["state"], Election.UPCOMING)
        self.assertGreater(data["seconds_until_open"], 3000)

    def test_current_election_missing(self):
        response = self.client.get(reverse("elections:current-election"))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class BallotViewTest(APITestCase):
    def test_positions_with_candidates(self):
        treasurer = Position.objects.create(title="Treasurer")
        president = Position.objects.create(title="President")
        Candidate.objects.create(position=president, name="Bob", party="Green")
        Candidate.objects.create(position=president, name="Alice", party="Blue")
        Candidate.objects.create(position=treasurer, name="Carol")

        response = self.client.get(reverse("elections:ballot"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p["title"] for p in response.data], ["President", "Treasurer"])
        self.assertEqual(
            [c["name"] for c in response.data[0]["candidates"]], ["Alice", "Bob"]
        )
        self.assertEqual(
            set(response.data[0]["candidates"][0]), {"id", "name", "party", "photo_url"}
        )
