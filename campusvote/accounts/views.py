import logging

from django.db import transaction
from django.utils import timezone
from rest_framework import generics, permissions, status
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.views import ObtainAuthToken
from rest_framework.response import Response
from rest_framework.views import APIView

from voting.services import invalidate_results_cache

from .models import PartyRep, Voter
from .serializers import PartyLoginSerializer, VoterListSerializer, VoterLoginSerializer
from .tokens import PARTY_TOKEN, VOTER_TOKEN, issue_token

logger = logging.getLogger("accounts")


class AdminAuthToken(ObtainAuthToken):
    """
    Admin login: extends DRF's `ObtainAuthToken` so only staff users get a token
    and `last_login` is updated on success.
    """

    def post(self, request, *args, **kwargs):
        logger.info("Admin authentication attempt for user: %s", request.data.get("username"))

        serializer = self.serializer_class(
            data=request.data, context={"request": request}
        )
        # invalid credentials surface as DRF's 400 ValidationError
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data["user"]

        if not user.is_staff:
            logger.warning("Non-staff user tried the admin login: %s", user.username)
            return Response(
                {"status": "error", "message": "Admin access required."},
                status=status.HTTP_403_FORBIDDEN,
            )

        # Retrive an existing token or create a new one for the user.
        token, created = Token.objects.get_or_create(user=user)

        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])

        if created:
            logger.info("New token created for admin: %s", user.username)
        else:
            logger.info("Existing token returned for admin: %s", user.username)

        return Response({"token": token.key, "user_id": user.pk, "email": user.email})


class VoterLoginView(APIView):
    """
    POST: exchange a voter id and date of birth for a bearer token.

    Refused when the voter is unknown (404), unverified (403), the date of
    birth does not match (401) or a ballot was already cast (403).
    """

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = VoterLoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"status": "error", "message": "Missing voter_id or date_of_birth.", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        voter_id = serializer.validated_data["voter_id"]
        logger.info("Voter login attempt: %s", voter_id)

        voter = Voter.objects.filter(pk=voter_id).first()
        if voter is None:
            return Response(
                {"status": "error", "message": "Voter not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        if not voter.is_verified:
            return Response(
                {"status": "error", "message": "Email not verified."},
                status=status.HTTP_403_FORBIDDEN,
            )

        if voter.date_of_birth != serializer.validated_data["date_of_birth"]:
            logger.warning("Voter login failed, date of birth mismatch: %s", voter_id)
            return Response(
                {"status": "error", "message": "Incorrect date of birth."},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        if voter.votes.exists():
            return Response(
                {"status": "error", "message": "You have already voted."},
                status=status.HTTP_403_FORBIDDEN,
            )

        token = issue_token(voter.pk, VOTER_TOKEN)
        logger.info("Voter authenticated sucessfully: %s", voter_id)
        return Response({"token": token})


class PartyLoginView(APIView):
    """
    POST: party representatives log in with their registered email.
    """

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = PartyLoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"status": "error", "message": "Missing email.", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        email = serializer.validated_data["email"]
        rep = PartyRep.objects.filter(email=email).first()
        if rep is None:
            logger.warning("Party login refused for unregistered email: %s", email)
            return Response(
                {"status": "error", "message": "Unauthorized email."},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        token = issue_token(rep.pk, PARTY_TOKEN, email=rep.email)
        logger.info("Party representative logged in: %s", rep.email)
        return Response({"token": token})


class VoterListView(generics.ListAPIView):
    """
    Admin voter roll, ordered by name. Filter with `?is_verified=true`.
    """

    queryset = Voter.objects.order_by("full_name")
    serializer_class = VoterListSerializer
    permission_classes = [permissions.IsAdminUser]
    filterset_fields = ["is_verified"]


class VoterDestroyView(generics.DestroyAPIView):
    """
    Admin removal of a voter. Their votes are removed with them.
    """

    queryset = Voter.objects.all()
    permission_classes = [permissions.IsAdminUser]

    def perform_destroy(self, instance):
        logger.info(
            "Voter deleted by admin: %s - %s", self.request.user.username, instance.pk
        )
        super().perform_destroy(instance)
        transaction.on_commit(invalidate_results_cache)
