import logging

from accounts.authentication import PartyRepJWTAuthentication, VoterJWTAuthentication
from accounts.permissions import IsPartyRepOrAdmin, IsVoter
from rest_framework import permissions, status
from rest_framework.authentication import SessionAuthentication, TokenAuthentication
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import BallotSerializer, StatsSerializer
from .services import (
    BallotError,
    DuplicateVoteError,
    ElectionClosedError,
    InvalidSelectionError,
    MalformedBallotError,
    PersistenceError,
    UnauthenticatedVoterError,
    get_voting_service,
)

# __name__ = 'voting.views' automatically
logger = logging.getLogger(__name__)


class BallotCreateView(APIView):
    """
    API endpoint for casting a ballot.

    POST: {"selections": {"<position id>": "<candidate id>", ...}}
    Every selection is recorded, or none is.
    """

    authentication_classes = [VoterJWTAuthentication]
    permission_classes = [IsVoter]

    def post(self, request):
        serializer = BallotSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {
                    "status": "error",
                    "message": "Missing or invalid selections.",
                    "errors": serializer.errors,
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        voting_service = get_voting_service()

        try:
            voting_service.cast_ballot(
                voter=request.user, selections=serializer.validated_data["selections"]
            )

        except UnauthenticatedVoterError as e:
            return Response(
                {"status": "error", "message": str(e)},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        except (MalformedBallotError, InvalidSelectionError) as e:
            return Response(
                {"status": "error", "message": str(e)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        except (ElectionClosedError, DuplicateVoteError) as e:
            return Response(
                {"status": "error", "message": str(e)}, status=status.HTTP_403_FORBIDDEN
            )

        except PersistenceError as e:
            return Response(
                {"status": "error", "message": str(e), "retryable": True},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        except BallotError as e:
            logger.error(f"Voting service error: {e}")
            return Response(
                {
                    "status": "error",
                    "message": "An error occurred while processing your vote",
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(
            {"status": "success", "message": "Vote cast successfully."},
            status=status.HTTP_201_CREATED,
        )


class MyVotesView(APIView):
    """
    API endpoint for voters to see their own ballot
    """

    authentication_classes = [VoterJWTAuthentication]
    permission_classes = [IsVoter]

    def get(self, request):
        votes = get_voting_service().get_voter_votes(request.user)
        return Response(
            {"status": "success", "data": {"voted": bool(votes), "votes": votes}}
        )


class LiveResultsView(APIView):
    """
    API endpoint with the running tally per candidate.
    Party representatives and admins only.
    """

    authentication_classes = [
        PartyRepJWTAuthentication,
        TokenAuthentication,
        SessionAuthentication,
    ]
    permission_classes = [IsPartyRepOrAdmin]

    def get(self, request):
        """
        Handle GET requests to retrive the live tally (served from cache when fresh).
        """
        results = get_voting_service().get_live_results(use_cache=True)
        return Response(
            {
                "status": "success",
                "message": "Results retrived successfully",
                "data": results,
            }
        )


class StatsView(APIView):
    """
    Admin dashboard counters: voters, verified voters, votes, voters who voted.
    """

    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        stats = get_voting_service().get_stats()
        return Response({"status": "success", "data": StatsSerializer(stats).data})
