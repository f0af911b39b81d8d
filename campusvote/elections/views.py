import logging

from django.db.models import Prefetch
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status
from rest_framework.filters import OrderingFilter
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ModelViewSet

from accounts.permissions import IsAdminOrReadOnly

from .models import Candidate, Election, Position
from .serializers import (
    BallotPositionSerializer,
    CurrentElectionSerializer,
    ElectionCreationSerializer,
)

logger = logging.getLogger("elections")


class ElectionCreationView(ModelViewSet):
    """
    API endpoint to create and manage elections (voting windows)
    """

    queryset = Election.objects.all()
    serializer_class = (
        ElectionCreationSerializer  # serializer that handles the election creation
    )
    permission_classes = [IsAdminOrReadOnly]

    # add OrderingFilter to filter_backends
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ["is_active"]  # This enables filtering by the 'is_active' field
    # elections will be ordered based on the start_time
    ordering_fields = ["start_time", "created_at"]

    def create(self, request, *args, **kwargs):
        logger.debug(f"Incoming data: {request.data}")
        return super().create(request, *args, **kwargs)


class CurrentElectionView(APIView):
    """
    GET: the active election and whether voting is upcoming, open or closed.
    """

    permission_classes = [permissions.AllowAny]

    def get(self, request):
        election = Election.objects.current()
        if election is None:
            return Response(
                {"status": "error", "message": "No active election."},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = CurrentElectionSerializer(election, context={"now": timezone.now()})
        return Response({"status": "success", "data": serializer.data})


class BallotView(generics.ListAPIView):
    """
    GET: every position with its candidates, positions ordered by title.
    """

    serializer_class = BallotPositionSerializer
    permission_classes = [permissions.AllowAny]
    pagination_class = None

    def get_queryset(self):
        logger.info("Ballot data retrived sucessfully.")
        return Position.objects.order_by("title").prefetch_related(
            Prefetch("candidates", queryset=Candidate.objects.order_by("name"))
        )
