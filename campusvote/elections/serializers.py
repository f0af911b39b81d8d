import logging

from rest_framework import serializers

from .models import Candidate, Election, Position

logger = logging.getLogger("elections")


class ElectionCreationSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and updating Election instances.
    It handles the conversion of Election model instances to JSON and vice versa."""

    # The Meta class provides the metadata of the model and field to be included in the serializer
    class Meta:
        # specify the model the serializer is based on
        model = Election
        # Lists of the fields from the model to be included in the serialized output.
        fields = ("id", "title", "start_time", "end_time", "is_active")

    def update(self, instance, validated_data):
        logger.info(f"Election updated by admin:{instance.title}")
        return super().update(instance, validated_data)

    def validate(self, data):
        """
        Add custom validation for business rules that are not covered  by the model field validation.
        This method is called when `serializer.is_valid()` is executed
        """
        # self.instance is the object being updated, or None for a new object creation.
        instance = self.instance
        # get start_time or end_time from incoming data, or from the existing instance if not provided.
        start_time = data.get("start_time", instance.start_time if instance else None)
        end_time = data.get("end_time", instance.end_time if instance else None)
        title = data.get("title", instance.title if instance else None)

        logger.debug(
            f"Validating election: Start_time:{start_time}, End_time:{end_time}, instance = {instance}"
        )

        # Validation Rule 1: End time must be after start time.
        if start_time and end_time and start_time >= end_time:
            logger.warning("End time must be after start time.")
            raise serializers.ValidationError(
                "The election's end time must be after its start time."
            )

        # Validation Rule 2: If this election is being set to active, ensure no other election is already active.
        if data.get("is_active") is True:
            active_elections = Election.objects.filter(is_active=True)

            # When updating an existing election, exclude it from the check
            if instance:
                active_elections = active_elections.exclude(pk=instance.pk)
            if active_elections.exists():
                logger.warning("Another election is already active")
                raise serializers.ValidationError(
                    "Another election is already active. Only one election can be active at a time."
                )
        logger.info(f"Election '{title}' passes serializer validation criteria.")
        return data


class CurrentElectionSerializer(serializers.ModelSerializer):
    """
    The active election with the state of its voting window, used by the
    voting page countdown.
    """

    state = serializers.SerializerMethodField()
    seconds_until_open = serializers.SerializerMethodField()
    seconds_until_close = serializers.SerializerMethodField()

    class Meta:
        model = Election
        fields = (
            "id",
            "title",
            "start_time",
            "end_time",
            "state",
            "seconds_until_open",
            "seconds_until_close",
        )

    def _now(self):
        return self.context["now"]

    def get_state(self, obj):
        return obj.window_state(self._now())

    def get_seconds_until_open(self, obj):
        return max(int((obj.start_time - self._now()).total_seconds()), 0)

    def get_seconds_until_close(self, obj):
        return max(int((obj.end_time - self._now()).total_seconds()), 0)


class CandidateSerializer(serializers.ModelSerializer):
    """
    Candidate as shown on the ballot.
    """

    class Meta:
        model = Candidate
        fields = ["id", "name", "party", "photo_url"]


class BallotPositionSerializer(serializers.ModelSerializer):
    """
    A position together with everyone standing for it.
    """

    candidates = CandidateSerializer(many=True, read_only=True)

    class Meta:
        model = Position
        fields = ["id", "title", "candidates"]
