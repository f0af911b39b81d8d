from rest_framework import serializers


class BallotSerializer(serializers.Serializer):
    """
    Serializer for a ballot submission.

    `selections` maps position ids to candidate ids. Only the shape is checked
    here; whether the ids mean anything is decided by the voting service.
    """
    selections = serializers.DictField(
        child=serializers.CharField(), allow_empty=False
    )


class StatsSerializer(serializers.Serializer):
    """
    Admin dashboard counters
    """
    total_voters = serializers.IntegerField()
    total_verified = serializers.IntegerField()
    total_votes = serializers.IntegerField()
    voters_voted = serializers.IntegerField()
