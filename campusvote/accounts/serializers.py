#serializer module provides functionalities for serializing & deserializing complex data into JSON
from rest_framework import serializers
from .models import Voter
import logging

logger = logging.getLogger('accounts')


class VoterLoginSerializer(serializers.Serializer):
    """
    Credentials printed on the voting card: the voter id and date of birth.
    """
    voter_id = serializers.UUIDField()
    date_of_birth = serializers.DateField(input_formats=['%Y-%m-%d'])


class PartyLoginSerializer(serializers.Serializer):
    email = serializers.EmailField()

    def validate_email(self, value):
        return value.strip().lower()


class VoterListSerializer(serializers.ModelSerializer):
    """
    Row of the admin voter roll.
    """
    class Meta:
        model = Voter
        fields = ('id', 'full_name', 'university_id', 'email', 'is_verified')
        read_only_fields = fields
