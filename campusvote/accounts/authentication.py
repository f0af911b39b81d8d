import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import authentication, exceptions

from .models import PartyRep, Voter
from .tokens import PARTY_TOKEN, VOTER_TOKEN, InvalidSessionToken, decode_token

logger = logging.getLogger("accounts")


class BearerJWTAuthentication(authentication.BaseAuthentication):
    """
    Base class for `Authorization: Bearer <jwt>` authentication.
    Subclasses say which token type they accept and how to load the principal.
    """

    keyword = "Bearer"
    token_type = None

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()

        if not auth or auth[0].lower() != self.keyword.lower().encode():
            # not ours, let the next authenticator (or permission check) decide
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed("Invalid token header.")

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed("Invalid token header.")

        try:
            payload = decode_token(token, self.token_type)
        except InvalidSessionToken as e:
            logger.warning(f"Rejected {self.token_type} token: {e}")
            raise exceptions.AuthenticationFailed(str(e))

        return self.get_principal(payload), payload

    def get_principal(self, payload):
        raise NotImplementedError

    def authenticate_header(self, request):
        return self.keyword


class VoterJWTAuthentication(BearerJWTAuthentication):
    token_type = VOTER_TOKEN

    def get_principal(self, payload):
        try:
            voter = Voter.objects.get(pk=payload["sub"])
        except (Voter.DoesNotExist, ValueError, DjangoValidationError):
            raise exceptions.AuthenticationFailed("Voter not found.")
        if not voter.is_verified:
            raise exceptions.AuthenticationFailed("Voter is not verified.")
        return voter


class PartyRepJWTAuthentication(BearerJWTAuthentication):
    token_type = PARTY_TOKEN

    def get_principal(self, payload):
        try:
            return PartyRep.objects.get(pk=payload["sub"])
        except (PartyRep.DoesNotExist, ValueError, DjangoValidationError):
            raise exceptions.AuthenticationFailed("Party representative not found.")
