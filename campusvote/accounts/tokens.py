"""
Signed session tokens for voters and party representatives.

Both are HS256 JWTs with a `typ` claim so a party token can never pass as a
voter token (they are also signed with different secrets).
"""

import logging
from datetime import timedelta

import jwt
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger("accounts")

VOTER_TOKEN = "voter"
PARTY_TOKEN = "party"


class InvalidSessionToken(Exception):
    """Raised when a token is malformed, expired or of the wrong type."""

    pass


def _secret_for(token_type):
    if token_type == VOTER_TOKEN:
        return settings.VOTER_JWT_SECRET
    return settings.PARTY_JWT_SECRET


def issue_token(subject, token_type, **claims):
    """
    Sign a session token for `subject` (a voter or party rep id).
    """
    now = timezone.now()
    payload = {
        "sub": str(subject),
        "typ": token_type,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
        **claims,
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.JWT_ALGORITHM)


def decode_token(token, token_type):
    """
    Verify a session token and return its payload.

    Raises:
        InvalidSessionToken: bad signature, expired, or not a `token_type` token
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub", "typ"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidSessionToken("Token has expired.") from e
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token verification failed: {e}")
        raise InvalidSessionToken("Invalid token.") from e

    if payload.get("typ") != token_type:
        raise InvalidSessionToken("Invalid token.")
    return payload
