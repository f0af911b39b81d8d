from rest_framework import permissions

from .models import PartyRep, Voter


class IsVoter(permissions.BasePermission):
    """
    Allow access only to an authenticated, verified voter.
    """
    def has_permission(self, request, view):
        return isinstance(request.user, Voter) and request.user.is_verified


class IsAdminOrReadOnly(permissions.BasePermission):
    """
    Anyone may read; writes need a staff user.
    """
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        # a Voter or PartyRep never has is_staff
        return bool(request.user and getattr(request.user, "is_staff", False))


class IsPartyRepOrAdmin(permissions.BasePermission):
    """
    Read-only access for party representatives and staff users
    """
    def has_permission(self, request, view):
        if request.method not in permissions.SAFE_METHODS:
            return False
        user = request.user
        if isinstance(user, PartyRep):
            return True
        return bool(user and user.is_authenticated and getattr(user, "is_staff", False))
