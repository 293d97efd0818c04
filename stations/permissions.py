"""
Custom permissions for station management
"""

from rest_framework import permissions

from .models import PlatformAdmin


def get_superuser_membership(user):
    """Active superuser membership of ``user`` on an active platform, or None"""
    if not user or not user.is_authenticated:
        return None
    return (
        PlatformAdmin.objects.select_related("platform")
        .filter(
            user=user,
            role="superuser",
            is_active=True,
            platform__status="active",
        )
        .first()
    )


class IsPlatformSuperuser(permissions.BasePermission):
    """
    Allows access only to active platform superusers.
    Sets ``request.platform`` for the view.
    """

    message = "Unauthorised! Only platform superusers may manage stations."

    def has_permission(self, request, view):
        membership = get_superuser_membership(request.user)
        if membership is None:
            return False
        request.platform = membership.platform
        return True
