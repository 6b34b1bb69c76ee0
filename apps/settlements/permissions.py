"""
Custom permission classes for the settlements app.

Membership is enforced by the services; these classes guard the routes
that need more than membership.
"""
from rest_framework.permissions import BasePermission

from apps.groups.models import Group


class IsGroupAdminForRoute(BasePermission):
    """
    Permission: user must be admin or owner of the group in the URL.

    Unknown groups pass through so the view can answer 404.

    Usage:
        @action(detail=False, methods=['post'],
                permission_classes=[IsAuthenticated, IsGroupAdminForRoute])
        def recalculate(self, request, group_id=None):
            ...
    """

    message = 'Only group admins can perform this action.'

    def has_permission(self, request, view):
        group = Group.objects.filter(id=view.kwargs.get('group_id')).first()
        if group is None:
            return True
        return group.is_admin(request.user)
