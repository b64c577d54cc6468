"""
Custom permission classes for the expenses app.
"""
from rest_framework.permissions import BasePermission


class IsGroupMemberForLedger(BasePermission):
    """
    Permission to check if user is a member of the object's group.

    Works for any object with a ``group`` (expenses, payments).
    """

    message = 'You must be a member of this group.'

    def has_object_permission(self, request, view, obj):
        return obj.group.has_member(request.user)
