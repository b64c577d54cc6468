from rest_framework import permissions


class IsGroupAdmin(permissions.BasePermission):
    """
    Permission: User must be group admin or owner.
    """
    
    def has_object_permission(self, request, view, obj):
        # obj is a Group instance
        return obj.is_admin(request.user)
