from rest_framework import permissions

from .identity import Actor


def actor_for(request):
    actor = getattr(request, '_library_actor', None)
    if actor is None:
        actor = Actor.from_user(request.user)
        request._library_actor = actor
    return actor


class IsLibrarian(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and actor_for(request).is_librarian)


class IsLibrarianOrReadOnly(permissions.BasePermission):
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return IsLibrarian().has_permission(request, view)


class IsStaffMember(permissions.BasePermission):
    """Teachers and librarians."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and actor_for(request).is_staff_member)


class IsSelfOrLibrarian(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        owner = getattr(obj, 'user', obj)
        return owner == request.user or actor_for(request).is_librarian
