from rest_framework.permissions import BasePermission


class CalendarAccessPermission(BasePermission):
    """
    Requires an authenticated user, except for the actions listed in the view's
    `anonymous_actions`. Those are open to guests and token holders; the services decide what
    they may see.
    """

    def has_permission(self, request, view):
        if view.action in getattr(view, "anonymous_actions", ()):
            return True
        return bool(request.user and request.user.is_authenticated)
