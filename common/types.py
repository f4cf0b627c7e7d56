from typing import TypedDict

from rest_framework.viewsets import GenericViewSet, ViewSet


class RouteDict(TypedDict):
    """A router registration: URL regex prefix, viewset class and route basename."""

    regex: str
    viewset: type[GenericViewSet] | type[ViewSet]
    basename: str
