from typing import Annotated

from django.conf import settings
from django.db.models import Q

from dependency_injector.wiring import Provide, inject
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from calendar_access.constants import PermissionLevel
from calendar_access.exceptions import (
    CalendarAccessNotFoundError,
    CalendarNotFoundError,
    DuplicateShareError,
    InsufficientPermissionError,
    InvalidAccessTokenError,
    InvalidExpirationError,
    InvalidShareLevelError,
    InvalidTokenPermissionError,
    RateLimitedError,
    StorageUnavailableError,
)
from calendar_access.filtersets import CalendarShareFilterSet
from calendar_access.models import Calendar, CalendarShare
from calendar_access.permissions import CalendarAccessPermission
from calendar_access.serializers import (
    AccessibleCalendarSerializer,
    AccessTokenSecretSerializer,
    BulkCalendarOwnershipTransferSerializer,
    CalendarAccessTokenCreateSerializer,
    CalendarAccessTokenSerializer,
    CalendarAccessTokenUpdateSerializer,
    CalendarOwnershipTransferSerializer,
    CalendarSerializer,
    CalendarSharePermissionSerializer,
    CalendarShareSerializer,
    CalendarSubscriptionSerializer,
    IssuedAccessTokenSerializer,
    PermissionLevelSerializer,
    ValidatedAccessTokenSerializer,
)
from calendar_access.services.access_token_service import AccessTokenService
from calendar_access.services.calendar_service import CalendarService
from calendar_access.services.permission_resolver_service import PermissionResolverService
from calendar_access.services.share_registry_service import ShareRegistryService
from calendar_access.services.subscription_service import SubscriptionService
from calendar_access.token_cookies import get_cookie_tokens, remember_token
from common.utils.view_utils import ServiceErrorResponseMixin


UUID_LOOKUP_REGEX = r"[0-9a-fA-F-]{36}"

ACCESS_TOKEN_PARAMETERS = [
    OpenApiParameter(
        name="token",
        type=str,
        location=OpenApiParameter.QUERY,
        description=(
            "Calendar access token. May also be sent in the X-Calendar-Access-Token header. "
            "Tokens redeemed earlier on this browser are read from a signed cookie."
        ),
        required=False,
    ),
]


def get_presented_tokens(request) -> list[str]:
    """
    Token sent with the request (header, then `token` query parameter), followed by the tokens
    redeemed earlier on this browser.
    """
    header_name = getattr(settings, "CALENDAR_ACCESS_TOKEN_HEADER", "X-Calendar-Access-Token")
    presented_token = request.headers.get(header_name) or request.query_params.get("token")
    cookie_tokens = get_cookie_tokens(request)
    return [presented_token, *cookie_tokens] if presented_token else cookie_tokens


class CalendarAccessErrorResponseMixin(ServiceErrorResponseMixin):
    service_error_statuses = (
        (InsufficientPermissionError, status.HTTP_403_FORBIDDEN),
        (CalendarAccessNotFoundError, status.HTTP_404_NOT_FOUND),
        (DuplicateShareError, status.HTTP_409_CONFLICT),
        (InvalidShareLevelError, status.HTTP_400_BAD_REQUEST),
        (InvalidExpirationError, status.HTTP_400_BAD_REQUEST),
        (InvalidTokenPermissionError, status.HTTP_400_BAD_REQUEST),
        (InvalidAccessTokenError, status.HTTP_400_BAD_REQUEST),
        (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
        (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    )

    def get_service_error_headers(self, exc: Exception) -> dict[str, str]:
        if isinstance(exc, RateLimitedError):
            return {"Retry-After": str(exc.retry_after)}
        return {}


class CalendarViewSet(CalendarAccessErrorResponseMixin, viewsets.ModelViewSet):
    """
    ViewSet for managing calendars. Listing shows calendars the user owns or that were shared
    with them; guest and token access is listed by the calendar subscriptions endpoint.
    """

    queryset = Calendar.objects.all()
    serializer_class = CalendarSerializer
    permission_classes = (CalendarAccessPermission,)
    anonymous_actions = ("retrieve", "resolve_permission")
    lookup_value_regex = UUID_LOOKUP_REGEX

    @inject
    def __init__(
        self,
        *args,
        permission_resolver_service: Annotated[
            PermissionResolverService, Provide["permission_resolver_service"]
        ],
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.permission_resolver_service = permission_resolver_service
        self.calendar_service = calendar_service

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return Calendar.objects.none()
        return (
            Calendar.objects.filter(Q(owner=user) | Q(shares__user=user))
            .distinct()
            .order_by("name")
        )

    def get_object(self):
        """
        Any level above none is enough to see a calendar. Calendars the caller cannot see answer
        as not found.
        """
        calendar = self.permission_resolver_service.get_calendar(self.kwargs["pk"])
        level = self.permission_resolver_service.resolve_for_calendar(
            self.request.user, calendar, get_presented_tokens(self.request)
        )
        if level == PermissionLevel.NONE:
            raise CalendarNotFoundError()
        self.check_object_permissions(self.request, calendar)
        return calendar

    def perform_destroy(self, instance):
        self.calendar_service.delete_calendar(self.request.user, instance.id)

    @extend_schema(
        summary="Resolve the caller's permission on a calendar",
        parameters=ACCESS_TOKEN_PARAMETERS,
        responses={200: PermissionLevelSerializer},
    )
    @action(
        methods=["get"],
        detail=True,
        url_path="permission",
        url_name="permission",
    )
    def resolve_permission(self, request, pk=None):
        level = self.permission_resolver_service.resolve(
            request.user, pk, presented_tokens=get_presented_tokens(request)
        )
        return Response(PermissionLevelSerializer({"level": level}).data)

    @extend_schema(
        summary="Transfer calendar ownership (staff only)",
        request=CalendarOwnershipTransferSerializer,
        responses={200: CalendarSerializer},
    )
    @action(
        methods=["post"],
        detail=True,
        url_path="transfer-ownership",
        url_name="transfer-ownership",
    )
    def transfer_ownership(self, request, pk=None):
        serializer = CalendarOwnershipTransferSerializer(
            data=request.data, context={"request": request}
        )
        serializer.is_valid(raise_exception=True)
        calendar = self.calendar_service.transfer_ownership(
            request.user, pk, serializer.validated_data["new_owner_id"]
        )
        return Response(CalendarSerializer(calendar).data)

    @extend_schema(
        summary="Transfer several calendars to one user (staff only)",
        request=BulkCalendarOwnershipTransferSerializer,
        responses={200: CalendarSerializer(many=True)},
    )
    @action(
        methods=["post"],
        detail=False,
        url_path="bulk-transfer-ownership",
        url_name="bulk-transfer-ownership",
    )
    def bulk_transfer_ownership(self, request):
        serializer = BulkCalendarOwnershipTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        calendars = self.calendar_service.bulk_transfer_ownership(
            request.user,
            serializer.validated_data["calendar_ids"],
            serializer.validated_data["new_owner_id"],
        )
        return Response(CalendarSerializer(calendars, many=True).data)


class CalendarShareViewSet(
    CalendarAccessErrorResponseMixin,
    mixins.ListModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """
    Shares of one calendar. Creating a share for a user who already has one changes its level.
    """

    queryset = CalendarShare.objects.all()
    serializer_class = CalendarShareSerializer
    permission_classes = (CalendarAccessPermission,)
    filterset_class = CalendarShareFilterSet
    lookup_value_regex = UUID_LOOKUP_REGEX

    @inject
    def __init__(
        self,
        *args,
        share_registry_service: Annotated[
            ShareRegistryService, Provide["share_registry_service"]
        ],
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.share_registry_service = share_registry_service

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return CalendarShare.objects.none()
        return self.share_registry_service.list_shares(
            self.request.user, self.kwargs["calendar_id"]
        )

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["calendar_id"] = self.kwargs.get("calendar_id")
        return context

    @extend_schema(
        request=CalendarSharePermissionSerializer, responses={200: CalendarShareSerializer}
    )
    def update(self, request, *args, **kwargs):
        serializer = CalendarSharePermissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        share = self.share_registry_service.update_share(
            request.user,
            self.kwargs["calendar_id"],
            self.kwargs["pk"],
            serializer.validated_data["permission"],
        )
        return Response(self.get_serializer(share).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        self.share_registry_service.remove_share(
            request.user, self.kwargs["calendar_id"], self.kwargs["pk"]
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class CalendarAccessTokenViewSet(CalendarAccessErrorResponseMixin, viewsets.GenericViewSet):
    """
    Access tokens of one calendar. The secret is only part of the response that issues it.
    """

    serializer_class = CalendarAccessTokenSerializer
    permission_classes = (CalendarAccessPermission,)
    lookup_value_regex = UUID_LOOKUP_REGEX

    @inject
    def __init__(
        self,
        *args,
        access_token_service: Annotated[AccessTokenService, Provide["access_token_service"]],
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.access_token_service = access_token_service

    def get_serializer_class(self):
        if self.action == "create":
            return CalendarAccessTokenCreateSerializer
        if self.action in ("update", "partial_update"):
            return CalendarAccessTokenUpdateSerializer
        return CalendarAccessTokenSerializer

    def list(self, request, *args, **kwargs):  # noqa: A003
        tokens = self.access_token_service.list_tokens(request.user, self.kwargs["calendar_id"])
        page = self.paginate_queryset(tokens)
        if page is not None:
            return self.get_paginated_response(CalendarAccessTokenSerializer(page, many=True).data)
        return Response(CalendarAccessTokenSerializer(tokens, many=True).data)

    @extend_schema(responses={201: IssuedAccessTokenSerializer})
    def create(self, request, *args, **kwargs):
        serializer = CalendarAccessTokenCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        issued_token = self.access_token_service.issue(
            request.user,
            self.kwargs["calendar_id"],
            permission=serializer.validated_data["permission"],
            name=serializer.validated_data["name"],
            expires_at=serializer.validated_data["expires_at"],
        )
        return Response(
            IssuedAccessTokenSerializer(issued_token).data, status=status.HTTP_201_CREATED
        )

    @extend_schema(responses={200: CalendarAccessTokenSerializer})
    def partial_update(self, request, *args, **kwargs):
        serializer = CalendarAccessTokenUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        token = self.access_token_service.update_token(
            request.user,
            self.kwargs["pk"],
            calendar_id=self.kwargs["calendar_id"],
            **serializer.validated_data,
        )
        return Response(CalendarAccessTokenSerializer(token).data)

    def destroy(self, request, *args, **kwargs):
        self.access_token_service.revoke(
            request.user, self.kwargs["pk"], calendar_id=self.kwargs["calendar_id"]
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class AccessTokenViewSet(CalendarAccessErrorResponseMixin, viewsets.GenericViewSet):
    """
    Endpoints for holders of a token secret, who do not know which calendar it belongs to.
    """

    serializer_class = AccessTokenSecretSerializer
    permission_classes = (CalendarAccessPermission,)
    anonymous_actions = ("validate_token", "redeem")

    @inject
    def __init__(
        self,
        *args,
        access_token_service: Annotated[AccessTokenService, Provide["access_token_service"]],
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.access_token_service = access_token_service

    @extend_schema(
        request=AccessTokenSecretSerializer,
        responses={200: ValidatedAccessTokenSerializer},
    )
    @action(methods=["post"], detail=False, url_path="validate", url_name="validate")
    def validate_token(self, request):
        serializer = AccessTokenSecretSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated_token = self.access_token_service.validate(serializer.validated_data["token"])
        if validated_token is None:
            raise InvalidAccessTokenError()
        return Response(ValidatedAccessTokenSerializer(validated_token).data)

    @extend_schema(
        request=AccessTokenSecretSerializer,
        responses={200: ValidatedAccessTokenSerializer},
    )
    @action(methods=["post"], detail=False, url_path="redeem", url_name="redeem")
    def redeem(self, request):
        serializer = AccessTokenSecretSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated_token = self.access_token_service.redeem(
            request.user, serializer.validated_data["token"]
        )
        response = Response(ValidatedAccessTokenSerializer(validated_token).data)
        remember_token(request, response, serializer.validated_data["token"])
        return response


class CalendarSubscriptionViewSet(CalendarAccessErrorResponseMixin, viewsets.GenericViewSet):
    """
    The caller's calendar list. Dismissing hides a calendar without touching any grant.
    """

    serializer_class = AccessibleCalendarSerializer
    permission_classes = (CalendarAccessPermission,)
    anonymous_actions = ("list",)
    lookup_url_kwarg = "calendar_id"
    lookup_value_regex = UUID_LOOKUP_REGEX

    @inject
    def __init__(
        self,
        *args,
        subscription_service: Annotated[SubscriptionService, Provide["subscription_service"]],
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.subscription_service = subscription_service

    @extend_schema(parameters=ACCESS_TOKEN_PARAMETERS)
    def list(self, request, *args, **kwargs):  # noqa: A003
        calendars = self.subscription_service.list_accessible_calendars(
            request.user, presented_tokens=get_presented_tokens(request)
        )
        page = self.paginate_queryset(calendars)
        if page is not None:
            return self.get_paginated_response(AccessibleCalendarSerializer(page, many=True).data)
        return Response(AccessibleCalendarSerializer(calendars, many=True).data)

    @extend_schema(request=None, responses={200: CalendarSubscriptionSerializer})
    @action(methods=["post"], detail=True, url_path="dismiss", url_name="dismiss")
    def dismiss(self, request, calendar_id=None):
        subscription = self.subscription_service.dismiss(request.user, calendar_id)
        return Response(CalendarSubscriptionSerializer(subscription).data)

    @extend_schema(request=None, responses={200: CalendarSubscriptionSerializer})
    @action(methods=["post"], detail=True, url_path="subscribe", url_name="subscribe")
    def subscribe(self, request, calendar_id=None):
        subscription = self.subscription_service.subscribe(request.user, calendar_id)
        return Response(CalendarSubscriptionSerializer(subscription).data)
