import re
from typing import TYPE_CHECKING, Annotated

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from calendar_access.constants import (
    AccessTokenPermission,
    GuestPermission,
    PermissionLevel,
    SharePermission,
    SubscriptionSource,
)
from calendar_access.exceptions import InvalidShareTargetError
from calendar_access.models import Calendar, CalendarShare, CalendarSubscription
from users.models import User


if TYPE_CHECKING:
    from calendar_access.services.calendar_service import CalendarService
    from calendar_access.services.share_registry_service import ShareRegistryService


HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


class CalendarSerializer(serializers.ModelSerializer):
    class Meta:
        model = Calendar
        fields = (
            "id",
            "name",
            "color",
            "guest_permission",
            "owner",
            "created",
            "modified",
        )
        read_only_fields = (
            "id",
            "owner",
            "created",
            "modified",
        )

    @inject
    def __init__(
        self,
        *args,
        calendar_service: Annotated["CalendarService | None", Provide["calendar_service"]] = None,
        **kwargs,
    ):
        self.calendar_service = calendar_service
        super().__init__(*args, **kwargs)

    def validate_color(self, color):
        if not HEX_COLOR_RE.match(color):
            raise serializers.ValidationError("Color must be a hex value like #3b82f6")
        return color

    def create(self, validated_data):
        return self.calendar_service.create_calendar(
            actor=self.context["request"].user,
            name=validated_data["name"],
            color=validated_data.get("color"),
            guest_permission=validated_data.get("guest_permission", GuestPermission.NONE),
        )

    def update(self, instance, validated_data):
        return self.calendar_service.update_calendar(
            self.context["request"].user, instance.id, **validated_data
        )


class PermissionLevelSerializer(serializers.Serializer):
    level = serializers.ChoiceField(choices=PermissionLevel.choices)


class SharedUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email")
        read_only_fields = fields


class CalendarShareSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField()
    user = SharedUserSerializer(read_only=True)
    permission = serializers.ChoiceField(choices=SharePermission.choices)

    class Meta:
        model = CalendarShare
        fields = (
            "id",
            "calendar",
            "user_id",
            "user",
            "permission",
            "granted_by",
            "created",
            "modified",
        )
        read_only_fields = (
            "id",
            "calendar",
            "user",
            "granted_by",
            "created",
            "modified",
        )

    @inject
    def __init__(
        self,
        *args,
        share_registry_service: Annotated[
            "ShareRegistryService | None", Provide["share_registry_service"]
        ] = None,
        **kwargs,
    ):
        self.share_registry_service = share_registry_service
        super().__init__(*args, **kwargs)

    def validate_user_id(self, user_id):
        if not User.objects.filter(id=user_id, is_active=True).exists():
            raise InvalidShareTargetError()
        return user_id

    def create(self, validated_data):
        return self.share_registry_service.create_or_update_share(
            actor=self.context["request"].user,
            calendar_id=self.context["calendar_id"],
            target_user_id=validated_data["user_id"],
            level=validated_data["permission"],
        )


class CalendarSharePermissionSerializer(serializers.Serializer):
    permission = serializers.ChoiceField(choices=SharePermission.choices)


class CalendarOwnershipTransferSerializer(serializers.Serializer):
    new_owner_id = serializers.UUIDField(required=False)
    assign_to_self = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs["assign_to_self"]:
            attrs["new_owner_id"] = self.context["request"].user.pk
        elif not attrs.get("new_owner_id"):
            raise serializers.ValidationError(
                "Either new_owner_id or assign_to_self must be provided"
            )
        return attrs


class BulkCalendarOwnershipTransferSerializer(serializers.Serializer):
    calendar_ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=500
    )
    new_owner_id = serializers.UUIDField()


class CalendarAccessTokenSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)  # noqa: A003
    calendar_id = serializers.UUIDField(read_only=True)
    token_preview = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    permission = serializers.ChoiceField(choices=AccessTokenPermission.choices, read_only=True)
    expires_at = serializers.DateTimeField(read_only=True, allow_null=True)
    created_by_id = serializers.UUIDField(read_only=True, allow_null=True)
    created = serializers.DateTimeField(read_only=True)
    last_used_at = serializers.DateTimeField(read_only=True, allow_null=True)
    usage_count = serializers.IntegerField(read_only=True)
    is_active = serializers.BooleanField(read_only=True)


class CalendarAccessTokenCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    permission = serializers.ChoiceField(choices=AccessTokenPermission.choices)
    expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class CalendarAccessTokenUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    permission = serializers.ChoiceField(choices=AccessTokenPermission.choices, required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)


class IssuedAccessTokenSerializer(serializers.Serializer):
    """Response for a newly issued token. `token` is never shown again."""

    id = serializers.UUIDField(read_only=True)  # noqa: A003
    calendar_id = serializers.UUIDField(read_only=True)
    token = serializers.CharField(read_only=True)
    token_preview = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    permission = serializers.ChoiceField(choices=AccessTokenPermission.choices, read_only=True)
    expires_at = serializers.DateTimeField(read_only=True, allow_null=True)
    created = serializers.DateTimeField(read_only=True)


class AccessTokenSecretSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=255, trim_whitespace=True)


class ValidatedAccessTokenSerializer(serializers.Serializer):
    calendar_id = serializers.UUIDField(read_only=True)
    permission = serializers.ChoiceField(choices=AccessTokenPermission.choices, read_only=True)


class AccessibleCalendarSerializer(serializers.Serializer):
    calendar_id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    color = serializers.CharField(read_only=True)
    level = serializers.ChoiceField(choices=PermissionLevel.choices, read_only=True)
    source = serializers.ChoiceField(
        choices=SubscriptionSource.choices, read_only=True, allow_null=True
    )
    is_owner = serializers.BooleanField(read_only=True)


class CalendarSubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CalendarSubscription
        fields = (
            "id",
            "calendar",
            "source",
            "status",
            "modified",
        )
        read_only_fields = fields
