from rest_framework.exceptions import ValidationError


# API Validation Errors
class InvalidShareTargetError(ValidationError):
    default_detail = "User does not exist"
    default_code = "invalid_share_target"


# Service Layer/Internal Errors
class CalendarAccessError(Exception):
    """Base exception for calendar access errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


class InsufficientPermissionError(CalendarAccessError):
    """Raised when the actor's resolved level is too low for the requested operation"""

    default_message = "You do not have permission to perform this action on this calendar"


class CalendarAccessNotFoundError(CalendarAccessError):
    """Raised when a calendar, share or token does not exist or belongs to another calendar"""

    default_message = "Not found"


class CalendarNotFoundError(CalendarAccessNotFoundError):
    default_message = "Calendar not found"


class CalendarShareNotFoundError(CalendarAccessNotFoundError):
    default_message = "Share not found"


class CalendarAccessTokenNotFoundError(CalendarAccessNotFoundError):
    default_message = "Access token not found"


class DuplicateShareError(CalendarAccessError):
    default_message = "This calendar is already shared with this user"


class InvalidShareLevelError(CalendarAccessError):
    default_message = "Ownership cannot be granted through a share"


class InvalidExpirationError(CalendarAccessError):
    default_message = "Expiration date must be in the future"


class InvalidTokenPermissionError(CalendarAccessError):
    default_message = "Access tokens can only grant read or write access"


class InvalidAccessTokenError(CalendarAccessError):
    """
    Raised for unknown, inactive and expired tokens alike, so callers cannot tell which case
    applied.
    """

    default_message = "Invalid or expired access token"


class RateLimitedError(CalendarAccessError):
    default_message = "Rate limit exceeded. Please wait before trying again"

    def __init__(self, retry_after: int, message: str | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class StorageUnavailableError(CalendarAccessError):
    """Raised when the permission store could not be read or written"""

    default_message = "Calendar access storage is unavailable"


class UserNotFoundError(CalendarAccessNotFoundError):
    default_message = "User not found"
