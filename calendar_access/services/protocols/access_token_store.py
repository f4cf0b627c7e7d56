import datetime
import uuid
from collections.abc import Iterable
from typing import Protocol

from calendar_access.constants import AccessTokenPermission
from calendar_access.services.dataclasses import AccessTokenData


class AccessTokenStore(Protocol):
    """
    Persistence contract for access tokens. Holds no policy: permission checks, expiry rules and
    auditing belong to the callers. Storage failures surface as `StorageUnavailableError`.
    """

    def create(
        self,
        calendar_id: uuid.UUID,
        token_hash: str,
        token_preview: str,
        permission: AccessTokenPermission,
        name: str = "",
        expires_at: datetime.datetime | None = None,
        created_by_id: uuid.UUID | None = None,
    ) -> AccessTokenData:
        ...

    def get(self, token_id: uuid.UUID) -> AccessTokenData | None:
        ...

    def get_usable_by_hash(self, token_hash: str, now: datetime.datetime) -> AccessTokenData | None:
        """Return the active, unexpired token with this hash, if any."""
        ...

    def get_usable(self, token_id: uuid.UUID, now: datetime.datetime) -> AccessTokenData | None:
        """Return the token with this id if it is active and unexpired."""
        ...

    def list_for_calendar(self, calendar_id: uuid.UUID) -> Iterable[AccessTokenData]:
        ...

    def update(self, token_id: uuid.UUID, **changes) -> AccessTokenData | None:
        ...

    def delete(self, token_id: uuid.UUID) -> bool:
        ...

    def record_usage(self, token_id: uuid.UUID, used_at: datetime.datetime) -> None:
        ...
