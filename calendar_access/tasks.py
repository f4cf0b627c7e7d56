import datetime
import uuid
from typing import TYPE_CHECKING, Annotated

from dependency_injector.wiring import Provide, inject

from calendar_access_api.celery import app


if TYPE_CHECKING:
    from calendar_access.services.protocols.access_token_store import AccessTokenStore


@app.task
@inject
def record_access_token_usage(
    token_id: str,
    used_at: str,
    access_token_store: Annotated["AccessTokenStore | None", Provide["access_token_store"]] = None,
):
    if not access_token_store:
        return

    access_token_store.record_usage(
        uuid.UUID(token_id), datetime.datetime.fromisoformat(used_at)
    )
