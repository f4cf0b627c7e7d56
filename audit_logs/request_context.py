from contextvars import ContextVar
from dataclasses import dataclass

from django.http import HttpRequest


@dataclass(frozen=True)
class AuditRequestContext:
    ip_address: str | None = None
    user_agent: str | None = None


_current_request_context: ContextVar[AuditRequestContext | None] = ContextVar(
    "audit_request_context", default=None
)


def get_client_ip(request: HttpRequest) -> str | None:
    forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or None
    return request.META.get("HTTP_X_REAL_IP") or request.META.get("REMOTE_ADDR") or None


def build_request_context(request: HttpRequest) -> AuditRequestContext:
    return AuditRequestContext(
        ip_address=get_client_ip(request),
        user_agent=request.META.get("HTTP_USER_AGENT") or None,
    )


def get_request_context() -> AuditRequestContext:
    return _current_request_context.get() or AuditRequestContext()


def set_request_context(context: AuditRequestContext | None):
    return _current_request_context.set(context)


def reset_request_context(token) -> None:
    _current_request_context.reset(token)
