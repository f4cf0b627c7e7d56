from audit_logs.request_context import (
    build_request_context,
    reset_request_context,
    set_request_context,
)


class AuditRequestContextMiddleware:
    """
    Makes the caller's IP address and user agent available to audit events emitted while the
    request is handled.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        token = set_request_context(build_request_context(request))
        try:
            return self.get_response(request)
        finally:
            reset_request_context(token)
