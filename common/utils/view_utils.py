from rest_framework.response import Response


class ServiceErrorResponseMixin:
    """
    Translates service layer exceptions into `{"error": message}` responses.
    `service_error_statuses` is checked in order, so list subclasses before their bases.
    """

    service_error_statuses: tuple[tuple[type[Exception], int], ...] = ()

    def get_service_error_headers(self, exc: Exception) -> dict[str, str]:
        return {}

    def handle_exception(self, exc):
        for error_class, status_code in self.service_error_statuses:
            if isinstance(exc, error_class):
                return Response(
                    {"error": str(exc)},
                    status=status_code,
                    headers=self.get_service_error_headers(exc),
                )
        return super().handle_exception(exc)
