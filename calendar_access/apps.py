from django.apps import AppConfig


class CalendarAccessConfig(AppConfig):
    name = "calendar_access"
    verbose_name = "Calendar access"
