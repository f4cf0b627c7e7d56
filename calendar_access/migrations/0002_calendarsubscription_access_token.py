import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("calendar_access", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="calendarsubscription",
            name="access_token",
            field=models.ForeignKey(
                blank=True,
                help_text="Token the user redeemed to reach the calendar, kept so the link keeps working.",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="subscriptions",
                to="calendar_access.calendaraccesstoken",
            ),
        ),
    ]
