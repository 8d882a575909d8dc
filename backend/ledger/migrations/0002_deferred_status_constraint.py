from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("ledger", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="deferredpayment",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    models.Q(("remaining_amount", 0), ("status", "completed")),
                    models.Q(("remaining_amount__gt", 0), ("status", "pending")),
                    _connector="OR",
                ),
                name="chk_deferred_status_matches_remaining",
            ),
        ),
    ]
