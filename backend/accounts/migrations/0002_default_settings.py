from django.db import migrations


DEFAULTS = [
    ("companyName", "شركة تقنية للمقاولات", "اسم الشركة"),
    ("currency", "د.ع", "رمز العملة"),
    ("dateFormat", "DD/MM/YYYY", "صيغة التاريخ"),
    ("language", "ar", "اللغة"),
]


def seed_settings(apps, schema_editor):
    AppSetting = apps.get_model("accounts", "AppSetting")
    for key, value, description in DEFAULTS:
        AppSetting.objects.get_or_create(
            key=key,
            defaults={"value": value, "description": description},
        )


class Migration(migrations.Migration):

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_settings, migrations.RunPython.noop),
    ]
