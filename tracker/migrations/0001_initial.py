import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AICredit",
            fields=[
                ("id", models.CharField(editable=False, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("color", models.CharField(default="#6366f1", max_length=7)),
                ("url", models.URLField(blank=True)),
                ("notes", models.TextField(blank=True)),
                ("enabled", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
                ("logo", models.CharField(blank=True, max_length=50)),
                ("total_credits", models.PositiveIntegerField()),
                ("used_credits", models.IntegerField(default=0)),
                (
                    "reset_type",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("weekly", "Weekly"), ("yearly", "Yearly"), ("custom", "Custom")],
                        max_length=16,
                    ),
                ),
                (
                    "reset_day",
                    models.PositiveIntegerField(
                        help_text="Day of month, day of week (0=Sunday) or MMDD for yearly resets."
                    ),
                ),
                ("custom_reset_days", models.PositiveIntegerField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "AI credit",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.CharField(editable=False, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("color", models.CharField(default="#6366f1", max_length=7)),
                ("url", models.URLField(blank=True)),
                ("notes", models.TextField(blank=True)),
                ("enabled", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
                ("category", models.CharField(default="Other", max_length=100)),
                ("icon", models.CharField(blank=True, max_length=50)),
                ("cost_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("cost_currency", models.CharField(default="EUR", max_length=3)),
                (
                    "billing_cycle",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("quarterly", "Quarterly"), ("yearly", "Yearly"), ("custom", "Custom")],
                        max_length=16,
                    ),
                ),
                ("custom_cycle_days", models.PositiveIntegerField(blank=True, null=True)),
                ("renewal_date", models.DateField()),
                ("auto_renew", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="CreditHistory",
            fields=[
                ("id", models.CharField(editable=False, max_length=64, primary_key=True, serialize=False)),
                ("previous_used", models.IntegerField()),
                ("new_used", models.IntegerField()),
                ("change", models.IntegerField()),
                ("date", models.DateTimeField()),
                ("note", models.TextField(blank=True)),
                (
                    "credit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history",
                        to="tracker.aicredit",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "credit history",
                "ordering": ["-date"],
            },
        ),
        migrations.CreateModel(
            name="RenewalHistory",
            fields=[
                ("id", models.CharField(editable=False, max_length=64, primary_key=True, serialize=False)),
                ("date", models.DateTimeField()),
                ("cost_amount", models.DecimalField(decimal_places=2, max_digits=10, verbose_name="Amount")),
                ("cost_currency", models.CharField(max_length=3, verbose_name="Currency")),
                ("note", models.TextField(blank=True)),
                ("auto_renewed", models.BooleanField(default=False)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="renewal_history",
                        to="tracker.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "renewal history",
                "ordering": ["-date"],
            },
        ),
    ]
