import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Quote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(blank=True, null=True)),
                ("total_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("unknown", "Unknown"),
                            ("cash", "Cash"),
                            ("credit_card", "Credit Card"),
                            ("debit_card", "Debit Card"),
                            ("pix", "Pix"),
                            ("bank_transfer", "Bank Transfer"),
                        ],
                        default="unknown",
                        max_length=32,
                    ),
                ),
                ("payment_conditions", models.CharField(blank=True, max_length=500)),
                ("cash_discount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("is_archived", models.BooleanField(default=False)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="quotes",
                        to="customers.customer",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="quotes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["customer", "created_at"], name="quote_customer_created_idx"),
                    models.Index(fields=["user", "created_at"], name="quote_user_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="QuoteItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(max_length=500)),
                ("quantity", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("unit_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("total_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("order", models.PositiveIntegerField()),
                ("custom_fields", models.JSONField(blank=True, default=dict)),
                (
                    "quote",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="quotes.quote",
                    ),
                ),
            ],
            options={
                "ordering": ["order"],
                "constraints": [
                    models.UniqueConstraint(fields=("quote", "order"), name="uniq_quote_item_order"),
                ],
            },
        ),
    ]
