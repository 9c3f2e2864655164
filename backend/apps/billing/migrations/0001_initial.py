import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PromoCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("discount_percentage", models.DecimalField(decimal_places=2, max_digits=5)),
                ("is_active", models.BooleanField(default=True)),
                ("valid_from", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "max_redemptions",
                    models.PositiveIntegerField(
                        blank=True, help_text="Leave empty for unlimited redemptions", null=True
                    ),
                ),
                ("times_redeemed", models.PositiveIntegerField(default=0)),
                ("stripe_coupon_id", models.CharField(blank=True, max_length=255)),
            ],
            options={
                "ordering": ["code"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("discount_percentage__gte", 0), ("discount_percentage__lte", 100)),
                        name="billing_promocode_discount_0_100",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "plan_id",
                    models.CharField(
                        choices=[("basic", "Starter"), ("pro", "Pro"), ("elite", "Elite")],
                        default="basic",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("canceled", "Canceled"), ("expired", "Expired")],
                        db_index=True,
                        default="active",
                        help_text="Normalized subscription status",
                        max_length=20,
                    ),
                ),
                (
                    "number_of_beds",
                    models.PositiveIntegerField(default=1, help_text="Billed quantity of the plan line item"),
                ),
                ("has_boost", models.BooleanField(default=False, help_text="Boost add-on line item present")),
                (
                    "current_period_end",
                    models.DateTimeField(
                        blank=True, help_text="End of current billing period (next invoice date)", null=True
                    ),
                ),
                (
                    "cancel_at_period_end",
                    models.BooleanField(default=False, help_text="If True, subscription will cancel at period end"),
                ),
                (
                    "synced_at",
                    models.DateTimeField(
                        blank=True, help_text="Stripe observation time of the last applied change", null=True
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("number_of_beds__gte", 1)),
                        name="billing_subscription_beds_gte_1",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SubscriptionStatus",
            fields=[
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="subscription_status",
                        serialize=False,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                ("subscription_id", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(default="none", max_length=20)),
                ("plan_id", models.CharField(blank=True, max_length=20)),
                ("beds_count", models.PositiveIntegerField(default=1)),
                ("has_boost", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=False)),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "verbose_name_plural": "subscription statuses",
            },
        ),
    ]
