"""
Billing models - Stripe subscriptions, denormalized status rows and promo codes.
"""

from django.conf import settings
from django.db import models

from apps.core.models import TimestampedModel


class PlanId(models.TextChoices):
    BASIC = "basic", "Starter"
    PRO = "pro", "Pro"
    ELITE = "elite", "Elite"


class Subscription(TimestampedModel):
    """
    Owner's Stripe subscription.

    Source of truth is Stripe - synced via webhooks and status checks.
    Rows are never deleted; a deleted Stripe subscription becomes CANCELED.
    Changes observed before ``synced_at`` are ignored.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        CANCELED = "canceled", "Canceled"
        EXPIRED = "expired", "Expired"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
    )
    plan_id = models.CharField(
        max_length=20,
        choices=PlanId.choices,
        default=PlanId.BASIC,
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
        help_text="Normalized subscription status",
    )
    number_of_beds = models.PositiveIntegerField(
        default=1,
        help_text="Billed quantity of the plan line item",
    )
    has_boost = models.BooleanField(
        default=False,
        help_text="Boost add-on line item present",
    )
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period (next invoice date)",
    )
    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="If True, subscription will cancel at period end",
    )
    synced_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Stripe observation time of the last applied change",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(number_of_beds__gte=1),
                name="billing_subscription_beds_gte_1",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user.email} - {self.plan_id} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE


class SubscriptionStatus(models.Model):
    """
    Denormalized, per-user subscription status for fast reads.

    Written by every status check and webhook. ``updated_at`` is the time the
    status was observed at Stripe, not the row write time, so writes can be
    ordered: an upsert carrying an older observation is ignored.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="subscription_status",
    )
    subscription_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, default="none")
    plan_id = models.CharField(max_length=20, blank=True)
    beds_count = models.PositiveIntegerField(default=1)
    has_boost = models.BooleanField(default=False)
    is_active = models.BooleanField(default=False)
    current_period_end = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField()

    class Meta:
        verbose_name_plural = "subscription statuses"

    def __str__(self) -> str:
        return f"{self.user_id}: {self.status}"


class PromoCode(TimestampedModel):
    """
    Percentage discount code entered on the subscription page.

    Managed in Django admin. ``stripe_coupon_id`` links the code to a Stripe
    coupon so the discount is actually applied at checkout.
    """

    code = models.CharField(max_length=50, unique=True)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    is_active = models.BooleanField(default=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    max_redemptions = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Leave empty for unlimited redemptions",
    )
    times_redeemed = models.PositiveIntegerField(default=0)
    stripe_coupon_id = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_percentage__gte=0)
                & models.Q(discount_percentage__lte=100),
                name="billing_promocode_discount_0_100",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.discount_percentage}%)"

    def save(self, *args, **kwargs) -> None:
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)
