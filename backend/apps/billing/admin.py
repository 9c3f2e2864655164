"""
Admin configuration for billing app.
"""

from django.contrib import admin

from apps.billing.models import PromoCode, Subscription, SubscriptionStatus


@admin.register(PromoCode)
class PromoCodeAdmin(admin.ModelAdmin):
    """Promo codes are created and retired here."""

    list_display = [
        "code",
        "discount_percentage",
        "is_active",
        "valid_from",
        "expires_at",
        "redemptions_display",
    ]
    list_filter = ["is_active"]
    search_fields = ["code"]
    readonly_fields = ["times_redeemed", "created_at", "updated_at"]

    def redemptions_display(self, obj: PromoCode) -> str:
        limit = obj.max_redemptions if obj.max_redemptions is not None else "∞"
        return f"{obj.times_redeemed} / {limit}"

    redemptions_display.short_description = "Redemptions"  # type: ignore[attr-defined]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Read-mostly view of the Stripe mirror."""

    list_display = [
        "user",
        "plan_id",
        "status",
        "number_of_beds",
        "has_boost",
        "current_period_end",
        "cancel_at_period_end",
    ]
    list_filter = ["plan_id", "status", "has_boost"]
    search_fields = ["user__email", "stripe_subscription_id"]
    readonly_fields = ["stripe_subscription_id", "created_at", "updated_at"]
    raw_id_fields = ["user"]


@admin.register(SubscriptionStatus)
class SubscriptionStatusAdmin(admin.ModelAdmin):
    list_display = ["user", "status", "plan_id", "beds_count", "is_active", "updated_at"]
    list_filter = ["status", "is_active"]
    search_fields = ["user__email", "subscription_id"]
    raw_id_fields = ["user"]
