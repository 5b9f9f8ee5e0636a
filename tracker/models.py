from django.db import models

from tracker_ddd import DEFAULT_CATEGORY, DEFAULT_COLOR, DEFAULT_CURRENCY


class TrackedModel(models.Model):
    """Abstract base for entities whose id and timestamps are assigned by the tracker core."""

    id = models.CharField(primary_key=True, max_length=64, editable=False)
    name = models.CharField(max_length=255)
    color = models.CharField(max_length=7, default=DEFAULT_COLOR)
    url = models.URLField(blank=True)
    notes = models.TextField(blank=True)
    enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class BillingCycle(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    QUARTERLY = "quarterly", "Quarterly"
    YEARLY = "yearly", "Yearly"
    CUSTOM = "custom", "Custom"


class ResetType(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    WEEKLY = "weekly", "Weekly"
    YEARLY = "yearly", "Yearly"
    CUSTOM = "custom", "Custom"


class Subscription(TrackedModel):
    """Paid subscription renewing on a billing cycle."""

    category = models.CharField(max_length=100, default=DEFAULT_CATEGORY)
    icon = models.CharField(max_length=50, blank=True)
    cost_amount = models.DecimalField(max_digits=10, decimal_places=2)
    cost_currency = models.CharField(max_length=3, default=DEFAULT_CURRENCY)
    billing_cycle = models.CharField(max_length=16, choices=BillingCycle.choices)
    custom_cycle_days = models.PositiveIntegerField(null=True, blank=True)
    renewal_date = models.DateField()
    auto_renew = models.BooleanField(default=True)

    class Meta(TrackedModel.Meta):
        pass


class AICredit(TrackedModel):
    """Credit allotment of an AI service."""

    logo = models.CharField(max_length=50, blank=True)
    total_credits = models.PositiveIntegerField()
    used_credits = models.IntegerField(default=0)
    reset_type = models.CharField(max_length=16, choices=ResetType.choices)
    reset_day = models.PositiveIntegerField(
        help_text="Day of month, day of week (0=Sunday) or MMDD for yearly resets."
    )
    custom_reset_days = models.PositiveIntegerField(null=True, blank=True)

    class Meta(TrackedModel.Meta):
        verbose_name = "AI credit"


class RenewalHistory(models.Model):
    """Processed renewals of a subscription."""

    id = models.CharField(primary_key=True, max_length=64, editable=False)
    subscription = models.ForeignKey(
        Subscription, on_delete=models.CASCADE, related_name="renewal_history"
    )
    date = models.DateTimeField()
    cost_amount = models.DecimalField(max_digits=10, decimal_places=2, verbose_name="Amount")
    cost_currency = models.CharField(max_length=3, verbose_name="Currency")
    note = models.TextField(blank=True)
    auto_renewed = models.BooleanField(default=False)

    class Meta:
        ordering = ["-date"]
        verbose_name_plural = "renewal history"

    def __str__(self) -> str:
        return f"{self.subscription} renewed on {self.date:%Y-%m-%d}"


class CreditHistory(models.Model):
    """Changes to the used credits of an allotment."""

    id = models.CharField(primary_key=True, max_length=64, editable=False)
    credit = models.ForeignKey(AICredit, on_delete=models.CASCADE, related_name="history")
    previous_used = models.IntegerField()
    new_used = models.IntegerField()
    change = models.IntegerField()
    date = models.DateTimeField()
    note = models.TextField(blank=True)

    class Meta:
        ordering = ["-date"]
        verbose_name_plural = "credit history"

    def __str__(self) -> str:
        return f"{self.credit}: {self.previous_used} -> {self.new_used}"
