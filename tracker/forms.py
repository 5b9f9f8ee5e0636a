from django import forms

from tracker_ddd import DEFAULT_CATEGORY, DEFAULT_COLOR, DEFAULT_CURRENCY, ICON_CHOICES

from .models import BillingCycle, ResetType

ICON_FIELD_CHOICES = [("", "None")] + list(ICON_CHOICES.items())


class DateInput(forms.DateInput):
    input_type = "date"


class _EntityForm(forms.Form):
    optional_text_fields = ()

    def entity_kwargs(self) -> dict:
        """Cleaned data with blank optional fields mapped to None."""
        data = dict(self.cleaned_data)
        for name in self.optional_text_fields:
            data[name] = data.get(name) or None
        return data


class SubscriptionForm(_EntityForm):
    optional_text_fields = ("icon", "url", "notes")

    name = forms.CharField(max_length=255)
    category = forms.CharField(max_length=100, initial=DEFAULT_CATEGORY)
    cost = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    currency = forms.CharField(max_length=3, min_length=3, initial=DEFAULT_CURRENCY)
    billing_cycle = forms.ChoiceField(choices=BillingCycle.choices, initial=BillingCycle.MONTHLY)
    custom_cycle_days = forms.IntegerField(min_value=1, required=False)
    renewal_date = forms.DateField(widget=DateInput)
    color = forms.CharField(max_length=7, initial=DEFAULT_COLOR)
    icon = forms.ChoiceField(choices=ICON_FIELD_CHOICES, required=False)
    url = forms.URLField(required=False, assume_scheme="https")
    notes = forms.CharField(widget=forms.Textarea, required=False)
    auto_renew = forms.BooleanField(required=False, initial=True)
    enabled = forms.BooleanField(required=False, initial=True)

    def clean_currency(self):
        return self.cleaned_data["currency"].upper()

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("billing_cycle") == BillingCycle.CUSTOM and not cleaned.get("custom_cycle_days"):
            self.add_error("custom_cycle_days", "Required for a custom billing cycle.")
        return cleaned


class CreditForm(_EntityForm):
    optional_text_fields = ("logo", "url", "notes")

    name = forms.CharField(max_length=255)
    total_credits = forms.IntegerField(min_value=1)
    used_credits = forms.IntegerField(min_value=0, initial=0)
    reset_type = forms.ChoiceField(choices=ResetType.choices, initial=ResetType.MONTHLY)
    reset_day = forms.IntegerField(
        min_value=0,
        initial=1,
        help_text="Day of month (1-31), day of week (0=Sunday) or MMDD for yearly resets.",
    )
    custom_reset_days = forms.IntegerField(min_value=1, required=False)
    color = forms.CharField(max_length=7, initial=DEFAULT_COLOR)
    logo = forms.ChoiceField(choices=ICON_FIELD_CHOICES, required=False)
    url = forms.URLField(required=False, assume_scheme="https")
    notes = forms.CharField(widget=forms.Textarea, required=False)
    enabled = forms.BooleanField(required=False, initial=True)

    def clean(self):
        cleaned = super().clean()
        used, total = cleaned.get("used_credits"), cleaned.get("total_credits")
        if used is not None and total is not None and used > total:
            self.add_error("used_credits", "Cannot exceed the total credits.")
        return cleaned


class UsageUpdateForm(forms.Form):
    used_credits = forms.IntegerField()
    note = forms.CharField(max_length=500, required=False)


class RenewForm(forms.Form):
    note = forms.CharField(max_length=500, required=False)


class PassphraseForm(forms.Form):
    passphrase = forms.CharField(widget=forms.PasswordInput, strip=False)
