from decimal import Decimal

from django import template

from tracker_ddd import ICON_CHOICES, RenewalStatus

register = template.Library()

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£", "CAD": "$"}

STATUS_LABELS = {
    RenewalStatus.OVERDUE: "Overdue",
    RenewalStatus.TODAY: "Today",
    RenewalStatus.THIS_WEEK: "This week",
    RenewalStatus.THIS_MONTH: "This month",
    RenewalStatus.LATER: "Later",
}


@register.filter(name="add_class")
def add_class(field, css_class: str):
    attrs = field.field.widget.attrs.copy()
    existing = attrs.get("class", "")
    attrs["class"] = f"{existing} {css_class}".strip() if existing else css_class
    return field.as_widget(attrs=attrs)


@register.filter
def money(amount, currency: str = "EUR"):
    """Two-decimal amount prefixed with the currency symbol (or code)."""
    if amount is None:
        return ""
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper())
    return f"{symbol}{value}" if symbol else f"{value} {currency}"


@register.filter
def status_label(status):
    return STATUS_LABELS.get(status, "")


@register.filter
def icon_label(token):
    return ICON_CHOICES.get(token or "", "")


@register.filter
def signed(number):
    return f"+{number}" if number and number > 0 else str(number)
