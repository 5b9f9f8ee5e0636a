import logging
from datetime import date
from enum import Enum
from functools import cached_property

from django.conf import settings
from django.contrib import messages
from django.http import Http404
from django.shortcuts import redirect
from django.urls import reverse, reverse_lazy
from django.utils.http import url_has_allowed_host_and_scheme
from django.views import View, generic

from tracker_ddd import (
    AI_SERVICE_PRESETS,
    AICredit,
    CycleCalculator,
    NotFoundError,
    StorageError,
    Subscription,
    ValidationError,
    find_preset,
)

from .forms import CreditForm, PassphraseForm, RenewForm, SubscriptionForm, UsageUpdateForm
from .gate import PassphraseGate, PassphraseRequiredMixin
from .services import CreditUseCases, SubscriptionUseCases

logger = logging.getLogger(__name__)


def report(request, result, success_message: str) -> None:
    """Flash the outcome of a write use case."""
    if result.ok:
        messages.success(request, success_message)
    else:
        logger.warning("Showing stale data after storage error: %s", result.error)
        messages.error(request, f"Storage error, showing the last known data: {result.error}")


class StorageAwareMixin(PassphraseRequiredMixin):
    """Send the user back to the dashboard with a notice when storage cannot be read."""

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except StorageError as exc:
            logger.warning("Storage unavailable for %s: %s", request.path, exc)
            messages.error(request, f"Storage error, nothing was changed: {exc}")
            return redirect("tracker:dashboard")


class LandingPageView(generic.FormView):
    template_name = "home.html"
    form_class = PassphraseForm

    def dispatch(self, request, *args, **kwargs):
        self.gate = PassphraseGate(request.session)
        if self.gate.status().authenticated:
            return redirect("tracker:dashboard")
        return super().dispatch(request, *args, **kwargs)

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context["gate"] = self.gate.status()
        return context

    def form_valid(self, form):
        if not self.gate.configured:
            form.add_error(None, "No passphrase is configured on the server.")
            return self.form_invalid(form)
        status = self.gate.attempt(form.cleaned_data["passphrase"])
        if status.authenticated:
            target = self.request.GET.get("next", "")
            if not url_has_allowed_host_and_scheme(target, allowed_hosts={self.request.get_host()}):
                target = reverse("tracker:dashboard")
            return redirect(target)
        if status.blocked:
            form.add_error(None, "Too many failed attempts. Try again later.")
        else:
            form.add_error(None, f"Wrong passphrase, {status.remaining_attempts} attempt(s) left.")
        return self.form_invalid(form)


class LogoutView(View):
    def post(self, request):
        PassphraseGate(request.session).logout()
        return redirect("home")


class DashboardView(PassphraseRequiredMixin, generic.TemplateView):
    template_name = "tracker/dashboard.html"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context["costs"] = SubscriptionUseCases().insights.execute()
        context["credits"] = CreditUseCases().insights.execute()
        context["base_currency"] = settings.BASE_CURRENCY
        return context


class EntityFormView(StorageAwareMixin, generic.FormView):
    """Create form for a tracked entity; subclasses pick the variant."""

    template_name = "tracker/form.html"
    use_cases_class = SubscriptionUseCases
    entity_class = Subscription
    title = ""
    offers_presets = True
    # form field that receives a preset's logo
    preset_logo_field = "icon"

    @cached_property
    def use_cases(self):
        return self.use_cases_class()

    def get_initial(self):
        initial = super().get_initial()
        preset = find_preset(self.request.GET.get("preset", ""))
        if preset is not None:
            initial.update(
                name=preset.name,
                color=preset.color,
                url=preset.url,
                **{self.preset_logo_field: preset.logo},
            )
        return initial

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context["title"] = self.title
        context["presets"] = AI_SERVICE_PRESETS if self.offers_presets else ()
        return context

    def save(self, form):
        return self.use_cases.create.execute(self.entity_class(id="", **form.entity_kwargs()))

    def form_valid(self, form):
        try:
            result = self.save(form)
        except ValidationError as exc:
            form.add_error(None, str(exc))
            return self.form_invalid(form)
        report(self.request, result, f"{form.cleaned_data['name']} saved.")
        return super().form_valid(form)


class EntityUpdateMixin:
    """Turns an EntityFormView into an edit form for the entity in the URL."""

    offers_presets = False

    @cached_property
    def entity(self):
        entity = self.use_cases.repo.find_by_id(self.kwargs["pk"])
        if entity is None:
            raise Http404(f"{self.entity_class.__name__} not found")
        return entity

    def get_initial(self):
        initial = {}
        for name in self.form_class.base_fields:
            value = getattr(self.entity, name)
            initial[name] = value.value if isinstance(value, Enum) else value
        return initial

    def save(self, form):
        return self.use_cases.modify.execute(self.entity.id, **form.entity_kwargs())


class EntityDeleteView(StorageAwareMixin, generic.TemplateView):
    template_name = "tracker/confirm_delete.html"
    use_cases_class = SubscriptionUseCases
    list_url_name = "tracker:subscription-list"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        entity = self.use_cases_class().repo.find_by_id(kwargs["pk"])
        if entity is None:
            raise Http404("Entity not found")
        context["object"] = entity
        context["cancel_url"] = reverse(self.list_url_name)
        return context

    def post(self, request, pk):
        try:
            result = self.use_cases_class().remove.execute(pk)
        except NotFoundError:
            raise Http404("Entity not found")
        report(request, result, "Deleted along with its history.")
        return redirect(self.list_url_name)


# ----------------------------------------------------------------------------
# Subscriptions
# ----------------------------------------------------------------------------


class SubscriptionListView(StorageAwareMixin, generic.TemplateView):
    template_name = "tracker/subscription_list.html"
    orderings = {
        "name": lambda s: s.name.lower(),
        "cost": lambda s: s.cost,
        "renewal_date": lambda s: s.renewal_date,
        "category": lambda s: s.category.lower(),
    }

    def get_subscriptions(self):
        subscriptions = SubscriptionUseCases().repo.find_all()
        category = self.request.GET.get("category")
        search = self.request.GET.get("q", "").strip().lower()
        if category:
            subscriptions = [s for s in subscriptions if s.category == category]
        if search:
            subscriptions = [
                s for s in subscriptions
                if search in s.name.lower() or search in s.category.lower()
            ]
        order = self.request.GET.get("order", "renewal_date")
        key = self.orderings.get(order.lstrip("-"), self.orderings["renewal_date"])
        return sorted(subscriptions, key=key, reverse=order.startswith("-"))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        today = date.today()
        rows = []
        for sub in self.get_subscriptions():
            days = CycleCalculator.days_until(sub.renewal_date, today)
            rows.append({
                "subscription": sub,
                "days_until": days,
                "status": CycleCalculator.renewal_status(days),
            })
        context["rows"] = rows
        context["selected_category"] = self.request.GET.get("category", "")
        context["search"] = self.request.GET.get("q", "")
        context["order"] = self.request.GET.get("order", "renewal_date")
        return context


class SubscriptionCreateView(EntityFormView):
    form_class = SubscriptionForm
    success_url = reverse_lazy("tracker:subscription-list")
    title = "New subscription"


class SubscriptionUpdateView(EntityUpdateMixin, SubscriptionCreateView):
    title = "Edit subscription"


class SubscriptionDeleteView(EntityDeleteView):
    pass


class SubscriptionRenewView(StorageAwareMixin, View):
    def post(self, request, pk):
        form = RenewForm(request.POST)
        note = form.cleaned_data["note"] if form.is_valid() else ""
        try:
            result = SubscriptionUseCases().renew.execute(pk, note=note or None)
        except NotFoundError:
            raise Http404("Subscription not found")
        report(request, result, "Subscription renewed.")
        return redirect("tracker:subscription-list")


# ----------------------------------------------------------------------------
# AI credits
# ----------------------------------------------------------------------------


class CreditListView(StorageAwareMixin, generic.TemplateView):
    template_name = "tracker/credit_list.html"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        today = date.today()
        credits = sorted(CreditUseCases().repo.find_all(), key=lambda c: c.name.lower())
        context["rows"] = [
            {
                "credit": credit,
                "next_reset": CycleCalculator.next_reset_date(credit, today),
                "days_until": CycleCalculator.days_until_entity(credit, today),
                "progress": CycleCalculator.cycle_progress_percent(credit, today),
                "usage_form": UsageUpdateForm(initial={"used_credits": credit.used_credits}),
            }
            for credit in credits
        ]
        return context


class CreditCreateView(EntityFormView):
    form_class = CreditForm
    use_cases_class = CreditUseCases
    entity_class = AICredit
    success_url = reverse_lazy("tracker:credit-list")
    preset_logo_field = "logo"
    title = "New AI credit"


class CreditUpdateView(EntityUpdateMixin, CreditCreateView):
    title = "Edit AI credit"


class CreditDeleteView(EntityDeleteView):
    use_cases_class = CreditUseCases
    list_url_name = "tracker:credit-list"


class CreditUsageView(StorageAwareMixin, View):
    def post(self, request, pk):
        use_cases = CreditUseCases()
        credit = use_cases.repo.find_by_id(pk)
        if credit is None:
            raise Http404("Credit not found")
        form = UsageUpdateForm(request.POST)
        if not form.is_valid():
            messages.error(request, "Enter a whole number of used credits.")
            return redirect("tracker:credit-list")

        used = min(max(form.cleaned_data["used_credits"], 0), credit.total_credits)
        result = use_cases.update_usage.execute(pk, used, note=form.cleaned_data["note"] or None)
        report(request, result, f"{credit.name}: {used} / {credit.total_credits} credits used.")
        return redirect("tracker:credit-list")


# ----------------------------------------------------------------------------
# History
# ----------------------------------------------------------------------------


class HistoryView(StorageAwareMixin, generic.TemplateView):
    template_name = "tracker/history.html"
    use_cases = {"subscription": SubscriptionUseCases, "credit": CreditUseCases}

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        if kwargs["kind"] not in self.use_cases:
            raise Http404("Unknown history kind")
        use_cases = self.use_cases[kwargs["kind"]]()
        try:
            context["history"] = use_cases.history.execute(kwargs["pk"])
        except NotFoundError:
            raise Http404("Entity not found")
        context["object"] = use_cases.repo.find_by_id(kwargs["pk"])
        context["kind"] = kwargs["kind"]
        return context
