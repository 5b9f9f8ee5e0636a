from datetime import date, datetime, timedelta
from decimal import Decimal
from urllib.parse import urlencode

from django.contrib.sessions.models import Session
from django.test import TestCase, override_settings
from django.urls import reverse

from tracker_application import CREDITS_KEY

from ..gate import PassphraseGate
from ..models import AICredit, CreditHistory, RenewalHistory, Subscription
from ..services import CreditUseCases, _memory_store

PASSPHRASE = "open sesame"


def make_subscription(**overrides):
    now = datetime.now()
    data = dict(
        id="sub-1",
        name="Chat Pro",
        category="AI",
        cost_amount=Decimal("20.00"),
        cost_currency="EUR",
        billing_cycle="monthly",
        renewal_date=date.today() + timedelta(days=3),
        created_at=now,
        updated_at=now,
    )
    data.update(overrides)
    return Subscription.objects.create(**data)


def make_credit(**overrides):
    now = datetime.now()
    data = dict(
        id="credit-1",
        name="Image credits",
        total_credits=100,
        used_credits=50,
        reset_type="monthly",
        reset_day=1,
        created_at=now,
        updated_at=now,
    )
    data.update(overrides)
    return AICredit.objects.create(**data)


@override_settings(TRACKER_PASSPHRASE=PASSPHRASE, TRACKER_PASSPHRASE_HASH="", TRACKER_STORAGE_BACKEND="database")
class GateTestCase(TestCase):
    def unlock(self):
        response = self.client.post(reverse("home"), {"passphrase": PASSPHRASE})
        self.assertRedirects(response, reverse("tracker:dashboard"))


class PassphraseGateTests(GateTestCase):
    def test_locked_pages_redirect_to_the_gate(self):
        response = self.client.get(reverse("tracker:dashboard"))

        expected = f"{reverse('home')}?{urlencode({'next': reverse('tracker:dashboard')})}"
        self.assertRedirects(response, expected)

    def test_correct_passphrase_unlocks_and_honours_next(self):
        target = reverse("tracker:credit-list")
        response = self.client.post(
            f"{reverse('home')}?{urlencode({'next': target})}", {"passphrase": PASSPHRASE}
        )

        self.assertRedirects(response, target)
        self.assertEqual(self.client.get(target).status_code, 200)

    def test_external_next_is_ignored(self):
        response = self.client.post(
            f"{reverse('home')}?{urlencode({'next': 'https://evil.example.com/'})}",
            {"passphrase": PASSPHRASE},
        )

        self.assertRedirects(response, reverse("tracker:dashboard"))

    def test_wrong_passphrase_counts_down(self):
        response = self.client.post(reverse("home"), {"passphrase": "nope"})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "4 attempt(s) left")

    @override_settings(TRACKER_GATE_MAX_ATTEMPTS=2)
    def test_too_many_failures_block_even_the_right_passphrase(self):
        for _ in range(2):
            self.client.post(reverse("home"), {"passphrase": "nope"})

        response = self.client.post(reverse("home"), {"passphrase": PASSPHRASE})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.context["gate"].blocked)
        self.assertEqual(self.client.get(reverse("tracker:dashboard")).status_code, 302)

    @override_settings(TRACKER_PASSPHRASE="", TRACKER_PASSPHRASE_HASH="")
    def test_missing_passphrase_configuration_keeps_the_gate_shut(self):
        response = self.client.post(reverse("home"), {"passphrase": "admin"})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "No passphrase is configured")
        self.assertEqual(self.client.get(reverse("tracker:dashboard")).status_code, 302)

    def test_failure_count_is_kept_server_side(self):
        self.client.post(reverse("home"), {"passphrase": "nope"})

        session = Session.objects.get()
        self.assertEqual(self.client.cookies["sessionid"].value, session.session_key)
        self.assertEqual(session.get_decoded()[PassphraseGate.SESSION_KEY], {"failures": 1})

    def test_unlocked_session_skips_the_landing_page(self):
        self.unlock()

        response = self.client.get(reverse("home"))

        self.assertRedirects(response, reverse("tracker:dashboard"))

    def test_logout_locks_again(self):
        self.unlock()

        self.client.post(reverse("logout"))

        self.assertEqual(self.client.get(reverse("tracker:dashboard")).status_code, 302)


class DashboardViewTests(GateTestCase):
    def test_displays_cost_and_credit_insights(self):
        make_subscription()
        make_subscription(id="sub-2", name="Yearly", cost_amount=Decimal("120"), billing_cycle="yearly")
        make_subscription(id="sub-3", name="Off", enabled=False)
        make_credit(used_credits=95)
        self.unlock()

        response = self.client.get(reverse("tracker:dashboard"))

        self.assertEqual(response.status_code, 200)
        costs = response.context["costs"]
        self.assertEqual(costs["active_subscriptions"], 2)
        self.assertEqual(costs["monthly_total"], Decimal("30"))
        self.assertEqual(len(costs["weekly_buckets"]), 4)
        self.assertEqual([c.name for c in response.context["credits"]["low_credits"]], ["Image credits"])
        self.assertContains(response, "Running low")


class SubscriptionViewTests(GateTestCase):
    def setUp(self):
        self.unlock()

    def form_data(self, **overrides):
        data = {
            "name": "Music",
            "category": "Entertainment",
            "cost": "9.99",
            "currency": "usd",
            "billing_cycle": "monthly",
            "custom_cycle_days": "",
            "renewal_date": "2024-05-01",
            "color": "#6366f1",
            "icon": "music",
            "url": "",
            "notes": "",
            "auto_renew": "on",
            "enabled": "on",
        }
        data.update(overrides)
        return data

    def test_create_subscription_flow(self):
        response = self.client.post(reverse("tracker:subscription-add"), self.form_data())

        self.assertRedirects(response, reverse("tracker:subscription-list"))
        subscription = Subscription.objects.get()
        self.assertEqual(subscription.name, "Music")
        self.assertEqual(subscription.cost_currency, "USD")
        self.assertEqual(subscription.cost_amount, Decimal("9.99"))
        self.assertEqual(len(subscription.id), 32)

    def test_custom_cycle_requires_days(self):
        response = self.client.post(
            reverse("tracker:subscription-add"), self.form_data(billing_cycle="custom")
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Subscription.objects.exists())

    def test_edit_prefills_and_updates(self):
        subscription = make_subscription()
        url = reverse("tracker:subscription-edit", args=[subscription.id])

        response = self.client.get(url)
        self.assertEqual(response.context["form"].initial["billing_cycle"], "monthly")

        response = self.client.post(url, self.form_data(name="Chat Team"))
        self.assertRedirects(response, reverse("tracker:subscription-list"))
        subscription.refresh_from_db()
        self.assertEqual(subscription.name, "Chat Team")
        self.assertGreater(subscription.updated_at, subscription.created_at)

    def test_edit_missing_subscription_is_404(self):
        response = self.client.get(reverse("tracker:subscription-edit", args=["missing"]))

        self.assertEqual(response.status_code, 404)

    def test_list_filters_and_labels(self):
        make_subscription()
        make_subscription(id="sub-2", name="Storage", category="Cloud")

        response = self.client.get(reverse("tracker:subscription-list"), {"category": "AI"})

        self.assertEqual([row["subscription"].name for row in response.context["rows"]], ["Chat Pro"])
        self.assertEqual(response.context["rows"][0]["days_until"], 3)
        self.assertContains(response, "This week")

    def test_renew_advances_date_and_records_history(self):
        subscription = make_subscription(renewal_date=date(2024, 1, 15))

        response = self.client.post(
            reverse("tracker:subscription-renew", args=[subscription.id]), {"note": "paid"}
        )

        self.assertRedirects(response, reverse("tracker:subscription-list"))
        subscription.refresh_from_db()
        self.assertEqual(subscription.renewal_date, date(2024, 2, 15))
        entry = RenewalHistory.objects.get()
        self.assertEqual(entry.cost_amount, Decimal("20.00"))
        self.assertEqual(entry.note, "paid")

    def test_delete_removes_history(self):
        subscription = make_subscription()
        self.client.post(reverse("tracker:subscription-renew", args=[subscription.id]))
        url = reverse("tracker:subscription-delete", args=[subscription.id])

        self.assertContains(self.client.get(url), "Delete Chat Pro?")
        response = self.client.post(url)

        self.assertRedirects(response, reverse("tracker:subscription-list"))
        self.assertFalse(Subscription.objects.exists())
        self.assertFalse(RenewalHistory.objects.exists())

    def test_history_page(self):
        subscription = make_subscription()
        self.client.post(reverse("tracker:subscription-renew", args=[subscription.id]))

        response = self.client.get(reverse("tracker:history", args=["subscription", subscription.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.context["history"]), 1)

    def test_history_of_unknown_kind_or_entity_is_404(self):
        subscription = make_subscription()

        self.assertEqual(
            self.client.get(reverse("tracker:history", args=["invoice", subscription.id])).status_code, 404
        )
        self.assertEqual(
            self.client.get(reverse("tracker:history", args=["subscription", "missing"])).status_code, 404
        )


class CreditViewTests(GateTestCase):
    def setUp(self):
        self.unlock()

    def test_create_credit_flow(self):
        response = self.client.post(
            reverse("tracker:credit-add"),
            {
                "name": "Video credits",
                "total_credits": "500",
                "used_credits": "0",
                "reset_type": "weekly",
                "reset_day": "1",
                "custom_reset_days": "",
                "color": "#10b981",
                "logo": "video",
                "url": "https://video.example.com",
                "notes": "",
                "enabled": "on",
            },
        )

        self.assertRedirects(response, reverse("tracker:credit-list"))
        credit = AICredit.objects.get()
        self.assertEqual(credit.reset_type, "weekly")
        self.assertEqual(credit.url, "https://video.example.com")

    def test_preset_prefills_the_credit_form(self):
        response = self.client.get(reverse("tracker:credit-add"), {"preset": "Claude"})

        initial = response.context["form"].initial
        self.assertEqual(initial["name"], "Claude")
        self.assertEqual(initial["color"], "#d97706")
        self.assertEqual(initial["logo"], "brain")
        self.assertEqual(initial["url"], "https://claude.ai")
        self.assertContains(response, "?preset=ElevenLabs")

    def test_unknown_preset_keeps_the_defaults(self):
        response = self.client.get(reverse("tracker:credit-add"), {"preset": "Nope"})

        self.assertNotIn("url", response.context["form"].initial)

    def test_edit_form_ignores_presets(self):
        credit = make_credit()

        response = self.client.get(reverse("tracker:credit-edit", args=[credit.id]), {"preset": "Claude"})

        self.assertEqual(response.context["form"].initial["name"], credit.name)
        self.assertEqual(response.context["presets"], ())

    def test_usage_update_is_clamped_to_the_allotment(self):
        credit = make_credit()

        response = self.client.post(
            reverse("tracker:credit-usage", args=[credit.id]), {"used_credits": "150", "note": ""}
        )

        self.assertRedirects(response, reverse("tracker:credit-list"))
        credit.refresh_from_db()
        self.assertEqual(credit.used_credits, 100)
        entry = CreditHistory.objects.get()
        self.assertEqual((entry.previous_used, entry.new_used, entry.change), (50, 100, 50))

    def test_usage_update_below_zero_is_clamped(self):
        credit = make_credit()

        self.client.post(reverse("tracker:credit-usage", args=[credit.id]), {"used_credits": "-5"})

        credit.refresh_from_db()
        self.assertEqual(credit.used_credits, 0)

    def test_list_shows_next_reset(self):
        make_credit()

        response = self.client.get(reverse("tracker:credit-list"))

        row = response.context["rows"][0]
        self.assertGreater(row["next_reset"], date.today())
        self.assertTrue(0 <= row["progress"] <= 100)

    def test_delete_removes_history(self):
        credit = make_credit()
        self.client.post(reverse("tracker:credit-usage", args=[credit.id]), {"used_credits": "60"})

        self.client.post(reverse("tracker:credit-delete", args=[credit.id]))

        self.assertFalse(AICredit.objects.exists())
        self.assertFalse(CreditHistory.objects.exists())


@override_settings(TRACKER_STORAGE_BACKEND="memory")
class MemoryBackendViewTests(GateTestCase):
    def setUp(self):
        _memory_store.cache_clear()
        self.unlock()

    def tearDown(self):
        _memory_store.cache_clear()

    def test_credits_are_kept_in_the_key_value_store(self):
        self.client.post(
            reverse("tracker:credit-add"),
            {
                "name": "Chat credits",
                "total_credits": "100",
                "used_credits": "10",
                "reset_type": "monthly",
                "reset_day": "15",
                "color": "#6366f1",
                "enabled": "on",
            },
        )

        credits = CreditUseCases().repo.find_all()
        self.assertEqual([c.name for c in credits], ["Chat credits"])
        self.assertFalse(AICredit.objects.exists())

    def test_unreadable_store_redirects_and_refuses_writes(self):
        broken = '[{"id": "kept", "name": "Existing"}, BROKEN'
        _memory_store().set(CREDITS_KEY, broken)

        listing = self.client.get(reverse("tracker:credit-list"))
        self.assertRedirects(listing, reverse("tracker:dashboard"))

        self.client.post(
            reverse("tracker:credit-add"),
            {
                "name": "New credits",
                "total_credits": "100",
                "used_credits": "0",
                "reset_type": "monthly",
                "reset_day": "1",
                "color": "#6366f1",
                "enabled": "on",
            },
        )

        self.assertEqual(_memory_store().get(CREDITS_KEY), broken)
        response = self.client.get(reverse("tracker:dashboard"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Some stored data could not be read")
