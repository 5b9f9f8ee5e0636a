from datetime import date, datetime
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase, override_settings

from tracker_ddd import AICredit, BillingCycle, ResetType, StorageError, Subscription

from .. import models
from ..repositories import DjangoSubscriptionRepository
from ..services import CreditUseCases, SubscriptionUseCases, get_backend


def new_subscription(**overrides):
    data = dict(
        id="",
        name="Chat Pro",
        cost=Decimal("20.00"),
        billing_cycle=BillingCycle.MONTHLY,
        renewal_date=date(2024, 1, 15),
        category="AI",
        url="https://chat.example.com",
    )
    data.update(overrides)
    return Subscription(**data)


class BrokenUpdateRepository(DjangoSubscriptionRepository):
    def update(self, entity):
        raise StorageError("disk full")


@override_settings(TRACKER_STORAGE_BACKEND="database")
class DjangoRepositoryTests(TestCase):
    def test_subscription_round_trip(self):
        use_cases = SubscriptionUseCases()

        result = use_cases.create.execute(new_subscription(icon="sparkles", notes="team seat"))

        [stored] = result.items
        self.assertEqual(stored.billing_cycle, BillingCycle.MONTHLY)
        self.assertEqual(stored.cost, Decimal("20.00"))
        self.assertEqual(stored.icon, "sparkles")
        self.assertEqual(stored.notes, "team seat")
        self.assertEqual(use_cases.repo.find_by_id(stored.id), stored)

    def test_blank_optional_fields_map_to_none(self):
        use_cases = SubscriptionUseCases()

        [stored] = use_cases.create.execute(new_subscription(url=None)).items

        self.assertIsNone(stored.url)
        self.assertIsNone(stored.icon)
        self.assertEqual(models.Subscription.objects.get().url, "")

    def test_credit_round_trip_with_yearly_reset(self):
        use_cases = CreditUseCases()
        credit = AICredit(
            id="", name="Research", total_credits=1000, used_credits=10,
            reset_type=ResetType.YEARLY, reset_day=1231,
        )

        [stored] = use_cases.create.execute(credit).items

        self.assertEqual(stored.reset_type, ResetType.YEARLY)
        self.assertEqual(stored.reset_day, 1231)
        self.assertEqual(stored.remaining_credits, 990)

    def test_history_is_read_newest_first(self):
        use_cases = CreditUseCases()
        [credit] = use_cases.create.execute(AICredit(
            id="", name="Images", total_credits=100, reset_type=ResetType.MONTHLY, reset_day=1,
        )).items
        for used in (5, 15, 40):
            use_cases.update_usage.execute(credit.id, used)

        history = use_cases.history.execute(credit.id)

        self.assertEqual([entry.new_used for entry in history], [40, 15, 5])
        self.assertEqual(history[0].change, 25)

    def test_failed_renewal_rolls_back_its_history_entry(self):
        backend = get_backend()
        backend.subscriptions = BrokenUpdateRepository()
        use_cases = SubscriptionUseCases(backend)
        [sub] = use_cases.create.execute(new_subscription()).items

        result = use_cases.renew.execute(sub.id)

        self.assertFalse(result.ok)
        self.assertEqual(result.items[0].renewal_date, date(2024, 1, 15))
        self.assertFalse(models.RenewalHistory.objects.exists())

    def test_database_errors_become_storage_errors(self):
        repo = DjangoSubscriptionRepository()

        with mock.patch.object(models.Subscription.objects, "all", side_effect=DatabaseError("locked")):
            with self.assertRaises(StorageError):
                repo.find_all()

    def test_storage_failure_is_reported_by_use_cases(self):
        use_cases = SubscriptionUseCases()
        use_cases.create.execute(new_subscription())

        with mock.patch.object(models.Subscription.objects, "create", side_effect=DatabaseError("locked")):
            result = use_cases.create.execute(new_subscription(name="Second"))

        self.assertFalse(result.ok)
        self.assertEqual([s.name for s in result.items], ["Chat Pro"])

    def test_timestamps_are_naive_local_datetimes(self):
        [stored] = SubscriptionUseCases().create.execute(new_subscription()).items

        self.assertIsInstance(stored.created_at, datetime)
        self.assertIsNone(stored.created_at.tzinfo)
