"""Wiring between the Django app and the tracker use cases."""

from contextlib import nullcontext
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, ContextManager, Optional

from django.conf import settings
from django.db import transaction

from tracker_application import (
    ApplyRenewalUseCase,
    ApplyUsageUpdateUseCase,
    CreateEntityUseCase,
    GetCreditInsightsUseCase,
    GetEntityHistoryUseCase,
    GetSubscriptionInsightsUseCase,
    HistoryLedger,
    IEntityRepository,
    IHistoryRepository,
    InMemoryKeyValueStore,
    ModifyEntityUseCase,
    RemoveEntityUseCase,
    key_value_backend,
)

from .repositories import (
    DjangoCreditHistoryRepository,
    DjangoCreditRepository,
    DjangoRenewalHistoryRepository,
    DjangoSubscriptionRepository,
)


@dataclass
class Backend:
    subscriptions: IEntityRepository
    credits: IEntityRepository
    renewal_history: IHistoryRepository
    credit_history: IHistoryRepository
    unit_of_work: Callable[[], ContextManager]


@lru_cache(maxsize=1)
def _memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


def get_backend() -> Backend:
    """Repositories selected by TRACKER_STORAGE_BACKEND."""
    if settings.TRACKER_STORAGE_BACKEND == "memory":
        return Backend(unit_of_work=nullcontext, **key_value_backend(_memory_store()))
    return Backend(
        subscriptions=DjangoSubscriptionRepository(),
        credits=DjangoCreditRepository(),
        renewal_history=DjangoRenewalHistoryRepository(),
        credit_history=DjangoCreditHistoryRepository(),
        unit_of_work=transaction.atomic,
    )


class SubscriptionUseCases:
    """Use cases for paid subscriptions over the configured backend."""

    def __init__(self, backend: Optional[Backend] = None):
        backend = backend or get_backend()
        self.repo = backend.subscriptions
        self.ledger = HistoryLedger(backend.renewal_history)
        uow = backend.unit_of_work
        self.create = CreateEntityUseCase(self.repo, unit_of_work=uow)
        self.modify = ModifyEntityUseCase(self.repo, unit_of_work=uow)
        self.remove = RemoveEntityUseCase(self.repo, self.ledger, unit_of_work=uow)
        self.renew = ApplyRenewalUseCase(self.repo, self.ledger, unit_of_work=uow)
        self.history = GetEntityHistoryUseCase(self.repo, self.ledger)
        self.insights = GetSubscriptionInsightsUseCase(
            self.repo,
            due_soon_days=settings.TRACKER_DUE_SOON_DAYS,
            forecast_months=settings.TRACKER_FORECAST_MONTHS,
        )


class CreditUseCases:
    """Use cases for AI credit allotments over the configured backend."""

    def __init__(self, backend: Optional[Backend] = None):
        backend = backend or get_backend()
        self.repo = backend.credits
        self.ledger = HistoryLedger(backend.credit_history)
        uow = backend.unit_of_work
        self.create = CreateEntityUseCase(self.repo, unit_of_work=uow)
        self.modify = ModifyEntityUseCase(self.repo, unit_of_work=uow)
        self.remove = RemoveEntityUseCase(self.repo, self.ledger, unit_of_work=uow)
        self.update_usage = ApplyUsageUpdateUseCase(self.repo, self.ledger, unit_of_work=uow)
        self.history = GetEntityHistoryUseCase(self.repo, self.ledger)
        self.insights = GetCreditInsightsUseCase(
            self.repo, low_credit_threshold=settings.TRACKER_LOW_CREDIT_THRESHOLD
        )
