"""Django ORM implementations of the tracker repositories."""

import functools
import logging
from typing import List, Optional

from django.db import DatabaseError

from tracker_application import IEntityRepository, IHistoryRepository
from tracker_ddd import (
    AICredit,
    CreditHistoryEntry,
    HistoryEntry,
    RenewalHistoryEntry,
    StorageError,
    Subscription,
)

from . import models

logger = logging.getLogger(__name__)


def wraps_database_errors(method):
    """Re-raise ORM failures as StorageError so the core can report them."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except DatabaseError as exc:
            logger.error("Database failure in %s: %s", method.__qualname__, exc)
            raise StorageError(str(exc)) from exc

    return wrapper


def subscription_from_model(row: models.Subscription) -> Subscription:
    return Subscription(
        id=row.id,
        name=row.name,
        cost=row.cost_amount,
        currency=row.cost_currency,
        billing_cycle=row.billing_cycle,
        custom_cycle_days=row.custom_cycle_days,
        renewal_date=row.renewal_date,
        category=row.category,
        color=row.color,
        icon=row.icon or None,
        url=row.url or None,
        notes=row.notes or None,
        auto_renew=row.auto_renew,
        enabled=row.enabled,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def subscription_fields(entity: Subscription) -> dict:
    return {
        "name": entity.name,
        "cost_amount": entity.cost,
        "cost_currency": entity.currency,
        "billing_cycle": getattr(entity.billing_cycle, "value", entity.billing_cycle),
        "custom_cycle_days": entity.custom_cycle_days,
        "renewal_date": entity.renewal_date,
        "category": entity.category,
        "color": entity.color,
        "icon": entity.icon or "",
        "url": entity.url or "",
        "notes": entity.notes or "",
        "auto_renew": entity.auto_renew,
        "enabled": entity.enabled,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }


def credit_from_model(row: models.AICredit) -> AICredit:
    return AICredit(
        id=row.id,
        name=row.name,
        total_credits=row.total_credits,
        used_credits=row.used_credits,
        reset_type=row.reset_type,
        reset_day=row.reset_day,
        custom_reset_days=row.custom_reset_days,
        color=row.color,
        logo=row.logo or None,
        url=row.url or None,
        notes=row.notes or None,
        enabled=row.enabled,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def credit_fields(entity: AICredit) -> dict:
    return {
        "name": entity.name,
        "total_credits": entity.total_credits,
        "used_credits": entity.used_credits,
        "reset_type": getattr(entity.reset_type, "value", entity.reset_type),
        "reset_day": entity.reset_day,
        "custom_reset_days": entity.custom_reset_days,
        "color": entity.color,
        "logo": entity.logo or "",
        "url": entity.url or "",
        "notes": entity.notes or "",
        "enabled": entity.enabled,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }


class _DjangoEntityRepository(IEntityRepository):
    model = None
    to_entity = None
    to_fields = None

    @wraps_database_errors
    def find_all(self) -> List:
        return [self.to_entity(row) for row in self.model.objects.all()]

    @wraps_database_errors
    def find_by_id(self, entity_id: str) -> Optional[object]:
        row = self.model.objects.filter(pk=entity_id).first()
        return self.to_entity(row) if row else None

    @wraps_database_errors
    def insert(self, entity) -> None:
        self.model.objects.create(id=entity.id, **self.to_fields(entity))

    @wraps_database_errors
    def update(self, entity) -> None:
        self.model.objects.filter(pk=entity.id).update(**self.to_fields(entity))

    @wraps_database_errors
    def delete(self, entity_id: str) -> None:
        self.model.objects.filter(pk=entity_id).delete()


class DjangoSubscriptionRepository(_DjangoEntityRepository):
    model = models.Subscription
    to_entity = staticmethod(subscription_from_model)
    to_fields = staticmethod(subscription_fields)


class DjangoCreditRepository(_DjangoEntityRepository):
    model = models.AICredit
    to_entity = staticmethod(credit_from_model)
    to_fields = staticmethod(credit_fields)


class DjangoRenewalHistoryRepository(IHistoryRepository):

    @wraps_database_errors
    def append(self, entry: HistoryEntry) -> None:
        models.RenewalHistory.objects.create(
            id=entry.id,
            subscription_id=entry.subscription_id,
            date=entry.date,
            cost_amount=entry.cost,
            cost_currency=entry.currency,
            note=entry.note or "",
            auto_renewed=entry.auto_renewed,
        )

    @wraps_database_errors
    def find_for(self, entity_id: str) -> List[HistoryEntry]:
        return [
            RenewalHistoryEntry(
                id=row.id,
                subscription_id=row.subscription_id,
                date=row.date,
                cost=row.cost_amount,
                currency=row.cost_currency,
                note=row.note or None,
                auto_renewed=row.auto_renewed,
            )
            for row in models.RenewalHistory.objects.filter(subscription_id=entity_id)
        ]

    @wraps_database_errors
    def delete_for(self, entity_id: str) -> None:
        models.RenewalHistory.objects.filter(subscription_id=entity_id).delete()


class DjangoCreditHistoryRepository(IHistoryRepository):

    @wraps_database_errors
    def append(self, entry: HistoryEntry) -> None:
        models.CreditHistory.objects.create(
            id=entry.id,
            credit_id=entry.subscription_id,
            previous_used=entry.previous_used,
            new_used=entry.new_used,
            change=entry.change,
            date=entry.date,
            note=entry.note or "",
        )

    @wraps_database_errors
    def find_for(self, entity_id: str) -> List[HistoryEntry]:
        return [
            CreditHistoryEntry(
                id=row.id,
                subscription_id=row.credit_id,
                previous_used=row.previous_used,
                new_used=row.new_used,
                change=row.change,
                date=row.date,
                note=row.note or None,
            )
            for row in models.CreditHistory.objects.filter(credit_id=entity_id)
        ]

    @wraps_database_errors
    def delete_for(self, entity_id: str) -> None:
        models.CreditHistory.objects.filter(credit_id=entity_id).delete()
