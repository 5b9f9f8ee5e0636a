"""
AI Credits & Subscription Tracker - Application Layer and Repositories
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, ContextManager, Dict, Generic, List, Optional, Tuple, Type, TypeVar
from uuid import uuid4

from tracker_ddd import (
    AICredit, CreditHistoryEntry, HistoryEntry, NotFoundError, RenewalHistoryEntry,
    StorageError, Subscription, ValidationError,
    CostAggregationService, CreditUsageService, CycleCalculator,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", Subscription, AICredit)

Clock = Callable[[], datetime]
UnitOfWork = Callable[[], ContextManager]

IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class IEntityRepository(ABC, Generic[E]):
    """Repository interface for tracked entities (subscriptions or credits)"""

    @abstractmethod
    def find_all(self) -> List[E]:
        pass

    @abstractmethod
    def find_by_id(self, entity_id: str) -> Optional[E]:
        pass

    @abstractmethod
    def insert(self, entity: E) -> None:
        pass

    @abstractmethod
    def update(self, entity: E) -> None:
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> None:
        pass


class IHistoryRepository(ABC):
    """Repository interface for the append-only history ledger"""

    @abstractmethod
    def append(self, entry: HistoryEntry) -> None:
        pass

    @abstractmethod
    def find_for(self, entity_id: str) -> List[HistoryEntry]:
        pass

    @abstractmethod
    def delete_for(self, entity_id: str) -> None:
        pass


# ============================================================================
# KEY-VALUE STORE
# ============================================================================

class KeyValueStore(ABC):
    """String key-value store holding JSON documents"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):

    def __init__(self, quota: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota = quota

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.quota:
                raise StorageError(f"Storage quota exceeded while writing {key}")
        self._data[key] = value


SUBSCRIPTIONS_KEY = "ai-credits-billing"
CREDITS_KEY = "ai-credits-subscriptions"
CREDIT_HISTORY_KEY = "ai-credits-history"
RENEWAL_HISTORY_KEY = "ai-credits-renewals"


def _encode(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def to_document(record) -> dict:
    """Serialize an entity or history entry into a JSON-safe dict"""
    return {key: _encode(value) for key, value in asdict(record).items()}


_DECODERS = {
    "cost": Decimal,
    "renewal_date": date.fromisoformat,
    "created_at": datetime.fromisoformat,
    "updated_at": datetime.fromisoformat,
    "date": datetime.fromisoformat,
}


def from_document(record_type: Type, document: dict):
    """Build an entity or history entry from its stored dict"""
    known = {f.name for f in fields(record_type)}
    kwargs = {}
    for key, value in document.items():
        if key not in known:
            continue
        decoder = _DECODERS.get(key)
        kwargs[key] = decoder(value) if decoder and value is not None else value
    return record_type(**kwargs)


class _JsonListDocument:
    """A list of records stored as one JSON document under a single key"""

    def __init__(self, store: KeyValueStore, key: str, record_type: Type):
        self.store = store
        self.key = key
        self.record_type = record_type

    def load(self) -> list:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            return [from_document(self.record_type, doc) for doc in json.loads(raw)]
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("Unreadable document under %s: %s", self.key, exc)
            raise StorageError(f"Stored data under {self.key} is unreadable") from exc

    def save(self, records: list) -> None:
        payload = json.dumps([to_document(r) for r in records])
        try:
            self.store.set(self.key, payload)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Could not write {self.key}") from exc


class KeyValueEntityRepository(IEntityRepository[E]):

    def __init__(self, store: KeyValueStore, key: str, entity_type: Type[E]):
        self._document = _JsonListDocument(store, key, entity_type)

    def find_all(self) -> List[E]:
        return self._document.load()

    def find_by_id(self, entity_id: str) -> Optional[E]:
        for entity in self._document.load():
            if entity.id == entity_id:
                return entity
        return None

    def insert(self, entity: E) -> None:
        entities = self._document.load()
        entities.append(entity)
        self._document.save(entities)

    def update(self, entity: E) -> None:
        entities = self._document.load()
        for index, existing in enumerate(entities):
            if existing.id == entity.id:
                entities[index] = entity
                self._document.save(entities)
                return

    def delete(self, entity_id: str) -> None:
        entities = self._document.load()
        self._document.save([e for e in entities if e.id != entity_id])


class KeyValueHistoryRepository(IHistoryRepository):

    def __init__(self, store: KeyValueStore, key: str, entry_type: Type):
        self._document = _JsonListDocument(store, key, entry_type)

    def append(self, entry: HistoryEntry) -> None:
        entries = self._document.load()
        entries.append(entry)
        self._document.save(entries)

    def find_for(self, entity_id: str) -> List[HistoryEntry]:
        return [e for e in self._document.load() if e.subscription_id == entity_id]

    def delete_for(self, entity_id: str) -> None:
        entries = self._document.load()
        self._document.save([e for e in entries if e.subscription_id != entity_id])


def key_value_backend(store: KeyValueStore) -> dict:
    """Repositories for both entity variants and their ledgers over one store"""
    return {
        "subscriptions": KeyValueEntityRepository(store, SUBSCRIPTIONS_KEY, Subscription),
        "credits": KeyValueEntityRepository(store, CREDITS_KEY, AICredit),
        "renewal_history": KeyValueHistoryRepository(store, RENEWAL_HISTORY_KEY, RenewalHistoryEntry),
        "credit_history": KeyValueHistoryRepository(store, CREDIT_HISTORY_KEY, CreditHistoryEntry),
    }


# ============================================================================
# HISTORY LEDGER
# ============================================================================

class HistoryLedger:
    """Append-only change records for one entity variant"""

    def __init__(self, history_repo: IHistoryRepository, clock: Clock = datetime.now):
        self.history_repo = history_repo
        self.clock = clock

    def record_usage_change(self, entity_id: str, previous_used: int, new_used: int,
                            note: Optional[str] = None) -> CreditHistoryEntry:
        """Append a usage change; bounds are the caller's responsibility"""
        entry = CreditHistoryEntry(
            id=uuid4().hex,
            subscription_id=entity_id,
            previous_used=previous_used,
            new_used=new_used,
            change=new_used - previous_used,
            date=self.clock(),
            note=note,
        )
        self.history_repo.append(entry)
        return entry

    def record_renewal(self, entity_id: str, cost: Decimal, currency: str,
                       note: Optional[str] = None,
                       auto_renewed: bool = False) -> RenewalHistoryEntry:
        entry = RenewalHistoryEntry(
            id=uuid4().hex,
            subscription_id=entity_id,
            date=self.clock(),
            cost=cost,
            currency=currency,
            note=note,
            auto_renewed=auto_renewed,
        )
        self.history_repo.append(entry)
        return entry

    def history_for(self, entity_id: str) -> List[HistoryEntry]:
        """Entries of one entity, newest first"""
        return sorted(self.history_repo.find_for(entity_id), key=lambda e: e.date, reverse=True)

    def purge_for(self, entity_id: str) -> None:
        self.history_repo.delete_for(entity_id)


# ============================================================================
# APPLICATION SERVICES (Use Cases)
# ============================================================================

@dataclass
class CollectionResult(Generic[E]):
    """Current collection after a write, plus the storage failure if any"""
    items: List[E] = field(default_factory=list)
    error: Optional[StorageError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _next_timestamp(clock: Clock, previous: Optional[datetime]) -> datetime:
    now = clock()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class _EntityWriteUseCase(Generic[E]):
    """Shared plumbing: unit of work, re-read and storage failure handling"""

    def __init__(self, repo: IEntityRepository[E], clock: Clock = datetime.now,
                 unit_of_work: UnitOfWork = nullcontext):
        self.repo = repo
        self.clock = clock
        self.unit_of_work = unit_of_work

    def _load(self) -> List[E]:
        return self.repo.find_all()

    def _require(self, entities: List[E], entity_id: str) -> E:
        for entity in entities:
            if entity.id == entity_id:
                return entity
        raise NotFoundError(entity_id)

    def _run(self, mutation: Callable[[List[E]], None]) -> CollectionResult[E]:
        try:
            before = self._load()
        except StorageError as exc:
            logger.exception("Could not read collection before write")
            return CollectionResult([], exc)

        try:
            with self.unit_of_work():
                mutation(before)
        except StorageError as exc:
            logger.exception("Write failed, returning last known collection")
            return CollectionResult(self._reread(before), exc)

        try:
            return CollectionResult(self._load())
        except StorageError as exc:
            logger.exception("Could not re-read collection after write")
            return CollectionResult(before, exc)

    def _reread(self, fallback: List[E]) -> List[E]:
        try:
            return self._load()
        except StorageError:
            return fallback


class CreateEntityUseCase(_EntityWriteUseCase[E]):
    """Application service for adding a subscription or credit allotment"""

    def execute(self, entity: E) -> CollectionResult[E]:
        entity.validate()
        now = self.clock()
        entity = replace(
            entity,
            id=entity.id or uuid4().hex,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
        )

        def mutation(entities: List[E]) -> None:
            if any(e.id == entity.id for e in entities):
                raise ValidationError(f"Entity {entity.id} already exists")
            self.repo.insert(entity)
            logger.info("Created %s %s", type(entity).__name__, entity.id)

        return self._run(mutation)


class ModifyEntityUseCase(_EntityWriteUseCase[E]):
    """Application service for partial updates"""

    def execute(self, entity_id: str, **changes) -> CollectionResult[E]:
        def mutation(entities: List[E]) -> None:
            current = self._require(entities, entity_id)
            allowed = {f.name for f in fields(current)} - IMMUTABLE_FIELDS
            unknown = set(changes) - allowed
            if unknown:
                raise ValidationError(f"Cannot modify fields: {', '.join(sorted(unknown))}")

            updated = replace(current, **changes)
            updated.validate()
            updated = replace(updated, updated_at=_next_timestamp(self.clock, current.updated_at))
            self.repo.update(updated)
            logger.info("Updated %s %s: %s", type(current).__name__, entity_id, ", ".join(sorted(changes)))

        return self._run(mutation)


class RemoveEntityUseCase(_EntityWriteUseCase[E]):
    """Application service for deleting an entity together with its history"""

    def __init__(self, repo: IEntityRepository[E], ledger: HistoryLedger,
                 clock: Clock = datetime.now, unit_of_work: UnitOfWork = nullcontext):
        super().__init__(repo, clock, unit_of_work)
        self.ledger = ledger

    def execute(self, entity_id: str) -> CollectionResult[E]:
        def mutation(entities: List[E]) -> None:
            self._require(entities, entity_id)
            self.ledger.purge_for(entity_id)
            self.repo.delete(entity_id)
            logger.info("Deleted %s and its history", entity_id)

        return self._run(mutation)


class ApplyRenewalUseCase(_EntityWriteUseCase[Subscription]):
    """Application service for renewing a subscription by one billing cycle"""

    def __init__(self, repo: IEntityRepository[Subscription], ledger: HistoryLedger,
                 clock: Clock = datetime.now, unit_of_work: UnitOfWork = nullcontext):
        super().__init__(repo, clock, unit_of_work)
        self.ledger = ledger

    def execute(self, subscription_id: str, note: Optional[str] = None,
                auto_renewed: bool = False) -> CollectionResult[Subscription]:
        def mutation(subscriptions: List[Subscription]) -> None:
            current = self._require(subscriptions, subscription_id)
            next_date = CycleCalculator.next_renewal_date(current)

            self.ledger.record_renewal(
                subscription_id, current.cost, current.currency,
                note=note, auto_renewed=auto_renewed,
            )
            self.repo.update(replace(
                current,
                renewal_date=next_date,
                updated_at=_next_timestamp(self.clock, current.updated_at),
            ))
            logger.info("Renewed %s until %s", subscription_id, next_date.isoformat())

        return self._run(mutation)


class ApplyUsageUpdateUseCase(_EntityWriteUseCase[AICredit]):
    """Application service for recording a new used-credits value"""

    def __init__(self, repo: IEntityRepository[AICredit], ledger: HistoryLedger,
                 clock: Clock = datetime.now, unit_of_work: UnitOfWork = nullcontext):
        super().__init__(repo, clock, unit_of_work)
        self.ledger = ledger

    def execute(self, credit_id: str, new_used_credits: int,
                note: Optional[str] = None) -> CollectionResult[AICredit]:
        def mutation(credits: List[AICredit]) -> None:
            current = self._require(credits, credit_id)
            self.ledger.record_usage_change(credit_id, current.used_credits, new_used_credits, note)
            self.repo.update(replace(
                current,
                used_credits=new_used_credits,
                updated_at=_next_timestamp(self.clock, current.updated_at),
            ))
            logger.info("Credits of %s: %s -> %s", credit_id, current.used_credits, new_used_credits)

        return self._run(mutation)


class GetEntityHistoryUseCase:
    """Application service for reading one entity's history"""

    def __init__(self, repo: IEntityRepository, ledger: HistoryLedger):
        self.repo = repo
        self.ledger = ledger

    def execute(self, entity_id: str) -> List[HistoryEntry]:
        if self.repo.find_by_id(entity_id) is None:
            raise NotFoundError(entity_id)
        return self.ledger.history_for(entity_id)


def _read_for_display(repo: IEntityRepository) -> Tuple[list, Optional[StorageError]]:
    """Collection for a read-only summary; an unreadable store shows as empty"""
    try:
        return repo.find_all(), None
    except StorageError as exc:
        logger.exception("Could not read collection for display")
        return [], exc


class GetSubscriptionInsightsUseCase:
    """Application service for the cost dashboard"""

    def __init__(self, subscription_repo: IEntityRepository[Subscription],
                 due_soon_days: int = 7, forecast_months: int = 12):
        self.subscription_repo = subscription_repo
        self.due_soon_days = due_soon_days
        self.forecast_months = forecast_months

    def execute(self, today: Optional[date] = None) -> dict:
        today = today or date.today()
        all_subs, error = _read_for_display(self.subscription_repo)
        active_subs = [s for s in all_subs if s.enabled]
        analysis = CostAggregationService

        return {
            'total_subscriptions': len(all_subs),
            'active_subscriptions': len(active_subs),
            'monthly_total': analysis.total_monthly_cost(all_subs),
            'annual_total': analysis.total_yearly_cost(all_subs),
            'category_breakdown': analysis.cost_by_category(all_subs),
            'top_costs': analysis.top_monthly_costs(all_subs),
            'upcoming_renewals': analysis.upcoming_renewals(all_subs, today),
            'weekly_buckets': analysis.bucket_by_time_window(all_subs, today),
            'forecast': analysis.monthly_renewal_forecast(all_subs, today, self.forecast_months),
            'due_soon': [s for s in active_subs
                         if CycleCalculator.is_due_soon(s, self.due_soon_days, today)],
            'overdue': [s for s in active_subs if CycleCalculator.is_overdue(s, today)],
            'error': error,
        }


class GetCreditInsightsUseCase:
    """Application service for the credit usage overview"""

    def __init__(self, credit_repo: IEntityRepository[AICredit],
                 low_credit_threshold: float = CreditUsageService.LOW_CREDIT_THRESHOLD):
        self.credit_repo = credit_repo
        self.low_credit_threshold = low_credit_threshold

    def execute(self, today: Optional[date] = None) -> dict:
        today = today or date.today()
        credits, error = _read_for_display(self.credit_repo)
        active = [c for c in credits if c.enabled]

        return {
            'total_credits': sum(c.total_credits for c in active),
            'total_used': sum(c.used_credits for c in active),
            'total_remaining': CreditUsageService.total_remaining(credits),
            'overall_used_percent': CreditUsageService.overall_used_percent(credits),
            'low_credits': CreditUsageService.low_credit_entities(credits, self.low_credit_threshold),
            'next_reset': CreditUsageService.next_reset(credits, today),
            'active_count': len(active),
            'inactive_count': len(credits) - len(active),
            'progress': {
                c.id: CycleCalculator.cycle_progress_percent(c, today) for c in active
            },
            'error': error,
        }
