"""
AI Credits & Subscription Tracker - Domain-Driven Design Implementation
Renewal/reset cycle arithmetic, cost aggregation and change-history records
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from dateutil.relativedelta import relativedelta


# ============================================================================
# ERRORS
# ============================================================================

class TrackerError(Exception):
    """Base class for every error raised by the tracker core"""


class NotFoundError(TrackerError, LookupError):
    """Referenced entity id does not exist"""

    def __init__(self, entity_id: str):
        super().__init__(f"Entity {entity_id} not found")
        self.entity_id = entity_id


class ValidationError(TrackerError, ValueError):
    """Caller passed an out-of-domain value"""


class StorageError(TrackerError):
    """The persistence backend failed to read or write"""


# ============================================================================
# ENUMS
# ============================================================================

class BillingCycle(str, Enum):
    """How often a paid subscription renews"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class ResetType(str, Enum):
    """How often an AI credit allotment resets"""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class CycleAnchor(Enum):
    """
    Where a custom-day cycle is counted from.

    CREATION_DATE: credit resets, counted from the entity's creation date and
    evaluated relative to today.
    RENEWAL_DATE: subscription renewals, advanced one cycle from the current
    renewal date.
    """
    CREATION_DATE = "creation_date"
    RENEWAL_DATE = "renewal_date"


class RenewalStatus(str, Enum):
    """Urgency label for an upcoming date"""
    OVERDUE = "overdue"
    TODAY = "today"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    LATER = "later"


CycleKind = Union[BillingCycle, ResetType, str]

# Static lookup for the icon tokens offered by the forms
ICON_CHOICES: Dict[str, str] = {
    "package": "Package",
    "sparkles": "Sparkles",
    "video": "Video",
    "message-circle": "Message circle",
    "brain": "Brain",
    "image": "Image",
    "palette": "Palette",
    "clapperboard": "Clapperboard",
    "mic": "Microphone",
    "search": "Search",
    "film": "Film",
    "music": "Music",
    "headphones": "Headphones",
    "cloud": "Cloud",
    "code": "Code",
}

DEFAULT_COLOR = "#6366f1"
DEFAULT_CURRENCY = "EUR"
DEFAULT_CATEGORY = "Other"


@dataclass(frozen=True)
class ServicePreset:
    """Quick-fill values for a well-known AI service"""
    name: str
    color: str
    logo: str
    url: str


AI_SERVICE_PRESETS: Tuple[ServicePreset, ...] = (
    ServicePreset("Genspark", "#6366f1", "sparkles", "https://genspark.ai"),
    ServicePreset("Higgsfield", "#ec4899", "video", "https://higgsfield.ai"),
    ServicePreset("ChatGPT", "#10a37f", "message-circle", "https://chat.openai.com"),
    ServicePreset("Claude", "#d97706", "brain", "https://claude.ai"),
    ServicePreset("Midjourney", "#ffffff", "image", "https://midjourney.com"),
    ServicePreset("DALL-E", "#10a37f", "palette", "https://openai.com/dall-e-3"),
    ServicePreset("Runway", "#6366f1", "clapperboard", "https://runway.ml"),
    ServicePreset("ElevenLabs", "#000000", "mic", "https://elevenlabs.io"),
    ServicePreset("Perplexity", "#20808d", "search", "https://perplexity.ai"),
    ServicePreset("Pika", "#ff6b6b", "film", "https://pika.art"),
    ServicePreset("Suno", "#8b5cf6", "music", "https://suno.ai"),
    ServicePreset("Udio", "#3b82f6", "headphones", "https://udio.com"),
)


def find_preset(name: str) -> Optional[ServicePreset]:
    for preset in AI_SERVICE_PRESETS:
        if preset.name.lower() == (name or "").strip().lower():
            return preset
    return None


_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


def coerce_cycle(value, enum_cls):
    """Map a stored string onto its enum member, keeping unknown values as-is"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


# ============================================================================
# VALUE OBJECTS
# ============================================================================

def encode_yearly_reset(month: int, day: int) -> int:
    """Pack a month/day pair into the MMDD integer used by yearly resets"""
    return month * 100 + day


def decode_yearly_reset(code: int) -> Tuple[int, int]:
    """Unpack an MMDD integer into a (month, day) pair"""
    return code // 100, code % 100


@dataclass(frozen=True)
class TimeWindow:
    """Day-offset range [start, end); the closed flag also includes end"""
    label: str
    start: int
    end: int
    closed: bool = False

    def contains(self, days: int) -> bool:
        if self.closed:
            return self.start <= days <= self.end
        return self.start <= days < self.end


DEFAULT_WEEK_WINDOWS: Tuple[TimeWindow, ...] = (
    TimeWindow("Week 1", 0, 7),
    TimeWindow("Week 2", 7, 14),
    TimeWindow("Week 3", 14, 21),
    TimeWindow("Week 4+", 21, 30, closed=True),
)


# ============================================================================
# ENTITIES
# ============================================================================

def _validate_common(name: str, color: str, url: Optional[str]) -> None:
    if not name or not name.strip():
        raise ValidationError("Name cannot be empty")
    if not color or not _HEX_COLOR.match(color):
        raise ValidationError(f"Color must be a hex string, got {color!r}")
    if url:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("URL must use http or https")


@dataclass
class Subscription:
    """Paid subscription renewing on a billing cycle"""
    id: str
    name: str
    cost: Decimal
    billing_cycle: CycleKind
    renewal_date: date
    currency: str = DEFAULT_CURRENCY
    category: str = DEFAULT_CATEGORY
    custom_cycle_days: Optional[int] = None
    color: str = DEFAULT_COLOR
    icon: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    auto_renew: bool = True
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.billing_cycle = coerce_cycle(self.billing_cycle, BillingCycle)
        if not isinstance(self.cost, Decimal):
            self.cost = Decimal(str(self.cost))

    def validate(self) -> None:
        """Reject out-of-domain values before they reach storage"""
        _validate_common(self.name, self.color, self.url)
        if self.cost < 0:
            raise ValidationError("Cost cannot be negative")
        if not self.currency or len(self.currency) != 3:
            raise ValidationError("Currency must be 3-letter code (e.g., EUR)")
        if not isinstance(self.billing_cycle, BillingCycle):
            raise ValidationError(f"Unknown billing cycle {self.billing_cycle!r}")
        if self.billing_cycle == BillingCycle.CUSTOM:
            if not self.custom_cycle_days or self.custom_cycle_days <= 0:
                raise ValidationError("Custom billing cycle needs a positive number of days")
        if not isinstance(self.renewal_date, date):
            raise ValidationError("Renewal date is required")


@dataclass
class AICredit:
    """Credit allotment of an AI service that resets periodically"""
    id: str
    name: str
    total_credits: int
    reset_type: CycleKind
    reset_day: int
    used_credits: int = 0
    custom_reset_days: Optional[int] = None
    color: str = DEFAULT_COLOR
    logo: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.reset_type = coerce_cycle(self.reset_type, ResetType)

    @property
    def remaining_credits(self) -> int:
        return self.total_credits - self.used_credits

    def validate(self) -> None:
        """Reject out-of-domain values before they reach storage"""
        _validate_common(self.name, self.color, self.url)
        if self.total_credits is None or self.total_credits <= 0:
            raise ValidationError("Total credits must be positive")
        if not isinstance(self.reset_type, ResetType):
            raise ValidationError(f"Unknown reset type {self.reset_type!r}")
        if self.reset_type == ResetType.MONTHLY and not 1 <= self.reset_day <= 31:
            raise ValidationError("Monthly reset day must be between 1 and 31")
        if self.reset_type == ResetType.WEEKLY and not 0 <= self.reset_day <= 6:
            raise ValidationError("Weekly reset day must be between 0 (Sunday) and 6")
        if self.reset_type == ResetType.YEARLY:
            month, day = decode_yearly_reset(self.reset_day)
            if not 1 <= month <= 12 or not 1 <= day <= 31:
                raise ValidationError("Yearly reset day must be encoded as MMDD")
        if self.reset_type == ResetType.CUSTOM:
            if not self.custom_reset_days or self.custom_reset_days <= 0:
                raise ValidationError("Custom reset needs a positive number of days")


TrackedEntity = Union[Subscription, AICredit]


@dataclass(frozen=True)
class RenewalHistoryEntry:
    """Immutable record of a processed renewal"""
    id: str
    subscription_id: str
    date: datetime
    cost: Decimal
    currency: str
    note: Optional[str] = None
    auto_renewed: bool = False


@dataclass(frozen=True)
class CreditHistoryEntry:
    """Immutable record of a change to the used credits"""
    id: str
    subscription_id: str
    previous_used: int
    new_used: int
    change: int
    date: datetime
    note: Optional[str] = None


HistoryEntry = Union[RenewalHistoryEntry, CreditHistoryEntry]


# ============================================================================
# DOMAIN SERVICES
# ============================================================================

def _clamped_date(year: int, month: int, day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day, last)))


def _overflowing_date(year: int, month: int, day: int) -> date:
    # days past the month end spill into the next month (Apr 31 -> May 1)
    return date(year, month, 1) + timedelta(days=max(day, 1) - 1)


def _first_of_next_month(d: date) -> date:
    return (d.replace(day=1) + relativedelta(months=1))


def _js_weekday(d: date) -> int:
    # 0=Sunday .. 6=Saturday
    return (d.weekday() + 1) % 7


class CycleCalculator:
    """Domain Service computing occurrence dates and day offsets"""

    NOMINAL_DAYS = {
        "monthly": 30,
        "weekly": 7,
        "quarterly": 90,
        "yearly": 365,
    }

    _RENEWAL_STEPS = {
        "monthly": relativedelta(months=1),
        "quarterly": relativedelta(months=3),
        "yearly": relativedelta(years=1),
    }

    @staticmethod
    def next_occurrence(
        kind: CycleKind,
        anchor: date,
        today: date,
        reset_day: Optional[int] = None,
        custom_days: Optional[int] = None,
        strategy: CycleAnchor = CycleAnchor.CREATION_DATE,
    ) -> date:
        """
        Next calendar date produced by a cycle.

        With CycleAnchor.RENEWAL_DATE the anchor is the current renewal date
        and the result is that date advanced by one cycle. With
        CycleAnchor.CREATION_DATE the anchor is the creation date (used only by
        custom cycles) and the result is the first reset strictly after today.
        """
        if strategy == CycleAnchor.RENEWAL_DATE:
            return CycleCalculator._advance_renewal(kind, anchor, custom_days)
        return CycleCalculator._next_reset(kind, anchor, today, reset_day, custom_days)

    @staticmethod
    def _advance_renewal(kind: CycleKind, anchor: date, custom_days: Optional[int]) -> date:
        if kind == "custom" and custom_days and custom_days > 0:
            return anchor + timedelta(days=custom_days)
        step = CycleCalculator._RENEWAL_STEPS.get(getattr(kind, "value", kind))
        if step is None:
            step = CycleCalculator._RENEWAL_STEPS["monthly"]
        return anchor + step

    @staticmethod
    def _next_reset(
        kind: CycleKind,
        created: date,
        today: date,
        reset_day: Optional[int],
        custom_days: Optional[int],
    ) -> date:
        configured_day = reset_day if reset_day and reset_day > 0 else 1

        if kind == "monthly":
            target = min(configured_day, 28)
            if today.day < target:
                return today.replace(day=target)
            return _first_of_next_month(today).replace(day=target)

        if kind == "weekly":
            delta = (reset_day or 0) % 7 - _js_weekday(today)
            if delta <= 0:
                delta += 7
            return today + timedelta(days=delta)

        if kind == "yearly":
            month, day = decode_yearly_reset(reset_day or 0)
            month = max(1, min(month, 12))
            candidate = _overflowing_date(today.year, month, day)
            if candidate <= today:
                candidate = _overflowing_date(today.year + 1, month, day)
            return candidate

        if kind == "custom" and custom_days and custom_days > 0:
            elapsed = (today - created).days
            return today + timedelta(days=custom_days - elapsed % custom_days)

        nxt = _first_of_next_month(today)
        return _clamped_date(nxt.year, nxt.month, configured_day)

    @staticmethod
    def next_reset_date(credit: AICredit, today: date) -> date:
        """Next reset of a credit allotment"""
        created = credit.created_at.date() if credit.created_at else today
        return CycleCalculator.next_occurrence(
            credit.reset_type,
            created,
            today,
            reset_day=credit.reset_day,
            custom_days=credit.custom_reset_days,
            strategy=CycleAnchor.CREATION_DATE,
        )

    @staticmethod
    def next_renewal_date(subscription: Subscription, from_date: Optional[date] = None) -> date:
        """Renewal date one cycle after from_date (defaults to the current renewal date)"""
        anchor = from_date if from_date is not None else subscription.renewal_date
        return CycleCalculator.next_occurrence(
            subscription.billing_cycle,
            anchor,
            anchor,
            custom_days=subscription.custom_cycle_days,
            strategy=CycleAnchor.RENEWAL_DATE,
        )

    @staticmethod
    def days_until(next_date: date, today: date) -> int:
        """Signed number of days from today to next_date"""
        return (next_date - today).days

    @staticmethod
    def upcoming_date(entity: TrackedEntity, today: date) -> date:
        """Date of the entity's next renewal or reset"""
        if isinstance(entity, Subscription):
            return entity.renewal_date
        return CycleCalculator.next_reset_date(entity, today)

    @staticmethod
    def days_until_entity(entity: TrackedEntity, today: date) -> int:
        return CycleCalculator.days_until(CycleCalculator.upcoming_date(entity, today), today)

    @staticmethod
    def is_due_soon(entity: TrackedEntity, threshold_days: int, today: date) -> bool:
        """Check if the next renewal or reset falls within threshold_days"""
        days = CycleCalculator.days_until_entity(entity, today)
        return 0 <= days <= threshold_days

    @staticmethod
    def is_overdue(entity: TrackedEntity, today: date) -> bool:
        """Check if the renewal date has already passed"""
        return CycleCalculator.days_until_entity(entity, today) < 0

    @staticmethod
    def cycle_length_days(kind: CycleKind, custom_days: Optional[int] = None) -> int:
        """Nominal cycle length; months count as 30 days"""
        if kind == "custom":
            return custom_days if custom_days and custom_days > 0 else 30
        return CycleCalculator.NOMINAL_DAYS.get(getattr(kind, "value", kind), 30)

    @staticmethod
    def cycle_progress_percent(credit: AICredit, today: date) -> float:
        """Share of the current reset cycle already elapsed, in [0, 100]"""
        length = CycleCalculator.cycle_length_days(credit.reset_type, credit.custom_reset_days)
        days = CycleCalculator.days_until_entity(credit, today)
        return min(100.0, max(0.0, (length - days) / length * 100))

    @staticmethod
    def renewal_status(days: int) -> RenewalStatus:
        if days < 0:
            return RenewalStatus.OVERDUE
        if days == 0:
            return RenewalStatus.TODAY
        if days <= 7:
            return RenewalStatus.THIS_WEEK
        if days <= 30:
            return RenewalStatus.THIS_MONTH
        return RenewalStatus.LATER


@dataclass(frozen=True)
class UpcomingRenewal:
    subscription: Subscription
    days_until: int


@dataclass(frozen=True)
class WindowBucket:
    window: TimeWindow
    count: int
    total_cost: Decimal


@dataclass(frozen=True)
class MonthForecast:
    month_label: str
    month_start: date
    count: int
    total_cost: Decimal
    subscriptions: List[Subscription] = field(default_factory=list)


class CostAggregationService:
    """Domain Service normalizing billing cycles and rolling up costs"""

    @staticmethod
    def monthly_equivalent_cost(subscription: Subscription) -> Decimal:
        """Cost normalized to a monthly (30-day) basis"""
        cost = subscription.cost
        cycle = subscription.billing_cycle
        if cycle == BillingCycle.QUARTERLY:
            return cost / 3
        if cycle == BillingCycle.YEARLY:
            return cost / 12
        if cycle == BillingCycle.CUSTOM and subscription.custom_cycle_days:
            return cost * 30 / subscription.custom_cycle_days
        return cost

    @staticmethod
    def total_monthly_cost(subscriptions: Sequence[Subscription]) -> Decimal:
        """Sum of monthly-equivalent costs over enabled subscriptions"""
        total = Decimal("0")
        for sub in subscriptions:
            if sub.enabled:
                total += CostAggregationService.monthly_equivalent_cost(sub)
        return total

    @staticmethod
    def total_yearly_cost(subscriptions: Sequence[Subscription]) -> Decimal:
        """Yearly projection of the monthly total"""
        return CostAggregationService.total_monthly_cost(subscriptions) * 12

    @staticmethod
    def cost_by_category(subscriptions: Sequence[Subscription]) -> Dict[str, Decimal]:
        """Monthly-equivalent cost grouped by category"""
        breakdown: Dict[str, Decimal] = {}
        for sub in subscriptions:
            if not sub.enabled:
                continue
            monthly = CostAggregationService.monthly_equivalent_cost(sub)
            breakdown[sub.category] = breakdown.get(sub.category, Decimal("0")) + monthly
        return breakdown

    @staticmethod
    def top_monthly_costs(subscriptions: Sequence[Subscription],
                          limit: int = 10) -> List[Tuple[Subscription, Decimal]]:
        """Enabled subscriptions ranked by monthly-equivalent cost"""
        ranked = [
            (sub, CostAggregationService.monthly_equivalent_cost(sub))
            for sub in subscriptions
            if sub.enabled
        ]
        ranked.sort(key=lambda pair: pair[1], reverse=True)
        return ranked[:limit]

    @staticmethod
    def upcoming_renewals(subscriptions: Sequence[Subscription], today: date,
                          days: int = 30) -> List[UpcomingRenewal]:
        """Enabled subscriptions renewing within the next `days` days"""
        upcoming = []
        for sub in subscriptions:
            if not sub.enabled:
                continue
            remaining = CycleCalculator.days_until(sub.renewal_date, today)
            if 0 <= remaining <= days:
                upcoming.append(UpcomingRenewal(sub, remaining))
        return sorted(upcoming, key=lambda u: u.days_until)

    @staticmethod
    def bucket_by_time_window(
        subscriptions: Sequence[Subscription],
        today: date,
        windows: Sequence[TimeWindow] = DEFAULT_WEEK_WINDOWS,
    ) -> List[WindowBucket]:
        """Count and sum renewals falling into each day-offset window"""
        counts = [0] * len(windows)
        totals = [Decimal("0")] * len(windows)
        if windows:
            lower, upper = windows[0].start, windows[-1].end
            for sub in subscriptions:
                if not sub.enabled:
                    continue
                days = CycleCalculator.days_until(sub.renewal_date, today)
                if not lower <= days <= upper:
                    continue
                for index, window in enumerate(windows):
                    if window.contains(days):
                        counts[index] += 1
                        totals[index] += sub.cost
                        break
        return [
            WindowBucket(window, counts[i], totals[i])
            for i, window in enumerate(windows)
        ]

    @staticmethod
    def monthly_renewal_forecast(
        subscriptions: Sequence[Subscription],
        today: date,
        months_ahead: int = 12,
    ) -> List[MonthForecast]:
        """
        Renewals expected in each of the next `months_ahead` calendar months.

        A subscription counts once in a month when at least one occurrence of
        its renewal chain lands in it, however many times it renews there.
        """
        month_starts = [today.replace(day=1) + relativedelta(months=i) for i in range(months_ahead)]
        hits: List[List[Subscription]] = [[] for _ in month_starts]
        if not month_starts:
            return []
        horizon_end = month_starts[-1] + relativedelta(months=1) - timedelta(days=1)

        for sub in subscriptions:
            if not sub.enabled:
                continue
            seen = set()
            current = sub.renewal_date
            while current <= horizon_end:
                if current >= month_starts[0]:
                    index = (current.year - month_starts[0].year) * 12 + current.month - month_starts[0].month
                    if index not in seen:
                        seen.add(index)
                        hits[index].append(sub)
                current = CycleCalculator.next_renewal_date(sub, current)

        forecast = []
        for month_start, subs in zip(month_starts, hits):
            forecast.append(MonthForecast(
                month_label=month_start.strftime("%b %Y"),
                month_start=month_start,
                count=len(subs),
                total_cost=sum((s.cost for s in subs), Decimal("0")),
                subscriptions=subs,
            ))
        return forecast


class CreditUsageService:
    """Domain Service for remaining-credit statistics"""

    LOW_CREDIT_THRESHOLD = 0.2

    @staticmethod
    def total_remaining(credits: Sequence[AICredit]) -> int:
        return sum(c.remaining_credits for c in credits if c.enabled)

    @staticmethod
    def overall_used_percent(credits: Sequence[AICredit]) -> float:
        """Used share of all enabled allotments, 0 when nothing is allotted"""
        enabled = [c for c in credits if c.enabled]
        total = sum(c.total_credits for c in enabled)
        if total == 0:
            return 0.0
        return sum(c.used_credits for c in enabled) / total * 100

    @staticmethod
    def low_credit_entities(credits: Sequence[AICredit],
                            threshold: float = LOW_CREDIT_THRESHOLD) -> List[AICredit]:
        """Enabled allotments with less than `threshold` of their credits left"""
        low = []
        for credit in credits:
            if not credit.enabled:
                continue
            if credit.total_credits <= 0 or credit.remaining_credits / credit.total_credits < threshold:
                low.append(credit)
        return low

    @staticmethod
    def next_reset(credits: Sequence[AICredit], today: date) -> Optional[Tuple[AICredit, int]]:
        """Enabled allotment resetting soonest, with its day count"""
        closest = None
        for credit in credits:
            if not credit.enabled:
                continue
            days = CycleCalculator.days_until_entity(credit, today)
            if closest is None or days < closest[1]:
                closest = (credit, days)
        return closest
