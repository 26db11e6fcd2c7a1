"""
Discount Resolver - Resolves the promotional discount for a priced item.

Two sources share one contract (DiscountSource):
- RegistryDiscountSource: standalone, usage-tracked Discount records.
- SettingsDiscountSource: the discount embedded in storefront or
  per-product resale settings.

The caller picks one source per evaluation; they are never combined.
Usage counts are read-only snapshots here. Redemption bookkeeping happens
elsewhere, so previewing a price never consumes a discount.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional, Protocol, Sequence, Union

from .money import ZERO, percent_of, round_money


@dataclass(frozen=True)
class PercentageDiscount:
    value: Decimal


@dataclass(frozen=True)
class FixedDiscount:
    value: Decimal


DiscountKind = Union[PercentageDiscount, FixedDiscount]


def discount_type(kind: DiscountKind) -> str:
    if isinstance(kind, PercentageDiscount):
        return 'percentage'
    if isinstance(kind, FixedDiscount):
        return 'fixed'
    raise TypeError(f"Unknown discount kind: {kind!r}")


def raw_discount_amount(kind: DiscountKind, price: Decimal) -> Decimal:
    """Uncapped discount amount for a price."""
    if isinstance(kind, PercentageDiscount):
        return percent_of(price, kind.value)
    if isinstance(kind, FixedDiscount):
        return kind.value
    raise TypeError(f"Unknown discount kind: {kind!r}")


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class DiscountWindow:
    """Inclusive validity window; either end may be open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, now: datetime) -> bool:
        now = as_utc(now)
        if self.start is not None and as_utc(self.start) > now:
            return False
        if self.end is not None and as_utc(self.end) < now:
            return False
        return True


def _country_allowed(countries: frozenset, country_code: Optional[str]) -> bool:
    return not countries or not country_code or country_code in countries


@dataclass(frozen=True)
class DiscountRecord:
    """A registry discount, independent of any one product."""
    discount_id: str
    name: str
    kind: DiscountKind
    description: str = ''
    code: Optional[str] = None  # empty = automatic discount
    is_active: bool = True
    window: DiscountWindow = field(default_factory=DiscountWindow)
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    applicable_countries: frozenset = frozenset()
    applicable_products: frozenset = frozenset()
    usage_limit: Optional[int] = None
    usage_count: int = 0
    max_uses_per_customer: Optional[int] = None

    @property
    def value(self) -> Decimal:
        return self.kind.value

    def is_valid(self, now: datetime) -> bool:
        """Active, inside its date window, and under its usage limit."""
        if not self.is_active:
            return False
        if not self.window.contains(now):
            return False
        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            return False
        return True

    def calculate_discount(self, amount: Decimal) -> Decimal:
        """
        Discount for a purchase amount, capped by max_discount_amount and by the amount.

        Callers decide min_purchase_amount eligibility before calling.
        """
        discount = raw_discount_amount(self.kind, amount)
        if self.max_discount_amount is not None and discount > self.max_discount_amount:
            discount = self.max_discount_amount
        if discount > amount:
            discount = amount
        return discount


@dataclass(frozen=True)
class SettingsDiscount:
    """Discount embedded in storefront or resale settings."""
    enabled: bool = False
    kind: Optional[DiscountKind] = None
    window: DiscountWindow = field(default_factory=DiscountWindow)
    min_purchase_amount: Optional[Decimal] = None
    applicable_countries: frozenset = frozenset()
    description: str = ''


@dataclass(frozen=True)
class DiscountSummary:
    """The chosen discount, for display next to the product list."""
    type: str
    value: Decimal
    id: Optional[str] = None
    name: str = ''
    description: str = ''
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": float(self.value),
            "minPurchaseAmount": float(self.min_purchase_amount) if self.min_purchase_amount is not None else None,
            "maxDiscountAmount": float(self.max_discount_amount) if self.max_discount_amount is not None else None,
        }


@dataclass(frozen=True)
class DiscountOutcome:
    """Result of applying a discount source to one price."""
    amount: Decimal
    applied: bool
    source: str
    reason: str
    discount_id: Optional[str] = None

    @classmethod
    def none(cls, source: str, reason: str) -> 'DiscountOutcome':
        return cls(amount=ZERO, applied=False, source=source, reason=reason)


def discounted_price(price: Decimal, outcome: DiscountOutcome) -> Decimal:
    """A discount may never drive a price negative."""
    return max(ZERO, price - outcome.amount)


class DiscountSource(Protocol):
    """Single eligibility/amount contract shared by both discount mechanisms."""

    name: str

    def evaluate(self, price: Decimal, country_code: Optional[str], sku_code: Optional[str],
                 now: datetime) -> DiscountOutcome:
        ...

    def summary(self, country_code: Optional[str], now: datetime) -> Optional[DiscountSummary]:
        ...


class NoDiscountSource:
    """For flows with nothing configured."""

    name = 'none'

    def evaluate(self, price, country_code, sku_code, now) -> DiscountOutcome:
        return DiscountOutcome.none(self.name, "no discount configured")

    def summary(self, country_code, now) -> Optional[DiscountSummary]:
        return None


NO_DISCOUNT = NoDiscountSource()


class RegistryDiscountSource:
    """
    Picks the registry discount with the largest configured value.

    Valid records are ordered by `value` descending (stable for ties) and the
    first one whose country list is empty or contains the destination wins.
    Values are compared as configured, so a 50% and a $5 discount compare as
    50 vs 5, not by the money they take off.
    """

    name = 'registry'

    def __init__(self, records: Sequence[DiscountRecord],
                 customer_usage: Optional[Mapping[str, int]] = None):
        self.records = list(records)
        # discount_id -> times this customer has already redeemed it
        self.customer_usage = dict(customer_usage or {})

    def _usable_by_customer(self, record: DiscountRecord) -> bool:
        if record.max_uses_per_customer is None:
            return True
        return self.customer_usage.get(record.discount_id, 0) < record.max_uses_per_customer

    def candidates(self, now: datetime) -> list[DiscountRecord]:
        valid = [
            r for r in self.records
            if r.is_valid(now) and self._usable_by_customer(r)
        ]
        return sorted(valid, key=lambda r: r.value, reverse=True)

    def select(self, country_code: Optional[str], now: datetime) -> Optional[DiscountRecord]:
        for record in self.candidates(now):
            if _country_allowed(record.applicable_countries, country_code):
                return record
        return None

    def evaluate(self, price: Decimal, country_code: Optional[str], sku_code: Optional[str],
                 now: datetime) -> DiscountOutcome:
        record = self.select(country_code, now)
        if record is None:
            return DiscountOutcome.none(self.name, "no valid discount for country")

        if record.applicable_products and sku_code not in record.applicable_products:
            return DiscountOutcome.none(self.name, f"{record.name} not applicable to {sku_code}")

        if record.min_purchase_amount is not None and price < record.min_purchase_amount:
            return DiscountOutcome.none(
                self.name, f"{record.name} requires minimum purchase {record.min_purchase_amount}"
            )

        amount = record.calculate_discount(price)
        return DiscountOutcome(
            amount=amount,
            applied=True,
            source=self.name,
            reason=f"{record.name} ({discount_type(record.kind)} {record.value})",
            discount_id=record.discount_id,
        )

    def summary(self, country_code: Optional[str], now: datetime) -> Optional[DiscountSummary]:
        record = self.select(country_code, now)
        if record is None:
            return None
        return DiscountSummary(
            id=record.discount_id,
            name=record.name,
            description=record.description,
            type=discount_type(record.kind),
            value=record.value,
            min_purchase_amount=record.min_purchase_amount,
            max_discount_amount=record.max_discount_amount,
        )


class SettingsDiscountSource:
    """Fallback discount from storefront or per-product settings."""

    name = 'settings'

    def __init__(self, discount: SettingsDiscount):
        self.discount = discount

    def _ineligible_reason(self, price: Optional[Decimal], country_code: Optional[str],
                           now: datetime) -> Optional[str]:
        d = self.discount
        if not d.enabled or d.kind is None or not d.kind.value:
            return "settings discount disabled"
        if not d.window.contains(now):
            return "settings discount outside date window"
        if not _country_allowed(d.applicable_countries, country_code):
            return f"settings discount not offered in {country_code}"
        if price is not None and d.min_purchase_amount is not None and price < d.min_purchase_amount:
            return f"below minimum purchase {d.min_purchase_amount}"
        return None

    def evaluate(self, price: Decimal, country_code: Optional[str], sku_code: Optional[str],
                 now: datetime) -> DiscountOutcome:
        reason = self._ineligible_reason(price, country_code, now)
        if reason:
            return DiscountOutcome.none(self.name, reason)
        kind = self.discount.kind
        return DiscountOutcome(
            amount=raw_discount_amount(kind, price),
            applied=True,
            source=self.name,
            reason=f"{discount_type(kind)} {kind.value}",
        )

    def summary(self, country_code: Optional[str], now: datetime) -> Optional[DiscountSummary]:
        if self._ineligible_reason(None, country_code, now):
            return None
        d = self.discount
        return DiscountSummary(
            type=discount_type(d.kind),
            value=d.kind.value,
            description=d.description,
            min_purchase_amount=d.min_purchase_amount,
        )


@dataclass
class CodeValidation:
    """Outcome of checking a customer-entered discount code."""
    valid: bool
    error: Optional[str] = None
    discount: Optional[DiscountRecord] = None
    discount_amount: Decimal = ZERO
    final_amount: Optional[Decimal] = None


def validate_discount_code(
    records: Sequence[DiscountRecord],
    code: str,
    amount: Decimal,
    country_code: Optional[str],
    sku_code: Optional[str],
    now: datetime,
) -> CodeValidation:
    """Check a discount code against one purchase amount. Never raises for bad input."""
    code = (code or '').strip().upper()
    if not code:
        return CodeValidation(valid=False, error="Discount code is required")
    if amount is None or not amount.is_finite() or amount <= 0:
        return CodeValidation(valid=False, error="Purchase amount must be greater than 0")

    discount = next((r for r in records if r.code and r.code.upper() == code), None)
    if discount is None:
        return CodeValidation(valid=False, error="Invalid discount code")

    if not discount.is_valid(now):
        if not discount.is_active:
            error = "This discount code is no longer active"
        elif discount.window.start is not None and as_utc(now) < as_utc(discount.window.start):
            error = "This discount code is not yet active"
        elif discount.window.end is not None and as_utc(now) > as_utc(discount.window.end):
            error = "This discount code has expired"
        else:
            error = "This discount code has reached its usage limit"
        return CodeValidation(valid=False, error=error, discount=discount)

    if country_code and not _country_allowed(discount.applicable_countries, country_code):
        return CodeValidation(valid=False, error="This discount is not available in your country",
                              discount=discount)

    if sku_code and discount.applicable_products and sku_code not in discount.applicable_products:
        return CodeValidation(valid=False, error="This discount is not applicable to the selected product",
                              discount=discount)

    if discount.min_purchase_amount is not None and amount < discount.min_purchase_amount:
        return CodeValidation(
            valid=False,
            error=f"Minimum purchase amount of ${round_money(discount.min_purchase_amount)} required for this discount",
            discount=discount,
        )

    discount_amount = round_money(discount.calculate_discount(amount))
    if discount_amount <= 0:
        return CodeValidation(valid=False, error="This discount cannot be applied to your purchase",
                              discount=discount)

    return CodeValidation(
        valid=True,
        discount=discount,
        discount_amount=discount_amount,
        final_amount=round_money(max(ZERO, amount - discount_amount)),
    )
