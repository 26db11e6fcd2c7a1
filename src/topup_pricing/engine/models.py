"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
Inputs (catalog items, settings) are frozen; outputs carry an audit trace.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from .discounts import DiscountSummary, SettingsDiscount
from .money import to_decimal


# Provider catalog (read-only input)

@dataclass(frozen=True)
class FixedPrice:
    """Shape A: one predetermined wholesale price."""
    amount: Optional[Decimal]
    currency: str = ''


@dataclass(frozen=True)
class TypedBenefit:
    amount: Optional[Decimal]
    unit: str = ''


@dataclass(frozen=True)
class BenefitTypes:
    """Typed benefit amounts of a fixed-value item."""
    airtime: Optional[TypedBenefit] = None
    data: Optional[TypedBenefit] = None
    voice: Optional[TypedBenefit] = None
    sms: Optional[TypedBenefit] = None

    def any_present(self) -> bool:
        return any(b is not None for b in (self.airtime, self.data, self.voice, self.sms))


@dataclass(frozen=True)
class SendValueRange:
    """One end of shape B: a send-value bound and what the recipient gets for it."""
    send_value: Optional[Decimal]
    send_currency: str = ''
    receive_value: Optional[Decimal] = None
    receive_currency: str = ''


def _amount(value) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        return None
    if not amount.is_finite():
        return None
    return amount


def _benefit(raw: Optional[dict], unit_key: str) -> Optional[TypedBenefit]:
    if not isinstance(raw, dict):
        return None
    amount = _amount(raw.get('Amount'))
    if not amount:
        return None
    return TypedBenefit(amount=amount, unit=str(raw.get(unit_key) or raw.get('Unit') or ''))


def _range(raw: Optional[dict]) -> Optional[SendValueRange]:
    if not isinstance(raw, dict):
        return None
    return SendValueRange(
        send_value=_amount(raw.get('SendValue')),
        send_currency=str(raw.get('SendCurrencyIso') or ''),
        receive_value=_amount(raw.get('ReceiveValue')),
        receive_currency=str(raw.get('ReceiveCurrencyIso') or ''),
    )


@dataclass(frozen=True)
class CatalogItem:
    """A raw catalog item from the upstream provider."""
    sku_code: str
    name: str = ''
    provider_code: str = ''
    price: Optional[FixedPrice] = None
    benefit_types: Optional[BenefitTypes] = None
    minimum: Optional[SendValueRange] = None
    maximum: Optional[SendValueRange] = None
    benefits: tuple[str, ...] = ()
    validity_period: Optional[str] = None  # ISO 8601 duration, e.g. "P30D"

    @classmethod
    def from_provider(cls, raw: dict) -> 'CatalogItem':
        """
        Build from the provider's PascalCase payload.

        Missing or unparseable fields become None; classification decides
        whether what is left is usable.
        """
        price = None
        raw_price = raw.get('Price')
        if isinstance(raw_price, dict):
            price = FixedPrice(
                amount=_amount(raw_price.get('Amount')),
                currency=str(raw_price.get('CurrencyCode') or ''),
            )

        benefit_types = None
        raw_types = raw.get('BenefitTypes')
        if isinstance(raw_types, dict):
            benefit_types = BenefitTypes(
                airtime=_benefit(raw_types.get('Airtime'), 'CurrencyCode'),
                data=_benefit(raw_types.get('Data'), 'Unit'),
                voice=_benefit(raw_types.get('Voice'), 'Unit'),
                sms=_benefit(raw_types.get('SMS'), 'Unit'),
            )

        benefits = raw.get('Benefits')
        if not isinstance(benefits, (list, tuple)):
            benefits = ()

        return cls(
            sku_code=str(raw.get('SkuCode') or ''),
            name=str(raw.get('DefaultDisplayText') or ''),
            provider_code=str(raw.get('ProviderCode') or ''),
            price=price,
            benefit_types=benefit_types,
            minimum=_range(raw.get('Minimum')),
            maximum=_range(raw.get('Maximum')),
            benefits=tuple(str(b) for b in benefits),
            validity_period=raw.get('ValidityPeriodIso') or None,
        )


@dataclass(frozen=True)
class ClassifiedProduct:
    """A catalog item after classification; immutable per evaluation."""
    sku_code: str
    name: str
    provider_code: str
    cost_price: Decimal
    benefit_amount: Decimal
    benefit_unit: str
    benefit_type: str  # "airtime", "data", "voice", "sms"
    is_variable_value: bool
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    benefits: tuple[str, ...] = ()
    validity_period: Optional[str] = None


# Organization configuration (already loaded, read-only)

@dataclass(frozen=True)
class ProductTypeToggles:
    plans_enabled: bool = True
    topups_enabled: bool = True


@dataclass(frozen=True)
class CountrySettings:
    """Storefront-wide country switches."""
    enabled: frozenset = frozenset()
    disabled: frozenset = frozenset()
    all_enabled: bool = False


@dataclass(frozen=True)
class QuantityLimits:
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None


@dataclass(frozen=True)
class CustomPricing:
    enabled: bool = False
    price_by_country: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ResaleSettings:
    """Per-product resale configuration. Blocklist beats allowlist."""
    allowed_countries: frozenset = frozenset()  # empty = all
    blocked_countries: frozenset = frozenset()
    custom_pricing: CustomPricing = field(default_factory=CustomPricing)
    discount: SettingsDiscount = field(default_factory=SettingsDiscount)
    limits: QuantityLimits = field(default_factory=QuantityLimits)


@dataclass(frozen=True)
class StorefrontSettings:
    """One per organization."""
    org_id: str
    is_active: bool = False
    countries: CountrySettings = field(default_factory=CountrySettings)
    product_types: ProductTypeToggles = field(default_factory=ProductTypeToggles)
    discount: SettingsDiscount = field(default_factory=SettingsDiscount)
    currency: str = 'USD'
    business_name: str = ''


@dataclass(frozen=True)
class ResaleProduct:
    """A product the organization has saved for resale with its own sell price."""
    sku_code: str
    name: str
    cost_price: Decimal
    sell_price: Decimal
    currency: str = 'USD'
    resale_settings: ResaleSettings = field(default_factory=ResaleSettings)


# Output

@dataclass
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class PricingBreakdown:
    """Audit breakdown of one price. Each field is rounded on its own."""
    cost_price: Decimal
    markup: Decimal
    price_before_discount: Decimal
    discount: Decimal
    final_price: Decimal
    discount_applied: bool
    pricing_rule: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {
            "costPrice": float(self.cost_price),
            "markup": float(self.markup),
            "priceBeforeDiscount": float(self.price_before_discount),
            "discount": float(self.discount),
            "finalPrice": float(self.final_price),
            "discountApplied": self.discount_applied,
        }
        if self.pricing_rule:
            data["pricingRule"] = self.pricing_rule
        return data


@dataclass
class PricedProduct:
    """A classified, eligible product with its final sell price."""
    sku_code: str
    name: str
    provider_code: str
    benefit_type: str
    benefit_amount: Decimal
    benefit_unit: str
    is_variable_value: bool
    pricing: PricingBreakdown
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    benefits: tuple[str, ...] = ()
    validity_period: Optional[str] = None
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this product."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Client-facing camelCase form."""
        return {
            "skuCode": self.sku_code,
            "name": self.name,
            "providerCode": self.provider_code,
            "benefitType": self.benefit_type,
            "benefitAmount": float(self.benefit_amount),
            "benefitUnit": self.benefit_unit,
            "isVariableValue": self.is_variable_value,
            "minAmount": float(self.min_amount) if self.min_amount is not None else None,
            "maxAmount": float(self.max_amount) if self.max_amount is not None else None,
            "benefits": list(self.benefits),
            "validityPeriod": self.validity_period,
            "pricing": self.pricing.to_dict(),
        }


@dataclass
class CatalogPricing:
    """Complete result of pricing one catalog for one destination country."""
    country_code: str
    products: list[PricedProduct] = field(default_factory=list)
    malformed: int = 0  # items with neither pricing shape
    ineligible: int = 0
    best_discount: Optional[DiscountSummary] = None
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the catalog-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    @property
    def total(self) -> int:
        return len(self.products)
