"""
Storefront Service - Business logic for the storefront pricing calls.

Builds a PricingEngine from an organization's stored configuration and
exposes the operations the HTTP layer needs: catalog lookup, price
estimates, discount codes, quantity checks and saved-product prices.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from ..config.settings import Settings, get_settings
from ..data.store import OrganizationConfig, OrganizationStore
from ..engine.discounts import (
    NO_DISCOUNT,
    CodeValidation,
    DiscountSource,
    DiscountSummary,
    RegistryDiscountSource,
    SettingsDiscountSource,
    validate_discount_code,
)
from ..engine.eligibility import QuantityCheck, validate_quantity
from ..engine.models import CatalogItem, PricedProduct, PricingBreakdown, ResaleProduct, TraceStep
from ..engine.money import round_money, to_decimal
from ..engine.pricing_engine import PricingContext, PricingEngine, effective_price
from ..engine.rule_matcher import RuleMatcher, describe_markup
from ..logging_config import get_logger

log = get_logger(__name__)


class OrganizationNotFound(LookupError):
    def __init__(self, org_id: str):
        self.org_id = org_id
        super().__init__(f"Organization '{org_id}' not found")


class ProductNotFound(LookupError):
    def __init__(self, org_id: str, sku_code: str):
        self.sku_code = sku_code
        super().__init__(f"Product '{sku_code}' not found for organization '{org_id}'")


class StorefrontUnavailable(ValueError):
    """The organization has no storefront, or it is switched off."""


@dataclass
class LookupResult:
    """Priced catalog as returned to the storefront."""
    org_id: str
    country_code: str
    products: list[PricedProduct]
    total_products: int
    malformed: int = 0
    ineligible: int = 0
    discount: Optional[DiscountSummary] = None
    message: Optional[str] = None
    currency: str = 'USD'
    trace: list[TraceStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "orgId": self.org_id,
            "countryCode": self.country_code,
            "currency": self.currency,
            "products": [p.to_dict() for p in self.products],
            "totalProducts": self.total_products,
            "malformed": self.malformed,
            "ineligible": self.ineligible,
            "discount": self.discount.to_dict() if self.discount else None,
        }
        if self.message:
            data["message"] = self.message
        return data


@dataclass
class Estimate:
    """Cost and markup recovered from a customer-facing amount."""
    customer_price: Decimal
    cost_price: Decimal
    markup: Decimal
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    pricing_rule: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "customerPrice": float(self.customer_price),
            "costPrice": float(self.cost_price),
            "markup": float(self.markup),
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "pricingRule": self.pricing_rule,
        }


class StorefrontService:
    """Service for pricing an organization's storefront."""

    def __init__(self, store: OrganizationStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def get_config(self, org_id: str) -> OrganizationConfig:
        config = self.store.get(org_id)
        if config is None:
            raise OrganizationNotFound(org_id)
        return config

    def get_product(self, org_id: str, sku_code: str) -> ResaleProduct:
        config = self.get_config(org_id)
        product = config.products.get(sku_code)
        if product is None:
            raise ProductNotFound(org_id, sku_code)
        return product

    def discount_source_for(self, config: OrganizationConfig,
                            customer_usage: Optional[Mapping[str, int]] = None) -> DiscountSource:
        """Registry discounts when the organization has any, else the storefront settings discount."""
        if config.discounts:
            return RegistryDiscountSource(config.discounts, customer_usage)
        if config.storefront is not None:
            return SettingsDiscountSource(config.storefront.discount)
        return NO_DISCOUNT

    def build_engine(self, config: OrganizationConfig,
                     customer_usage: Optional[Mapping[str, int]] = None) -> PricingEngine:
        storefront = config.storefront
        return PricingEngine(
            rules=config.rules,
            discount_source=self.discount_source_for(config, customer_usage),
            toggles=storefront.product_types if storefront else None,
            countries=storefront.countries if storefront else None,
            resale_settings={sku: p.resale_settings for sku, p in config.products.items()},
        )

    def lookup(
        self,
        org_id: str,
        country_code: str,
        raw_items: Iterable[dict],
        now: Optional[datetime] = None,
        customer_usage: Optional[Mapping[str, int]] = None,
    ) -> LookupResult:
        """
        Price a provider catalog for one destination country.

        The response is capped at settings.max_products_per_request;
        total_products still reports the uncapped count.
        """
        config = self.get_config(org_id)
        storefront = config.storefront
        if storefront is None:
            raise StorefrontUnavailable("Storefront not configured. Please contact the merchant.")
        if not storefront.is_active:
            raise StorefrontUnavailable("Storefront is temporarily unavailable. Please try again later.")

        country_code = country_code.strip().upper()
        context = PricingContext(
            org_id=org_id,
            country_code=country_code,
            now=now or datetime.now(timezone.utc),
        )
        items = [CatalogItem.from_provider(raw) for raw in raw_items]

        engine = self.build_engine(config, customer_usage)
        pricing = engine.price_catalog(items, context)

        limit = self.settings.max_products_per_request
        result = LookupResult(
            org_id=org_id,
            country_code=country_code,
            products=pricing.products[:limit],
            total_products=pricing.total,
            malformed=pricing.malformed,
            ineligible=pricing.ineligible,
            discount=pricing.best_discount,
            currency=storefront.currency,
            trace=pricing.trace,
        )
        if not pricing.products:
            result.message = "No products available"
        elif pricing.total > limit:
            log.info("lookup_truncated", org_id=org_id, total=pricing.total, returned=limit)
        return result

    def estimate(self, org_id: str, customer_price, country_code: Optional[str] = None) -> Estimate:
        """Work back from what the customer pays to the provider cost."""
        config = self.get_config(org_id)
        customer_price = to_decimal(customer_price)
        if not customer_price.is_finite():
            raise ValueError("Amount must be a finite number")
        if customer_price <= 0:
            raise ValueError("Amount must be greater than 0")

        rule = RuleMatcher(config.rules).find_rule_for_estimate(country_code.upper() if country_code else None)
        cost = RuleMatcher.reverse_markup(rule, customer_price)
        estimate = Estimate(
            customer_price=round_money(customer_price),
            cost_price=round_money(cost),
            markup=round_money(customer_price - cost),
            rule_id=rule.rule_id if rule else None,
            rule_name=rule.name if rule else None,
            pricing_rule=describe_markup(rule.markup) if rule else None,
        )
        log.info("estimate_computed", org_id=org_id, country=country_code, rule=estimate.rule_id)
        return estimate

    def validate_code(
        self,
        org_id: str,
        code: str,
        amount,
        country_code: Optional[str] = None,
        sku_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CodeValidation:
        config = self.get_config(org_id)
        result = validate_discount_code(
            config.discounts,
            code,
            to_decimal(amount) if amount is not None else None,
            country_code.upper() if country_code else None,
            sku_code,
            now or datetime.now(timezone.utc),
        )
        log.info("discount_code_checked", org_id=org_id, valid=result.valid, error=result.error)
        return result

    def check_quantity(self, org_id: str, sku_code: str, quantity: int) -> QuantityCheck:
        product = self.get_product(org_id, sku_code)
        return validate_quantity(product.resale_settings.limits, quantity)

    def effective_price(self, org_id: str, sku_code: str, country_code: Optional[str] = None,
                        now: Optional[datetime] = None) -> PricingBreakdown:
        """Price of a saved resale product. The sell price already carries the margin, so no rules apply."""
        product = self.get_product(org_id, sku_code)
        return effective_price(product, country_code.upper() if country_code else None, now)
