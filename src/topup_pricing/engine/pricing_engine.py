"""
Pricing Engine - Price composition pipeline with traceability.

Per catalog item, in this order:
1. Classify (plan vs variable-value top-up); skip malformed items
2. Eligibility: product-type toggle, storefront countries, per-product resale settings
3. Markup from the highest-priority matching rule (no rule = zero markup)
4. Discount from the caller's chosen source, against the price after markup
5. Round markup, price before discount, discount and final price, each on its own
6. Emit a PricedProduct with the full breakdown and trace

The engine performs no I/O and never mutates its inputs, so the same inputs
and `now` always produce the same result.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from ..logging_config import get_logger
from .classifier import classify
from .discounts import NO_DISCOUNT, DiscountSource, SettingsDiscountSource, discounted_price
from .eligibility import (
    any_product_type_enabled,
    is_available_in_country,
    is_country_enabled,
    is_product_type_enabled,
)
from .models import (
    CatalogItem,
    CatalogPricing,
    ClassifiedProduct,
    CountrySettings,
    PricedProduct,
    PricingBreakdown,
    ProductTypeToggles,
    ResaleProduct,
    ResaleSettings,
)
from .money import round_money
from .rule_matcher import PricingRule, RuleMatcher, describe_markup

log = get_logger(__name__)


@dataclass(frozen=True)
class PricingContext:
    """Who is buying, where to, and when."""
    org_id: str
    country_code: str
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PricingEngine:
    """
    Core pricing engine for one organization's configuration.

    Args:
        rules: the organization's pricing rules (inactive ones are ignored)
        discount_source: registry or settings source, chosen by the caller
        toggles: plans/top-ups switches
        countries: storefront country switches; None skips that check
        resale_settings: sku -> per-product resale settings
    """

    def __init__(
        self,
        rules: Iterable[PricingRule] = (),
        discount_source: DiscountSource = NO_DISCOUNT,
        toggles: Optional[ProductTypeToggles] = None,
        countries: Optional[CountrySettings] = None,
        resale_settings: Optional[Mapping[str, ResaleSettings]] = None,
    ):
        self.rule_matcher = RuleMatcher(rules)
        self.discount_source = discount_source
        self.toggles = toggles or ProductTypeToggles()
        self.countries = countries
        self.resale_settings = dict(resale_settings or {})

    def is_eligible(self, product: ClassifiedProduct, country_code: str) -> tuple[bool, str]:
        """Returns (eligible, reason)."""
        if not is_product_type_enabled(product, self.toggles):
            kind = "top-ups" if product.is_variable_value else "plans"
            return False, f"{kind} disabled"

        if self.countries is not None and not is_country_enabled(self.countries, country_code):
            return False, f"storefront not enabled for {country_code}"

        settings = self.resale_settings.get(product.sku_code)
        if settings is not None and not is_available_in_country(settings, country_code):
            return False, f"{product.sku_code} not sold in {country_code}"

        return True, "eligible"

    def price_classified(self, product: ClassifiedProduct, context: PricingContext) -> PricedProduct:
        """Steps 3-6 for an already classified and eligible product."""
        markup_result = self.rule_matcher.apply(product.cost_price, context.country_code)
        price_after_markup = markup_result.price_after_markup

        outcome = self.discount_source.evaluate(
            price_after_markup, context.country_code, product.sku_code, context.now
        )
        final_price = discounted_price(price_after_markup, outcome)

        breakdown = PricingBreakdown(
            cost_price=product.cost_price,
            markup=round_money(markup_result.markup),
            price_before_discount=round_money(price_after_markup),
            discount=round_money(outcome.amount),
            final_price=round_money(final_price),
            discount_applied=outcome.applied,
            pricing_rule=describe_markup(markup_result.rule.markup) if markup_result.rule else None,
        )

        priced = PricedProduct(
            sku_code=product.sku_code,
            name=product.name,
            provider_code=product.provider_code,
            benefit_type=product.benefit_type,
            benefit_amount=product.benefit_amount,
            benefit_unit=product.benefit_unit,
            is_variable_value=product.is_variable_value,
            pricing=breakdown,
            min_amount=product.min_amount,
            max_amount=product.max_amount,
            benefits=product.benefits,
            validity_period=product.validity_period,
        )

        kind = "variable-value top-up" if product.is_variable_value else "fixed-value plan"
        priced.add_trace("Classification", kind, f"${product.cost_price:.2f}")
        if markup_result.rule:
            priced.add_trace(
                "Markup Rule",
                f"{markup_result.rule.name} ({markup_result.match_reason})",
                f"+${breakdown.markup:.2f}",
            )
        else:
            priced.add_trace("Markup Rule", "No rule matched, zero markup")
        if outcome.applied:
            priced.add_trace("Discount", f"{outcome.source}: {outcome.reason}", f"-${breakdown.discount:.2f}")
        else:
            priced.add_trace("Discount", f"Not applied ({outcome.reason})")
        priced.add_trace("Final Price", "Rounded half-up to cents", f"${breakdown.final_price:.2f}")
        return priced

    def price_item(self, item: CatalogItem, context: PricingContext) -> Optional[PricedProduct]:
        """Run the full pipeline for one item. None when it is malformed or ineligible."""
        product = classify(item)
        if product is None:
            return None
        eligible, _ = self.is_eligible(product, context.country_code)
        if not eligible:
            return None
        return self.price_classified(product, context)

    def price_catalog(self, items: Iterable[CatalogItem], context: PricingContext) -> CatalogPricing:
        """
        Price a whole catalog for one destination country.

        Never raises for data conditions: malformed items are counted,
        ineligible items are counted, and an empty result is a valid outcome.
        """
        result = CatalogPricing(country_code=context.country_code)
        result.add_trace("Context", f"Organization {context.org_id}", context.country_code)

        if not any_product_type_enabled(self.toggles):
            result.add_trace("Product Types", "Plans and top-ups both disabled")

        for item in items:
            product = classify(item)
            if product is None:
                result.malformed += 1
                continue

            eligible, reason = self.is_eligible(product, context.country_code)
            if not eligible:
                result.ineligible += 1
                log.debug("item_ineligible", sku=product.sku_code, reason=reason)
                continue

            result.products.append(self.price_classified(product, context))

        result.best_discount = self.discount_source.summary(context.country_code, context.now)

        matched = self.rule_matcher.find_matching_rule(context.country_code)
        result.add_trace(
            "Markup Rule",
            matched.rule.name if matched else "None (zero markup)",
            matched.match_reason if matched else None,
        )
        best = result.best_discount
        result.add_trace("Discount Source", self.discount_source.name, (best.name or best.type) if best else None)
        if result.malformed:
            result.add_trace("Malformed Items", "Skipped items with no pricing shape", str(result.malformed))

        log.info(
            "catalog_priced",
            org_id=context.org_id,
            country=context.country_code,
            products=result.total,
            malformed=result.malformed,
            ineligible=result.ineligible,
            rule=matched.rule.rule_id if matched else None,
            discount_source=self.discount_source.name,
        )
        return result


def effective_price(
    product: ResaleProduct,
    country_code: Optional[str] = None,
    now: Optional[datetime] = None,
    rules: Iterable[PricingRule] = (),
) -> PricingBreakdown:
    """
    Price a saved resale product for a country.

    A custom per-country price, when enabled and set for the country, replaces
    the default sell price as the starting point. Markup from `rules` (none by
    default) and the product's own settings discount then apply.
    """
    now = now or datetime.now(timezone.utc)
    settings = product.resale_settings

    base = product.sell_price
    if country_code and settings.custom_pricing.enabled:
        country_price = settings.custom_pricing.price_by_country.get(country_code)
        if country_price:
            base = country_price

    markup_result = RuleMatcher(rules).apply(base, country_code or '')
    price_after_markup = markup_result.price_after_markup

    outcome = SettingsDiscountSource(settings.discount).evaluate(
        price_after_markup, country_code, product.sku_code, now
    )

    return PricingBreakdown(
        cost_price=base,
        markup=round_money(markup_result.markup),
        price_before_discount=round_money(price_after_markup),
        discount=round_money(outcome.amount),
        final_price=round_money(discounted_price(price_after_markup, outcome)),
        discount_applied=outcome.applied,
        pricing_rule=describe_markup(markup_result.rule.markup) if markup_result.rule else None,
    )
