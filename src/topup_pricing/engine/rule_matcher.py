"""
Rule Matcher - Selects the markup rule for a destination country.

Used by the pricing engine to add the organization's markup on top of
the provider cost price.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Union

from .money import HUNDRED, ZERO, percent_of, to_decimal


# Regional country groupings
REGIONS: dict[str, frozenset] = {
    'Africa': frozenset(['DZ', 'AO', 'BJ', 'BW', 'BF', 'BI', 'CM', 'CV', 'CF', 'TD', 'KM', 'CG', 'CD', 'CI', 'DJ', 'EG', 'GQ', 'ER', 'ET', 'GA', 'GM', 'GH', 'GN', 'GW', 'KE', 'LS', 'LR', 'LY', 'MG', 'MW', 'ML', 'MR', 'MU', 'YT', 'MA', 'MZ', 'NA', 'NE', 'NG', 'RE', 'RW', 'SH', 'ST', 'SN', 'SC', 'SL', 'SO', 'ZA', 'SS', 'SD', 'SZ', 'TZ', 'TG', 'TN', 'UG', 'ZM', 'ZW']),
    'Asia': frozenset(['AF', 'AM', 'AZ', 'BH', 'BD', 'BT', 'BN', 'KH', 'CN', 'CX', 'CC', 'IO', 'GE', 'HK', 'IN', 'ID', 'IR', 'IQ', 'IL', 'JP', 'JO', 'KZ', 'KW', 'KG', 'LA', 'LB', 'MO', 'MY', 'MV', 'MN', 'MM', 'NP', 'KP', 'OM', 'PK', 'PS', 'PH', 'QA', 'SA', 'SG', 'KR', 'LK', 'SY', 'TW', 'TJ', 'TH', 'TL', 'TR', 'TM', 'AE', 'UZ', 'VN', 'YE']),
    'Europe': frozenset(['AX', 'AL', 'AD', 'AT', 'BY', 'BE', 'BA', 'BG', 'HR', 'CY', 'CZ', 'DK', 'EE', 'FO', 'FI', 'FR', 'DE', 'GI', 'GR', 'GG', 'HU', 'IS', 'IE', 'IM', 'IT', 'JE', 'XK', 'LV', 'LI', 'LT', 'LU', 'MK', 'MT', 'MD', 'MC', 'ME', 'NL', 'NO', 'PL', 'PT', 'RO', 'RU', 'SM', 'RS', 'SK', 'SI', 'ES', 'SJ', 'SE', 'CH', 'UA', 'GB', 'VA']),
    'North America': frozenset(['AI', 'AG', 'AW', 'BS', 'BB', 'BZ', 'BM', 'BQ', 'VG', 'CA', 'KY', 'CR', 'CU', 'CW', 'DM', 'DO', 'SV', 'GL', 'GD', 'GP', 'GT', 'HT', 'HN', 'JM', 'MQ', 'MX', 'MS', 'NI', 'PA', 'PM', 'PR', 'BL', 'KN', 'LC', 'MF', 'VC', 'SX', 'TT', 'TC', 'US', 'VI']),
    'South America': frozenset(['AR', 'BO', 'BR', 'CL', 'CO', 'EC', 'FK', 'GF', 'GY', 'PY', 'PE', 'SR', 'UY', 'VE']),
    'Oceania': frozenset(['AS', 'AU', 'CK', 'FJ', 'PF', 'GU', 'KI', 'MH', 'FM', 'NR', 'NC', 'NZ', 'NU', 'NF', 'MP', 'PW', 'PG', 'PN', 'WS', 'SB', 'TK', 'TO', 'TV', 'UM', 'VU', 'WF']),
    'Caribbean': frozenset(['AI', 'AG', 'AW', 'BS', 'BB', 'BQ', 'VG', 'KY', 'CU', 'CW', 'DM', 'DO', 'GD', 'GP', 'HT', 'JM', 'MQ', 'MS', 'PR', 'BL', 'KN', 'LC', 'MF', 'VC', 'SX', 'TT', 'TC', 'VI']),
    'Latin America': frozenset(['AR', 'BO', 'BR', 'CL', 'CO', 'CR', 'CU', 'DO', 'EC', 'SV', 'GT', 'HT', 'HN', 'MX', 'NI', 'PA', 'PY', 'PE', 'UY', 'VE']),
}


@dataclass(frozen=True)
class PercentageMarkup:
    value: Decimal


@dataclass(frozen=True)
class FixedMarkup:
    value: Decimal


@dataclass(frozen=True)
class PercentagePlusFixedMarkup:
    percentage: Decimal
    fixed: Decimal


Markup = Union[PercentageMarkup, FixedMarkup, PercentagePlusFixedMarkup]


def markup_parts(markup: Markup) -> tuple[Decimal, Decimal]:
    """(percentage, fixed) components of any markup kind."""
    if isinstance(markup, PercentageMarkup):
        return markup.value, ZERO
    if isinstance(markup, FixedMarkup):
        return ZERO, markup.value
    if isinstance(markup, PercentagePlusFixedMarkup):
        return markup.percentage, markup.fixed
    raise TypeError(f"Unknown markup kind: {markup!r}")


def describe_markup(markup: Markup) -> dict:
    """Rule parameters as published to clients pricing variable-value products."""
    if isinstance(markup, PercentageMarkup):
        return {"type": "percentage", "percentageValue": float(markup.value)}
    if isinstance(markup, FixedMarkup):
        return {"type": "fixed", "fixedValue": float(markup.value)}
    if isinstance(markup, PercentagePlusFixedMarkup):
        return {
            "type": "percentage_plus_fixed",
            "percentageValue": float(markup.percentage),
            "fixedValue": float(markup.fixed),
        }
    raise TypeError(f"Unknown markup kind: {markup!r}")


@dataclass(frozen=True)
class CountryScope:
    """Where a rule applies. Empty scope = every country."""
    countries: frozenset = frozenset()
    regions: tuple[str, ...] = ()
    excluded: frozenset = frozenset()

    def matches(self, country_code: str) -> bool:
        if country_code in self.excluded:
            return False
        if self.countries:
            return country_code in self.countries
        if self.regions:
            return any(country_code in REGIONS.get(region, ()) for region in self.regions)
        return True

    def describe(self) -> str:
        if self.countries:
            return "countries=" + ",".join(sorted(self.countries))
        if self.regions:
            return "regions=" + ",".join(self.regions)
        return "all countries"


@dataclass(frozen=True)
class PricingRule:
    """An organization's markup policy."""
    rule_id: str
    name: str
    markup: Markup
    priority: int = 0  # higher wins
    is_active: bool = True
    scope: CountryScope = field(default_factory=CountryScope)
    min_transaction_amount: Optional[Decimal] = None
    max_transaction_amount: Optional[Decimal] = None
    description: str = ''


@dataclass(frozen=True)
class MatchedRule:
    """A rule that matched with context."""
    rule: PricingRule
    match_reason: str


@dataclass(frozen=True)
class MarkupResult:
    """Markup applied to one cost price. `rule` is None when nothing matched."""
    cost_price: Decimal
    markup: Decimal
    price_after_markup: Decimal
    rule: Optional[PricingRule] = None
    match_reason: str = "no rule"


class RuleMatcher:
    """
    Selects and applies markup rules.

    Only active rules participate. Rules are ordered by priority, highest
    first; ties keep the order they were supplied in. The first rule whose
    country scope matches wins. No match means zero markup, not an error.
    """

    def __init__(self, rules: Iterable[PricingRule] = ()):
        active = [r for r in rules if r.is_active]
        # sorted() is stable with reverse=True, so equal priorities keep input order
        self.rules = sorted(active, key=lambda r: r.priority, reverse=True)

    @property
    def loaded(self) -> bool:
        return bool(self.rules)

    def find_matching_rule(self, country_code: str) -> Optional[MatchedRule]:
        for rule in self.rules:
            if rule.scope.matches(country_code):
                return MatchedRule(
                    rule=rule,
                    match_reason=f"priority {rule.priority}, {rule.scope.describe()}",
                )
        return None

    def find_rule_for_estimate(self, country_code: Optional[str] = None) -> Optional[PricingRule]:
        """Estimates fall back to the top-priority rule when the country is unknown or unmatched."""
        if country_code:
            matched = self.find_matching_rule(country_code)
            if matched:
                return matched.rule
        return self.rules[0] if self.rules else None

    @staticmethod
    def compute_markup(rule: PricingRule, cost_price: Decimal) -> Decimal:
        """Markup over cost. Zero outside the rule's transaction-amount bounds."""
        cost_price = to_decimal(cost_price)
        if rule.min_transaction_amount is not None and cost_price < rule.min_transaction_amount:
            return ZERO
        if rule.max_transaction_amount is not None and cost_price > rule.max_transaction_amount:
            return ZERO

        percentage, fixed = markup_parts(rule.markup)
        markup = percent_of(cost_price, percentage) + fixed
        return max(ZERO, markup)

    def apply(self, cost_price: Decimal, country_code: str) -> MarkupResult:
        cost_price = to_decimal(cost_price)
        matched = self.find_matching_rule(country_code)
        if matched is None:
            return MarkupResult(cost_price=cost_price, markup=ZERO, price_after_markup=cost_price)

        markup = self.compute_markup(matched.rule, cost_price)
        return MarkupResult(
            cost_price=cost_price,
            markup=markup,
            price_after_markup=cost_price + markup,
            rule=matched.rule,
            match_reason=matched.match_reason,
        )

    @staticmethod
    def reverse_markup(rule: Optional[PricingRule], customer_price: Decimal) -> Decimal:
        """
        Recover the provider cost from a customer-facing price.

        customer = cost * (1 + pct/100) + fixed, so cost = (customer - fixed) / (1 + pct/100).
        """
        customer_price = to_decimal(customer_price)
        if rule is None:
            return customer_price
        percentage, fixed = markup_parts(rule.markup)
        cost = (customer_price - fixed) / (1 + percentage / HUNDRED)
        return max(ZERO, cost)
