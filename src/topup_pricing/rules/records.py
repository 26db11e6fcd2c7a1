"""
Record Parser - Validates loosely-typed configuration rows into engine types.

Rows come from CSV (all strings) or JSON (typed values) and may use
camelCase or snake_case keys. Everything past this module works with
tagged markup/discount variants and never sees raw rows.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from ..engine.discounts import (
    DiscountKind,
    DiscountRecord,
    DiscountWindow,
    FixedDiscount,
    PercentageDiscount,
    SettingsDiscount,
)
from ..engine.models import (
    CountrySettings,
    CustomPricing,
    ProductTypeToggles,
    QuantityLimits,
    ResaleProduct,
    ResaleSettings,
    StorefrontSettings,
)
from ..engine.money import to_decimal
from ..engine.rule_matcher import (
    REGIONS,
    CountryScope,
    FixedMarkup,
    Markup,
    PercentageMarkup,
    PercentagePlusFixedMarkup,
    PricingRule,
)


VALID_TYPES = {'percentage', 'fixed'}


class RecordError(ValueError):
    """A configuration row that cannot be turned into a valid record."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


def _get(row: dict, *keys: str) -> Any:
    """First present, non-empty value among the key spellings."""
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == '':
            continue
        return value
    return None


def _section(row: dict, *keys: str) -> dict:
    """Nested object under one of the key spellings; {} when unset."""
    value = _get(row, *keys)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RecordError(keys[-1], "must be an object")
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    """Parse a boolean from CSV string or JSON value."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_str(value: Any) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


def parse_optional_int(value: Any, field: str) -> Optional[int]:
    if value is None or str(value).strip() == '':
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise RecordError(field, f"must be an integer, got {value!r}")


def parse_optional_amount(value: Any, field: str) -> Optional[Decimal]:
    """Non-negative money amount, or None when unset."""
    if value is None or str(value).strip() == '':
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        raise RecordError(field, f"must be a number, got {value!r}")
    if not amount.is_finite():
        raise RecordError(field, "must be a finite number")
    if amount < 0:
        raise RecordError(field, "must not be negative")
    return amount


def parse_country_list(value: Any) -> frozenset:
    """ISO codes from a list or a "US|CA" / "US,CA" string."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        parts = value.replace(',', '|').split('|')
    else:
        parts = list(value)
    return frozenset(str(p).strip().upper() for p in parts if str(p).strip())


def parse_optional_datetime(value: Any, field: str) -> Optional[datetime]:
    """ISO date or datetime; naive values are UTC."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise RecordError(field, "must be an ISO date (YYYY-MM-DD) or datetime")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_window(row: dict) -> DiscountWindow:
    window = DiscountWindow(
        start=parse_optional_datetime(_get(row, 'startDate', 'start_date'), 'start_date'),
        end=parse_optional_datetime(_get(row, 'endDate', 'end_date'), 'end_date'),
    )
    if window.start and window.end and window.start > window.end:
        raise RecordError('start_date', "must be before end_date")
    return window


def parse_markup(row: dict) -> Markup:
    """
    New-style percentageMarkup/fixedMarkup (one or both) take precedence over
    the legacy type/value pair.
    """
    percentage = parse_optional_amount(_get(row, 'percentageMarkup', 'percentage_markup'), 'percentage_markup')
    fixed = parse_optional_amount(_get(row, 'fixedMarkup', 'fixed_markup'), 'fixed_markup')

    if percentage is not None and fixed is not None:
        return PercentagePlusFixedMarkup(percentage=percentage, fixed=fixed)
    if percentage is not None:
        return PercentageMarkup(value=percentage)
    if fixed is not None:
        return FixedMarkup(value=fixed)

    markup_type = parse_optional_str(_get(row, 'markupType', 'markup_type', 'type'))
    value = parse_optional_amount(_get(row, 'markupValue', 'markup_value', 'value'), 'markup_value')
    if markup_type is None or value is None:
        raise RecordError('markup', "a percentage/fixed markup or a type and value is required")
    markup_type = markup_type.lower()
    if markup_type not in VALID_TYPES:
        raise RecordError('markup_type', f"invalid type '{markup_type}', must be one of: {sorted(VALID_TYPES)}")
    if markup_type == 'percentage':
        return PercentageMarkup(value=value)
    return FixedMarkup(value=value)


def parse_discount_kind(row: dict, required: bool = True) -> Optional[DiscountKind]:
    discount_type = parse_optional_str(_get(row, 'type', 'discountType', 'discount_type'))
    value = parse_optional_amount(_get(row, 'value'), 'value')
    if discount_type is None or value is None:
        if required:
            raise RecordError('type', "discount type and value are required")
        return None
    discount_type = discount_type.lower()
    if discount_type not in VALID_TYPES:
        raise RecordError('type', f"invalid type '{discount_type}', must be one of: {sorted(VALID_TYPES)}")
    if discount_type == 'percentage':
        if value > 100:
            raise RecordError('value', "percentage discount cannot exceed 100")
        return PercentageDiscount(value=value)
    return FixedDiscount(value=value)


def parse_pricing_rule(row: dict) -> PricingRule:
    rule_id = parse_optional_str(_get(row, 'rule_id', 'ruleId', 'id', '_id'))
    name = parse_optional_str(_get(row, 'name'))
    if not name:
        raise RecordError('name', "is required")

    regions = tuple(sorted(parse_name_list(_get(row, 'applicableRegions', 'applicable_regions'))))
    unknown = [r for r in regions if r not in REGIONS]
    if unknown:
        raise RecordError('applicable_regions', f"unknown regions: {', '.join(unknown)}")

    priority = parse_optional_int(_get(row, 'priority'), 'priority')

    return PricingRule(
        rule_id=rule_id or name,
        name=name,
        description=parse_optional_str(_get(row, 'description')) or '',
        markup=parse_markup(row),
        priority=priority if priority is not None else 0,
        is_active=parse_bool(_get(row, 'isActive', 'is_active', 'active'), default=True),
        scope=CountryScope(
            countries=parse_country_list(_get(row, 'applicableCountries', 'applicable_countries', 'countries')),
            regions=regions,
            excluded=parse_country_list(_get(row, 'excludedCountries', 'excluded_countries')),
        ),
        min_transaction_amount=parse_optional_amount(
            _get(row, 'minTransactionAmount', 'min_transaction_amount'), 'min_transaction_amount'),
        max_transaction_amount=parse_optional_amount(
            _get(row, 'maxTransactionAmount', 'max_transaction_amount'), 'max_transaction_amount'),
    )


def parse_name_list(value: Any) -> frozenset:
    """Names from a list or a "a|b" string, case kept (regions, SKU codes)."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        parts = value.split('|')
    else:
        parts = list(value)
    return frozenset(str(p).strip() for p in parts if str(p).strip())


def parse_discount(row: dict) -> DiscountRecord:
    discount_id = parse_optional_str(_get(row, 'id', '_id', 'discount_id', 'discountId'))
    if not discount_id:
        raise RecordError('id', "is required")
    name = parse_optional_str(_get(row, 'name'))
    if not name:
        raise RecordError('name', "is required")

    usage_count = parse_optional_int(_get(row, 'usageCount', 'usage_count'), 'usage_count')
    max_per_customer = parse_optional_int(
        _get(row, 'maxUsesPerCustomer', 'max_uses_per_customer'), 'max_uses_per_customer')
    if max_per_customer is not None and max_per_customer < 1:
        raise RecordError('max_uses_per_customer', "must be at least 1")
    code = parse_optional_str(_get(row, 'code'))

    return DiscountRecord(
        discount_id=discount_id,
        name=name,
        description=parse_optional_str(_get(row, 'description')) or '',
        code=code.upper() if code else None,
        kind=parse_discount_kind(row),
        is_active=parse_bool(_get(row, 'isActive', 'is_active', 'active'), default=True),
        window=parse_window(row),
        min_purchase_amount=parse_optional_amount(
            _get(row, 'minPurchaseAmount', 'min_purchase_amount'), 'min_purchase_amount'),
        max_discount_amount=parse_optional_amount(
            _get(row, 'maxDiscountAmount', 'max_discount_amount'), 'max_discount_amount'),
        applicable_countries=parse_country_list(_get(row, 'applicableCountries', 'applicable_countries')),
        applicable_products=parse_name_list(_get(row, 'applicableProducts', 'applicable_products')),
        usage_limit=parse_optional_int(_get(row, 'usageLimit', 'usage_limit'), 'usage_limit'),
        usage_count=usage_count or 0,
        max_uses_per_customer=max_per_customer,
    )


def parse_settings_discount(row: Optional[dict]) -> SettingsDiscount:
    if not row:
        return SettingsDiscount()
    enabled = parse_bool(_get(row, 'enabled'))
    return SettingsDiscount(
        enabled=enabled,
        kind=parse_discount_kind(row, required=enabled),
        window=parse_window(row),
        min_purchase_amount=parse_optional_amount(
            _get(row, 'minPurchaseAmount', 'min_purchase_amount'), 'min_purchase_amount'),
        applicable_countries=parse_country_list(_get(row, 'applicableCountries', 'applicable_countries')),
        description=parse_optional_str(_get(row, 'description')) or '',
    )


def parse_resale_settings(row: Optional[dict]) -> ResaleSettings:
    if not row:
        return ResaleSettings()

    custom = _section(row, 'customPricing', 'custom_pricing')
    prices = _section(custom, 'priceByCountry', 'price_by_country')
    price_by_country = {
        str(country).strip().upper(): parse_optional_amount(price, f'price_by_country.{country}')
        for country, price in prices.items()
    }

    limits = _section(row, 'limits')
    min_quantity = parse_optional_int(_get(limits, 'minQuantity', 'min_quantity'), 'min_quantity')
    max_quantity = parse_optional_int(_get(limits, 'maxQuantity', 'max_quantity'), 'max_quantity')
    if min_quantity is not None and max_quantity is not None and min_quantity > max_quantity:
        raise RecordError('limits', "min_quantity must not exceed max_quantity")

    return ResaleSettings(
        allowed_countries=parse_country_list(_get(row, 'allowedCountries', 'allowed_countries')),
        blocked_countries=parse_country_list(_get(row, 'blockedCountries', 'blocked_countries')),
        custom_pricing=CustomPricing(
            enabled=parse_bool(_get(custom, 'enabled')),
            price_by_country={c: p for c, p in price_by_country.items() if p is not None},
        ),
        discount=parse_settings_discount(_section(row, 'discount')),
        limits=QuantityLimits(min_quantity=min_quantity, max_quantity=max_quantity),
    )


def parse_storefront_settings(row: dict) -> StorefrontSettings:
    org_id = parse_optional_str(_get(row, 'orgId', 'org_id'))
    if not org_id:
        raise RecordError('org_id', "is required")

    countries = _section(row, 'countries')
    product_types = _section(row, 'productTypes', 'product_types')
    pricing = _section(row, 'pricing')
    branding = _section(row, 'branding')

    return StorefrontSettings(
        org_id=org_id,
        is_active=parse_bool(_get(row, 'isActive', 'is_active')),
        countries=CountrySettings(
            enabled=parse_country_list(_get(countries, 'enabled')),
            disabled=parse_country_list(_get(countries, 'disabled')),
            all_enabled=parse_bool(_get(countries, 'allEnabled', 'all_enabled')),
        ),
        product_types=ProductTypeToggles(
            plans_enabled=parse_bool(_get(product_types, 'plansEnabled', 'plans_enabled'), default=True),
            topups_enabled=parse_bool(_get(product_types, 'topupsEnabled', 'topups_enabled'), default=True),
        ),
        discount=parse_settings_discount(_section(row, 'discount')),
        currency=(parse_optional_str(_get(pricing, 'currency')) or 'USD').upper(),
        business_name=parse_optional_str(_get(branding, 'businessName', 'business_name')) or '',
    )


def parse_resale_product(row: dict) -> ResaleProduct:
    sku_code = parse_optional_str(_get(row, 'skuCode', 'sku_code', 'providerProductId'))
    if not sku_code:
        raise RecordError('sku_code', "is required")
    pricing = _section(row, 'pricing')
    cost_price = parse_optional_amount(_get(pricing, 'costPrice', 'cost_price'), 'cost_price')
    sell_price = parse_optional_amount(_get(pricing, 'sellPrice', 'sell_price'), 'sell_price')
    if cost_price is None or sell_price is None:
        raise RecordError('pricing', "cost_price and sell_price are required")
    if sell_price < cost_price:
        raise RecordError('sell_price', "must be greater than or equal to cost price")

    return ResaleProduct(
        sku_code=sku_code,
        name=parse_optional_str(_get(row, 'name')) or sku_code,
        cost_price=cost_price,
        sell_price=sell_price,
        currency=(parse_optional_str(_get(pricing, 'currency')) or 'USD').upper(),
        resale_settings=parse_resale_settings(_section(row, 'resaleSettings', 'resale_settings')),
    )


def validate_rule_rows(rows: Iterable[dict], first_line: int = 2) -> tuple[list[PricingRule], list[str]]:
    """
    Validate and parse pricing rules from table rows.

    Returns (rules, errors); a bad row is reported and skipped.
    """
    rules = []
    errors = []
    for line_num, row in enumerate(rows, start=first_line):  # +2 for 1-indexed header row
        try:
            rules.append(parse_pricing_rule(row))
        except RecordError as e:
            errors.append(f"Line {line_num}: {e}")
    return rules, errors

