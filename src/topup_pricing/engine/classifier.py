"""
Product Classifier - Decides whether a catalog item is a plan or a top-up.

A variable-value top-up needs a min/max send range and none of the plan
signals (fixed price, typed benefits, validity period, Data/Voice/SMS tags).
Anything ambiguous is treated as a plan.
"""
from decimal import Decimal
from typing import Optional

from .models import CatalogItem, ClassifiedProduct
from .money import ZERO

PLAN_BENEFIT_TAGS = ('Data', 'Voice', 'SMS')


def has_min_max(item: CatalogItem) -> bool:
    return item.minimum is not None and item.maximum is not None


def has_fixed_price(item: CatalogItem) -> bool:
    return item.price is not None and bool(item.price.amount)


def has_specific_benefits(item: CatalogItem) -> bool:
    return item.benefit_types is not None and item.benefit_types.any_present()


def has_validity_period(item: CatalogItem) -> bool:
    return bool(item.validity_period)


def benefits_indicate_plan(item: CatalogItem) -> bool:
    return any(tag in item.benefits for tag in PLAN_BENEFIT_TAGS)


def is_variable_value(item: CatalogItem) -> bool:
    return (
        has_min_max(item)
        and not has_fixed_price(item)
        and not has_specific_benefits(item)
        and not has_validity_period(item)
        and not benefits_indicate_plan(item)
    )


def is_classifiable(item: CatalogItem) -> bool:
    """At least one pricing shape is present; the range shape needs both ends."""
    has_range_price = has_min_max(item) and bool(item.minimum.send_value)
    return has_fixed_price(item) or has_range_price


def _fixed_shape(item: CatalogItem) -> tuple[Decimal, Decimal, str, str]:
    types = item.benefit_types
    cost = item.price.amount
    if types is None:
        return cost, ZERO, '', 'airtime'

    benefit = types.airtime or types.data
    amount = benefit.amount if benefit else ZERO
    unit = benefit.unit if benefit else ''

    for benefit_type in ('airtime', 'data', 'voice', 'sms'):
        if getattr(types, benefit_type) is not None:
            return cost, amount, unit, benefit_type
    return cost, amount, unit, 'airtime'


def _range_shape(item: CatalogItem) -> tuple[Decimal, Decimal, str, str]:
    minimum = item.minimum
    cost = minimum.send_value
    amount = minimum.receive_value or cost
    unit = minimum.receive_currency or minimum.send_currency or 'USD'
    benefit_type = 'data' if 'Data' in item.benefits else 'airtime'
    return cost, amount, unit, benefit_type


def classify(item: CatalogItem) -> Optional[ClassifiedProduct]:
    """
    Classify one catalog item.

    Returns None when the item has neither pricing shape; the caller counts
    and skips it. The fixed-price shape wins when both are present.
    """
    if not is_classifiable(item):
        return None

    if has_fixed_price(item):
        cost, amount, unit, benefit_type = _fixed_shape(item)
    else:
        cost, amount, unit, benefit_type = _range_shape(item)

    return ClassifiedProduct(
        sku_code=item.sku_code,
        name=item.name,
        provider_code=item.provider_code,
        cost_price=cost,
        benefit_amount=amount,
        benefit_unit=unit,
        benefit_type=benefit_type,
        is_variable_value=is_variable_value(item),
        min_amount=item.minimum.send_value if item.minimum else None,
        max_amount=item.maximum.send_value if item.maximum else None,
        benefits=item.benefits,
        validity_period=item.validity_period,
    )
