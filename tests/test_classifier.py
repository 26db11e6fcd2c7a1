"""
Classification tests: plan vs variable-value top-up, and the pricing
shape each one is priced from.
"""
from decimal import Decimal

import pytest

from topup_pricing.engine.classifier import (
    benefits_indicate_plan,
    classify,
    has_fixed_price,
    has_specific_benefits,
    is_variable_value,
)
from topup_pricing.engine.models import CatalogItem

from conftest import plan_payload, topup_payload


def test_range_only_item_is_variable_value(topup_item):
    """Min/max send values and nothing else is a variable-value top-up."""
    product = classify(topup_item)

    assert product is not None
    assert product.is_variable_value is True
    assert product.cost_price == Decimal("1.00")
    assert product.min_amount == Decimal("1.00")
    assert product.max_amount == Decimal("50.00")


def test_validity_period_makes_it_a_plan():
    item = CatalogItem.from_provider(topup_payload(ValidityPeriodIso="P30D"))

    product = classify(item)

    assert product is not None
    assert product.is_variable_value is False, "validity period should force plan classification"


@pytest.mark.parametrize("tag", ["Data", "Voice", "SMS"])
def test_plan_benefit_tags_make_it_a_plan(tag):
    item = CatalogItem.from_provider(topup_payload(Benefits=["Mobile", tag]))

    assert benefits_indicate_plan(item)
    assert classify(item).is_variable_value is False


def test_typed_benefits_make_it_a_plan():
    item = CatalogItem.from_provider(topup_payload(BenefitTypes={"Data": {"Amount": 5, "Unit": "GB"}}))

    assert has_specific_benefits(item)
    assert is_variable_value(item) is False


def test_fixed_price_with_range_is_a_plan_priced_from_fixed_shape():
    item = CatalogItem.from_provider(topup_payload(Price={"Amount": 7.5, "CurrencyCode": "USD"}))

    product = classify(item)

    assert product.is_variable_value is False
    assert product.cost_price == Decimal("7.5")


def test_fixed_plan_benefit_descriptor(plan_item):
    product = classify(plan_item)

    assert product.is_variable_value is False
    assert product.cost_price == Decimal("12.0")
    assert product.benefit_type == "airtime"
    assert product.benefit_amount == Decimal("200")
    assert product.benefit_unit == "MXN"


def test_data_plan_benefit_type():
    item = CatalogItem.from_provider(plan_payload(
        BenefitTypes={"Data": {"Amount": 2, "Unit": "GB"}, "SMS": {"Amount": 100, "Unit": "SMS"}},
    ))

    product = classify(item)

    assert product.benefit_type == "data"
    assert product.benefit_amount == Decimal("2")
    assert product.benefit_unit == "GB"


def test_range_descriptor_falls_back_to_send_currency():
    payload = topup_payload()
    payload["Minimum"] = {"SendValue": 3, "SendCurrencyIso": "EUR"}
    product = classify(CatalogItem.from_provider(payload))

    assert product.benefit_amount == Decimal("3")
    assert product.benefit_unit == "EUR"
    assert product.benefit_type == "airtime"


def test_item_without_pricing_shape_is_skipped():
    item = CatalogItem.from_provider({"SkuCode": "BROKEN", "Benefits": ["Mobile"]})

    assert classify(item) is None


def test_zero_price_is_not_a_fixed_price():
    item = CatalogItem.from_provider(plan_payload(Price={"Amount": 0, "CurrencyCode": "USD"}))

    assert not has_fixed_price(item)
    assert classify(item) is None


def test_classification_is_pure(topup_item):
    """Same input, same output; the item is not modified."""
    first = classify(topup_item)
    second = classify(topup_item)

    assert first == second
    assert topup_item == CatalogItem.from_provider(topup_payload())


def test_from_provider_tolerates_garbage_fields():
    item = CatalogItem.from_provider({
        "SkuCode": "X",
        "Price": {"Amount": "not-a-number"},
        "BenefitTypes": "nope",
        "Benefits": "Data",
    })

    assert item.price.amount is None
    assert item.benefit_types is None
    assert item.benefits == ()


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", float("nan"), float("inf")])
def test_non_finite_price_is_malformed(amount):
    item = CatalogItem.from_provider(plan_payload(Price={"Amount": amount, "CurrencyCode": "USD"}))

    assert item.price.amount is None
    assert not has_fixed_price(item)
    assert classify(item) is None


@pytest.mark.parametrize("send_value", ["NaN", "Infinity", float("nan")])
def test_non_finite_send_range_is_malformed(send_value):
    item = CatalogItem.from_provider(topup_payload(min_send=send_value, max_send=send_value))

    assert item.minimum.send_value is None
    assert classify(item) is None


def test_non_finite_typed_benefit_is_ignored():
    payload = plan_payload(BenefitTypes={"Airtime": {"Amount": "NaN", "CurrencyCode": "MXN"}})

    item = CatalogItem.from_provider(payload)

    assert not has_specific_benefits(item)
    assert classify(item).benefit_amount == Decimal("0")


def test_range_needs_both_ends():
    payload = topup_payload()
    del payload["Maximum"]

    assert classify(CatalogItem.from_provider(payload)) is None
