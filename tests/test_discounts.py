"""
Discount resolution tests for both discount sources and code validation.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from topup_pricing.engine.discounts import (
    NO_DISCOUNT,
    DiscountRecord,
    DiscountWindow,
    FixedDiscount,
    PercentageDiscount,
    RegistryDiscountSource,
    SettingsDiscount,
    SettingsDiscountSource,
    discounted_price,
    validate_discount_code,
)

from conftest import NOW


def make_discount(discount_id, kind, **kwargs):
    return DiscountRecord(discount_id=discount_id, name=kwargs.pop('name', discount_id), kind=kind, **kwargs)


def settings_discount(kind, **kwargs):
    return SettingsDiscount(enabled=kwargs.pop('enabled', True), kind=kind, **kwargs)


# Registry source

def test_registry_picks_largest_configured_value():
    """Values compare as configured: 50 (%) beats 5 ($)."""
    source = RegistryDiscountSource([
        make_discount("FIXED5", FixedDiscount(Decimal("5"))),
        make_discount("PCT50", PercentageDiscount(Decimal("50"))),
    ])

    assert source.select("MX", NOW).discount_id == "PCT50"


def test_registry_value_ties_keep_input_order():
    source = RegistryDiscountSource([
        make_discount("A", FixedDiscount(Decimal("2"))),
        make_discount("B", FixedDiscount(Decimal("2"))),
    ])

    assert source.select("MX", NOW).discount_id == "A"


def test_registry_country_filter():
    source = RegistryDiscountSource([
        make_discount("MX-ONLY", FixedDiscount(Decimal("3")), applicable_countries=frozenset({"MX"})),
        make_discount("ANY", FixedDiscount(Decimal("1"))),
    ])

    assert source.select("MX", NOW).discount_id == "MX-ONLY"
    assert source.select("NG", NOW).discount_id == "ANY"


@pytest.mark.parametrize("kwargs", [
    {"is_active": False},
    {"window": DiscountWindow(start=NOW + timedelta(days=1))},
    {"window": DiscountWindow(end=NOW - timedelta(seconds=1))},
    {"usage_limit": 10, "usage_count": 10},
])
def test_registry_skips_invalid_records(kwargs):
    source = RegistryDiscountSource([make_discount("D", PercentageDiscount(Decimal("10")), **kwargs)])

    outcome = source.evaluate(Decimal("12.00"), "MX", "SKU", NOW)

    assert outcome.applied is False
    assert outcome.amount == Decimal("0")
    assert source.summary("MX", NOW) is None


def test_registry_window_bounds_are_inclusive():
    record = make_discount("D", FixedDiscount(Decimal("1")), window=DiscountWindow(start=NOW, end=NOW))

    assert record.is_valid(NOW)
    assert not record.is_valid(NOW + timedelta(microseconds=1))


def test_registry_caps_by_max_discount_and_price():
    capped = RegistryDiscountSource([
        make_discount("D", PercentageDiscount(Decimal("50")), max_discount_amount=Decimal("2.00")),
    ])
    clamped = RegistryDiscountSource([make_discount("BIG", FixedDiscount(Decimal("20")))])

    assert capped.evaluate(Decimal("12.00"), "MX", None, NOW).amount == Decimal("2.00")
    outcome = clamped.evaluate(Decimal("12.00"), "MX", None, NOW)
    assert outcome.amount == Decimal("12.00")
    assert discounted_price(Decimal("12.00"), outcome) == Decimal("0")


def test_registry_min_purchase_does_not_fall_through():
    """The top record's own restrictions decide; the next record is not tried."""
    source = RegistryDiscountSource([
        make_discount("BIG", FixedDiscount(Decimal("5")), min_purchase_amount=Decimal("50")),
        make_discount("SMALL", FixedDiscount(Decimal("1"))),
    ])

    outcome = source.evaluate(Decimal("12.00"), "MX", "SKU", NOW)

    assert outcome.applied is False
    assert "minimum purchase" in outcome.reason


def test_min_purchase_is_decided_by_the_source_not_the_record():
    record = make_discount("BIG", FixedDiscount(Decimal("5")), min_purchase_amount=Decimal("50"))
    source = RegistryDiscountSource([record])

    assert record.calculate_discount(Decimal("12.00")) == Decimal("5")
    assert source.evaluate(Decimal("49.99"), "MX", "SKU", NOW).applied is False
    assert source.evaluate(Decimal("50.00"), "MX", "SKU", NOW).amount == Decimal("5")


def test_registry_product_restriction():
    source = RegistryDiscountSource([
        make_discount("D", FixedDiscount(Decimal("1")), applicable_products=frozenset({"MX_TELCEL_10"})),
    ])

    assert source.evaluate(Decimal("12"), "MX", "MX_TELCEL_10", NOW).applied
    assert not source.evaluate(Decimal("12"), "MX", "MX_MOVISTAR_10", NOW).applied


def test_registry_customer_usage_snapshot():
    record = make_discount("ONCE", FixedDiscount(Decimal("1")), max_uses_per_customer=1)

    assert RegistryDiscountSource([record]).select("MX", NOW) is not None
    assert RegistryDiscountSource([record], {"ONCE": 1}).select("MX", NOW) is None


def test_registry_evaluation_does_not_consume_usage():
    record = make_discount("D", FixedDiscount(Decimal("1")), usage_limit=5, usage_count=4)
    source = RegistryDiscountSource([record])

    for _ in range(3):
        assert source.evaluate(Decimal("12"), "MX", None, NOW).applied
    assert record.usage_count == 4


def test_registry_summary():
    source = RegistryDiscountSource([
        make_discount("D", PercentageDiscount(Decimal("5")), name="Welcome", description="5% off",
                      max_discount_amount=Decimal("2")),
    ])

    assert source.summary("MX", NOW).to_dict() == {
        "id": "D",
        "name": "Welcome",
        "description": "5% off",
        "type": "percentage",
        "value": 5.0,
        "minPurchaseAmount": None,
        "maxDiscountAmount": 2.0,
    }


# Settings source

def test_settings_percentage_discount():
    source = SettingsDiscountSource(settings_discount(PercentageDiscount(Decimal("10"))))

    outcome = source.evaluate(Decimal("12.00"), "MX", None, NOW)

    assert outcome.applied
    assert outcome.amount == Decimal("1.2000")


def test_settings_fixed_discount_clamps_final_price():
    source = SettingsDiscountSource(settings_discount(FixedDiscount(Decimal("20"))))

    outcome = source.evaluate(Decimal("12.00"), "MX", None, NOW)

    assert outcome.amount == Decimal("20")
    assert discounted_price(Decimal("12.00"), outcome) == Decimal("0")


@pytest.mark.parametrize("discount", [
    SettingsDiscount(enabled=False, kind=PercentageDiscount(Decimal("10"))),
    SettingsDiscount(enabled=True, kind=None),
    SettingsDiscount(enabled=True, kind=FixedDiscount(Decimal("0"))),
    SettingsDiscount(enabled=True, kind=FixedDiscount(Decimal("1")),
                     window=DiscountWindow(end=datetime(2026, 1, 1, tzinfo=timezone.utc))),
    SettingsDiscount(enabled=True, kind=FixedDiscount(Decimal("1")), applicable_countries=frozenset({"NG"})),
    SettingsDiscount(enabled=True, kind=FixedDiscount(Decimal("1")), min_purchase_amount=Decimal("20")),
])
def test_settings_discount_not_applied(discount):
    outcome = SettingsDiscountSource(discount).evaluate(Decimal("12.00"), "MX", None, NOW)

    assert outcome.applied is False
    assert outcome.amount == Decimal("0")


def test_naive_window_is_treated_as_utc():
    discount = settings_discount(FixedDiscount(Decimal("1")), window=DiscountWindow(start=datetime(2026, 6, 1)))

    assert SettingsDiscountSource(discount).evaluate(Decimal("5"), "MX", None, NOW).applied


def test_no_discount_source():
    assert NO_DISCOUNT.evaluate(Decimal("12"), "MX", None, NOW).applied is False
    assert NO_DISCOUNT.summary("MX", NOW) is None


# Code validation

@pytest.fixture
def coded_discounts():
    return [
        make_discount("D1", PercentageDiscount(Decimal("10")), code="SAVE10",
                      applicable_countries=frozenset({"MX"}), min_purchase_amount=Decimal("5")),
        make_discount("D2", FixedDiscount(Decimal("1")), code="OLD", is_active=False),
        make_discount("D3", FixedDiscount(Decimal("1")), code="SOON",
                      window=DiscountWindow(start=NOW + timedelta(days=3))),
        make_discount("D4", FixedDiscount(Decimal("1")), code="GONE",
                      window=DiscountWindow(end=NOW - timedelta(days=3))),
        make_discount("D5", FixedDiscount(Decimal("1")), code="USEDUP", usage_limit=1, usage_count=1),
        make_discount("D6", FixedDiscount(Decimal("2")), code="TELCEL",
                      applicable_products=frozenset({"MX_TELCEL_10"})),
    ]


def test_valid_code(coded_discounts):
    result = validate_discount_code(coded_discounts, " save10 ", Decimal("12.00"), "MX", None, NOW)

    assert result.valid
    assert result.discount.discount_id == "D1"
    assert result.discount_amount == Decimal("1.20")
    assert result.final_amount == Decimal("10.80")


@pytest.mark.parametrize("code,amount,country,sku,error", [
    ("", Decimal("12"), "MX", None, "Discount code is required"),
    ("SAVE10", Decimal("0"), "MX", None, "Purchase amount must be greater than 0"),
    ("NOPE", Decimal("12"), "MX", None, "Invalid discount code"),
    ("OLD", Decimal("12"), "MX", None, "This discount code is no longer active"),
    ("SOON", Decimal("12"), "MX", None, "This discount code is not yet active"),
    ("GONE", Decimal("12"), "MX", None, "This discount code has expired"),
    ("USEDUP", Decimal("12"), "MX", None, "This discount code has reached its usage limit"),
    ("SAVE10", Decimal("12"), "NG", None, "This discount is not available in your country"),
    ("TELCEL", Decimal("12"), "MX", "MX_MOVISTAR_10", "This discount is not applicable to the selected product"),
    ("SAVE10", Decimal("4"), "MX", None, "Minimum purchase amount of $5.00 required for this discount"),
])
def test_invalid_codes(coded_discounts, code, amount, country, sku, error):
    result = validate_discount_code(coded_discounts, code, amount, country, sku, NOW)

    assert result.valid is False
    assert result.error == error
