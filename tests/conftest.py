import os
import sys
from datetime import datetime, timezone

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from topup_pricing.config.settings import Settings
from topup_pricing.data.store import OrganizationConfig, OrganizationStore
from topup_pricing.engine.models import CatalogItem
from topup_pricing.engine.rule_matcher import CountryScope, PricingRule
from topup_pricing.rules.records import (
    parse_discount,
    parse_pricing_rule,
    parse_resale_product,
    parse_storefront_settings,
)
from topup_pricing.services.storefront_service import StorefrontService

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def plan_payload(sku="MX_TELCEL_PLAN", amount=12.00, **extra):
    """Provider payload for a fixed-price plan."""
    payload = {
        "SkuCode": sku,
        "DefaultDisplayText": "Telcel 12 USD",
        "ProviderCode": "TEMX",
        "Price": {"Amount": amount, "CurrencyCode": "USD"},
        "BenefitTypes": {"Airtime": {"Amount": 200, "CurrencyCode": "MXN"}},
        "Benefits": ["Mobile"],
    }
    payload.update(extra)
    return payload


def topup_payload(sku="NG_MTN_OPEN", min_send=1.00, max_send=50.00, **extra):
    """Provider payload for a variable-value top-up."""
    payload = {
        "SkuCode": sku,
        "DefaultDisplayText": "MTN Nigeria open range",
        "ProviderCode": "MTNG",
        "Minimum": {"SendValue": min_send, "SendCurrencyIso": "USD",
                    "ReceiveValue": 1500, "ReceiveCurrencyIso": "NGN"},
        "Maximum": {"SendValue": max_send, "SendCurrencyIso": "USD",
                    "ReceiveValue": 75000, "ReceiveCurrencyIso": "NGN"},
        "Benefits": [],
    }
    payload.update(extra)
    return payload


def make_rule(rule_id, markup, priority=0, countries=(), regions=(), excluded=(), **kwargs):
    return PricingRule(
        rule_id=rule_id,
        name=kwargs.pop('name', rule_id),
        markup=markup,
        priority=priority,
        scope=CountryScope(countries=frozenset(countries), regions=tuple(regions), excluded=frozenset(excluded)),
        **kwargs,
    )


@pytest.fixture
def plan_item():
    return CatalogItem.from_provider(plan_payload())


@pytest.fixture
def topup_item():
    return CatalogItem.from_provider(topup_payload())


@pytest.fixture
def store():
    """Registry discounts, settings discount, closed storefront, and no storefront at all."""
    store = OrganizationStore()
    store.upsert(OrganizationConfig(
        org_id="demo-org",
        rules=[
            parse_pricing_rule({"rule_id": "R-DEFAULT", "name": "Default margin", "priority": 10,
                                "type": "percentage", "value": 10}),
            parse_pricing_rule({"rule_id": "R-NG", "name": "Nigeria flat", "priority": 80,
                                "type": "fixed", "value": 1.25, "applicableCountries": ["NG"]}),
        ],
        discounts=[
            parse_discount({"id": "WELCOME5", "name": "Welcome", "code": "WELCOME5", "type": "percentage",
                            "value": 5, "maxDiscountAmount": 2, "maxUsesPerCustomer": 1}),
        ],
        storefront=parse_storefront_settings({
            "orgId": "demo-org",
            "isActive": True,
            "countries": {"enabled": ["MX", "NG"]},
        }),
        products={
            "MX_TELCEL_10": parse_resale_product({
                "skuCode": "MX_TELCEL_10",
                "pricing": {"costPrice": 10, "sellPrice": 12},
                "resaleSettings": {
                    "customPricing": {"enabled": True, "priceByCountry": {"CA": 20}},
                    "discount": {"enabled": True, "type": "percentage", "value": 10},
                    "limits": {"minQuantity": 1, "maxQuantity": 5},
                },
            }),
        },
    ))
    store.upsert(OrganizationConfig(
        org_id="settings-org",
        storefront=parse_storefront_settings({
            "orgId": "settings-org",
            "isActive": True,
            "countries": {"allEnabled": True},
            "productTypes": {"topupsEnabled": False},
            "discount": {"enabled": True, "type": "percentage", "value": 10},
        }),
    ))
    store.upsert(OrganizationConfig(
        org_id="closed-org",
        storefront=parse_storefront_settings({"orgId": "closed-org", "isActive": False}),
    ))
    store.upsert(OrganizationConfig(org_id="bare-org"))
    return store


@pytest.fixture
def settings(tmp_path):
    return Settings(project_root=tmp_path, data_dir=tmp_path)


@pytest.fixture
def service(store, settings):
    return StorefrontService(store, settings)


@pytest.fixture
def catalog():
    """Provider payloads: one plan, one open-range top-up, one malformed item."""
    return [plan_payload(), topup_payload(), {"SkuCode": "BROKEN"}]
