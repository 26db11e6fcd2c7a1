"""
Eligibility Filter - country, product-type and quantity checks.

All checks are pure and return booleans or structured results; none raise.
"""
from dataclasses import dataclass
from typing import Optional

from .models import ClassifiedProduct, CountrySettings, ProductTypeToggles, QuantityLimits, ResaleSettings


@dataclass(frozen=True)
class QuantityCheck:
    """Result of quantity validation, surfaced to users as-is."""
    valid: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "error": self.error}


def is_available_in_country(settings: ResaleSettings, country_code: str) -> bool:
    """Blocklist first; an empty allowlist means every country."""
    if country_code in settings.blocked_countries:
        return False
    if not settings.allowed_countries:
        return True
    return country_code in settings.allowed_countries


def is_country_enabled(countries: CountrySettings, country_code: str) -> bool:
    """Storefront-wide switch: disabled list, then all-enabled, then enabled list."""
    if country_code in countries.disabled:
        return False
    if countries.all_enabled:
        return True
    return country_code in countries.enabled


def validate_quantity(limits: QuantityLimits, quantity: int) -> QuantityCheck:
    """Bounds are inclusive; unset bounds are not checked."""
    if limits.min_quantity is not None and quantity < limits.min_quantity:
        return QuantityCheck(valid=False, error=f"Minimum quantity is {limits.min_quantity}")
    if limits.max_quantity is not None and quantity > limits.max_quantity:
        return QuantityCheck(valid=False, error=f"Maximum quantity is {limits.max_quantity}")
    return QuantityCheck(valid=True)


def is_product_type_enabled(product: ClassifiedProduct, toggles: ProductTypeToggles) -> bool:
    if product.is_variable_value:
        return toggles.topups_enabled
    return toggles.plans_enabled


def any_product_type_enabled(toggles: ProductTypeToggles) -> bool:
    """False means the whole catalog resolves to empty for this organization."""
    return toggles.plans_enabled or toggles.topups_enabled
