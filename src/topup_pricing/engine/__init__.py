"""Engine subpackage - core pricing logic and resolution."""
from .pricing_engine import PricingEngine, PricingContext, effective_price
from .models import CatalogItem, PricedProduct, CatalogPricing

__all__ = ['PricingEngine', 'PricingContext', 'effective_price', 'CatalogItem', 'PricedProduct', 'CatalogPricing']
