"""
Top-up Pricing Package

Pricing and eligibility resolution for a multi-tenant mobile top-up storefront.
Resolves provider catalog items using Classify → Eligibility → Markup → Discount pipeline.
"""

__version__ = "1.0.0"
