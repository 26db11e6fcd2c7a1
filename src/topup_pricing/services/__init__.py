"""Services subpackage - storefront call sites for the pricing engine."""
