"""Rules subpackage - storage boundary parsing for rule and discount records."""
