"""Data subpackage - organization configuration store."""
