"""Shared exceptions and resilience helpers."""
