"""Shared helpers used across registry, resolver and installer modules."""
