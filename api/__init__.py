"""Tutoring marketplace cart, checkout and entitlement API."""

__version__ = "0.1.0"
