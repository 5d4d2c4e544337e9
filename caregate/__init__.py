"""Caregate - communication rate governor and escalating caregiver alerts."""

__version__ = "0.1.0"
