"""Tariff classification and customs duty engine."""

__version__ = "0.1.0"
