"""Tariff catalog merge and persistence."""
