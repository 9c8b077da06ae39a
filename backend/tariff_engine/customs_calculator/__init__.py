"""Customs valuation, cost allocation and import tax calculation."""
